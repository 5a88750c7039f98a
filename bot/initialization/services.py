"""
Bot Initialization - Services Module.

Module: services.py
Builds the wallet services from settings and hands them to the dispatcher.
Handlers receive them as workflow data, so nothing below the bot layer
reads global state.
"""

from dataclasses import dataclass

from aiogram import Dispatcher
from loguru import logger

from app.config.settings import Settings
from app.services.blockchain import Web3ChainClient
from app.services.rate_limiter import OperationRateLimiter
from app.services.wallet import WalletManager, WalletStore
from app.utils.encryption import KeyDerivationPool


@dataclass
class WalletServices:
    """Long-lived wallet services shared by all handlers."""
    wallet_manager: WalletManager
    rate_limiter: OperationRateLimiter
    chain: Web3ChainClient


def initialize_wallet_services(settings: Settings) -> WalletServices:
    """
    Build wallet services.

    Args:
        settings: Application settings

    Returns:
        Wired services
    """
    chain = Web3ChainClient(rpc_url=settings.rpc_url, chain_id=settings.chain_id)
    kdf = KeyDerivationPool(
        settings.wallet_master_key.get_secret_value(),
        max_workers=settings.kdf_max_workers,
    )
    store = WalletStore(settings.wallets_root)
    manager = WalletManager(store=store, chain=chain, kdf=kdf)
    rate_limiter = OperationRateLimiter()

    logger.info(f"Wallet services initialized (wallets root: {settings.wallets_root})")
    return WalletServices(
        wallet_manager=manager,
        rate_limiter=rate_limiter,
        chain=chain,
    )


def register_wallet_services(dp: Dispatcher, services: WalletServices) -> None:
    """Expose services to handlers as ``wallet_manager`` / ``rate_limiter``."""
    dp["wallet_manager"] = services.wallet_manager
    dp["rate_limiter"] = services.rate_limiter


def get_wallet_manager(dp: Dispatcher) -> WalletManager:
    """
    Wallet manager registered on ``dp``.

    Raises:
        RuntimeError: Services were not registered
    """
    manager = dp.get("wallet_manager")
    if manager is None:
        raise RuntimeError("WalletManager not initialized")
    return manager
