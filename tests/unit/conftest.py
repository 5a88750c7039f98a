"""
Shared fixtures for unit tests.

This module provides common fixtures used across multiple test modules:
- Fast key derivation (fewer PBKDF2 rounds)
- Mock chain client
- WalletStore / WalletManager rooted in a temporary directory
- Log capture for loguru
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from loguru import logger

from app.services.blockchain.chain_client import FeeData
from app.services.wallet import WalletManager, WalletStore
from app.utils.encryption import KeyDerivationPool


MASTER_SECRET = "unit-test-master-secret-0123456789abcdef"


@pytest.fixture(autouse=True)
def fast_kdf(monkeypatch):
    """
    Lower PBKDF2 rounds so the suite stays fast.

    Every derivation goes through the same module global, so files written
    by tests and files read by the code under test stay compatible.
    """
    monkeypatch.setattr("app.utils.encryption.KDF_ITERATIONS", 1_000)


@pytest.fixture
def master_secret():
    return MASTER_SECRET


@pytest.fixture
def mock_chain():
    """
    Mock chain client.

    Balance 0, legacy 1 gwei gas price, and a transfer handle with a fixed hash.
    """
    chain = MagicMock()
    chain.get_balance = AsyncMock(return_value=0)
    chain.get_fee_data = AsyncMock(return_value=FeeData(gas_price=10**9))
    tx = MagicMock()
    tx.hash = "0x" + "ab" * 32
    tx.wait = AsyncMock()
    chain.send_transaction = AsyncMock(return_value=tx)
    chain.call = AsyncMock(return_value=b"")
    return chain


@pytest.fixture
def wallets_root(tmp_path):
    return tmp_path / "wallets"


@pytest.fixture
def wallet_store(wallets_root):
    return WalletStore(wallets_root)


@pytest.fixture
def kdf_pool(master_secret):
    pool = KeyDerivationPool(master_secret, max_workers=2)
    yield pool
    pool.cleanup()


@pytest.fixture
def wallet_manager(wallet_store, mock_chain, kdf_pool):
    """WalletManager over a temporary wallets root and the mock chain."""
    return WalletManager(store=wallet_store, chain=mock_chain, kdf=kdf_pool)


@pytest.fixture
def log_records():
    """Collect loguru messages at WARNING and above."""
    records: list[str] = []
    handler_id = logger.add(lambda message: records.append(str(message)), level="WARNING")
    yield records
    logger.remove(handler_id)
