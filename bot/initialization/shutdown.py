"""
Bot Initialization - Shutdown Module.

Module: shutdown.py
Handles graceful shutdown of the bot.
Stops background sweeps and releases worker pools.
"""

from loguru import logger

from bot.initialization.services import WalletServices


async def shutdown_handler(services: WalletServices) -> None:
    """Handle graceful shutdown."""
    logger.info("Graceful shutdown initiated...")

    services.rate_limiter.close()
    services.wallet_manager.close()
    services.chain.cleanup()

    logger.info("Graceful shutdown complete")
