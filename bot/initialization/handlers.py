"""
Bot Initialization - Handlers Module.

Module: handlers.py
Registers bot handlers on the dispatcher.
"""

from aiogram import Dispatcher
from loguru import logger


def register_all_handlers(dp: Dispatcher) -> None:
    """Register all handlers in the correct order."""
    from bot.handlers import wallet

    dp.include_router(wallet.router)

    logger.info("Wallet handlers registered successfully")
