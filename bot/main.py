"""
Bot main entry point.

Initializes and runs the Telegram bot with aiogram 3.x.

Initialization is delegated to the modules in bot/initialization/.
"""

import asyncio
import sys
import warnings
from pathlib import Path


# Suppress eth_utils network warnings about invalid ChainId.
# Must be set BEFORE importing any modules that use eth_utils.
warnings.filterwarnings(
    "ignore",
    message=".*does not have a valid ChainId.*",
    category=UserWarning,
)

from aiogram import Bot, Dispatcher  # noqa: E402
from aiogram.client.default import DefaultBotProperties  # noqa: E402
from aiogram.types import ErrorEvent  # noqa: E402
from loguru import logger  # noqa: E402


# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.config.settings import settings  # noqa: E402
from app.utils.exceptions import SAFE_TO_IGNORE  # noqa: E402
from bot.initialization.handlers import register_all_handlers  # noqa: E402
from bot.initialization.logging import setup_logging  # noqa: E402
from bot.initialization.services import (  # noqa: E402
    initialize_wallet_services,
    register_wallet_services,
)
from bot.initialization.shutdown import shutdown_handler  # noqa: E402


async def main() -> None:
    """Initialize and run the bot."""
    setup_logging(settings.log_level)

    services = initialize_wallet_services(settings)

    # No global parse mode: handlers set HTML explicitly where needed
    bot = Bot(
        token=settings.telegram_bot_token,
        default=DefaultBotProperties(),
    )
    dp = Dispatcher()
    register_wallet_services(dp, services)

    @dp.error()
    async def error_handler(event: ErrorEvent) -> bool:
        """Global error handler for unhandled exceptions."""
        logger.exception(
            f"Unhandled error in bot: {event.exception.__class__.__name__}: {event.exception}"
        )

        try:
            if event.update and event.update.message:
                await event.update.message.answer(
                    "⚠️ Something went wrong. Please try again later."
                )
        except SAFE_TO_IGNORE as send_error:
            logger.error(f"Failed to send error message: {send_error}")

        return True

    register_all_handlers(dp)

    bot_info = await bot.get_me()
    logger.info(f"Bot connected: @{bot_info.username} (ID: {bot_info.id})")

    services.rate_limiter.start_cleanup(settings.rate_limit_sweep_interval)

    try:
        logger.info("Starting polling...")
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        await shutdown_handler(services)
        await bot.session.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot stopped by user (KeyboardInterrupt)")
    except Exception as e:
        logger.exception(f"Bot crashed: {e}")
        sys.exit(1)
