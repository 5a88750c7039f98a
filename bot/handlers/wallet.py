"""
Wallet handlers.

Custodial wallet commands and callbacks. ``wallet_manager`` and
``rate_limiter`` arrive through the dispatcher's workflow data.
"""

from html import escape
from typing import Any

from aiogram import Bot, F, Router
from aiogram.filters import Command, CommandObject
from aiogram.types import CallbackQuery, Message
from loguru import logger

from app.config.constants import DELETE_MESSAGE_CALLBACK
from app.config.settings import settings
from app.services.rate_limiter import OperationRateLimiter
from app.services.wallet import WalletManager
from app.utils.exceptions import SAFE_TO_IGNORE, RateLimitedError, WalletError
from bot.keyboards.wallet import (
    WALLET_SELECT_PREFIX,
    create_wallet_keyboard,
    export_key_instead_keyboard,
    wallet_list_keyboard,
)
from bot.utils.sensitive_messages import SensitivityLevels, send_sensitive_message
from bot.utils.wallet_messages import format_wallet_error

router = Router(name="wallet")


async def _drop_callback_message(callback: CallbackQuery) -> None:
    """Remove the message the button was pressed on."""
    if callback.message is None:
        return
    try:
        await callback.message.delete()
    except SAFE_TO_IGNORE as e:
        logger.debug(f"Could not delete callback message: {e}")


def _chat_id(callback: CallbackQuery) -> int:
    if callback.message is not None:
        return callback.message.chat.id
    return callback.from_user.id


async def _reply(bot: Bot, callback: CallbackQuery, text: str, **kwargs: Any) -> None:
    """Answer in the callback's chat."""
    await bot.send_message(
        chat_id=_chat_id(callback), text=text, parse_mode="HTML", **kwargs
    )


# ---------------------------------------------------------------------------
# Listing & selection
# ---------------------------------------------------------------------------


@router.message(Command("wallets"))
async def cmd_wallets(
    message: Message,
    bot: Bot,
    wallet_manager: WalletManager,
    **data: Any,
) -> None:
    """
    Show the user's wallets with balances.

    Balances are sent as a self-destructing message.
    """
    if not message.from_user:
        return
    user_id = message.from_user.id

    try:
        wallets = await wallet_manager.list_wallets(user_id)
    except WalletError as e:
        await message.answer(format_wallet_error(e), parse_mode="HTML")
        return

    if not wallets:
        await message.answer(
            "👛 You don't have a wallet yet.",
            reply_markup=create_wallet_keyboard(),
        )
        return

    lines = ["👛 <b>Your Wallets</b>", ""]
    for wallet in wallets:
        marker = "✅" if wallet.is_active else "▫️"
        lines.append(f"{marker} <b>{escape(wallet.name)}</b>")
        lines.append(f"<code>{wallet.address}</code>")
        lines.append(f"💰 {wallet.balance_formatted} ETH")
        lines.append("")
    lines.append("🗑️ <i>Auto-delete in 60 seconds</i>")

    await send_sensitive_message(
        bot,
        message.chat.id,
        "\n".join(lines),
        SensitivityLevels.BALANCE,
        reply_markup=wallet_list_keyboard(wallets),
    )


@router.callback_query(F.data.startswith(WALLET_SELECT_PREFIX))
async def select_wallet(
    callback: CallbackQuery,
    bot: Bot,
    wallet_manager: WalletManager,
    **data: Any,
) -> None:
    """Switch the active wallet."""
    await callback.answer()
    wallet_id = callback.data.removeprefix(WALLET_SELECT_PREFIX)

    try:
        await wallet_manager.set_active_wallet(callback.from_user.id, wallet_id)
    except WalletError as e:
        await _reply(bot, callback, format_wallet_error(e))
        return

    await _reply(bot, callback, "✅ Active wallet switched. Use /wallets to see it.")


# ---------------------------------------------------------------------------
# Creation & deposit
# ---------------------------------------------------------------------------


@router.callback_query(F.data == "wallet_create")
async def create_wallet(
    callback: CallbackQuery,
    bot: Bot,
    wallet_manager: WalletManager,
    **data: Any,
) -> None:
    """
    Create a wallet and disclose its seed phrase once.

    The address is sent as a permanent message; the phrase self-destructs.
    """
    await callback.answer()
    user_id = callback.from_user.id
    chat_id = _chat_id(callback)

    await _reply(bot, callback, "⏳ Creating wallet...")
    try:
        wallet = await wallet_manager.create_wallet(user_id)
    except WalletError as e:
        await _reply(bot, callback, format_wallet_error(e))
        return

    await _reply(
        bot,
        callback,
        f"✅ <b>{escape(wallet.name)} Created!</b>\n\n"
        f"📍 <b>Address:</b>\n<code>{wallet.address}</code>\n\n"
        "You can import this wallet into MetaMask using the seed phrase below.",
    )
    await send_sensitive_message(
        bot,
        chat_id,
        "🌱 <b>SEED PHRASE (12 words)</b>\n\n"
        f"<tg-spoiler><code>{wallet.mnemonic}</code></tg-spoiler>\n\n"
        "⚠️ <b>EXTREMELY IMPORTANT!</b>\n"
        "• Write these 12 words on paper\n"
        "• DO NOT take screenshots\n"
        "• DO NOT share with ANYONE\n"
        "• Anyone with these words can steal your funds\n\n"
        "🗑️ <i>Message auto-deletes in 60 seconds</i>",
        SensitivityLevels.MNEMONIC,
    )


@router.callback_query(F.data == "wallet_deposit")
async def show_deposit_address(
    callback: CallbackQuery,
    bot: Bot,
    wallet_manager: WalletManager,
    **data: Any,
) -> None:
    await callback.answer()

    try:
        wallet = await wallet_manager.get_wallet(callback.from_user.id)
    except WalletError as e:
        await _reply(bot, callback, format_wallet_error(e))
        return

    if wallet is None:
        await _reply(bot, callback, "❌ Wallet not found. Create one first!")
        return

    await send_sensitive_message(
        bot,
        _chat_id(callback),
        "💰 <b>Deposit ETH</b>\n\n"
        f"Send ETH to this address:\n\n<code>{wallet.address}</code>\n\n"
        f"💡 <b>Current balance:</b> {wallet.balance_formatted} ETH",
        SensitivityLevels.DEPOSIT_ADDRESS,
    )


# ---------------------------------------------------------------------------
# Secret export
# ---------------------------------------------------------------------------


@router.callback_query(F.data == "wallet_export_key")
async def export_private_key(
    callback: CallbackQuery,
    bot: Bot,
    wallet_manager: WalletManager,
    rate_limiter: OperationRateLimiter,
    **data: Any,
) -> None:
    """
    Disclose the active wallet's private key.

    Rate-limited under the ``export_key`` profile; the key message
    self-destructs after 30 seconds and cannot be forwarded.
    """
    await callback.answer()
    await _drop_callback_message(callback)
    user_id = callback.from_user.id

    try:
        rate_limiter.ensure_allowed("export_key", user_id)
        private_key = await wallet_manager.export_private_key(user_id)
    except WalletError as e:
        if not isinstance(e, RateLimitedError):
            logger.error(f"Error exporting key for user {user_id}: {type(e).__name__}")
        await _reply(bot, callback, format_wallet_error(e))
        return

    await send_sensitive_message(
        bot,
        _chat_id(callback),
        "🔑 <b>PRIVATE KEY</b>\n\n"
        f"<tg-spoiler><code>{private_key}</code></tg-spoiler>\n\n"
        "⚠️ <b>WARNING!</b>\n"
        "• NEVER share this key\n"
        "• Save it in a secure offline location\n\n"
        "🗑️ <i>Auto-delete in 30 seconds</i>",
        SensitivityLevels.PRIVATE_KEY,
    )


@router.callback_query(F.data == "wallet_export_mnemonic")
async def export_mnemonic(
    callback: CallbackQuery,
    bot: Bot,
    wallet_manager: WalletManager,
    rate_limiter: OperationRateLimiter,
    **data: Any,
) -> None:
    """Disclose the active wallet's seed phrase, when one is stored."""
    await callback.answer()
    await _drop_callback_message(callback)
    user_id = callback.from_user.id

    try:
        rate_limiter.ensure_allowed("export_key", user_id, scope="export_mnemonic")
        mnemonic = await wallet_manager.export_mnemonic(user_id)
    except WalletError as e:
        if not isinstance(e, RateLimitedError):
            logger.error(f"Error exporting mnemonic for user {user_id}: {type(e).__name__}")
        await _reply(bot, callback, format_wallet_error(e))
        return

    if mnemonic is None:
        await _reply(
            bot,
            callback,
            "⚠️ <b>Seed phrase not available</b>\n\n"
            "This wallet was created before seed phrases were stored.\n"
            "You can still export the private key to import it into MetaMask.",
            reply_markup=export_key_instead_keyboard(),
        )
        return

    await send_sensitive_message(
        bot,
        _chat_id(callback),
        "🌱 <b>SEED PHRASE (12 words)</b>\n\n"
        f"<tg-spoiler><code>{mnemonic}</code></tg-spoiler>\n\n"
        "⚠️ <b>WARNING!</b>\n"
        "• NEVER share these words\n"
        "• Write them on paper, NOT digitally\n\n"
        "🗑️ <i>Auto-delete in 60 seconds</i>",
        SensitivityLevels.MNEMONIC,
    )


@router.callback_query(F.data == DELETE_MESSAGE_CALLBACK)
async def delete_this_message(callback: CallbackQuery, **data: Any) -> None:
    """Handle the "Delete Now" button on sensitive messages."""
    await callback.answer()
    await _drop_callback_message(callback)


# ---------------------------------------------------------------------------
# Withdrawal
# ---------------------------------------------------------------------------


@router.message(Command("withdraw"))
async def cmd_withdraw(
    message: Message,
    command: CommandObject,
    bot: Bot,
    wallet_manager: WalletManager,
    rate_limiter: OperationRateLimiter,
    **data: Any,
) -> None:
    """
    Withdraw from the active wallet.

    Usage: ``/withdraw <address> <amount>``
    """
    if not message.from_user:
        return
    user_id = message.from_user.id

    args = (command.args or "").split()
    if len(args) != 2:
        await message.answer("Usage: /withdraw <address> <amount>")
        return
    to, amount = args

    try:
        rate_limiter.ensure_allowed("withdraw", user_id)
        if not await wallet_manager.verify_wallet_integrity(user_id):
            await message.answer(
                "❌ Your wallet failed its security check. Withdrawal cancelled.\n"
                "Please contact support."
            )
            return

        tx = await wallet_manager.withdraw(user_id, to, amount)
        await message.answer("⏳ Transaction sent, waiting for confirmation...")
        receipt = await tx.wait(
            confirmations=settings.tx_confirmations,
            timeout=settings.tx_confirmation_timeout,
        )
    except WalletError as e:
        await message.answer(format_wallet_error(e), parse_mode="HTML")
        return

    status = "✅ Confirmed" if receipt.status == 1 else "❌ Reverted"
    await send_sensitive_message(
        bot,
        message.chat.id,
        f"{status}\n\n"
        f"🔗 <a href=\"{settings.explorer_url}/tx/{receipt.tx_hash}\">View transaction</a>\n"
        f"<code>{receipt.tx_hash}</code>",
        SensitivityLevels.TRANSACTION,
    )
