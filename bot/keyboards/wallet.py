"""
Inline keyboards for wallet management.
"""

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from app.config.constants import DELETE_MESSAGE_CALLBACK
from app.services.wallet.models import WalletInfo


WALLET_SELECT_PREFIX = "wallet_select:"


def wallet_list_keyboard(wallets: list[WalletInfo]) -> InlineKeyboardMarkup:
    """
    Keyboard under the wallet list.

    Args:
        wallets: User wallets; inactive ones get a "switch" button

    Returns:
        InlineKeyboardMarkup with selection and action buttons
    """
    builder = InlineKeyboardBuilder()

    for wallet in wallets:
        if not wallet.is_active:
            builder.row(
                InlineKeyboardButton(
                    text=f"↔️ Use {wallet.name}",
                    callback_data=f"{WALLET_SELECT_PREFIX}{wallet.id}",
                )
            )

    builder.row(
        InlineKeyboardButton(text="📥 Deposit", callback_data="wallet_deposit"),
    )
    builder.row(
        InlineKeyboardButton(text="🔑 Private Key", callback_data="wallet_export_key"),
        InlineKeyboardButton(text="🌱 Seed Phrase", callback_data="wallet_export_mnemonic"),
    )
    builder.row(
        InlineKeyboardButton(text="➕ New Wallet", callback_data="wallet_create"),
    )
    builder.row(
        InlineKeyboardButton(text="🗑️ Delete Now", callback_data=DELETE_MESSAGE_CALLBACK),
    )

    return builder.as_markup()


def create_wallet_keyboard() -> InlineKeyboardMarkup:
    """Single "create" button for users without a wallet."""
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(text="➕ Create Wallet", callback_data="wallet_create")
    )
    return builder.as_markup()


def export_key_instead_keyboard() -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(text="🔑 Export Private Key", callback_data="wallet_export_key")
    )
    return builder.as_markup()
