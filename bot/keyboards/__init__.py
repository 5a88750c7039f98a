"""
Keyboards.

Telegram inline keyboards for wallet management.
"""

from bot.keyboards.wallet import (
    WALLET_SELECT_PREFIX,
    create_wallet_keyboard,
    export_key_instead_keyboard,
    wallet_list_keyboard,
)

__all__ = [
    "WALLET_SELECT_PREFIX",
    "create_wallet_keyboard",
    "export_key_instead_keyboard",
    "wallet_list_keyboard",
]
