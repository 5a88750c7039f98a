"""
User-facing texts for wallet errors.

Internal details never reach the chat: every typed error maps to a short
instruction the user can act on.
"""

import math
from html import escape

from app.utils.exceptions import (
    ChainUnavailableError,
    CorruptionError,
    InsufficientBalanceError,
    NetworkTimeoutError,
    NotFoundError,
    RateLimitedError,
    ValidationError,
)


CORRUPTED_WALLET_TEXT = (
    "❌ This wallet can no longer be unlocked.\n"
    "Please create a new wallet with /wallets and move any remaining funds "
    "using a previously exported key or seed phrase."
)
GENERIC_FAILURE_TEXT = "❌ Operation failed. Please try again later."


def format_retry_after(retry_after_ms: int) -> str:
    """Human wait time: seconds below a minute, whole minutes otherwise."""
    if retry_after_ms < 60_000:
        seconds = max(1, math.ceil(retry_after_ms / 1000))
        return f"{seconds} second(s)"
    return f"{math.ceil(retry_after_ms / 60_000)} minute(s)"


def format_wallet_error(exc: Exception) -> str:
    """Map a wallet error to the text shown to the user."""
    if isinstance(exc, RateLimitedError):
        return (
            "⏳ Too many attempts. "
            f"Please wait {format_retry_after(exc.retry_after_ms)} before trying again."
        )
    if isinstance(exc, CorruptionError):
        return CORRUPTED_WALLET_TEXT
    if isinstance(exc, NotFoundError):
        return "❌ No wallet found! Create one with /wallets."
    if isinstance(exc, (InsufficientBalanceError, ValidationError)):
        return f"❌ {escape(str(exc))}"
    if isinstance(exc, ChainUnavailableError):
        return (
            "🌐 The blockchain network is not responding right now. "
            "Check your balance with /wallets before trying again."
        )
    if isinstance(exc, NetworkTimeoutError):
        return (
            "⏳ Transaction sent but not confirmed yet. "
            f"Check it later: <code>{exc.tx_hash}</code>"
        )
    return GENERIC_FAILURE_TEXT
