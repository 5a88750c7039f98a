"""
Exception handling utilities.

Defines categorized exception types for proper error handling.
"""

from aiogram.exceptions import TelegramAPIError
from web3.exceptions import Web3Exception


class SecurityError(Exception):
    """Raised when a security-critical operation fails."""
    pass


class WalletError(Exception):
    """Base class for every typed wallet failure."""
    pass


class ValidationError(WalletError):
    """Malformed wallet id, name, address or amount."""
    pass


class NotFoundError(WalletError):
    """Unknown user or wallet."""
    pass


class CorruptionError(WalletError):
    """
    Authenticated decryption failed.

    Raised on tampered ciphertext, tampered auth tag or a wrong key.
    Never carries plaintext.
    """
    pass


class InsufficientBalanceError(WalletError):
    """Balance does not cover amount plus estimated fee."""

    def __init__(self, message: str, balance: int, required: int) -> None:
        super().__init__(message)
        self.balance = balance
        self.required = required


class RateLimitedError(WalletError):
    """Operation rejected by a rate limiter."""

    def __init__(self, retry_after_ms: int, operation: str = "") -> None:
        super().__init__(
            f"Rate limit exceeded for '{operation}', retry after {retry_after_ms} ms"
        )
        self.retry_after_ms = retry_after_ms
        self.operation = operation


class ChainUnavailableError(WalletError):
    """RPC node failed or timed out while preparing or sending a transfer."""
    pass


class NetworkTimeoutError(WalletError):
    """
    Transaction was sent but its confirmation was not observed in time.

    The outcome is ambiguous: the transaction may still be mined.
    """

    def __init__(self, tx_hash: str, timeout: float) -> None:
        super().__init__(
            f"Transaction {tx_hash} not confirmed within {timeout:.0f}s "
            "(it may still be mined)"
        )
        self.tx_hash = tx_hash
        self.timeout = timeout


# Exception categories based on handling strategy

# Safe to ignore - operations that fail gracefully
SAFE_TO_IGNORE = (
    TelegramAPIError,  # Message deletion, editing, etc.
)

# Must log but can continue - non-critical failures
MUST_LOG = (
    Web3Exception,     # Blockchain RPC errors during enrichment reads
    ConnectionError,
    TimeoutError,
)

