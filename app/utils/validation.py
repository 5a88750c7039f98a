"""Validation utilities for wallet identifiers, names, addresses and amounts."""

import re
from decimal import Decimal, InvalidOperation

from eth_utils import is_address, is_checksum_address, to_checksum_address
from web3 import Web3

from app.config.constants import WALLET_NAME_MAX_LENGTH
from app.utils.exceptions import ValidationError


# Only alphanumerics and hyphens may reach the filesystem
SAFE_ID_PATTERN = re.compile(r"[A-Za-z0-9-]+")


def validate_wallet_id(wallet_id: str) -> str:
    """
    Validate a wallet id before it is used in a path.

    Args:
        wallet_id: Wallet id

    Returns:
        The id, unchanged

    Raises:
        ValidationError: Empty id or id with characters outside [A-Za-z0-9-]
    """
    if not isinstance(wallet_id, str) or not SAFE_ID_PATTERN.fullmatch(wallet_id):
        raise ValidationError("Invalid wallet ID")
    return wallet_id


def validate_user_id(user_id: int | str) -> str:
    """
    Validate a user id and return its directory name.

    Telegram ids are integers; string ids are held to the wallet id charset.
    """
    if isinstance(user_id, bool):
        raise ValidationError("Invalid user ID")
    if isinstance(user_id, int):
        if user_id < 0:
            raise ValidationError("Invalid user ID")
        return str(user_id)
    if isinstance(user_id, str) and SAFE_ID_PATTERN.fullmatch(user_id):
        return user_id
    raise ValidationError("Invalid user ID")


def validate_wallet_name(name: str) -> str:
    """Strip and length-check a wallet display name."""
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Wallet name cannot be empty")
    if len(cleaned) > WALLET_NAME_MAX_LENGTH:
        raise ValidationError(
            f"Wallet name too long (max {WALLET_NAME_MAX_LENGTH} characters)"
        )
    return cleaned


def validate_address(address: str) -> str:
    """
    Validate a recipient address.

    Returns:
        Checksummed address

    Raises:
        ValidationError: Not a valid EVM address
    """
    try:
        if not address or not is_address(address):
            raise ValidationError(f"Invalid address: {address!r}")
        body = address[2:] if address.lower().startswith("0x") else address
        # Mixed case means the sender meant an EIP-55 checksum
        if body != body.lower() and body != body.upper() and not is_checksum_address(address):
            raise ValidationError(f"Invalid address checksum: {address!r}")
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid address: {address!r}") from None
    return to_checksum_address(address)


def parse_amount(amount: str | Decimal) -> int:
    """
    Parse a positive ether amount into wei.

    A comma is accepted as the decimal separator ("0,5").

    Raises:
        ValidationError: Non-numeric, non-positive or sub-wei amount
    """
    try:
        value = Decimal(str(amount).strip().replace(",", "."))
    except InvalidOperation:
        raise ValidationError(f"Invalid amount: {amount!r}") from None

    if not value.is_finite() or value <= 0:
        raise ValidationError("Amount must be a positive number")

    try:
        wei = Web3.to_wei(value, "ether")
    except ValueError:
        raise ValidationError(f"Amount out of range: {amount!r}") from None
    if wei <= 0 or Decimal(wei) != value.scaleb(18):
        raise ValidationError("Amount has more than 18 decimal places")
    return int(wei)
