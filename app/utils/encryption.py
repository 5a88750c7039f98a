"""
Key derivation and envelope encryption for wallet secrets.

Every wallet gets its own random salt. The wallet key is
PBKDF2-HMAC-SHA512(master:user:wallet, salt, 100k). Each secret stored in a
wallet record (private key, mnemonic) is sealed with AES-256-GCM under its
own HKDF sub-key of the wallet key and its own random IV. Decryption
verifies the GCM tag before anything is returned.
"""

import asyncio
import secrets
from concurrent.futures import ThreadPoolExecutor

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from loguru import logger

from app.config.constants import (
    AUTH_TAG_LENGTH,
    IV_LENGTH,
    KDF_ITERATIONS,
    KDF_KEY_LENGTH,
    KDF_VERSION_SUBKEYS,
    SALT_LENGTH,
)
from app.utils.exceptions import CorruptionError, SecurityError


def new_salt() -> bytes:
    """Fresh random per-wallet salt."""
    return secrets.token_bytes(SALT_LENGTH)


def derive_key(
    master_secret: str,
    user_id: int | str,
    wallet_id: str | None,
    salt: bytes,
) -> bytes:
    """
    Derive a 32-byte wallet key.

    Deterministic for identical inputs. ``wallet_id=None`` reproduces the
    single-wallet layout's context (``master:user``).

    Args:
        master_secret: Process-wide master secret
        user_id: Owning user
        wallet_id: Wallet id, or None for legacy records
        salt: Per-wallet random salt

    Returns:
        Derived key bytes
    """
    if not master_secret:
        raise SecurityError("Master secret is not configured")

    parts = [master_secret, str(user_id)]
    if wallet_id is not None:
        parts.append(wallet_id)
    key_material = ":".join(parts).encode("utf-8")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA512(),
        length=KDF_KEY_LENGTH,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(key_material)


def derive_subkey(wallet_key: bytes, purpose: bytes) -> bytes:
    """Expand the wallet key into an independent key for one secret."""
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KDF_KEY_LENGTH,
        salt=None,
        info=purpose,
    )
    return hkdf.derive(wallet_key)


def secret_key(wallet_key: bytes, purpose: bytes, kdf_version: int | None) -> bytes:
    """
    Pick the key a record field is sealed with.

    Records without a ``kdfVersion`` predate sub-keys and use the wallet key
    for every field.
    """
    if kdf_version is not None and kdf_version >= KDF_VERSION_SUBKEYS:
        return derive_subkey(wallet_key, purpose)
    return wallet_key


def encrypt(plaintext: str | bytes, key: bytes) -> tuple[bytes, bytes]:
    """
    Seal plaintext with AES-256-GCM.

    Returns:
        ``(iv, ciphertext || tag)``
    """
    if isinstance(plaintext, str):
        plaintext = plaintext.encode("utf-8")
    iv = secrets.token_bytes(IV_LENGTH)
    sealed = AESGCM(key).encrypt(iv, plaintext, None)
    return iv, sealed


def decrypt(iv: bytes, sealed: bytes, key: bytes) -> bytes:
    """
    Open ``ciphertext || tag``; the tag is verified first.

    Raises:
        CorruptionError: Tampered data, truncated data or wrong key
    """
    if len(sealed) < AUTH_TAG_LENGTH:
        raise CorruptionError("Encrypted payload is truncated")
    try:
        return AESGCM(key).decrypt(iv, sealed, None)
    except (InvalidTag, ValueError):
        raise CorruptionError("Authenticated decryption failed") from None


class KeyDerivationPool:
    """
    Runs PBKDF2 off the event loop.

    Derivation is CPU-bound; a small dedicated pool bounds how many run at
    once so other coroutines keep being served.
    """

    def __init__(self, master_secret: str, max_workers: int = 2) -> None:
        """
        Initialize derivation pool.

        Args:
            master_secret: Process-wide master secret
            max_workers: Maximum concurrent derivations
        """
        if not master_secret:
            raise SecurityError(
                "Master secret not configured. "
                "Set WALLET_MASTER_KEY before starting the bot."
            )
        self._master_secret = master_secret
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="kdf",
        )

    async def derive(
        self, user_id: int | str, wallet_id: str | None, salt: bytes
    ) -> bytes:
        """Derive a wallet key in the pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            derive_key,
            self._master_secret,
            user_id,
            wallet_id,
            salt,
        )

    def cleanup(self) -> None:
        """Shut the pool down."""
        self._executor.shutdown(wait=True)
        logger.debug("Key derivation pool stopped")
