"""
Sealing and opening of wallet records.

Binds the envelope cipher to the record layout: which key, which IV and
which field each secret lives in.
"""

from typing import Any

from eth_account import Account
from loguru import logger

from app.config.constants import (
    KDF_VERSION_SUBKEYS,
    SUBKEY_MNEMONIC,
    SUBKEY_PRIVATE_KEY,
)
from app.services.wallet.models import EncryptedWalletRecord
from app.utils.encryption import (
    KeyDerivationPool,
    decrypt,
    encrypt,
    new_salt,
    secret_key,
)
from app.utils.exceptions import CorruptionError


def _unhex(value: str | None, field: str) -> bytes:
    try:
        return bytes.fromhex(value or "")
    except (TypeError, ValueError):
        raise CorruptionError(f"Wallet record field '{field}' is not valid hex") from None


class WalletCipher:
    """Seals secrets into records and opens them again."""

    def __init__(self, kdf: KeyDerivationPool) -> None:
        self.kdf = kdf

    async def seal(
        self,
        user_id: int | str,
        wallet_id: str,
        name: str,
        address: str,
        private_key: str,
        mnemonic: str | None,
        created_at: int,
        last_used: int,
    ) -> EncryptedWalletRecord:
        """
        Build an encrypted record under a fresh salt.

        Private key and mnemonic get independent sub-keys and IVs.
        """
        salt = new_salt()
        wallet_key = await self.kdf.derive(user_id, wallet_id, salt)

        iv, sealed_key = encrypt(
            private_key, secret_key(wallet_key, SUBKEY_PRIVATE_KEY, KDF_VERSION_SUBKEYS)
        )
        record = EncryptedWalletRecord(
            id=wallet_id,
            name=name,
            address=address,
            encrypted_private_key=sealed_key.hex(),
            iv=iv.hex(),
            salt=salt.hex(),
            created_at=created_at,
            last_used=last_used,
            kdf_version=KDF_VERSION_SUBKEYS,
        )
        if mnemonic:
            mnemonic_iv, sealed_mnemonic = encrypt(
                mnemonic, secret_key(wallet_key, SUBKEY_MNEMONIC, KDF_VERSION_SUBKEYS)
            )
            record.encrypted_mnemonic = sealed_mnemonic.hex()
            record.mnemonic_iv = mnemonic_iv.hex()
        return record

    async def wallet_key(self, user_id: int | str, record: EncryptedWalletRecord) -> bytes:
        """PBKDF2 key of one wallet; run once and reuse for every field."""
        return await self.kdf.derive(user_id, record.id, _unhex(record.salt, "salt"))

    async def open_private_key(
        self,
        user_id: int | str,
        record: EncryptedWalletRecord,
        wallet_key: bytes | None = None,
    ) -> str:
        """
        Decrypt the private key and check it reproduces the stored address.

        Args:
            user_id: Owner of the record
            record: Encrypted wallet record
            wallet_key: Already derived wallet key, if the caller holds one

        Raises:
            CorruptionError: Authentication failure or address mismatch
        """
        if wallet_key is None:
            wallet_key = await self.wallet_key(user_id, record)
        plaintext = decrypt(
            _unhex(record.iv, "iv"),
            _unhex(record.encrypted_private_key, "encryptedPrivateKey"),
            secret_key(wallet_key, SUBKEY_PRIVATE_KEY, record.kdf_version),
        )
        return self._checked_key(plaintext, record.address)

    async def open_mnemonic(
        self,
        user_id: int | str,
        record: EncryptedWalletRecord,
        wallet_key: bytes | None = None,
    ) -> str | None:
        """Decrypt the mnemonic; None for records stored without one."""
        if not record.has_mnemonic:
            return None
        if wallet_key is None:
            wallet_key = await self.wallet_key(user_id, record)
        plaintext = decrypt(
            _unhex(record.mnemonic_iv, "mnemonicIv"),
            _unhex(record.encrypted_mnemonic, "encryptedMnemonic"),
            secret_key(wallet_key, SUBKEY_MNEMONIC, record.kdf_version),
        )
        return plaintext.decode("utf-8")

    async def open_legacy(
        self, user_id: int | str, raw: dict[str, Any]
    ) -> tuple[str, str | None]:
        """
        Decrypt a single-wallet-era record.

        Those records were sealed under ``master:user`` with one key for
        every field.

        Returns:
            ``(private_key, mnemonic_or_None)``
        """
        salt = _unhex(raw.get("salt"), "salt")
        legacy_key = await self.kdf.derive(user_id, None, salt)

        private_key = self._checked_key(
            decrypt(
                _unhex(raw.get("iv"), "iv"),
                _unhex(raw.get("encryptedPrivateKey"), "encryptedPrivateKey"),
                legacy_key,
            ),
            raw.get("address", ""),
        )

        mnemonic = None
        if raw.get("encryptedMnemonic") and raw.get("mnemonicIv"):
            mnemonic = decrypt(
                _unhex(raw["mnemonicIv"], "mnemonicIv"),
                _unhex(raw["encryptedMnemonic"], "encryptedMnemonic"),
                legacy_key,
            ).decode("utf-8")
        return private_key, mnemonic

    @staticmethod
    def _checked_key(plaintext: bytes, address: str) -> str:
        try:
            private_key = plaintext.decode("utf-8")
            derived = Account.from_key(private_key).address
        except Exception:
            raise CorruptionError("Decrypted private key is invalid") from None
        if derived.lower() != (address or "").lower():
            logger.error("Decrypted private key does not match stored address")
            raise CorruptionError("Decrypted private key does not match wallet address")
        return private_key
