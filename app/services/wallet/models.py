"""
Wallet data model.

Dataclasses mirror the on-disk JSON layout; ``to_dict`` / ``from_dict``
translate between snake_case attributes and the camelCase file keys.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any


def now_ms() -> int:
    """Current Unix time in milliseconds."""
    return int(time.time() * 1000)


@dataclass
class WalletIndexEntry:
    """One wallet as listed in a user's index."""
    id: str
    name: str
    address: str
    created_at: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WalletIndexEntry:
        return cls(
            id=data["id"],
            name=data["name"],
            address=data["address"],
            created_at=int(data.get("createdAt") or 0),
        )


@dataclass
class UserWalletIndex:
    """
    Per-user wallet index (``wallets.json``).

    A non-empty ``active_wallet_id`` always names an entry of ``wallets``.
    """
    active_wallet_id: str = ""
    wallets: list[WalletIndexEntry] = field(default_factory=list)

    def find(self, wallet_id: str) -> WalletIndexEntry | None:
        """Return the entry with ``wallet_id`` or None."""
        for entry in self.wallets:
            if entry.id == wallet_id:
                return entry
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "activeWalletId": self.active_wallet_id,
            "wallets": [entry.to_dict() for entry in self.wallets],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserWalletIndex:
        return cls(
            active_wallet_id=data.get("activeWalletId") or "",
            wallets=[WalletIndexEntry.from_dict(w) for w in data.get("wallets", [])],
        )


@dataclass
class EncryptedWalletRecord:
    """
    One encrypted wallet file (``{walletId}.wallet.enc``).

    Binary fields are hex strings; sealed fields are ``ciphertext || tag``.
    """
    id: str
    name: str
    address: str
    encrypted_private_key: str
    iv: str
    salt: str
    created_at: int
    last_used: int
    encrypted_mnemonic: str | None = None
    mnemonic_iv: str | None = None
    kdf_version: int | None = None

    @property
    def has_mnemonic(self) -> bool:
        return bool(self.encrypted_mnemonic and self.mnemonic_iv)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "encryptedPrivateKey": self.encrypted_private_key,
        }
        if self.encrypted_mnemonic is not None:
            data["encryptedMnemonic"] = self.encrypted_mnemonic
        if self.mnemonic_iv is not None:
            data["mnemonicIv"] = self.mnemonic_iv
        data.update(
            {
                "iv": self.iv,
                "salt": self.salt,
                "createdAt": self.created_at,
                "lastUsed": self.last_used,
            }
        )
        if self.kdf_version is not None:
            data["kdfVersion"] = self.kdf_version
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EncryptedWalletRecord:
        return cls(
            id=data["id"],
            name=data["name"],
            address=data["address"],
            encrypted_private_key=data["encryptedPrivateKey"],
            iv=data["iv"],
            salt=data["salt"],
            created_at=int(data.get("createdAt") or 0),
            last_used=int(data.get("lastUsed") or 0),
            encrypted_mnemonic=data.get("encryptedMnemonic"),
            mnemonic_iv=data.get("mnemonicIv"),
            kdf_version=data.get("kdfVersion"),
        )


@dataclass
class WalletInfo:
    """Wallet summary returned to callers."""
    id: str
    name: str
    address: str
    balance: int
    balance_formatted: str
    is_active: bool


@dataclass
class WalletCreationResult(WalletInfo):
    """Creation result; the only place a plaintext mnemonic is returned."""
    mnemonic: str = field(default="", repr=False)
