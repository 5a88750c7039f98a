"""
Wallet Store.

Filesystem layout (per user)::

    {wallets_root}/{user_id}/wallets.json
    {wallets_root}/{user_id}/{wallet_id}.wallet.enc
    {wallets_root}/{user_id}.wallet.enc        (legacy, pre-migration)

All writes go through the atomic writer. Reads never create anything.
"""

import json
import os
from pathlib import Path
from typing import Any

from loguru import logger

from app.config.constants import (
    USER_DIR_MODE,
    WALLET_FILE_MODE,
    WALLET_FILE_SUFFIX,
    WALLET_INDEX_FILENAME,
)
from app.services.wallet.models import (
    EncryptedWalletRecord,
    UserWalletIndex,
    now_ms,
)
from app.utils.atomic_io import atomic_write_json
from app.utils.exceptions import CorruptionError, NotFoundError
from app.utils.validation import validate_user_id, validate_wallet_id


class WalletStore:
    """
    Owns the per-user index file and the encrypted wallet records.
    """

    def __init__(self, wallets_root: Path) -> None:
        """
        Initialize wallet store.

        Args:
            wallets_root: Root directory for all user wallet data
        """
        self.wallets_root = Path(wallets_root)
        self.wallets_root.mkdir(parents=True, exist_ok=True, mode=USER_DIR_MODE)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def user_dir(self, user_id: int | str, create: bool = False) -> Path:
        """Return the user's directory, creating it owner-only on demand."""
        path = self.wallets_root / validate_user_id(user_id)
        if create and not path.exists():
            path.mkdir(parents=True, exist_ok=True, mode=USER_DIR_MODE)
            # mkdir's mode is filtered by the umask
            os.chmod(path, USER_DIR_MODE)
        return path

    def index_path(self, user_id: int | str) -> Path:
        return self.user_dir(user_id) / WALLET_INDEX_FILENAME

    def get_wallet_path(self, user_id: int | str, wallet_id: str) -> Path:
        """
        Path of one encrypted wallet record.

        Raises:
            ValidationError: wallet_id has characters outside [A-Za-z0-9-]
        """
        wallet_id = validate_wallet_id(wallet_id)
        return self.user_dir(user_id) / f"{wallet_id}{WALLET_FILE_SUFFIX}"

    def legacy_wallet_path(self, user_id: int | str) -> Path:
        return self.wallets_root / f"{validate_user_id(user_id)}{WALLET_FILE_SUFFIX}"

    # ------------------------------------------------------------------
    # Index
    # ------------------------------------------------------------------

    def load_index(self, user_id: int | str) -> UserWalletIndex:
        """Load the user's index, or an empty one if none exists yet."""
        path = self.index_path(user_id)
        if not path.exists():
            return UserWalletIndex()
        return UserWalletIndex.from_dict(json.loads(path.read_text(encoding="utf-8")))

    def save_index(self, user_id: int | str, index: UserWalletIndex) -> None:
        """Persist the user's index atomically."""
        self.user_dir(user_id, create=True)
        atomic_write_json(self.index_path(user_id), index.to_dict(), WALLET_FILE_MODE)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def wallet_exists(self, user_id: int | str, wallet_id: str) -> bool:
        return self.get_wallet_path(user_id, wallet_id).exists()

    def load_record(self, user_id: int | str, wallet_id: str) -> EncryptedWalletRecord:
        """
        Load one encrypted record.

        Raises:
            NotFoundError: No record file for this wallet
            CorruptionError: Record file is not a valid wallet record
        """
        path = self.get_wallet_path(user_id, wallet_id)
        if not path.exists():
            raise NotFoundError("Wallet file not found")
        try:
            return EncryptedWalletRecord.from_dict(
                json.loads(path.read_text(encoding="utf-8"))
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Malformed wallet record {wallet_id} for user {user_id}: {type(e).__name__}")
            raise CorruptionError("Wallet record is malformed") from None

    def list_record_ids(self, user_id: int | str) -> list[str]:
        """Ids of every record file in the user's directory, indexed or not."""
        path = self.user_dir(user_id)
        if not path.is_dir():
            return []
        return sorted(
            p.name[: -len(WALLET_FILE_SUFFIX)]
            for p in path.iterdir()
            if p.is_file() and p.name.endswith(WALLET_FILE_SUFFIX) and not p.name.startswith(".")
        )

    def save_record(self, user_id: int | str, record: EncryptedWalletRecord) -> None:
        """Persist one encrypted record atomically."""
        self.user_dir(user_id, create=True)
        atomic_write_json(
            self.get_wallet_path(user_id, record.id), record.to_dict(), WALLET_FILE_MODE
        )

    def touch_last_used(
        self, user_id: int | str, record: EncryptedWalletRecord
    ) -> EncryptedWalletRecord:
        """Stamp ``last_used`` and rewrite the record atomically."""
        record.last_used = now_ms()
        self.save_record(user_id, record)
        return record

    # ------------------------------------------------------------------
    # Legacy single-wallet file
    # ------------------------------------------------------------------

    def has_legacy(self, user_id: int | str) -> bool:
        return self.legacy_wallet_path(user_id).exists()

    def load_legacy(self, user_id: int | str) -> dict[str, Any]:
        """Read the raw legacy record."""
        path = self.legacy_wallet_path(user_id)
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except ValueError:
            raise CorruptionError("Legacy wallet record is malformed") from None

    def remove_legacy(self, user_id: int | str) -> None:
        self.legacy_wallet_path(user_id).unlink()
