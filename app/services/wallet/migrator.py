"""
Legacy Migrator.

Upgrades the single-wallet layout (``{root}/{user}.wallet.enc``) to the
multi-wallet layout. Runs inline before every index-dependent operation and
is a no-op once the legacy file is gone.
"""

import uuid

from loguru import logger

from app.config.constants import LEGACY_WALLET_NAME, WALLET_ID_LENGTH
from app.services.wallet.cipher import WalletCipher
from app.services.wallet.models import (
    EncryptedWalletRecord,
    UserWalletIndex,
    WalletIndexEntry,
    now_ms,
)
from app.services.wallet.store import WalletStore
from app.utils.exceptions import CorruptionError, NotFoundError, ValidationError
from app.utils.security import mask_address


def new_wallet_id() -> str:
    """Short random wallet id (8 hex characters)."""
    return uuid.uuid4().hex[:WALLET_ID_LENGTH]


class LegacyWalletMigrator:
    """Moves a legacy single-wallet file into the multi-wallet layout."""

    def __init__(self, store: WalletStore, cipher: WalletCipher) -> None:
        self.store = store
        self.cipher = cipher

    async def migrate(self, user_id: int | str) -> str | None:
        """
        Migrate the user's legacy wallet if one exists.

        Steps: reseal under a fresh wallet id, write the record, add it to
        the index (active when nothing else is), then delete the legacy
        file. A legacy file that fails authentication raises
        CorruptionError and stays where it is.

        Returns:
            The new wallet id, or None when there was nothing to migrate
        """
        if not self.store.has_legacy(user_id):
            return None

        raw = self.store.load_legacy(user_id)
        address = raw.get("address", "")
        index = self.store.load_index(user_id)

        # An earlier run may have stopped between saving the index and unlinking
        existing = next(
            (w for w in index.wallets if w.address.lower() == address.lower()), None
        )
        if existing is not None and self.store.wallet_exists(user_id, existing.id):
            self.store.remove_legacy(user_id)
            logger.info(
                f"Legacy wallet for user {user_id} already migrated as {existing.id}, "
                "removed leftover file"
            )
            return existing.id

        # Or between writing the record and saving the index
        orphan = self._find_orphan(user_id, index, address)
        if orphan is not None:
            self._add_to_index(user_id, index, orphan.id, orphan.name, address, orphan.created_at)
            self.store.remove_legacy(user_id)
            logger.info(
                f"Legacy wallet for user {user_id} recovered from unindexed record {orphan.id}"
            )
            return orphan.id

        private_key, mnemonic = await self.cipher.open_legacy(user_id, raw)

        wallet_id = new_wallet_id()
        created_at = int(raw.get("createdAt") or now_ms())
        record = await self.cipher.seal(
            user_id=user_id,
            wallet_id=wallet_id,
            name=LEGACY_WALLET_NAME,
            address=address,
            private_key=private_key,
            mnemonic=mnemonic,
            created_at=created_at,
            last_used=int(raw.get("lastUsed") or created_at),
        )
        self.store.save_record(user_id, record)

        self._add_to_index(user_id, index, wallet_id, LEGACY_WALLET_NAME, address, created_at)

        self.store.remove_legacy(user_id)
        logger.info(
            f"Migrated legacy wallet {mask_address(address)} for user {user_id} "
            f"to {wallet_id}"
        )
        return wallet_id

    def _find_orphan(
        self, user_id: int | str, index: UserWalletIndex, address: str
    ) -> EncryptedWalletRecord | None:
        """Record on disk for ``address`` that the index does not list."""
        indexed = {w.id for w in index.wallets}
        for wallet_id in self.store.list_record_ids(user_id):
            if wallet_id in indexed:
                continue
            try:
                record = self.store.load_record(user_id, wallet_id)
            except (NotFoundError, CorruptionError, ValidationError) as e:
                logger.warning(f"Skipping unreadable record {wallet_id} of user {user_id}: {e}")
                continue
            if record.address.lower() == address.lower():
                return record
        return None

    def _add_to_index(
        self,
        user_id: int | str,
        index: UserWalletIndex,
        wallet_id: str,
        name: str,
        address: str,
        created_at: int,
    ) -> None:
        index.wallets.append(
            WalletIndexEntry(
                id=wallet_id,
                name=name,
                address=address,
                created_at=created_at,
            )
        )
        if not index.active_wallet_id:
            index.active_wallet_id = wallet_id
        self.store.save_index(user_id, index)
