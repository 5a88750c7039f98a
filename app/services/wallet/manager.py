"""
Wallet Manager.

Public wallet operations for the bot: create, list, resolve a signer,
export, withdraw, rename, activate and integrity-check. Every operation that
reads the index first runs the legacy migration for the user.

Mutations persist before returning. Errors on mutation paths are always
typed (see ``app.utils.exceptions``); only balance enrichment degrades to
zero on failure.
"""

import asyncio

from eth_account import Account
from eth_account.signers.local import LocalAccount
from loguru import logger
from mnemonic import Mnemonic
from web3 import Web3

from app.config.constants import (
    DEFAULT_DERIVATION_PATH,
    INTEGRITY_TEST_PAYLOAD,
    MNEMONIC_LANGUAGE,
    MNEMONIC_STRENGTH,
    NATIVE_TRANSFER_GAS,
)
from app.services.blockchain.chain_client import ChainClient, TxHandle
from app.services.wallet.cipher import WalletCipher
from app.services.wallet.migrator import LegacyWalletMigrator, new_wallet_id
from app.services.wallet.models import (
    EncryptedWalletRecord,
    UserWalletIndex,
    WalletCreationResult,
    WalletIndexEntry,
    WalletInfo,
    now_ms,
)
from app.services.wallet.signer import WalletSigner
from app.services.wallet.store import WalletStore
from app.utils.encryption import KeyDerivationPool
from app.utils.exceptions import (
    MUST_LOG,
    ChainUnavailableError,
    CorruptionError,
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)
from app.utils.security import mask_address, mask_tx_hash
from app.utils.validation import (
    parse_amount,
    validate_address,
    validate_wallet_id,
    validate_wallet_name,
)


def format_ether(wei: int) -> str:
    """Human-readable ether amount."""
    return str(Web3.from_wei(wei, "ether"))


def account_from_mnemonic(phrase: str) -> LocalAccount:
    """Account at the default BIP-44 path of ``phrase``."""
    Account.enable_unaudited_hdwallet_features()
    return Account.from_mnemonic(phrase, account_path=DEFAULT_DERIVATION_PATH)


def generate_account() -> tuple[LocalAccount, str]:
    """Fresh random 12-word phrase and its account."""
    phrase = Mnemonic(MNEMONIC_LANGUAGE).generate(strength=MNEMONIC_STRENGTH)
    return account_from_mnemonic(phrase), phrase


class WalletManager:
    """Orchestrates store, migrator, cipher and chain client."""

    def __init__(
        self,
        store: WalletStore,
        chain: ChainClient,
        kdf: KeyDerivationPool,
    ) -> None:
        """
        Initialize wallet manager.

        Args:
            store: Wallet store rooted at the wallets directory
            chain: Chain client used for balances and transfers
            kdf: Key derivation pool holding the master secret
        """
        self.store = store
        self.chain = chain
        self.kdf = kdf
        self.cipher = WalletCipher(kdf)
        self.migrator = LegacyWalletMigrator(store, self.cipher)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load_index(self, user_id: int | str) -> UserWalletIndex:
        await self.migrator.migrate(user_id)
        return self.store.load_index(user_id)

    async def _balance_or_zero(self, address: str) -> int:
        try:
            return await self.chain.get_balance(address)
        except Exception as e:
            logger.warning(f"Failed to get balance for {mask_address(address)}: {e}")
            return 0

    @staticmethod
    def _info(entry: WalletIndexEntry, balance: int, active_id: str) -> WalletInfo:
        return WalletInfo(
            id=entry.id,
            name=entry.name,
            address=entry.address,
            balance=balance,
            balance_formatted=format_ether(balance),
            is_active=entry.id == active_id,
        )

    async def _resolve_record(
        self, user_id: int | str, wallet_id: str | None
    ) -> EncryptedWalletRecord:
        index = await self._load_index(user_id)
        target_id = wallet_id or index.active_wallet_id
        if not target_id:
            raise NotFoundError("No wallet found for this user")
        validate_wallet_id(target_id)
        if index.find(target_id) is None:
            raise NotFoundError(f"Wallet {target_id} not found")
        return self.store.load_record(user_id, target_id)

    async def _open_private_key(
        self, user_id: int | str, record: EncryptedWalletRecord
    ) -> str:
        try:
            return await self.cipher.open_private_key(user_id, record)
        except CorruptionError:
            logger.error(f"Decryption failed for wallet {record.id} of user {user_id}")
            raise

    # ------------------------------------------------------------------
    # Wallet lifecycle
    # ------------------------------------------------------------------

    async def create_wallet(
        self, user_id: int | str, name: str | None = None
    ) -> WalletCreationResult:
        """
        Create a new wallet for the user.

        The first wallet becomes active. The returned mnemonic is the only
        time the phrase leaves this class in plaintext.
        """
        index = await self._load_index(user_id)
        wallet_name = (
            validate_wallet_name(name) if name is not None
            else f"Wallet {len(index.wallets) + 1}"
        )
        wallet_id = new_wallet_id()
        while index.find(wallet_id) is not None:
            wallet_id = new_wallet_id()

        account, mnemonic = await asyncio.to_thread(generate_account)
        created_at = now_ms()

        record = await self.cipher.seal(
            user_id=user_id,
            wallet_id=wallet_id,
            name=wallet_name,
            address=account.address,
            private_key=Web3.to_hex(account.key),
            mnemonic=mnemonic,
            created_at=created_at,
            last_used=created_at,
        )
        self.store.save_record(user_id, record)

        entry = WalletIndexEntry(
            id=wallet_id,
            name=wallet_name,
            address=account.address,
            created_at=created_at,
        )
        index.wallets.append(entry)
        if not index.active_wallet_id:
            index.active_wallet_id = wallet_id
        self.store.save_index(user_id, index)

        logger.info(
            f"Wallet {wallet_id} created for user {user_id}: {mask_address(account.address)}"
        )

        balance = await self._balance_or_zero(account.address)
        info = self._info(entry, balance, index.active_wallet_id)
        return WalletCreationResult(
            id=info.id,
            name=info.name,
            address=info.address,
            balance=info.balance,
            balance_formatted=info.balance_formatted,
            is_active=info.is_active,
            mnemonic=mnemonic,
        )

    async def has_wallet(self, user_id: int | str) -> bool:
        index = await self._load_index(user_id)
        return len(index.wallets) > 0

    async def get_wallet_count(self, user_id: int | str) -> int:
        index = await self._load_index(user_id)
        return len(index.wallets)

    # ------------------------------------------------------------------
    # Listing & selection
    # ------------------------------------------------------------------

    async def list_wallets(self, user_id: int | str) -> list[WalletInfo]:
        """All wallets with best-effort balances; the active one is flagged."""
        index = await self._load_index(user_id)
        balances = await asyncio.gather(
            *(self._balance_or_zero(w.address) for w in index.wallets)
        )
        return [
            self._info(entry, balance, index.active_wallet_id)
            for entry, balance in zip(index.wallets, balances)
        ]

    async def get_wallet(self, user_id: int | str) -> WalletInfo | None:
        """Active wallet with balance, or None if the user has none."""
        index = await self._load_index(user_id)
        entry = index.find(index.active_wallet_id) if index.active_wallet_id else None
        if entry is None:
            return None
        balance = await self._balance_or_zero(entry.address)
        return self._info(entry, balance, index.active_wallet_id)

    async def set_active_wallet(self, user_id: int | str, wallet_id: str) -> None:
        """
        Make ``wallet_id`` the active wallet.

        Raises:
            NotFoundError: Unknown wallet id; nothing is written
        """
        index = await self._load_index(user_id)
        if index.find(wallet_id) is None:
            raise NotFoundError(f"Wallet {wallet_id} not found")
        index.active_wallet_id = wallet_id
        self.store.save_index(user_id, index)
        logger.info(f"User {user_id} switched active wallet to {wallet_id}")

    async def rename_wallet(
        self, user_id: int | str, wallet_id: str, new_name: str
    ) -> None:
        """
        Rename a wallet in the index and in its record.

        Raises:
            ValidationError: Empty or too long name
            NotFoundError: Unknown wallet id; nothing is written
        """
        new_name = validate_wallet_name(new_name)
        index = await self._load_index(user_id)
        entry = index.find(wallet_id)
        if entry is None:
            raise NotFoundError(f"Wallet {wallet_id} not found")

        entry.name = new_name
        self.store.save_index(user_id, index)

        if self.store.wallet_exists(user_id, wallet_id):
            record = self.store.load_record(user_id, wallet_id)
            record.name = new_name
            self.store.save_record(user_id, record)
        logger.info(f"Wallet {wallet_id} of user {user_id} renamed")

    # ------------------------------------------------------------------
    # Secret-bearing operations
    # ------------------------------------------------------------------

    async def get_signer(
        self, user_id: int | str, wallet_id: str | None = None
    ) -> WalletSigner:
        """
        Decrypt a wallet and return a signer bound to the chain client.

        Raises:
            NotFoundError: User has no wallet, or the id is unknown
            CorruptionError: Authenticated decryption failed
        """
        record = await self._resolve_record(user_id, wallet_id)
        private_key = await self._open_private_key(user_id, record)
        self.store.touch_last_used(user_id, record)

        signer = WalletSigner(record.id, Account.from_key(private_key), self.chain)
        logger.debug(f"Signer resolved for user {user_id}: {mask_address(signer.address)}")
        return signer

    async def export_private_key(
        self, user_id: int | str, wallet_id: str | None = None
    ) -> str:
        signer = await self.get_signer(user_id, wallet_id)
        return signer.private_key

    async def export_mnemonic(
        self, user_id: int | str, wallet_id: str | None = None
    ) -> str | None:
        """Decrypt the recovery phrase; None for wallets stored without one."""
        record = await self._resolve_record(user_id, wallet_id)
        try:
            return await self.cipher.open_mnemonic(user_id, record)
        except CorruptionError:
            logger.error(f"Mnemonic decryption failed for wallet {record.id} of user {user_id}")
            raise

    async def withdraw(
        self, user_id: int | str, to: str, amount: str
    ) -> TxHandle:
        """
        Send ``amount`` ether from the active wallet to ``to``.

        Fails closed with InsufficientBalanceError before submitting when the
        balance cannot cover amount plus the estimated fee.

        Returns:
            Pending transaction handle; confirmation is awaited by the caller

        Raises:
            ValidationError: Bad recipient or amount
            InsufficientBalanceError: Balance below amount plus fee
            ChainUnavailableError: RPC failure before the transaction was accepted
        """
        recipient = validate_address(to)
        value = parse_amount(amount)
        signer = await self.get_signer(user_id)

        try:
            balance = await self.chain.get_balance(signer.address)
            fees = await self.chain.get_fee_data()
        except MUST_LOG as e:
            logger.error(f"Withdrawal pre-check failed for user {user_id}: {e}")
            raise ChainUnavailableError("Could not read balance or fees from the network") from e

        fee_rate = fees.max_fee_per_gas or fees.gas_price or 0
        required = value + fee_rate * NATIVE_TRANSFER_GAS

        if balance < required:
            raise InsufficientBalanceError(
                f"Insufficient balance. Have: {format_ether(balance)} ETH, "
                f"Need: {format_ether(required)} ETH",
                balance=balance,
                required=required,
            )

        try:
            tx = await signer.send_transaction(recipient, value)
        except MUST_LOG as e:
            logger.error(f"Withdrawal submission failed for user {user_id}: {e}")
            raise ChainUnavailableError("Could not submit the transaction") from e
        logger.info(
            f"Withdrawal submitted for user {user_id}: {format_ether(value)} ETH "
            f"to {mask_address(recipient)}, tx={mask_tx_hash(tx.hash)}"
        )
        return tx

    async def verify_wallet_integrity(
        self, user_id: int | str, wallet_id: str | None = None
    ) -> bool:
        """
        Pre-flight check before value-moving calls.

        Decrypts the private key (and mnemonic when stored), checks both map
        to the stored address, and signs a fixed payload. Does not touch
        ``lastUsed``.

        Returns:
            True when the master secret and stored ciphertext are consistent
        """
        try:
            record = await self._resolve_record(user_id, wallet_id)
            wallet_key = await self.cipher.wallet_key(user_id, record)
            private_key = await self.cipher.open_private_key(user_id, record, wallet_key)
            signer = WalletSigner(record.id, Account.from_key(private_key), self.chain)

            signed = signer.sign_message(INTEGRITY_TEST_PAYLOAD)
            if not signer.verify_message(INTEGRITY_TEST_PAYLOAD, signed.signature):
                logger.error(f"Integrity signature mismatch for wallet {record.id}")
                return False

            mnemonic = await self.cipher.open_mnemonic(user_id, record, wallet_key)
            if mnemonic is not None:
                derived = await asyncio.to_thread(account_from_mnemonic, mnemonic)
                if derived.address.lower() != record.address.lower():
                    logger.error(f"Mnemonic does not match address for wallet {record.id}")
                    return False
        except (NotFoundError, CorruptionError, ValidationError) as e:
            logger.warning(f"Wallet integrity check failed for user {user_id}: {e}")
            return False
        return True

    def close(self) -> None:
        """Release worker pools."""
        self.kdf.cleanup()
