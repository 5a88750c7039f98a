"""Unit tests for WalletManager."""

import json

import pytest
from eth_account import Account
from eth_utils import to_checksum_address
from web3 import Web3
from web3.exceptions import Web3Exception

from app.services.blockchain.chain_client import FeeData
from app.services.wallet import WalletManager
from app.services.wallet.manager import account_from_mnemonic, format_ether
from app.services.wallet.models import EncryptedWalletRecord, WalletIndexEntry
from app.utils.encryption import KeyDerivationPool, derive_key, encrypt, new_salt
from app.utils.exceptions import (
    ChainUnavailableError,
    CorruptionError,
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)


USER_ID = 123456789
RECIPIENT = to_checksum_address("0x742d35cc6634c0532925a3b844bc9e7595f0beb0")


def _flip_first_byte(hex_value: str) -> str:
    data = bytearray(bytes.fromhex(hex_value))
    data[0] ^= 0x01
    return data.hex()


def _rewrite_record(store, user_id, wallet_id, **fields):
    path = store.get_wallet_path(user_id, wallet_id)
    data = json.loads(path.read_text())
    data.update(fields)
    path.write_text(json.dumps(data))


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


class TestCreateWallet:
    @pytest.mark.asyncio
    async def test_first_wallet(self, wallet_manager, wallet_store):
        result = await wallet_manager.create_wallet(USER_ID)

        assert len(result.mnemonic.split()) == 12
        assert account_from_mnemonic(result.mnemonic).address == result.address
        assert Web3.is_checksum_address(result.address)
        assert result.name == "Wallet 1"
        assert result.is_active is True
        assert result.balance == 0
        assert result.balance_formatted == "0"
        assert len(result.id) == 8

        index = wallet_store.load_index(USER_ID)
        assert index.active_wallet_id == result.id
        assert index.find(result.id).address == result.address
        assert wallet_store.wallet_exists(USER_ID, result.id)

    @pytest.mark.asyncio
    async def test_no_plaintext_on_disk(self, wallet_manager, wallet_store):
        result = await wallet_manager.create_wallet(USER_ID)
        private_key = await wallet_manager.export_private_key(USER_ID)

        contents = wallet_store.get_wallet_path(USER_ID, result.id).read_text()
        assert result.mnemonic not in contents
        assert private_key[2:] not in contents
        assert '"kdfVersion": 2' in contents

    @pytest.mark.asyncio
    async def test_mnemonic_hidden_from_repr(self, wallet_manager):
        result = await wallet_manager.create_wallet(USER_ID)
        assert result.mnemonic not in repr(result)

    @pytest.mark.asyncio
    async def test_second_wallet_keeps_active(self, wallet_manager):
        first = await wallet_manager.create_wallet(USER_ID)
        second = await wallet_manager.create_wallet(USER_ID)

        assert second.name == "Wallet 2"
        assert second.is_active is False
        assert second.address != first.address

        wallets = await wallet_manager.list_wallets(USER_ID)
        assert [w.id for w in wallets] == [first.id, second.id]
        assert [w.is_active for w in wallets] == [True, False]

    @pytest.mark.asyncio
    async def test_custom_name(self, wallet_manager):
        result = await wallet_manager.create_wallet(USER_ID, "  Savings ")
        assert result.name == "Savings"

    @pytest.mark.asyncio
    async def test_invalid_name_writes_nothing(self, wallet_manager, wallet_store):
        with pytest.raises(ValidationError):
            await wallet_manager.create_wallet(USER_ID, "x" * 33)
        assert not wallet_store.user_dir(USER_ID).exists()

    @pytest.mark.asyncio
    async def test_fresh_salts_and_ivs(self, wallet_manager, wallet_store):
        first = await wallet_manager.create_wallet(USER_ID)
        second = await wallet_manager.create_wallet(USER_ID)

        r1 = wallet_store.load_record(USER_ID, first.id)
        r2 = wallet_store.load_record(USER_ID, second.id)

        assert r1.salt != r2.salt
        assert len({r1.iv, r1.mnemonic_iv, r2.iv, r2.mnemonic_iv}) == 4
        assert len(bytes.fromhex(r1.salt)) == 32
        assert len(bytes.fromhex(r1.iv)) == 16

    @pytest.mark.asyncio
    async def test_balance_failure_does_not_fail_creation(self, wallet_manager, mock_chain):
        mock_chain.get_balance.side_effect = ConnectionError("rpc down")

        result = await wallet_manager.create_wallet(USER_ID)

        assert result.balance == 0


class TestCounts:
    @pytest.mark.asyncio
    async def test_empty_user(self, wallet_manager):
        assert await wallet_manager.has_wallet(USER_ID) is False
        assert await wallet_manager.get_wallet_count(USER_ID) == 0
        assert await wallet_manager.list_wallets(USER_ID) == []
        assert await wallet_manager.get_wallet(USER_ID) is None

    @pytest.mark.asyncio
    async def test_after_creation(self, wallet_manager):
        await wallet_manager.create_wallet(USER_ID)
        await wallet_manager.create_wallet(USER_ID)

        assert await wallet_manager.has_wallet(USER_ID) is True
        assert await wallet_manager.get_wallet_count(USER_ID) == 2


# ---------------------------------------------------------------------------
# Listing & selection
# ---------------------------------------------------------------------------


class TestListing:
    @pytest.mark.asyncio
    async def test_balances(self, wallet_manager, mock_chain):
        await wallet_manager.create_wallet(USER_ID)
        mock_chain.get_balance.return_value = 1_500_000_000_000_000_000

        wallets = await wallet_manager.list_wallets(USER_ID)

        assert wallets[0].balance == 1_500_000_000_000_000_000
        assert wallets[0].balance_formatted == "1.5"

    @pytest.mark.asyncio
    async def test_balance_failure_degrades_to_zero(
        self, wallet_manager, mock_chain, log_records
    ):
        await wallet_manager.create_wallet(USER_ID)
        await wallet_manager.create_wallet(USER_ID)
        mock_chain.get_balance.side_effect = TimeoutError("Blockchain operation timeout")

        wallets = await wallet_manager.list_wallets(USER_ID)

        assert [w.balance for w in wallets] == [0, 0]
        assert any("Failed to get balance" in r for r in log_records)

    @pytest.mark.asyncio
    async def test_get_wallet_returns_active(self, wallet_manager, mock_chain):
        first = await wallet_manager.create_wallet(USER_ID)
        await wallet_manager.create_wallet(USER_ID)
        mock_chain.get_balance.return_value = 10**17

        info = await wallet_manager.get_wallet(USER_ID)

        assert info.id == first.id
        assert info.is_active is True
        assert info.balance_formatted == "0.1"


class TestSetActive:
    @pytest.mark.asyncio
    async def test_switch(self, wallet_manager):
        await wallet_manager.create_wallet(USER_ID)
        second = await wallet_manager.create_wallet(USER_ID)

        await wallet_manager.set_active_wallet(USER_ID, second.id)

        wallets = await wallet_manager.list_wallets(USER_ID)
        assert [w.is_active for w in wallets] == [False, True]
        signer = await wallet_manager.get_signer(USER_ID)
        assert signer.address == second.address

    @pytest.mark.asyncio
    async def test_unknown_id_writes_nothing(self, wallet_manager, wallet_store):
        await wallet_manager.create_wallet(USER_ID)
        before = wallet_store.index_path(USER_ID).read_bytes()

        with pytest.raises(NotFoundError):
            await wallet_manager.set_active_wallet(USER_ID, "ffffffff")

        assert wallet_store.index_path(USER_ID).read_bytes() == before


class TestRename:
    @pytest.mark.asyncio
    async def test_updates_index_and_record(self, wallet_manager, wallet_store):
        result = await wallet_manager.create_wallet(USER_ID)

        await wallet_manager.rename_wallet(USER_ID, result.id, " Trading ")

        assert wallet_store.load_index(USER_ID).find(result.id).name == "Trading"
        assert wallet_store.load_record(USER_ID, result.id).name == "Trading"

    @pytest.mark.asyncio
    async def test_unknown_id_writes_nothing(self, wallet_manager, wallet_store):
        result = await wallet_manager.create_wallet(USER_ID)
        index_before = wallet_store.index_path(USER_ID).read_bytes()
        record_before = wallet_store.get_wallet_path(USER_ID, result.id).read_bytes()

        with pytest.raises(NotFoundError):
            await wallet_manager.rename_wallet(USER_ID, "ffffffff", "New name")

        assert wallet_store.index_path(USER_ID).read_bytes() == index_before
        assert wallet_store.get_wallet_path(USER_ID, result.id).read_bytes() == record_before

    @pytest.mark.asyncio
    async def test_empty_name_rejected(self, wallet_manager):
        result = await wallet_manager.create_wallet(USER_ID)

        with pytest.raises(ValidationError):
            await wallet_manager.rename_wallet(USER_ID, result.id, "   ")


# ---------------------------------------------------------------------------
# Secrets
# ---------------------------------------------------------------------------


class TestSigner:
    @pytest.mark.asyncio
    async def test_no_wallet(self, wallet_manager):
        with pytest.raises(NotFoundError, match="No wallet found for this user"):
            await wallet_manager.get_signer(USER_ID)

    @pytest.mark.asyncio
    async def test_unknown_wallet_id(self, wallet_manager):
        await wallet_manager.create_wallet(USER_ID)

        with pytest.raises(NotFoundError):
            await wallet_manager.get_signer(USER_ID, "ffffffff")

    @pytest.mark.asyncio
    async def test_unsafe_wallet_id(self, wallet_manager):
        await wallet_manager.create_wallet(USER_ID)

        with pytest.raises(ValidationError):
            await wallet_manager.get_signer(USER_ID, "../../etc/passwd")

    @pytest.mark.asyncio
    async def test_explicit_wallet_id(self, wallet_manager):
        await wallet_manager.create_wallet(USER_ID)
        second = await wallet_manager.create_wallet(USER_ID)

        signer = await wallet_manager.get_signer(USER_ID, second.id)

        assert signer.wallet_id == second.id
        assert signer.address == second.address

    @pytest.mark.asyncio
    async def test_signs_and_touches_last_used(self, wallet_manager, wallet_store):
        result = await wallet_manager.create_wallet(USER_ID)
        _rewrite_record(wallet_store, USER_ID, result.id, lastUsed=1)

        signer = await wallet_manager.get_signer(USER_ID)

        signed = signer.sign_message("hello")
        assert signer.verify_message("hello", signed.signature)
        assert not signer.verify_message("other", signed.signature)
        assert wallet_store.load_record(USER_ID, result.id).last_used > 1

    @pytest.mark.asyncio
    async def test_repr_masks_key(self, wallet_manager):
        await wallet_manager.create_wallet(USER_ID)
        signer = await wallet_manager.get_signer(USER_ID)

        assert signer.private_key not in repr(signer)
        assert signer.private_key[2:] not in repr(signer)

    @pytest.mark.asyncio
    async def test_balance_goes_through_chain(self, wallet_manager, mock_chain):
        await wallet_manager.create_wallet(USER_ID)
        mock_chain.get_balance.return_value = 42
        signer = await wallet_manager.get_signer(USER_ID)

        assert await signer.get_balance() == 42
        mock_chain.get_balance.assert_awaited_with(signer.address)


class TestCorruption:
    @pytest.mark.asyncio
    async def test_bit_flip_in_private_key(self, wallet_manager, wallet_store, log_records):
        result = await wallet_manager.create_wallet(USER_ID)
        record = wallet_store.load_record(USER_ID, result.id)
        _rewrite_record(
            wallet_store,
            USER_ID,
            result.id,
            encryptedPrivateKey=_flip_first_byte(record.encrypted_private_key),
        )

        with pytest.raises(CorruptionError):
            await wallet_manager.get_signer(USER_ID)
        with pytest.raises(CorruptionError):
            await wallet_manager.export_private_key(USER_ID)
        assert any("Decryption failed" in r for r in log_records)

    @pytest.mark.asyncio
    async def test_bit_flip_in_tag(self, wallet_manager, wallet_store):
        result = await wallet_manager.create_wallet(USER_ID)
        record = wallet_store.load_record(USER_ID, result.id)
        sealed = bytearray(bytes.fromhex(record.encrypted_private_key))
        sealed[-1] ^= 0x80
        _rewrite_record(wallet_store, USER_ID, result.id, encryptedPrivateKey=sealed.hex())

        with pytest.raises(CorruptionError):
            await wallet_manager.get_signer(USER_ID)

    @pytest.mark.asyncio
    async def test_bit_flip_in_mnemonic(self, wallet_manager, wallet_store):
        result = await wallet_manager.create_wallet(USER_ID)
        record = wallet_store.load_record(USER_ID, result.id)
        _rewrite_record(
            wallet_store,
            USER_ID,
            result.id,
            encryptedMnemonic=_flip_first_byte(record.encrypted_mnemonic),
        )

        with pytest.raises(CorruptionError):
            await wallet_manager.export_mnemonic(USER_ID)
        assert await wallet_manager.verify_wallet_integrity(USER_ID) is False

    @pytest.mark.asyncio
    async def test_wrong_master_secret(self, wallet_store, mock_chain, wallet_manager):
        await wallet_manager.create_wallet(USER_ID)
        other_kdf = KeyDerivationPool("another-master-secret-0123456789abcdef")
        other = WalletManager(store=wallet_store, chain=mock_chain, kdf=other_kdf)
        try:
            with pytest.raises(CorruptionError):
                await other.get_signer(USER_ID)
        finally:
            other.close()

    @pytest.mark.asyncio
    async def test_address_mismatch(self, wallet_manager, wallet_store):
        result = await wallet_manager.create_wallet(USER_ID)
        _rewrite_record(wallet_store, USER_ID, result.id, address=Account.create().address)

        with pytest.raises(CorruptionError):
            await wallet_manager.get_signer(USER_ID)

    @pytest.mark.asyncio
    async def test_salt_swapped_between_wallets(self, wallet_manager, wallet_store):
        first = await wallet_manager.create_wallet(USER_ID)
        second = await wallet_manager.create_wallet(USER_ID)
        other_salt = wallet_store.load_record(USER_ID, second.id).salt
        _rewrite_record(wallet_store, USER_ID, first.id, salt=other_salt)

        with pytest.raises(CorruptionError):
            await wallet_manager.get_signer(USER_ID, first.id)
        assert (await wallet_manager.get_signer(USER_ID, second.id)).address == second.address

    @pytest.mark.asyncio
    async def test_record_missing_for_indexed_wallet(self, wallet_manager, wallet_store):
        result = await wallet_manager.create_wallet(USER_ID)
        wallet_store.get_wallet_path(USER_ID, result.id).unlink()

        with pytest.raises(NotFoundError, match="Wallet file not found"):
            await wallet_manager.get_signer(USER_ID)


class TestExport:
    @pytest.mark.asyncio
    async def test_private_key_matches_mnemonic(self, wallet_manager):
        result = await wallet_manager.create_wallet(USER_ID)

        private_key = await wallet_manager.export_private_key(USER_ID)

        assert private_key.startswith("0x")
        assert Account.from_key(private_key).address == result.address
        assert Web3.to_hex(account_from_mnemonic(result.mnemonic).key) == private_key

    @pytest.mark.asyncio
    async def test_mnemonic(self, wallet_manager):
        result = await wallet_manager.create_wallet(USER_ID)
        assert await wallet_manager.export_mnemonic(USER_ID) == result.mnemonic

    @pytest.mark.asyncio
    async def test_record_without_version(
        self, wallet_manager, wallet_store, master_secret
    ):
        """Records sealed before sub-keys still open with the wallet key."""
        account = Account.create()
        wallet_id = "0ld0ne00"
        salt = new_salt()
        key = derive_key(master_secret, USER_ID, wallet_id, salt)
        iv, sealed = encrypt(Web3.to_hex(account.key), key)
        wallet_store.save_record(
            USER_ID,
            EncryptedWalletRecord(
                id=wallet_id,
                name="Old",
                address=account.address,
                encrypted_private_key=sealed.hex(),
                iv=iv.hex(),
                salt=salt.hex(),
                created_at=1,
                last_used=1,
            ),
        )
        index = wallet_store.load_index(USER_ID)
        index.wallets.append(WalletIndexEntry(wallet_id, "Old", account.address, 1))
        index.active_wallet_id = wallet_id
        wallet_store.save_index(USER_ID, index)

        assert await wallet_manager.export_private_key(USER_ID) == Web3.to_hex(account.key)
        assert await wallet_manager.export_mnemonic(USER_ID) is None


# ---------------------------------------------------------------------------
# Withdraw
# ---------------------------------------------------------------------------


class TestWithdraw:
    @pytest.mark.asyncio
    async def test_success(self, wallet_manager, mock_chain):
        result = await wallet_manager.create_wallet(USER_ID)
        mock_chain.get_balance.return_value = 10**19

        tx = await wallet_manager.withdraw(USER_ID, RECIPIENT.lower(), "0,5")

        assert tx.hash == "0x" + "ab" * 32
        account, to, value = mock_chain.send_transaction.await_args.args
        assert account.address == result.address
        assert to == RECIPIENT
        assert value == 5 * 10**17

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, wallet_manager, mock_chain):
        await wallet_manager.create_wallet(USER_ID)
        mock_chain.get_balance.return_value = 10**15

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await wallet_manager.withdraw(USER_ID, RECIPIENT, "1")

        required = 10**18 + 21_000 * 10**9
        assert exc_info.value.balance == 10**15
        assert exc_info.value.required == required
        assert str(exc_info.value) == (
            f"Insufficient balance. Have: {format_ether(10**15)} ETH, "
            f"Need: {format_ether(required)} ETH"
        )
        mock_chain.send_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exact_balance_is_enough(self, wallet_manager, mock_chain):
        await wallet_manager.create_wallet(USER_ID)
        mock_chain.get_balance.return_value = 10**18 + 21_000 * 10**9

        await wallet_manager.withdraw(USER_ID, RECIPIENT, "1")

        mock_chain.send_transaction.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_fee_uses_max_fee_per_gas(self, wallet_manager, mock_chain):
        await wallet_manager.create_wallet(USER_ID)
        mock_chain.get_balance.return_value = 10**18 + 21_000 * 10**9
        mock_chain.get_fee_data.return_value = FeeData(
            gas_price=10**9, max_fee_per_gas=3 * 10**9, max_priority_fee_per_gas=10**9
        )

        with pytest.raises(InsufficientBalanceError):
            await wallet_manager.withdraw(USER_ID, RECIPIENT, "1")
        mock_chain.send_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_inputs(self, wallet_manager, mock_chain):
        await wallet_manager.create_wallet(USER_ID)

        with pytest.raises(ValidationError):
            await wallet_manager.withdraw(USER_ID, "0x1234", "1")
        with pytest.raises(ValidationError):
            await wallet_manager.withdraw(USER_ID, RECIPIENT, "-1")
        mock_chain.send_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_wallet(self, wallet_manager):
        with pytest.raises(NotFoundError):
            await wallet_manager.withdraw(USER_ID, RECIPIENT, "1")

    @pytest.mark.asyncio
    async def test_mistyped_checksum_sends_nothing(self, wallet_manager, mock_chain):
        await wallet_manager.create_wallet(USER_ID)
        mock_chain.get_balance.return_value = 10**19

        with pytest.raises(ValidationError):
            await wallet_manager.withdraw(
                USER_ID, "0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb1", "0.1"
            )
        mock_chain.send_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["get_balance", "get_fee_data"])
    async def test_precheck_network_failure(self, wallet_manager, mock_chain, method):
        await wallet_manager.create_wallet(USER_ID)
        mock_chain.get_balance.return_value = 10**19
        getattr(mock_chain, method).side_effect = TimeoutError("Blockchain operation timeout")

        with pytest.raises(ChainUnavailableError) as exc_info:
            await wallet_manager.withdraw(USER_ID, RECIPIENT, "0.1")

        assert isinstance(exc_info.value.__cause__, TimeoutError)
        mock_chain.send_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_submission_rpc_failure(self, wallet_manager, mock_chain):
        await wallet_manager.create_wallet(USER_ID)
        mock_chain.get_balance.return_value = 10**19
        mock_chain.send_transaction.side_effect = Web3Exception("nonce too low")

        with pytest.raises(ChainUnavailableError):
            await wallet_manager.withdraw(USER_ID, RECIPIENT, "0.1")


# ---------------------------------------------------------------------------
# Integrity
# ---------------------------------------------------------------------------


class TestIntegrity:
    @pytest.mark.asyncio
    async def test_healthy_wallet(self, wallet_manager):
        await wallet_manager.create_wallet(USER_ID)
        assert await wallet_manager.verify_wallet_integrity(USER_ID) is True

    @pytest.mark.asyncio
    async def test_no_wallet(self, wallet_manager):
        assert await wallet_manager.verify_wallet_integrity(USER_ID) is False

    @pytest.mark.asyncio
    async def test_corrupted_key(self, wallet_manager, wallet_store):
        result = await wallet_manager.create_wallet(USER_ID)
        record = wallet_store.load_record(USER_ID, result.id)
        _rewrite_record(
            wallet_store,
            USER_ID,
            result.id,
            encryptedPrivateKey=_flip_first_byte(record.encrypted_private_key),
        )

        assert await wallet_manager.verify_wallet_integrity(USER_ID, result.id) is False

    @pytest.mark.asyncio
    async def test_does_not_touch_last_used(self, wallet_manager, wallet_store):
        result = await wallet_manager.create_wallet(USER_ID)
        _rewrite_record(wallet_store, USER_ID, result.id, lastUsed=1)

        await wallet_manager.verify_wallet_integrity(USER_ID)

        assert wallet_store.load_record(USER_ID, result.id).last_used == 1

    @pytest.mark.asyncio
    async def test_derives_wallet_key_once(self, wallet_manager, kdf_pool, monkeypatch):
        await wallet_manager.create_wallet(USER_ID)
        calls = []
        original = kdf_pool.derive

        async def counting_derive(*args):
            calls.append(args)
            return await original(*args)

        monkeypatch.setattr(kdf_pool, "derive", counting_derive)

        assert await wallet_manager.verify_wallet_integrity(USER_ID) is True
        assert len(calls) == 1
