"""Signer handle bound to a decrypted wallet and the injected chain client."""

from eth_account import Account
from eth_account.datastructures import SignedMessage
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from web3 import Web3

from app.services.blockchain.chain_client import ChainClient, TxHandle
from app.utils.security import mask_address, mask_secret


class WalletSigner:
    """
    Decrypted wallet able to sign and submit.

    Holds key material in memory; callers should drop it as soon as the
    operation is done.
    """

    def __init__(self, wallet_id: str, account: LocalAccount, chain: ChainClient) -> None:
        self.wallet_id = wallet_id
        self._account = account
        self._chain = chain

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def private_key(self) -> str:
        """0x-prefixed hex private key."""
        return Web3.to_hex(self._account.key)

    def sign_message(self, text: str) -> SignedMessage:
        """EIP-191 personal-sign ``text``."""
        return self._account.sign_message(encode_defunct(text=text))

    def verify_message(self, text: str, signature: bytes) -> bool:
        """Check that ``signature`` over ``text`` recovers to this wallet."""
        recovered = Account.recover_message(encode_defunct(text=text), signature=signature)
        return recovered.lower() == self.address.lower()

    async def get_balance(self) -> int:
        return await self._chain.get_balance(self.address)

    async def send_transaction(self, to: str, value: int) -> TxHandle:
        """Submit a native transfer of ``value`` wei."""
        return await self._chain.send_transaction(self._account, to, value)

    async def call(self, to: str, data: bytes) -> bytes:
        return await self._chain.call(to, data)

    def __repr__(self) -> str:
        return (
            f"WalletSigner(wallet_id={self.wallet_id!r}, "
            f"address={mask_address(self.address)!r}, "
            f"key={mask_secret(self.private_key)!r})"
        )
