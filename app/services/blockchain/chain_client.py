"""
Chain client capability.

The wallet subsystem only needs four things from a chain backend: balance,
fee data, native transfers and read-only calls. ``ChainClient`` is that
interface; ``Web3ChainClient`` implements it on top of web3.py, running the
synchronous RPC calls in a thread pool with timeouts.
"""

import asyncio
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Protocol

from eth_account.signers.local import LocalAccount
from eth_utils import to_checksum_address
from loguru import logger
from web3 import Web3
from web3.exceptions import TransactionNotFound, Web3Exception

from app.config.constants import (
    BLOCKCHAIN_EXECUTOR_TIMEOUT,
    NATIVE_TRANSFER_GAS,
    TX_CONFIRMATION_TIMEOUT,
    TX_RECEIPT_POLL_INTERVAL,
)
from app.utils.exceptions import MUST_LOG, NetworkTimeoutError
from app.utils.security import mask_tx_hash


@dataclass(frozen=True)
class FeeData:
    """Current network fee rates in wei."""
    gas_price: int | None
    max_fee_per_gas: int | None = None
    max_priority_fee_per_gas: int | None = None


@dataclass(frozen=True)
class TxReceipt:
    """Mined transaction summary."""
    tx_hash: str
    block_number: int
    status: int
    gas_used: int


class TxHandle(Protocol):
    """A submitted transaction whose confirmation can be awaited."""

    hash: str

    async def wait(
        self, confirmations: int = 1, timeout: float = TX_CONFIRMATION_TIMEOUT
    ) -> TxReceipt: ...


class ChainClient(Protocol):
    """Chain operations consumed by the wallet subsystem."""

    async def get_balance(self, address: str) -> int: ...

    async def get_fee_data(self) -> FeeData: ...

    async def send_transaction(
        self, account: LocalAccount, to: str, value: int
    ) -> TxHandle: ...

    async def call(self, to: str, data: bytes) -> bytes: ...


class Web3PendingTransaction:
    """Pending transaction submitted through ``Web3ChainClient``."""

    def __init__(self, client: "Web3ChainClient", tx_hash: str) -> None:
        self.client = client
        self.hash = tx_hash

    async def wait(
        self, confirmations: int = 1, timeout: float = TX_CONFIRMATION_TIMEOUT
    ) -> TxReceipt:
        """
        Wait until the transaction has ``confirmations`` blocks on top.

        Raises:
            NetworkTimeoutError: Not observed within ``timeout`` seconds.
                The transaction may still be mined.
        """
        try:
            return await asyncio.wait_for(self._poll(confirmations), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Transaction {mask_tx_hash(self.hash)} unconfirmed after {timeout:.0f}s"
            )
            raise NetworkTimeoutError(self.hash, timeout) from None

    async def _poll(self, confirmations: int) -> TxReceipt:
        w3 = self.client.w3
        while True:
            try:
                receipt = await self.client.run(
                    lambda: w3.eth.get_transaction_receipt(self.hash)
                )
                head = await self.client.run(lambda: w3.eth.block_number)
                if head - receipt["blockNumber"] + 1 >= confirmations:
                    return TxReceipt(
                        tx_hash=self.hash,
                        block_number=receipt["blockNumber"],
                        status=receipt["status"],
                        gas_used=receipt["gasUsed"],
                    )
            except TransactionNotFound:
                pass
            except MUST_LOG as e:
                logger.debug(f"Receipt poll failed for {mask_tx_hash(self.hash)}: {e}")
            await asyncio.sleep(TX_RECEIPT_POLL_INTERVAL)


class Web3ChainClient:
    """
    web3.py-backed chain client.

    Handles:
    - Thread pool execution of sync Web3 calls
    - Per-call timeouts
    - EIP-1559 fees with legacy gas price fallback
    """

    def __init__(
        self,
        rpc_url: str,
        chain_id: int | None = None,
        max_workers: int = 4,
        timeout: float = BLOCKCHAIN_EXECUTOR_TIMEOUT,
    ) -> None:
        """
        Initialize chain client.

        Args:
            rpc_url: HTTP JSON-RPC endpoint
            chain_id: Chain id; read from the node when None
            max_workers: Maximum thread pool workers
            timeout: Seconds allowed per RPC call
        """
        self.w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self.chain_id = chain_id
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="web3",
        )

    async def run(self, sync_func: Callable[[], Any]) -> Any:
        """Run a synchronous Web3 call in the pool with a timeout."""
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(self._executor, sync_func),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error("Timeout in blockchain operation")
            raise TimeoutError("Blockchain operation timeout") from None

    async def get_balance(self, address: str) -> int:
        checksum = to_checksum_address(address)
        return int(await self.run(lambda: self.w3.eth.get_balance(checksum)))

    async def get_fee_data(self) -> FeeData:
        def _fees() -> FeeData:
            gas_price = self.w3.eth.gas_price
            try:
                base_fee = self.w3.eth.get_block("latest").get("baseFeePerGas")
            except Web3Exception as e:
                logger.warning(f"Failed to read base fee, using legacy gas price: {e}")
                base_fee = None
            if base_fee is None:
                return FeeData(gas_price=gas_price)
            max_priority = Web3.to_wei(1.5, "gwei")
            return FeeData(
                gas_price=gas_price,
                max_fee_per_gas=base_fee * 2 + max_priority,
                max_priority_fee_per_gas=max_priority,
            )

        return await self.run(_fees)

    async def send_transaction(
        self, account: LocalAccount, to: str, value: int
    ) -> Web3PendingTransaction:
        """Sign and broadcast a native-token transfer."""
        fees = await self.get_fee_data()

        def _send() -> str:
            tx: dict[str, Any] = {
                "to": to_checksum_address(to),
                "value": value,
                "nonce": self.w3.eth.get_transaction_count(account.address, "pending"),
                "chainId": self.chain_id or self.w3.eth.chain_id,
                "gas": NATIVE_TRANSFER_GAS,
            }
            if fees.max_fee_per_gas is not None:
                tx["maxFeePerGas"] = fees.max_fee_per_gas
                tx["maxPriorityFeePerGas"] = fees.max_priority_fee_per_gas
            else:
                tx["gasPrice"] = fees.gas_price
            signed = account.sign_transaction(tx)
            return Web3.to_hex(self.w3.eth.send_raw_transaction(signed.raw_transaction))

        tx_hash = await self.run(_send)
        logger.info(f"Transaction broadcast: {mask_tx_hash(tx_hash)}")
        return Web3PendingTransaction(self, tx_hash)

    async def call(self, to: str, data: bytes) -> bytes:
        checksum = to_checksum_address(to)
        return bytes(await self.run(lambda: self.w3.eth.call({"to": checksum, "data": data})))

    def cleanup(self) -> None:
        """Clean up thread pool executor."""
        self._executor.shutdown(wait=True)
