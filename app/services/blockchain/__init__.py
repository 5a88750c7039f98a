"""
Blockchain services module.

Chain access for the wallet subsystem goes through the ``ChainClient``
capability; ``Web3ChainClient`` is the web3.py implementation.
"""

from .chain_client import (
    ChainClient,
    FeeData,
    TxHandle,
    TxReceipt,
    Web3ChainClient,
    Web3PendingTransaction,
)


__all__ = [
    "ChainClient",
    "FeeData",
    "TxHandle",
    "TxReceipt",
    "Web3ChainClient",
    "Web3PendingTransaction",
]
