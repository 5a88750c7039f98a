"""
Custodial wallet service.

Multi-wallet storage with per-wallet envelope encryption, legacy
single-wallet migration and the ``WalletManager`` façade.
"""

from app.services.wallet.manager import WalletManager
from app.services.wallet.models import (
    EncryptedWalletRecord,
    UserWalletIndex,
    WalletCreationResult,
    WalletIndexEntry,
    WalletInfo,
)
from app.services.wallet.signer import WalletSigner
from app.services.wallet.store import WalletStore


__all__ = [
    "EncryptedWalletRecord",
    "UserWalletIndex",
    "WalletCreationResult",
    "WalletIndexEntry",
    "WalletInfo",
    "WalletManager",
    "WalletSigner",
    "WalletStore",
]
