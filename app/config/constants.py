"""
Application constants.

Centralized constants for the custodial wallet subsystem.
"""

# ========================================================================
# KEY DERIVATION & ENCRYPTION
# ========================================================================

KDF_ITERATIONS = 100_000  # PBKDF2-HMAC-SHA512 rounds per wallet key
KDF_KEY_LENGTH = 32  # AES-256
SALT_LENGTH = 32
IV_LENGTH = 16
AUTH_TAG_LENGTH = 16
KDF_VERSION_SUBKEYS = 2  # Records sealed with HKDF sub-keys per secret

# HKDF info labels for per-secret sub-keys
SUBKEY_PRIVATE_KEY = b"wallet:private-key"
SUBKEY_MNEMONIC = b"wallet:mnemonic"

# Fixed payload signed by the integrity check
INTEGRITY_TEST_PAYLOAD = "wallet-integrity-check"

# ========================================================================
# WALLET STORE
# ========================================================================

WALLET_INDEX_FILENAME = "wallets.json"
WALLET_FILE_SUFFIX = ".wallet.enc"
WALLET_FILE_MODE = 0o600
USER_DIR_MODE = 0o700
WALLET_ID_LENGTH = 8
WALLET_NAME_MAX_LENGTH = 32
LEGACY_WALLET_NAME = "Wallet 1"

# BIP-39 / BIP-44
MNEMONIC_LANGUAGE = "english"
MNEMONIC_STRENGTH = 128  # 12 words
DEFAULT_DERIVATION_PATH = "m/44'/60'/0'/0/0"

# ========================================================================
# BLOCKCHAIN CONSTANTS
# ========================================================================

NATIVE_TRANSFER_GAS = 21_000  # Gas used by a plain value transfer
BLOCKCHAIN_EXECUTOR_TIMEOUT = 20.0  # Timeout for run_in_executor RPC calls
TX_CONFIRMATION_TIMEOUT = 120.0  # Bounded wait for transaction confirmation
TX_RECEIPT_POLL_INTERVAL = 2.0

# ========================================================================
# RATE LIMITING
# ========================================================================

# operation class -> (max_attempts, window_ms, cooldown_ms)
RATE_LIMIT_PROFILES: dict[str, tuple[int, int, int]] = {
    "export_key": (3, 60_000, 300_000),  # 3/min, 5 min cooldown
    "withdraw": (5, 60_000, 600_000),  # 5/min, 10 min cooldown
    "marketplace": (10, 60_000, 180_000),  # 10/min, 3 min cooldown
}
RATE_LIMIT_SWEEP_INTERVAL = 600.0  # seconds between stale-entry sweeps

# ========================================================================
# TELEGRAM BOT CONSTANTS
# ========================================================================

DELETE_MESSAGE_CALLBACK = "delete_this_message"
