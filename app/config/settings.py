"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from pathlib import Path

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.config.constants import (
    RATE_LIMIT_SWEEP_INTERVAL,
    TX_CONFIRMATION_TIMEOUT,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Telegram Bot
    telegram_bot_token: str

    # Wallet storage
    wallets_root: Path = Path("data/wallets")
    wallet_master_key: SecretStr = Field(
        ...,
        description="Master secret used to derive every wallet encryption key",
    )
    kdf_max_workers: int = Field(
        default=2, ge=1, description="Threads available for PBKDF2 derivation"
    )

    # Blockchain
    rpc_url: str
    chain_id: int | None = None
    explorer_url: str = "https://etherscan.io"
    tx_confirmations: int = Field(default=1, ge=1)
    tx_confirmation_timeout: float = Field(
        default=TX_CONFIRMATION_TIMEOUT,
        gt=0,
        description="Seconds to wait for a transaction receipt",
    )

    # Rate limiting
    rate_limit_sweep_interval: float = Field(
        default=RATE_LIMIT_SWEEP_INTERVAL, gt=0
    )

    # Application
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("wallet_master_key")
    @classmethod
    def validate_master_key(cls, v: SecretStr) -> SecretStr:
        """Reject master keys too short to resist brute force."""
        if len(v.get_secret_value()) < 32:
            raise ValueError(
                "WALLET_MASTER_KEY must be at least 32 characters "
                "(generate one with: openssl rand -hex 32)"
            )
        return v

    @field_validator("rpc_url")
    @classmethod
    def validate_rpc_url(cls, v: str) -> str:
        """Validate RPC endpoint URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("RPC_URL must start with http:// or https://")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize log level name."""
        return v.upper()


# Global settings instance
settings = Settings()
