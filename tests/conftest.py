"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from pathlib import Path

# Minimal environment for Settings; the bot token must look like a real one
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123456789:ABCdefGHIjklMNOpqrsTUVwxyz123456789")
os.environ.setdefault("WALLET_MASTER_KEY", "test-master-key-0123456789abcdef0123456789")
os.environ.setdefault("RPC_URL", "http://localhost:8545")
os.environ.setdefault("CHAIN_ID", "11155111")
os.environ.setdefault("EXPLORER_URL", "https://sepolia.etherscan.io")

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest
from unittest.mock import AsyncMock, MagicMock

from eth_utils import to_checksum_address


@pytest.fixture
def mock_bot():
    """Mock Telegram Bot."""
    bot = AsyncMock()
    bot.send_message = AsyncMock(return_value=MagicMock(message_id=100))
    bot.delete_message = AsyncMock(return_value=True)
    bot.answer_callback_query = AsyncMock()
    bot.session = AsyncMock()
    bot.session.close = AsyncMock()
    return bot


@pytest.fixture
def sample_wallet_address():
    """Sample valid checksummed address for testing."""
    return to_checksum_address("0x742d35cc6634c0532925a3b844bc9e7595f0beb0")


@pytest.fixture
def sample_transaction_hash():
    """Sample transaction hash for testing."""
    return "0x1234567890abcdef1234567890abcdef1234567890abcdef1234567890abcdef"
