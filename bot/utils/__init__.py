"""Bot utilities"""

from bot.utils.sensitive_messages import (
    SensitiveMessage,
    SensitivityLevels,
    SensitivityProfile,
    delete_now_keyboard,
    schedule_message_deletion,
    send_sensitive_message,
)
from bot.utils.wallet_messages import format_retry_after, format_wallet_error


__all__ = [
    "SensitiveMessage",
    "SensitivityLevels",
    "SensitivityProfile",
    "delete_now_keyboard",
    "format_retry_after",
    "format_wallet_error",
    "schedule_message_deletion",
    "send_sensitive_message",
]
