"""
Sensitive message delivery.

Sends messages that carry secret material (private keys, recovery phrases,
balances, transaction details) with forwarding protection where the profile
asks for it, and deletes them after a delay.

Deletion is best effort and only a UX mitigation: it never replaces keeping
the secret out of logs and storage.
"""

import asyncio
from dataclasses import dataclass

from aiogram import Bot
from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup
from loguru import logger

from app.config.constants import DELETE_MESSAGE_CALLBACK
from app.utils.exceptions import SAFE_TO_IGNORE


@dataclass(frozen=True)
class SensitivityProfile:
    """How long a message lives and whether it can be forwarded/copied."""
    delete_after_seconds: int
    protect_content: bool = False


class SensitivityLevels:
    """Profiles by kind of content."""

    PRIVATE_KEY = SensitivityProfile(delete_after_seconds=30, protect_content=True)
    MNEMONIC = SensitivityProfile(delete_after_seconds=60, protect_content=True)
    BALANCE = SensitivityProfile(delete_after_seconds=60, protect_content=True)
    DEPOSIT_ADDRESS = SensitivityProfile(delete_after_seconds=120, protect_content=False)
    TRANSACTION = SensitivityProfile(delete_after_seconds=300, protect_content=False)


@dataclass
class SensitiveMessage:
    """A sent sensitive message and its pending deletion."""
    message_id: int
    delete_task: asyncio.Task


# Strong references so scheduled deletions are not garbage-collected
_pending_deletions: set[asyncio.Task] = set()


def delete_now_keyboard() -> InlineKeyboardMarkup:
    """Inline keyboard with a single "Delete Now" button."""
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="🗑️ Delete Now", callback_data=DELETE_MESSAGE_CALLBACK)]
        ]
    )


async def _delete_later(bot: Bot, chat_id: int, message_id: int, delay: float) -> None:
    await asyncio.sleep(delay)
    try:
        await bot.delete_message(chat_id=chat_id, message_id=message_id)
        logger.debug(f"Sensitive message {message_id} deleted in chat {chat_id}")
    except SAFE_TO_IGNORE as e:
        # Already deleted by the user, too old, or chat gone
        logger.warning(f"Could not delete message {message_id}: {e}")


def schedule_message_deletion(
    bot: Bot,
    chat_id: int,
    message_id: int,
    profile: SensitivityProfile,
) -> asyncio.Task:
    """
    Delete a message after ``profile.delete_after_seconds``.

    Args:
        bot: Bot instance
        chat_id: Chat holding the message
        message_id: Message to delete
        profile: Sensitivity profile

    Returns:
        The scheduled task (cancel it to keep the message)
    """
    task = asyncio.create_task(
        _delete_later(bot, chat_id, message_id, profile.delete_after_seconds)
    )
    _pending_deletions.add(task)
    task.add_done_callback(_pending_deletions.discard)
    return task


async def send_sensitive_message(
    bot: Bot,
    chat_id: int,
    text: str,
    profile: SensitivityProfile,
    reply_markup: InlineKeyboardMarkup | None = None,
) -> SensitiveMessage:
    """
    Send ``text`` as a self-destructing HTML message.

    Protected profiles disable forwarding and saving at send time.
    Send failures propagate; deletion failures are only logged.
    """
    message = await bot.send_message(
        chat_id=chat_id,
        text=text,
        parse_mode="HTML",
        protect_content=profile.protect_content,
        reply_markup=reply_markup or delete_now_keyboard(),
    )
    task = schedule_message_deletion(bot, chat_id, message.message_id, profile)
    return SensitiveMessage(message_id=message.message_id, delete_task=task)
