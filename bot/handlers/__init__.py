"""
Handlers.

Bot command and callback handlers.
"""

from bot.handlers import wallet

__all__ = [
    "wallet",
]
