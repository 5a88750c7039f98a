"""
Services.

Business logic layer.
"""

from app.services.rate_limiter import OperationRateLimiter, RateLimiter


__all__ = [
    "OperationRateLimiter",
    "RateLimiter",
]
