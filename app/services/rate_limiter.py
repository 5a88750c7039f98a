"""
Rate Limiter for sensitive wallet operations.

Sliding window with cooldown per (operation class, actor):
- the first attempt opens a window
- attempts inside the window increment a counter
- reaching ``max_attempts`` locks the key for ``cooldown_ms`` measured from
  the latest allowed attempt
- window or cooldown expiry resets the key

State is process-local and in-memory. Times are milliseconds.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

from app.config.constants import RATE_LIMIT_PROFILES, RATE_LIMIT_SWEEP_INTERVAL
from app.utils.exceptions import RateLimitedError


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


@dataclass
class RateLimitEntry:
    """Attempts seen for one key."""
    count: int
    first_attempt: int
    last_attempt: int


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one rate-limit check."""
    allowed: bool
    retry_after_ms: int | None = None


class RateLimiter:
    """Sliding-window-with-cooldown limiter for one operation class."""

    def __init__(
        self,
        max_attempts: int = 3,
        window_ms: int = 60_000,
        cooldown_ms: int = 300_000,
        clock: Callable[[], int] = monotonic_ms,
    ) -> None:
        """
        Initialize rate limiter.

        Args:
            max_attempts: Attempts allowed inside one window
            window_ms: Window length, measured from the first attempt
            cooldown_ms: Lockout length, measured from the latest attempt
            clock: Millisecond clock (injectable for tests)
        """
        self.max_attempts = max_attempts
        self.window_ms = window_ms
        self.cooldown_ms = cooldown_ms
        self._clock = clock
        self._attempts: dict[str, RateLimitEntry] = {}
        self._cleanup_task: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._attempts)

    def is_allowed(self, key: str) -> RateLimitResult:
        """
        Register an attempt for ``key`` and say whether it may proceed.

        Rejected attempts are not counted.
        """
        now = self._clock()
        entry = self._attempts.get(key)

        if entry is None:
            self._attempts[key] = RateLimitEntry(1, now, now)
            return RateLimitResult(allowed=True)

        if entry.count >= self.max_attempts:
            cooldown_end = entry.last_attempt + self.cooldown_ms
            if now < cooldown_end:
                return RateLimitResult(allowed=False, retry_after_ms=cooldown_end - now)
            self._attempts[key] = RateLimitEntry(1, now, now)
            return RateLimitResult(allowed=True)

        if now - entry.first_attempt > self.window_ms:
            self._attempts[key] = RateLimitEntry(1, now, now)
            return RateLimitResult(allowed=True)

        entry.count += 1
        entry.last_attempt = now
        return RateLimitResult(allowed=True)

    def cleanup(self) -> int:
        """
        Evict entries whose window and cooldown have both expired.

        Returns:
            Number of evicted entries
        """
        now = self._clock()
        expired = [
            key
            for key, entry in self._attempts.items()
            if now > max(
                entry.first_attempt + self.window_ms,
                entry.last_attempt + self.cooldown_ms,
            )
        ]
        for key in expired:
            del self._attempts[key]
        return len(expired)

    def start_cleanup(self, interval: float = RATE_LIMIT_SWEEP_INTERVAL) -> asyncio.Task:
        """Start the periodic sweep on the running event loop."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._sweep(interval))
        return self._cleanup_task

    async def _sweep(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            evicted = self.cleanup()
            if evicted:
                logger.debug(f"Rate limiter evicted {evicted} stale entries")

    def close(self) -> None:
        """Stop the periodic sweep."""
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            self._cleanup_task = None


class OperationRateLimiter:
    """
    Rate limiters for each sensitive operation class.

    Each class has its own risk profile (see ``RATE_LIMIT_PROFILES``).
    """

    def __init__(
        self,
        profiles: dict[str, tuple[int, int, int]] | None = None,
        clock: Callable[[], int] = monotonic_ms,
    ) -> None:
        profiles = profiles if profiles is not None else RATE_LIMIT_PROFILES
        self._limiters = {
            operation: RateLimiter(max_attempts, window_ms, cooldown_ms, clock=clock)
            for operation, (max_attempts, window_ms, cooldown_ms) in profiles.items()
        }

    def limiter(self, operation: str) -> RateLimiter:
        try:
            return self._limiters[operation]
        except KeyError:
            raise KeyError(f"No rate limit profile for operation '{operation}'") from None

    def check(
        self, operation: str, actor: int | str, scope: str | None = None
    ) -> RateLimitResult:
        """
        Register an attempt by ``actor`` for ``operation``.

        ``scope`` names a separate counter under the same profile
        (e.g. ``export_mnemonic`` under ``export_key``).
        """
        result = self.limiter(operation).is_allowed(f"{scope or operation}_{actor}")
        if not result.allowed:
            logger.warning(
                f"RATE LIMIT: {actor} exceeded '{operation}' "
                f"(retry after {result.retry_after_ms} ms)"
            )
        return result

    def ensure_allowed(
        self, operation: str, actor: int | str, scope: str | None = None
    ) -> None:
        """
        Like ``check`` but raises.

        Raises:
            RateLimitedError: With the remaining wait in milliseconds
        """
        result = self.check(operation, actor, scope)
        if not result.allowed:
            raise RateLimitedError(result.retry_after_ms or 0, operation)

    def start_cleanup(self, interval: float = RATE_LIMIT_SWEEP_INTERVAL) -> None:
        for limiter in self._limiters.values():
            limiter.start_cleanup(interval)

    def close(self) -> None:
        for limiter in self._limiters.values():
            limiter.close()
