"""
ServiceMatch Backend - Embedding API Rate Limiter
==================================================

What:  Process-wide limiter for outbound embedding calls: a minimum spacing
       between calls (per-minute limit) plus a rolling daily counter.
Why:   The free tier allows 15 requests/minute and 1500/day per API key.
       Every caller in the process (HTTP paths, fan-out, backfill) shares ONE
       limiter so their calls add up correctly.
How:   acquire() holds an asyncio.Lock while it waits for the next slot, so
       concurrent callers queue up in arrival order instead of all waking at
       the same instant.

Algorithm: Fixed spacing (token bucket with a burst size of 1)
    interval = 60 / requests_per_minute        (15 rpm → 4.0 s)
    1. Wait until `next_slot`
    2. Take the slot; next_slot = now + interval
    The daily window starts at the first call and resets 24 h later.

Scope:
    In-memory, single process. Several workers sharing one key each get the
    full budget, so run the backfill job in one process only.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from servicematch.exceptions import DailyQuotaExceededError

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60


class EmbeddingRateLimiter:
    """
    Args:
        requests_per_minute: Upstream per-minute limit.
        daily_quota: Upstream per-day limit. Calls beyond it raise
            DailyQuotaExceededError without waiting.
        clock / sleep: Injected for tests (defaults: time.monotonic, asyncio.sleep).
    """

    def __init__(
        self,
        requests_per_minute: int = 15,
        daily_quota: int = 1500,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.interval = 60.0 / requests_per_minute
        self.daily_quota = daily_quota
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._next_slot = 0.0
        self._day_started: Optional[float] = None
        self._used_today = 0

    @property
    def used_today(self) -> int:
        return self._used_today

    @property
    def remaining_today(self) -> int:
        self._roll_day(self._clock())
        return max(self.daily_quota - self._used_today, 0)

    def _roll_day(self, now: float) -> None:
        if self._day_started is None or now - self._day_started >= DAY_SECONDS:
            if self._used_today:
                logger.info(
                    "Embedding daily window reset (%d requests used)", self._used_today
                )
            self._day_started = now
            self._used_today = 0

    async def acquire(self) -> None:
        """
        Wait for the next call slot.

        Raises:
            DailyQuotaExceededError: the daily budget is spent.
        """
        async with self._lock:
            now = self._clock()
            self._roll_day(now)
            if self._used_today >= self.daily_quota:
                logger.warning(
                    "Embedding daily quota exhausted (%d/%d)",
                    self._used_today,
                    self.daily_quota,
                )
                raise DailyQuotaExceededError(quota=self.daily_quota)

            wait = self._next_slot - now
            if wait > 0:
                logger.debug("Embedding rate limiter sleeping %.2fs", wait)
                await self._sleep(wait)
                now = self._clock()

            self._next_slot = max(now, self._next_slot) + self.interval
            self._used_today += 1
