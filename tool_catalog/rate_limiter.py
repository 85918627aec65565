"""Helpers for pacing a refresh run against GitHub's GraphQL budget."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta

from .config import RateLimitInfo, UTC

LOGGER = logging.getLogger(__name__)


class RateLimitGuard:
    """Shared pause gate for concurrent refresh workers.

    Workers call :meth:`wait` before each request. Once the last observed
    budget is at or below ``floor``, or GitHub rejected a call with a rate
    limit, every worker sleeps until the reset time.
    """

    def __init__(self, *, floor: int = 0, minimum_sleep: float = 0.05) -> None:
        self._lock = asyncio.Lock()
        self._floor = max(floor, 0)
        self._minimum_sleep = max(minimum_sleep, 0.0)
        self._info: RateLimitInfo | None = None
        self._paused_until: datetime | None = None

    async def wait(self) -> None:
        """Sleep until the budget is expected to be available again."""

        async with self._lock:
            resume_at = self._resume_at()
            if resume_at is None:
                return

        delay = max((resume_at - datetime.now(tz=UTC)).total_seconds(), self._minimum_sleep)
        LOGGER.warning("GitHub rate limit reached; pausing %.2fs until %s", delay, resume_at.isoformat())
        await asyncio.sleep(delay)

        async with self._lock:
            if self._paused_until is not None and self._paused_until <= resume_at:
                self._paused_until = None
            if self._info is not None and self._info.reset_at <= resume_at:
                self._info = None

    async def observe(self, info: RateLimitInfo) -> None:
        """Record the rate limit block returned with a successful response."""

        async with self._lock:
            if self._info is None or info.reset_at >= self._info.reset_at:
                self._info = RateLimitInfo(cost=info.cost, remaining=info.remaining, reset_at=info.reset_at)

    async def pause_for(self, seconds: float | None) -> None:
        """Stop every worker for ``seconds`` after GitHub refused a request."""

        resume_at = datetime.now(tz=UTC) + timedelta(seconds=max(seconds or 60.0, 0.0))
        async with self._lock:
            if self._paused_until is None or resume_at > self._paused_until:
                self._paused_until = resume_at

    async def remaining(self) -> int | None:
        """Return the last known remaining budget, if any."""

        async with self._lock:
            return self._info.remaining if self._info else None

    def _resume_at(self) -> datetime | None:
        candidates: list[datetime] = []
        if self._paused_until is not None:
            candidates.append(self._paused_until)
        if self._info is not None and self._info.remaining <= self._floor:
            candidates.append(self._info.reset_at)
        return max(candidates) if candidates else None


__all__ = ["RateLimitGuard"]
