from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from tool_catalog.config import RateLimitInfo
from tool_catalog.rate_limiter import RateLimitGuard


def test_guard_does_not_wait_above_floor(monkeypatch):
    guard = RateLimitGuard(floor=10)
    slept = False

    async def fake_sleep(duration: float) -> None:  # pragma: no cover - patched behaviour
        nonlocal slept
        slept = True

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)

    async def scenario() -> int | None:
        await guard.observe(RateLimitInfo(cost=1, remaining=40, reset_at=datetime.now(timezone.utc)))
        await guard.wait()
        return await guard.remaining()

    assert asyncio.run(scenario()) == 40
    assert slept is False


def test_guard_waits_until_reset_when_budget_low(monkeypatch):
    guard = RateLimitGuard(floor=10, minimum_sleep=0.0)
    reset_at = datetime.now(timezone.utc) + timedelta(seconds=5)
    durations: list[float] = []

    async def fake_sleep(duration: float) -> None:  # pragma: no cover - patched behaviour
        durations.append(duration)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)

    async def scenario() -> int | None:
        await guard.observe(RateLimitInfo(cost=1, remaining=3, reset_at=reset_at))
        await guard.wait()
        return await guard.remaining()

    remaining = asyncio.run(scenario())

    assert len(durations) == 1
    assert 0 < durations[0] <= 5
    assert remaining is None


def test_guard_pauses_after_rejected_request(monkeypatch):
    guard = RateLimitGuard()
    durations: list[float] = []

    async def fake_sleep(duration: float) -> None:  # pragma: no cover - patched behaviour
        durations.append(duration)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)

    async def scenario() -> None:
        await guard.pause_for(30)
        await guard.wait()
        await guard.wait()

    asyncio.run(scenario())

    assert len(durations) == 1
    assert 25 < durations[0] <= 30
