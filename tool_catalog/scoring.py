"""Health score and star milestone policy."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Sequence

from .models import NormalizedMetrics

UTC = timezone.utc
EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
ONE_DAY = timedelta(days=1)

STARS_WEIGHT = 0.25
FORKS_WEIGHT = 0.5
CONTRIBUTORS_WEIGHT = 0.5
WATCHERS_WEIGHT = 0.25

# Every day without a commit costs half a point, up to 90 days.
LAST_COMMIT_PENALTY_PER_DAY = 0.5
LAST_COMMIT_PENALTY_MAX_DAYS = 90

STAR_MILESTONES: tuple[int, ...] = (
    10,
    25,
    50,
    100,
    250,
    500,
    1_000,
    2_500,
    5_000,
    10_000,
    25_000,
    50_000,
    100_000,
)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, sending ``.5`` ties towards positive infinity."""

    return math.floor(value + 0.5)


def days_since(moment: datetime | None, now: datetime) -> float:
    """Days elapsed since ``moment``; a missing moment counts from the epoch."""

    return (now - (moment or EPOCH)) / ONE_DAY


def calculate_health_score(metrics: NormalizedMetrics, *, now: datetime | None = None) -> int:
    """Calculate a tool's health score from its GitHub statistics.

    Stars and watchers weigh 0.25, forks and contributors 0.5. A penalty of
    0.5 per day since the last commit is subtracted, capped at 90 days, and
    the manual ``bump`` is added last. The result may be negative.
    """

    now = now or datetime.now(tz=UTC)
    inactive_days = days_since(metrics.last_commit_date, now)
    last_commit_penalty = min(inactive_days, LAST_COMMIT_PENALTY_MAX_DAYS) * LAST_COMMIT_PENALTY_PER_DAY

    raw = (
        metrics.stars * STARS_WEIGHT
        + metrics.forks * FORKS_WEIGHT
        + metrics.contributors * CONTRIBUTORS_WEIGHT
        + metrics.watchers * WATCHERS_WEIGHT
        - last_commit_penalty
        + (metrics.bump or 0)
    )
    return round_half_up(raw)


def crossed_milestones(
    current_stars: int,
    previous_stars: int,
    milestones: Sequence[int] = STAR_MILESTONES,
) -> list[int]:
    """Return every milestone ``m`` with ``previous_stars < m <= current_stars``."""

    return [milestone for milestone in sorted(milestones) if previous_stars < milestone <= current_stars]


def has_reached_milestone(
    current_stars: int,
    previous_stars: int,
    milestones: Sequence[int] = STAR_MILESTONES,
) -> bool:
    return any(previous_stars < milestone <= current_stars for milestone in milestones)


__all__ = [
    "STAR_MILESTONES",
    "calculate_health_score",
    "crossed_milestones",
    "days_since",
    "has_reached_milestone",
    "round_half_up",
]
