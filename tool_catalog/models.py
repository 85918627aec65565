"""Domain models used by the enrichment pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .config import RateLimitInfo


UTC = timezone.utc


def parse_github_datetime(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp from GitHub into an aware UTC datetime."""

    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


@dataclass(slots=True)
class ToolRecord:
    """The stored fields of a tool the pipeline needs to enrich it."""

    repository: str | None
    bump: int | None = None
    stars: int = 0
    id: int | None = None
    slug: str | None = None


@dataclass(slots=True)
class LanguageSize:
    name: str
    color: str | None
    size: int


@dataclass(slots=True)
class RepositoryMetrics:
    """Typed view of the ``repository`` node returned by GitHub."""

    stars: int
    forks: int
    watchers: int
    contributors: int
    license_spdx_id: str | None
    last_commit_date: datetime | None
    topics: list[str]
    languages: list[LanguageSize]
    languages_total_size: int

    @classmethod
    def from_graphql(cls, payload: dict[str, Any]) -> "RepositoryMetrics":
        """Convert a GraphQL ``repository`` node into :class:`RepositoryMetrics`.

        Raises ``KeyError``, ``TypeError`` or ``ValueError`` when a required
        field is missing or has the wrong shape.
        """

        license_info = payload.get("licenseInfo")

        last_commit_date = None
        branch = payload.get("defaultBranchRef") or {}
        history = (branch.get("target") or {}).get("history") or {}
        edges = history.get("edges") or []
        if edges:
            last_commit_date = parse_github_datetime(edges[0]["node"]["committedDate"])

        topic_nodes = (payload.get("repositoryTopics") or {}).get("nodes") or []
        languages = payload.get("languages") or {}

        return cls(
            stars=int(payload["stargazerCount"]),
            forks=int(payload["forkCount"]),
            watchers=int(payload["watchers"]["totalCount"]),
            contributors=int(payload["mentionableUsers"]["totalCount"]),
            license_spdx_id=license_info.get("spdxId") if license_info else None,
            last_commit_date=last_commit_date,
            topics=[node["topic"]["name"] for node in topic_nodes],
            languages=[
                LanguageSize(
                    name=edge["node"]["name"],
                    color=edge["node"].get("color"),
                    size=int(edge["size"]),
                )
                for edge in languages.get("edges") or []
            ],
            languages_total_size=int(languages.get("totalSize") or 0),
        )


@dataclass(slots=True)
class NormalizedMetrics:
    stars: int
    forks: int
    contributors: int
    watchers: int
    last_commit_date: datetime | None
    bump: int | None = None


@dataclass(slots=True, frozen=True)
class TopicEntry:
    slug: str


@dataclass(slots=True, frozen=True)
class LanguageEntry:
    percentage: int
    name: str
    slug: str
    color: str | None


@dataclass(slots=True)
class DerivedToolUpdate:
    """Fields to merge into a tool after a full enrichment run."""

    stars: int
    forks: int
    last_commit_date: datetime | None
    score: int
    license: str | None
    topics: list[TopicEntry] = field(default_factory=list)
    languages: list[LanguageEntry] = field(default_factory=list)
    reached_milestone: bool = False


@dataclass(slots=True)
class StarsUpdate:
    """Result of the stars-only refresh."""

    stars: int
    reached_milestone: bool = False


class EnrichmentStatus(str, Enum):
    OK = "ok"
    NO_IDENTIFIER = "no_identifier"
    REMOTE_FAILURE = "remote_failure"
    MISSING_REPOSITORY = "missing_repository"


@dataclass(slots=True)
class EnrichmentResult:
    """Outcome of enriching one tool.

    ``update`` is only set when ``status`` is :attr:`EnrichmentStatus.OK`.
    """

    status: EnrichmentStatus
    update: DerivedToolUpdate | StarsUpdate | None = None
    error: str | None = None
    rate_limit: RateLimitInfo | None = None
    rate_limited: bool = False
    retry_after: float | None = None

    @property
    def ok(self) -> bool:
        return self.status is EnrichmentStatus.OK

    @classmethod
    def succeeded(
        cls,
        update: DerivedToolUpdate | StarsUpdate,
        rate_limit: RateLimitInfo | None = None,
    ) -> "EnrichmentResult":
        return cls(status=EnrichmentStatus.OK, update=update, rate_limit=rate_limit)

    @classmethod
    def skipped(
        cls,
        status: EnrichmentStatus,
        error: str | None = None,
        rate_limit: RateLimitInfo | None = None,
        *,
        rate_limited: bool = False,
        retry_after: float | None = None,
    ) -> "EnrichmentResult":
        if status is EnrichmentStatus.OK:
            raise ValueError("A skipped result needs a non-OK status")
        return cls(
            status=status,
            error=error,
            rate_limit=rate_limit,
            rate_limited=rate_limited,
            retry_after=retry_after,
        )


__all__ = [
    "DerivedToolUpdate",
    "EnrichmentResult",
    "EnrichmentStatus",
    "LanguageEntry",
    "LanguageSize",
    "NormalizedMetrics",
    "RepositoryMetrics",
    "StarsUpdate",
    "ToolRecord",
    "TopicEntry",
    "parse_github_datetime",
]
