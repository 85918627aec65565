"""Enrichment of catalog tools with GitHub repository metadata."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Sequence

from .github_client import GraphQLExecutor, GraphQLResponse, RateLimitedError
from .graphql_queries import REPOSITORY_QUERY, REPOSITORY_STARS_QUERY
from .identifiers import RepositoryIdentifier, parse_repository_identifier
from .models import (
    DerivedToolUpdate,
    EnrichmentResult,
    EnrichmentStatus,
    LanguageEntry,
    LanguageSize,
    NormalizedMetrics,
    RepositoryMetrics,
    StarsUpdate,
    ToolRecord,
    TopicEntry,
)
from .scoring import STAR_MILESTONES, calculate_health_score, has_reached_milestone, round_half_up
from .slugs import slugify

LOGGER = logging.getLogger(__name__)
UTC = timezone.utc

NO_ASSERTION_LICENSE = "NOASSERTION"
# Languages at or below this share of the repository are not listed.
LANGUAGE_SHARE_THRESHOLD = 17.5

_MALFORMED_PAYLOAD_ERRORS = (KeyError, TypeError, ValueError, AttributeError)


def derive_license(spdx_id: str | None) -> str | None:
    """Return the SPDX id, or ``None`` when GitHub reports no usable license."""

    if not spdx_id or spdx_id == NO_ASSERTION_LICENSE:
        return None
    return spdx_id


def build_topics(names: Iterable[str]) -> list[TopicEntry]:
    return [TopicEntry(slug=slugify(name)) for name in names]


def build_languages(languages: Sequence[LanguageSize], total_size: int) -> list[LanguageEntry]:
    """Project language sizes into percentages of the whole repository.

    Percentages are relative to ``total_size`` (all languages, not only the
    ones returned), so survivors are not renormalized after filtering.
    """

    if total_size <= 0:
        return []

    entries = [
        LanguageEntry(
            percentage=round_half_up(language.size / total_size * 100),
            name=language.name,
            slug=slugify(language.name),
            color=language.color,
        )
        for language in languages
    ]
    return [entry for entry in entries if entry.percentage > LANGUAGE_SHARE_THRESHOLD]


def normalize_metrics(metrics: RepositoryMetrics, bump: int | None) -> NormalizedMetrics:
    return NormalizedMetrics(
        stars=metrics.stars,
        forks=metrics.forks,
        contributors=metrics.contributors,
        watchers=metrics.watchers,
        last_commit_date=metrics.last_commit_date,
        bump=bump,
    )


class ToolEnricher:
    """Turns a stored tool into a :class:`DerivedToolUpdate`.

    Each call issues a single GraphQL request. Failures are logged and
    reported through the returned :class:`EnrichmentResult`; they are never
    raised and never retried.
    """

    def __init__(
        self,
        client: GraphQLExecutor,
        *,
        milestones: Sequence[int] = STAR_MILESTONES,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._client = client
        self._milestones = tuple(milestones)
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    @property
    def milestones(self) -> tuple[int, ...]:
        return self._milestones

    async def enrich(self, tool: ToolRecord) -> EnrichmentResult:
        identifier = parse_repository_identifier(tool.repository)
        if identifier is None:
            LOGGER.debug("No GitHub repository found in %r", tool.repository)
            return EnrichmentResult.skipped(EnrichmentStatus.NO_IDENTIFIER)

        response = await self._query(tool, identifier, REPOSITORY_QUERY)
        if isinstance(response, EnrichmentResult):
            return response

        payload = response.data.get("repository")
        if not payload:
            LOGGER.warning("Repository %s is missing, deleted or private", tool.repository)
            return EnrichmentResult.skipped(EnrichmentStatus.MISSING_REPOSITORY, rate_limit=response.rate_limit)

        try:
            update = self._derive_update(tool, RepositoryMetrics.from_graphql(payload))
        except _MALFORMED_PAYLOAD_ERRORS as exc:
            LOGGER.error("Malformed repository payload for %s: %r", tool.repository, exc)
            return EnrichmentResult.skipped(
                EnrichmentStatus.REMOTE_FAILURE,
                error=f"Malformed repository payload: {exc!r}",
                rate_limit=response.rate_limit,
            )
        return EnrichmentResult.succeeded(update, rate_limit=response.rate_limit)

    async def refresh_stars(self, tool: ToolRecord) -> EnrichmentResult:
        """Fetch only the star count, for frequent lightweight refreshes."""

        identifier = parse_repository_identifier(tool.repository)
        if identifier is None:
            return EnrichmentResult.skipped(EnrichmentStatus.NO_IDENTIFIER)

        response = await self._query(tool, identifier, REPOSITORY_STARS_QUERY)
        if isinstance(response, EnrichmentResult):
            return response

        payload = response.data.get("repository")
        if not payload:
            LOGGER.warning("Repository %s is missing, deleted or private", tool.repository)
            return EnrichmentResult.skipped(EnrichmentStatus.MISSING_REPOSITORY, rate_limit=response.rate_limit)

        try:
            stars = int(payload["stargazerCount"])
        except _MALFORMED_PAYLOAD_ERRORS as exc:
            LOGGER.error("Malformed repository payload for %s: %r", tool.repository, exc)
            return EnrichmentResult.skipped(
                EnrichmentStatus.REMOTE_FAILURE,
                error=f"Malformed repository payload: {exc!r}",
                rate_limit=response.rate_limit,
            )
        update = StarsUpdate(
            stars=stars,
            reached_milestone=has_reached_milestone(stars, tool.stars, self._milestones),
        )
        return EnrichmentResult.succeeded(update, rate_limit=response.rate_limit)

    async def _query(
        self,
        tool: ToolRecord,
        identifier: RepositoryIdentifier,
        query: str,
    ) -> GraphQLResponse | EnrichmentResult:
        variables: dict[str, Any] = identifier.as_variables()
        try:
            return await self._client.execute(query, variables)
        except RateLimitedError as exc:
            LOGGER.error("Failed to fetch repository %s: %s", tool.repository, exc)
            return EnrichmentResult.skipped(
                EnrichmentStatus.REMOTE_FAILURE,
                error=str(exc),
                rate_limited=True,
                retry_after=exc.retry_after,
            )
        except Exception as exc:
            LOGGER.error("Failed to fetch repository %s: %s", tool.repository, exc)
            return EnrichmentResult.skipped(EnrichmentStatus.REMOTE_FAILURE, error=str(exc) or repr(exc))

    def _derive_update(self, tool: ToolRecord, metrics: RepositoryMetrics) -> DerivedToolUpdate:
        normalized = normalize_metrics(metrics, tool.bump)
        return DerivedToolUpdate(
            stars=normalized.stars,
            forks=normalized.forks,
            last_commit_date=normalized.last_commit_date,
            score=calculate_health_score(normalized, now=self._clock()),
            license=derive_license(metrics.license_spdx_id),
            topics=build_topics(metrics.topics),
            languages=build_languages(metrics.languages, metrics.languages_total_size),
            reached_milestone=has_reached_milestone(normalized.stars, tool.stars, self._milestones),
        )


__all__ = [
    "LANGUAGE_SHARE_THRESHOLD",
    "ToolEnricher",
    "build_languages",
    "build_topics",
    "derive_license",
    "normalize_metrics",
]
