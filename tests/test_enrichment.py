from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from tool_catalog.enrichment import ToolEnricher, build_languages, derive_license
from tool_catalog.github_client import GraphQLClientError, RateLimitedError
from tool_catalog.graphql_queries import REPOSITORY_QUERY, REPOSITORY_STARS_QUERY
from tool_catalog.models import (
    DerivedToolUpdate,
    EnrichmentStatus,
    LanguageEntry,
    LanguageSize,
    StarsUpdate,
    ToolRecord,
    TopicEntry,
)

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


class FakeClient:
    def __init__(self, responses: dict[str, object]) -> None:
        self._responses = responses
        self.calls: list[tuple[str, dict[str, str]]] = []

    async def execute(self, query: str, variables: dict[str, str]):
        self.calls.append((query, variables))
        response = self._responses[f"{variables['owner']}/{variables['name']}"]
        if isinstance(response, Exception):
            raise response
        return SimpleNamespace(data={"repository": response}, rate_limit=None, errors=[])


def _repository(**overrides):
    payload = {
        "stargazerCount": 1000,
        "forkCount": 200,
        "watchers": {"totalCount": 300},
        "mentionableUsers": {"totalCount": 50},
        "licenseInfo": {"spdxId": "MIT"},
        "defaultBranchRef": {
            "target": {
                "history": {
                    "edges": [{"node": {"committedDate": (NOW - timedelta(days=10)).isoformat()}}],
                }
            }
        },
        "repositoryTopics": {"nodes": [{"topic": {"name": "Headless CMS"}}, {"topic": {"name": "nodejs"}}]},
        "languages": {
            "totalSize": 1000,
            "edges": [
                {"size": 600, "node": {"name": "TypeScript", "color": "#3178c6"}},
                {"size": 250, "node": {"name": "Vue", "color": "#41b883"}},
                {"size": 150, "node": {"name": "Shell", "color": "#89e051"}},
            ],
        },
    }
    payload.update(overrides)
    return payload


def _enricher(client: FakeClient) -> ToolEnricher:
    return ToolEnricher(client, milestones=(100, 500, 1000), clock=lambda: NOW)


def test_enrich_builds_derived_update():
    client = FakeClient({"acme/widget": _repository()})
    tool = ToolRecord(repository="https://github.com/acme/widget/tree/main", bump=None, stars=900)

    result = asyncio.run(_enricher(client).enrich(tool))

    assert result.status is EnrichmentStatus.OK
    assert result.update == DerivedToolUpdate(
        stars=1000,
        forks=200,
        last_commit_date=NOW - timedelta(days=10),
        score=445,
        license="MIT",
        topics=[TopicEntry(slug="headless-cms"), TopicEntry(slug="nodejs")],
        languages=[
            LanguageEntry(percentage=60, name="TypeScript", slug="typescript", color="#3178c6"),
            LanguageEntry(percentage=25, name="Vue", slug="vue", color="#41b883"),
        ],
        reached_milestone=True,
    )
    assert client.calls == [(REPOSITORY_QUERY, {"owner": "acme", "name": "widget"})]


def test_enrich_carries_bump_and_compares_against_stored_stars():
    client = FakeClient({"acme/widget": _repository()})
    tool = ToolRecord(repository="https://github.com/acme/widget", bump=10, stars=1000)

    result = asyncio.run(_enricher(client).enrich(tool))

    assert isinstance(result.update, DerivedToolUpdate)
    assert result.update.score == 455
    assert result.update.reached_milestone is False


def test_enrich_hides_no_assertion_license():
    client = FakeClient(
        {
            "acme/unknown": _repository(licenseInfo={"spdxId": "NOASSERTION"}),
            "acme/none": _repository(licenseInfo=None),
        }
    )
    enricher = _enricher(client)

    unknown = asyncio.run(enricher.enrich(ToolRecord(repository="https://github.com/acme/unknown")))
    missing = asyncio.run(enricher.enrich(ToolRecord(repository="https://github.com/acme/none")))

    assert unknown.update.license is None
    assert missing.update.license is None


def test_enrich_without_identifier_skips_remote_call():
    client = FakeClient({})

    result = asyncio.run(_enricher(client).enrich(ToolRecord(repository="https://gitlab.com/acme/widget")))

    assert result.status is EnrichmentStatus.NO_IDENTIFIER
    assert result.update is None
    assert client.calls == []


def test_enrich_logs_remote_failure(caplog):
    client = FakeClient({"acme/widget": GraphQLClientError("Bad credentials")})
    tool = ToolRecord(repository="https://github.com/acme/widget")

    with caplog.at_level(logging.ERROR):
        result = asyncio.run(_enricher(client).enrich(tool))

    assert result.status is EnrichmentStatus.REMOTE_FAILURE
    assert result.error == "Bad credentials"
    assert result.rate_limited is False
    assert "https://github.com/acme/widget" in caplog.text
    assert "Bad credentials" in caplog.text


def test_enrich_flags_rate_limited_failures():
    client = FakeClient({"acme/widget": RateLimitedError("secondary rate limit", retry_after=30.0)})

    result = asyncio.run(_enricher(client).enrich(ToolRecord(repository="https://github.com/acme/widget")))

    assert result.status is EnrichmentStatus.REMOTE_FAILURE
    assert result.rate_limited is True
    assert result.retry_after == 30.0


def test_enrich_reports_missing_repository():
    client = FakeClient({"acme/gone": None})

    result = asyncio.run(_enricher(client).enrich(ToolRecord(repository="https://github.com/acme/gone")))

    assert result.status is EnrichmentStatus.MISSING_REPOSITORY


def test_enrich_treats_malformed_payload_as_failure():
    client = FakeClient({"acme/widget": {"stargazerCount": 3}})

    result = asyncio.run(_enricher(client).enrich(ToolRecord(repository="https://github.com/acme/widget")))

    assert result.status is EnrichmentStatus.REMOTE_FAILURE
    assert "Malformed" in (result.error or "")


def test_enrich_failure_does_not_affect_other_tools():
    client = FakeClient(
        {
            "acme/one": _repository(),
            "acme/broken": GraphQLClientError("boom"),
            "acme/two": _repository(stargazerCount=5),
        }
    )
    enricher = _enricher(client)
    tools = [
        ToolRecord(repository="https://github.com/acme/one"),
        ToolRecord(repository="https://github.com/acme/broken"),
        ToolRecord(repository="https://github.com/acme/two"),
    ]

    async def scenario():
        return await asyncio.gather(*(enricher.enrich(tool) for tool in tools))

    results = asyncio.run(scenario())

    assert [result.status for result in results] == [
        EnrichmentStatus.OK,
        EnrichmentStatus.REMOTE_FAILURE,
        EnrichmentStatus.OK,
    ]
    assert results[2].update.stars == 5


def test_refresh_stars_uses_light_query():
    client = FakeClient({"acme/widget": {"stargazerCount": 120}})
    tool = ToolRecord(repository="https://github.com/acme/widget", stars=80)

    result = asyncio.run(_enricher(client).refresh_stars(tool))

    assert result.update == StarsUpdate(stars=120, reached_milestone=True)
    assert client.calls[0][0] == REPOSITORY_STARS_QUERY


def test_build_languages_keeps_share_above_threshold():
    languages = [LanguageSize("Python", "#3572A5", 600), LanguageSize("C", "#555555", 250), LanguageSize("Shell", None, 150)]

    entries = build_languages(languages, 1000)

    assert [entry.percentage for entry in entries] == [60, 25]
    assert [entry.slug for entry in entries] == ["python", "c"]


def test_build_languages_does_not_renormalize():
    languages = [LanguageSize("Python", None, 300), LanguageSize("Go", None, 200)]

    entries = build_languages(languages, 1000)

    assert [entry.percentage for entry in entries] == [30, 20]


def test_build_languages_with_zero_total_is_empty():
    assert build_languages([LanguageSize("Python", None, 0)], 0) == []


def test_derive_license():
    assert derive_license("MIT") == "MIT"
    assert derive_license("NOASSERTION") is None
    assert derive_license(None) is None
