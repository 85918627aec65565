"""HTTP client for interacting with GitHub's GraphQL API."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Protocol

import httpx

from .config import GitHubSettings, RateLimitInfo
from .models import parse_github_datetime

LOGGER = logging.getLogger(__name__)


class GraphQLClientError(RuntimeError):
    """Raised when a GraphQL request fails."""


class RateLimitedError(GraphQLClientError):
    """Raised when GitHub rejects a request because of a rate limit."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


@dataclass(slots=True)
class GraphQLResponse:
    data: dict[str, Any]
    rate_limit: RateLimitInfo | None
    errors: list[dict[str, Any]] = field(default_factory=list)


class GraphQLExecutor(Protocol):
    """Anything able to run a GraphQL query against GitHub."""

    async def execute(self, query: str, variables: dict[str, Any] | None = None) -> GraphQLResponse:
        ...


class GitHubGraphQLClient:
    """Thin GraphQL client issuing one authenticated request per call.

    The client never retries. Callers decide what to do with a failure.
    """

    def __init__(self, settings: GitHubSettings, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._endpoint = settings.graphql_url.rstrip("/")
        self._headers = {
            "Accept": "application/vnd.github+json",
            "Content-Type": "application/json",
            "User-Agent": settings.user_agent,
        }
        if settings.token:
            self._headers["Authorization"] = f"bearer {settings.token}"
        self._client = client or httpx.AsyncClient(timeout=settings.request_timeout)
        self._owns_client = client is None

    async def __aenter__(self) -> "GitHubGraphQLClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def execute(self, query: str, variables: dict[str, Any] | None = None) -> GraphQLResponse:
        """Execute a GraphQL query and return its data."""

        try:
            response = await self._client.post(
                self._endpoint,
                json={"query": query, "variables": variables or {}},
                headers=self._headers,
            )
        except httpx.RequestError as exc:
            LOGGER.debug("GraphQL request error: %s", exc)
            raise GraphQLClientError(f"Request to {self._endpoint} failed: {exc}") from exc

        if response.status_code >= 400:
            message_text = _error_message(response)
            if _is_rate_limited_response(response, message_text):
                raise RateLimitedError(message_text, retry_after=_retry_after_seconds(response))
            raise GraphQLClientError(message_text)

        try:
            payload = response.json()
        except ValueError as exc:
            raise GraphQLClientError(
                f"GitHub returned a non-JSON response (HTTP {response.status_code})"
            ) from exc
        if not isinstance(payload, dict):
            raise GraphQLClientError("GitHub returned an unexpected payload")

        data = payload.get("data")
        errors = payload.get("errors") or []
        if errors:
            if _is_rate_limited(errors):
                raise RateLimitedError(str(errors), retry_after=_retry_delay(errors))
            if data is None or not _only_not_found(errors):
                raise GraphQLClientError(str(errors))
            LOGGER.debug("GraphQL call returned NOT_FOUND: %s", errors)

        if data is None:
            raise GraphQLClientError("Response payload missing 'data'")

        rate_limit = None
        if rate := data.get("rateLimit"):
            reset_at = parse_github_datetime(rate.get("resetAt"))
            if reset_at is None:
                raise GraphQLClientError("Rate limit missing resetAt timestamp")
            rate_limit = RateLimitInfo(
                cost=rate.get("cost", 0),
                remaining=rate.get("remaining", 0),
                reset_at=reset_at,
            )
        return GraphQLResponse(data=data, rate_limit=rate_limit, errors=list(errors))


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return f"HTTP {response.status_code}"


def _is_rate_limited_response(response: httpx.Response, message: str) -> bool:
    if response.status_code == 429:
        return True
    if response.status_code != 403:
        return False
    return (
        "rate limit" in message.lower()
        or "Retry-After" in response.headers
        or response.headers.get("X-RateLimit-Remaining") == "0"
    )


def _is_rate_limited(errors: Iterable[dict[str, Any]]) -> bool:
    return any(error.get("type") in {"RATE_LIMITED", "ABUSE_DETECTED"} for error in errors)


def _only_not_found(errors: Iterable[dict[str, Any]]) -> bool:
    return all(error.get("type") == "NOT_FOUND" for error in errors)


def _retry_delay(errors: Iterable[dict[str, Any]]) -> float | None:
    delays = [_as_seconds(error.get("retryAfter")) for error in errors]
    return next((delay for delay in delays if delay is not None), None)


def _retry_after_seconds(response: httpx.Response) -> float | None:
    """Seconds to wait, from ``Retry-After`` or GitHub's ``X-RateLimit-Reset`` epoch."""

    retry_after = _as_seconds(response.headers.get("Retry-After"))
    if retry_after is not None:
        return retry_after
    reset_epoch = _as_seconds(response.headers.get("X-RateLimit-Reset"))
    if reset_epoch is None:
        return None
    return max(reset_epoch - datetime.now(timezone.utc).timestamp(), 0.0)


def _as_seconds(value: Any) -> float | None:
    try:
        return max(float(value), 0.0)
    except (TypeError, ValueError):
        return None


__all__ = [
    "GitHubGraphQLClient",
    "GraphQLClientError",
    "GraphQLExecutor",
    "GraphQLResponse",
    "RateLimitedError",
]
