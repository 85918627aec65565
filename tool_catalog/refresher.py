"""Batch refresh of every tool in the catalog."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol, Sequence

from .config import AppConfig
from .enrichment import ToolEnricher
from .models import DerivedToolUpdate, EnrichmentResult, EnrichmentStatus, StarsUpdate, ToolRecord
from .rate_limiter import RateLimitGuard
from .scoring import crossed_milestones

LOGGER = logging.getLogger(__name__)
UTC = timezone.utc


class ToolStore(Protocol):
    async def fetch_tools(self, limit: int | None = None) -> list[ToolRecord]:
        ...

    async def apply_update(self, tool: ToolRecord, update: DerivedToolUpdate) -> None:
        ...

    async def apply_stars(self, tool: ToolRecord, update: StarsUpdate) -> None:
        ...

    async def unpublish(self, tool: ToolRecord) -> None:
        ...


@dataclass(slots=True)
class RefreshResult:
    processed: int = 0
    updated: int = 0
    unpublished: int = 0
    failed: int = 0
    milestones: list[tuple[str, list[int]]] = field(default_factory=list)
    rate_limit_remaining: int | None = None
    finished_at: datetime | None = None


class ToolRefresher:
    """Enriches many tools concurrently and writes the results to a store.

    A failure or timeout for one tool is counted and logged; it never stops
    the rest of the batch.
    """

    def __init__(
        self,
        config: AppConfig,
        enricher: ToolEnricher,
        store: ToolStore,
        *,
        guard: RateLimitGuard | None = None,
    ) -> None:
        self._config = config
        self._enricher = enricher
        self._store = store
        self._semaphore = asyncio.Semaphore(config.refresh.max_concurrency)
        self._guard = guard or RateLimitGuard(floor=config.refresh.rate_limit_floor)

    async def refresh(self, tools: Sequence[ToolRecord] | None = None, *, stars_only: bool = False) -> RefreshResult:
        if tools is None:
            tools = await self._store.fetch_tools(limit=self._config.refresh.limit)
        LOGGER.info("Refreshing %s tools (%s)", len(tools), "stars only" if stars_only else "full")

        queue: asyncio.Queue[tuple[ToolRecord, EnrichmentResult] | None] = asyncio.Queue()
        consumer = asyncio.create_task(self._consume(queue))
        producers = asyncio.gather(*(self._produce(tool, queue, stars_only) for tool in tools))
        try:
            done, _ = await asyncio.wait({producers, consumer}, return_when=asyncio.FIRST_COMPLETED)
            if consumer in done:
                # The consumer only stops before the sentinel when the store failed.
                LOGGER.error("Store failed; cancelling the remaining refresh calls")
                producers.cancel()
                await asyncio.gather(producers, return_exceptions=True)
                await consumer
            await producers
            await queue.put(None)
            result = await consumer
        finally:
            if not consumer.done():
                consumer.cancel()

        result.rate_limit_remaining = await self._guard.remaining()
        result.finished_at = datetime.now(tz=UTC)
        LOGGER.info(
            "Refresh finished: %s updated, %s unpublished, %s failed",
            result.updated,
            result.unpublished,
            result.failed,
        )
        return result

    async def _produce(
        self,
        tool: ToolRecord,
        queue: asyncio.Queue[tuple[ToolRecord, EnrichmentResult] | None],
        stars_only: bool,
    ) -> None:
        async with self._semaphore:
            await self._guard.wait()
            call = self._enricher.refresh_stars(tool) if stars_only else self._enricher.enrich(tool)
            try:
                result = await asyncio.wait_for(call, timeout=self._config.refresh.call_timeout)
            except asyncio.TimeoutError:
                LOGGER.error(
                    "Timed out after %.1fs fetching repository %s",
                    self._config.refresh.call_timeout,
                    tool.repository,
                )
                result = EnrichmentResult.skipped(EnrichmentStatus.REMOTE_FAILURE, error="timeout")
            except Exception as exc:
                LOGGER.exception("Unexpected error enriching %s", tool.repository)
                result = EnrichmentResult.skipped(EnrichmentStatus.REMOTE_FAILURE, error=str(exc))

        if result.rate_limit is not None:
            await self._guard.observe(result.rate_limit)
        if result.rate_limited:
            await self._guard.pause_for(result.retry_after)
        await queue.put((tool, result))

    async def _consume(self, queue: asyncio.Queue[tuple[ToolRecord, EnrichmentResult] | None]) -> RefreshResult:
        summary = RefreshResult()
        while True:
            item = await queue.get()
            if item is None:
                break
            tool, result = item
            summary.processed += 1
            await self._apply(tool, result, summary)
        return summary

    async def _apply(self, tool: ToolRecord, result: EnrichmentResult, summary: RefreshResult) -> None:
        if result.status is EnrichmentStatus.OK:
            if isinstance(result.update, DerivedToolUpdate):
                await self._store.apply_update(tool, result.update)
            elif isinstance(result.update, StarsUpdate):
                await self._store.apply_stars(tool, result.update)
            summary.updated += 1
            if result.update is not None and result.update.reached_milestone:
                crossed = crossed_milestones(result.update.stars, tool.stars, self._enricher.milestones)
                LOGGER.info("%s reached %s stars", tool.repository, crossed[-1])
                summary.milestones.append((tool.repository or "", crossed))
        elif result.status in {EnrichmentStatus.NO_IDENTIFIER, EnrichmentStatus.MISSING_REPOSITORY}:
            LOGGER.debug("Unpublishing %s (%s)", tool.repository, result.status.value)
            await self._store.unpublish(tool)
            summary.unpublished += 1
        else:
            summary.failed += 1


__all__ = ["RefreshResult", "ToolRefresher", "ToolStore"]
