"""Command line interface for the tool catalog enrichment job."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from typing import Optional

import typer

from .config import AppConfig
from .db import Database
from .enrichment import ToolEnricher
from .github_client import GitHubGraphQLClient
from .models import EnrichmentResult, ToolRecord
from .refresher import ToolRefresher

app = typer.Typer(add_completion=False)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _require_token(config: AppConfig) -> None:
    if not config.github.token:
        raise typer.BadParameter("A GitHub token is required")


@app.command("init-db")
def init_db(
    dsn: Optional[str] = typer.Option(None, help="Postgres DSN to use"),
    log_level: str = typer.Option("INFO", help="Logging level"),
) -> None:
    """Create database schema."""

    configure_logging(log_level)
    overrides = {"database_dsn": dsn} if dsn else {}
    config = AppConfig.from_env(overrides=overrides)

    async def runner() -> None:
        async with Database(config.database) as database:
            await database.create_schema()

    asyncio.run(runner())


@app.command("refresh")
def refresh(
    stars_only: bool = typer.Option(False, "--stars-only", help="Only refresh star counts"),
    limit: Optional[int] = typer.Option(None, help="Maximum number of tools to refresh"),
    concurrency: Optional[int] = typer.Option(None, help="Concurrent GitHub requests"),
    dsn: Optional[str] = typer.Option(None, help="Postgres DSN"),
    github_token: Optional[str] = typer.Option(None, envvar="GITHUB_TOKEN", help="GitHub token"),
    log_level: str = typer.Option("INFO", help="Logging level"),
) -> None:
    """Enrich stored tools with GitHub metadata and persist the results."""

    configure_logging(log_level)
    overrides = {}
    if limit:
        overrides["refresh_limit"] = limit
    if concurrency:
        overrides["refresh_max_concurrency"] = concurrency
    if dsn:
        overrides["database_dsn"] = dsn
    if github_token:
        overrides["github_token"] = github_token

    config = AppConfig.from_env(overrides=overrides)
    _require_token(config)

    async def runner() -> None:
        async with GitHubGraphQLClient(config.github) as client:
            async with Database(config.database) as database:
                refresher = ToolRefresher(config, ToolEnricher(client), database)
                result = await refresher.refresh(stars_only=stars_only)
        typer.echo(
            f"Refreshed {result.processed} tools: {result.updated} updated, "
            f"{result.unpublished} unpublished, {result.failed} failed. "
            f"Remaining rate limit: {result.rate_limit_remaining}"
        )
        for repository, milestones in result.milestones:
            typer.echo(f"Milestone: {repository} crossed {', '.join(str(m) for m in milestones)} stars")

    asyncio.run(runner())


@app.command("inspect")
def inspect(
    repository: str = typer.Argument(..., help="GitHub repository URL"),
    bump: Optional[int] = typer.Option(None, help="Manual score adjustment"),
    stars: int = typer.Option(0, help="Previously stored star count"),
    github_token: Optional[str] = typer.Option(None, envvar="GITHUB_TOKEN", help="GitHub token"),
    log_level: str = typer.Option("WARNING", help="Logging level"),
) -> None:
    """Enrich a single repository URL and print the derived update."""

    configure_logging(log_level)
    overrides = {"github_token": github_token} if github_token else {}
    config = AppConfig.from_env(overrides=overrides)
    _require_token(config)

    async def runner() -> EnrichmentResult:
        async with GitHubGraphQLClient(config.github) as client:
            return await ToolEnricher(client).enrich(ToolRecord(repository=repository, bump=bump, stars=stars))

    result = asyncio.run(runner())
    if not result.ok or result.update is None:
        typer.echo(f"No result: {result.status.value}" + (f" ({result.error})" if result.error else ""), err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(dataclasses.asdict(result.update), indent=2, default=str))


__all__ = ["app"]
