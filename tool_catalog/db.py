"""Persistence of enrichment results in Postgres."""

from __future__ import annotations

from pathlib import Path

import asyncpg

from .config import DatabaseSettings
from .models import DerivedToolUpdate, StarsUpdate, ToolRecord
from .slugs import slugify

SCHEMA_PATH = Path(__file__).resolve().parent / "sql" / "schema.sql"


class Database:
    """Async store reading tools and merging enrichment results into them."""

    def __init__(self, settings: DatabaseSettings) -> None:
        self._settings = settings
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        if self._pool is not None:
            return
        self._pool = await asyncpg.create_pool(
            dsn=self._settings.dsn,
            init=self._init_connection,
            command_timeout=self._settings.statement_timeout,
        )

    async def close(self) -> None:
        if self._pool:
            await self._pool.close()
            self._pool = None

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def create_schema(self) -> None:
        pool = self._ensure_pool()
        statements = _load_sql_statements(SCHEMA_PATH)
        async with pool.acquire() as conn:
            for statement in statements:
                await conn.execute(statement)

    async def fetch_tools(self, limit: int | None = None) -> list[ToolRecord]:
        pool = self._ensure_pool()
        query = """
            SELECT id, slug, repository, bump, stars
            FROM tools
            WHERE repository IS NOT NULL
            ORDER BY updated_at, id
            LIMIT $1
        """
        async with pool.acquire() as conn:
            rows = await conn.fetch(query, limit)
        return [
            ToolRecord(
                id=row["id"],
                slug=row["slug"],
                repository=row["repository"],
                bump=row["bump"],
                stars=row["stars"],
            )
            for row in rows
        ]

    async def apply_update(self, tool: ToolRecord, update: DerivedToolUpdate) -> None:
        """Merge a full enrichment result into the tool and its relations."""

        pool = self._ensure_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                license_id = None
                if update.license:
                    license_id = await conn.fetchval(
                        """
                        INSERT INTO licenses (name, slug) VALUES ($1, $2)
                        ON CONFLICT (slug) DO UPDATE SET name = licenses.name
                        RETURNING id
                        """,
                        update.license,
                        slugify(update.license),
                    )

                await conn.execute(
                    """
                    UPDATE tools SET
                        stars = $2,
                        forks = $3,
                        score = $4,
                        last_commit_date = $5,
                        license_id = $6,
                        updated_at = NOW()
                    WHERE id = $1
                    """,
                    tool.id,
                    update.stars,
                    update.forks,
                    update.score,
                    update.last_commit_date,
                    license_id,
                )

                await conn.execute("DELETE FROM tool_topics WHERE tool_id = $1", tool.id)
                topic_slugs = list(dict.fromkeys(topic.slug for topic in update.topics if topic.slug))
                if topic_slugs:
                    await conn.executemany(
                        "INSERT INTO topics (slug) VALUES ($1) ON CONFLICT (slug) DO NOTHING",
                        [(slug,) for slug in topic_slugs],
                    )
                    await conn.executemany(
                        "INSERT INTO tool_topics (tool_id, topic_slug) VALUES ($1, $2) ON CONFLICT DO NOTHING",
                        [(tool.id, slug) for slug in topic_slugs],
                    )

                await conn.execute("DELETE FROM tool_languages WHERE tool_id = $1", tool.id)
                for language in update.languages:
                    language_id = await conn.fetchval(
                        """
                        INSERT INTO languages (name, slug, color) VALUES ($1, $2, $3)
                        ON CONFLICT (slug) DO UPDATE SET color = EXCLUDED.color
                        RETURNING id
                        """,
                        language.name,
                        language.slug,
                        language.color,
                    )
                    await conn.execute(
                        """
                        INSERT INTO tool_languages (tool_id, language_id, percentage) VALUES ($1, $2, $3)
                        ON CONFLICT (tool_id, language_id) DO UPDATE SET percentage = EXCLUDED.percentage
                        """,
                        tool.id,
                        language_id,
                        language.percentage,
                    )

    async def apply_stars(self, tool: ToolRecord, update: StarsUpdate) -> None:
        pool = self._ensure_pool()
        async with pool.acquire() as conn:
            await conn.execute(
                "UPDATE tools SET stars = $2, updated_at = NOW() WHERE id = $1",
                tool.id,
                update.stars,
            )

    async def unpublish(self, tool: ToolRecord) -> None:
        """Turn the tool back into a draft."""

        pool = self._ensure_pool()
        async with pool.acquire() as conn:
            await conn.execute(
                "UPDATE tools SET published_at = NULL, updated_at = NOW() WHERE id = $1",
                tool.id,
            )

    def _ensure_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database pool has not been initialized")
        return self._pool

    async def _init_connection(self, conn: asyncpg.Connection) -> None:
        await conn.execute("SET TIME ZONE 'UTC'")
        await conn.execute(f"SET statement_timeout = {int(self._settings.statement_timeout * 1000)}")


def _load_sql_statements(path: Path) -> list[str]:
    parts = path.read_text(encoding="utf-8").split(";")
    return [part.strip() for part in parts if part.strip()]


__all__ = ["Database", "SCHEMA_PATH"]
