"""Shared asyncpg helpers for repositories."""
from __future__ import annotations

from typing import Any, List

import asyncpg  # type: ignore[import-untyped]


class BaseRepository:
    """Each helper borrows one pooled connection for a single statement."""

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def _fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        async with self._pool.acquire() as conn:
            return await conn.fetchrow(query, *args)

    async def _fetch(self, query: str, *args: Any) -> List[asyncpg.Record]:
        async with self._pool.acquire() as conn:
            return list(await conn.fetch(query, *args))

    async def _execute(self, query: str, *args: Any) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(query, *args)
