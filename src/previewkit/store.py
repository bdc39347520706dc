"""Crash-durable key/value storage for the preview episode records.

Only two keys are used: OWNER_SNAPSHOT_KEY and PREVIEW_MARKER_KEY. Stores
offer single-key operations only; write ordering across keys is the
manager's job.
"""

from __future__ import annotations

import json
from typing import Any, Protocol

import psycopg
from psycopg.types.json import Jsonb
from psycopg_pool import AsyncConnectionPool

from previewkit.base import RecordStoreError

__all__ = [
    "OWNER_SNAPSHOT_KEY",
    "PREVIEW_MARKER_KEY",
    "MemoryRecordStore",
    "PostgresRecordStore",
    "RecordStore",
]

OWNER_SNAPSHOT_KEY = "ownerSnapshot"
PREVIEW_MARKER_KEY = "previewMarker"


class RecordStore(Protocol):
    """SPI for durable record persistence."""

    async def get(self, key: str) -> dict[str, Any] | None:
        """Stored value, or None when the key is absent."""

    async def set(self, key: str, value: dict[str, Any]) -> None:
        """Create or replace the value for key."""

    async def delete(self, key: str) -> None:
        """Remove key. Deleting an absent key is not an error."""


class MemoryRecordStore:
    """Process-local store. Values are kept as JSON text so callers never share objects.

    Pass the same instance to a second manager to simulate a process restart.
    """

    def __init__(self, initial: dict[str, dict[str, Any]] | None = None) -> None:
        self._data: dict[str, str] = {}
        for key, value in (initial or {}).items():
            self._data[key] = json.dumps(value)

    async def get(self, key: str) -> dict[str, Any] | None:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: dict[str, Any]) -> None:
        self._data[key] = json.dumps(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> set[str]:
        return set(self._data)


class PostgresRecordStore:
    """Record store backed by a PostgreSQL table.

    Example:
        pool = AsyncConnectionPool(
            config.database_url, open=False, kwargs={"autocommit": True}
        )
        await pool.open()
        store = PostgresRecordStore(pool, namespace="owner:42")
        await store.install()

    Each call checks out its own connection and is committed before it
    returns, so a completed set/delete survives a crash of the next step.
    """

    def __init__(
        self,
        pool: AsyncConnectionPool,
        namespace: str = "default",
        schema: str = "previewkit",
    ) -> None:
        if not schema.isidentifier():
            raise ValueError(f"Invalid schema name: {schema}")
        self._pool = pool
        self._schema = schema
        self.namespace = namespace

    def _handle_error(self, e: psycopg.Error) -> None:
        """Convert psycopg errors to RecordStoreError, preserving SQLSTATE."""
        raise RecordStoreError(str(e), getattr(e, "sqlstate", None)) from e

    async def _execute(self, sql: str, params: tuple[Any, ...]) -> Any:
        try:
            async with self._pool.connection() as conn:
                cursor = await conn.execute(sql, params)
                if cursor.description is None:
                    return None
                row = await cursor.fetchone()
                return row[0] if row else None
        except psycopg.Error as e:
            self._handle_error(e)

    async def install(self) -> None:
        """Create the schema and table if they do not exist."""
        await self._execute(f"CREATE SCHEMA IF NOT EXISTS {self._schema}", ())
        await self._execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self._schema}.records (
                namespace text NOT NULL,
                key text NOT NULL,
                value jsonb NOT NULL,
                updated_at timestamptz NOT NULL DEFAULT now(),
                PRIMARY KEY (namespace, key)
            )
            """,
            (),
        )

    async def get(self, key: str) -> dict[str, Any] | None:
        return await self._execute(
            f"SELECT value FROM {self._schema}.records WHERE namespace = %s AND key = %s",
            (self.namespace, key),
        )

    async def set(self, key: str, value: dict[str, Any]) -> None:
        await self._execute(
            f"""
            INSERT INTO {self._schema}.records (namespace, key, value)
            VALUES (%s, %s, %s)
            ON CONFLICT (namespace, key)
            DO UPDATE SET value = EXCLUDED.value, updated_at = now()
            """,
            (self.namespace, key, Jsonb(value)),
        )

    async def delete(self, key: str) -> None:
        await self._execute(
            f"DELETE FROM {self._schema}.records WHERE namespace = %s AND key = %s",
            (self.namespace, key),
        )
