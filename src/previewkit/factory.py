"""Wiring for running the manager against the real collaborators."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from psycopg_pool import AsyncConnectionPool

from previewkit.config import Config
from previewkit.identity import HttpIdentityService
from previewkit.manager import SessionImpersonationManager
from previewkit.sink import ActiveSessionSink
from previewkit.store import PostgresRecordStore

log = logging.getLogger(__name__)


def configure_logging(config: Config) -> None:
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def create_manager(
    config: Config,
    sink: ActiveSessionSink,
    namespace: str | None = None,
) -> AsyncIterator[SessionImpersonationManager]:
    """Open the HTTP client and connection pool, restore, and yield a manager.

    Args:
        config: Runtime configuration
        sink: The app's active-session holder
        namespace: Record namespace, usually one per owner device;
            defaults to config.namespace
    """
    pool = AsyncConnectionPool(
        config.database_url,
        min_size=1,
        max_size=4,
        open=False,
        kwargs={"autocommit": True},
    )
    await pool.open()
    try:
        async with httpx.AsyncClient(
            base_url=config.identity_url, timeout=config.http_timeout
        ) as http:
            store = PostgresRecordStore(pool, namespace=namespace or config.namespace)
            await store.install()
            manager = await SessionImpersonationManager.open(
                store,
                HttpIdentityService(http),
                sink,
                principal_kinds=config.principal_kinds,
            )
            log.info(
                "Preview manager ready (namespace=%s, state=%s)",
                store.namespace,
                manager.state.kind.value,
            )
            yield manager
    finally:
        await pool.close()
