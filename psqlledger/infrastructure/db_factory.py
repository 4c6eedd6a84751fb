"""
Database connection factory utilities for the ledger service.

Builds client handles for the configured backend and assembles them into a
ClientPool. Pools are owned by whoever opens them (the HTTP app's lifespan, a
CLI command, a test fixture) and must be closed by that owner; nothing here
is cached at module level.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

import psycopg
from psycopg import AsyncConnection
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from psqlledger.config import Settings, build_dsn, get_settings
from psqlledger.database.memory import MemoryClient, MemoryStore
from psqlledger.database.pool import ClientFactory, ClientPool
from psqlledger.database.postgres import PostgresClient
from psqlledger.database.store import ClientHandle
from psqlledger.errors import ConnectivityError, MigrationError
from psqlledger.utils.logging import get_logger

log = get_logger(__name__)

_TRANSIENT_ERRORS = (psycopg.OperationalError, psycopg.InterfaceError)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(_TRANSIENT_ERRORS),
    reraise=True,
)
async def _connect(dsn: str, connect_timeout: int) -> AsyncConnection:
    return await AsyncConnection.connect(dsn, autocommit=True, connect_timeout=connect_timeout)


async def connect_postgres(settings: Settings | None = None) -> PostgresClient:
    """
    Open a dedicated PostgreSQL client handle with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection errors.

    Returns
    -------
    PostgresClient
        A handle owning one autocommit AsyncConnection.

    Raises
    ------
    ConnectivityError
        If the connection still fails after all retry attempts.
    """
    settings = settings or get_settings()
    try:
        conn = await _connect(build_dsn(settings), settings.db_connect_timeout)
    except _TRANSIENT_ERRORS as exc:
        raise ConnectivityError(
            f"could not connect to postgres at {settings.db_host}:{settings.db_port}: {exc}"
        ) from exc
    return PostgresClient(conn, db_name=settings.db_name)


def build_client_factory(settings: Settings | None = None) -> ClientFactory:
    """
    Select the backend once and return a factory producing its handles.

    Memory handles built by one factory share a single MemoryStore so every
    pool slot sees the same rows.
    """
    settings = settings or get_settings()

    if settings.db_backend == "memory":
        store = MemoryStore()

        async def memory_factory(index: int) -> ClientHandle:
            return MemoryClient(store)

        return memory_factory

    async def postgres_factory(index: int) -> ClientHandle:
        client = await connect_postgres(settings)
        log.debug(
            "Opened postgres connection",
            extra={"index": index, "db_host": settings.db_host, "db_name": settings.db_name},
        )
        return client

    return postgres_factory


async def open_client_pool(settings: Settings | None = None) -> ClientPool:
    """
    Open a ClientPool sized by `max_threads` and prepare the schema.

    The database must already exist. A failed migration is logged and does
    not prevent the pool from being returned.

    Raises
    ------
    ConnectivityError
        If any handle cannot connect or the database does not exist. No
        partially opened pool is left behind.
    """
    settings = settings or get_settings()
    pool = await ClientPool.create(settings.max_threads, build_client_factory(settings))
    try:
        if not await pool.check_database_exists(settings.db_name):
            raise ConnectivityError(f"database '{settings.db_name}' does not exist")
        log.debug("Found database", extra={"db_name": settings.db_name})

        try:
            applied = await pool.initialize_schema(settings.migrations_path)
        except (MigrationError, psycopg.Error) as exc:
            log.warning(
                f"InitializeSchema failed: {exc}",
                extra={"migrations_path": settings.migrations_path},
            )
        else:
            log.info(
                "Schema up to date",
                extra={"migrations_path": settings.migrations_path, "applied": applied},
            )
    except BaseException:
        await pool.close()
        raise
    return pool


__all__ = [
    "build_client_factory",
    "connect_postgres",
    "open_client_pool",
]
