"""
Pytest configuration for the ledger service.

Provides fixtures for:
- In-memory pools and ledgers for unit tests
- Database connection management for integration tests
- Settings override for integration tests
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncGenerator

import psycopg
import pytest
import pytest_asyncio

from psqlledger.config import Settings, build_dsn
from psqlledger.database.memory import MemoryClient, MemoryStore
from psqlledger.database.pool import ClientPool
from psqlledger.database.store import ClientHandle
from psqlledger.ledger import LedgerService

MIGRATIONS_PATH = Path(__file__).parent.parent / "db" / "migrations"


@pytest.fixture
def memory_store() -> MemoryStore:
    """A fresh store per test; never shared across tests."""
    return MemoryStore()


@pytest_asyncio.fixture
async def memory_pool(memory_store: MemoryStore) -> AsyncGenerator[ClientPool, None]:
    """
    Single-handle pool over the in-memory backend.

    Size 1 fully serializes access, matching how the maps are protected.
    """

    async def factory(index: int) -> ClientHandle:
        return MemoryClient(memory_store)

    pool = await ClientPool.create(1, factory)
    try:
        yield pool
    finally:
        await pool.close()


@pytest.fixture
def ledger(memory_pool: ClientPool) -> LedgerService:
    return LedgerService(memory_pool)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_backend="postgres",
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "root"),
        db_password=os.getenv("DB_PASSWORD", "secret"),
        db_name=os.getenv("DB_NAME", "bank"),
        migrations_path=str(MIGRATIONS_PATH),
        max_threads=2,
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return build_dsn(test_settings)


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except Exception:
        return False


@pytest.fixture
def clean_tables(test_dsn: str, db_connection_available: bool):
    """
    Empty the ledger tables before and after each integration test.

    Skips the test if the database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    def truncate() -> None:
        with psycopg.connect(test_dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT to_regclass('public.accounts') IS NOT NULL;"
                )
                row = cur.fetchone()
                if row and row[0]:
                    cur.execute("TRUNCATE TABLE transactions, accounts RESTART IDENTITY CASCADE;")
            conn.commit()

    truncate()
    yield
    truncate()
