"""
PostgreSQL backend built on psycopg 3 async connections.

Each PostgresClient owns exactly one AsyncConnection opened in autocommit mode.
Statements issued through `query()` commit individually; statements issued
through `transaction()` share one database transaction that commits when the
block exits and rolls back if it raises.

Driver errors (psycopg.OperationalError and friends) are surfaced unchanged;
LedgerService classifies them.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional

from psycopg import AsyncConnection
from psycopg.rows import dict_row

from psqlledger.database.migrations import apply_migrations
from psqlledger.database.store import ClientHandle, RecordStore
from psqlledger.domain.models import Account, Transaction, TransactionRow
from psqlledger.errors import NotFoundError
from psqlledger.utils.logging import get_logger

log = get_logger(__name__)

_ACCOUNT_COLUMNS = "id, username, email, balance, created_at"
_TRANSACTION_COLUMNS = "id, from_account, to_account, amount, created_at"


class PostgresRecordStore(RecordStore):
    """Parameterized statements against the `accounts` and `transactions` tables."""

    def __init__(self, conn: AsyncConnection) -> None:
        self._conn = conn

    async def _fetchone(self, sql: str, params: tuple) -> Optional[dict]:
        async with self._conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(sql, params)  # type: ignore[arg-type]
            return await cur.fetchone()

    async def _fetchall(self, sql: str, params: tuple = ()) -> List[dict]:
        async with self._conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(sql, params)  # type: ignore[arg-type]
            return await cur.fetchall()

    async def _one_account(self, sql: str, params: tuple, missing: str) -> Account:
        row = await self._fetchone(sql, params)
        if row is None:
            raise NotFoundError(missing)
        return Account.model_validate(row)

    async def create_account(self, username: str, email: str) -> Account:
        row = await self._fetchone(
            "INSERT INTO accounts (username, email, balance) VALUES (%s, %s, 0) "
            f"RETURNING {_ACCOUNT_COLUMNS};",
            (username, email or None),
        )
        return Account.model_validate(row)

    async def create_transaction(
        self, from_account: int, to_account: int, amount: int
    ) -> Transaction:
        row = await self._fetchone(
            "INSERT INTO transactions (from_account, to_account, amount) VALUES (%s, %s, %s) "
            f"RETURNING {_TRANSACTION_COLUMNS};",
            (from_account, to_account, amount),
        )
        return Transaction.model_validate(row)

    async def get_account(self, account_id: int) -> Account:
        return await self._one_account(
            f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE id = %s LIMIT 1;",
            (account_id,),
            f"account {account_id} not found",
        )

    async def get_account_by_username(self, username: str) -> Account:
        return await self._one_account(
            f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE username = %s ORDER BY id LIMIT 1;",
            (username,),
            f"account with username '{username}' not found",
        )

    async def get_account_by_email(self, email: str) -> Account:
        return await self._one_account(
            f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE email = %s ORDER BY id LIMIT 1;",
            (email,),
            f"account with email '{email}' not found",
        )

    async def list_accounts(self) -> List[Account]:
        rows = await self._fetchall(f"SELECT {_ACCOUNT_COLUMNS} FROM accounts ORDER BY id;")
        return [Account.model_validate(row) for row in rows]

    async def get_transaction(self, transaction_id: int) -> Transaction:
        row = await self._fetchone(
            f"SELECT {_TRANSACTION_COLUMNS} FROM transactions WHERE id = %s LIMIT 1;",
            (transaction_id,),
        )
        if row is None:
            raise NotFoundError(f"transaction {transaction_id} not found")
        return Transaction.model_validate(row)

    async def list_transactions(self) -> List[TransactionRow]:
        rows = await self._fetchall(
            "SELECT id AS transaction_id, from_account AS from_account_id, "
            "to_account AS to_account_id, amount, created_at "
            "FROM transactions ORDER BY id;"
        )
        return [TransactionRow.model_validate(row) for row in rows]

    async def delete_account(self, account_id: int) -> None:
        async with self._conn.cursor() as cur:
            await cur.execute("DELETE FROM accounts WHERE id = %s;", (account_id,))


class PostgresClient(ClientHandle):
    """
    ClientHandle over a single psycopg AsyncConnection.

    Build instances with `psqlledger.infrastructure.db_factory.connect_postgres`
    so connection retries and error classification are applied.
    """

    def __init__(self, conn: AsyncConnection[Any], db_name: str = "") -> None:
        self._conn = conn
        self.db_name = db_name
        self._query = PostgresRecordStore(conn)

    @property
    def closed(self) -> bool:
        return self._conn.closed

    def query(self) -> RecordStore:
        return self._query

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[RecordStore]:
        async with self._conn.transaction():
            yield self._query

    async def ping(self) -> None:
        await self._conn.execute("SELECT 1;")

    async def close(self) -> None:
        if not self._conn.closed:
            await self._conn.close()

    async def initialize_schema(self, migrations_path: str) -> List[int]:
        return await apply_migrations(self._conn, migrations_path)

    async def check_database_exists(self, db_name: str) -> bool:
        cur = await self._conn.execute(
            "SELECT EXISTS(SELECT 1 FROM pg_database WHERE datname = %s);", (db_name,)
        )
        row = await cur.fetchone()
        return bool(row and row[0])


__all__ = ["PostgresRecordStore", "PostgresClient"]
