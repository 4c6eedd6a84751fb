"""
In-memory backend for tests and local development.

A MemoryStore owns the account and transaction maps; every MemoryClient built
over the same store sees the same rows. Nothing here is synchronized. Mutations
never await, so each completes in one step on the event loop, and ClientPool
keeps any single handle with one borrower at a time.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List

from psqlledger.database.store import ClientHandle, RecordStore
from psqlledger.domain.models import Account, Transaction, TransactionRow, utcnow
from psqlledger.errors import NotFoundError


@dataclass
class MemoryStore:
    """Rows keyed by ID plus the counters that hand out the next ID."""

    accounts: Dict[int, Account] = field(default_factory=dict)
    transactions: Dict[int, Transaction] = field(default_factory=dict)
    last_account_id: int = 0
    last_transaction_id: int = 0


class MemoryRecordStore(RecordStore):
    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    async def create_account(self, username: str, email: str) -> Account:
        # count + 1 while nothing has been deleted; the counter keeps IDs unique after a delete.
        self._store.last_account_id += 1
        account = Account(
            id=self._store.last_account_id,
            username=username,
            email=email,
            balance=0,
            created_at=utcnow(),
        )
        self._store.accounts[account.id] = account
        return account

    async def create_transaction(
        self, from_account: int, to_account: int, amount: int
    ) -> Transaction:
        self._store.last_transaction_id += 1
        tx = Transaction(
            id=self._store.last_transaction_id,
            from_account=from_account,
            to_account=to_account,
            amount=amount,
            created_at=utcnow(),
        )
        self._store.transactions[tx.id] = tx
        return tx

    async def get_account(self, account_id: int) -> Account:
        try:
            return self._store.accounts[account_id]
        except KeyError:
            raise NotFoundError(f"account {account_id} not found") from None

    async def get_account_by_username(self, username: str) -> Account:
        for account in await self.list_accounts():
            if account.username == username:
                return account
        raise NotFoundError(f"account with username '{username}' not found")

    async def get_account_by_email(self, email: str) -> Account:
        for account in await self.list_accounts():
            if account.email == email:
                return account
        raise NotFoundError(f"account with email '{email}' not found")

    async def list_accounts(self) -> List[Account]:
        return sorted(self._store.accounts.values(), key=lambda a: a.id)

    async def get_transaction(self, transaction_id: int) -> Transaction:
        try:
            return self._store.transactions[transaction_id]
        except KeyError:
            raise NotFoundError(f"transaction {transaction_id} not found") from None

    async def list_transactions(self) -> List[TransactionRow]:
        return [
            TransactionRow(
                transaction_id=tx.id,
                from_account_id=tx.from_account,
                to_account_id=tx.to_account,
                amount=tx.amount,
                created_at=tx.created_at,
            )
            for tx in sorted(self._store.transactions.values(), key=lambda t: t.id)
        ]

    async def delete_account(self, account_id: int) -> None:
        self._store.accounts.pop(account_id, None)


class MemoryClient(ClientHandle):
    """ClientHandle over a shared MemoryStore. Lifecycle calls are no-ops."""

    def __init__(self, store: MemoryStore | None = None) -> None:
        self.store = store if store is not None else MemoryStore()
        self._query = MemoryRecordStore(self.store)

    def query(self) -> RecordStore:
        return self._query

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[RecordStore]:
        # No rollback: the maps have no undo log.
        yield self._query

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def initialize_schema(self, migrations_path: str) -> List[int]:
        return []

    async def check_database_exists(self, db_name: str) -> bool:
        return True


__all__ = ["MemoryStore", "MemoryRecordStore", "MemoryClient"]
