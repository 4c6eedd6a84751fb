"""
Abstract store interfaces for the ledger service.

Concrete backends (PostgreSQL, in-memory) implement RecordStore for row-level
reads and writes, and ClientHandle for the connection that owns them. Neither
is assumed to be safe for concurrent use; callers go through ClientPool, which
hands each handle to one borrower at a time.

Every method is a coroutine. Cancelling the awaiting task aborts the in-flight
call and propagates asyncio.CancelledError to the caller.
"""

from __future__ import annotations

import abc
from contextlib import AbstractAsyncContextManager
from typing import List

from psqlledger.domain.models import Account, Transaction, TransactionRow


class RecordStore(abc.ABC):
    """
    Read/write operations against persisted accounts and transactions.

    Stores perform no validation: uniqueness, amount sign and endpoint
    existence are the ledger's responsibility. Lookups raise NotFoundError when
    nothing matches; any other failure is the backend's raw error.
    """

    @abc.abstractmethod
    async def create_account(self, username: str, email: str) -> Account:
        """Insert an account with the next ID and a zero balance."""
        raise NotImplementedError

    @abc.abstractmethod
    async def create_transaction(
        self, from_account: int, to_account: int, amount: int
    ) -> Transaction:
        """Insert a transaction with the next ID."""
        raise NotImplementedError

    @abc.abstractmethod
    async def get_account(self, account_id: int) -> Account:
        raise NotImplementedError

    @abc.abstractmethod
    async def get_account_by_username(self, username: str) -> Account:
        raise NotImplementedError

    @abc.abstractmethod
    async def get_account_by_email(self, email: str) -> Account:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_accounts(self) -> List[Account]:
        """All accounts, ascending by ID."""
        raise NotImplementedError

    @abc.abstractmethod
    async def get_transaction(self, transaction_id: int) -> Transaction:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_transactions(self) -> List[TransactionRow]:
        """All transactions, ascending by ID. No per-account filter is pushed down."""
        raise NotImplementedError

    @abc.abstractmethod
    async def delete_account(self, account_id: int) -> None:
        """Remove an account; a missing ID is not an error."""
        raise NotImplementedError


class ClientHandle(abc.ABC):
    """
    One backend connection plus its lifecycle operations.

    Handles are created and owned by ClientPool. `query()` returns a store that
    commits each statement on its own; `transaction()` yields a store whose
    statements commit together when the block exits cleanly.
    """

    @abc.abstractmethod
    def query(self) -> RecordStore:
        raise NotImplementedError

    @abc.abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[RecordStore]:
        raise NotImplementedError

    @abc.abstractmethod
    async def ping(self) -> None:
        """Raise if the backend is not reachable."""
        raise NotImplementedError

    @abc.abstractmethod
    async def close(self) -> None:
        """Release the connection. Safe to call more than once."""
        raise NotImplementedError

    @abc.abstractmethod
    async def initialize_schema(self, migrations_path: str) -> List[int]:
        """Apply pending migrations under `migrations_path`; return applied versions."""
        raise NotImplementedError

    @abc.abstractmethod
    async def check_database_exists(self, db_name: str) -> bool:
        raise NotImplementedError


__all__ = ["RecordStore", "ClientHandle"]
