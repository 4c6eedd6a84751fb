"""
Ledger operations: the rules enforced above the raw record stores.

Every store call borrows its own handle from the pool and returns it straight
away, so the uniqueness probes and the insert in `create_account` are three
separate round-trips. Two concurrent creations of the same username can both
pass the probes; with the shipped migration the backend's UNIQUE constraint
turns the loser's insert into a ConflictError, while the in-memory backend
will store both rows.

Transfers are recorded but balances are not moved.
"""

from __future__ import annotations

import re
from contextlib import asynccontextmanager, contextmanager
from typing import AsyncIterator, Iterator, List

import psycopg
from psycopg import errors as pg_errors

from psqlledger.database.pool import ClientPool
from psqlledger.database.store import RecordStore
from psqlledger.domain.models import Account, AccountParams, Transaction, TransactionParams, TransactionRow
from psqlledger.errors import (
    ConflictError,
    ConnectivityError,
    LedgerError,
    NotFoundError,
    ValidationError,
)
from psqlledger.utils.logging import get_logger

log = get_logger(__name__)

# e.g. alex@emailprovider.com is valid, dhd$@xyz.com is not.
EMAIL_PATTERN = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
# e.g. user105
USERNAME_PATTERN = r"^[a-zA-Z0-9]+$"


def _check_pattern(field: str, value: str, pattern: str) -> None:
    if re.fullmatch(pattern, value) is None:
        raise ValidationError(f"invalid {field}: '{value}' failed to match expression '{pattern}'")


def validate_account_params(params: AccountParams) -> None:
    """Check the non-empty username and email fields against their patterns."""
    if params.email:
        _check_pattern("email", params.email, EMAIL_PATTERN)
    if params.username:
        _check_pattern("username", params.username, USERNAME_PATTERN)


def _unique_violation_message(exc: pg_errors.UniqueViolation) -> str:
    constraint = (exc.diag.constraint_name or "") if exc.diag else ""
    if "email" in constraint:
        return "email already exists"
    if "username" in constraint:
        return "username already exists"
    return "record already exists"


@contextmanager
def classify_errors() -> Iterator[None]:
    """Translate driver errors raised inside the block into the ledger taxonomy."""
    try:
        yield
    except LedgerError:
        raise
    except pg_errors.UniqueViolation as exc:
        raise ConflictError(_unique_violation_message(exc)) from exc
    except pg_errors.ForeignKeyViolation as exc:
        raise ValidationError(f"referenced account does not exist: {exc}") from exc
    except (psycopg.OperationalError, psycopg.InterfaceError) as exc:
        raise ConnectivityError(f"database unreachable: {exc}") from exc


class LedgerService:
    """
    Account and transfer operations over a ClientPool.

    Safe to call from any number of concurrent tasks; the pool bounds how many
    reach the backend at once.
    """

    def __init__(self, pool: ClientPool) -> None:
        self._pool = pool

    @property
    def pool(self) -> ClientPool:
        return self._pool

    @asynccontextmanager
    async def _store(self, transactional: bool = False) -> AsyncIterator[RecordStore]:
        with classify_errors():
            async with self._pool.borrow() as handle:
                if transactional:
                    async with handle.transaction() as store:
                        yield store
                else:
                    yield handle.query()

    @staticmethod
    def _found(account: Account) -> Account:
        # A zero ID is what an empty row decodes to.
        if account.id == 0:
            raise NotFoundError("account not found")
        return account

    async def _username_taken(self, username: str) -> bool:
        try:
            async with self._store() as store:
                self._found(await store.get_account_by_username(username))
        except NotFoundError:
            return False
        return True

    async def _email_taken(self, email: str) -> bool:
        try:
            async with self._store() as store:
                self._found(await store.get_account_by_email(email))
        except NotFoundError:
            return False
        return True

    # Write operations

    async def create_account(self, params: AccountParams) -> Account:
        """
        Register a new account with a zero balance.

        Raises
        ------
        ValidationError
            Missing username, or a field failing its pattern.
        ConflictError
            Username or email already registered.
        ConnectivityError
            Backend unreachable.
        """
        validate_account_params(params)
        if not params.username:
            raise ValidationError("username is required")
        if await self._username_taken(params.username):
            raise ConflictError("username already exists")
        if params.email and await self._email_taken(params.email):
            raise ConflictError("email already exists")

        async with self._store(transactional=True) as store:
            account = await store.create_account(params.username, params.email)
        log.info("Account created", extra={"account_id": account.id, "username": account.username})
        return account

    async def create_transaction(self, params: TransactionParams) -> Transaction:
        """
        Record a transfer between two existing, distinct accounts.

        No transaction ID is allocated when validation fails. Account balances
        are left untouched.
        """
        if params.amount <= 0:
            raise ValidationError(f"cannot send non-positive amount '{params.amount}'")
        if params.from_account == params.to_account:
            raise ValidationError(
                f"cannot send from account {params.from_account} to itself"
            )
        for role, account_id in (("from", params.from_account), ("to", params.to_account)):
            try:
                await self.account_by_id(account_id)
            except (NotFoundError, ValidationError) as exc:
                raise ValidationError(f"{role} account {account_id} does not exist") from exc

        async with self._store(transactional=True) as store:
            tx = await store.create_transaction(
                params.from_account, params.to_account, params.amount
            )
        log.info(
            "Transaction recorded",
            extra={
                "transaction_id": tx.id,
                "from_account": tx.from_account,
                "to_account": tx.to_account,
                "amount": tx.amount,
            },
        )
        return tx

    async def delete_account(self, account_id: int) -> None:
        async with self._store() as store:
            await store.delete_account(account_id)

    # Read operations

    async def account_by_id(self, account_id: int) -> Account:
        if account_id == 0:
            raise ValidationError("cannot supply account ID = 0")
        async with self._store() as store:
            return self._found(await store.get_account(account_id))

    async def account_by_username(self, username: str) -> Account:
        if not username:
            raise ValidationError("username is required")
        validate_account_params(AccountParams(username=username))
        async with self._store() as store:
            return self._found(await store.get_account_by_username(username))

    async def account_by_email(self, email: str) -> Account:
        if not email:
            raise ValidationError("email is required")
        validate_account_params(AccountParams(email=email))
        async with self._store() as store:
            return self._found(await store.get_account_by_email(email))

    async def list_accounts(self) -> List[Account]:
        async with self._store() as store:
            return await store.list_accounts()

    async def transaction_by_id(self, transaction_id: int) -> Transaction:
        async with self._store() as store:
            return await store.get_transaction(transaction_id)

    async def transaction_history(self, account_id: int) -> List[TransactionRow]:
        """Transactions sent or received by `account_id`, oldest first."""
        async with self._store() as store:
            rows = await store.list_transactions()
        # Filtered here; the store has no per-account query.
        return [
            row
            for row in rows
            if row.from_account_id == account_id or row.to_account_id == account_id
        ]

    async def health(self) -> List[str]:
        """Ping the backend through the pool; return failure descriptions."""
        failures: List[str] = []
        try:
            with classify_errors():
                await self._pool.ping()
        except Exception as exc:  # noqa: BLE001 - health reports failures instead of raising
            failures.append(f"DB: {exc}")
        return failures


__all__ = [
    "EMAIL_PATTERN",
    "USERNAME_PATTERN",
    "LedgerService",
    "classify_errors",
    "validate_account_params",
]
