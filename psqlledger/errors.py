"""
Error taxonomy for the ledger service.

Ledger operations raise these instead of raw driver errors so the HTTP layer
can map them onto status codes without knowing which backend is in use:

- ValidationError   -> client error (bad input shape or value)
- ConflictError     -> client error (uniqueness violation)
- NotFoundError     -> not found
- ConnectivityError -> server error (backend unreachable; retry with backoff)
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all errors raised by the ledger core."""


class ValidationError(LedgerError):
    """Input failed a shape or value check."""


class ConflictError(LedgerError):
    """A unique field is already registered."""


class NotFoundError(LedgerError):
    """No row matched the lookup."""


class ConnectivityError(LedgerError):
    """The backend could not be reached."""


class PoolClosedError(LedgerError):
    """Borrow attempted on a pool that has been closed."""


class MigrationError(LedgerError):
    """Schema migrations could not be discovered or applied."""


__all__ = [
    "LedgerError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "ConnectivityError",
    "PoolClosedError",
    "MigrationError",
]
