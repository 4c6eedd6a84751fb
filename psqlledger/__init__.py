"""
psqlledger - account and transfer ledger backed by PostgreSQL.

The package is organised around its data-access core:

- Record stores for PostgreSQL and an in-memory backend
- A fixed-size client pool serializing access to backend connections
- Ledger operations enforcing uniqueness, amount and endpoint rules
- A thin FastAPI layer and a typer CLI on top
"""

from __future__ import annotations

__license__ = "MIT"

# Public API exports
from psqlledger.config import Settings, build_dsn, get_settings
from psqlledger.database import (
    ClientHandle,
    ClientPool,
    MemoryClient,
    MemoryStore,
    PostgresClient,
    RecordStore,
)
from psqlledger.domain import Account, AccountParams, Transaction, TransactionParams, TransactionRow
from psqlledger.errors import (
    ConflictError,
    ConnectivityError,
    LedgerError,
    NotFoundError,
    ValidationError,
)
from psqlledger.infrastructure import open_client_pool
from psqlledger.ledger import LedgerService
from psqlledger.utils.logging import configure_logging, get_logger
from psqlledger.version import VERSION as __version__

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "build_dsn",
    "get_settings",
    # Data access
    "ClientHandle",
    "ClientPool",
    "MemoryClient",
    "MemoryStore",
    "PostgresClient",
    "RecordStore",
    "open_client_pool",
    # Domain
    "Account",
    "AccountParams",
    "Transaction",
    "TransactionParams",
    "TransactionRow",
    # Ledger
    "LedgerService",
    # Errors
    "LedgerError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "ConnectivityError",
    # Logging
    "configure_logging",
    "get_logger",
]
