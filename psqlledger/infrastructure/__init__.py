"""
Infrastructure package for the ledger service.

Centralizes database connectivity concerns (backend selection, connection
retries, pool assembly). Keep this layer focused on I/O and resource
management, decoupled from ledger and HTTP logic.
"""

from psqlledger.infrastructure.db_factory import (
    build_client_factory,
    connect_postgres,
    open_client_pool,
)

__all__ = [
    "build_client_factory",
    "connect_postgres",
    "open_client_pool",
]
