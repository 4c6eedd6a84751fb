"""
Data access package for the ledger service.

Exports the store interfaces, both backends and the client pool. Keep this
layer focused on I/O and resource management; business rules live in
`psqlledger.ledger`.
"""

from psqlledger.database.memory import MemoryClient, MemoryRecordStore, MemoryStore
from psqlledger.database.pool import ClientFactory, ClientPool
from psqlledger.database.postgres import PostgresClient, PostgresRecordStore
from psqlledger.database.store import ClientHandle, RecordStore

__all__ = [
    # Abstracts
    "ClientHandle",
    "RecordStore",
    # Backends
    "MemoryClient",
    "MemoryRecordStore",
    "MemoryStore",
    "PostgresClient",
    "PostgresRecordStore",
    # Pooling
    "ClientFactory",
    "ClientPool",
]
