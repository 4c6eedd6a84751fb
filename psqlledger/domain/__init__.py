"""
Domain package for the ledger service.

Exports the account and transaction models shared by the stores, the ledger
operations and the HTTP layer. Keep this package focused on data definitions.
"""

from psqlledger.domain.models import (
    Account,
    AccountParams,
    Transaction,
    TransactionParams,
    TransactionRow,
)

__all__ = [
    "Account",
    "AccountParams",
    "Transaction",
    "TransactionParams",
    "TransactionRow",
]
