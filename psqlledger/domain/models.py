"""
Domain models for the ledger service.

Rows mirror the `accounts` and `transactions` tables created by
`db/migrations`. Field names double as the JSON names used by the HTTP layer.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator

_FROZEN = {
    "frozen": True,
    "populate_by_name": True,
    "arbitrary_types_allowed": False,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Account(BaseModel):
    """
    Representation of a single row in the `accounts` table.
    """

    id: int = Field(..., description="Primary key (BIGSERIAL).")
    username: str = Field(..., description="Unique alphanumeric handle.")
    email: str = Field("", description="Optional unique email; empty when unset.")
    balance: int = Field(0, description="Balance in minor units. Not adjusted by transfers.")
    created_at: datetime = Field(default_factory=utcnow, description="Row creation timestamp.")

    model_config = _FROZEN

    @field_validator("email", mode="before")
    @classmethod
    def _null_email(cls, value: Optional[str]) -> str:
        # NULL in the database, "" everywhere else.
        return value or ""


class Transaction(BaseModel):
    """
    Representation of a single row in the `transactions` table.
    """

    id: int = Field(..., description="Primary key (BIGSERIAL).")
    from_account: int = Field(..., description="Sending account ID.")
    to_account: int = Field(..., description="Receiving account ID.")
    amount: int = Field(..., description="Transferred amount in minor units.")
    created_at: datetime = Field(default_factory=utcnow, description="Row creation timestamp.")

    model_config = _FROZEN


class TransactionRow(BaseModel):
    """Projection returned by the transaction history query."""

    transaction_id: int
    from_account_id: int
    to_account_id: int
    amount: int
    created_at: datetime

    model_config = _FROZEN


class AccountParams(BaseModel):
    """Decoded account request payload."""

    username: str = ""
    email: str = ""

    model_config = {"frozen": True}


class TransactionParams(BaseModel):
    """Decoded transfer request payload."""

    from_account: int
    to_account: int
    amount: int

    model_config = {"frozen": True}


__all__ = [
    "Account",
    "Transaction",
    "TransactionRow",
    "AccountParams",
    "TransactionParams",
    "utcnow",
]
