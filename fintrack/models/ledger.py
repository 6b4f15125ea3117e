"""
Ledger Models

Transactions and balances are owned by the bookkeeping side of the app.
The analytics engine only reads them; nothing here is written by this
package.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import Field, field_validator

from fintrack.models.base import DocumentModel, ensure_utc


class TransactionType(str, Enum):
    """
    Transaction kinds.

    Only income and expense change the total balance. Transfers move money
    between the user's own accounts and partition_* entries move money
    between an account and its sub-accounts.
    """
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"
    PARTITION_CREATION = "partition_creation"
    PARTITION_TRANSFER_TO = "partition_transfer_to"
    PARTITION_TRANSFER_FROM = "partition_transfer_from"

    @property
    def is_partition(self) -> bool:
        return self.value.startswith("partition")


class Transaction(DocumentModel):
    """A single ledger entry."""

    type: TransactionType
    amount: Decimal = Field(..., ge=0)
    date: datetime

    user_id: Optional[str] = None
    account_id: Optional[str] = None
    to_account_id: Optional[str] = None
    shared_account_id: Optional[str] = None
    is_shared_account_transaction: bool = False

    category: Optional[str] = None
    note: Optional[str] = None
    is_recurring: bool = False

    @field_validator('date')
    @classmethod
    def normalize_date(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def signed_delta(self) -> Decimal:
        """Effect on the total balance."""
        if self.type == TransactionType.INCOME:
            return self.amount
        if self.type == TransactionType.EXPENSE:
            return -self.amount
        return Decimal("0")


class PersonalAccount(DocumentModel):
    """A user's own (non-shared) account; only balances matter here."""

    user_id: Optional[str] = None
    name: str = Field(default="")
    current_balance: Decimal = Field(default=Decimal("0"))
    initial_balance: Decimal = Field(default=Decimal("0"))
    color: Optional[str] = None


class SubAccount(DocumentModel):
    """A partition of a personal account."""

    user_id: Optional[str] = None
    parent_account_id: str
    name: str = Field(default="")
    balance: Decimal = Field(default=Decimal("0"))
