"""
Pydantic schemas for money movement and history.

These define the API contract. Amounts arrive as decimals with
at most two places; the ledger converts them to Money.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from atm_ledger.models.enums import TransactionKind
from atm_ledger.services.transaction_log import LedgerEntry


class DepositRequest(BaseModel):
    amount: Decimal = Field(gt=0, decimal_places=2)


class WithdrawalRequest(BaseModel):
    amount: Decimal = Field(gt=0, decimal_places=2)


class TransferRequest(BaseModel):
    recipient_user_id: str = Field(min_length=1, max_length=50)
    amount: Decimal = Field(gt=0, decimal_places=2)


class BalanceResponse(BaseModel):
    """Authoritative balance returned by every money movement."""
    account_id: str
    balance: Decimal


class TransactionResponse(BaseModel):
    id: str
    account_id: str
    kind: TransactionKind
    amount: Decimal
    balance_after: Decimal
    counterparty_user_id: str | None
    description: str
    created_at: datetime

    @classmethod
    def from_entry(cls, entry: LedgerEntry) -> "TransactionResponse":
        return cls(
            id=entry.id,
            account_id=entry.account_id,
            kind=entry.kind,
            amount=entry.amount.to_decimal(),
            balance_after=entry.balance_after.to_decimal(),
            counterparty_user_id=entry.counterparty_user_id,
            description=entry.description,
            created_at=entry.created_at,
        )
