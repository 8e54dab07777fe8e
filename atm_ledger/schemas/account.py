"""
Pydantic schemas for login and account inquiry.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from atm_ledger.services.account_store import AccountSnapshot


class LoginRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=50)
    pin: str = Field(min_length=1, max_length=20)


class AccountResponse(BaseModel):
    id: str
    user_id: str
    holder_name: str
    balance: Decimal
    updated_at: datetime

    @classmethod
    def from_snapshot(cls, account: AccountSnapshot) -> "AccountResponse":
        return cls(
            id=account.id,
            user_id=account.user_id,
            holder_name=account.holder_name,
            balance=account.balance.to_decimal(),
            updated_at=account.updated_at,
        )
