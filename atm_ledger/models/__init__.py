"""
Database models package.

All models must be imported here so that Alembic can discover
them through Base.metadata when generating migrations.
"""

from atm_ledger.models.base import Base
from atm_ledger.models.enums import TransactionKind
from atm_ledger.models.account import Account
from atm_ledger.models.transaction import Transaction

__all__ = [
    "Base",
    "TransactionKind",
    "Account",
    "Transaction",
]
