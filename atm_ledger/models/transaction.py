"""
Transaction (ledger entry) model.

Rows are written once by the ledger engine and never updated or
deleted. History is read newest first by created_at, with seq as
the tie-breaker for entries stamped in the same instant.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    String, DateTime, BigInteger, Integer, ForeignKey, Index,
    CheckConstraint, Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column

from atm_ledger.models.base import Base
from atm_ledger.models.enums import TransactionKind


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
        CheckConstraint(
            "balance_after_cents >= 0",
            name="ck_transactions_balance_after_non_negative",
        ),
        Index("ix_transactions_account_created", "account_id", "created_at"),
    )

    seq: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    id: Mapped[str] = mapped_column(
        String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4())
    )
    account_id: Mapped[str] = mapped_column(
        ForeignKey("accounts.id"), nullable=False
    )
    kind: Mapped[TransactionKind] = mapped_column(
        SAEnum(
            TransactionKind,
            name="transaction_kind_enum",
            values_callable=lambda kinds: [k.value for k in kinds],
            create_constraint=True,
        ),
        nullable=False,
    )
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    counterparty_user_id: Mapped[str | None] = mapped_column(
        String(50), nullable=True
    )
    balance_after_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    def __repr__(self) -> str:
        return (
            f"<Transaction {self.kind.value} "
            f"{self.amount_cents} cents>"
        )
