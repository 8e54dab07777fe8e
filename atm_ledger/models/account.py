"""
Account model.

The balance is stored in integer cents and is only ever changed
through a conditional update that names the balance and version the
writer last observed (see SqlAccountStore.set_balance). Each update
bumps version by one and stamps last_write_id with the writer's id.
"""

import uuid
from datetime import datetime

from sqlalchemy import String, DateTime, BigInteger, Integer, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from atm_ledger.models.base import Base


class Account(Base):
    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint("balance_cents >= 0", name="ck_accounts_balance_non_negative"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )
    pin: Mapped[str] = mapped_column(String(20), nullable=False)
    holder_name: Mapped[str] = mapped_column(String(100), nullable=False)
    balance_cents: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_write_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<Account {self.user_id} ({self.balance_cents} cents)>"
