"""
Demo accounts.

Accounts are provisioned outside the ledger engine. This module
creates the three test accounts the ATM front end advertises so
a fresh database is usable straight away:

    python -m atm_ledger.seed
"""

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from atm_ledger.config import get_settings
from atm_ledger.logging_config import setup_logging
from atm_ledger.models.account import Account
from atm_ledger.models.base import Base, SessionLocal, engine
from atm_ledger.money import Money

logger = logging.getLogger(__name__)

DEMO_ACCOUNTS = [
    {"user_id": "user001", "pin": "1234", "holder_name": "John Doe", "balance": "5000.00"},
    {"user_id": "user002", "pin": "5678", "holder_name": "Jane Smith", "balance": "3500.00"},
    {"user_id": "user003", "pin": "9012", "holder_name": "Bob Johnson", "balance": "10000.00"},
]


def seed_demo_accounts(session: Session) -> list[Account]:
    """
    Create any demo account that does not exist yet.

    Existing accounts are left untouched, so running this twice
    does not reset balances. The caller commits.
    """
    created = []
    for demo in DEMO_ACCOUNTS:
        existing = session.execute(
            select(Account).where(Account.user_id == demo["user_id"])
        ).scalar_one_or_none()
        if existing:
            continue

        account = Account(
            user_id=demo["user_id"],
            pin=demo["pin"],
            holder_name=demo["holder_name"],
            balance_cents=Money.parse(Decimal(demo["balance"]), positive=False).cents,
        )
        session.add(account)
        created.append(account)

    session.flush()
    return created


def main() -> None:
    setup_logging(get_settings().LOG_LEVEL)
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        created = seed_demo_accounts(session)
        session.commit()
    logger.info("Seeded %d demo accounts", len(created))


if __name__ == "__main__":
    main()
