"""
Service wiring for the API layer.

Each request gets services built on the SQL stores. The session
factory is itself a dependency, so tests can point the whole
application at another database.
"""

from fastapi import Depends
from sqlalchemy.orm import sessionmaker

from atm_ledger.models.base import get_session_factory
from atm_ledger.services.account_store import SqlAccountStore
from atm_ledger.services.ledger_service import LedgerService
from atm_ledger.services.session_service import SessionService
from atm_ledger.services.transaction_log import SqlTransactionLog


def get_ledger_service(
    session_factory: sessionmaker = Depends(get_session_factory),
) -> LedgerService:
    return LedgerService(
        SqlAccountStore(session_factory),
        SqlTransactionLog(session_factory),
    )


def get_session_service(
    session_factory: sessionmaker = Depends(get_session_factory),
) -> SessionService:
    return SessionService(SqlAccountStore(session_factory))
