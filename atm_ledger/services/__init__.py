"""Business logic services."""

from atm_ledger.services.account_store import AccountStore, SqlAccountStore
from atm_ledger.services.ledger_service import LedgerService
from atm_ledger.services.session_service import SessionService
from atm_ledger.services.transaction_log import SqlTransactionLog, TransactionLog

__all__ = [
    "AccountStore",
    "LedgerService",
    "SessionService",
    "SqlAccountStore",
    "SqlTransactionLog",
    "TransactionLog",
]
