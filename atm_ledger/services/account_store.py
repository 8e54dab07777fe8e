"""
Account store — read and conditionally update single account records.

The ledger engine is the only writer. It never overwrites a balance
blindly: set_balance takes the balance the engine last observed and
is rejected with BalanceConflict if the stored value has moved on.
That compare-and-swap is the whole concurrency story for accounts;
there is no cross-record transaction.

Every successful write bumps the account's version by one and stamps
the writer's write id on it. A writer whose call failed without an
answer can read the account back and tell from those two fields
whether its own write landed.
"""

import hmac
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from atm_ledger.errors import AccountNotFound, BalanceConflict, StorageError
from atm_ledger.models.account import Account
from atm_ledger.money import Money


@dataclass(frozen=True)
class AccountSnapshot:
    """An account as read from the store at one point in time."""
    id: str
    user_id: str
    holder_name: str
    balance: Money
    updated_at: datetime
    version: int = 0
    write_id: str | None = None


def next_timestamp(previous: datetime) -> datetime:
    """Return now, or one microsecond past `previous` if the clock lags."""
    now = datetime.utcnow()
    if now <= previous:
        now = previous + timedelta(microseconds=1)
    return now


class AccountStore(ABC):
    """Interface the ledger engine consumes for account records."""

    @abstractmethod
    def get(self, account_id: str) -> AccountSnapshot:
        """Return the account or raise AccountNotFound."""

    @abstractmethod
    def get_by_user_id(self, user_id: str) -> AccountSnapshot:
        """Return the account with this user-facing id or raise AccountNotFound."""

    @abstractmethod
    def set_balance(
        self,
        account_id: str,
        new_balance: Money,
        expected_balance: Money,
        expected_version: int | None = None,
        write_id: str | None = None,
    ) -> AccountSnapshot:
        """
        Replace the balance if it still equals expected_balance.

        If expected_version is given the account must also still be
        at that version. The write stores version + 1 and write_id
        (a fresh id when none is given).

        Returns the updated snapshot, whose updated_at is strictly
        later than the one it replaced. Raises BalanceConflict,
        AccountNotFound or StorageError.
        """

    @abstractmethod
    def check_pin(self, user_id: str, pin: str) -> bool:
        """Compare a PIN against the stored one for this user id."""


def _pins_match(stored: str, given: str) -> bool:
    return hmac.compare_digest(stored.encode("utf-8"), given.encode("utf-8"))


def _reject_negative(account_id: str, new_balance: Money) -> None:
    if new_balance.is_negative():
        raise ValueError(
            f"Refusing to store negative balance {new_balance} "
            f"for account {account_id}"
        )


class InMemoryAccountStore(AccountStore):
    """Thread-safe in-process store, used by tests and demos."""

    def __init__(self):
        self._accounts: dict[str, AccountSnapshot] = {}
        self._pins: dict[str, str] = {}
        self._lock = threading.RLock()

    def add_account(
        self,
        account_id: str,
        user_id: str,
        holder_name: str,
        balance: Money | str = "0",
        pin: str = "0000",
    ) -> AccountSnapshot:
        """Provision an account. Not part of the engine's interface."""
        balance = Money.parse(balance, positive=False)
        _reject_negative(account_id, balance)
        with self._lock:
            if account_id in self._accounts:
                raise ValueError(f"Account {account_id} already exists")
            if any(a.user_id == user_id for a in self._accounts.values()):
                raise ValueError(f"User id '{user_id}' already exists")
            snapshot = AccountSnapshot(
                id=account_id,
                user_id=user_id,
                holder_name=holder_name,
                balance=balance,
                updated_at=datetime.utcnow(),
            )
            self._accounts[account_id] = snapshot
            self._pins[user_id] = pin
            return snapshot

    def get(self, account_id: str) -> AccountSnapshot:
        with self._lock:
            account = self._accounts.get(account_id)
        if account is None:
            raise AccountNotFound(f"Account {account_id} not found")
        return account

    def get_by_user_id(self, user_id: str) -> AccountSnapshot:
        with self._lock:
            for account in self._accounts.values():
                if account.user_id == user_id:
                    return account
        raise AccountNotFound(f"No account for user id '{user_id}'")

    def set_balance(
        self,
        account_id: str,
        new_balance: Money,
        expected_balance: Money,
        expected_version: int | None = None,
        write_id: str | None = None,
    ) -> AccountSnapshot:
        _reject_negative(account_id, new_balance)
        with self._lock:
            current = self._accounts.get(account_id)
            if current is None:
                raise AccountNotFound(f"Account {account_id} not found")
            if current.balance != expected_balance:
                raise BalanceConflict(account_id)
            if expected_version is not None and current.version != expected_version:
                raise BalanceConflict(account_id)
            updated = replace(
                current,
                balance=new_balance,
                updated_at=next_timestamp(current.updated_at),
                version=current.version + 1,
                write_id=write_id or str(uuid.uuid4()),
            )
            self._accounts[account_id] = updated
            return updated

    def check_pin(self, user_id: str, pin: str) -> bool:
        with self._lock:
            stored = self._pins.get(user_id)
        return stored is not None and _pins_match(stored, pin)


class SqlAccountStore(AccountStore):
    """
    Account store backed by the `accounts` table.

    Each call opens and closes its own session, so one store call
    is one request/response round trip with a bounded timeout.
    Any SQLAlchemy failure, timeouts included, is a StorageError.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @staticmethod
    def _to_snapshot(row: Account) -> AccountSnapshot:
        return AccountSnapshot(
            id=row.id,
            user_id=row.user_id,
            holder_name=row.holder_name,
            balance=Money.from_cents(row.balance_cents),
            updated_at=row.updated_at,
            version=row.version,
            write_id=row.last_write_id,
        )

    def get(self, account_id: str) -> AccountSnapshot:
        try:
            with self._session_factory() as session:
                row = session.get(Account, account_id)
        except SQLAlchemyError as exc:
            raise StorageError(f"Reading account {account_id} failed") from exc
        if row is None:
            raise AccountNotFound(f"Account {account_id} not found")
        return self._to_snapshot(row)

    def get_by_user_id(self, user_id: str) -> AccountSnapshot:
        try:
            with self._session_factory() as session:
                row = session.execute(
                    select(Account).where(Account.user_id == user_id)
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageError(f"Looking up user id '{user_id}' failed") from exc
        if row is None:
            raise AccountNotFound(f"No account for user id '{user_id}'")
        return self._to_snapshot(row)

    def set_balance(
        self,
        account_id: str,
        new_balance: Money,
        expected_balance: Money,
        expected_version: int | None = None,
        write_id: str | None = None,
    ) -> AccountSnapshot:
        """
        Conditional single-row update.

        The WHERE clause pins both the expected balance and the
        version, so the write is rejected if anyone else wrote in
        between, even if the balance went A->B->A.
        """
        _reject_negative(account_id, new_balance)
        write_id = write_id or str(uuid.uuid4())
        try:
            with self._session_factory() as session:
                row = session.get(Account, account_id)
                if row is None:
                    raise AccountNotFound(f"Account {account_id} not found")
                if row.balance_cents != expected_balance.cents:
                    raise BalanceConflict(account_id)
                pinned_version = (
                    expected_version if expected_version is not None else row.version
                )
                if row.version != pinned_version:
                    raise BalanceConflict(account_id)

                applied_at = next_timestamp(row.updated_at)
                result = session.execute(
                    update(Account)
                    .where(
                        Account.id == account_id,
                        Account.balance_cents == expected_balance.cents,
                        Account.version == pinned_version,
                    )
                    .values(
                        balance_cents=new_balance.cents,
                        updated_at=applied_at,
                        version=pinned_version + 1,
                        last_write_id=write_id,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    session.rollback()
                    raise BalanceConflict(account_id)
                session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Updating account {account_id} failed") from exc

        return AccountSnapshot(
            id=row.id,
            user_id=row.user_id,
            holder_name=row.holder_name,
            balance=new_balance,
            updated_at=applied_at,
            version=pinned_version + 1,
            write_id=write_id,
        )

    def check_pin(self, user_id: str, pin: str) -> bool:
        try:
            with self._session_factory() as session:
                stored = session.execute(
                    select(Account.pin).where(Account.user_id == user_id)
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageError(f"Looking up user id '{user_id}' failed") from exc
        return stored is not None and _pins_match(stored, pin)
