"""
Transaction log — append-only ledger entries.

Entries are never updated or deleted. History comes back newest
first as an EntryListing: a lazy, paged sequence that fetches
pages on demand and starts over from the newest entry every time
it is iterated.
"""

import itertools
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterator, Sequence

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from atm_ledger.config import get_settings
from atm_ledger.errors import StorageError
from atm_ledger.models.enums import TransactionKind
from atm_ledger.models.transaction import Transaction
from atm_ledger.money import Money


@dataclass(frozen=True)
class NewEntry:
    """A ledger entry that has not been written yet."""
    account_id: str
    kind: TransactionKind
    amount: Money
    balance_after: Money
    description: str
    created_at: datetime
    counterparty_user_id: str | None = None

    def __post_init__(self):
        if self.amount.cents <= 0:
            raise ValueError("Ledger entry amount must be positive")
        if self.balance_after.is_negative():
            raise ValueError("Ledger entry balance_after must not be negative")
        if self.kind.is_transfer != (self.counterparty_user_id is not None):
            raise ValueError(
                "counterparty_user_id is required for transfer entries "
                "and forbidden otherwise"
            )


@dataclass(frozen=True)
class LedgerEntry:
    """A written, immutable ledger entry."""
    id: str
    account_id: str
    kind: TransactionKind
    amount: Money
    balance_after: Money
    counterparty_user_id: str | None
    description: str
    created_at: datetime

    @property
    def signed_amount(self) -> Money:
        return self.amount if self.kind.is_credit else -self.amount


class EntryListing:
    """
    Newest-first entries for one account, fetched a page at a time.

    Iterating calls fetch_page(offset, limit) until a short page
    comes back. Nothing is cached between iterations, so each
    iteration reflects the log as it is at that moment.
    """

    def __init__(
        self,
        fetch_page: Callable[[int, int], Sequence[LedgerEntry]],
        page_size: int,
    ):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self._fetch_page = fetch_page
        self.page_size = page_size

    def __iter__(self) -> Iterator[LedgerEntry]:
        offset = 0
        while True:
            page = self._fetch_page(offset, self.page_size)
            yield from page
            if len(page) < self.page_size:
                return
            offset += len(page)

    def first(self, limit: int) -> list[LedgerEntry]:
        """The `limit` newest entries."""
        return list(itertools.islice(iter(self), limit))


class TransactionLog(ABC):
    """Interface the ledger engine consumes for ledger entries."""

    @abstractmethod
    def append(self, entry: NewEntry) -> LedgerEntry:
        """Durably write one entry or raise StorageError."""

    @abstractmethod
    def append_batch(self, entries: Sequence[NewEntry]) -> list[LedgerEntry]:
        """Write all entries or none of them; raise StorageError on failure."""

    @abstractmethod
    def list_for_account(
        self, account_id: str, page_size: int | None = None
    ) -> EntryListing:
        """Entries for an account, newest first."""


def _default_page_size(page_size: int | None) -> int:
    return page_size if page_size is not None else get_settings().HISTORY_PAGE_SIZE


class InMemoryTransactionLog(TransactionLog):
    """Thread-safe in-process log, used by tests and demos."""

    def __init__(self):
        # (sequence, entry) pairs in append order
        self._entries: list[tuple[int, LedgerEntry]] = []
        self._sequence = itertools.count(1)
        self._lock = threading.Lock()

    @staticmethod
    def _materialize(entry: NewEntry) -> LedgerEntry:
        return LedgerEntry(
            id=str(uuid.uuid4()),
            account_id=entry.account_id,
            kind=entry.kind,
            amount=entry.amount,
            balance_after=entry.balance_after,
            counterparty_user_id=entry.counterparty_user_id,
            description=entry.description,
            created_at=entry.created_at,
        )

    def append(self, entry: NewEntry) -> LedgerEntry:
        return self.append_batch([entry])[0]

    def append_batch(self, entries: Sequence[NewEntry]) -> list[LedgerEntry]:
        written = [self._materialize(e) for e in entries]
        with self._lock:
            self._entries.extend((next(self._sequence), e) for e in written)
        return written

    def _page(self, account_id: str, offset: int, limit: int) -> list[LedgerEntry]:
        with self._lock:
            matching = [
                (seq, e) for seq, e in self._entries if e.account_id == account_id
            ]
        matching.sort(key=lambda pair: (pair[1].created_at, pair[0]), reverse=True)
        return [e for _, e in matching[offset:offset + limit]]

    def list_for_account(
        self, account_id: str, page_size: int | None = None
    ) -> EntryListing:
        return EntryListing(
            lambda offset, limit: self._page(account_id, offset, limit),
            _default_page_size(page_size),
        )

    def count(self) -> int:
        with self._lock:
            return len(self._entries)


class SqlTransactionLog(TransactionLog):
    """
    Transaction log backed by the `transactions` table.

    A batch is written in a single database transaction, which is
    what makes the two halves of a transfer all-or-nothing.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @staticmethod
    def _to_entry(row: Transaction) -> LedgerEntry:
        return LedgerEntry(
            id=row.id,
            account_id=row.account_id,
            kind=row.kind,
            amount=Money.from_cents(row.amount_cents),
            balance_after=Money.from_cents(row.balance_after_cents),
            counterparty_user_id=row.counterparty_user_id,
            description=row.description,
            created_at=row.created_at,
        )

    def append(self, entry: NewEntry) -> LedgerEntry:
        return self.append_batch([entry])[0]

    def append_batch(self, entries: Sequence[NewEntry]) -> list[LedgerEntry]:
        rows = [
            Transaction(
                id=str(uuid.uuid4()),
                account_id=e.account_id,
                kind=e.kind,
                amount_cents=e.amount.cents,
                counterparty_user_id=e.counterparty_user_id,
                balance_after_cents=e.balance_after.cents,
                description=e.description,
                created_at=e.created_at,
            )
            for e in entries
        ]
        try:
            with self._session_factory() as session:
                with session.begin():
                    session.add_all(rows)
        except SQLAlchemyError as exc:
            raise StorageError(
                f"Appending {len(rows)} ledger entries failed"
            ) from exc
        return [self._to_entry(row) for row in rows]

    def _page(self, account_id: str, offset: int, limit: int) -> list[LedgerEntry]:
        try:
            with self._session_factory() as session:
                rows = session.execute(
                    select(Transaction)
                    .where(Transaction.account_id == account_id)
                    .order_by(Transaction.created_at.desc(), Transaction.seq.desc())
                    .offset(offset)
                    .limit(limit)
                ).scalars().all()
        except SQLAlchemyError as exc:
            raise StorageError(
                f"Reading history for account {account_id} failed"
            ) from exc
        return [self._to_entry(row) for row in rows]

    def list_for_account(
        self, account_id: str, page_size: int | None = None
    ) -> EntryListing:
        return EntryListing(
            lambda offset, limit: self._page(account_id, offset, limit),
            _default_page_size(page_size),
        )

    def count(self) -> int:
        try:
            with self._session_factory() as session:
                return session.execute(
                    select(func.count()).select_from(Transaction)
                ).scalar_one()
        except SQLAlchemyError as exc:
            raise StorageError("Counting ledger entries failed") from exc
