"""
Ledger service — the core of the ATM ledger.

This service enforces the fundamental rules:
1. A balance is never negative after a committed operation
2. Every balance change is recorded by exactly one ledger entry
   whose balance_after is the balance that change produced
3. A transfer moves the same amount out of one account and into
   another, or moves nothing at all
4. Entries are immutable (append-only)

The backing store has no multi-record transaction. Every balance
change is a compare-and-swap against the balance and version we
last read, retried a bounded number of times on conflict. Anything already
applied when a later step fails is reversed with a compensating
change before the failure is reported.

No other component writes balances or ledger entries.
"""

import enum
import logging
import uuid
from dataclasses import dataclass

from atm_ledger.config import get_settings
from atm_ledger.errors import (
    AccountNotFound,
    BalanceConflict,
    Contention,
    InsufficientFunds,
    LedgerError,
    ReconciliationRequired,
    RecipientNotFound,
    SelfTransferNotAllowed,
    StorageError,
    TransferAborted,
)
from atm_ledger.models.enums import TransactionKind
from atm_ledger.money import Money
from atm_ledger.services.account_store import AccountSnapshot, AccountStore
from atm_ledger.services.transaction_log import (
    EntryListing,
    LedgerEntry,
    NewEntry,
    TransactionLog,
)

logger = logging.getLogger(__name__)


class OperationState(str, enum.Enum):
    VALIDATING = "VALIDATING"
    APPLYING = "APPLYING"
    COMMITTED = "COMMITTED"
    FAILED = "FAILED"


# Valid state transitions for the operation lifecycle
VALID_TRANSITIONS: dict[OperationState, set[OperationState]] = {
    OperationState.VALIDATING: {OperationState.APPLYING, OperationState.FAILED},
    OperationState.APPLYING: {OperationState.COMMITTED, OperationState.FAILED},
    OperationState.COMMITTED: set(),
    OperationState.FAILED: set(),
}


class OperationTracker:
    """
    Lifecycle of one ledger operation.

    Used as a context manager: an exception escaping the block
    moves the operation to FAILED before it propagates.
    """

    def __init__(self, operation: str, account_id: str):
        self.operation = operation
        self.account_id = account_id
        self.state = OperationState.VALIDATING

    def advance(self, new_state: OperationState) -> None:
        if new_state not in VALID_TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Cannot move {self.operation} from "
                f"{self.state.value} to {new_state.value}"
            )
        logger.debug(
            "%s: %s -> %s", self.operation, self.state.value, new_state.value,
            extra={"operation": self.operation, "account_id": self.account_id},
        )
        self.state = new_state

    def __enter__(self) -> "OperationTracker":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is not None and self.state is not OperationState.FAILED:
            failed_in = self.state
            self.state = OperationState.FAILED
            kind = exc.kind if isinstance(exc, LedgerError) else type(exc).__name__
            logger.info(
                "%s failed while %s: %s",
                self.operation, failed_in.value, kind,
                extra={
                    "operation": self.operation,
                    "account_id": self.account_id,
                    "kind": kind,
                },
            )
        return False


@dataclass(frozen=True)
class AppliedChange:
    """One balance mutation that has been written to the store."""
    account_id: str
    delta: Money
    before: AccountSnapshot
    after: AccountSnapshot


@dataclass(frozen=True)
class OperationResult:
    """
    Outcome of a committed operation.

    balance is the calling account's authoritative balance right
    after the operation; callers need not re-read the account.
    """
    balance: Money
    entries: tuple[LedgerEntry, ...]
    state: OperationState = OperationState.COMMITTED


class LedgerService:
    """
    All money movement passes through this service.

    The service holds no state between calls: every operation is
    given the account it acts for, and all state lives in the
    account store and the transaction log.
    """

    def __init__(
        self,
        accounts: AccountStore,
        log: TransactionLog,
        max_attempts: int | None = None,
    ):
        self.accounts = accounts
        self.log = log
        self.max_attempts = (
            max_attempts if max_attempts is not None
            else get_settings().MAX_APPLY_ATTEMPTS
        )
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    # --- Queries ---

    def get_account(self, account_id: str) -> AccountSnapshot:
        """Current account state, including its balance."""
        return self._read(account_id)

    def history(self, account_id: str, page_size: int | None = None) -> EntryListing:
        """Ledger entries for an account, newest first."""
        self._read(account_id)
        return self.log.list_for_account(account_id, page_size)

    # --- Operations ---

    def deposit(
        self, account_id: str, amount, description: str = "Cash deposit"
    ) -> OperationResult:
        return self._single_account_operation(
            TransactionKind.DEPOSIT, account_id, amount, description
        )

    def withdraw(
        self, account_id: str, amount, description: str = "Cash withdrawal"
    ) -> OperationResult:
        return self._single_account_operation(
            TransactionKind.WITHDRAW, account_id, amount, description
        )

    def transfer(
        self, account_id: str, recipient_user_id: str, amount
    ) -> OperationResult:
        """
        Move `amount` from account_id to the account owned by recipient_user_id.

        The two balance changes are applied in ascending order of
        account id, so every transfer touches accounts in the same
        global order. If the second change or the ledger write
        fails, whatever was applied is reversed and TransferAborted
        is raised.
        """
        with OperationTracker("transfer", account_id) as tracker:
            amount = Money.parse(amount)
            source = self._read(account_id)

            if amount > source.balance:
                raise InsufficientFunds(
                    f"Insufficient balance: available={source.balance}, "
                    f"requested={amount}"
                )
            if recipient_user_id == source.user_id:
                raise SelfTransferNotAllowed(
                    f"Account {account_id} cannot transfer to itself"
                )
            try:
                recipient = self._read_by_user_id(recipient_user_id)
            except AccountNotFound:
                raise RecipientNotFound(
                    f"No account for user id '{recipient_user_id}'"
                ) from None

            tracker.advance(OperationState.APPLYING)

            legs = {
                source.id: (-amount, source),
                recipient.id: (amount, recipient),
            }
            descriptions = {
                source.id: f"Transfer to {recipient.holder_name}",
                recipient.id: f"Transfer from {source.holder_name}",
            }
            applied: list[AppliedChange] = []
            try:
                for leg_account_id in sorted(legs):
                    delta, observed = legs[leg_account_id]
                    applied.append(
                        self._apply_delta(leg_account_id, delta, observed, "transfer")
                    )

                changes = {change.account_id: change for change in applied}
                debit, credit = changes[source.id], changes[recipient.id]
                entries = self.log.append_batch([
                    NewEntry(
                        account_id=source.id,
                        kind=TransactionKind.TRANSFER_OUT,
                        amount=amount,
                        balance_after=debit.after.balance,
                        description=descriptions[source.id],
                        created_at=debit.after.updated_at,
                        counterparty_user_id=recipient.user_id,
                    ),
                    NewEntry(
                        account_id=recipient.id,
                        kind=TransactionKind.TRANSFER_IN,
                        amount=amount,
                        balance_after=credit.after.balance,
                        description=descriptions[recipient.id],
                        created_at=credit.after.updated_at,
                        counterparty_user_id=source.user_id,
                    ),
                ])
            except BaseException as exc:
                if not applied:
                    raise
                logger.warning(
                    "Transfer %s -> %s failed after %d of 2 balance changes; "
                    "reversing",
                    source.id, recipient.id, len(applied),
                    extra={"operation": "transfer", "account_id": source.id},
                )
                self._compensate(applied, "transfer", descriptions)
                if isinstance(exc, LedgerError):
                    raise TransferAborted(
                        f"Transfer from {source.id} to {recipient.id} was reversed"
                    ) from exc
                raise

            tracker.advance(OperationState.COMMITTED)

        logger.info(
            "Transfer committed: %s to %s",
            amount, recipient.user_id,
            extra={
                "operation": "transfer",
                "account_id": source.id,
                "amount": str(amount),
            },
        )
        return OperationResult(balance=debit.after.balance, entries=tuple(entries))

    # --- Internals ---

    def _single_account_operation(
        self,
        kind: TransactionKind,
        account_id: str,
        amount,
        description: str,
    ) -> OperationResult:
        """Deposit or withdraw: one balance change, one ledger entry."""
        operation = kind.value
        with OperationTracker(operation, account_id) as tracker:
            amount = Money.parse(amount)
            current = self._read(account_id)
            delta = amount if kind.is_credit else -amount

            if (current.balance + delta).is_negative():
                raise InsufficientFunds(
                    f"Insufficient balance: available={current.balance}, "
                    f"requested={amount}"
                )

            tracker.advance(OperationState.APPLYING)
            change = self._apply_delta(account_id, delta, current, operation)
            try:
                entry = self.log.append(NewEntry(
                    account_id=account_id,
                    kind=kind,
                    amount=amount,
                    balance_after=change.after.balance,
                    description=description,
                    created_at=change.after.updated_at,
                ))
            except BaseException:
                logger.warning(
                    "Ledger append failed after %s on %s; reversing balance change",
                    operation, account_id,
                    extra={"operation": operation, "account_id": account_id},
                )
                self._compensate([change], operation, {account_id: description})
                raise

            tracker.advance(OperationState.COMMITTED)

        logger.info(
            "%s committed: %s",
            operation.capitalize(), amount,
            extra={
                "operation": operation,
                "account_id": account_id,
                "amount": str(amount),
            },
        )
        return OperationResult(balance=change.after.balance, entries=(entry,))

    def _read(self, account_id: str) -> AccountSnapshot:
        """Read an account, retrying storage failures within the attempt budget."""
        return self._with_read_retries(lambda: self.accounts.get(account_id))

    def _read_by_user_id(self, user_id: str) -> AccountSnapshot:
        return self._with_read_retries(lambda: self.accounts.get_by_user_id(user_id))

    def _with_read_retries(self, read):
        for attempt in range(1, self.max_attempts + 1):
            try:
                return read()
            except StorageError:
                if attempt == self.max_attempts:
                    raise
                logger.warning(
                    "Account read failed, retrying",
                    extra={"attempt": attempt},
                )

    def _apply_delta(
        self,
        account_id: str,
        delta: Money,
        observed: AccountSnapshot | None,
        operation: str,
    ) -> AppliedChange:
        """
        Add `delta` to an account's balance with compare-and-swap.

        The sufficiency check and the swap always use the same
        observed balance. On conflict the account is re-read and
        re-checked, so a debit that fit a stale balance is never
        applied to a different one.
        """
        storage_failure = None
        for attempt in range(1, self.max_attempts + 1):
            if observed is None:
                observed = self._read(account_id)

            new_balance = observed.balance + delta
            if new_balance.is_negative():
                raise InsufficientFunds(
                    f"Insufficient balance: available={observed.balance}, "
                    f"requested={-delta}"
                )

            write_id = str(uuid.uuid4())
            try:
                after = self.accounts.set_balance(
                    account_id,
                    new_balance,
                    observed.balance,
                    expected_version=observed.version,
                    write_id=write_id,
                )
            except BalanceConflict:
                storage_failure = None
                logger.debug(
                    "Balance conflict on %s, attempt %d of %d",
                    account_id, attempt, self.max_attempts,
                    extra={
                        "operation": operation,
                        "account_id": account_id,
                        "attempt": attempt,
                    },
                )
                observed = None
                continue
            except StorageError as exc:
                after = self._resolve_uncertain_write(account_id, observed, write_id)
                if after is None:
                    storage_failure = exc
                    observed = None
                    continue

            return AppliedChange(
                account_id=account_id, delta=delta, before=observed, after=after
            )

        if storage_failure is not None:
            logger.warning(
                "Gave up on %s after %d failed writes",
                account_id, self.max_attempts,
                extra={"operation": operation, "account_id": account_id},
            )
            raise StorageError(
                f"Balance write on {account_id} failed on each of "
                f"{self.max_attempts} attempts"
            ) from storage_failure

        logger.warning(
            "Gave up on %s after %d conflicting attempts",
            account_id, self.max_attempts,
            extra={"operation": operation, "account_id": account_id},
        )
        raise Contention(
            f"Account {account_id} changed on each of {self.max_attempts} attempts"
        )

    def _resolve_uncertain_write(
        self,
        account_id: str,
        observed: AccountSnapshot,
        write_id: str,
    ) -> AccountSnapshot | None:
        """
        Find out whether a write that raised StorageError took effect.

        The write could only land on the version we observed. Returns
        the snapshot if our write id is on the account, None if the
        write can no longer land and may be retried: either the
        account is still at the observed version, or the single write
        after it belongs to someone else. If more than one write has
        happened since, ours may have been among them and overwritten,
        so the outcome is unknown.
        """
        try:
            current = self._read(account_id)
        except StorageError as exc:
            logger.critical(
                "Balance write on %s has unknown outcome and the account "
                "cannot be read back", account_id,
                extra={"account_id": account_id, "kind": ReconciliationRequired.kind},
            )
            raise ReconciliationRequired(
                f"Outcome of balance write on {account_id} is unknown"
            ) from exc

        if current.write_id == write_id:
            return current
        if current.version in (observed.version, observed.version + 1):
            return None
        logger.critical(
            "Balance write on %s has unknown outcome", account_id,
            extra={"account_id": account_id, "kind": ReconciliationRequired.kind},
        )
        raise ReconciliationRequired(
            f"Outcome of balance write on {account_id} is unknown"
        )

    def _compensate(
        self,
        applied: list[AppliedChange],
        operation: str,
        descriptions: dict[str, str],
    ) -> None:
        """
        Reverse applied changes, newest first, one attempt each.

        A reversal that lands straight on top of its change leaves no
        trace in the log. If other writes landed on the account in
        between, their entries already include the change, so the
        change and its reversal are both recorded to keep the log
        replayable.

        Raises ReconciliationRequired if any reversal fails; the
        store then holds a partial operation that needs manual
        repair.
        """
        failures = []
        for change in reversed(applied):
            try:
                reversal = self._apply_delta(
                    change.account_id, -change.delta, None, operation
                )
                if reversal.before.version != change.after.version:
                    self._record_reversal(
                        change, reversal, descriptions[change.account_id], operation
                    )
            except LedgerError as exc:
                failures.append((change, exc))

        if failures:
            for change, exc in failures:
                logger.critical(
                    "Compensation failed for %s on %s (delta %s)",
                    operation, change.account_id, change.delta,
                    exc_info=exc,
                    extra={
                        "operation": operation,
                        "account_id": change.account_id,
                        "kind": ReconciliationRequired.kind,
                    },
                )
            raise ReconciliationRequired(
                f"Could not reverse {operation} on "
                f"{', '.join(change.account_id for change, _ in failures)}"
            ) from failures[0][1]

    def _record_reversal(
        self,
        change: AppliedChange,
        reversal: AppliedChange,
        description: str,
        operation: str,
    ) -> None:
        """Log a reversed change and its reversal as a plain debit/credit pair."""
        if change.delta.is_negative():
            amount = -change.delta
            kind, undo_kind = TransactionKind.WITHDRAW, TransactionKind.DEPOSIT
        else:
            amount = change.delta
            kind, undo_kind = TransactionKind.DEPOSIT, TransactionKind.WITHDRAW

        logger.warning(
            "Other writes landed on %s before the %s reversal; recording both",
            change.account_id, operation,
            extra={"operation": operation, "account_id": change.account_id},
        )
        self.log.append_batch([
            NewEntry(
                account_id=change.account_id,
                kind=kind,
                amount=amount,
                balance_after=change.after.balance,
                description=description,
                created_at=change.after.updated_at,
            ),
            NewEntry(
                account_id=change.account_id,
                kind=undo_kind,
                amount=amount,
                balance_after=reversal.after.balance,
                description=f"{description} (reversed)",
                created_at=reversal.after.updated_at,
            ),
        ])
