"""
Ledger error taxonomy.

Every failure the engine can report is one of these types. The
`kind` is what tests and monitoring match on; `user_message` is
the short text shown to a customer and never contains internal
storage detail. The original exception, when there is one, is
kept as __cause__ and goes to the log only.
"""


class LedgerError(Exception):
    """Base class for all ledger failures."""

    kind = "ledger_error"
    status_code = 400
    user_message = "The operation could not be completed."

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.user_message
        super().__init__(self.detail)


# --- Precondition failures: nothing was mutated ---

class InvalidAmount(LedgerError):
    kind = "invalid_amount"
    user_message = "Please enter a valid amount."


class InsufficientFunds(LedgerError):
    kind = "insufficient_funds"
    user_message = "Insufficient balance."


class RecipientNotFound(LedgerError):
    kind = "recipient_not_found"
    status_code = 404
    user_message = "Recipient account not found."


class SelfTransferNotAllowed(LedgerError):
    kind = "self_transfer_not_allowed"
    user_message = "Cannot transfer to your own account."


class AccountNotFound(LedgerError):
    kind = "not_found"
    status_code = 404
    user_message = "Account not found."


class InvalidCredentials(LedgerError):
    kind = "invalid_credentials"
    status_code = 401
    user_message = "Invalid User ID or PIN."


# --- Apply-phase failures ---

class Contention(LedgerError):
    """The optimistic retry budget was exhausted."""
    kind = "contention"
    status_code = 409
    user_message = "The account is busy. Please try again."


class StorageError(LedgerError):
    """Transport or backing-store failure, including timeouts."""
    kind = "storage_error"
    status_code = 503
    user_message = "Transaction failed. Please try again."


class ReconciliationRequired(StorageError):
    """
    A compensating reversal failed.

    The store may now hold a partially applied operation and
    needs external reconciliation. Always logged at CRITICAL.
    """
    kind = "reconciliation_required"
    status_code = 500
    user_message = "Transaction failed. Please contact support."


class TransferAborted(LedgerError):
    """One side of a transfer failed and the other side was reversed."""
    kind = "transfer_aborted"
    status_code = 409
    user_message = "Transfer failed. Please try again."


class BalanceConflict(Exception):
    """
    Compare-and-swap rejection from an account store.

    Raised when the stored balance or version no longer matches
    what the caller observed. The engine turns this into a retry, or
    into Contention once attempts run out.
    """

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Balance of account {account_id} changed concurrently")
