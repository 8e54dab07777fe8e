"""
Shared enumerations for database models.

Using Python enums mapped to database enums ensures that
only valid values can be stored.
"""

import enum


class TransactionKind(str, enum.Enum):
    """What a ledger entry did to its account's balance."""
    WITHDRAW = "withdraw"
    DEPOSIT = "deposit"
    TRANSFER_OUT = "transfer_out"
    TRANSFER_IN = "transfer_in"

    @property
    def is_credit(self) -> bool:
        """True when the entry adds to the balance."""
        return self in (TransactionKind.DEPOSIT, TransactionKind.TRANSFER_IN)

    @property
    def is_transfer(self) -> bool:
        return self in (TransactionKind.TRANSFER_OUT, TransactionKind.TRANSFER_IN)
