"""
Fixed-precision money.

Amounts are held as an integer count of cents so that sums never
pick up binary floating-point drift. Decimal text is only the
external representation.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from atm_ledger.errors import InvalidAmount

CENT = Decimal("0.01")


@dataclass(frozen=True, order=True)
class Money:
    """An immutable, signed amount in minor units (cents)."""

    cents: int

    def __post_init__(self):
        if isinstance(self.cents, bool) or not isinstance(self.cents, int):
            raise TypeError("Money must be built from an integer number of cents")

    @classmethod
    def from_cents(cls, cents: int) -> "Money":
        return cls(cents)

    @classmethod
    def zero(cls) -> "Money":
        return cls(0)

    @classmethod
    def parse(cls, value, positive: bool = True) -> "Money":
        """
        Parse caller input into Money.

        Accepts str, int, Decimal, float, or an existing Money.
        Raises InvalidAmount for anything that is not a finite
        number with at most two decimal places, and for values
        <= 0 when a positive amount is required.
        """
        if isinstance(value, Money):
            amount = value.to_decimal()
        elif isinstance(value, bool) or value is None:
            raise InvalidAmount(f"Not a number: {value!r}")
        else:
            try:
                # str() gives floats their shortest round-tripping text
                amount = Decimal(str(value).strip())
            except (InvalidOperation, ValueError):
                raise InvalidAmount(f"Not a number: {value!r}")

        if not amount.is_finite():
            raise InvalidAmount(f"Amount must be finite: {value!r}")
        try:
            quantized = amount.quantize(CENT)
        except InvalidOperation:
            raise InvalidAmount(f"Amount out of range: {value!r}")
        if amount != quantized:
            raise InvalidAmount(f"Amount has more than two decimal places: {value!r}")
        if positive and amount <= 0:
            raise InvalidAmount(f"Amount must be positive: {value!r}")

        return cls(int(amount.scaleb(2)))

    def __add__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.cents + other.cents)

    def __sub__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.cents - other.cents)

    def __neg__(self) -> "Money":
        return Money(-self.cents)

    def is_negative(self) -> bool:
        return self.cents < 0

    def to_decimal(self) -> Decimal:
        return Decimal(self.cents).scaleb(-2).quantize(CENT)

    def __str__(self) -> str:
        return str(self.to_decimal())

    def __repr__(self) -> str:
        return f"Money('{self}')"
