# backend/splitledger/domain/money.py
from __future__ import annotations

from dataclasses import dataclass

from splitledger.domain.errors import ValidationError


class MoneyError(ValidationError):
    """Raised when a cents value is not a plain int or is out of range."""


@dataclass(frozen=True)
class Money:
    """
    Signed money value in integer cents (USD by default).
    Balances are signed, so negative cents are allowed here.
    """
    cents: int
    currency: str = "USD"

    def __post_init__(self) -> None:
        if not is_cents(self.cents):
            raise MoneyError("Money.cents must be an int")
        if not isinstance(self.currency, str) or not self.currency.strip():
            raise MoneyError("Money.currency must be a non-empty string")

    def format(self, symbol: str = "$") -> str:
        """
        Format cents as a string like "$12.34" or "-$0.05".
        """
        sign = "-" if self.cents < 0 else ""
        abs_cents = abs(self.cents)
        dollars = abs_cents // 100
        cents = abs_cents % 100
        return f"{sign}{symbol}{dollars}.{cents:02d}"


# Upper bound for a single expense or payment: $10,000,000.00
MAX_AMOUNT_CENTS = 10_000_000_00


def is_cents(value: object) -> bool:
    # bool is an int subclass; True is not one cent.
    return isinstance(value, int) and not isinstance(value, bool)


def require_positive_cents(value: object, *, field: str = "amount_cents") -> int:
    """
    Check that value is an int number of cents in (0, MAX_AMOUNT_CENTS].
    Returns the value so callers can validate inline.
    """
    if not is_cents(value):
        raise MoneyError(f"{field} must be an int number of cents")
    if value <= 0:
        raise MoneyError(f"{field} must be > 0")
    if value > MAX_AMOUNT_CENTS:
        raise MoneyError(f"{field} exceeds safety limit")
    return value


def cents_to_str(cents: int, *, symbol: str = "$") -> str:
    """
    Convert integer cents to a display string like "$12.34".
    """
    if not is_cents(cents):
        raise MoneyError("cents must be an int")
    return Money(cents=cents).format(symbol=symbol)


def safe_sum_cents(*values: int) -> int:
    """
    Sum cents with type checks (no floats).
    """
    total = 0
    for v in values:
        if not is_cents(v):
            raise MoneyError("all values must be int cents")
        total += v
    return total
