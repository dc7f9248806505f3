# backend/splitledger/domain/models.py
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import ClassVar, Iterable, Optional, Sequence, Tuple, Union

from splitledger.domain.errors import ValidationError
from splitledger.domain.money import is_cents, require_positive_cents, safe_sum_cents


class ModelValidationError(ValidationError):
    """Raised when domain models fail basic validation."""


EXPENSE_CATEGORIES: Tuple[str, ...] = (
    "restaurants",
    "entertainment",
    "groceries",
    "maintenance",
    "mortgage",
    "rent",
    "household",
    "gifts",
    "lodging",
    "parking",
    "transportation",
    "general",
    "utilities",
    "phone and internet",
    "health and medical",
)

PAYMENT_METHODS: Tuple[str, ...] = (
    "Cash",
    "PayPal",
    "Venmo",
    "Cash App",
    "Zelle",
    "Other",
)

MIN_SHARE_PARTICIPANTS = 2


def _require_id(value: object, field: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ModelValidationError(f"{field} must be a non-empty string")


def _require_description(value: object) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ModelValidationError("description must be a non-empty string")


def _require_date(value: object) -> None:
    # User supplied date, seconds since the Unix epoch.
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ModelValidationError("date must be a positive int (epoch seconds)")


def _require_optional_choice(value: object, field: str, choices: Sequence[str]) -> None:
    if value is not None and value not in choices:
        raise ModelValidationError(f"{field} must be one of: {', '.join(choices)}")


def _require_optional_text(value: object, field: str) -> None:
    if value is not None and not isinstance(value, str):
        raise ModelValidationError(f"{field} must be a string")


@dataclass(frozen=True)
class Share:
    """
    The portion of an expense attributed to one participant, in integer cents.
    The payer's own share is one of these and may be 0.
    """
    user_id: str
    amount_cents: int

    def __post_init__(self) -> None:
        _require_id(self.user_id, "Share.user_id")
        if not is_cents(self.amount_cents) or self.amount_cents < 0:
            raise ModelValidationError("Share.amount_cents must be an int >= 0")


def _cleared(current: Optional[str], patched: Optional[str]) -> Optional[str]:
    # None keeps the current value, "" clears it.
    if patched is None:
        return current
    return patched or None


def validate_shares(
    amount_cents: int, shares: Iterable[Share], *, payer_id: Optional[str] = None
) -> Tuple[Share, ...]:
    """
    Check an expense's shares against its amount:

      - amount is a positive int
      - at least two participants
      - each user appears once
      - the payer, when given, is one of them (a 0 share is fine)
      - share amounts sum exactly to the amount

    Returns the shares as a tuple.
    """
    require_positive_cents(amount_cents)
    if isinstance(shares, (str, bytes)) or not isinstance(shares, (list, tuple)):
        raise ModelValidationError("shares must be a list")

    normalized = tuple(shares)
    for share in normalized:
        if not isinstance(share, Share):
            raise ModelValidationError("shares must contain Share values")

    if len(normalized) < MIN_SHARE_PARTICIPANTS:
        raise ModelValidationError(f"shares must include at least {MIN_SHARE_PARTICIPANTS} participants")

    user_ids = [s.user_id for s in normalized]
    if len(set(user_ids)) != len(user_ids):
        raise ModelValidationError("share user ids must be unique")
    if payer_id is not None and payer_id not in user_ids:
        raise ModelValidationError("shares must include the payer (a 0 share is allowed)")

    total = safe_sum_cents(*(s.amount_cents for s in normalized))
    if total != amount_cents:
        raise ModelValidationError(f"shares sum to {total} but amount is {amount_cents}")

    return normalized


@dataclass(frozen=True)
class NewGroup:
    """Payload for creating a group. owner_id is the authenticated requestor."""
    name: str
    owner_id: str
    description: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ModelValidationError("name must be a non-empty string")
        _require_id(self.owner_id, "owner_id")
        _require_optional_text(self.description, "description")


@dataclass(frozen=True)
class Group:
    """A persisted group. join_code is generated by the store and shared to invite members."""
    id: str
    name: str
    owner_id: str
    join_code: str
    description: Optional[str] = None
    created_at: int = 0


@dataclass(frozen=True)
class Member:
    """One (user, group) balance row."""
    user_id: str
    group_id: str
    balance_cents: int
    active: bool = True


@dataclass(frozen=True)
class NewExpense:
    """
    Payload for creating an expense.
    payer_id is the authenticated requestor, never taken from the body.
    """
    group_id: str
    payer_id: str
    amount_cents: int
    shares: Tuple[Share, ...]
    description: str
    date: int
    category: Optional[str] = None
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        _require_id(self.group_id, "group_id")
        _require_id(self.payer_id, "payer_id")
        object.__setattr__(self, "shares", validate_shares(self.amount_cents, self.shares, payer_id=self.payer_id))
        _require_description(self.description)
        _require_date(self.date)
        _require_optional_choice(self.category, "category", EXPENSE_CATEGORIES)
        _require_optional_text(self.notes, "notes")


@dataclass(frozen=True)
class Expense:
    """A persisted expense. created_at is assigned by the store."""
    id: str
    group_id: str
    payer_id: str
    amount_cents: int
    shares: Tuple[Share, ...]
    description: str
    date: int
    category: Optional[str] = None
    notes: Optional[str] = None
    created_at: int = 0

    kind: ClassVar[str] = "expense"


@dataclass(frozen=True)
class ExpensePatch:
    """
    Partial update for an expense. None means "leave unchanged".
    The optional fields (category, notes) are cleared with an empty string.
    """
    amount_cents: Optional[int] = None
    shares: Optional[Tuple[Share, ...]] = None
    description: Optional[str] = None
    date: Optional[int] = None
    category: Optional[str] = None
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        if self.amount_cents is not None:
            require_positive_cents(self.amount_cents)
        if self.shares is not None:
            object.__setattr__(self, "shares", tuple(self.shares))
        if self.description is not None:
            _require_description(self.description)
        if self.date is not None:
            _require_date(self.date)
        if self.category:
            _require_optional_choice(self.category, "category", EXPENSE_CATEGORIES)
        _require_optional_text(self.category, "category")
        _require_optional_text(self.notes, "notes")

    @property
    def touches_ledger(self) -> bool:
        return self.amount_cents is not None or self.shares is not None

    def added_participants(self, expense: Expense) -> Tuple[str, ...]:
        """User ids in the patched shares that the expense did not split with before."""
        if self.shares is None:
            return ()
        before = {s.user_id for s in expense.shares}
        return tuple(s.user_id for s in self.shares if s.user_id not in before)

    def apply_to(self, expense: Expense) -> Expense:
        amount = expense.amount_cents if self.amount_cents is None else self.amount_cents
        shares = expense.shares if self.shares is None else self.shares
        if self.touches_ledger:
            shares = validate_shares(amount, shares, payer_id=expense.payer_id)

        return replace(
            expense,
            amount_cents=amount,
            shares=shares,
            description=expense.description if self.description is None else self.description,
            date=expense.date if self.date is None else self.date,
            category=_cleared(expense.category, self.category),
            notes=_cleared(expense.notes, self.notes),
        )


@dataclass(frozen=True)
class NewPayment:
    """
    Payload for recording a direct transfer.
    from_user_id is the authenticated requestor.
    """
    group_id: str
    from_user_id: str
    to_user_id: str
    amount_cents: int
    description: str
    date: int
    payment_method: Optional[str] = None
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        _require_id(self.group_id, "group_id")
        _require_id(self.from_user_id, "from_user_id")
        _require_id(self.to_user_id, "to_user_id")
        if self.from_user_id == self.to_user_id:
            raise ModelValidationError("a payment needs two different users")
        require_positive_cents(self.amount_cents)
        _require_description(self.description)
        _require_date(self.date)
        _require_optional_choice(self.payment_method, "payment_method", PAYMENT_METHODS)
        _require_optional_text(self.notes, "notes")


@dataclass(frozen=True)
class Payment:
    id: str
    group_id: str
    from_user_id: str
    to_user_id: str
    amount_cents: int
    description: str
    date: int
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    created_at: int = 0

    kind: ClassVar[str] = "payment"


@dataclass(frozen=True)
class PaymentPatch:
    """
    Partial update for a payment. The recipient cannot be changed.
    Same clearing rule as ExpensePatch: "" clears payment_method or notes.
    """
    amount_cents: Optional[int] = None
    description: Optional[str] = None
    date: Optional[int] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        if self.amount_cents is not None:
            require_positive_cents(self.amount_cents)
        if self.description is not None:
            _require_description(self.description)
        if self.date is not None:
            _require_date(self.date)
        if self.payment_method:
            _require_optional_choice(self.payment_method, "payment_method", PAYMENT_METHODS)
        _require_optional_text(self.payment_method, "payment_method")
        _require_optional_text(self.notes, "notes")

    def apply_to(self, payment: Payment) -> Payment:
        return replace(
            payment,
            amount_cents=payment.amount_cents if self.amount_cents is None else self.amount_cents,
            description=payment.description if self.description is None else self.description,
            date=payment.date if self.date is None else self.date,
            payment_method=_cleared(payment.payment_method, self.payment_method),
            notes=_cleared(payment.notes, self.notes),
        )


LedgerEntry = Union[Expense, Payment]
