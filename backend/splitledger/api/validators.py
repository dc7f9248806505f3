from __future__ import annotations

from typing import Any, Dict, Iterable, Optional, Tuple

from splitledger.domain.errors import ValidationError
from splitledger.domain.models import (
    ExpensePatch,
    NewExpense,
    NewGroup,
    NewPayment,
    PaymentPatch,
    Share,
)
from splitledger.domain.split_logic import equal_shares, split_cents_by_weights


class ApiValidationError(ValidationError):
    """Raised when request payload validation fails."""


_EXPENSE_PATCH_FIELDS = frozenset({"amount_cents", "shares", "description", "date", "category", "notes"})
_PAYMENT_PATCH_FIELDS = frozenset({"amount_cents", "description", "date", "payment_method", "notes"})


def _require_object(data: object) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ApiValidationError("Request body must be a JSON object.")
    return data


def _reject_unknown(data: Dict[str, Any], allowed: Iterable[str]) -> None:
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise ApiValidationError(f"Unknown or read-only field(s): {', '.join(unknown)}.")


def _int_field(data: Dict[str, Any], key: str, *, required: bool = True) -> Optional[int]:
    value = data.get(key)
    if value is None:
        if required:
            raise ApiValidationError(f"Missing field: {key}")
        return None
    if not isinstance(value, int) or isinstance(value, bool):
        raise ApiValidationError(f"'{key}' must be an integer.")
    return value


def _str_field(data: Dict[str, Any], key: str, *, required: bool = False) -> Optional[str]:
    value = data.get(key)
    if value is None:
        if required:
            raise ApiValidationError(f"Missing field: {key}")
        return None
    if not isinstance(value, str):
        raise ApiValidationError(f"'{key}' must be a string.")
    return value.strip()


def parse_shares(raw_shares: object) -> Tuple[Share, ...]:
    if not isinstance(raw_shares, list):
        raise ApiValidationError("'shares' must be a list.")

    shares = []
    for idx, raw in enumerate(raw_shares):
        if not isinstance(raw, dict):
            raise ApiValidationError(f"Share at index {idx} must be an object.")
        user_id = raw.get("user_id")
        amount = raw.get("amount_cents")
        if not isinstance(user_id, str) or not user_id.strip():
            raise ApiValidationError(f"Share at index {idx} must include a non-empty 'user_id'.")
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            raise ApiValidationError(f"Share at index {idx} must include 'amount_cents' as int >= 0.")
        shares.append(Share(user_id=user_id, amount_cents=amount))
    return tuple(shares)


def _shares_from_payload(data: Dict[str, Any], amount_cents: int) -> Tuple[Share, ...]:
    """
    Explicit "shares" win. Otherwise "participants" (optionally with
    "weights") are split by the server, extra cents going to the earliest
    participants in the order given.
    """
    if "shares" in data:
        return parse_shares(data["shares"])

    participants = data.get("participants")
    if participants is None:
        raise ApiValidationError("Provide either 'shares' or 'participants'.")
    if not isinstance(participants, list):
        raise ApiValidationError("'participants' must be a list of user ids.")

    weights = data.get("weights")
    if weights is None:
        return equal_shares(amount_cents, participants)
    return split_cents_by_weights(amount_cents, participants, weights).to_shares()


def parse_new_expense(group_id: str, payer_id: str, raw: object) -> NewExpense:
    data = _require_object(raw)
    amount = _int_field(data, "amount_cents")
    return NewExpense(
        group_id=group_id,
        payer_id=payer_id,
        amount_cents=amount,
        shares=_shares_from_payload(data, amount),
        description=_str_field(data, "description", required=True),
        date=_int_field(data, "date"),
        category=_str_field(data, "category"),
        notes=_str_field(data, "notes"),
    )


def parse_expense_patch(raw: object) -> ExpensePatch:
    data = _require_object(raw)
    _reject_unknown(data, _EXPENSE_PATCH_FIELDS)
    return ExpensePatch(
        amount_cents=_int_field(data, "amount_cents", required=False),
        shares=parse_shares(data["shares"]) if data.get("shares") is not None else None,
        description=_str_field(data, "description"),
        date=_int_field(data, "date", required=False),
        category=_str_field(data, "category"),
        notes=_str_field(data, "notes"),
    )


def parse_new_payment(group_id: str, from_user_id: str, raw: object) -> NewPayment:
    data = _require_object(raw)
    return NewPayment(
        group_id=group_id,
        from_user_id=from_user_id,
        to_user_id=_str_field(data, "to_user_id", required=True),
        amount_cents=_int_field(data, "amount_cents"),
        description=_str_field(data, "description", required=True),
        date=_int_field(data, "date"),
        payment_method=_str_field(data, "payment_method"),
        notes=_str_field(data, "notes"),
    )


def parse_payment_patch(raw: object) -> PaymentPatch:
    data = _require_object(raw)
    _reject_unknown(data, _PAYMENT_PATCH_FIELDS)
    return PaymentPatch(
        amount_cents=_int_field(data, "amount_cents", required=False),
        description=_str_field(data, "description"),
        date=_int_field(data, "date", required=False),
        payment_method=_str_field(data, "payment_method"),
        notes=_str_field(data, "notes"),
    )


def parse_new_group(owner_id: str, raw: object) -> NewGroup:
    data = _require_object(raw)
    _reject_unknown(data, ("name", "description"))
    return NewGroup(
        name=_str_field(data, "name", required=True),
        owner_id=owner_id,
        description=_str_field(data, "description") or None,
    )


def parse_join_code(raw: object) -> str:
    data = _require_object(raw)
    join_code = _str_field(data, "join_code", required=True)
    if not join_code:
        raise ApiValidationError("'join_code' must not be empty.")
    return join_code
