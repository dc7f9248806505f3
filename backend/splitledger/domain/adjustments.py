# backend/splitledger/domain/adjustments.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

from splitledger.domain.errors import ConsistencyError
from splitledger.domain.models import Expense, Payment, Share


@dataclass(frozen=True)
class ExpenseState:
    """
    The balance-relevant part of an expense: who paid, how much, and who
    owes which share of it. The deleted state is amount 0 with no shares.
    """
    payer_id: str
    amount_cents: int
    shares: Tuple[Share, ...]

    @classmethod
    def of(cls, expense: Expense) -> "ExpenseState":
        return cls(payer_id=expense.payer_id, amount_cents=expense.amount_cents, shares=tuple(expense.shares))

    @classmethod
    def empty(cls, payer_id: str) -> "ExpenseState":
        return cls(payer_id=payer_id, amount_cents=0, shares=())

    def same_ledger_effect(self, other: "ExpenseState") -> bool:
        # Share order is irrelevant.
        return balance_contributions(self) == balance_contributions(other)


def balance_contributions(state: ExpenseState) -> Dict[str, int]:
    """
    How much each user's balance moves because of this expense:

      payer:  amount - their share
      others: -share

    Values always sum to 0 for a valid state.
    """
    contributions: Dict[str, int] = {}
    for share in state.shares:
        contributions[share.user_id] = contributions.get(share.user_id, 0) - share.amount_cents
    if state.amount_cents:
        contributions[state.payer_id] = contributions.get(state.payer_id, 0) + state.amount_cents
    return contributions


def _checked(deltas: Dict[str, int]) -> Dict[str, int]:
    total = sum(deltas.values())
    if total != 0:
        raise ConsistencyError(f"internal error: balance deltas sum to {total}, expected 0")
    return deltas


def diff_states(original: ExpenseState, updated: ExpenseState) -> Dict[str, int]:
    """
    Per-user balance delta that moves the ledger from original to updated.

    Covers the union of users on both sides (a user missing on one side has
    share 0 there). Keys are in ascending user id order; zero deltas are kept
    so callers can see who was considered.
    """
    old = balance_contributions(original)
    new = balance_contributions(updated)

    deltas: Dict[str, int] = {}
    for user_id in sorted(set(old) | set(new)):
        deltas[user_id] = new.get(user_id, 0) - old.get(user_id, 0)
    return _checked(deltas)


def creation_deltas(expense: Expense) -> Dict[str, int]:
    return diff_states(ExpenseState.empty(expense.payer_id), ExpenseState.of(expense))


def deletion_deltas(expense: Expense) -> Dict[str, int]:
    return diff_states(ExpenseState.of(expense), ExpenseState.empty(expense.payer_id))


def payment_deltas(from_user_id: str, to_user_id: str, amount_cents: int) -> Dict[str, int]:
    """
    A payment of amount from A to B: A's balance goes up by amount, B's goes
    down by amount. A negative amount reverses the transfer.
    """
    return _checked({from_user_id: amount_cents, to_user_id: -amount_cents})


def payment_edit_deltas(original: Payment, updated: Payment) -> Dict[str, int]:
    return payment_deltas(original.from_user_id, original.to_user_id, updated.amount_cents - original.amount_cents)
