# backend/splitledger/domain/split_logic.py
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from splitledger.domain.errors import ValidationError
from splitledger.domain.models import Share


class SplitLogicError(ValidationError):
    """Raised when split inputs are invalid."""


@dataclass(frozen=True)
class Allocation:
    """
    Result of splitting one amount among participants.

    amounts_cents is ordered to match the provided participants order.
    """
    total_cents: int
    participants: Tuple[str, ...]
    amounts_cents: Tuple[int, ...]

    def to_shares(self) -> Tuple[Share, ...]:
        return tuple(
            Share(user_id=pid, amount_cents=cents)
            for pid, cents in zip(self.participants, self.amounts_cents, strict=True)
        )


def _normalize_participants(participants: Sequence[str]) -> List[str]:
    if not isinstance(participants, (list, tuple)):
        raise SplitLogicError("participants must be a sequence")

    if len(participants) == 0:
        raise SplitLogicError("participants must contain at least 1 participant")

    norm: List[str] = []
    for p in participants:
        if not isinstance(p, str):
            raise SplitLogicError("participant ids must be strings")
        if p.strip() == "":
            raise SplitLogicError("participant ids must be non-empty strings")
        norm.append(p)

    if len(set(norm)) != len(norm):
        raise SplitLogicError("participant ids must be unique")
    return norm


def _check_total(total_cents: int) -> None:
    if not isinstance(total_cents, int) or isinstance(total_cents, bool):
        raise SplitLogicError("total_cents must be an int")
    if total_cents <= 0:
        raise SplitLogicError("total_cents must be > 0")


def split_cents_penny_perfect(total_cents: int, participants: Sequence[str]) -> Allocation:
    """
    Split an integer number of cents evenly across participants:

      base = total_cents // m
      remainder = total_cents % m
      first 'remainder' participants get base + 1, rest get base

    The caller's participant order decides who receives the extra cents, so
    the same input always yields the same allocation.
    """
    _check_total(total_cents)
    norm = _normalize_participants(participants)

    m = len(norm)
    base = total_cents // m
    remainder = total_cents % m

    amounts = [base + 1 if i < remainder else base for i in range(m)]
    # Safety: ensure penny-perfect sum
    if sum(amounts) != total_cents:
        raise SplitLogicError("internal error: allocation does not sum to total")

    return Allocation(
        total_cents=total_cents,
        participants=tuple(norm),
        amounts_cents=tuple(amounts),
    )


def split_cents_by_weights(
    total_cents: int,
    participants: Sequence[str],
    weights: Sequence[int],
) -> Allocation:
    """
    Split cents proportionally to integer weights.

    Each participant first gets floor(total * weight / sum(weights)); the cents
    lost to flooring are then handed out one at a time in participant order,
    skipping zero-weight participants.
    """
    _check_total(total_cents)
    norm = _normalize_participants(participants)

    if not isinstance(weights, (list, tuple)) or len(weights) != len(norm):
        raise SplitLogicError("weights must align with participants")
    for w in weights:
        if not isinstance(w, int) or isinstance(w, bool) or w < 0:
            raise SplitLogicError("weights must be ints >= 0")

    weight_total = sum(weights)
    if weight_total == 0:
        raise SplitLogicError("at least one weight must be > 0")

    amounts = [total_cents * w // weight_total for w in weights]
    remainder = total_cents - sum(amounts)

    # remainder < number of positive weights, so one pass is enough
    for idx, w in enumerate(weights):
        if remainder == 0:
            break
        if w > 0:
            amounts[idx] += 1
            remainder -= 1

    if sum(amounts) != total_cents:
        raise SplitLogicError("internal error: allocation does not sum to total")

    return Allocation(
        total_cents=total_cents,
        participants=tuple(norm),
        amounts_cents=tuple(amounts),
    )


def equal_shares(total_cents: int, participants: Sequence[str]) -> Tuple[Share, ...]:
    """Convenience wrapper returning Share values for an even split."""
    return split_cents_penny_perfect(total_cents, participants).to_shares()
