# backend/splitledger/services/balance_mutator.py
from __future__ import annotations

import logging
from typing import Dict, Mapping

logger = logging.getLogger(__name__)


def apply_deltas(tx, group_id: str, deltas: Mapping[str, int]) -> Dict[str, int]:
    """
    Add per-user balance deltas to the group's stored balances inside the
    caller's transaction.

    - Zero deltas are dropped.
    - Deltas are sent as one batch in ascending user id order, as relative
      increments (never read-modify-write).
    - Only active members are updated. A user who left the group (or never
      joined) is skipped silently; their stored balance stays frozen.

    Returns the deltas that were actually applied.
    """
    pending = {uid: delta for uid, delta in sorted(deltas.items()) if delta != 0}
    if not pending:
        return {}

    updated = tx.increment_balances(group_id, pending)

    skipped = [uid for uid in pending if uid not in updated]
    if skipped:
        logger.info("group %s: skipped balance deltas for inactive members %s", group_id, skipped)

    return {uid: delta for uid, delta in pending.items() if uid in updated}
