# backend/splitledger/domain/feed.py
from __future__ import annotations

from typing import List, Sequence

from splitledger.domain.models import Expense, LedgerEntry, Payment


def merge_feed(expenses: Sequence[Expense], payments: Sequence[Payment]) -> List[LedgerEntry]:
    """
    Merge two newest-first sequences into one newest-first feed.

    Both inputs must already be sorted by created_at descending. A payment is
    taken only when it is strictly newer than the current expense, so ties
    always place the expense first.
    """
    feed: List[LedgerEntry] = []
    e = 0
    p = 0

    while e < len(expenses) and p < len(payments):
        if payments[p].created_at > expenses[e].created_at:
            feed.append(payments[p])
            p += 1
        else:
            feed.append(expenses[e])
            e += 1

    feed.extend(expenses[e:])
    feed.extend(payments[p:])
    return feed
