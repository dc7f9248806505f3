# backend/splitledger/db/repository.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional, Sequence

import psycopg
from psycopg import IsolationLevel
from psycopg.types.json import Jsonb

from splitledger.domain.models import (
    Expense,
    Group,
    Member,
    NewExpense,
    NewGroup,
    NewPayment,
    Payment,
    Share,
)

_GROUP_COLUMNS = "id, name, owner_id, join_code, description, created_at"
_MEMBER_COLUMNS = "user_id, group_id, balance_cents, active"
_EXPENSE_COLUMNS = "id, group_id, payer_id, amount_cents, shares, description, date, category, notes, created_at"
_PAYMENT_COLUMNS = (
    "id, group_id, from_user_id, to_user_id, amount_cents, description, date, payment_method, notes, created_at"
)


def parse_isolation_level(name: str) -> IsolationLevel:
    """Map a setting such as "read committed" to a psycopg IsolationLevel."""
    key = str(name).strip().upper().replace(" ", "_").replace("-", "_")
    try:
        return IsolationLevel[key]
    except KeyError:
        choices = ", ".join(level.name.replace("_", " ") for level in IsolationLevel)
        raise RuntimeError(f"Unknown LEDGER_ISOLATION_LEVEL {name!r}; expected one of: {choices}") from None


def _group_from_row(row: Sequence[Any]) -> Group:
    return Group(
        id=row[0],
        name=row[1],
        owner_id=row[2],
        join_code=row[3],
        description=row[4],
        created_at=int(row[5]),
    )


def _member_from_row(row: Sequence[Any]) -> Member:
    return Member(user_id=row[0], group_id=row[1], balance_cents=int(row[2]), active=bool(row[3]))


def _shares_to_json(shares: Sequence[Share]) -> Jsonb:
    return Jsonb([{"user_id": s.user_id, "amount_cents": s.amount_cents} for s in shares])


def _expense_from_row(row: Sequence[Any]) -> Expense:
    return Expense(
        id=row[0],
        group_id=row[1],
        payer_id=row[2],
        amount_cents=int(row[3]),
        shares=tuple(Share(user_id=s["user_id"], amount_cents=int(s["amount_cents"])) for s in row[4]),
        description=row[5],
        date=int(row[6]),
        category=row[7],
        notes=row[8],
        created_at=int(row[9]),
    )


def _payment_from_row(row: Sequence[Any]) -> Payment:
    return Payment(
        id=row[0],
        group_id=row[1],
        from_user_id=row[2],
        to_user_id=row[3],
        amount_cents=int(row[4]),
        description=row[5],
        date=int(row[6]),
        payment_method=row[7],
        notes=row[8],
        created_at=int(row[9]),
    )


class LedgerUnitOfWork:
    """
    Transaction handle passed to the ledger service.

    Every method runs on the same cursor, so all reads and writes made
    through one handle commit or roll back together. Methods that target a
    single row return None / False when no row matched; deciding whether
    that is an error is left to the caller.
    """

    def __init__(self, cursor: psycopg.Cursor):
        self._cur = cursor

    # -- groups & members -------------------------------------------------

    def group_exists(self, group_id: str) -> bool:
        self._cur.execute("SELECT EXISTS(SELECT 1 FROM groups WHERE id = %s)", (group_id,))
        return bool(self._cur.fetchone()[0])

    def insert_group(self, group: NewGroup) -> Group:
        self._cur.execute(
            f"""
            INSERT INTO groups (name, description, owner_id)
            VALUES (%s, %s, %s)
            RETURNING {_GROUP_COLUMNS}
            """,
            (group.name, group.description, group.owner_id),
        )
        return _group_from_row(self._cur.fetchone())

    def get_group_by_join_code(self, join_code: str) -> Optional[Group]:
        self._cur.execute(
            f"SELECT {_GROUP_COLUMNS} FROM groups WHERE join_code = %s",
            (join_code,),
        )
        row = self._cur.fetchone()
        return _group_from_row(row) if row else None

    def list_members(self, group_id: str) -> list[Member]:
        self._cur.execute(
            f"""
            SELECT {_MEMBER_COLUMNS}
            FROM users_to_groups
            WHERE group_id = %s
            ORDER BY user_id ASC
            """,
            (group_id,),
        )
        return [_member_from_row(row) for row in self._cur.fetchall()]

    def list_active_member_ids(self, group_id: str) -> list[str]:
        self._cur.execute(
            """
            SELECT user_id
            FROM users_to_groups
            WHERE group_id = %s AND active
            ORDER BY user_id ASC
            """,
            (group_id,),
        )
        return [row[0] for row in self._cur.fetchall()]

    def get_member(self, group_id: str, user_id: str, *, for_update: bool = False) -> Optional[Member]:
        lock = "FOR UPDATE" if for_update else ""
        self._cur.execute(
            f"""
            SELECT {_MEMBER_COLUMNS}
            FROM users_to_groups
            WHERE group_id = %s AND user_id = %s
            {lock}
            """,
            (group_id, user_id),
        )
        row = self._cur.fetchone()
        return _member_from_row(row) if row else None

    def upsert_member(self, group_id: str, user_id: str) -> Member:
        # Re-joining reactivates the old row; a departed member's balance is already 0.
        self._cur.execute(
            f"""
            INSERT INTO users_to_groups (user_id, group_id, balance_cents, active)
            VALUES (%s, %s, 0, TRUE)
            ON CONFLICT (user_id, group_id)
            DO UPDATE SET active = TRUE
            RETURNING {_MEMBER_COLUMNS}
            """,
            (user_id, group_id),
        )
        return _member_from_row(self._cur.fetchone())

    def deactivate_member(self, group_id: str, user_id: str) -> bool:
        self._cur.execute(
            """
            UPDATE users_to_groups
            SET active = FALSE
            WHERE group_id = %s AND user_id = %s AND active AND balance_cents = 0
            """,
            (group_id, user_id),
        )
        return self._cur.rowcount > 0

    def increment_balances(self, group_id: str, deltas: Mapping[str, int]) -> set[str]:
        """
        Add each delta to the member's stored balance, active members only.
        Returns the user ids whose row was updated.
        """
        if not deltas:
            return set()

        user_ids = sorted(deltas)
        # Lock rows in user id order so concurrent ledger transactions
        # touching the same members queue instead of deadlocking.
        self._cur.execute(
            """
            SELECT user_id
            FROM users_to_groups
            WHERE group_id = %s AND user_id = ANY(%s) AND active
            ORDER BY user_id ASC
            FOR UPDATE
            """,
            (group_id, user_ids),
        )
        self._cur.execute(
            """
            UPDATE users_to_groups AS ug
            SET balance_cents = ug.balance_cents + d.delta
            FROM unnest(%s::text[], %s::bigint[]) AS d(user_id, delta)
            WHERE ug.group_id = %s AND ug.user_id = d.user_id AND ug.active
            RETURNING ug.user_id
            """,
            (user_ids, [deltas[uid] for uid in user_ids], group_id),
        )
        return {row[0] for row in self._cur.fetchall()}

    # -- expenses ---------------------------------------------------------

    def insert_expense(self, expense: NewExpense) -> Expense:
        self._cur.execute(
            f"""
            INSERT INTO expenses (group_id, payer_id, amount_cents, shares, description, date, category, notes)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_EXPENSE_COLUMNS}
            """,
            (
                expense.group_id,
                expense.payer_id,
                expense.amount_cents,
                _shares_to_json(expense.shares),
                expense.description,
                expense.date,
                expense.category,
                expense.notes,
            ),
        )
        return _expense_from_row(self._cur.fetchone())

    def get_expense(self, expense_id: str, *, for_update: bool = False) -> Optional[Expense]:
        lock = "FOR UPDATE" if for_update else ""
        self._cur.execute(
            f"""
            SELECT {_EXPENSE_COLUMNS}
            FROM expenses
            WHERE id = %s
            {lock}
            """,
            (expense_id,),
        )
        row = self._cur.fetchone()
        return _expense_from_row(row) if row else None

    def update_expense(self, expense: Expense) -> Optional[Expense]:
        self._cur.execute(
            f"""
            UPDATE expenses
            SET amount_cents = %s, shares = %s, description = %s, date = %s, category = %s, notes = %s
            WHERE id = %s
            RETURNING {_EXPENSE_COLUMNS}
            """,
            (
                expense.amount_cents,
                _shares_to_json(expense.shares),
                expense.description,
                expense.date,
                expense.category,
                expense.notes,
                expense.id,
            ),
        )
        row = self._cur.fetchone()
        return _expense_from_row(row) if row else None

    def delete_expense(self, expense_id: str) -> bool:
        self._cur.execute("DELETE FROM expenses WHERE id = %s", (expense_id,))
        return self._cur.rowcount > 0

    def list_expenses(self, group_id: str) -> list[Expense]:
        self._cur.execute(
            f"""
            SELECT {_EXPENSE_COLUMNS}
            FROM expenses
            WHERE group_id = %s
            ORDER BY created_at DESC, id DESC
            """,
            (group_id,),
        )
        return [_expense_from_row(row) for row in self._cur.fetchall()]

    # -- payments ---------------------------------------------------------

    def insert_payment(self, payment: NewPayment) -> Payment:
        self._cur.execute(
            f"""
            INSERT INTO payments (group_id, from_user_id, to_user_id, amount_cents, description, date, payment_method, notes)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_PAYMENT_COLUMNS}
            """,
            (
                payment.group_id,
                payment.from_user_id,
                payment.to_user_id,
                payment.amount_cents,
                payment.description,
                payment.date,
                payment.payment_method,
                payment.notes,
            ),
        )
        return _payment_from_row(self._cur.fetchone())

    def get_payment(self, payment_id: str, *, for_update: bool = False) -> Optional[Payment]:
        lock = "FOR UPDATE" if for_update else ""
        self._cur.execute(
            f"""
            SELECT {_PAYMENT_COLUMNS}
            FROM payments
            WHERE id = %s
            {lock}
            """,
            (payment_id,),
        )
        row = self._cur.fetchone()
        return _payment_from_row(row) if row else None

    def update_payment(self, payment: Payment) -> Optional[Payment]:
        self._cur.execute(
            f"""
            UPDATE payments
            SET amount_cents = %s, description = %s, date = %s, payment_method = %s, notes = %s
            WHERE id = %s
            RETURNING {_PAYMENT_COLUMNS}
            """,
            (
                payment.amount_cents,
                payment.description,
                payment.date,
                payment.payment_method,
                payment.notes,
                payment.id,
            ),
        )
        row = self._cur.fetchone()
        return _payment_from_row(row) if row else None

    def delete_payment(self, payment_id: str) -> bool:
        self._cur.execute("DELETE FROM payments WHERE id = %s", (payment_id,))
        return self._cur.rowcount > 0

    def list_payments(self, group_id: str) -> list[Payment]:
        self._cur.execute(
            f"""
            SELECT {_PAYMENT_COLUMNS}
            FROM payments
            WHERE group_id = %s
            ORDER BY created_at DESC, id DESC
            """,
            (group_id,),
        )
        return [_payment_from_row(row) for row in self._cur.fetchall()]


class LedgerRepository:
    def __init__(self, database_url: str, *, isolation_level: str = "READ COMMITTED"):
        self.database_url = database_url.strip()
        self.isolation_level = parse_isolation_level(isolation_level)

    @property
    def enabled(self) -> bool:
        return bool(self.database_url)

    def _connect(self) -> psycopg.Connection:
        if not self.enabled:
            raise RuntimeError("DATABASE_URL not configured")
        conn = psycopg.connect(self.database_url)
        conn.isolation_level = self.isolation_level
        return conn

    @contextmanager
    def transaction(self) -> Iterator[LedgerUnitOfWork]:
        """
        One database transaction. Commits when the block exits normally and
        rolls back when it raises; the exception is re-raised.
        """
        with self._connect() as conn, conn.cursor() as cur:
            yield LedgerUnitOfWork(cur)
