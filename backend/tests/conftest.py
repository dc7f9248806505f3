import copy
from contextlib import contextmanager
from dataclasses import replace

import pytest
from flask import Flask

from splitledger.api.routes import api_bp
from splitledger.domain.models import Expense, Group, Member, Payment
from splitledger.services.ledger import LedgerService


class InjectedFailure(RuntimeError):
    pass


class FakeUnitOfWork:
    """Mirrors LedgerUnitOfWork against plain dicts held by FakeLedgerStore."""

    def __init__(self, store):
        self._store = store

    def _call(self, name):
        self._store.calls.append(name)
        if name in self._store.fail_on:
            raise InjectedFailure(name)

    def _vanished(self, name):
        # Simulates the row disappearing between the locked read and the write.
        return name in self._store.vanish_on

    def group_exists(self, group_id):
        self._call("group_exists")
        return group_id in self._store.groups

    def insert_group(self, new):
        self._call("insert_group")
        group_id = self._store.next_id("grp")
        group = Group(
            id=group_id,
            name=new.name,
            owner_id=new.owner_id,
            join_code=f"join-{group_id}",
            description=new.description,
            created_at=self._store.tick(),
        )
        self._store.groups[group.id] = group
        return group

    def get_group_by_join_code(self, join_code):
        self._call("get_group_by_join_code")
        return next((g for g in self._store.groups.values() if g.join_code == join_code), None)

    def list_members(self, group_id):
        self._call("list_members")
        return sorted(
            (m for (gid, _), m in self._store.members.items() if gid == group_id),
            key=lambda m: m.user_id,
        )

    def list_active_member_ids(self, group_id):
        self._call("list_active_member_ids")
        return [m.user_id for m in self.list_members(group_id) if m.active]

    def get_member(self, group_id, user_id, *, for_update=False):
        self._call("get_member")
        return self._store.members.get((group_id, user_id))

    def upsert_member(self, group_id, user_id):
        self._call("upsert_member")
        existing = self._store.members.get((group_id, user_id))
        member = replace(existing, active=True) if existing else Member(user_id, group_id, 0, True)
        self._store.members[(group_id, user_id)] = member
        return member

    def deactivate_member(self, group_id, user_id):
        self._call("deactivate_member")
        member = self._store.members.get((group_id, user_id))
        if member is None or not member.active or member.balance_cents != 0:
            return False
        self._store.members[(group_id, user_id)] = replace(member, active=False)
        return True

    def increment_balances(self, group_id, deltas):
        self._call("increment_balances")
        self._store.increments.append(dict(deltas))
        updated = set()
        for user_id, delta in deltas.items():
            member = self._store.members.get((group_id, user_id))
            if member is None or not member.active:
                continue
            self._store.members[(group_id, user_id)] = replace(member, balance_cents=member.balance_cents + delta)
            updated.add(user_id)
        return updated

    def insert_expense(self, new):
        self._call("insert_expense")
        expense = Expense(
            id=self._store.next_id("exp"),
            group_id=new.group_id,
            payer_id=new.payer_id,
            amount_cents=new.amount_cents,
            shares=tuple(new.shares),
            description=new.description,
            date=new.date,
            category=new.category,
            notes=new.notes,
            created_at=self._store.tick(),
        )
        self._store.expenses[expense.id] = expense
        return expense

    def get_expense(self, expense_id, *, for_update=False):
        self._call("get_expense")
        return self._store.expenses.get(expense_id)

    def update_expense(self, expense):
        self._call("update_expense")
        if self._vanished("update_expense") or expense.id not in self._store.expenses:
            return None
        self._store.expenses[expense.id] = expense
        return expense

    def delete_expense(self, expense_id):
        self._call("delete_expense")
        if self._vanished("delete_expense"):
            return False
        return self._store.expenses.pop(expense_id, None) is not None

    def list_expenses(self, group_id):
        self._call("list_expenses")
        rows = [e for e in self._store.expenses.values() if e.group_id == group_id]
        return sorted(rows, key=lambda e: (e.created_at, e.id), reverse=True)

    def insert_payment(self, new):
        self._call("insert_payment")
        payment = Payment(
            id=self._store.next_id("pay"),
            group_id=new.group_id,
            from_user_id=new.from_user_id,
            to_user_id=new.to_user_id,
            amount_cents=new.amount_cents,
            description=new.description,
            date=new.date,
            payment_method=new.payment_method,
            notes=new.notes,
            created_at=self._store.tick(),
        )
        self._store.payments[payment.id] = payment
        return payment

    def get_payment(self, payment_id, *, for_update=False):
        self._call("get_payment")
        return self._store.payments.get(payment_id)

    def update_payment(self, payment):
        self._call("update_payment")
        if self._vanished("update_payment") or payment.id not in self._store.payments:
            return None
        self._store.payments[payment.id] = payment
        return payment

    def delete_payment(self, payment_id):
        self._call("delete_payment")
        if self._vanished("delete_payment"):
            return False
        return self._store.payments.pop(payment_id, None) is not None

    def list_payments(self, group_id):
        self._call("list_payments")
        rows = [p for p in self._store.payments.values() if p.group_id == group_id]
        return sorted(rows, key=lambda p: (p.created_at, p.id), reverse=True)


class FakeLedgerStore:
    """
    In-memory stand-in for LedgerRepository. transaction() snapshots all
    state and restores it when the block raises, like a database rollback.
    """

    enabled = True

    def __init__(self):
        self.groups = {}
        self.members = {}
        self.expenses = {}
        self.payments = {}
        self.fail_on = set()
        self.vanish_on = set()
        self.calls = []
        self.increments = []
        self.commits = 0
        self.rollbacks = 0
        self._seq = 0
        self._clock = 1_700_000_000

    def next_id(self, prefix):
        self._seq += 1
        return f"{prefix}_{self._seq}"

    def tick(self):
        self._clock += 1
        return self._clock

    @contextmanager
    def transaction(self):
        snapshot = copy.deepcopy((self.groups, self.members, self.expenses, self.payments))
        try:
            yield FakeUnitOfWork(self)
        except Exception:
            self.groups, self.members, self.expenses, self.payments = snapshot
            self.rollbacks += 1
            raise
        self.commits += 1

    # -- test helpers -----------------------------------------------------

    def add_group(self, group_id, user_ids):
        owner = user_ids[0] if user_ids else "owner"
        self.groups[group_id] = Group(group_id, group_id.upper(), owner, f"join-{group_id}")
        for uid in user_ids:
            self.members[(group_id, uid)] = Member(uid, group_id, 0, True)

    def balances(self, group_id, *, active_only=False):
        return {
            uid: m.balance_cents
            for (gid, uid), m in sorted(self.members.items())
            if gid == group_id and (m.active or not active_only)
        }

    def active_total(self, group_id):
        return sum(self.balances(group_id, active_only=True).values())

    def deactivate(self, group_id, user_id):
        member = self.members[(group_id, user_id)]
        self.members[(group_id, user_id)] = replace(member, active=False)


@pytest.fixture()
def store():
    s = FakeLedgerStore()
    s.add_group("g1", ["a", "b", "c"])
    return s


@pytest.fixture()
def service(store):
    return LedgerService(store)


@pytest.fixture()
def app():
    app = Flask(__name__)
    app.register_blueprint(api_bp)
    app.config["TESTING"] = True
    app.config["AUTH_USER_HEADER"] = "X-User-Id"
    return app


@pytest.fixture()
def client(app):
    return app.test_client()
