# backend/splitledger/services/ledger.py
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Mapping, Sequence

from splitledger.domain.adjustments import (
    ExpenseState,
    creation_deltas,
    deletion_deltas,
    diff_states,
    payment_deltas,
    payment_edit_deltas,
)
from splitledger.domain.errors import (
    AuthorizationError,
    ConsistencyError,
    NotFoundError,
    ValidationError,
)
from splitledger.domain.feed import merge_feed
from splitledger.domain.models import (
    Expense,
    ExpensePatch,
    Group,
    LedgerEntry,
    Member,
    NewExpense,
    NewGroup,
    NewPayment,
    Payment,
    PaymentPatch,
)
from splitledger.services.balance_mutator import apply_deltas

logger = logging.getLogger(__name__)

# Fewer active members than this means there is nobody to owe.
MIN_MEMBERS_FOR_BALANCES = 2


class LedgerService:
    """
    Record-level ledger workflows.

    Each public method runs in exactly one repository transaction: the record
    write and its balance deltas commit together, and any exception rolls
    both back. Validation and ownership checks happen before the first write.
    """

    def __init__(self, repository):
        self._repo = repository

    # -- helpers ----------------------------------------------------------

    @staticmethod
    def _require_group(tx, group_id: str) -> None:
        if not tx.group_exists(group_id):
            raise NotFoundError(f"group {group_id} not found")

    @staticmethod
    def _apply_if_shared(tx, group_id: str, active_member_ids: Sequence[str], deltas: Mapping[str, int]) -> Dict[str, int]:
        if len(active_member_ids) < MIN_MEMBERS_FOR_BALANCES:
            logger.debug("group %s has %d active member(s); balances left untouched", group_id, len(active_member_ids))
            return {}
        return apply_deltas(tx, group_id, deltas)

    @staticmethod
    def _require_active_participants(user_ids: Iterable[str], active_member_ids: Sequence[str]) -> None:
        # Only checked once balances are kept: a solo group has nobody else to split with.
        if len(active_member_ids) < MIN_MEMBERS_FOR_BALANCES:
            return
        outsiders = sorted(set(user_ids) - set(active_member_ids))
        if outsiders:
            raise ValidationError(f"shares name users who are not active group members: {', '.join(outsiders)}")

    @staticmethod
    def _owned_expense(tx, expense_id: str, requestor_id: str) -> Expense:
        expense = tx.get_expense(expense_id, for_update=True)
        if expense is None:
            raise NotFoundError(f"expense {expense_id} not found")
        if expense.payer_id != requestor_id:
            logger.warning("user %s may not modify expense %s owned by %s", requestor_id, expense_id, expense.payer_id)
            raise AuthorizationError("only the payer may modify this expense")
        return expense

    @staticmethod
    def _owned_payment(tx, payment_id: str, requestor_id: str) -> Payment:
        payment = tx.get_payment(payment_id, for_update=True)
        if payment is None:
            raise NotFoundError(f"payment {payment_id} not found")
        if payment.from_user_id != requestor_id:
            logger.warning("user %s may not modify payment %s sent by %s", requestor_id, payment_id, payment.from_user_id)
            raise AuthorizationError("only the sender may modify this payment")
        return payment

    # -- expenses ---------------------------------------------------------

    def create_expense(self, new_expense: NewExpense) -> Expense:
        with self._repo.transaction() as tx:
            self._require_group(tx, new_expense.group_id)
            active = tx.list_active_member_ids(new_expense.group_id)
            if new_expense.payer_id not in active:
                raise AuthorizationError("only active group members may add expenses")
            self._require_active_participants((s.user_id for s in new_expense.shares), active)

            expense = tx.insert_expense(new_expense)
            applied = self._apply_if_shared(tx, expense.group_id, active, creation_deltas(expense))

        logger.info("created expense %s in group %s (%d cents), deltas %s", expense.id, expense.group_id, expense.amount_cents, applied)
        return expense

    def edit_expense(self, expense_id: str, requestor_id: str, patch: ExpensePatch) -> Expense:
        with self._repo.transaction() as tx:
            current = self._owned_expense(tx, expense_id, requestor_id)
            updated = patch.apply_to(current)
            active: Sequence[str] = ()
            if patch.touches_ledger:
                active = tx.list_active_member_ids(current.group_id)
                # Participants who have since left may stay; new ones must be active.
                self._require_active_participants(patch.added_participants(current), active)

            saved = tx.update_expense(updated)
            if saved is None:
                raise ConsistencyError(f"expense {expense_id} disappeared during update")

            applied: Dict[str, int] = {}
            original_state = ExpenseState.of(current)
            new_state = ExpenseState.of(saved)
            if patch.touches_ledger and not original_state.same_ledger_effect(new_state):
                applied = self._apply_if_shared(tx, saved.group_id, active, diff_states(original_state, new_state))

        logger.info("edited expense %s, deltas %s", expense_id, applied)
        return saved

    def delete_expense(self, expense_id: str, requestor_id: str) -> Expense:
        with self._repo.transaction() as tx:
            expense = self._owned_expense(tx, expense_id, requestor_id)
            if not tx.delete_expense(expense_id):
                raise ConsistencyError(f"expense {expense_id} disappeared during delete")

            active = tx.list_active_member_ids(expense.group_id)
            applied = self._apply_if_shared(tx, expense.group_id, active, deletion_deltas(expense))

        logger.info("deleted expense %s, deltas %s", expense_id, applied)
        return expense

    # -- payments ---------------------------------------------------------

    def create_payment(self, new_payment: NewPayment) -> Payment:
        with self._repo.transaction() as tx:
            self._require_group(tx, new_payment.group_id)
            active = tx.list_active_member_ids(new_payment.group_id)
            if new_payment.from_user_id not in active:
                raise AuthorizationError("only active group members may record payments")
            if new_payment.to_user_id not in active:
                raise ValidationError("payment recipient must be an active group member")

            payment = tx.insert_payment(new_payment)
            applied = apply_deltas(
                tx, payment.group_id, payment_deltas(payment.from_user_id, payment.to_user_id, payment.amount_cents)
            )

        logger.info("created payment %s in group %s (%d cents), deltas %s", payment.id, payment.group_id, payment.amount_cents, applied)
        return payment

    def edit_payment(self, payment_id: str, requestor_id: str, patch: PaymentPatch) -> Payment:
        with self._repo.transaction() as tx:
            current = self._owned_payment(tx, payment_id, requestor_id)
            saved = tx.update_payment(patch.apply_to(current))
            if saved is None:
                raise ConsistencyError(f"payment {payment_id} disappeared during update")

            applied: Dict[str, int] = {}
            if saved.amount_cents != current.amount_cents:
                applied = apply_deltas(tx, saved.group_id, payment_edit_deltas(current, saved))

        logger.info("edited payment %s, deltas %s", payment_id, applied)
        return saved

    def delete_payment(self, payment_id: str, requestor_id: str) -> Payment:
        with self._repo.transaction() as tx:
            payment = self._owned_payment(tx, payment_id, requestor_id)
            if not tx.delete_payment(payment_id):
                raise ConsistencyError(f"payment {payment_id} disappeared during delete")

            applied = apply_deltas(
                tx, payment.group_id, payment_deltas(payment.from_user_id, payment.to_user_id, -payment.amount_cents)
            )

        logger.info("deleted payment %s, deltas %s", payment_id, applied)
        return payment

    # -- reads & membership -----------------------------------------------

    def get_feed(self, group_id: str) -> List[LedgerEntry]:
        with self._repo.transaction() as tx:
            self._require_group(tx, group_id)
            return merge_feed(tx.list_expenses(group_id), tx.list_payments(group_id))

    def get_balances(self, group_id: str) -> List[Member]:
        with self._repo.transaction() as tx:
            self._require_group(tx, group_id)
            return tx.list_members(group_id)

    def create_group(self, new_group: NewGroup) -> Group:
        """Create a group with its owner as the first active member."""
        with self._repo.transaction() as tx:
            group = tx.insert_group(new_group)
            tx.upsert_member(group.id, group.owner_id)

        logger.info("user %s created group %s", group.owner_id, group.id)
        return group

    def join_group(self, join_code: str, user_id: str) -> Member:
        with self._repo.transaction() as tx:
            group = tx.get_group_by_join_code(join_code)
            if group is None:
                raise NotFoundError("no group found for that join code")
            member = tx.upsert_member(group.id, user_id)

        logger.info("user %s joined group %s", user_id, group.id)
        return member

    def leave_group(self, group_id: str, user_id: str) -> Member:
        """Deactivate a membership. Only allowed once the balance is exactly 0."""
        with self._repo.transaction() as tx:
            member = tx.get_member(group_id, user_id, for_update=True)
            if member is None:
                raise NotFoundError(f"user {user_id} is not a member of group {group_id}")
            if not member.active:
                return member
            if member.balance_cents != 0:
                raise ValidationError("balance must be settled to 0 before leaving the group")
            if not tx.deactivate_member(group_id, user_id):
                raise ConsistencyError(f"membership of {user_id} in {group_id} changed during leave")

        logger.info("user %s left group %s", user_id, group_id)
        return replace(member, active=False)
