from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request

from splitledger.api.validators import (
    ApiValidationError,
    parse_expense_patch,
    parse_join_code,
    parse_new_expense,
    parse_new_group,
    parse_new_payment,
    parse_payment_patch,
)
from splitledger.db.repository import LedgerRepository
from splitledger.domain.errors import LedgerError
from splitledger.domain.models import Expense, Group, LedgerEntry, Member, Payment
from splitledger.domain.money import cents_to_str
from splitledger.services.ledger import LedgerService

api_bp = Blueprint("api", __name__, url_prefix="/api")


class DatabaseUnavailable(RuntimeError):
    pass


class AuthenticationRequired(RuntimeError):
    pass


def _json_error(message: str, *, status: int = 400, code: str = "bad_request"):
    return jsonify({"error": {"code": code, "message": message}}), status


@api_bp.errorhandler(LedgerError)
def _ledger_error(err: LedgerError):
    return _json_error(str(err), status=err.status, code=err.code)


@api_bp.errorhandler(DatabaseUnavailable)
def _db_unavailable(err: DatabaseUnavailable):
    return _json_error("Database is not configured.", status=503, code="db_unavailable")


@api_bp.errorhandler(AuthenticationRequired)
def _unauthenticated(err: AuthenticationRequired):
    return _json_error("Authentication required.", status=401, code="authentication_required")


def _repo() -> LedgerRepository:
    return LedgerRepository(
        current_app.config.get("DATABASE_URL", ""),
        isolation_level=current_app.config.get("LEDGER_ISOLATION_LEVEL", "READ COMMITTED"),
    )


def _service() -> LedgerService:
    repo = _repo()
    if not repo.enabled:
        raise DatabaseUnavailable()
    return LedgerService(repo)


def _requestor_id() -> str:
    header = current_app.config.get("AUTH_USER_HEADER", "X-User-Id")
    user_id = (request.headers.get(header) or "").strip()
    if not user_id:
        raise AuthenticationRequired()
    return user_id


def _json_body() -> Any:
    data = request.get_json(silent=True)
    if data is None:
        raise ApiValidationError("Request body must be JSON.")
    return data


def _expense_json(expense: Expense) -> Dict[str, Any]:
    return {
        "kind": expense.kind,
        "id": expense.id,
        "group_id": expense.group_id,
        "payer_id": expense.payer_id,
        "amount_cents": expense.amount_cents,
        "amount_display": cents_to_str(expense.amount_cents),
        "shares": [{"user_id": s.user_id, "amount_cents": s.amount_cents} for s in expense.shares],
        "description": expense.description,
        "date": expense.date,
        "category": expense.category,
        "notes": expense.notes,
        "created_at": expense.created_at,
    }


def _payment_json(payment: Payment) -> Dict[str, Any]:
    return {
        "kind": payment.kind,
        "id": payment.id,
        "group_id": payment.group_id,
        "from_user_id": payment.from_user_id,
        "to_user_id": payment.to_user_id,
        "amount_cents": payment.amount_cents,
        "amount_display": cents_to_str(payment.amount_cents),
        "description": payment.description,
        "date": payment.date,
        "payment_method": payment.payment_method,
        "notes": payment.notes,
        "created_at": payment.created_at,
    }


def _entry_json(entry: LedgerEntry) -> Dict[str, Any]:
    if isinstance(entry, Expense):
        return _expense_json(entry)
    if isinstance(entry, Payment):
        return _payment_json(entry)
    raise TypeError(f"unexpected feed entry: {type(entry).__name__}")


def _group_json(group: Group) -> Dict[str, Any]:
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "owner_id": group.owner_id,
        "join_code": group.join_code,
        "created_at": group.created_at,
    }


def _member_json(member: Member) -> Dict[str, Any]:
    return {
        "user_id": member.user_id,
        "group_id": member.group_id,
        "balance_cents": member.balance_cents,
        "balance_display": cents_to_str(member.balance_cents),
        "active": member.active,
    }


@api_bp.get("/health")
def health():
    return jsonify({"status": "ok"}), 200


@api_bp.post("/groups/<group_id>/expenses")
def create_expense(group_id: str):
    new_expense = parse_new_expense(group_id, _requestor_id(), _json_body())
    expense = _service().create_expense(new_expense)
    return jsonify(_expense_json(expense)), 201


@api_bp.patch("/expenses/<expense_id>")
def edit_expense(expense_id: str):
    requestor_id = _requestor_id()
    patch = parse_expense_patch(_json_body())
    expense = _service().edit_expense(expense_id, requestor_id, patch)
    return jsonify(_expense_json(expense)), 200


@api_bp.delete("/expenses/<expense_id>")
def delete_expense(expense_id: str):
    requestor_id = _requestor_id()
    expense = _service().delete_expense(expense_id, requestor_id)
    return jsonify(_expense_json(expense)), 200


@api_bp.post("/groups/<group_id>/payments")
def create_payment(group_id: str):
    new_payment = parse_new_payment(group_id, _requestor_id(), _json_body())
    payment = _service().create_payment(new_payment)
    return jsonify(_payment_json(payment)), 201


@api_bp.patch("/payments/<payment_id>")
def edit_payment(payment_id: str):
    requestor_id = _requestor_id()
    patch = parse_payment_patch(_json_body())
    payment = _service().edit_payment(payment_id, requestor_id, patch)
    return jsonify(_payment_json(payment)), 200


@api_bp.delete("/payments/<payment_id>")
def delete_payment(payment_id: str):
    requestor_id = _requestor_id()
    payment = _service().delete_payment(payment_id, requestor_id)
    return jsonify(_payment_json(payment)), 200


@api_bp.get("/groups/<group_id>/feed")
def group_feed(group_id: str):
    _requestor_id()
    feed = _service().get_feed(group_id)
    return jsonify({"group_id": group_id, "items": [_entry_json(entry) for entry in feed]}), 200


@api_bp.get("/groups/<group_id>/balances")
def group_balances(group_id: str):
    _requestor_id()
    members = _service().get_balances(group_id)
    return jsonify(
        {
            "group_id": group_id,
            "members": [_member_json(m) for m in members],
            "active_total_cents": sum(m.balance_cents for m in members if m.active),
        }
    ), 200


@api_bp.post("/groups")
def create_group():
    new_group = parse_new_group(_requestor_id(), _json_body())
    group = _service().create_group(new_group)
    return jsonify(_group_json(group)), 201


@api_bp.post("/groups/join")
def join_group():
    requestor_id = _requestor_id()
    join_code = parse_join_code(_json_body())
    member = _service().join_group(join_code, requestor_id)
    return jsonify(_member_json(member)), 200


@api_bp.post("/groups/<group_id>/leave")
def leave_group(group_id: str):
    requestor_id = _requestor_id()
    member = _service().leave_group(group_id, requestor_id)
    return jsonify(_member_json(member)), 200
