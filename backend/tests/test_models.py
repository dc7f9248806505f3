import pytest

from splitledger.domain.errors import ValidationError
from splitledger.domain.models import (
    Expense,
    ExpensePatch,
    ModelValidationError,
    NewExpense,
    NewPayment,
    Payment,
    PaymentPatch,
    Share,
    validate_shares,
)
from splitledger.domain.money import MoneyError, cents_to_str, safe_sum_cents


def _shares(mapping):
    return tuple(Share(uid, cents) for uid, cents in mapping.items())


def test_validate_shares_accepts_exact_sum():
    shares = validate_shares(1000, [Share("a", 0), Share("b", 1000)])
    assert shares == (Share("a", 0), Share("b", 1000))


@pytest.mark.parametrize(
    "amount, shares",
    [
        (1000, {"a": 1000}),  # fewer than two participants
        (1000, {"a": 500, "b": 499}),  # does not sum
        (0, {"a": 0, "b": 0}),  # amount must be positive
        (-100, {"a": 0, "b": 0}),
    ],
)
def test_validate_shares_rejects_bad_input(amount, shares):
    with pytest.raises(ValidationError):
        validate_shares(amount, list(_shares(shares)))


def test_validate_shares_rejects_duplicate_users():
    with pytest.raises(ModelValidationError, match="unique"):
        validate_shares(1000, [Share("a", 500), Share("a", 500)])


def test_share_rejects_negative_and_float_amounts():
    with pytest.raises(ModelValidationError):
        Share("a", -1)
    with pytest.raises(ModelValidationError):
        Share("a", 10.5)  # type: ignore[arg-type]
    with pytest.raises(ModelValidationError):
        Share("", 10)


def test_new_expense_validates_metadata():
    base = dict(group_id="g1", payer_id="a", amount_cents=200, shares=_shares({"a": 100, "b": 100}), date=1)
    assert NewExpense(description="Taxi", category="transportation", **base).category == "transportation"

    with pytest.raises(ModelValidationError):
        NewExpense(description="  ", **base)
    with pytest.raises(ModelValidationError):
        NewExpense(description="Taxi", category="yachts", **base)
    with pytest.raises(ModelValidationError):
        NewExpense(description="Taxi", **{**base, "date": 0})


def test_bool_is_not_an_amount():
    with pytest.raises(MoneyError):
        NewPayment("g1", "a", "b", True, "Cash", 1)  # type: ignore[arg-type]


def test_payment_needs_two_users():
    with pytest.raises(ModelValidationError):
        NewPayment("g1", "a", "a", 100, "Cash", 1)


def test_payment_method_must_be_known():
    with pytest.raises(ModelValidationError):
        NewPayment("g1", "a", "b", 100, "Cash", 1, payment_method="Bitcoin")


def test_expense_patch_apply_keeps_unset_fields():
    expense = Expense("exp_1", "g1", "a", 1000, _shares({"a": 500, "b": 500}), "Dinner", 5, notes="old")

    patched = ExpensePatch(description="Late dinner", notes="").apply_to(expense)

    assert patched.description == "Late dinner"
    assert patched.notes is None
    assert patched.amount_cents == 1000
    assert patched.shares == expense.shares
    assert ExpensePatch(description="x").touches_ledger is False
    assert ExpensePatch(amount_cents=5).touches_ledger is True


def test_payment_patch_cannot_be_negative():
    with pytest.raises(MoneyError):
        PaymentPatch(amount_cents=-5)


def test_cents_formatting():
    assert cents_to_str(1234) == "$12.34"
    assert cents_to_str(-5) == "-$0.05"
    assert cents_to_str(0) == "$0.00"


def test_safe_sum_cents_rejects_floats():
    assert safe_sum_cents(1, 2, 3) == 6
    with pytest.raises(MoneyError):
        safe_sum_cents(1, 2.5)  # type: ignore[arg-type]


def test_shares_must_include_payer():
    base = dict(group_id="g1", payer_id="a", amount_cents=200, description="Taxi", date=1)
    assert NewExpense(shares=_shares({"a": 0, "b": 200}), **base).shares[0] == Share("a", 0)

    with pytest.raises(ModelValidationError, match="payer"):
        NewExpense(shares=_shares({"b": 100, "c": 100}), **base)


def test_expense_patch_cannot_drop_payer():
    expense = Expense("exp_1", "g1", "a", 1000, _shares({"a": 500, "b": 500}), "Dinner", 5)

    with pytest.raises(ModelValidationError, match="payer"):
        ExpensePatch(shares=_shares({"b": 500, "c": 500})).apply_to(expense)


def test_empty_string_clears_optional_fields():
    expense = Expense("exp_1", "g1", "a", 1000, _shares({"a": 500, "b": 500}), "Dinner", 5, category="restaurants")

    assert ExpensePatch(notes="late").apply_to(expense).category == "restaurants"
    assert ExpensePatch(category="").apply_to(expense).category is None

    payment = Payment("pay_1", "g1", "b", "a", 500, "Settle", 5, payment_method="Venmo", notes="thanks")
    cleared = PaymentPatch(payment_method="", notes="").apply_to(payment)
    assert cleared.payment_method is None
    assert cleared.notes is None


def test_expense_patch_lists_added_participants():
    expense = Expense("exp_1", "g1", "a", 900, _shares({"a": 300, "b": 300, "c": 300}), "Dinner", 5)

    assert ExpensePatch(shares=_shares({"a": 300, "b": 300, "d": 300})).added_participants(expense) == ("d",)
    assert ExpensePatch(notes="x").added_participants(expense) == ()
