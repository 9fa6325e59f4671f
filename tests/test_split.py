from decimal import Decimal

import pytest

from tripsplit.errors import DataIntegrityError, ValidationError
from tripsplit.models import Expense, RemainderStrategy, RoundingConfig
from tripsplit.services.split import calculate_expense_split, merge_shares, split_amount, split_weighted


def test_split_amount_even():
    shares = split_amount(Decimal("10.00"), ["1", "2", "3", "4"], 2)
    assert shares == {"1": Decimal("2.50"), "2": Decimal("2.50"), "3": Decimal("2.50"), "4": Decimal("2.50")}


def test_split_amount_remainder():
    shares = split_amount(Decimal("10.01"), ["1", "2", "3"], 2)
    assert sum(shares.values()) == Decimal("10.01")
    assert sorted(shares.values()) == [Decimal("3.33"), Decimal("3.34"), Decimal("3.34")]


def test_split_amount_rejects_bad_input():
    with pytest.raises(ValidationError):
        split_amount(Decimal("-1"), ["1"], 2)
    with pytest.raises(ValidationError):
        split_amount(Decimal("1"), [], 2)


def test_split_weighted():
    shares = split_weighted(Decimal("100"), {"a": 2, "b": 1, "c": 1}, 2)
    assert shares == {"a": Decimal("50.00"), "b": Decimal("25.00"), "c": Decimal("25.00")}

    shares = split_weighted(Decimal("10"), {"a": 1, "b": 1, "c": 1}, 2)
    assert shares == {"a": Decimal("3.34"), "b": Decimal("3.33"), "c": Decimal("3.33")}


def test_split_weighted_requires_positive_total():
    with pytest.raises(ValidationError):
        split_weighted(Decimal("10"), {"a": 0, "b": 0}, 2)


def test_merge_shares():
    merged = merge_shares([{"a": Decimal("1.50")}, {"a": Decimal("1"), "b": Decimal("2")}])
    assert merged == {"a": Decimal("2.50"), "b": Decimal("2")}


def test_expense_split_uses_expense_rounding():
    expense = Expense.equal(
        "e1",
        "c",
        Decimal("100"),
        ["a", "b", "c"],
        rounding=RoundingConfig(strategy=RemainderStrategy.PAYER),
    )
    shares = calculate_expense_split(expense, 2)
    assert shares == {"a": Decimal("33.33"), "b": Decimal("33.33"), "c": Decimal("33.34")}


def test_expense_split_zero_decimal_currency():
    expense = Expense.equal("e1", "a", Decimal("1000"), ["a", "b", "c"], currency="VND")
    assert calculate_expense_split(expense, 0) == {"a": Decimal("334"), "b": Decimal("333"), "c": Decimal("333")}


def test_itemized_expense_must_match_breakdown(pizza_breakdown):
    expense = Expense.itemized("e1", "alice", pizza_breakdown, amount=Decimal("40.00"))
    with pytest.raises(DataIntegrityError):
        calculate_expense_split(expense, 2)

    expense = Expense.itemized("e1", "alice", pizza_breakdown)
    assert calculate_expense_split(expense, 2) == {"alice": Decimal("16.20"), "bob": Decimal("16.20")}


def test_expense_split_random_strategy_follows_seed():
    expense = Expense.equal("e1", "a", Decimal("100.00"), ["a", "b", "c"])
    rounding = RoundingConfig(strategy=RemainderStrategy.RANDOM)

    shares = calculate_expense_split(expense, 2, rounding, seed=3)

    assert shares == calculate_expense_split(expense, 2, rounding, seed=3)
    assert sorted(shares.values()) == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]


def test_itemized_expense_without_breakdown_is_rejected(pizza_breakdown):
    expense = Expense.itemized("e1", "alice", pizza_breakdown)
    object.__setattr__(expense, "breakdown", None)

    with pytest.raises(ValidationError):
        calculate_expense_split(expense, 2)
