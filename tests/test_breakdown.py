from decimal import Decimal

from tripsplit.models import Expense, RemainderStrategy, RoundingConfig
from tripsplit.services.breakdown import calculate_transfer_breakdown
from tripsplit.services.settlement import calculate_person_summaries


def test_transfer_breakdown_by_expense(dinner):
    snacks = Expense.equal("e2", "B", Decimal("30.00"), ["A", "B", "C"])
    taxi = Expense.equal("e3", "C", Decimal("12.00"), ["A", "B", "C"])

    breakdown = calculate_transfer_breakdown("B", "A", Decimal("20.00"), [dinner, snacks, taxi], 2)

    assert breakdown.total_amount == Decimal("20.00")
    first, second, third = breakdown.contributions
    assert first.to_paid == Decimal("90.00")
    assert first.from_owes == Decimal("30.00")
    assert first.net_contribution == Decimal("30.00")
    assert second.from_paid == Decimal("30.00")
    assert second.to_owes == Decimal("10.00")
    assert second.net_contribution == Decimal("-10.00")
    assert third.net_contribution == 0
    assert [item.expense.id for item in breakdown.relevant] == ["e1", "e2"]
    assert breakdown.direct_total == Decimal("20.00")


def test_breakdown_for_unrelated_pair(dinner):
    breakdown = calculate_transfer_breakdown("B", "C", Decimal("0"), [dinner], 2)

    assert breakdown.relevant == []
    assert breakdown.direct_total == 0


def test_breakdown_with_itemized_expense(pizza_breakdown):
    pizza = Expense.itemized("e1", "alice", pizza_breakdown)

    breakdown = calculate_transfer_breakdown("bob", "alice", Decimal("16.20"), [pizza], 2)

    assert breakdown.direct_total == Decimal("16.20")


def test_breakdown_uses_the_same_seeded_shares_as_settlement():
    rounding = RoundingConfig(strategy=RemainderStrategy.RANDOM)
    lunch = Expense.equal("e9", "A", Decimal("10.00"), ["A", "B", "C"])

    breakdown = calculate_transfer_breakdown("B", "A", Decimal("0"), [lunch], 2, rounding, seed=5)
    summaries = calculate_person_summaries([lunch], "USD", rounding=rounding, seed=5)

    assert breakdown.direct_total == -summaries["B"].net
