from datetime import datetime, timezone
from decimal import Decimal

import pytest

from tripsplit.config import get_settings
from tripsplit.models import AbsoluteSplitMode, AllocationRule, Assignment, Charge, Expense, Extras, LineItem
from tripsplit.services import itemized


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def even_rule():
    return AllocationRule(absolute_split=AbsoluteSplitMode.EVEN)


@pytest.fixture
def pizza_items():
    """One 30.00 pizza shared by Alice and Bob."""
    return [
        LineItem(
            id="i1",
            name="Pizza",
            quantity=Decimal("1"),
            unit_price=Decimal("30.00"),
            assignment=Assignment.even(["alice", "bob"]),
        )
    ]


@pytest.fixture
def pizza_extras():
    """8% tax on the pre-tax item subtotal."""
    return Extras(tax=Charge.percent(Decimal("8")))


@pytest.fixture
def pizza_breakdown(pizza_items, pizza_extras, even_rule):
    return itemized.calculate(pizza_items, pizza_extras, even_rule, "USD")


@pytest.fixture
def t0():
    return datetime(2026, 7, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def dinner():
    """A paid 90 for A, B and C."""
    return Expense.equal("e1", "A", Decimal("90.00"), ["A", "B", "C"], currency="USD")
