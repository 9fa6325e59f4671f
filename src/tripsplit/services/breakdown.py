from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence

from tripsplit.config import get_settings
from tripsplit.models import Expense, RoundingConfig
from tripsplit.services.split import calculate_expense_split


@dataclass(frozen=True, slots=True)
class ExpenseContribution:
    expense: Expense
    from_paid: Decimal
    from_owes: Decimal
    to_paid: Decimal
    to_owes: Decimal
    # positive: the sender owes the receiver because of this expense
    net_contribution: Decimal


@dataclass(frozen=True, slots=True)
class TransferBreakdown:
    from_user_id: str
    to_user_id: str
    total_amount: Decimal
    contributions: tuple[ExpenseContribution, ...]

    @property
    def relevant(self) -> list[ExpenseContribution]:
        return [item for item in self.contributions if item.net_contribution != 0]

    @property
    def direct_total(self) -> Decimal:
        return sum((item.net_contribution for item in self.contributions), Decimal(0))


def pairwise_debt(expense: Expense, from_owes: Decimal, to_owes: Decimal, from_user_id: str, to_user_id: str) -> Decimal:
    if expense.payer_id == to_user_id and expense.payer_id != from_user_id:
        return from_owes
    if expense.payer_id == from_user_id and expense.payer_id != to_user_id:
        return -to_owes
    return Decimal(0)


def calculate_transfer_breakdown(
    from_user_id: str,
    to_user_id: str,
    amount: Decimal,
    expenses: Sequence[Expense],
    decimal_places: int,
    rounding: Optional[RoundingConfig] = None,
    seed: Optional[int] = None,
) -> TransferBreakdown:
    """Show which expenses created the debt behind one transfer.

    Each expense contributes the direct debt between the two people only:
    the sender's share when the receiver paid, minus the receiver's share
    when the sender paid, nothing when a third person paid.
    """
    rounding = rounding or get_settings().rounding_config()

    contributions = []
    for expense in expenses:
        shares = calculate_expense_split(expense, decimal_places, rounding, seed=seed)
        from_owes = shares.get(from_user_id, Decimal(0))
        to_owes = shares.get(to_user_id, Decimal(0))
        contributions.append(
            ExpenseContribution(
                expense=expense,
                from_paid=expense.amount if expense.payer_id == from_user_id else Decimal(0),
                from_owes=from_owes,
                to_paid=expense.amount if expense.payer_id == to_user_id else Decimal(0),
                to_owes=to_owes,
                net_contribution=pairwise_debt(expense, from_owes, to_owes, from_user_id, to_user_id),
            )
        )

    return TransferBreakdown(
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        total_amount=amount,
        contributions=tuple(contributions),
    )
