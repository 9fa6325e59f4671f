from __future__ import annotations

from decimal import Decimal
from fractions import Fraction
from typing import Iterable, Mapping, Optional, Sequence

from tripsplit.currency import Amount, to_fraction
from tripsplit.errors import DataIntegrityError, ValidationError
from tripsplit.models import Expense, RemainderStrategy, RoundingConfig, RoundingMode, SplitType
from tripsplit.services.rounding import derive_seed, round_amounts


def split_amount(
    amount: Amount,
    consumers: Sequence[str],
    decimal_places: int,
    mode: RoundingMode = RoundingMode.HALF_UP,
    strategy: RemainderStrategy = RemainderStrategy.LARGEST_SHARE,
    payer_id: Optional[str] = None,
    seed: Optional[int] = None,
) -> dict[str, Decimal]:
    if to_fraction(amount) < 0:
        raise ValidationError("amount must be non-negative")
    if not consumers:
        raise ValidationError("consumers must not be empty")

    share = to_fraction(amount) / len(consumers)
    return round_amounts(
        {consumer: share for consumer in consumers},
        decimal_places,
        mode=mode,
        strategy=strategy,
        payer_id=payer_id,
        seed=seed,
    )


def split_weighted(
    amount: Amount,
    weights: Mapping[str, Amount],
    decimal_places: int,
    mode: RoundingMode = RoundingMode.HALF_UP,
    strategy: RemainderStrategy = RemainderStrategy.LARGEST_SHARE,
    payer_id: Optional[str] = None,
    seed: Optional[int] = None,
) -> dict[str, Decimal]:
    if to_fraction(amount) < 0:
        raise ValidationError("amount must be non-negative")
    exact_weights = {user_id: to_fraction(weight) for user_id, weight in weights.items()}
    if any(weight < 0 for weight in exact_weights.values()):
        raise ValidationError("weights must be non-negative")
    total_weight = sum(exact_weights.values(), Fraction(0))
    if total_weight == 0:
        raise ValidationError("weights must not all be zero")

    exact_amount = to_fraction(amount)
    return round_amounts(
        {user_id: exact_amount * weight / total_weight for user_id, weight in exact_weights.items()},
        decimal_places,
        mode=mode,
        strategy=strategy,
        payer_id=payer_id,
        seed=seed,
    )


def merge_shares(shares: Iterable[Mapping[str, Decimal]]) -> dict[str, Decimal]:
    result: dict[str, Decimal] = {}
    for share in shares:
        for user_id, amount in share.items():
            result[user_id] = result.get(user_id, Decimal(0)) + amount
    return result


def calculate_expense_split(
    expense: Expense,
    decimal_places: int,
    rounding: Optional[RoundingConfig] = None,
    seed: Optional[int] = None,
) -> dict[str, Decimal]:
    """What every participant owes for one expense, summing to its amount.

    Itemized expenses use the totals of their breakdown as is; equal and
    weighted ones are rounded through the remainder-distribution service,
    with the expense's own rounding config taking precedence. ``seed`` is
    combined with the expense id, so the random strategy picks the same
    recipient for an expense wherever it is split.
    """
    if expense.split_type is SplitType.ITEMIZED:
        if expense.breakdown is None:
            raise ValidationError(f"expense {expense.id}: itemized expense requires a breakdown")
        shares = {user_id: item.total for user_id, item in expense.breakdown.items()}
        if sum(shares.values(), Decimal(0)) != expense.amount:
            raise DataIntegrityError(
                f"expense {expense.id}: breakdown totals do not add up to the amount {expense.amount}"
            )
        return shares

    config = expense.rounding or rounding or RoundingConfig()
    if config.decimal_places is not None:
        decimal_places = config.decimal_places
    payer_id = expense.payer_id if config.strategy is RemainderStrategy.PAYER else None
    expense_seed = derive_seed(seed, expense.id)

    if expense.split_type is SplitType.EQUAL:
        return split_amount(
            expense.amount,
            list(expense.participants),
            decimal_places,
            mode=config.mode,
            strategy=config.strategy,
            payer_id=payer_id,
            seed=expense_seed,
        )
    return split_weighted(
        expense.amount,
        expense.participants,
        decimal_places,
        mode=config.mode,
        strategy=config.strategy,
        payer_id=payer_id,
        seed=expense_seed,
    )
