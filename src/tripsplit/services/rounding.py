from __future__ import annotations

import hashlib
import random
from decimal import Decimal
from fractions import Fraction
from typing import Mapping, Optional

from tripsplit.currency import Amount, currency_places, precision_unit, round_to_places, to_fraction
from tripsplit.errors import InvalidConfiguration
from tripsplit.logging import get_logger
from tripsplit.models import RemainderStrategy, RoundingConfig, RoundingMode


HALF_MODES = (RoundingMode.HALF_UP, RoundingMode.HALF_EVEN)


def round_amounts(
    amounts: Mapping[str, Amount],
    decimal_places: int,
    mode: RoundingMode = RoundingMode.HALF_UP,
    strategy: RemainderStrategy = RemainderStrategy.LARGEST_SHARE,
    payer_id: Optional[str] = None,
    seed: Optional[int] = None,
) -> dict[str, Decimal]:
    """Round every amount to currency precision without creating or losing money.

    The result always sums to the original total rounded with ``mode``. Whole
    precision units left over after rounding each amount on its own go to a
    single participant chosen by ``strategy``.

    >>> round_amounts({"a": Decimal("10") / 3, "b": Decimal("10") / 3, "c": Decimal("10") / 3}, 2)
    {'a': Decimal('3.34'), 'b': Decimal('3.33'), 'c': Decimal('3.33')}
    """
    if strategy is RemainderStrategy.PAYER:
        if payer_id is None:
            raise InvalidConfiguration("payer id is required for the payer remainder strategy")
        if payer_id not in amounts:
            raise InvalidConfiguration(f"payer {payer_id!r} is not among the rounded amounts")

    exact = {user_id: to_fraction(amount) for user_id, amount in amounts.items()}
    rounded = {user_id: round_to_places(amount, decimal_places, mode) for user_id, amount in exact.items()}
    if len(exact) <= 1 or all(amount == 0 for amount in exact.values()):
        return rounded

    original_total = sum(exact.values(), Fraction(0))
    rounded_total = sum(rounded.values(), Decimal(0))
    unit = precision_unit(decimal_places)

    remainder = original_total - Fraction(rounded_total)
    if mode in HALF_MODES and abs(remainder) < Fraction(unit) / 2:
        return rounded

    target_total = round_to_places(original_total, decimal_places, mode)
    units = int((target_total - rounded_total) / unit)
    if units == 0:
        return rounded

    recipient = select_remainder_recipient(exact, strategy, payer_id=payer_id, seed=seed)
    rounded[recipient] += units * unit

    get_logger(__name__).debug(
        "rounding.remainder",
        recipient=recipient,
        units=units,
        strategy=strategy.value,
    )
    return rounded


def select_remainder_recipient(
    amounts: Mapping[str, Fraction],
    strategy: RemainderStrategy,
    payer_id: Optional[str] = None,
    seed: Optional[int] = None,
) -> str:
    if not amounts:
        raise InvalidConfiguration("cannot pick a remainder recipient from no participants")

    if strategy is RemainderStrategy.LARGEST_SHARE:
        # max() keeps the first of equal keys, i.e. insertion order on ties
        return max(amounts, key=lambda user_id: abs(amounts[user_id]))
    if strategy is RemainderStrategy.PAYER:
        if payer_id is None or payer_id not in amounts:
            raise InvalidConfiguration("payer remainder strategy needs a payer among the participants")
        return payer_id
    if strategy is RemainderStrategy.FIRST_LISTED:
        return next(iter(amounts))

    rng = random.Random(seed) if seed is not None else random.Random()
    return rng.choice(list(amounts))


def calculate_remainder(
    amounts: Mapping[str, Amount],
    decimal_places: int,
    mode: RoundingMode = RoundingMode.HALF_UP,
) -> Decimal:
    """Signed amount, in whole precision units, that independent rounding leaves over."""
    original_total = sum((to_fraction(amount) for amount in amounts.values()), Fraction(0))
    rounded_total = sum(
        (round_to_places(amount, decimal_places, mode) for amount in amounts.values()),
        Decimal(0),
    )
    return round_to_places(original_total, decimal_places, mode) - rounded_total


def derive_seed(seed: Optional[int], key: str) -> Optional[int]:
    """Stable per-key seed, e.g. one per expense; ``None`` stays ``None``."""
    if seed is None:
        return None
    digest = hashlib.sha256(f"{seed}:{key}".encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


def places_for(config: RoundingConfig, currency_code: str) -> int:
    if config.decimal_places is not None:
        return config.decimal_places
    return currency_places(currency_code)
