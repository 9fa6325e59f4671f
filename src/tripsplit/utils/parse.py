from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import TypeVar

from tripsplit.errors import ValidationError
from tripsplit.models import (
    AbsoluteSplitMode,
    CarryOverPolicy,
    PercentBase,
    RemainderStrategy,
    RoundingMode,
    SettlementAlgorithm,
)


E = TypeVar("E", bound=Enum)


# Spellings accepted on top of the canonical enum values
ROUNDING_MODE_ALIASES = {
    "roundhalfup": RoundingMode.HALF_UP,
    "halfup": RoundingMode.HALF_UP,
    "roundhalfeven": RoundingMode.HALF_EVEN,
    "halfeven": RoundingMode.HALF_EVEN,
    "banker": RoundingMode.HALF_EVEN,
    "bankers": RoundingMode.HALF_EVEN,
    "down": RoundingMode.FLOOR,
    "ceiling": RoundingMode.CEIL,
    "up": RoundingMode.CEIL,
}

REMAINDER_STRATEGY_ALIASES = {
    "largestshare": RemainderStrategy.LARGEST_SHARE,
    "largest": RemainderStrategy.LARGEST_SHARE,
    "firstlisted": RemainderStrategy.FIRST_LISTED,
    "first": RemainderStrategy.FIRST_LISTED,
}

PERCENT_BASE_ALIASES = {
    "pretaxitemsubtotals": PercentBase.PRE_TAX_ITEM_SUBTOTALS,
    "pretax": PercentBase.PRE_TAX_ITEM_SUBTOTALS,
    "taxableitemsubtotalsonly": PercentBase.TAXABLE_ITEM_SUBTOTALS_ONLY,
    "taxable": PercentBase.TAXABLE_ITEM_SUBTOTALS_ONLY,
}

ABSOLUTE_SPLIT_ALIASES = {
    "evenacrossassignedpeople": AbsoluteSplitMode.EVEN,
    "proportionaltoitemssubtotal": AbsoluteSplitMode.PROPORTIONAL,
}

CARRY_OVER_ALIASES = {
    "pairandamount": CarryOverPolicy.PAIR_AND_AMOUNT,
}

SETTLEMENT_ALGORITHM_ALIASES = {
    "minimal": SettlementAlgorithm.GREEDY,
    "pairwise": SettlementAlgorithm.PAIRS,
}


def _parse_enum(value: object, enum_cls: type[E], aliases: dict[str, E]) -> E:
    if isinstance(value, enum_cls):
        return value
    text = str(value).strip().lower()
    try:
        return enum_cls(text)
    except ValueError:
        pass
    key = re.sub(r"[\s_\-]", "", text)
    if key in aliases:
        return aliases[key]
    for member in enum_cls:
        if re.sub(r"_", "", member.value) == key:
            return member
    raise ValidationError(f"unknown {enum_cls.__name__} {value!r}")


def parse_rounding_mode(value: object) -> RoundingMode:
    return _parse_enum(value, RoundingMode, ROUNDING_MODE_ALIASES)


def parse_remainder_strategy(value: object) -> RemainderStrategy:
    return _parse_enum(value, RemainderStrategy, REMAINDER_STRATEGY_ALIASES)


def parse_percent_base(value: object) -> PercentBase:
    return _parse_enum(value, PercentBase, PERCENT_BASE_ALIASES)


def parse_absolute_split(value: object) -> AbsoluteSplitMode:
    return _parse_enum(value, AbsoluteSplitMode, ABSOLUTE_SPLIT_ALIASES)


def parse_carry_over_policy(value: object) -> CarryOverPolicy:
    return _parse_enum(value, CarryOverPolicy, CARRY_OVER_ALIASES)


def parse_settlement_algorithm(value: object) -> SettlementAlgorithm:
    return _parse_enum(value, SettlementAlgorithm, SETTLEMENT_ALGORITHM_ALIASES)


def parse_currency_code(value: str) -> str:
    code = value.strip().upper()
    if not re.fullmatch(r"[A-Z]{3}", code):
        raise ValidationError(f"currency code must be three letters, got {value!r}")
    return code


def parse_amount(text: str) -> Decimal:
    """
    Parse a user-typed amount into an exact Decimal.

    Supported formats:
    - 12.50
    - 12,50
    - 1 234,50
    - 1,234.50
    - $12.50 / 12.50 USD
    """
    cleaned = re.sub(r"[^\d,.\-]", "", text.strip())
    if not cleaned or not re.search(r"\d", cleaned):
        raise ValidationError(f"could not parse amount {text!r}")

    if "," in cleaned and "." in cleaned:
        # the right-most separator is the decimal one
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif "," in cleaned:
        tail = cleaned.rpartition(",")[2]
        if cleaned.count(",") > 1 or len(tail) == 3:
            cleaned = cleaned.replace(",", "")
        else:
            cleaned = cleaned.replace(",", ".")

    try:
        return Decimal(cleaned)
    except InvalidOperation as exc:
        raise ValidationError(f"could not parse amount {text!r}") from exc
