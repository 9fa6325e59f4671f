from __future__ import annotations

from decimal import Decimal
from fractions import Fraction
from typing import Union

from tripsplit.models import RoundingMode


Amount = Union[Decimal, Fraction, int]

DEFAULT_DECIMAL_PLACES = 2

# ISO 4217 minor units; anything missing uses DEFAULT_DECIMAL_PLACES.
DECIMAL_PLACES: dict[str, int] = {
    "BIF": 0,
    "CLP": 0,
    "DJF": 0,
    "GNF": 0,
    "ISK": 0,
    "JPY": 0,
    "KMF": 0,
    "KRW": 0,
    "PYG": 0,
    "RWF": 0,
    "UGX": 0,
    "VND": 0,
    "VUV": 0,
    "XAF": 0,
    "XOF": 0,
    "XPF": 0,
    "BHD": 3,
    "IQD": 3,
    "JOD": 3,
    "KWD": 3,
    "LYD": 3,
    "OMR": 3,
    "TND": 3,
    "USD": 2,
    "EUR": 2,
    "GBP": 2,
    "AUD": 2,
    "CAD": 2,
    "CHF": 2,
    "CNY": 2,
    "HKD": 2,
    "INR": 2,
    "MXN": 2,
    "NZD": 2,
    "RUB": 2,
    "SEK": 2,
    "SGD": 2,
    "THB": 2,
}


def currency_places(currency_code: str) -> int:
    return DECIMAL_PLACES.get(currency_code.strip().upper(), DEFAULT_DECIMAL_PLACES)


def is_zero_decimal(currency_code: str) -> bool:
    return currency_places(currency_code) == 0


def supported_currencies() -> list[str]:
    return sorted(DECIMAL_PLACES)


def precision_unit(places: int) -> Decimal:
    """Smallest representable amount: 0.01 for two places, 1 for zero."""
    return Decimal(1) if places <= 0 else Decimal(1).scaleb(-places)


def to_fraction(value: Amount) -> Fraction:
    if isinstance(value, Fraction):
        return value
    return Fraction(value)


def round_to_places(value: Amount, places: int, mode: RoundingMode) -> Decimal:
    """Round an exact amount to ``places`` decimals using integer arithmetic.

    Works on the exact rational value, so thirds and other non-terminating
    shares are rounded without any intermediate binary or truncated decimal
    representation. Half-up rounds ties away from zero, floor and ceil follow
    their mathematical meaning.
    """
    scaled = to_fraction(value) * 10**places
    quotient, rest = divmod(scaled.numerator, scaled.denominator)
    if rest == 0:
        units = quotient
    elif mode is RoundingMode.FLOOR:
        units = quotient
    elif mode is RoundingMode.CEIL:
        units = quotient + 1
    else:
        twice = 2 * rest
        if twice > scaled.denominator:
            units = quotient + 1
        elif twice < scaled.denominator:
            units = quotient
        elif mode is RoundingMode.HALF_EVEN:
            units = quotient if quotient % 2 == 0 else quotient + 1
        else:
            units = quotient + 1 if scaled > 0 else quotient
    return Decimal(units).scaleb(-places)


def round_for_currency(value: Amount, currency_code: str, mode: RoundingMode) -> Decimal:
    return round_to_places(value, currency_places(currency_code), mode)


def equal_within_precision(a: Amount, b: Amount, places: int) -> bool:
    return abs(to_fraction(a) - to_fraction(b)) < to_fraction(precision_unit(places))


def format_amount(value: Amount, currency_code: str) -> str:
    places = currency_places(currency_code)
    if not isinstance(value, Decimal):
        value = round_to_places(value, places, RoundingMode.HALF_UP)
    return f"{value:.{places}f}"
