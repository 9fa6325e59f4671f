from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from fractions import Fraction
from typing import Any, Iterable, Mapping, Optional, Union

from tripsplit.errors import ValidationError


Share = Union[Decimal, Fraction]


class RoundingMode(str, Enum):
    HALF_UP = "half_up"
    HALF_EVEN = "half_even"
    FLOOR = "floor"
    CEIL = "ceil"


class RemainderStrategy(str, Enum):
    LARGEST_SHARE = "largest_share"
    PAYER = "payer"
    FIRST_LISTED = "first_listed"
    RANDOM = "random"


class PercentBase(str, Enum):
    PRE_TAX_ITEM_SUBTOTALS = "pre_tax_item_subtotals"
    TAXABLE_ITEM_SUBTOTALS_ONLY = "taxable_item_subtotals_only"


class AbsoluteSplitMode(str, Enum):
    EVEN = "even"
    PROPORTIONAL = "proportional"


class ChargeType(str, Enum):
    FLAT = "flat"
    PERCENT = "percent"


class AssignmentMode(str, Enum):
    EVEN = "even"
    CUSTOM = "custom"


class SplitType(str, Enum):
    EQUAL = "equal"
    WEIGHTED = "weighted"
    ITEMIZED = "itemized"


class ExtraKind(str, Enum):
    TAX = "tax"
    TIP = "tip"
    FEE = "fee"
    DISCOUNT = "discount"


class CarryOverPolicy(str, Enum):
    PAIR = "pair"
    PAIR_AND_AMOUNT = "pair_and_amount"


class SettlementAlgorithm(str, Enum):
    GREEDY = "greedy"
    PAIRS = "pairs"


def as_decimal(value: Any, what: str = "amount") -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationError(f"{what} must be a number, got {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{what} must be a number, got {value!r}") from exc


def _frozen_set(obj: object, name: str, value: object) -> None:
    object.__setattr__(obj, name, value)


@dataclass(frozen=True, slots=True)
class Assignment:
    """Who shares a line item: evenly, or by explicit fractions summing to one."""

    mode: AssignmentMode
    users: tuple[str, ...]
    shares: Optional[Mapping[str, Share]] = None

    def __post_init__(self) -> None:
        _frozen_set(self, "users", tuple(self.users))
        if not self.users:
            raise ValidationError("assignment must name at least one participant")
        if len(set(self.users)) != len(self.users):
            raise ValidationError("assignment lists a participant more than once")

        if self.mode is AssignmentMode.EVEN:
            if self.shares is not None:
                raise ValidationError("even assignment cannot carry custom shares")
            return

        if self.shares is None:
            raise ValidationError("custom assignment requires shares")
        shares = {user_id: _share(value) for user_id, value in self.shares.items()}
        if set(shares) != set(self.users):
            raise ValidationError("custom share keys must match the assigned participants")
        if any(value <= 0 for value in shares.values()):
            raise ValidationError("custom shares must be positive")
        total = sum(shares.values(), Fraction(0))
        if total != 1:
            raise ValidationError(f"custom shares must sum to 1, got {float(total):.6f}")
        _frozen_set(self, "shares", shares)

    @classmethod
    def even(cls, users: Iterable[str]) -> "Assignment":
        return cls(mode=AssignmentMode.EVEN, users=tuple(users))

    @classmethod
    def custom(cls, shares: Mapping[str, Share]) -> "Assignment":
        return cls(mode=AssignmentMode.CUSTOM, users=tuple(shares), shares=dict(shares))

    def share_of(self, user_id: str) -> Fraction:
        if self.mode is AssignmentMode.EVEN:
            return Fraction(1, len(self.users))
        if self.shares is None:
            raise ValidationError("custom assignment requires shares")
        return Fraction(self.shares[user_id])


def _share(value: Any) -> Fraction:
    if isinstance(value, Fraction):
        return value
    return Fraction(as_decimal(value, "share"))


@dataclass(frozen=True, slots=True)
class LineItem:
    id: str
    name: str
    quantity: Decimal
    unit_price: Decimal
    assignment: Assignment
    taxable: bool = True

    def __post_init__(self) -> None:
        _frozen_set(self, "quantity", as_decimal(self.quantity, "quantity"))
        _frozen_set(self, "unit_price", as_decimal(self.unit_price, "unit price"))
        if not self.name.strip():
            raise ValidationError("item name cannot be empty")
        if self.quantity <= 0:
            raise ValidationError(f"item {self.name!r}: quantity must be greater than 0")
        if self.unit_price < 0:
            raise ValidationError(f"item {self.name!r}: unit price cannot be negative")

    @property
    def item_total(self) -> Decimal:
        return self.quantity * self.unit_price


@dataclass(frozen=True, slots=True)
class Charge:
    """A flat amount or a percentage of a configurable base."""

    type: ChargeType
    value: Decimal
    base: Optional[PercentBase] = None

    def __post_init__(self) -> None:
        _frozen_set(self, "value", as_decimal(self.value, "charge value"))
        if self.value <= 0:
            raise ValidationError("charge value must be greater than 0")
        if self.type is ChargeType.FLAT and self.base is not None:
            raise ValidationError("flat charge cannot have a percent base")

    @classmethod
    def flat(cls, value: Any) -> "Charge":
        return cls(type=ChargeType.FLAT, value=value)

    @classmethod
    def percent(cls, value: Any, base: Optional[PercentBase] = None) -> "Charge":
        return cls(type=ChargeType.PERCENT, value=value, base=base)


@dataclass(frozen=True, slots=True)
class NamedCharge:
    name: str
    charge: Charge

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValidationError("fee and discount names cannot be empty")


@dataclass(frozen=True, slots=True)
class Extras:
    tax: Optional[Charge] = None
    tip: Optional[Charge] = None
    fees: tuple[NamedCharge, ...] = ()
    discounts: tuple[NamedCharge, ...] = ()

    def __post_init__(self) -> None:
        _frozen_set(self, "fees", tuple(self.fees))
        _frozen_set(self, "discounts", tuple(self.discounts))
        for label, charges in (("fee", self.fees), ("discount", self.discounts)):
            names = [charge.name for charge in charges]
            if len(set(names)) != len(names):
                raise ValidationError(f"{label} names must be unique")


@dataclass(frozen=True, slots=True)
class ExtrasKey:
    kind: ExtraKind
    name: Optional[str] = None

    def __post_init__(self) -> None:
        named = self.kind in (ExtraKind.FEE, ExtraKind.DISCOUNT)
        if named and not self.name:
            raise ValidationError(f"{self.kind.value} key requires a name")
        if not named and self.name is not None:
            raise ValidationError(f"{self.kind.value} key cannot have a name")

    @classmethod
    def tax(cls) -> "ExtrasKey":
        return cls(ExtraKind.TAX)

    @classmethod
    def tip(cls) -> "ExtrasKey":
        return cls(ExtraKind.TIP)

    @classmethod
    def fee(cls, name: str) -> "ExtrasKey":
        return cls(ExtraKind.FEE, name)

    @classmethod
    def discount(cls, name: str) -> "ExtrasKey":
        return cls(ExtraKind.DISCOUNT, name)

    @property
    def is_deduction(self) -> bool:
        return self.kind is ExtraKind.DISCOUNT

    def __str__(self) -> str:
        if self.name is None:
            return self.kind.value
        return f"{self.kind.value}:{self.name}"


@dataclass(frozen=True, slots=True)
class RoundingConfig:
    mode: RoundingMode = RoundingMode.HALF_UP
    strategy: RemainderStrategy = RemainderStrategy.LARGEST_SHARE
    # None means: look the places up from the currency code
    decimal_places: Optional[int] = None

    def __post_init__(self) -> None:
        if self.decimal_places is not None and self.decimal_places < 0:
            raise ValidationError("decimal places cannot be negative")


@dataclass(frozen=True, slots=True)
class AllocationRule:
    percent_base: PercentBase = PercentBase.PRE_TAX_ITEM_SUBTOTALS
    absolute_split: AbsoluteSplitMode = AbsoluteSplitMode.PROPORTIONAL
    rounding: RoundingConfig = field(default_factory=RoundingConfig)


@dataclass(frozen=True, slots=True)
class ItemContribution:
    item_id: str
    item_name: str
    quantity: Decimal
    unit_price: Decimal
    assigned_share: Fraction
    amount: Fraction


@dataclass(frozen=True, slots=True)
class ParticipantBreakdown:
    """What one participant owes for one itemized expense, and why.

    ``items_subtotal``, ``extras_allocated`` and ``rounded_adjustment`` are
    exact fractions; only ``total`` is rounded to the currency precision.
    """

    participant_id: str
    items_subtotal: Fraction
    extras_allocated: Mapping[ExtrasKey, Fraction]
    rounded_adjustment: Fraction
    total: Decimal
    items: tuple[ItemContribution, ...] = ()

    @property
    def unrounded_total(self) -> Fraction:
        return Fraction(self.total) - self.rounded_adjustment

    @property
    def extras_total(self) -> Fraction:
        return sum(
            (-amount if key.is_deduction else amount for key, amount in self.extras_allocated.items()),
            Fraction(0),
        )

    def extra(self, key: ExtrasKey) -> Fraction:
        return self.extras_allocated.get(key, Fraction(0))

    def extras_by_label(self) -> dict[str, Fraction]:
        return {str(key): amount for key, amount in self.extras_allocated.items()}


@dataclass(frozen=True, slots=True)
class Expense:
    """One trip expense as seen by the settlement engine.

    ``participants`` maps participant ids to weights; weights are ignored for
    equal splits. Itemized expenses carry their precomputed breakdown instead.
    """

    id: str
    payer_id: str
    amount: Decimal
    participants: Mapping[str, Decimal] = field(default_factory=dict)
    split_type: SplitType = SplitType.EQUAL
    currency: Optional[str] = None
    breakdown: Optional[Mapping[str, ParticipantBreakdown]] = None
    rounding: Optional[RoundingConfig] = None
    description: Optional[str] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        _frozen_set(self, "amount", as_decimal(self.amount))
        if self.amount < 0:
            raise ValidationError(f"expense {self.id}: amount cannot be negative")

        if self.split_type is SplitType.ITEMIZED:
            if not self.breakdown:
                raise ValidationError(f"expense {self.id}: itemized expense requires a breakdown")
            if not self.participants:
                _frozen_set(self, "participants", {user_id: Decimal(1) for user_id in self.breakdown})
            return

        weights = {
            user_id: as_decimal(weight, "participant weight")
            for user_id, weight in self.participants.items()
        }
        if not weights:
            raise ValidationError(f"expense {self.id}: at least one participant is required")
        if any(weight < 0 for weight in weights.values()):
            raise ValidationError(f"expense {self.id}: participant weights cannot be negative")
        _frozen_set(self, "participants", weights)

    @classmethod
    def equal(
        cls,
        id: str,
        payer_id: str,
        amount: Any,
        participants: Iterable[str],
        **kwargs: Any,
    ) -> "Expense":
        return cls(
            id=id,
            payer_id=payer_id,
            amount=amount,
            participants={user_id: Decimal(1) for user_id in participants},
            split_type=SplitType.EQUAL,
            **kwargs,
        )

    @classmethod
    def weighted(
        cls,
        id: str,
        payer_id: str,
        amount: Any,
        weights: Mapping[str, Any],
        **kwargs: Any,
    ) -> "Expense":
        return cls(
            id=id,
            payer_id=payer_id,
            amount=amount,
            participants=dict(weights),
            split_type=SplitType.WEIGHTED,
            **kwargs,
        )

    @classmethod
    def itemized(
        cls,
        id: str,
        payer_id: str,
        breakdown: Mapping[str, ParticipantBreakdown],
        amount: Any = None,
        **kwargs: Any,
    ) -> "Expense":
        if amount is None:
            amount = sum((item.total for item in breakdown.values()), Decimal(0))
        return cls(
            id=id,
            payer_id=payer_id,
            amount=amount,
            split_type=SplitType.ITEMIZED,
            breakdown=dict(breakdown),
            **kwargs,
        )

    @property
    def participant_ids(self) -> list[str]:
        return list(self.participants)
