from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from fractions import Fraction
from typing import Iterable, Iterator, Mapping, Optional, Sequence

from tripsplit.currency import round_to_places
from tripsplit.errors import DataIntegrityError, InvalidConfiguration, ValidationError
from tripsplit.logging import get_logger
from tripsplit.models import (
    AbsoluteSplitMode,
    AllocationRule,
    Charge,
    ChargeType,
    Extras,
    ExtrasKey,
    ItemContribution,
    LineItem,
    ParticipantBreakdown,
    PercentBase,
)
from tripsplit.services.rounding import places_for, round_amounts


@dataclass(frozen=True, slots=True)
class _Accumulator:
    subtotal: Fraction = Fraction(0)
    contributions: tuple[ItemContribution, ...] = ()
    extras: tuple[tuple[ExtrasKey, Fraction], ...] = ()

    def add_item(self, contribution: ItemContribution) -> "_Accumulator":
        return replace(
            self,
            subtotal=self.subtotal + contribution.amount,
            contributions=self.contributions + (contribution,),
        )

    def add_extra(self, key: ExtrasKey, amount: Fraction) -> "_Accumulator":
        return replace(self, extras=self.extras + ((key, amount),))

    @property
    def unrounded_total(self) -> Fraction:
        total = self.subtotal
        for key, amount in self.extras:
            total += -amount if key.is_deduction else amount
        return total


Ledger = dict[str, _Accumulator]


def calculate(
    items: Sequence[LineItem],
    extras: Extras,
    rule: AllocationRule,
    currency_code: str,
    participants: Optional[Iterable[str]] = None,
    payer_id: Optional[str] = None,
    seed: Optional[int] = None,
) -> dict[str, ParticipantBreakdown]:
    """Split an itemized receipt into per-participant breakdowns.

    Items are shared per their assignment, then tax, tip, every fee and every
    discount are allocated evenly or proportionally to item subtotals. All of
    that is exact; the per-participant totals are rounded once at the end,
    so the breakdown totals always add up to ``grand_total``.

    ``participants`` fixes the set (and order) of people on the expense. When
    omitted it is taken from the item assignments in order of appearance.
    """
    participant_ids = resolve_participants(items, participants)

    ledger: Ledger = {user_id: _Accumulator() for user_id in participant_ids}
    ledger = _item_pass(ledger, items)
    for key, charge in iter_extras(extras):
        total = charge_total(charge, items, rule)
        ledger = _extra_pass(ledger, key, total, rule.absolute_split)

    unrounded = {user_id: acc.unrounded_total for user_id, acc in ledger.items()}
    rounded = round_amounts(
        unrounded,
        places_for(rule.rounding, currency_code),
        mode=rule.rounding.mode,
        strategy=rule.rounding.strategy,
        payer_id=payer_id,
        seed=seed,
    )

    get_logger(__name__).debug(
        "itemized.calculated",
        currency=currency_code,
        items=len(items),
        participants=len(participant_ids),
    )
    return {user_id: _assemble(user_id, acc, rounded[user_id]) for user_id, acc in ledger.items()}


def resolve_participants(items: Sequence[LineItem], participants: Optional[Iterable[str]]) -> list[str]:
    assigned: list[str] = []
    for item in items:
        for user_id in item.assignment.users:
            if user_id not in assigned:
                assigned.append(user_id)

    if participants is None:
        if not assigned:
            raise InvalidConfiguration("no participants: pass them explicitly for an expense without items")
        return assigned

    explicit = list(participants)
    if len(set(explicit)) != len(explicit):
        raise ValidationError("participant list contains duplicates")
    if not explicit:
        raise InvalidConfiguration("participant list cannot be empty")
    unknown = [user_id for user_id in assigned if user_id not in explicit]
    if unknown:
        raise DataIntegrityError(f"items are assigned to unknown participants: {', '.join(unknown)}")
    return explicit


def iter_extras(extras: Extras) -> Iterator[tuple[ExtrasKey, Charge]]:
    if extras.tax is not None:
        yield ExtrasKey.tax(), extras.tax
    if extras.tip is not None:
        yield ExtrasKey.tip(), extras.tip
    for fee in extras.fees:
        yield ExtrasKey.fee(fee.name), fee.charge
    for discount in extras.discounts:
        yield ExtrasKey.discount(discount.name), discount.charge


def percent_base_total(items: Sequence[LineItem], base: PercentBase) -> Fraction:
    if base is PercentBase.TAXABLE_ITEM_SUBTOTALS_ONLY:
        items = [item for item in items if item.taxable]
    return sum((Fraction(item.item_total) for item in items), Fraction(0))


def charge_total(charge: Charge, items: Sequence[LineItem], rule: AllocationRule) -> Fraction:
    if charge.type is ChargeType.FLAT:
        return Fraction(charge.value)
    base = percent_base_total(items, charge.base or rule.percent_base)
    return base * Fraction(charge.value) / 100


def distribute(
    total: Fraction,
    subtotals: Mapping[str, Fraction],
    mode: AbsoluteSplitMode,
) -> dict[str, Fraction]:
    """Spread ``total`` over participants, exactly; never rounds."""
    if not subtotals:
        raise InvalidConfiguration("cannot distribute an amount over no participants")

    base = sum(subtotals.values(), Fraction(0))
    if mode is AbsoluteSplitMode.EVEN or base == 0:
        per_person = total / len(subtotals)
        return {user_id: per_person for user_id in subtotals}
    return {user_id: total * subtotal / base for user_id, subtotal in subtotals.items()}


def grand_total(
    items: Sequence[LineItem],
    extras: Extras,
    rule: AllocationRule,
    currency_code: str,
) -> Decimal:
    total = sum((Fraction(item.item_total) for item in items), Fraction(0))
    for key, charge in iter_extras(extras):
        amount = charge_total(charge, items, rule)
        total += -amount if key.is_deduction else amount
    return round_to_places(total, places_for(rule.rounding, currency_code), rule.rounding.mode)


def _item_pass(ledger: Ledger, items: Sequence[LineItem]) -> Ledger:
    for item in items:
        item_total = Fraction(item.item_total)
        ledger = dict(ledger)
        for user_id in item.assignment.users:
            share = item.assignment.share_of(user_id)
            contribution = ItemContribution(
                item_id=item.id,
                item_name=item.name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                assigned_share=share,
                amount=item_total * share,
            )
            ledger[user_id] = ledger[user_id].add_item(contribution)
    return ledger


def _extra_pass(ledger: Ledger, key: ExtrasKey, total: Fraction, mode: AbsoluteSplitMode) -> Ledger:
    shares = distribute(total, {user_id: acc.subtotal for user_id, acc in ledger.items()}, mode)
    return {user_id: acc.add_extra(key, shares[user_id]) for user_id, acc in ledger.items()}


def _assemble(user_id: str, acc: _Accumulator, total: Decimal) -> ParticipantBreakdown:
    return ParticipantBreakdown(
        participant_id=user_id,
        items_subtotal=acc.subtotal,
        extras_allocated=dict(acc.extras),
        rounded_adjustment=Fraction(total) - acc.unrounded_total,
        total=total,
        items=acc.contributions,
    )
