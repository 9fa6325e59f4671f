from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Collection, Iterable, Mapping, Optional, Sequence

from tripsplit.config import get_settings
from tripsplit.currency import currency_places, precision_unit
from tripsplit.errors import DataIntegrityError
from tripsplit.logging import get_logger
from tripsplit.models import CarryOverPolicy, Expense, RoundingConfig, SettlementAlgorithm
from tripsplit.services.split import calculate_expense_split


@dataclass(frozen=True, slots=True)
class PersonSummary:
    user_id: str
    total_paid: Decimal
    total_owed: Decimal
    net: Decimal

    def adjust_net(self, delta: Decimal) -> "PersonSummary":
        return replace(self, net=self.net + delta)


@dataclass(frozen=True, slots=True)
class MinimalTransfer:
    trip_id: str
    from_user_id: str
    to_user_id: str
    amount: Decimal
    computed_at: datetime
    is_settled: bool = False
    settled_at: Optional[datetime] = None

    @property
    def pair(self) -> tuple[str, str]:
        return self.from_user_id, self.to_user_id

    def mark_settled(self, at: Optional[datetime] = None) -> "MinimalTransfer":
        return replace(self, is_settled=True, settled_at=at or datetime.now(timezone.utc))


@dataclass(frozen=True, slots=True)
class SettlementResult:
    trip_id: str
    base_currency: str
    person_summaries: Mapping[str, PersonSummary]
    transfers: tuple[MinimalTransfer, ...]
    computed_at: datetime

    @property
    def pending_transfers(self) -> list[MinimalTransfer]:
        return [transfer for transfer in self.transfers if not transfer.is_settled]

    @property
    def settled_transfers(self) -> list[MinimalTransfer]:
        return [transfer for transfer in self.transfers if transfer.is_settled]

    def is_stale(self, last_expense_modified_at: Optional[datetime]) -> bool:
        return is_settlement_stale(last_expense_modified_at, self.computed_at)


def expense_shares(
    expenses: Sequence[Expense],
    base_currency: str,
    participants: Optional[Collection[str]] = None,
    rounding: Optional[RoundingConfig] = None,
    seed: Optional[int] = None,
) -> list[tuple[Expense, dict[str, Decimal]]]:
    places = currency_places(base_currency)
    rounding = rounding or get_settings().rounding_config()
    known = set(participants) if participants is not None else None

    result: list[tuple[Expense, dict[str, Decimal]]] = []
    for expense in expenses:
        if expense.currency and expense.currency.upper() != base_currency.upper():
            raise DataIntegrityError(
                f"expense {expense.id} is in {expense.currency}, expected {base_currency}"
            )
        shares = calculate_expense_split(expense, places, rounding, seed=seed)
        if known is not None:
            unknown = [user_id for user_id in (expense.payer_id, *shares) if user_id not in known]
            if unknown:
                raise DataIntegrityError(
                    f"expense {expense.id} references participants outside the trip: {', '.join(unknown)}"
                )
        result.append((expense, shares))
    return result


def calculate_person_summaries(
    expenses: Sequence[Expense],
    base_currency: str,
    participants: Optional[Collection[str]] = None,
    rounding: Optional[RoundingConfig] = None,
    seed: Optional[int] = None,
) -> dict[str, PersonSummary]:
    return _summaries_from_shares(expense_shares(expenses, base_currency, participants, rounding, seed))


def _summaries_from_shares(
    shares_by_expense: Iterable[tuple[Expense, Mapping[str, Decimal]]],
) -> dict[str, PersonSummary]:
    paid: dict[str, Decimal] = {}
    owed: dict[str, Decimal] = {}

    for expense, shares in shares_by_expense:
        paid[expense.payer_id] = paid.get(expense.payer_id, Decimal(0)) + expense.amount
        owed.setdefault(expense.payer_id, Decimal(0))
        for user_id, share in shares.items():
            owed[user_id] = owed.get(user_id, Decimal(0)) + share
            paid.setdefault(user_id, Decimal(0))

    return {
        user_id: PersonSummary(
            user_id=user_id,
            total_paid=paid[user_id],
            total_owed=owed[user_id],
            net=paid[user_id] - owed[user_id],
        )
        for user_id in paid
    }


def balance_total(summaries: Mapping[str, PersonSummary]) -> Decimal:
    return sum((summary.net for summary in summaries.values()), Decimal(0))


def validate_balances(summaries: Mapping[str, PersonSummary], decimal_places: int) -> bool:
    return abs(balance_total(summaries)) <= precision_unit(decimal_places)


def _largest(balances: Mapping[str, Decimal]) -> str:
    return min(balances, key=lambda user_id: (-balances[user_id], user_id))


def calculate_minimal_transfers(
    trip_id: str,
    person_summaries: Mapping[str, PersonSummary],
    computed_at: Optional[datetime] = None,
) -> list[MinimalTransfer]:
    """Greedy debt netting: largest debtor pays largest creditor until done.

    Ties between equal balances go to the smaller participant id. Produces at
    most ``n - 1`` transfers for ``n`` participants with a non-zero balance.
    """
    computed_at = computed_at or datetime.now(timezone.utc)
    creditors = {user_id: s.net for user_id, s in person_summaries.items() if s.net > 0}
    debtors = {user_id: -s.net for user_id, s in person_summaries.items() if s.net < 0}

    transfers: list[MinimalTransfer] = []
    while creditors and debtors:
        creditor = _largest(creditors)
        debtor = _largest(debtors)

        amount = min(creditors[creditor], debtors[debtor])
        transfers.append(
            MinimalTransfer(
                trip_id=trip_id,
                from_user_id=debtor,
                to_user_id=creditor,
                amount=amount,
                computed_at=computed_at,
            )
        )

        creditors[creditor] -= amount
        debtors[debtor] -= amount
        if creditors[creditor] == 0:
            del creditors[creditor]
        if debtors[debtor] == 0:
            del debtors[debtor]

    return transfers


def calculate_pairwise_transfers(
    trip_id: str,
    expenses: Sequence[Expense],
    base_currency: str,
    participants: Optional[Collection[str]] = None,
    rounding: Optional[RoundingConfig] = None,
    computed_at: Optional[datetime] = None,
    settled: Iterable[MinimalTransfer] = (),
    seed: Optional[int] = None,
) -> list[MinimalTransfer]:
    """Debts netted within each pair of people, never through a third person.

    Settled payments in ``settled`` reduce the debt of their pair first.
    """
    return _pairwise_from_shares(
        trip_id,
        expense_shares(expenses, base_currency, participants, rounding, seed),
        computed_at or datetime.now(timezone.utc),
        settled,
    )


def _pairwise_from_shares(
    trip_id: str,
    shares_by_expense: Iterable[tuple[Expense, Mapping[str, Decimal]]],
    computed_at: datetime,
    settled: Iterable[MinimalTransfer] = (),
) -> list[MinimalTransfer]:
    # debts[(a, b)] = how much a owes b, before netting within the pair
    debts: dict[tuple[str, str], Decimal] = {}
    for expense, shares in shares_by_expense:
        for user_id, share in shares.items():
            if user_id == expense.payer_id or share == 0:
                continue
            key = (user_id, expense.payer_id)
            debts[key] = debts.get(key, Decimal(0)) + share
    for transfer in settled:
        if transfer.is_settled:
            debts[transfer.pair] = debts.get(transfer.pair, Decimal(0)) - transfer.amount

    transfers: list[MinimalTransfer] = []
    for a, b in sorted({tuple(sorted(pair)) for pair in debts}):
        diff = debts.get((a, b), Decimal(0)) - debts.get((b, a), Decimal(0))
        if diff == 0:
            continue
        debtor, creditor = (a, b) if diff > 0 else (b, a)
        transfers.append(
            MinimalTransfer(
                trip_id=trip_id,
                from_user_id=debtor,
                to_user_id=creditor,
                amount=abs(diff),
                computed_at=computed_at,
            )
        )

    transfers.sort(key=lambda t: t.pair)
    return transfers


def _latest(a: Optional[datetime], b: Optional[datetime]) -> Optional[datetime]:
    stamps = [stamp for stamp in (a, b) if stamp is not None]
    return max(stamps) if stamps else None


def collect_settled(
    previous: Iterable[MinimalTransfer],
    policy: CarryOverPolicy = CarryOverPolicy.PAIR,
) -> list[MinimalTransfer]:
    """Settled payments from earlier computations, each counted exactly once.

    Repeats of the same record (pair, amount and ``settled_at``) are dropped.
    ``pair`` folds every payment between the same two people into a single
    record carrying their sum and the latest ``settled_at``;
    ``pair_and_amount`` keeps each payment as its own record.
    """
    unique: dict[tuple, MinimalTransfer] = {}
    for transfer in previous:
        if transfer.is_settled:
            unique.setdefault((transfer.pair, transfer.amount, transfer.settled_at), transfer)

    if policy is CarryOverPolicy.PAIR_AND_AMOUNT:
        return list(unique.values())

    by_pair: dict[tuple[str, str], MinimalTransfer] = {}
    for transfer in unique.values():
        prior = by_pair.get(transfer.pair)
        if prior is None:
            by_pair[transfer.pair] = transfer
            continue
        by_pair[transfer.pair] = replace(
            prior,
            amount=prior.amount + transfer.amount,
            settled_at=_latest(prior.settled_at, transfer.settled_at),
        )
    return list(by_pair.values())


def carry_over_settled(
    transfers: Iterable[MinimalTransfer],
    previous: Iterable[MinimalTransfer],
    policy: CarryOverPolicy = CarryOverPolicy.PAIR,
) -> list[MinimalTransfer]:
    """Settled payments from ``previous`` followed by the freshly computed transfers.

    Fresh transfers must have been computed after the settled amounts were
    applied (see ``apply_settled_adjustments``), so each of them is money
    still owed and stays pending, even when its pair was settled before.
    """
    settled = collect_settled(previous, policy)
    pending = [replace(transfer, is_settled=False, settled_at=None) for transfer in transfers]
    return settled + pending


def apply_settled_adjustments(
    person_summaries: Mapping[str, PersonSummary],
    transfers: Iterable[MinimalTransfer],
) -> dict[str, PersonSummary]:
    """Net balances that remain once settled payments are taken into account.

    Each settled amount is added to the payer's net and subtracted from the
    receiver's. Someone without a summary (their expenses were removed) gets
    an empty one, so a payment that already happened is never dropped.
    """
    adjusted = dict(person_summaries)
    for transfer in transfers:
        if not transfer.is_settled:
            continue
        for user_id in transfer.pair:
            if user_id not in adjusted:
                adjusted[user_id] = PersonSummary(user_id, Decimal(0), Decimal(0), Decimal(0))
        adjusted[transfer.from_user_id] = adjusted[transfer.from_user_id].adjust_net(transfer.amount)
        adjusted[transfer.to_user_id] = adjusted[transfer.to_user_id].adjust_net(-transfer.amount)
    return adjusted


def compute_settlement(
    trip_id: str,
    expenses: Sequence[Expense],
    base_currency: str,
    previous: Iterable[MinimalTransfer] = (),
    participants: Optional[Collection[str]] = None,
    algorithm: Optional[SettlementAlgorithm] = None,
    policy: Optional[CarryOverPolicy] = None,
    rounding: Optional[RoundingConfig] = None,
    now: Optional[datetime] = None,
    seed: Optional[int] = None,
) -> SettlementResult:
    """Balances and outstanding transfers for a trip.

    Payments settled in ``previous`` are applied at their own amounts before
    any transfer is computed, so the pending transfers cover exactly what is
    still owed and the settled records are carried into the result.
    """
    settings = get_settings()
    algorithm = algorithm or settings.settlement_algorithm
    policy = policy or settings.carry_over_policy
    now = now or datetime.now(timezone.utc)
    log = get_logger(__name__)

    shares_by_expense = expense_shares(expenses, base_currency, participants, rounding, seed)
    summaries = _summaries_from_shares(shares_by_expense)
    places = currency_places(base_currency)
    if not validate_balances(summaries, places):
        raise DataIntegrityError(
            f"trip {trip_id}: balances do not sum to zero ({balance_total(summaries)} {base_currency})"
        )

    settled = collect_settled(previous, policy)
    adjusted = apply_settled_adjustments(summaries, settled)

    if algorithm is SettlementAlgorithm.PAIRS:
        pending = _pairwise_from_shares(trip_id, shares_by_expense, now, settled)
    else:
        pending = calculate_minimal_transfers(trip_id, adjusted, now)

    result = SettlementResult(
        trip_id=trip_id,
        base_currency=base_currency.upper(),
        person_summaries=adjusted,
        transfers=tuple(carry_over_settled(pending, settled, policy)),
        computed_at=now,
    )
    log.info(
        "settlement.computed",
        trip_id=trip_id,
        expenses=len(expenses),
        participants=len(adjusted),
        transfers=len(result.transfers),
        settled=len(result.settled_transfers),
        algorithm=algorithm.value,
    )
    return result


def last_modified(expenses: Iterable[Expense]) -> Optional[datetime]:
    stamps = [expense.updated_at for expense in expenses if expense.updated_at is not None]
    return max(stamps) if stamps else None


def is_settlement_stale(
    last_expense_modified_at: Optional[datetime],
    last_computed_at: Optional[datetime],
) -> bool:
    if last_computed_at is None:
        return True
    if last_expense_modified_at is None:
        return False
    return last_expense_modified_at > last_computed_at
