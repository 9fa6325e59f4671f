from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Sequence

from tripsplit.currency import currency_places, precision_unit
from tripsplit.services.settlement import MinimalTransfer, PersonSummary, SettlementResult, balance_total


@dataclass(slots=True)
class ValidationReport:
    issues: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    def __str__(self) -> str:
        if self.is_valid:
            return "settlement valid"
        return "settlement invalid:\n" + "\n".join(f"  - {issue}" for issue in self.issues)


def validate_settlement(
    person_summaries: Mapping[str, PersonSummary],
    transfers: Sequence[MinimalTransfer],
    decimal_places: int,
) -> ValidationReport:
    """Check a settlement for conservation of money and transfer consistency.

    Only pending transfers are matched against the net balances: settled
    ones are already reflected in the summaries.
    """
    unit = precision_unit(decimal_places)
    report = ValidationReport()

    total = balance_total(person_summaries)
    if abs(total) > unit:
        report.issues.append(f"balances sum to {total}, expected 0 (tolerance {unit})")

    for transfer in transfers:
        label = f"{transfer.from_user_id}->{transfer.to_user_id}"
        if transfer.from_user_id not in person_summaries:
            report.issues.append(f"transfer {label} has unknown payer {transfer.from_user_id}")
        if transfer.to_user_id not in person_summaries:
            report.issues.append(f"transfer {label} has unknown receiver {transfer.to_user_id}")
        if transfer.from_user_id == transfer.to_user_id:
            report.issues.append(f"transfer {label} pays itself")
        if transfer.amount <= 0:
            report.issues.append(f"transfer {label} has non-positive amount {transfer.amount}")

    pending = [transfer for transfer in transfers if not transfer.is_settled]
    for (payer, receiver), count in Counter(t.pair for t in pending).items():
        if count > 1:
            report.issues.append(f"duplicate pending transfers for {payer}->{receiver}: {count}")

    for user_id, summary in person_summaries.items():
        incoming = sum((t.amount for t in pending if t.to_user_id == user_id), Decimal(0))
        outgoing = sum((t.amount for t in pending if t.from_user_id == user_id), Decimal(0))
        difference = abs(incoming - outgoing - summary.net)
        if difference > unit:
            report.issues.append(
                f"{user_id}: pending transfers net {incoming - outgoing}, balance is {summary.net}"
            )

    return report


def validate_result(result: SettlementResult) -> ValidationReport:
    return validate_settlement(
        result.person_summaries,
        result.transfers,
        currency_places(result.base_currency),
    )
