from decimal import Decimal

from tripsplit.services.settlement import MinimalTransfer, PersonSummary, compute_settlement
from tripsplit.services.validation import validate_result, validate_settlement


def summary(user_id, net):
    return PersonSummary(user_id=user_id, total_paid=Decimal(0), total_owed=Decimal(0), net=Decimal(net))


def transfer(t0, payer, receiver, amount, settled=False):
    t = MinimalTransfer("trip", payer, receiver, Decimal(amount), t0)
    return t.mark_settled(t0) if settled else t


def test_computed_settlement_is_valid(dinner, t0):
    report = validate_result(compute_settlement("trip", [dinner], "USD", now=t0))

    assert report.is_valid
    assert str(report) == "settlement valid"


def test_balances_must_sum_to_zero(t0):
    summaries = {"A": summary("A", "10.00"), "B": summary("B", "-9.00")}

    report = validate_settlement(summaries, [transfer(t0, "B", "A", "9.00")], 2)

    assert not report.is_valid
    assert any("balances sum to 1.00" in issue for issue in report.issues)


def test_one_unit_of_drift_is_tolerated(t0):
    summaries = {"A": summary("A", "10.01"), "B": summary("B", "-10.00")}

    assert validate_settlement(summaries, [transfer(t0, "B", "A", "10.00")], 2).is_valid


def test_malformed_transfers(t0):
    summaries = {"A": summary("A", "10"), "B": summary("B", "-10")}
    transfers = [
        transfer(t0, "B", "A", "10"),
        transfer(t0, "B", "A", "10"),
        transfer(t0, "A", "A", "5"),
        transfer(t0, "Z", "A", "0"),
    ]

    report = validate_settlement(summaries, transfers, 2)
    text = str(report)

    assert text.startswith("settlement invalid:")
    assert "unknown payer Z" in text
    assert "pays itself" in text
    assert "non-positive amount" in text
    assert "duplicate pending transfers for B->A: 2" in text


def test_pending_transfers_must_match_balances(t0):
    summaries = {"A": summary("A", "30"), "B": summary("B", "-30")}

    short = validate_settlement(summaries, [transfer(t0, "B", "A", "20")], 2)
    assert any(issue.startswith("A: pending transfers net 20") for issue in short.issues)

    # a settled transfer is already reflected in the balances
    settled = {"A": summary("A", "0"), "B": summary("B", "0")}
    assert validate_settlement(settled, [transfer(t0, "B", "A", "30", settled=True)], 2).is_valid
