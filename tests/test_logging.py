import json
import logging

from tripsplit.logging import configure_logging, resolve_level
from tripsplit.services.settlement import compute_settlement


def test_resolve_level(monkeypatch):
    assert resolve_level("debug") == logging.DEBUG
    assert resolve_level(logging.ERROR) == logging.ERROR
    assert resolve_level("chatty") == logging.INFO

    monkeypatch.setenv("TRIPSPLIT_LOG_LEVEL", "warning")
    assert resolve_level(None) == logging.WARNING


def test_settlement_emits_json_event(caplog, dinner):
    configure_logging("debug")
    caplog.set_level(logging.DEBUG)

    compute_settlement("trip-7", [dinner], "USD")

    events = [
        json.loads(record.getMessage())
        for record in caplog.records
        if record.name == "tripsplit.services.settlement"
    ]
    assert events[-1]["event"] == "settlement.computed"
    assert events[-1]["trip_id"] == "trip-7"
    assert events[-1]["transfers"] == 2
    assert events[-1]["level"] == "info"
