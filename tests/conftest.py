"""
tests/conftest.py
─────────────────
Shared pytest fixtures for the SARFI engine test suite.
"""
import itertools
import os
from datetime import datetime, timezone

import pytest

# Use in-memory SQLite for tests
os.environ.setdefault("DATABASE_URL", ":memory:")
os.environ.setdefault("HISTORY_MONTHS", "2")
os.environ.setdefault("SIMULATION_SEED", "42")


class FakeSource:
    """
    In-memory stand-in for sarfi.data.store.

    Applies the same filter semantics as the store and records every call
    as (method, args) in `calls`. `fail_on` names a method that raises
    RuntimeError instead of answering.
    """

    def __init__(self, weights=(), meters=(), events=(), fail_on=None):
        self.weights = list(weights)
        self.meters = {m.id: m for m in meters}
        self.events = list(events)
        self.fail_on = fail_on
        self.calls = []

    def _enter(self, name, *args):
        self.calls.append((name, args))
        if self.fail_on == name:
            raise RuntimeError(f"{name} unavailable")

    def list_weights(self, profile_id):
        self._enter("list_weights", profile_id)
        return [w for w in self.weights if w.profile_id == profile_id]

    def get_meters(self, meter_ids):
        self._enter("get_meters", frozenset(meter_ids))
        return {mid: self.meters[mid] for mid in meter_ids if mid in self.meters}

    def list_events(self, meter_ids, voltage_level=None, exclude_special=False, event_type="voltage_dip"):
        self._enter("list_events", frozenset(meter_ids), voltage_level, exclude_special)
        return [
            e for e in self.events
            if e.event_type.value == event_type
            and e.meter_id in meter_ids
            and (voltage_level is None or e.voltage_level == voltage_level)
            and not (exclude_special and e.is_special_event)
        ]

    def called(self, name):
        return [args for method, args in self.calls if method == name]


@pytest.fixture
def now() -> datetime:
    return datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_meter():
    from sarfi.data.models import Meter

    def _make(meter_id, voltage_level="132kV", substation_voltage_level=None, location=None):
        return Meter(
            id=meter_id,
            meter_no=f"MTR-{meter_id}",
            location=location or f"Site {meter_id}",
            voltage_level=voltage_level,
            substation_voltage_level=substation_voltage_level,
        )
    return _make


@pytest.fixture
def make_weight():
    from sarfi.data.models import ProfileWeight
    counter = itertools.count(1)

    def _make(meter_id, weight_factor=1.0, profile_id="P1"):
        return ProfileWeight(
            id=f"w{next(counter)}",
            profile_id=profile_id,
            meter_id=meter_id,
            weight_factor=weight_factor,
        )
    return _make


@pytest.fixture
def make_event(now):
    from sarfi.data.models import EventType, PQEvent
    counter = itertools.count(1)

    def _make(
        meter_id,
        remaining_voltage=None,
        magnitude=None,
        voltage_level="132kV",
        is_special_event=None,
        event_type=EventType.VOLTAGE_DIP,
    ):
        return PQEvent(
            id=f"e{next(counter)}",
            event_type=event_type,
            meter_id=meter_id,
            voltage_level=voltage_level,
            is_special_event=is_special_event,
            remaining_voltage=remaining_voltage,
            magnitude=magnitude,
            timestamp=now,
        )
    return _make


@pytest.fixture
def fake_source_cls():
    return FakeSource


@pytest.fixture
def db():
    """A fresh, empty in-memory store with tables created."""
    from sarfi.data import store
    store.close_db()
    store.create_tables()
    yield store
    store.close_db()
