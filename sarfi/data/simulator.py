"""
sarfi/data/simulator.py
───────────────────────
Synthetic power-quality data generator.

Generates:
  - One demo substation and the sample PQ meters
  - A year-scoped SARFI profile with voltage-level based weight factors
  - HISTORY_MONTHS months of voltage-dip events per meter (10–20 per month)

Design:
  - Reproducible with SIMULATION_SEED for consistent demos (ids included)
  - Retained voltage follows DEMO_DIP_MIX so every threshold gets hits
  - ~10% of events are flagged as special (storm / maintenance windows)
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import numpy as np
import pandas as pd

from config.sarfi import (
    DEFAULT_WEIGHT_FACTOR,
    DEMO_DIP_MIX,
    DEMO_METERS,
    DEMO_SPECIAL_EVENT_RATE,
    DEMO_SUBSTATION,
    DEMO_WEIGHT_FACTORS,
)
from config.settings import settings
from sarfi.data.models import EventType, Meter, PQEvent, Profile, ProfileWeight, Substation


@dataclass
class DemoDataset:
    substation: Substation
    meters: list[Meter]
    profile: Profile
    weights: list[ProfileWeight]
    events: list[PQEvent]


def _seeded_id(rng: np.random.Generator) -> str:
    """uuid4-shaped id drawn from the generator so reseeding reproduces it."""
    return str(uuid.UUID(bytes=rng.bytes(16), version=4))


def _draw_retained_voltage(rng: np.random.Generator) -> float:
    """Sample a retained voltage (%) from the demo severity mix."""
    r = rng.random()
    cumulative = 0.0
    for probability, low, high in DEMO_DIP_MIX:
        cumulative += probability
        if r < cumulative:
            return round(float(rng.uniform(low, high)), 2)
    _, low, high = DEMO_DIP_MIX[-1]
    return round(float(rng.uniform(low, high)), 2)


def _generate_month_events(
    meter: Meter,
    month_start: datetime,
    rng: np.random.Generator,
) -> list[PQEvent]:
    n_events = int(rng.integers(10, 21))
    events: list[PQEvent] = []
    for _ in range(n_events):
        ts = month_start + timedelta(
            days=int(rng.integers(0, 28)),
            hours=int(rng.integers(0, 24)),
            minutes=int(rng.integers(0, 60)),
        )
        retained = _draw_retained_voltage(rng)
        events.append(PQEvent(
            id=_seeded_id(rng),
            event_type=EventType.VOLTAGE_DIP,
            meter_id=meter.id,
            voltage_level=meter.voltage_level,
            is_special_event=bool(rng.random() < DEMO_SPECIAL_EVENT_RATE),
            remaining_voltage=retained,
            magnitude=retained,
            duration_ms=int(rng.integers(100, 5_100)),
            timestamp=ts,
        ))
    events.sort(key=lambda e: e.timestamp)
    return events


# ── Public API ────────────────────────────────────────────────────────────────

def generate_demo_dataset(
    seed: int = settings.SIMULATION_SEED,
    months: int = settings.HISTORY_MONTHS,
    year: int = settings.DEMO_YEAR,
) -> DemoDataset:
    """
    Build the demo substation, meters, `year` profile, weights and
    `months` months of voltage-dip events ending with the current month.
    """
    rng = np.random.default_rng(seed)

    substation = Substation(id=_seeded_id(rng), **DEMO_SUBSTATION)
    meters = [
        Meter(id=_seeded_id(rng), substation_id=substation.id, **fields)
        for fields in DEMO_METERS
    ]

    profile = Profile(
        id=_seeded_id(rng),
        name=f"{year} Standard Profile",
        description=f"Standard SARFI calculation profile for {year} with weighted factors",
        year=year,
        is_active=True,
    )
    weights = [
        ProfileWeight(
            id=_seeded_id(rng),
            profile_id=profile.id,
            meter_id=m.id,
            weight_factor=DEMO_WEIGHT_FACTORS.get(m.voltage_level or "", DEFAULT_WEIGHT_FACTOR),
            notes=f"Weight factor based on {m.voltage_level} voltage level",
        )
        for m in meters
    ]

    this_month = datetime.now(tz=UTC).replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    month_starts = []
    cursor = this_month
    for _ in range(months):
        month_starts.append(cursor)
        cursor = (cursor - timedelta(days=1)).replace(day=1)

    events: list[PQEvent] = []
    for month_start in reversed(month_starts):
        for meter in meters:
            events.extend(_generate_month_events(meter, month_start, rng))

    return DemoDataset(
        substation=substation,
        meters=meters,
        profile=profile,
        weights=weights,
        events=events,
    )


def to_dataframe(events: list[PQEvent]) -> pd.DataFrame:
    """Convert a list of PQEvents to a pandas DataFrame."""
    return pd.DataFrame([e.model_dump() for e in events])
