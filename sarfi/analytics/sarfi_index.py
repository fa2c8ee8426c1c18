"""
sarfi/analytics/sarfi_index.py
──────────────────────────────
SARFI index aggregation.

Pipeline over already-fetched data:
  A. init_data_points()          one zeroed row per weighted AND resolved meter
  C. count_thresholds()          single pass over the events, cumulative
                                 "at or below cutoff" counters per meter
  D. compute_weighted_summary()  Σ(count × weight) / Σ weight per threshold

All functions are pure over their inputs; identical inputs give identical output.
"""

from __future__ import annotations

from config.sarfi import DEFAULT_WEIGHT_FACTOR, NO_DIP_VOLTAGE_PCT, SARFI_LABELS, SARFI_THRESHOLDS
from sarfi.data.models import (
    MeterInfo,
    PQEvent,
    ProfileWeight,
    SarfiDataPoint,
    SarfiResult,
    WeightedSummary,
)

_CUTOFF: dict[int, float] = dict(SARFI_THRESHOLDS)


def normalize_weight(weight_factor: float | None) -> float:
    """Absent, zero, negative (or NaN) factors fall back to 1.0."""
    if weight_factor is None or not weight_factor > 0:
        return DEFAULT_WEIGHT_FACTOR
    return float(weight_factor)


def retained_voltage(event: PQEvent) -> float:
    """remaining_voltage, else magnitude, else 100 (no dip)."""
    if event.remaining_voltage is not None:
        return event.remaining_voltage
    if event.magnitude is not None:
        return event.magnitude
    return NO_DIP_VOLTAGE_PCT


# ── Step A ────────────────────────────────────────────────────────────────────

def init_data_points(
    weights: list[ProfileWeight],
    meters: dict[str, MeterInfo],
) -> dict[str, SarfiDataPoint]:
    """
    Zeroed data points keyed by meter id, in weight-table order.
    Weighted meters without metadata are left out entirely.
    """
    by_meter: dict[str, ProfileWeight] = {}
    for w in weights:
        by_meter[w.meter_id] = w

    points: dict[str, SarfiDataPoint] = {}
    for meter_id, weight in by_meter.items():
        info = meters.get(meter_id)
        if info is None:
            continue
        points[meter_id] = SarfiDataPoint(
            meter_id=meter_id,
            meter_no=info.meter_no,
            location=info.location,
            voltage_level=info.voltage_level,
            customer_count=max(weight.customer_count or 0, 0),
            weight_factor=normalize_weight(weight.weight_factor),
        )
    return points


# ── Step C ────────────────────────────────────────────────────────────────────

def _record_dip(point: SarfiDataPoint, voltage: float) -> None:
    # Cumulative: a deep dip increments every shallower counter too
    if voltage <= _CUTOFF[10]:
        point.sarfi_10 += 1
    if voltage <= _CUTOFF[30]:
        point.sarfi_30 += 1
    if voltage <= _CUTOFF[50]:
        point.sarfi_50 += 1
    if voltage <= _CUTOFF[70]:
        point.sarfi_70 += 1
    if voltage <= _CUTOFF[80]:
        point.sarfi_80 += 1
    if voltage <= _CUTOFF[90]:
        point.sarfi_90 += 1


def count_thresholds(points: dict[str, SarfiDataPoint], events: list[PQEvent]) -> int:
    """
    Increment the counters of `points` in place for each event.

    Events without a meter id, or whose meter has no data point, are skipped.
    Returns the number of events that were attributed to a data point.
    """
    attributed = 0
    for event in events:
        if event.meter_id is None:
            continue
        point = points.get(event.meter_id)
        if point is None:
            continue
        _record_dip(point, retained_voltage(event))
        attributed += 1
    return attributed


# ── Step D ────────────────────────────────────────────────────────────────────

def compute_weighted_summary(points: list[SarfiDataPoint]) -> WeightedSummary:
    """Weighted average of each counter; every threshold shares the same total weight."""
    total_weight = sum(p.weight_factor for p in points)
    if not total_weight > 0:
        return WeightedSummary()

    averages: dict[int, float] = {}
    for label in SARFI_LABELS:
        weighted_sum = sum(p.count(label) * p.weight_factor for p in points)
        averages[label] = weighted_sum / total_weight

    return WeightedSummary(
        sarfi_10=averages[10],
        sarfi_30=averages[30],
        sarfi_50=averages[50],
        sarfi_70=averages[70],
        sarfi_80=averages[80],
        sarfi_90=averages[90],
        total_weight=total_weight,
    )


# ── Main API ──────────────────────────────────────────────────────────────────

def aggregate(
    weights: list[ProfileWeight],
    meters: dict[str, MeterInfo],
    events: list[PQEvent],
) -> SarfiResult:
    """Steps A, C and D over a weight table, resolved meters and fetched events."""
    points = init_data_points(weights, meters)
    count_thresholds(points, events)
    per_meter = list(points.values())
    return SarfiResult(per_meter=per_meter, summary=compute_weighted_summary(per_meter))
