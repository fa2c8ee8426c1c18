"""
sarfi/analytics/table.py
────────────────────────
Tabular views of a SarfiResult: sorting and pandas conversion for reports.
"""
from __future__ import annotations

from enum import Enum

import pandas as pd

from config.sarfi import SARFI_LABELS
from sarfi.data.models import SarfiDataPoint, SarfiResult


class SortField(str, Enum):
    METER_NO = "meter_no"
    LOCATION = "location"
    VOLTAGE_LEVEL = "voltage_level"
    CUSTOMER_COUNT = "customer_count"
    WEIGHT_FACTOR = "weight_factor"
    SARFI_10 = "sarfi_10"
    SARFI_30 = "sarfi_30"
    SARFI_50 = "sarfi_50"
    SARFI_70 = "sarfi_70"
    SARFI_80 = "sarfi_80"
    SARFI_90 = "sarfi_90"


def _threshold_label(field: SortField) -> int:
    return int(field.value.removeprefix("sarfi_"))


def _sort_key(field: SortField):
    if field == SortField.METER_NO:
        return lambda p: p.meter_no
    if field == SortField.LOCATION:
        return lambda p: p.location
    if field == SortField.VOLTAGE_LEVEL:
        return lambda p: p.voltage_level
    if field == SortField.CUSTOMER_COUNT:
        return lambda p: p.customer_count
    if field == SortField.WEIGHT_FACTOR:
        return lambda p: p.weight_factor
    # Remaining members are the threshold counters
    label = _threshold_label(field)
    return lambda p: p.count(label)


def sort_data_points(
    points: list[SarfiDataPoint],
    field: SortField | str = SortField.METER_NO,
    descending: bool = False,
) -> list[SarfiDataPoint]:
    """
    Return a new list sorted by `field`. Stable: ties keep their input order.
    Raises ValueError for a field name outside SortField.
    """
    return sorted(points, key=_sort_key(SortField(field)), reverse=descending)


TABLE_COLUMNS = [
    "meter_id",
    "meter_no",
    "location",
    "voltage_level",
    "customer_count",
    *[f"sarfi_{label}" for label in SARFI_LABELS],
    "weight_factor",
]


def to_dataframe(result: SarfiResult) -> pd.DataFrame:
    """Per-meter rows as a DataFrame (columns fixed even when empty)."""
    rows = [p.model_dump() for p in result.per_meter]
    return pd.DataFrame(rows, columns=TABLE_COLUMNS)


def summary_row(result: SarfiResult) -> dict[str, float]:
    """Weighted summary as a flat dict, rounded for display."""
    return {key: round(value, 3) for key, value in result.summary.model_dump().items()}
