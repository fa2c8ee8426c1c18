"""
sarfi/analytics/catalog.py
──────────────────────────
MeterCatalog resolver: meter ids → display metadata and effective voltage level.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable

from config.sarfi import UNKNOWN_VOLTAGE_LEVEL
from sarfi.data.models import Meter, MeterInfo

logger = logging.getLogger(__name__)


def effective_voltage_level(meter: Meter) -> str:
    """Own voltage level, else the substation's, else "Unknown"."""
    return meter.voltage_level or meter.substation_voltage_level or UNKNOWN_VOLTAGE_LEVEL


def build_meter_info(meter: Meter) -> MeterInfo:
    return MeterInfo(
        meter_id=meter.id,
        meter_no=meter.meter_no,
        location=meter.location,
        voltage_level=effective_voltage_level(meter),
    )


def resolve_meters(meter_ids: Iterable[str], source) -> dict[str, MeterInfo]:
    """
    Metadata for the meters among `meter_ids` that exist in the catalog.
    Ids missing from the catalog are dropped silently.
    """
    ids = list(dict.fromkeys(meter_ids))
    if not ids:
        return {}

    meters = source.get_meters(set(ids))
    resolved = {mid: build_meter_info(meters[mid]) for mid in ids if mid in meters}

    missing = len(ids) - len(resolved)
    if missing:
        logger.debug("%d weighted meter(s) not found in catalog, excluded", missing)
    return resolved
