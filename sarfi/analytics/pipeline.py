"""
sarfi/analytics/pipeline.py
───────────────────────────
Weighted SARFI computation: profile id + filters → per-meter rows + weighted summary.

Control flow:
  1. load_weight_table()                      (stage "weights")
  2. resolve_meters() ‖ source.list_events()  (stages "meters", "events", concurrent)
  3. aggregate()                              (pure, cannot fail)

`source` is anything exposing list_weights / get_meters / list_events with the
signatures of sarfi.data.store (the default). A failing stage aborts the whole
run: the original exception is re-raised with a note naming the stage, the
sibling fetch is cancelled, and no partial result is returned.
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from contextlib import contextmanager

from config.sarfi import ALL_VOLTAGE_LEVELS
from config.settings import settings
from sarfi.analytics.catalog import resolve_meters
from sarfi.analytics.sarfi_index import aggregate
from sarfi.analytics.weights import load_weight_table, weight_meter_ids
from sarfi.data import store
from sarfi.data.models import SarfiFilters, SarfiResult

logger = logging.getLogger(__name__)


@contextmanager
def _fetch_stage(stage: str) -> Iterator[None]:
    try:
        yield
    except Exception as exc:
        exc.add_note(f"SARFI fetch stage failed: {stage}")
        logger.error("SARFI %s fetch failed: %r", stage, exc)
        raise


def _check_cancelled(cancel: threading.Event | None, stage: str) -> None:
    if cancel is not None and cancel.is_set():
        raise CancelledError(f"SARFI computation cancelled before {stage}")


def _wait(stage: str, future: Future, timeout: float | None):
    with _fetch_stage(stage):
        return future.result(timeout=timeout)


def compute_weighted_sarfi(
    profile_id: str | None,
    filters: SarfiFilters | None = None,
    source=store,
    timeout: float | None = settings.FETCH_TIMEOUT_S or None,
    cancel: threading.Event | None = None,
) -> SarfiResult:
    """
    Compute per-meter SARFI counters and the weighted system-wide summary.

    Args:
        profile_id: Profile to evaluate; empty/None yields an empty result
            without touching the source.
        filters: Voltage level ("All" or an exact tag) and special-event exclusion.
        source: Data source (defaults to the SQLite store).
        timeout: Seconds to wait for each concurrent fetch; None waits forever.
        cancel: Optional event; once set, the run aborts with CancelledError
            at the next stage boundary.

    Returns:
        SarfiResult with one SarfiDataPoint per weighted, catalogued meter.
    """
    filters = filters or SarfiFilters()

    _check_cancelled(cancel, "weights")
    with _fetch_stage("weights"):
        weights = load_weight_table(profile_id, source)
    if not weights:
        return SarfiResult()

    meter_ids = weight_meter_ids(weights)
    voltage_level = None if filters.voltage_level == ALL_VOLTAGE_LEVELS else filters.voltage_level

    _check_cancelled(cancel, "meters")
    pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="sarfi-fetch")
    try:
        meters_future = pool.submit(resolve_meters, meter_ids, source)
        # Events are requested for every weighted meter; rows of meters the
        # catalog does not know are dropped while counting.
        events_future = pool.submit(
            source.list_events,
            set(meter_ids),
            voltage_level=voltage_level,
            exclude_special=filters.exclude_special_events,
        )
        meters = _wait("meters", meters_future, timeout)
        events = _wait("events", events_future, timeout)
    finally:
        pool.shutdown(wait=False, cancel_futures=True)

    _check_cancelled(cancel, "aggregation")
    result = aggregate(weights, meters, list(events))
    logger.info(
        "SARFI data ready: %d meters, %d events processed",
        len(result.per_meter), len(events),
    )
    return result
