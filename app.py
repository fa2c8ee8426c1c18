"""
app.py
──────
SARFI Index Engine: demo entry point.

Startup sequence:
  1. Configure logging from LOG_LEVEL
  2. Initialize SQLite DB and seed demo meters, profile, weights and events
  3. Compute the weighted SARFI for the active DEMO_YEAR profile, with and
     without special events
  4. Log the per-meter table and the weighted summary
  5. Log the weighted summary for each selectable voltage level
"""
import logging

import pandas as pd

from config.sarfi import VOLTAGE_LEVELS
from config.settings import settings
from sarfi.analytics.pipeline import compute_weighted_sarfi
from sarfi.analytics.table import SortField, sort_data_points, summary_row, to_dataframe
from sarfi.data import store
from sarfi.data.models import SarfiFilters

logger = logging.getLogger("sarfi")


def main() -> None:
    # ── 1. Logging ────────────────────────────────────────────────────────────
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # ── 2. Seed database ──────────────────────────────────────────────────────
    logger.info("Initializing database at %s", settings.DATABASE_URL)
    store.initialize_db()

    profile = store.get_active_profile(settings.DEMO_YEAR)
    if profile is None:
        logger.warning("No active SARFI profile for %d", settings.DEMO_YEAR)
        return

    # ── 3. Compute ────────────────────────────────────────────────────────────
    for filters in (
        SarfiFilters(),
        SarfiFilters(exclude_special_events=True),
    ):
        result = compute_weighted_sarfi(profile.id, filters)

        # ── 4. Report ─────────────────────────────────────────────────────────
        result.per_meter = sort_data_points(result.per_meter, SortField.SARFI_10, descending=True)
        with pd.option_context("display.width", 160, "display.max_columns", None):
            logger.info(
                "Profile %r, voltage level %s, exclude special events=%s\n%s",
                profile.name,
                filters.voltage_level,
                filters.exclude_special_events,
                to_dataframe(result).drop(columns=["meter_id"]).to_string(index=False),
            )
        logger.info("Weighted summary: %s", summary_row(result))

    # ── 5. Per voltage level ──────────────────────────────────────────────────
    for level in VOLTAGE_LEVELS:
        result = compute_weighted_sarfi(profile.id, SarfiFilters(voltage_level=level))
        logger.info("Weighted summary at %s: %s", level, summary_row(result))


if __name__ == "__main__":
    main()
