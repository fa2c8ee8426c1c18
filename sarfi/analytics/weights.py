"""
sarfi/analytics/weights.py
──────────────────────────
WeightTable loader: profile id → weight rows of the participating meters.
"""
from __future__ import annotations

import logging

from sarfi.data.models import ProfileWeight

logger = logging.getLogger(__name__)


def load_weight_table(profile_id: str | None, source) -> list[ProfileWeight]:
    """
    Return the weight rows of `profile_id` in the order the source stores them.

    An empty or missing profile id is the "no selection" state: returns []
    without calling the source. Source failures propagate unchanged.
    """
    if not profile_id:
        logger.debug("No SARFI profile selected, skipping weight lookup")
        return []

    weights = list(source.list_weights(profile_id))
    if not weights:
        logger.info("No weights found for SARFI profile %s", profile_id)
    return weights


def weight_meter_ids(weights: list[ProfileWeight]) -> list[str]:
    """Distinct meter ids of a weight table, first occurrence order."""
    return list(dict.fromkeys(w.meter_id for w in weights))
