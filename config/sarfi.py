"""
config/sarfi.py
───────────────
SARFI threshold table, voltage levels and demo fixtures.

Threshold table (label → retained-voltage cutoff, inclusive):
  sarfi_10 ≤ 90%   sarfi_30 ≤ 70%   sarfi_50 ≤ 50%
  sarfi_70 ≤ 30%   sarfi_80 ≤ 20%   sarfi_90 ≤ 10%

The labels count dips at or below (100 - label)% retained voltage. This is
the mapping used by the compliance reports already in circulation; it is
inverted relative to the IEEE 1564 reading of SARFI-X and must not be
changed without product sign-off.
"""

VOLTAGE_DIP = "voltage_dip"

# (label, cutoff %) in reporting order
SARFI_THRESHOLDS: tuple[tuple[int, float], ...] = (
    (10, 90.0),
    (30, 70.0),
    (50, 50.0),
    (70, 30.0),
    (80, 20.0),
    (90, 10.0),
)

SARFI_LABELS: tuple[int, ...] = tuple(label for label, _ in SARFI_THRESHOLDS)

# Events with neither remaining_voltage nor magnitude count as "no dip"
NO_DIP_VOLTAGE_PCT = 100.0

DEFAULT_WEIGHT_FACTOR = 1.0

ALL_VOLTAGE_LEVELS = "All"
UNKNOWN_VOLTAGE_LEVEL = "Unknown"

VOLTAGE_LEVELS: tuple[str, ...] = (ALL_VOLTAGE_LEVELS, "400kV", "132kV", "11kV", "380V", "Others")

# ── Demo fixtures ─────────────────────────────────────────────────────────────

DEMO_SUBSTATION: dict[str, str] = {
    "name": "Demo Main Substation",
    "code": "DMS",
    "voltage_level": "132kV",
    "region": "Central",
}

DEMO_METERS: list[dict[str, str]] = [
    {"meter_no": "MTR-001", "location": "Main Street Substation", "voltage_level": "132kV"},
    {"meter_no": "MTR-002", "location": "Industrial Park A", "voltage_level": "132kV"},
    {"meter_no": "MTR-003", "location": "Downtown District", "voltage_level": "11kV"},
    {"meter_no": "MTR-004", "location": "Residential Area North", "voltage_level": "11kV"},
    {"meter_no": "MTR-005", "location": "Commercial Zone East", "voltage_level": "11kV"},
    {"meter_no": "MTR-006", "location": "Factory Complex B", "voltage_level": "400kV"},
    {"meter_no": "MTR-007", "location": "Hospital District", "voltage_level": "11kV"},
    {"meter_no": "MTR-008", "location": "Tech Park South", "voltage_level": "132kV"},
]

# Higher voltage meters weigh more in the demo profile
DEMO_WEIGHT_FACTORS: dict[str, float] = {
    "400kV": 1.5,
    "132kV": 1.2,
    "11kV": 1.0,
    "380V": 0.8,
}

# Retained-voltage mix of demo dips: (probability, low %, high %)
DEMO_DIP_MIX: tuple[tuple[float, float, float], ...] = (
    (0.50, 70.0, 90.0),
    (0.25, 50.0, 70.0),
    (0.15, 20.0, 50.0),
    (0.10, 5.0, 20.0),
)

DEMO_SPECIAL_EVENT_RATE = 0.10
