"""
sarfi/data/models.py
────────────────────
Pydantic v2 data models for meters, profiles, voltage-dip events and SARFI results.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from config.sarfi import ALL_VOLTAGE_LEVELS, SARFI_LABELS, UNKNOWN_VOLTAGE_LEVEL


class EventType(str, Enum):
    VOLTAGE_DIP = "voltage_dip"
    VOLTAGE_SWELL = "voltage_swell"
    HARMONIC = "harmonic"
    INTERRUPTION = "interruption"
    TRANSIENT = "transient"
    FLICKER = "flicker"


# ── Stored entities ───────────────────────────────────────────────────────────


class Substation(BaseModel):
    id: str
    name: str
    code: str
    voltage_level: str | None = None
    region: str | None = None


class Meter(BaseModel):
    """A meter row as served by the store, with its substation's voltage level joined in."""
    id: str
    meter_no: str
    location: str
    voltage_level: str | None = None
    substation_id: str | None = None
    substation_voltage_level: str | None = None


class Profile(BaseModel):
    id: str
    name: str
    year: int = Field(ge=1900, le=2200)
    description: str | None = None
    is_active: bool = False
    created_at: datetime | None = None


class ProfileWeight(BaseModel):
    # No bound on weight_factor: stored anomalies (0, negative, NULL) are
    # defaulted by the aggregator instead of rejected here.
    id: str
    profile_id: str
    meter_id: str
    weight_factor: float | None = None
    customer_count: int | None = None
    notes: str | None = None


class PQEvent(BaseModel):
    id: str
    event_type: EventType = EventType.VOLTAGE_DIP
    meter_id: str | None = None
    voltage_level: str | None = None
    is_special_event: bool | None = None
    remaining_voltage: float | None = None
    magnitude: float | None = None
    duration_ms: int | None = Field(default=None, ge=0)
    timestamp: datetime | None = None


# ── Engine inputs / outputs ───────────────────────────────────────────────────


class MeterInfo(BaseModel):
    """Resolved meter metadata used for filtering and labelling output rows."""
    meter_id: str
    meter_no: str
    location: str
    voltage_level: str


class SarfiFilters(BaseModel):
    voltage_level: str = ALL_VOLTAGE_LEVELS
    exclude_special_events: bool = False


class SarfiDataPoint(BaseModel):
    meter_id: str
    meter_no: str
    location: str
    voltage_level: str = UNKNOWN_VOLTAGE_LEVEL
    customer_count: int = Field(default=0, ge=0)
    sarfi_10: int = Field(default=0, ge=0)
    sarfi_30: int = Field(default=0, ge=0)
    sarfi_50: int = Field(default=0, ge=0)
    sarfi_70: int = Field(default=0, ge=0)
    sarfi_80: int = Field(default=0, ge=0)
    sarfi_90: int = Field(default=0, ge=0)
    weight_factor: float

    def count(self, label: int) -> int:
        """Counter for a threshold label (10, 30, 50, 70, 80 or 90)."""
        if label == 10:
            return self.sarfi_10
        if label == 30:
            return self.sarfi_30
        if label == 50:
            return self.sarfi_50
        if label == 70:
            return self.sarfi_70
        if label == 80:
            return self.sarfi_80
        if label == 90:
            return self.sarfi_90
        raise ValueError(f"Unknown SARFI threshold label: {label} (expected one of {SARFI_LABELS})")

    def counts(self) -> tuple[int, ...]:
        return tuple(self.count(label) for label in SARFI_LABELS)


class WeightedSummary(BaseModel):
    sarfi_10: float = 0.0
    sarfi_30: float = 0.0
    sarfi_50: float = 0.0
    sarfi_70: float = 0.0
    sarfi_80: float = 0.0
    sarfi_90: float = 0.0
    total_weight: float = 0.0


class ImportRowError(BaseModel):
    row: int
    meter_id: str
    message: str


class ImportReport(BaseModel):
    """Outcome of a bulk customer-count update: counts plus one entry per rejected row."""
    success: int = 0
    failed: int = 0
    errors: list[ImportRowError] = Field(default_factory=list)


class SarfiResult(BaseModel):
    per_meter: list[SarfiDataPoint] = Field(default_factory=list)
    summary: WeightedSummary = Field(default_factory=WeightedSummary)
