"""
sarfi/data/store.py
───────────────────
SQLite data store abstraction.

Provides:
  - initialize_db()        : Create tables + seed demo data on first run
  - list_weights()         : Weight rows of a profile, in insertion order
  - get_meters()           : Meter rows (with substation voltage level) by id
  - list_events()          : Voltage-dip events for a meter set under a filter
  - list_profiles() / get_active_profile() / create_profile() /
    update_profile() / delete_profile()
  - upsert_weight() / batch_update_weights() / delete_weight()
  - add_meter_to_profile() / update_customer_count() /
    batch_update_customer_counts() / import_customer_counts_csv(),
    all rebalanced by recalculate_weight_factors()

The three read functions are the data source consumed by
sarfi.analytics.pipeline; this module itself can be passed as the `source`.

Thread safety: uses check_same_thread=False + a module-level lock.
"""
from __future__ import annotations

import logging
import sqlite3
import threading
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime

import pandas as pd

from config.sarfi import VOLTAGE_DIP
from config.settings import settings
from sarfi.data.models import (
    ImportReport,
    ImportRowError,
    Meter,
    PQEvent,
    Profile,
    ProfileWeight,
    Substation,
)

logger = logging.getLogger(__name__)

_lock = threading.RLock()
_DB: sqlite3.Connection | None = None

_PROFILE_FIELDS = ("name", "description", "year", "is_active")


# ── Connection ────────────────────────────────────────────────────────────────

def _get_conn() -> sqlite3.Connection:
    global _DB
    if _DB is None:
        _DB = sqlite3.connect(settings.DATABASE_URL, check_same_thread=False)
        _DB.row_factory = sqlite3.Row
        _DB.execute("PRAGMA foreign_keys = ON")
    return _DB


def close_db() -> None:
    """Close the module connection; an in-memory database is discarded."""
    global _DB
    with _lock:
        if _DB is not None:
            _DB.close()
            _DB = None


def _now() -> str:
    return datetime.now(tz=UTC).isoformat()


def _placeholders(values: list) -> str:
    return ",".join("?" for _ in values)


# ── Schema ────────────────────────────────────────────────────────────────────

_CREATE_SUBSTATIONS = """
CREATE TABLE IF NOT EXISTS substations (
    id             TEXT PRIMARY KEY,
    name           TEXT NOT NULL,
    code           TEXT NOT NULL,
    voltage_level  TEXT,
    region         TEXT
);
"""

_CREATE_METERS = """
CREATE TABLE IF NOT EXISTS meters (
    id             TEXT PRIMARY KEY,
    meter_no       TEXT NOT NULL UNIQUE,
    location       TEXT NOT NULL,
    voltage_level  TEXT,
    substation_id  TEXT REFERENCES substations (id) ON DELETE SET NULL
);
"""

_CREATE_PROFILES = """
CREATE TABLE IF NOT EXISTS sarfi_profiles (
    id           TEXT PRIMARY KEY,
    name         TEXT NOT NULL,
    description  TEXT,
    year         INTEGER NOT NULL,
    is_active    INTEGER NOT NULL DEFAULT 0,
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL
);
"""

# meter_id has no foreign key: a weight may outlive its meter.
_CREATE_WEIGHTS = """
CREATE TABLE IF NOT EXISTS sarfi_profile_weights (
    id              TEXT PRIMARY KEY,
    profile_id      TEXT NOT NULL REFERENCES sarfi_profiles (id) ON DELETE CASCADE,
    meter_id        TEXT NOT NULL,
    weight_factor   REAL,
    customer_count  INTEGER NOT NULL DEFAULT 0,
    notes           TEXT,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL,
    UNIQUE (profile_id, meter_id)
);
"""

_CREATE_EVENTS = """
CREATE TABLE IF NOT EXISTS events (
    id                 TEXT PRIMARY KEY,
    event_type         TEXT NOT NULL,
    meter_id           TEXT,
    voltage_level      TEXT,
    is_special_event   INTEGER,
    remaining_voltage  REAL,
    magnitude          REAL,
    duration_ms        INTEGER,
    timestamp          TEXT
);
"""

_CREATE_IDX = """
CREATE INDEX IF NOT EXISTS idx_weights_profile ON sarfi_profile_weights (profile_id);
CREATE INDEX IF NOT EXISTS idx_events_meter_type ON events (meter_id, event_type);
"""


def create_tables() -> None:
    conn = _get_conn()
    with _lock, conn:
        conn.executescript(
            _CREATE_SUBSTATIONS + _CREATE_METERS + _CREATE_PROFILES
            + _CREATE_WEIGHTS + _CREATE_EVENTS + _CREATE_IDX
        )


# ── Seeding ───────────────────────────────────────────────────────────────────

def initialize_db(force_reseed: bool = False) -> None:
    """
    Create tables and populate with the demo dataset if the DB is empty.
    Safe to call multiple times (idempotent).
    """
    # Import here to avoid circular deps
    from sarfi.data.simulator import generate_demo_dataset

    create_tables()
    conn = _get_conn()

    with _lock:
        count = conn.execute("SELECT COUNT(*) FROM meters").fetchone()[0]
        if count > 0 and not force_reseed:
            return  # Already seeded

        with conn:
            for table in ("events", "sarfi_profile_weights", "sarfi_profiles", "meters", "substations"):
                conn.execute(f"DELETE FROM {table}")

        dataset = generate_demo_dataset()
        insert_substations([dataset.substation])
        insert_meters(dataset.meters)
        insert_profile(dataset.profile)
        insert_weights(dataset.weights)
        insert_events(dataset.events)
        logger.info(
            "Seeded demo data: %d meters, %d weights, %d events (profile %r)",
            len(dataset.meters), len(dataset.weights), len(dataset.events), dataset.profile.name,
        )


def insert_substations(substations: list[Substation]) -> None:
    if not substations:
        return
    rows = [(s.id, s.name, s.code, s.voltage_level, s.region) for s in substations]
    conn = _get_conn()
    with _lock, conn:
        conn.executemany(
            "INSERT INTO substations (id, name, code, voltage_level, region) VALUES (?,?,?,?,?)",
            rows,
        )


def insert_meters(meters: list[Meter]) -> None:
    if not meters:
        return
    rows = [(m.id, m.meter_no, m.location, m.voltage_level, m.substation_id) for m in meters]
    conn = _get_conn()
    with _lock, conn:
        conn.executemany(
            "INSERT INTO meters (id, meter_no, location, voltage_level, substation_id) VALUES (?,?,?,?,?)",
            rows,
        )


def delete_meter(meter_id: str) -> None:
    """Remove a meter from the catalog. Weights referencing it are kept."""
    conn = _get_conn()
    with _lock, conn:
        conn.execute("DELETE FROM meters WHERE id = ?", (meter_id,))


def insert_events(events: list[PQEvent]) -> None:
    if not events:
        return
    rows = [
        (
            e.id,
            e.event_type.value,
            e.meter_id,
            e.voltage_level,
            None if e.is_special_event is None else int(e.is_special_event),
            e.remaining_voltage,
            e.magnitude,
            e.duration_ms,
            e.timestamp.isoformat() if e.timestamp else None,
        )
        for e in events
    ]
    conn = _get_conn()
    with _lock, conn:
        conn.executemany(
            """INSERT INTO events
               (id, event_type, meter_id, voltage_level, is_special_event,
                remaining_voltage, magnitude, duration_ms, timestamp)
               VALUES (?,?,?,?,?,?,?,?,?)""",
            rows,
        )


def insert_profile(profile: Profile) -> None:
    created = (profile.created_at or datetime.now(tz=UTC)).isoformat()
    conn = _get_conn()
    with _lock, conn:
        conn.execute(
            """INSERT INTO sarfi_profiles
               (id, name, description, year, is_active, created_at, updated_at)
               VALUES (?,?,?,?,?,?,?)""",
            (profile.id, profile.name, profile.description, profile.year,
             int(profile.is_active), created, created),
        )


def insert_weights(weights: list[ProfileWeight]) -> None:
    """Insert raw weight rows as given (no factor validation)."""
    if not weights:
        return
    now = _now()
    rows = [
        (w.id, w.profile_id, w.meter_id, w.weight_factor, w.customer_count or 0, w.notes, now, now)
        for w in weights
    ]
    conn = _get_conn()
    with _lock, conn:
        conn.executemany(
            """INSERT INTO sarfi_profile_weights
               (id, profile_id, meter_id, weight_factor, customer_count, notes, created_at, updated_at)
               VALUES (?,?,?,?,?,?,?,?)""",
            rows,
        )


# ── Engine reads ──────────────────────────────────────────────────────────────

def list_weights(profile_id: str) -> list[ProfileWeight]:
    """Weight rows for a profile, in insertion order."""
    conn = _get_conn()
    with _lock:
        rows = conn.execute(
            """SELECT id, profile_id, meter_id, weight_factor, customer_count, notes
               FROM sarfi_profile_weights
               WHERE profile_id = ?
               ORDER BY created_at ASC, rowid ASC""",
            (profile_id,),
        ).fetchall()
    return [ProfileWeight.model_validate(dict(r)) for r in rows]


def get_meters(meter_ids: Iterable[str]) -> dict[str, Meter]:
    """Meters that exist among `meter_ids`, keyed by id. Unknown ids are absent."""
    ids = sorted(set(meter_ids))
    if not ids:
        return {}
    conn = _get_conn()
    with _lock:
        rows = conn.execute(
            f"""SELECT m.id, m.meter_no, m.location, m.voltage_level, m.substation_id,
                       s.voltage_level AS substation_voltage_level
                FROM meters m
                LEFT JOIN substations s ON s.id = m.substation_id
                WHERE m.id IN ({_placeholders(ids)})""",
            ids,
        ).fetchall()
    return {r["id"]: Meter.model_validate(dict(r)) for r in rows}


def list_events(
    meter_ids: Iterable[str],
    voltage_level: str | None = None,
    exclude_special: bool = False,
    event_type: str = VOLTAGE_DIP,
) -> list[PQEvent]:
    """
    Fetch events of `event_type` for the given meters.

    voltage_level: exact, case-sensitive match on the event's own tag; None = any.
    exclude_special: keep only events whose is_special_event is NULL or false.
    """
    ids = sorted(set(meter_ids))
    if not ids:
        return []
    where = ["event_type = ?", f"meter_id IN ({_placeholders(ids)})"]
    params: list = [event_type, *ids]

    if voltage_level is not None:
        where.append("voltage_level = ?")
        params.append(voltage_level)
    if exclude_special:
        where.append("(is_special_event IS NULL OR is_special_event = 0)")

    sql = f"""SELECT id, event_type, meter_id, voltage_level, is_special_event,
                     remaining_voltage, magnitude, duration_ms, timestamp
              FROM events WHERE {' AND '.join(where)}
              ORDER BY rowid ASC"""

    conn = _get_conn()
    with _lock:
        rows = conn.execute(sql, params).fetchall()
    return [PQEvent.model_validate(dict(r)) for r in rows]


# ── Profile administration ────────────────────────────────────────────────────

def _profile_from_row(row: sqlite3.Row) -> Profile:
    return Profile(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        year=row["year"],
        is_active=bool(row["is_active"]),
        created_at=row["created_at"],
    )


def get_profile(profile_id: str) -> Profile | None:
    conn = _get_conn()
    with _lock:
        row = conn.execute("SELECT * FROM sarfi_profiles WHERE id = ?", (profile_id,)).fetchone()
    return _profile_from_row(row) if row else None


def list_profiles() -> list[Profile]:
    """All profiles, most recent year first."""
    conn = _get_conn()
    with _lock:
        rows = conn.execute(
            "SELECT * FROM sarfi_profiles ORDER BY year DESC, created_at ASC"
        ).fetchall()
    return [_profile_from_row(r) for r in rows]


def get_active_profile(year: int) -> Profile | None:
    """The active profile for `year`, or None when there is none."""
    conn = _get_conn()
    with _lock:
        row = conn.execute(
            """SELECT * FROM sarfi_profiles WHERE year = ? AND is_active = 1
               ORDER BY created_at ASC LIMIT 1""",
            (year,),
        ).fetchone()
    return _profile_from_row(row) if row else None


def create_profile(
    name: str,
    year: int,
    description: str | None = None,
    is_active: bool = False,
) -> Profile:
    profile = Profile(
        id=str(uuid.uuid4()),
        name=name,
        year=year,
        description=description,
        is_active=is_active,
        created_at=datetime.now(tz=UTC),
    )
    insert_profile(profile)
    return profile


def update_profile(profile_id: str, updates: dict) -> Profile:
    """
    Update name / description / year / is_active of a profile.

    Raises KeyError for an unknown profile, ValueError for other fields and
    pydantic.ValidationError for invalid values.
    """
    unknown = set(updates) - set(_PROFILE_FIELDS)
    if unknown:
        raise ValueError(f"Cannot update profile fields: {sorted(unknown)}")

    current = get_profile(profile_id)
    if current is None:
        raise KeyError(profile_id)
    updated = Profile.model_validate({**current.model_dump(), **updates})

    conn = _get_conn()
    with _lock, conn:
        conn.execute(
            """UPDATE sarfi_profiles
               SET name = ?, description = ?, year = ?, is_active = ?, updated_at = ?
               WHERE id = ?""",
            (updated.name, updated.description, updated.year,
             int(updated.is_active), _now(), profile_id),
        )
    return updated


def delete_profile(profile_id: str) -> None:
    """Delete a profile; its weights are removed by cascade."""
    conn = _get_conn()
    with _lock, conn:
        conn.execute("DELETE FROM sarfi_profiles WHERE id = ?", (profile_id,))


def _check_factor(weight_factor: float) -> None:
    if not weight_factor > 0:
        raise ValueError(f"weight_factor must be > 0, got {weight_factor}")


def upsert_weight(
    profile_id: str,
    meter_id: str,
    weight_factor: float,
    notes: str | None = None,
) -> ProfileWeight:
    """Create the (profile, meter) weight, or update it in place if it exists."""
    _check_factor(weight_factor)
    now = _now()
    conn = _get_conn()
    with _lock:
        with conn:
            conn.execute(
                """INSERT INTO sarfi_profile_weights
                   (id, profile_id, meter_id, weight_factor, notes, created_at, updated_at)
                   VALUES (?,?,?,?,?,?,?)
                   ON CONFLICT (profile_id, meter_id) DO UPDATE SET
                       weight_factor = excluded.weight_factor,
                       notes = excluded.notes,
                       updated_at = excluded.updated_at""",
                (str(uuid.uuid4()), profile_id, meter_id, weight_factor, notes, now, now),
            )
        row = conn.execute(
            """SELECT id, profile_id, meter_id, weight_factor, customer_count, notes
               FROM sarfi_profile_weights WHERE profile_id = ? AND meter_id = ?""",
            (profile_id, meter_id),
        ).fetchone()
    return ProfileWeight.model_validate(dict(row))


def batch_update_weights(updates: list[tuple[str, float]]) -> None:
    """
    Set weight_factor for several weight ids at once.
    All-or-nothing: an invalid factor or unknown id leaves every row unchanged.
    """
    for _, weight_factor in updates:
        _check_factor(weight_factor)

    now = _now()
    conn = _get_conn()
    with _lock, conn:
        missing = []
        for weight_id, weight_factor in updates:
            cur = conn.execute(
                "UPDATE sarfi_profile_weights SET weight_factor = ?, updated_at = ? WHERE id = ?",
                (weight_factor, now, weight_id),
            )
            if cur.rowcount == 0:
                missing.append(weight_id)
        if missing:
            # raising inside the transaction rolls back the earlier updates
            raise KeyError(f"Failed to update some weights: {missing}")


def delete_weight(weight_id: str) -> None:
    conn = _get_conn()
    with _lock, conn:
        conn.execute("DELETE FROM sarfi_profile_weights WHERE id = ?", (weight_id,))


# ── Customer-count weighting ──────────────────────────────────────────────────
#
# weight_factor = customer_count / Σ customer_count over the profile.
# A profile whose counts sum to 0 gets weight_factor 0 everywhere, which the
# aggregator reads as the default weight (equal weighting).

def _check_customer_count(customer_count) -> None:
    if isinstance(customer_count, bool) or not isinstance(customer_count, int) or customer_count < 0:
        raise ValueError(f"customer_count must be a non-negative integer, got {customer_count!r}")


def recalculate_weight_factors(profile_id: str) -> list[ProfileWeight]:
    """Rewrite every weight_factor of a profile from its customer counts."""
    conn = _get_conn()
    with _lock:
        rows = conn.execute(
            "SELECT id, customer_count FROM sarfi_profile_weights WHERE profile_id = ?",
            (profile_id,),
        ).fetchall()
        if not rows:
            logger.warning("No weights found for SARFI profile %s, nothing to recalculate", profile_id)
            return []

        total = sum(r["customer_count"] or 0 for r in rows)
        if total == 0:
            logger.warning("Total customer count is 0 for profile %s, setting all weights to 0", profile_id)

        now = _now()
        with conn:
            conn.executemany(
                "UPDATE sarfi_profile_weights SET weight_factor = ?, updated_at = ? WHERE id = ?",
                [
                    ((r["customer_count"] or 0) / total if total else 0.0, now, r["id"])
                    for r in rows
                ],
            )
        logger.info("Recalculated weight factors for %d meters (profile %s)", len(rows), profile_id)
        return list_weights(profile_id)


def add_meter_to_profile(
    profile_id: str,
    meter_id: str,
    customer_count: int,
    notes: str | None = None,
) -> ProfileWeight:
    """
    Add a meter with its customer count, then rebalance the profile.
    Raises sqlite3.IntegrityError if the meter is already in the profile
    or the profile does not exist.
    """
    _check_customer_count(customer_count)
    now = _now()
    conn = _get_conn()
    with _lock:
        with conn:
            conn.execute(
                """INSERT INTO sarfi_profile_weights
                   (id, profile_id, meter_id, weight_factor, customer_count, notes, created_at, updated_at)
                   VALUES (?,?,?,?,?,?,?,?)""",
                (str(uuid.uuid4()), profile_id, meter_id, 0.0, customer_count, notes, now, now),
            )
        weights = recalculate_weight_factors(profile_id)
    return next(w for w in weights if w.meter_id == meter_id)


def update_customer_count(weight_id: str, customer_count: int) -> list[ProfileWeight]:
    """Change one weight's customer count and rebalance its profile."""
    _check_customer_count(customer_count)
    conn = _get_conn()
    with _lock:
        row = conn.execute(
            "SELECT profile_id FROM sarfi_profile_weights WHERE id = ?", (weight_id,)
        ).fetchone()
        if row is None:
            raise KeyError(weight_id)
        with conn:
            conn.execute(
                "UPDATE sarfi_profile_weights SET customer_count = ?, updated_at = ? WHERE id = ?",
                (customer_count, _now(), weight_id),
            )
        return recalculate_weight_factors(row["profile_id"])


def batch_update_customer_counts(
    profile_id: str,
    updates: list[tuple[str, int]],
) -> ImportReport:
    """
    Set customer counts by meter id within a profile.

    Rows with an invalid count or a meter outside the profile are reported,
    the rest are applied; weights are rebalanced when any row succeeded.
    """
    report = ImportReport()
    now = _now()
    conn = _get_conn()
    with _lock:
        with conn:
            for row_no, (meter_id, customer_count) in enumerate(updates, start=1):
                try:
                    _check_customer_count(customer_count)
                except ValueError as exc:
                    report.errors.append(ImportRowError(row=row_no, meter_id=meter_id, message=str(exc)))
                    continue
                cur = conn.execute(
                    """UPDATE sarfi_profile_weights SET customer_count = ?, updated_at = ?
                       WHERE profile_id = ? AND meter_id = ?""",
                    (customer_count, now, profile_id, meter_id),
                )
                if cur.rowcount == 0:
                    report.errors.append(
                        ImportRowError(row=row_no, meter_id=meter_id, message="Meter not in profile")
                    )
                    continue
                report.success += 1
        report.failed = len(report.errors)
        if report.success:
            recalculate_weight_factors(profile_id)
    return report


_CSV_COLUMNS = ("meter_id", "customer_count")


def import_customer_counts_csv(profile_id: str, csv_source) -> ImportReport:
    """
    Import customer counts from CSV and rebalance the profile.

    csv_source: path or file-like object with columns `meter_id` (the meter's
    display code, e.g. MTR-001) and `customer_count`. Rows are numbered from
    1 after the header. Unknown meters and invalid counts are reported per
    row; valid rows are upserted.

    Raises KeyError for an unknown profile, ValueError for missing columns.
    """
    if get_profile(profile_id) is None:
        raise KeyError(profile_id)

    df = pd.read_csv(csv_source, dtype={"meter_id": str}, skipinitialspace=True)
    missing = [c for c in _CSV_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"CSV is missing columns: {missing}")

    codes = df["meter_id"].fillna("").str.strip()
    counts = pd.to_numeric(df["customer_count"], errors="coerce")

    report = ImportReport()
    now = _now()
    conn = _get_conn()
    with _lock:
        meter_ids = {r["meter_no"]: r["id"] for r in conn.execute("SELECT id, meter_no FROM meters")}
        with conn:
            for row_no, (code, count) in enumerate(zip(codes, counts), start=1):
                meter_id = meter_ids.get(code)
                if meter_id is None:
                    report.errors.append(
                        ImportRowError(row=row_no, meter_id=code, message="Meter not found in system")
                    )
                    continue
                if pd.isna(count) or count < 0 or count != int(count):
                    report.errors.append(ImportRowError(
                        row=row_no, meter_id=code,
                        message="Customer count must be a non-negative integer",
                    ))
                    continue
                conn.execute(
                    """INSERT INTO sarfi_profile_weights
                       (id, profile_id, meter_id, weight_factor, customer_count, notes, created_at, updated_at)
                       VALUES (?,?,?,?,?,?,?,?)
                       ON CONFLICT (profile_id, meter_id) DO UPDATE SET
                           customer_count = excluded.customer_count,
                           updated_at = excluded.updated_at""",
                    (str(uuid.uuid4()), profile_id, meter_id, 0.0, int(count), None, now, now),
                )
                report.success += 1
        report.failed = len(report.errors)
        if report.success:
            recalculate_weight_factors(profile_id)
    logger.info(
        "Imported customer counts for profile %s: %d ok, %d rejected",
        profile_id, report.success, report.failed,
    )
    return report
