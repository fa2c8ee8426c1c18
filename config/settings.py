"""
config/settings.py
──────────────────
Application configuration loaded from environment variables.
"""
import os
from dataclasses import dataclass


@dataclass
class Settings:
    # Database (SQLite path, ":memory:" for tests)
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sarfi.db")

    # Demo data
    SIMULATION_SEED: int = int(os.getenv("SIMULATION_SEED", "42"))
    HISTORY_MONTHS: int = int(os.getenv("HISTORY_MONTHS", "3"))
    DEMO_YEAR: int = int(os.getenv("DEMO_YEAR", "2025"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Per-fetch timeout in seconds for the concurrent reads (0 = no timeout)
    FETCH_TIMEOUT_S: float = float(os.getenv("FETCH_TIMEOUT_S", "30"))


settings = Settings()
