"""
Configuration module for card-elo.

Loads runtime settings from environment variables (via .env file).
Scoring policy lives in constants.py; this module only covers where data lives
and how the engine talks to the store.

Environment Variables:
    CARD_ELO_DB_PATH: DuckDB database file (default: output/card_elo.db)
    CARD_ELO_MAX_RETRIES: Attempts per rating update on transient store errors (default: 3)
    CARD_ELO_RETRY_BACKOFF_MS: First backoff delay, doubled per attempt (default: 100)
    CARD_ELO_RETRY_JITTER: Random extra backoff as a fraction of the delay (default: 0.1)
    CARD_ELO_LOG_LEVEL: Logging level for the CLI (default: INFO)
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Find project root (parent of 'card_elo' directory)
_project_root = Path(__file__).parent.parent
_env_path = _project_root / ".env"
if _env_path.exists():
    load_dotenv(_env_path)


# ----- Store Configuration -----

# Relative paths are resolved against the project root
DB_PATH_SETTING: str = os.getenv("CARD_ELO_DB_PATH", "output/card_elo.db")

# Attempts per single-game rating update before a transient error is surfaced
MAX_RETRIES: int = int(os.getenv("CARD_ELO_MAX_RETRIES", "3"))

# Backoff before the second attempt; doubles each time (100ms, 200ms, 400ms)
RETRY_BACKOFF_SECONDS: float = int(os.getenv("CARD_ELO_RETRY_BACKOFF_MS", "100")) / 1000.0

# Random extra delay per retry, as a fraction of the backoff (0.1 = up to +10%)
RETRY_JITTER: float = float(os.getenv("CARD_ELO_RETRY_JITTER", "0.1"))

LOG_LEVEL: str = os.getenv("CARD_ELO_LOG_LEVEL", "INFO").upper()


# ----- Derived Values -----

def get_db_path() -> Path:
    """Return the full path to the database file."""
    path = Path(DB_PATH_SETTING)
    if not path.is_absolute():
        path = _project_root / path
    return path
