"""
Environment variable loading for TrustScore.

- TRUSTSCORE_DB_PATH: SQLite file for the transaction/flag/reputation store (default: trustscore.db)
- TRUSTSCORE_CONFIG_PATH: optional JSON file with nested settings overrides
- LOG_LEVEL / LOG_FORMAT: read by backend_trustscore.logging
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

# Project root: config is backend_trustscore/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _CONFIG_DIR.parent
_ROOT = _BACKEND_DIR.parent
_ENV_PATH = _ROOT / ".env"

DEFAULT_DB_FILENAME = "trustscore.db"


def load_trustscore_env() -> None:
    """Load .env from project root. Safe to call multiple times; existing env wins."""
    from dotenv import load_dotenv

    if _ENV_PATH.is_file():
        load_dotenv(_ENV_PATH, override=False)


def get_db_path() -> Path:
    """Return TRUSTSCORE_DB_PATH (or legacy DB_PATH) from env; default trustscore.db in cwd."""
    load_trustscore_env()
    raw = (os.getenv("TRUSTSCORE_DB_PATH") or os.getenv("DB_PATH") or "").strip()
    return Path(raw) if raw else Path(DEFAULT_DB_FILENAME)


def get_config_path() -> Path | None:
    """Return TRUSTSCORE_CONFIG_PATH if set, else None."""
    load_trustscore_env()
    raw = (os.getenv("TRUSTSCORE_CONFIG_PATH") or "").strip()
    return Path(raw) if raw else None


def env_str(name: str) -> str | None:
    """Return stripped env value or None when unset/empty."""
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


def env_list(name: str) -> list[str] | None:
    """Comma-separated env value as a list; None when unset."""
    raw = env_str(name)
    if raw is None:
        return None
    return [part.strip() for part in raw.split(",") if part.strip()]
