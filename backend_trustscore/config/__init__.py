"""
Configuration management for the TrustScore engine.

Loads and validates settings from defaults, an optional JSON overrides file and
environment variables. Exposes a single source of truth for all thresholds,
weights, cadences and the facilitator allow-list.
"""

from backend_trustscore.config.settings import (  # noqa: F401
    RULE_SET_BASIC,
    RULE_SET_EXTENDED,
    DetectorConfig,
    IngestionSettings,
    NotificationSettings,
    ReputationWeights,
    SchedulerSettings,
    Settings,
    get_settings,
)

__all__ = [
    "RULE_SET_BASIC",
    "RULE_SET_EXTENDED",
    "DetectorConfig",
    "IngestionSettings",
    "NotificationSettings",
    "ReputationWeights",
    "SchedulerSettings",
    "Settings",
    "get_settings",
]
