"""
Application settings: detector thresholds, reputation weights, cadences, allow-list.

Layering (later wins):
1. Built-in defaults (the dataclass defaults below).
2. JSON file at TRUSTSCORE_CONFIG_PATH, nested by section
   (basic_detectors, extended_detectors, service_weights, agent_weights,
   scheduler, ingestion, notifications) plus top-level db_path / rule set names.
3. TRUSTSCORE_* environment variables for the commonly tuned knobs.

Every value is validated; out-of-range configuration raises InvalidInputError
before any detector or scorer runs.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from backend_trustscore.config.env import (
    env_list,
    env_str,
    get_config_path,
    get_db_path,
    load_trustscore_env,
)
from backend_trustscore.core.exceptions import InvalidInputError
from backend_trustscore.utils.address_utils import is_valid_address

RULE_SET_BASIC = "basic"
RULE_SET_EXTENDED = "extended"
RULE_SET_NAMES = frozenset({RULE_SET_BASIC, RULE_SET_EXTENDED})


@dataclass(frozen=True)
class DetectorConfig:
    """
    Thresholds for the seven fraud detectors.

    Amounts are in token units (USDC), windows in seconds.
    """

    velocity_window_sec: int = 3600
    velocity_limit: int = 50

    new_wallet_age_days: float = 7.0
    new_wallet_volume_threshold: float = 100.0

    wash_min_repeat_count: int = 10

    volume_spike_multiplier: float = 10.0
    volume_spike_min_days: int = 8

    retry_window_sec: int = 300
    retry_micro_amount: float = 0.10
    retry_spam_limit: int = 10

    low_diversity_ratio_floor: float = 0.1
    low_diversity_min_transactions: int = 20

    time_cluster_sample_size: int = 20
    time_cluster_min_transactions: int = 10
    time_cluster_max_cv: float = 0.2
    time_cluster_max_mean_interval_sec: float = 300.0

    def validate(self) -> None:
        positive = (
            "velocity_window_sec",
            "velocity_limit",
            "new_wallet_age_days",
            "wash_min_repeat_count",
            "volume_spike_multiplier",
            "retry_window_sec",
            "retry_micro_amount",
            "retry_spam_limit",
            "low_diversity_min_transactions",
            "time_cluster_max_cv",
            "time_cluster_max_mean_interval_sec",
        )
        for name in positive:
            if getattr(self, name) <= 0:
                raise InvalidInputError(f"detector config {name} must be > 0")
        if self.new_wallet_volume_threshold < 0:
            raise InvalidInputError("detector config new_wallet_volume_threshold must be >= 0")
        if not 0 < self.low_diversity_ratio_floor <= 1:
            raise InvalidInputError("detector config low_diversity_ratio_floor must be in (0, 1]")
        if self.volume_spike_min_days < 2:
            raise InvalidInputError("detector config volume_spike_min_days must be >= 2")
        if self.time_cluster_sample_size < 3:
            raise InvalidInputError("detector config time_cluster_sample_size must be >= 3")
        if self.time_cluster_min_transactions < 3:
            raise InvalidInputError("detector config time_cluster_min_transactions must be >= 3")

    @classmethod
    def extended_defaults(cls) -> DetectorConfig:
        """Thresholds for the advisory 7-rule analysis (relaxed spike multiplier)."""
        return cls(volume_spike_multiplier=5.0)


@dataclass(frozen=True)
class ReputationWeights:
    """
    Component maxima, saturation references and badge thresholds for a scorer.

    Defaults are the service variant; agent_defaults() gives the payment-centric variant.
    """

    count_max_points: float = 30.0
    count_reference: float = 100.0
    volume_max_points: float = 20.0
    volume_reference: float = 1000.0
    diversity_max_points: float = 15.0
    diversity_reference: float = 50.0
    age_max_points: float = 15.0
    age_reference_days: float = 90.0

    recency_full_days: float = 7.0
    recency_partial_days: float = 30.0
    recency_full_points: float = 10.0
    recency_partial_points: float = 5.0
    recency_stale_points: float = 0.0

    consistency_max_points: float = 0.0
    fraud_penalty_multiplier: float = 3.0
    default_score: int = 50

    verified_badge_score: int = 85
    trusted_badge_score: int = 70
    established_badge_days: float = 90.0
    high_volume_badge_count: int = 1000
    clean_badge_days: float = 30.0
    new_badge_days: float = 7.0

    def validate(self) -> None:
        for name in ("count_reference", "volume_reference", "diversity_reference", "age_reference_days"):
            if getattr(self, name) <= 0:
                raise InvalidInputError(f"reputation weight {name} must be > 0")
        for f in fields(self):
            if f.name.endswith("_points") and getattr(self, f.name) < 0:
                raise InvalidInputError(f"reputation weight {f.name} must be >= 0")
        if self.fraud_penalty_multiplier < 0:
            raise InvalidInputError("reputation weight fraud_penalty_multiplier must be >= 0")
        if not 0 <= self.default_score <= 100:
            raise InvalidInputError("reputation default_score must be in [0, 100]")
        if self.recency_partial_days < self.recency_full_days:
            raise InvalidInputError("recency_partial_days must be >= recency_full_days")

    @classmethod
    def agent_defaults(cls) -> ReputationWeights:
        return cls(
            count_max_points=25.0,
            diversity_reference=20.0,
            recency_full_points=15.0,
            recency_partial_points=10.0,
            recency_stale_points=5.0,
            consistency_max_points=10.0,
            high_volume_badge_count=500,
        )


@dataclass(frozen=True)
class SchedulerSettings:
    """Cadences and resource limits for the recomputation sweeps."""

    fraud_scan_interval_sec: float = 300.0
    score_update_interval_sec: float = 3600.0
    per_address_timeout_sec: float = 30.0
    sweep_concurrency: int = 4
    shutdown_timeout_sec: float = 15.0

    def validate(self) -> None:
        for f in fields(self):
            if getattr(self, f.name) <= 0:
                raise InvalidInputError(f"scheduler setting {f.name} must be > 0")


def _default_facilitators() -> frozenset[str]:
    from backend_trustscore.ingestion.facilitators import default_facilitator_addresses

    return default_facilitator_addresses()


@dataclass(frozen=True)
class IngestionSettings:
    """Allow-list and normalization options for the ingestion adapter."""

    facilitators: frozenset[str] = field(default_factory=_default_facilitators)
    token_decimals: int = 6
    refresh_reputations_on_ingest: bool = True
    # Largest accepted single payment, in token units.
    max_amount: Decimal = Decimal("1000000000000")

    def validate(self) -> None:
        if not isinstance(self.max_amount, Decimal) or not self.max_amount.is_finite() or self.max_amount <= 0:
            raise InvalidInputError("ingestion max_amount must be a positive finite number")
        if not self.facilitators:
            raise InvalidInputError("ingestion facilitator allow-list must not be empty")
        bad = sorted(a for a in self.facilitators if not is_valid_address(a))
        if bad:
            raise InvalidInputError(f"invalid facilitator address(es): {bad[:3]}")
        if not 0 <= self.token_decimals <= 36:
            raise InvalidInputError("ingestion token_decimals must be in [0, 36]")


@dataclass(frozen=True)
class NotificationSettings:
    """
    Webhook delivery for newly created fraud flags.

    webhook_urls receive every alert; per-service subscriptions live in the store.
    """

    webhook_urls: tuple[str, ...] = ()
    webhook_secret: str | None = None
    timeout_sec: float = 5.0
    max_attempts: int = 3
    backoff_base_sec: float = 1.0
    # A subscription is deactivated after this many failed deliveries; None keeps it forever.
    deactivate_after_failures: int | None = None

    def validate(self) -> None:
        if self.deactivate_after_failures is not None and self.deactivate_after_failures < 1:
            raise InvalidInputError("notification deactivate_after_failures must be >= 1")
        if self.timeout_sec <= 0:
            raise InvalidInputError("notification timeout_sec must be > 0")
        if self.max_attempts < 1:
            raise InvalidInputError("notification max_attempts must be >= 1")
        if self.backoff_base_sec < 0:
            raise InvalidInputError("notification backoff_base_sec must be >= 0")
        for url in self.webhook_urls:
            if not url.startswith(("http://", "https://")):
                raise InvalidInputError(f"webhook url must be http(s): {url}")


@dataclass(frozen=True)
class Settings:
    """Single source of truth for engine configuration."""

    db_path: Path = field(default_factory=lambda: Path("trustscore.db"))
    alerting_rule_set: str = RULE_SET_BASIC
    analysis_rule_set: str = RULE_SET_EXTENDED
    basic_detectors: DetectorConfig = field(default_factory=DetectorConfig)
    extended_detectors: DetectorConfig = field(default_factory=DetectorConfig.extended_defaults)
    service_weights: ReputationWeights = field(default_factory=ReputationWeights)
    agent_weights: ReputationWeights = field(default_factory=ReputationWeights.agent_defaults)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    ingestion: IngestionSettings = field(default_factory=IngestionSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)

    def validate(self) -> Settings:
        """Validate every section; returns self so calls can be chained."""
        for name in ("alerting_rule_set", "analysis_rule_set"):
            if getattr(self, name) not in RULE_SET_NAMES:
                raise InvalidInputError(
                    f"{name} must be one of {sorted(RULE_SET_NAMES)}, got {getattr(self, name)!r}"
                )
        self.basic_detectors.validate()
        self.extended_detectors.validate()
        self.service_weights.validate()
        self.agent_weights.validate()
        self.scheduler.validate()
        self.ingestion.validate()
        self.notifications.validate()
        return self

    @classmethod
    def from_mapping(cls, data: dict[str, Any], base: Settings | None = None) -> Settings:
        """
        Apply nested overrides from a dict (e.g. parsed JSON) on top of base.

        Unknown sections or keys raise InvalidInputError so typos don't silently
        fall back to defaults.
        """
        settings = base or cls()
        if not isinstance(data, dict):
            raise InvalidInputError("settings overrides must be a JSON object")
        updates: dict[str, Any] = {}
        for key, value in data.items():
            if key == "db_path":
                updates["db_path"] = Path(value)
            elif key in ("alerting_rule_set", "analysis_rule_set"):
                updates[key] = str(value)
            elif key in _SECTIONS:
                updates[key] = _apply_section(key, getattr(settings, key), value)
            else:
                raise InvalidInputError(f"unknown settings key: {key}")
        return replace(settings, **updates)


_SECTIONS = (
    "basic_detectors",
    "extended_detectors",
    "service_weights",
    "agent_weights",
    "scheduler",
    "ingestion",
    "notifications",
)


def _apply_section(section: str, current: Any, overrides: Any) -> Any:
    if not isinstance(overrides, dict):
        raise InvalidInputError(f"settings section {section} must be an object")
    known = {f.name for f in fields(current)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise InvalidInputError(f"unknown keys in {section}: {unknown}")
    coerced: dict[str, Any] = {}
    for key, value in overrides.items():
        if key == "facilitators":
            value = frozenset(str(a).strip().lower() for a in value)
        elif key == "webhook_urls":
            value = tuple(str(u) for u in value)
        elif key == "max_amount":
            try:
                value = Decimal(str(value))
            except InvalidOperation as e:
                raise InvalidInputError(f"{section}.max_amount is not a number: {value!r}") from e
        coerced[key] = value
    return replace(current, **coerced)


# (env var, section, field, cast)
_ENV_OVERRIDES: tuple[tuple[str, str, str, type], ...] = (
    ("TRUSTSCORE_VELOCITY_LIMIT", "basic_detectors", "velocity_limit", int),
    ("TRUSTSCORE_NEW_WALLET_AGE_DAYS", "basic_detectors", "new_wallet_age_days", float),
    ("TRUSTSCORE_NEW_WALLET_VOLUME_THRESHOLD", "basic_detectors", "new_wallet_volume_threshold", float),
    ("TRUSTSCORE_CIRCULAR_FLOW_MIN_COUNT", "basic_detectors", "wash_min_repeat_count", int),
    ("TRUSTSCORE_VOLUME_SPIKE_MULTIPLIER", "basic_detectors", "volume_spike_multiplier", float),
    ("TRUSTSCORE_RETRY_SPAM_LIMIT", "basic_detectors", "retry_spam_limit", int),
    ("TRUSTSCORE_EXTENDED_VOLUME_SPIKE_MULTIPLIER", "extended_detectors", "volume_spike_multiplier", float),
    ("TRUSTSCORE_FRAUD_SCAN_INTERVAL_SEC", "scheduler", "fraud_scan_interval_sec", float),
    ("TRUSTSCORE_SCORE_UPDATE_INTERVAL_SEC", "scheduler", "score_update_interval_sec", float),
    ("TRUSTSCORE_SWEEP_TIMEOUT_SEC", "scheduler", "per_address_timeout_sec", float),
    ("TRUSTSCORE_SWEEP_CONCURRENCY", "scheduler", "sweep_concurrency", int),
    ("TRUSTSCORE_WEBHOOK_SECRET", "notifications", "webhook_secret", str),
)


def _apply_env_overrides(settings: Settings) -> Settings:
    sections: dict[str, dict[str, Any]] = {}
    for env_name, section, key, cast in _ENV_OVERRIDES:
        raw = env_str(env_name)
        if raw is None:
            continue
        try:
            sections.setdefault(section, {})[key] = cast(raw)
        except ValueError as e:
            raise InvalidInputError(f"{env_name}={raw!r} is not a valid {cast.__name__}") from e

    penalty = env_str("TRUSTSCORE_FRAUD_PENALTY_MULTIPLIER")
    if penalty is not None:
        try:
            value = float(penalty)
        except ValueError as e:
            raise InvalidInputError(f"TRUSTSCORE_FRAUD_PENALTY_MULTIPLIER={penalty!r} is not a number") from e
        sections.setdefault("service_weights", {})["fraud_penalty_multiplier"] = value
        sections.setdefault("agent_weights", {})["fraud_penalty_multiplier"] = value

    facilitators = env_list("TRUSTSCORE_FACILITATORS")
    extra = env_list("TRUSTSCORE_EXTRA_FACILITATORS")
    if facilitators is not None or extra is not None:
        base = set(facilitators) if facilitators is not None else set(settings.ingestion.facilitators)
        base |= set(extra or [])
        sections.setdefault("ingestion", {})["facilitators"] = sorted(base)

    urls = env_list("TRUSTSCORE_WEBHOOK_URLS")
    if urls is not None:
        sections.setdefault("notifications", {})["webhook_urls"] = urls

    return Settings.from_mapping(sections, base=settings) if sections else settings


def load_settings_file(path: Path, base: Settings | None = None) -> Settings:
    """Apply a JSON overrides file; missing or malformed file raises InvalidInputError."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise InvalidInputError(f"settings file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise InvalidInputError(f"settings file is not valid JSON: {path}: {e}") from e
    return Settings.from_mapping(data, base=base)


def get_settings() -> Settings:
    """
    Return validated settings from defaults, optional JSON file and env.

    Raises:
        InvalidInputError: on malformed file or out-of-range values.
    """
    load_trustscore_env()
    settings = Settings(db_path=get_db_path())
    config_path = get_config_path()
    if config_path is not None:
        settings = load_settings_file(config_path, base=settings)
    settings = _apply_env_overrides(settings)
    if os.getenv("TRUSTSCORE_DISABLE_INGEST_REFRESH", "").strip().lower() in ("1", "true", "yes"):
        settings = replace(settings, ingestion=replace(settings.ingestion, refresh_reputations_on_ingest=False))
    return settings.validate()
