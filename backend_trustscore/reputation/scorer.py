"""
Reputation score computation for services (payees) and agents (payers).

Score is a pure projection of the store: aggregates from one transaction query,
the active fraud flag count, and "now" from an injectable clock. Nothing is
accumulated between runs; every calculate() overwrites the stored snapshot.

Components are linear and saturating at a reference value:
- count, volume, counterparty diversity, account age, tiered recency,
  and (agents only) payment consistency
- minus floor(severity * fraud_penalty_multiplier) per active flag
Result is rounded half up and clamped to [0, 100].
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Generic, Sequence, TypeVar

from backend_trustscore.config.settings import ReputationWeights
from backend_trustscore.database.database import Database
from backend_trustscore.database.models import (
    AgentReputation,
    Badge,
    FraudFlag,
    ServiceReputation,
    Transaction,
    TrustLevel,
)
from backend_trustscore.logging import get_logger
from backend_trustscore.utils.address_utils import normalize_address
from backend_trustscore.utils.money import to_cents

logger = get_logger(__name__)

SECONDS_PER_DAY = 86400

SnapshotT = TypeVar("SnapshotT", ServiceReputation, AgentReputation)


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def clamp_score(value: float) -> int:
    return max(0, min(100, round_half_up(value)))


def trust_level_for(score: int) -> TrustLevel:
    if score >= 85:
        return TrustLevel.EXCELLENT
    if score >= 70:
        return TrustLevel.HIGH
    if score >= 50:
        return TrustLevel.MEDIUM
    if score >= 30:
        return TrustLevel.LOW
    return TrustLevel.UNTRUSTED


def payment_reliability(account_age_days: float, count: int) -> int:
    """Consistency tier from the average number of days between payments."""
    if count <= 0:
        return 100
    avg_days_between = account_age_days / count
    if avg_days_between < 1:
        return 100
    if avg_days_between < 7:
        return 90
    if avg_days_between < 30:
        return 75
    return 50


@dataclass(frozen=True)
class AddressStats:
    """Aggregates over one side of an address's transaction history."""

    count: int
    volume: Decimal
    counterparties: int
    first_timestamp: int | None
    last_timestamp: int | None

    @classmethod
    def from_transactions(cls, transactions: Sequence[Transaction], *, counterparty: str) -> AddressStats:
        if not transactions:
            return cls(count=0, volume=Decimal("0"), counterparties=0, first_timestamp=None, last_timestamp=None)
        timestamps = [tx.timestamp for tx in transactions]
        return cls(
            count=len(transactions),
            volume=sum((tx.amount for tx in transactions), Decimal("0")),
            counterparties=len({getattr(tx, counterparty) for tx in transactions}),
            first_timestamp=min(timestamps),
            last_timestamp=max(timestamps),
        )

    def age_days(self, now: int) -> float:
        if self.first_timestamp is None:
            return 0.0
        return max(0.0, (now - self.first_timestamp) / SECONDS_PER_DAY)

    def days_since_last(self, now: int) -> float | None:
        if self.last_timestamp is None:
            return None
        return max(0.0, (now - self.last_timestamp) / SECONDS_PER_DAY)


def _linear(value: float, reference: float, max_points: float) -> float:
    return min(max_points, (value / reference) * max_points)


def base_components(stats: AddressStats, weights: ReputationWeights, now: int) -> dict[str, float]:
    """Per-component points before consistency and penalties."""
    days_since = stats.days_since_last(now)
    if days_since is not None and days_since < weights.recency_full_days:
        recency = weights.recency_full_points
    elif days_since is not None and days_since < weights.recency_partial_days:
        recency = weights.recency_partial_points
    else:
        recency = weights.recency_stale_points
    return {
        "count": _linear(stats.count, weights.count_reference, weights.count_max_points),
        "volume": _linear(float(stats.volume), weights.volume_reference, weights.volume_max_points),
        "diversity": _linear(stats.counterparties, weights.diversity_reference, weights.diversity_max_points),
        "age": _linear(stats.age_days(now), weights.age_reference_days, weights.age_max_points),
        "recency": recency,
    }


def fraud_penalty(flags: Sequence[FraudFlag], weights: ReputationWeights) -> int:
    return sum(math.floor(f.severity * weights.fraud_penalty_multiplier) for f in flags)


class ReputationScorer(Generic[SnapshotT]):
    """Shared calculate / persist / lazy-load flow for both scorer variants."""

    role = ""
    _counterparty = ""

    def __init__(
        self,
        db: Database,
        weights: ReputationWeights,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        weights.validate()
        self.db = db
        self.weights = weights
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    def _load_transactions(self, address: str) -> list[Transaction]:
        raise NotImplementedError

    def _build(self, address: str, stats: AddressStats, flags: list[FraudFlag], now: int) -> SnapshotT:
        raise NotImplementedError

    def _default(self, address: str, flags: list[FraudFlag], now: int) -> SnapshotT:
        raise NotImplementedError

    def _persist(self, snapshot: SnapshotT) -> None:
        raise NotImplementedError

    def _load(self, address: str) -> SnapshotT | None:
        raise NotImplementedError

    def calculate(self, address: str) -> SnapshotT:
        """Recompute from source, overwrite the stored snapshot, return it."""
        address = normalize_address(address)
        now = self._now()
        transactions = self._load_transactions(address)
        flags = self.db.get_active_fraud_flags(address)
        stats = AddressStats.from_transactions(transactions, counterparty=self._counterparty)
        if stats.count == 0:
            snapshot = self._default(address, flags, now)
        else:
            snapshot = self._build(address, stats, flags, now)
        self._persist(snapshot)
        logger.info(
            "reputation_calculated",
            role=self.role,
            address=address,
            score=snapshot.score,
            trust_level=snapshot.trust_level.value,
            active_fraud_flags=len(flags),
        )
        return snapshot

    def get_or_calculate(self, address: str, recalculate: bool = False) -> SnapshotT:
        """Stored snapshot if present; otherwise (or when asked) compute and store."""
        address = normalize_address(address)
        if not recalculate:
            stored = self._load(address)
            if stored is not None:
                return stored
        return self.calculate(address)


class ServiceReputationScorer(ReputationScorer[ServiceReputation]):
    """Payee-side reputation from received transactions."""

    role = "service"
    _counterparty = "from_address"

    def _load_transactions(self, address: str) -> list[Transaction]:
        return self.db.get_transactions_to(address)

    def _default(self, address: str, flags: list[FraudFlag], now: int) -> ServiceReputation:
        return ServiceReputation(
            address=address,
            score=self.weights.default_score,
            trust_level=trust_level_for(self.weights.default_score),
            badges=[Badge.NEW],
            active_fraud_flags=len(flags),
            last_updated=now,
        )

    def _build(self, address: str, stats: AddressStats, flags: list[FraudFlag], now: int) -> ServiceReputation:
        w = self.weights
        raw = sum(base_components(stats, w, now).values()) - fraud_penalty(flags, w)
        score = clamp_score(raw)
        age_days = stats.age_days(now)

        badges: list[Badge] = []
        if score >= w.verified_badge_score:
            badges.append(Badge.VERIFIED)
        if score >= w.trusted_badge_score:
            badges.append(Badge.TRUSTED)
        if age_days >= w.established_badge_days:
            badges.append(Badge.ESTABLISHED)
        if stats.count >= w.high_volume_badge_count:
            badges.append(Badge.HIGH_VOLUME)
        if not flags and age_days >= w.clean_badge_days:
            badges.append(Badge.CLEAN)
        if age_days < w.new_badge_days:
            badges.append(Badge.NEW)

        days_since = stats.days_since_last(now)
        return ServiceReputation(
            address=address,
            score=score,
            trust_level=trust_level_for(score),
            badges=badges,
            total_transactions=stats.count,
            total_volume=to_cents(stats.volume),
            unique_payers=stats.counterparties,
            account_age_days=math.floor(age_days),
            days_since_last_active=math.floor(days_since) if days_since is not None else None,
            active_fraud_flags=len(flags),
            last_updated=now,
        )

    def _persist(self, snapshot: ServiceReputation) -> None:
        self.db.upsert_service_reputation(snapshot)

    def _load(self, address: str) -> ServiceReputation | None:
        return self.db.get_service_reputation(address)


class AgentReputationScorer(ReputationScorer[AgentReputation]):
    """Payer-side reputation from sent payments, with a consistency component."""

    role = "agent"
    _counterparty = "to_address"

    def _load_transactions(self, address: str) -> list[Transaction]:
        return self.db.get_transactions_from(address)

    def _default(self, address: str, flags: list[FraudFlag], now: int) -> AgentReputation:
        return AgentReputation(
            address=address,
            score=self.weights.default_score,
            trust_level=trust_level_for(self.weights.default_score),
            badges=[Badge.NEW],
            active_fraud_flags=len(flags),
            last_updated=now,
        )

    def _build(self, address: str, stats: AddressStats, flags: list[FraudFlag], now: int) -> AgentReputation:
        w = self.weights
        age_days = stats.age_days(now)
        reliability = payment_reliability(age_days, stats.count)
        consistency = (reliability / 100) * w.consistency_max_points
        raw = sum(base_components(stats, w, now).values()) + consistency - fraud_penalty(flags, w)
        score = clamp_score(raw)

        badges: list[Badge] = []
        if score >= w.verified_badge_score:
            badges.append(Badge.VERIFIED)
        if score >= w.trusted_badge_score:
            badges.append(Badge.RELIABLE)
        if age_days >= w.established_badge_days:
            badges.append(Badge.EXPERIENCED)
        if stats.count >= w.high_volume_badge_count:
            badges.append(Badge.ACTIVE)
        if age_days < w.new_badge_days:
            badges.append(Badge.NEW)

        days_since = stats.days_since_last(now)
        return AgentReputation(
            address=address,
            score=score,
            trust_level=trust_level_for(score),
            badges=badges,
            total_payments=stats.count,
            total_spent=to_cents(stats.volume),
            unique_services=stats.counterparties,
            account_age_days=math.floor(age_days),
            days_since_last_payment=math.floor(days_since) if days_since is not None else None,
            payment_reliability=reliability,
            dispute_count=0,
            active_fraud_flags=len(flags),
            last_updated=now,
        )

    def _persist(self, snapshot: AgentReputation) -> None:
        self.db.upsert_agent_reputation(snapshot)

    def _load(self, address: str) -> AgentReputation | None:
        return self.db.get_agent_reputation(address)
