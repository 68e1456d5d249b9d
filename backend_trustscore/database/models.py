"""
Domain models for database entities.

Transactions (immutable payment facts), fraud flags (persisted findings with a
resolution lifecycle), and the materialized service/agent reputation snapshots.
Used by the repository layer; no ORM coupling so backends stay swappable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any


class FraudType(str, Enum):
    """The seven fraud signatures the rule engine can report."""

    VELOCITY_ABUSE = "velocity_abuse"
    NEW_WALLET_RISK = "new_wallet_risk"
    WASH_TRADING = "wash_trading"
    VOLUME_SPIKE = "volume_spike"
    RETRY_SPAM = "retry_spam"
    LOW_PAYER_DIVERSITY = "low_payer_diversity"
    TIME_CLUSTERING = "time_clustering"


class TrustLevel(str, Enum):
    EXCELLENT = "excellent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNTRUSTED = "untrusted"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Badge(str, Enum):
    VERIFIED = "VERIFIED"
    TRUSTED = "TRUSTED"
    RELIABLE = "RELIABLE"
    ESTABLISHED = "ESTABLISHED"
    EXPERIENCED = "EXPERIENCED"
    HIGH_VOLUME = "HIGH_VOLUME"
    ACTIVE = "ACTIVE"
    CLEAN = "CLEAN"
    NEW = "NEW"


@dataclass(frozen=True)
class Transaction:
    """Single payment fact. Created once by ingestion; never mutated or deleted."""

    tx_hash: str
    from_address: str
    to_address: str
    amount: Decimal
    """Token units (USDC), non-negative."""
    block_number: int
    timestamp: int
    """Unix seconds from the block; monotonic per chain, not per insertion order."""
    facilitator_address: str | None = None
    nonce: str | None = None
    """Authorization nonce; (from_address, nonce) is unique for legitimate traffic."""
    id: int | None = None
    created_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "from_address": self.from_address,
            "to_address": self.to_address,
            "amount": str(self.amount),
            "block_number": self.block_number,
            "timestamp": self.timestamp,
            "facilitator_address": self.facilitator_address,
            "nonce": self.nonce,
        }


@dataclass
class FraudFlag:
    """A persisted finding against a service address."""

    subject_address: str
    flag_type: FraudType
    severity: int
    """1-10."""
    details: dict[str, Any] = field(default_factory=dict)
    is_resolved: bool = False
    created_at: int | None = None
    resolved_at: int | None = None
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "subject_address": self.subject_address,
            "flag_type": self.flag_type.value,
            "severity": self.severity,
            "details": self.details,
            "is_resolved": self.is_resolved,
            "created_at": self.created_at,
            "resolved_at": self.resolved_at,
        }


@dataclass
class ServiceReputation:
    """Materialized reputation of a payee (service). Overwritten on every recompute."""

    address: str
    score: int
    trust_level: TrustLevel
    badges: list[Badge]
    total_transactions: int = 0
    total_volume: Decimal = Decimal("0")
    unique_payers: int = 0
    account_age_days: int = 0
    days_since_last_active: int | None = None
    active_fraud_flags: int = 0
    last_updated: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "reputation_score": self.score,
            "trust_level": self.trust_level.value,
            "badges": [b.value for b in self.badges],
            "total_transactions": self.total_transactions,
            "total_volume": str(self.total_volume),
            "unique_payers": self.unique_payers,
            "account_age_days": self.account_age_days,
            "days_since_last_active": self.days_since_last_active,
            "active_fraud_flags": self.active_fraud_flags,
            "last_updated": self.last_updated,
        }


@dataclass
class AgentReputation:
    """Materialized reputation of a payer (agent). Overwritten on every recompute."""

    address: str
    score: int
    trust_level: TrustLevel
    badges: list[Badge]
    total_payments: int = 0
    total_spent: Decimal = Decimal("0")
    unique_services: int = 0
    account_age_days: int = 0
    days_since_last_payment: int | None = None
    payment_reliability: int = 100
    dispute_count: int = 0
    active_fraud_flags: int = 0
    last_updated: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "reputation_score": self.score,
            "trust_level": self.trust_level.value,
            "badges": [b.value for b in self.badges],
            "total_payments": self.total_payments,
            "total_spent": str(self.total_spent),
            "unique_services": self.unique_services,
            "account_age_days": self.account_age_days,
            "days_since_last_payment": self.days_since_last_payment,
            "payment_reliability": self.payment_reliability,
            "dispute_count": self.dispute_count,
            "active_fraud_flags": self.active_fraud_flags,
            "last_updated": self.last_updated,
        }


@dataclass
class WebhookSubscription:
    """A webhook URL registered to receive one service's fraud alerts."""

    service_address: str
    url: str
    is_active: bool = True
    failure_count: int = 0
    last_triggered_at: int | None = None
    created_at: int | None = None
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "service_address": self.service_address,
            "url": self.url,
            "is_active": self.is_active,
            "failure_count": self.failure_count,
            "last_triggered_at": self.last_triggered_at,
            "created_at": self.created_at,
        }
