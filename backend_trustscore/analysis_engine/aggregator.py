"""
Fraud aggregator: run a rule set for a service, persist findings as flags, score.

- evaluate(): alerting path. Basic rule set, every finding appended as a new
  FraudFlag (never upserted), one notify() per stored flag.
- analyze(): advisory path. Extended rule set, read-only, findings sorted by
  severity with a derived overall risk tier.
- get_fraud_score(): pure over stored unresolved flags; no detector runs.

Transactions for one call come from a single store query so every detector
sees the same snapshot.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Iterator

from backend_trustscore.alerts.notifier import Notifier, NullNotifier
from backend_trustscore.analysis_engine.findings import Finding
from backend_trustscore.analysis_engine.rule_sets import RuleSet, get_rule_set
from backend_trustscore.config.settings import Settings
from backend_trustscore.core.exceptions import PersistenceError
from backend_trustscore.database.database import Database
from backend_trustscore.database.models import FraudFlag, RiskLevel
from backend_trustscore.logging import get_logger
from backend_trustscore.utils.address_utils import normalize_address
from backend_trustscore.utils.money import to_cents

logger = get_logger(__name__)

SECONDS_PER_DAY = 86400
FRAUD_SCORE_PENALTY_PER_SEVERITY = 10

NO_TRANSACTIONS_RECOMMENDATION = "No transactions to analyze"
_RISK_RECOMMENDATIONS = {
    RiskLevel.CRITICAL: "Immediate investigation and potential suspension recommended",
    RiskLevel.HIGH: "Enhanced monitoring and verification required",
    RiskLevel.MEDIUM: "Monitor closely and consider additional verification",
    RiskLevel.LOW: "Continue normal monitoring",
}


def risk_level_from_severity(max_severity: int) -> RiskLevel:
    """Overall analysis tier from the highest finding severity."""
    if max_severity >= 8:
        return RiskLevel.CRITICAL
    if max_severity >= 6:
        return RiskLevel.HIGH
    if max_severity >= 4:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def risk_level_from_fraud_score(score: int) -> RiskLevel:
    if score < 30:
        return RiskLevel.CRITICAL
    if score < 50:
        return RiskLevel.HIGH
    if score < 70:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def compute_fraud_score(severities: list[int]) -> int:
    """100 minus 10 points per severity point, clamped to [0, 100]."""
    penalty = sum(s * FRAUD_SCORE_PENALTY_PER_SEVERITY for s in severities)
    return max(0, min(100, 100 - penalty))


@dataclass
class EvaluationResult:
    """
    Outcome of one alerting evaluation.

    Iterates as the list of findings; failed_detectors and persistence_errors
    report what was isolated during the run.
    """

    address: str
    findings: list[Finding] = field(default_factory=list)
    failed_detectors: list[str] = field(default_factory=list)
    flags_created: int = 0
    persistence_errors: list[str] = field(default_factory=list)

    def __iter__(self) -> Iterator[Finding]:
        return iter(self.findings)

    def __len__(self) -> int:
        return len(self.findings)

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "findings": [f.to_dict() for f in self.findings],
            "failed_detectors": list(self.failed_detectors),
            "flags_created": self.flags_created,
            "persistence_errors": list(self.persistence_errors),
        }


@dataclass
class AnalysisSummary:
    total_patterns: int
    risk_level: RiskLevel
    recommendation: str
    max_severity: int
    analysis_timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_patterns": self.total_patterns,
            "risk_level": self.risk_level.value,
            "recommendation": self.recommendation,
            "max_severity": self.max_severity,
            "analysis_timestamp": self.analysis_timestamp,
        }


@dataclass
class PatternAnalysis:
    """Advisory seven-pattern report for one service address."""

    address: str
    patterns: list[Finding]
    summary: AnalysisSummary
    total_transactions: int = 0
    total_volume: Decimal = Decimal("0.00")
    account_age_days: int = 0
    unique_payers: int = 0
    failed_detectors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "total_transactions": self.total_transactions,
            "total_volume": str(self.total_volume),
            "account_age_days": self.account_age_days,
            "unique_payers": self.unique_payers,
            "patterns": [p.to_dict() for p in self.patterns],
            "summary": self.summary.to_dict(),
            "failed_detectors": list(self.failed_detectors),
        }


@dataclass
class FraudScore:
    score: int
    risk_level: RiskLevel
    active_flags: int
    active_flags_list: list[FraudFlag] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "risk_level": self.risk_level.value,
            "active_flags": self.active_flags,
            "active_flags_list": [f.to_dict() for f in self.active_flags_list],
        }


class FraudAggregator:
    """Runs rule sets against the store and manages the fraud flag side effects."""

    def __init__(
        self,
        db: Database,
        settings: Settings | None = None,
        *,
        notifier: Notifier | None = None,
        clock: Callable[[], float] = time.time,
        alerting_rule_set: RuleSet | None = None,
        analysis_rule_set: RuleSet | None = None,
    ) -> None:
        self.settings = (settings or Settings()).validate()
        self.db = db
        self.notifier = notifier or NullNotifier()
        self._clock = clock
        self.alerting_rule_set = alerting_rule_set or get_rule_set(self.settings.alerting_rule_set, self.settings)
        self.analysis_rule_set = analysis_rule_set or get_rule_set(self.settings.analysis_rule_set, self.settings)

    def _now(self) -> int:
        return int(self._clock())

    def evaluate(self, address: str) -> EvaluationResult:
        """
        Run the alerting rule set and append a flag per finding.

        Raises InvalidInputError for a malformed address and PersistenceError if the
        transaction read fails. Flag write and notifier failures are isolated.
        """
        address = normalize_address(address)
        now = self._now()
        transactions = self.db.get_transactions_to(address)
        run = self.alerting_rule_set.run(transactions, now, address=address)
        result = EvaluationResult(
            address=address,
            findings=run.findings,
            failed_detectors=run.failed_detectors,
        )
        for finding in run.findings:
            flag = FraudFlag(
                subject_address=address,
                flag_type=finding.type,
                severity=finding.severity,
                details=finding.details,
                created_at=now,
            )
            try:
                flag_id = self.db.insert_fraud_flag(flag)
            except PersistenceError as e:
                logger.error(
                    "fraud_flag_store_failed",
                    address=address,
                    flag_type=finding.type.value,
                    error=str(e),
                )
                result.persistence_errors.append(f"{finding.type.value}: {e}")
                continue
            result.flags_created += 1
            logger.warning(
                "fraud_flag_stored",
                address=address,
                flag_id=flag_id,
                flag_type=finding.type.value,
                severity=finding.severity,
            )
            self._notify(address, finding)
        logger.info(
            "fraud_evaluation_complete",
            address=address,
            transactions=len(transactions),
            findings=len(result.findings),
            flags_created=result.flags_created,
            failed_detectors=result.failed_detectors,
        )
        return result

    def _notify(self, address: str, finding: Finding) -> None:
        try:
            self.notifier.notify(address, finding)
        except Exception as e:
            logger.warning(
                "fraud_notify_failed",
                address=address,
                flag_type=finding.type.value,
                error=str(e),
            )

    def analyze(self, address: str) -> PatternAnalysis:
        """Read-only seven-pattern analysis; never writes flags."""
        address = normalize_address(address)
        now = self._now()
        timestamp = datetime.fromtimestamp(now, tz=timezone.utc).isoformat()
        transactions = self.db.get_transactions_to(address)
        if not transactions:
            return PatternAnalysis(
                address=address,
                patterns=[],
                summary=AnalysisSummary(
                    total_patterns=0,
                    risk_level=RiskLevel.LOW,
                    recommendation=NO_TRANSACTIONS_RECOMMENDATION,
                    max_severity=0,
                    analysis_timestamp=timestamp,
                ),
            )

        run = self.analysis_rule_set.run(transactions, now, address=address)
        patterns = sorted(run.findings, key=lambda f: f.severity, reverse=True)
        max_severity = max((f.severity for f in patterns), default=0)
        risk_level = risk_level_from_severity(max_severity)
        recommendation = _RISK_RECOMMENDATIONS[risk_level] if patterns else "No suspicious patterns detected"
        earliest = min(tx.timestamp for tx in transactions)
        total_volume = sum((tx.amount for tx in transactions), Decimal("0"))
        return PatternAnalysis(
            address=address,
            patterns=patterns,
            summary=AnalysisSummary(
                total_patterns=len(patterns),
                risk_level=risk_level,
                recommendation=recommendation,
                max_severity=max_severity,
                analysis_timestamp=timestamp,
            ),
            total_transactions=len(transactions),
            total_volume=to_cents(total_volume),
            account_age_days=max(0, math.floor((now - earliest) / SECONDS_PER_DAY)),
            unique_payers=len({tx.from_address for tx in transactions}),
            failed_detectors=run.failed_detectors,
        )

    def get_fraud_score(self, address: str) -> FraudScore:
        """Score from unresolved flags only. Unknown address scores 100 / low."""
        address = normalize_address(address)
        flags = self.db.get_active_fraud_flags(address)
        score = compute_fraud_score([f.severity for f in flags])
        return FraudScore(
            score=score,
            risk_level=risk_level_from_fraud_score(score),
            active_flags=len(flags),
            active_flags_list=flags,
        )
