"""
Trust compatibility between a service and an agent.

Combines both reputation snapshots and the service's active fraud flag count
into a go/no-go recommendation. Pure read-combine; nothing is persisted here
(lazy snapshot computation goes through the scorers).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from backend_trustscore.database.database import Database
from backend_trustscore.database.models import AgentReputation, RiskLevel, ServiceReputation
from backend_trustscore.logging import get_logger
from backend_trustscore.reputation.scorer import (
    AgentReputationScorer,
    ServiceReputationScorer,
    round_half_up,
)

logger = get_logger(__name__)

SCORE_GAP_THRESHOLD = 30
SCORE_GAP_PENALTY = 10
FRAUD_FLAG_PENALTY = 20
RECOMMEND_MIN_SCORE = 60
HIGH_RISK_BELOW = 40
LOW_SCORE_WARNING_BELOW = 50
NEW_SERVICE_DAYS = 7

MESSAGE_RECOMMENDED = "Both parties are trustworthy. Safe to transact."
MESSAGE_CAUTION = "Exercise caution. Review warnings before proceeding."


@dataclass
class CompatibilityAssessment:
    service: ServiceReputation
    agent: AgentReputation
    service_fraud_flags: int
    score: float
    """Unrounded compatibility in [0, 100]; to_dict() reports it rounded half up."""
    recommended: bool
    risk_level: RiskLevel
    warnings: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return MESSAGE_RECOMMENDED if self.recommended else MESSAGE_CAUTION

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": {
                "address": self.service.address,
                "score": self.service.score,
                "trust_level": self.service.trust_level.value,
                "fraud_flags": self.service_fraud_flags,
            },
            "agent": {
                "address": self.agent.address,
                "score": self.agent.score,
                "trust_level": self.agent.trust_level.value,
            },
            "compatibility": {
                "score": round_half_up(self.score),
                "recommended": self.recommended,
                "risk_level": self.risk_level.value,
                "warnings": list(self.warnings),
            },
            "message": self.message,
        }


def compatibility_score(service_score: int, agent_score: int, active_flags: int) -> float:
    score = (service_score + agent_score) / 2
    if abs(service_score - agent_score) > SCORE_GAP_THRESHOLD:
        score -= SCORE_GAP_PENALTY
    if active_flags > 0:
        score -= FRAUD_FLAG_PENALTY
    return max(0.0, min(100.0, score))


def compatibility_risk(score: float, active_flags: int) -> RiskLevel:
    if score < HIGH_RISK_BELOW or active_flags > 0:
        return RiskLevel.HIGH
    if score < RECOMMEND_MIN_SCORE:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class TrustMatcher:
    def __init__(
        self,
        db: Database,
        service_scorer: ServiceReputationScorer,
        agent_scorer: AgentReputationScorer,
    ) -> None:
        self.db = db
        self.service_scorer = service_scorer
        self.agent_scorer = agent_scorer

    def assess(self, service_address: str, agent_address: str) -> CompatibilityAssessment:
        """Raises InvalidInputError if either address is malformed."""
        service = self.service_scorer.get_or_calculate(service_address)
        agent = self.agent_scorer.get_or_calculate(agent_address)
        active_flags = len(self.db.get_active_fraud_flags(service.address))

        score = compatibility_score(service.score, agent.score, active_flags)
        recommended = score >= RECOMMEND_MIN_SCORE and active_flags == 0

        warnings: list[str] = []
        if service.score < LOW_SCORE_WARNING_BELOW:
            warnings.append("Service has low reputation score")
        if agent.score < LOW_SCORE_WARNING_BELOW:
            warnings.append("Agent has low reputation score")
        if active_flags > 0:
            warnings.append(f"Service has {active_flags} active fraud alert(s)")
        if service.account_age_days < NEW_SERVICE_DAYS:
            warnings.append(f"Service is very new (less than {NEW_SERVICE_DAYS} days old)")

        assessment = CompatibilityAssessment(
            service=service,
            agent=agent,
            service_fraud_flags=active_flags,
            score=score,
            recommended=recommended,
            risk_level=compatibility_risk(score, active_flags),
            warnings=warnings,
        )
        logger.info(
            "trust_compatibility_assessed",
            service=service.address,
            agent=agent.address,
            score=score,
            recommended=recommended,
            risk_level=assessment.risk_level.value,
        )
        return assessment
