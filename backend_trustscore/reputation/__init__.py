"""
Reputation package: service/agent reputation scorers and the trust compatibility matcher.
"""

from backend_trustscore.reputation.scorer import (
    AddressStats,
    AgentReputationScorer,
    ReputationScorer,
    ServiceReputationScorer,
    clamp_score,
    payment_reliability,
    round_half_up,
    trust_level_for,
)
from backend_trustscore.reputation.trust_matcher import (
    CompatibilityAssessment,
    TrustMatcher,
    compatibility_risk,
    compatibility_score,
)

__all__ = [
    "AddressStats",
    "AgentReputationScorer",
    "ReputationScorer",
    "ServiceReputationScorer",
    "clamp_score",
    "payment_reliability",
    "round_half_up",
    "trust_level_for",
    "CompatibilityAssessment",
    "TrustMatcher",
    "compatibility_risk",
    "compatibility_score",
]
