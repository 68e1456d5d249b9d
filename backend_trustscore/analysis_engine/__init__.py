"""
Analysis engine package: fraud detectors, rule sets and the fraud aggregator.

Consumes a service's received transactions from the store, applies the seven
pattern detectors through a named rule set, and produces findings, persisted
fraud flags and a fraud score.
"""

from backend_trustscore.analysis_engine.findings import Finding, clamp_severity
from backend_trustscore.analysis_engine.detectors import (
    DETECTORS,
    check_low_payer_diversity,
    check_new_wallet_risk,
    check_retry_spam,
    check_time_clustering,
    check_velocity_abuse,
    check_volume_spike,
    check_wash_trading,
)
from backend_trustscore.analysis_engine.rule_sets import (
    BASIC_FIXED_SEVERITIES,
    BasicRuleSet,
    ExtendedRuleSet,
    RuleSet,
    RuleSetResult,
    get_rule_set,
)
from backend_trustscore.analysis_engine.aggregator import (
    AnalysisSummary,
    EvaluationResult,
    FraudAggregator,
    FraudScore,
    PatternAnalysis,
    compute_fraud_score,
    risk_level_from_fraud_score,
    risk_level_from_severity,
)

__all__ = [
    "Finding",
    "clamp_severity",
    "DETECTORS",
    "check_low_payer_diversity",
    "check_new_wallet_risk",
    "check_retry_spam",
    "check_time_clustering",
    "check_velocity_abuse",
    "check_volume_spike",
    "check_wash_trading",
    "BASIC_FIXED_SEVERITIES",
    "BasicRuleSet",
    "ExtendedRuleSet",
    "RuleSet",
    "RuleSetResult",
    "get_rule_set",
    "AnalysisSummary",
    "EvaluationResult",
    "FraudAggregator",
    "FraudScore",
    "PatternAnalysis",
    "compute_fraud_score",
    "risk_level_from_fraud_score",
    "risk_level_from_severity",
]
