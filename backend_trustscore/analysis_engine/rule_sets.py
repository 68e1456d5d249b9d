"""
Named detector strategies.

BasicRuleSet: detectors 1-5 with fixed per-type severities (the alerting path).
ExtendedRuleSet: all seven detectors with scaled severities (the advisory path).

A run never raises because of a detector: each call is isolated, failures are
logged and reported by name in RuleSetResult.failed_detectors.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Sequence

from backend_trustscore.analysis_engine.detectors import DETECTORS, Detector
from backend_trustscore.analysis_engine.findings import Finding
from backend_trustscore.config.settings import (
    RULE_SET_BASIC,
    RULE_SET_EXTENDED,
    DetectorConfig,
    Settings,
)
from backend_trustscore.core.exceptions import DetectorFailure, InvalidInputError
from backend_trustscore.database.models import FraudType, Transaction
from backend_trustscore.logging import get_logger

logger = get_logger(__name__)

BASIC_FIXED_SEVERITIES: dict[FraudType, int] = {
    FraudType.VELOCITY_ABUSE: 8,
    FraudType.NEW_WALLET_RISK: 7,
    FraudType.WASH_TRADING: 9,
    FraudType.VOLUME_SPIKE: 6,
    FraudType.RETRY_SPAM: 5,
}


@dataclass
class RuleSetResult:
    """Findings of one rule-set run plus the detectors that raised."""

    findings: list[Finding] = field(default_factory=list)
    failed_detectors: list[str] = field(default_factory=list)
    failures: list[DetectorFailure] = field(default_factory=list)


class RuleSet:
    """Ordered set of detectors sharing one threshold config."""

    name: str = ""
    detector_types: tuple[FraudType, ...] = ()

    def __init__(self, config: DetectorConfig, detectors: dict[FraudType, Detector] | None = None) -> None:
        config.validate()
        self.config = config
        registry = detectors if detectors is not None else DETECTORS
        self._detectors: list[tuple[FraudType, Detector]] = [(t, registry[t]) for t in self.detector_types]

    def severity_for(self, finding: Finding) -> int:
        return finding.severity

    def run(
        self,
        transactions: Sequence[Transaction],
        now: int | None = None,
        *,
        address: str | None = None,
    ) -> RuleSetResult:
        now = int(time.time()) if now is None else int(now)
        result = RuleSetResult()
        for fraud_type, detector in self._detectors:
            try:
                finding = detector(transactions, self.config, now)
            except Exception as e:
                failure = DetectorFailure(fraud_type.value, e)
                logger.error(
                    "detector_failed",
                    rule_set=self.name,
                    detector=fraud_type.value,
                    address=address,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                result.failed_detectors.append(fraud_type.value)
                result.failures.append(failure)
                continue
            if finding is None:
                continue
            severity = self.severity_for(finding)
            if severity != finding.severity:
                finding = finding.with_severity(severity)
            result.findings.append(finding)
        logger.debug(
            "rule_set_run",
            rule_set=self.name,
            address=address,
            transactions=len(transactions),
            findings=len(result.findings),
            failed=len(result.failed_detectors),
        )
        return result


class BasicRuleSet(RuleSet):
    """Five alerting detectors; fixed severity per fraud type."""

    name = RULE_SET_BASIC
    detector_types = (
        FraudType.VELOCITY_ABUSE,
        FraudType.NEW_WALLET_RISK,
        FraudType.WASH_TRADING,
        FraudType.VOLUME_SPIKE,
        FraudType.RETRY_SPAM,
    )

    def severity_for(self, finding: Finding) -> int:
        return BASIC_FIXED_SEVERITIES[finding.type]


class ExtendedRuleSet(RuleSet):
    """All seven detectors; severities scale with signal strength."""

    name = RULE_SET_EXTENDED
    detector_types = tuple(FraudType)


def get_rule_set(name: str, settings: Settings) -> RuleSet:
    """Build the named rule set with its own threshold section from settings."""
    if name == RULE_SET_BASIC:
        return BasicRuleSet(settings.basic_detectors)
    if name == RULE_SET_EXTENDED:
        return ExtendedRuleSet(settings.extended_detectors)
    raise InvalidInputError(f"unknown rule set: {name!r}")
