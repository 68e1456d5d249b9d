"""
Finding: one detector's positive output for one evaluation run.

Every finding is tied to a fraud type and carries the evidence (thresholds vs
actual values) plus human-readable description, explanation and recommendation
so downstream consumers and reviewers can interpret it.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from backend_trustscore.database.models import FraudType

MIN_SEVERITY = 1
MAX_SEVERITY = 10


def clamp_severity(value: float) -> int:
    """Integer severity in [1, 10]."""
    return max(MIN_SEVERITY, min(MAX_SEVERITY, int(value)))


@dataclass(frozen=True)
class Finding:
    """Single explainable fraud finding."""

    type: FraudType
    severity: int
    details: dict[str, Any] = field(default_factory=dict)
    """Thresholds and actual values used; for auditing and explainability."""
    description: str = ""
    explanation: str = ""
    recommendation: str = ""

    def with_severity(self, severity: int) -> Finding:
        return replace(self, severity=clamp_severity(severity))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "severity": self.severity,
            "description": self.description,
            "details": self.details,
            "explanation": self.explanation,
            "recommendation": self.recommendation,
        }
