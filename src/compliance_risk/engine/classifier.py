from __future__ import annotations

from typing import Optional

from compliance_risk.core.assessment_types import RiskLevel
from compliance_risk.core.errors import ConfigurationError
from compliance_risk.core.policy import RiskThresholds


class RiskClassifier:
    """
    Maps an overall percentage to a risk level.

    Each threshold is an inclusive lower bound on the unrounded percentage:
    >= low is Low, >= medium is Medium, >= high is High, anything else is
    Critical.
    """

    def __init__(self, thresholds: Optional[RiskThresholds] = None):
        self.thresholds = thresholds or RiskThresholds()
        t = self.thresholds

        if not (100.0 >= t.low > t.medium > t.high > 0.0):
            raise ConfigurationError(
                "Invalid risk thresholds: require 100 >= low > medium > high > 0"
            )

    def classify(self, percentage: float) -> RiskLevel:
        p = float(percentage)
        t = self.thresholds

        if p >= t.low:
            return RiskLevel.LOW
        if p >= t.medium:
            return RiskLevel.MEDIUM
        if p >= t.high:
            return RiskLevel.HIGH
        return RiskLevel.CRITICAL
