from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Iterable, Mapping, Optional

from compliance_risk.core.assessment_types import FactorScore
from compliance_risk.core.errors import ConfigurationError
from compliance_risk.core.policy import EntityProfile


@dataclass(frozen=True)
class RemediationRule:
    threshold: float
    action: str


class RecommendationGenerator:
    """
    Attaches remediation text to factors scoring below their own threshold.

    Thresholds are per factor and independent of the risk-level bands.
    """

    def __init__(self, rules: Mapping[str, RemediationRule]):
        self.rules: Dict[str, RemediationRule] = dict(rules)

    @classmethod
    def from_profile(cls, profile: EntityProfile) -> "RecommendationGenerator":
        return cls(
            {
                f.name: RemediationRule(threshold=f.remediation_threshold, action=f.recommendation)
                for c in profile.categories
                for f in c.factors
            }
        )

    def rule_for(self, factor_name: str) -> RemediationRule:
        try:
            return self.rules[factor_name]
        except KeyError:
            raise ConfigurationError(f"No remediation rule for factor '{factor_name}'") from None

    def recommend(self, factor: FactorScore) -> Optional[str]:
        rule = self.rule_for(factor.name)
        pct = factor.percentage
        if pct >= rule.threshold:
            return None
        action = rule.action.rstrip(".")
        return (
            f"{factor.name}: {action}. "
            f"Currently at {pct:.1f}% of the maximum score against a {rule.threshold:g}% target."
        )

    def apply(self, factor: FactorScore) -> FactorScore:
        return replace(factor, recommendation=self.recommend(factor))

    def apply_all(self, factors: Iterable[FactorScore]) -> tuple:
        return tuple(self.apply(f) for f in factors)
