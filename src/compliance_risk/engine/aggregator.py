from __future__ import annotations

from typing import Mapping, Optional, Sequence

from compliance_risk.core.assessment_types import CategoryScore, FactorScore, OverallScore
from compliance_risk.core.errors import ConfigurationError
from compliance_risk.engine.classifier import RiskClassifier


class CategoryAggregator:
    def aggregate(
        self,
        category: str,
        factors: Sequence[FactorScore],
        weights: Optional[Mapping[str, float]] = None,
    ) -> CategoryScore:
        """
        Combine factor scores into one category score.

        Without weights the category is the plain sum of its factors. With a
        weight map each named factor contributes (score / max_score) * weight;
        factors the map does not name carry weight 0 but stay listed, in
        evaluation order.
        """
        if not factors:
            raise ValueError(f"Category '{category}' has no factor scores")

        if weights is None:
            return CategoryScore(
                category=category,
                score=sum(f.score for f in factors),
                max_score=sum(f.max_score for f in factors),
                factors=tuple(factors),
            )

        by_name = {f.name: f for f in factors}
        unknown = sorted(set(weights) - set(by_name))
        if unknown:
            raise ConfigurationError(
                f"Weight map of '{category}' references unknown factors: {', '.join(unknown)}"
            )

        score = 0.0
        max_score = 0.0
        for name, weight in weights.items():
            f = by_name[name]
            score += (f.score / f.max_score) * float(weight)
            max_score += float(weight)

        if max_score <= 0:
            raise ConfigurationError(f"Weights of '{category}' must sum to a positive value")

        return CategoryScore(
            category=category,
            score=min(score, max_score),
            max_score=max_score,
            factors=tuple(factors),
        )


class OverallAggregator:
    def __init__(self, classifier: Optional[RiskClassifier] = None):
        self.classifier = classifier or RiskClassifier()

    def aggregate(self, categories: Sequence[CategoryScore]) -> OverallScore:
        if not categories:
            raise ValueError("Cannot compute an overall score without categories")

        total = sum(c.score for c in categories)
        total_max = sum(c.max_score for c in categories)
        if total_max <= 0:
            raise ValueError("Categories have no attainable score")

        value = min(100.0 * total / total_max, 100.0)
        return OverallScore(value=value, risk_level=self.classifier.classify(value))
