from __future__ import annotations

import logging
from collections.abc import Mapping as MappingABC
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from compliance_risk.core.assessment_types import (
    CategoryScore,
    FactorScore,
    NormalizedFacts,
    OverallScore,
    RiskAssessment,
)
from compliance_risk.core.errors import ConfigurationError, InvalidInputError
from compliance_risk.core.policy import ScoringPolicy, policy_from_dict
from compliance_risk.engine.aggregator import CategoryAggregator, OverallAggregator
from compliance_risk.engine.classifier import RiskClassifier
from compliance_risk.engine.evaluators import CategoryPlan, build_scoring_plan
from compliance_risk.engine.recommendations import RecommendationGenerator

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CategoryAggregationComponent(Protocol):
    def aggregate(
        self,
        category: str,
        factors: Sequence[FactorScore],
        weights: Optional[Mapping[str, float]] = None,
    ) -> CategoryScore:
        raise NotImplementedError


class OverallAggregationComponent(Protocol):
    def aggregate(self, categories: Sequence[CategoryScore]) -> OverallScore:
        raise NotImplementedError


@dataclass
class AssessmentAssembler:
    """
    Turns normalized facts into a RiskAssessment in one deterministic pass.

    The policy and the clock are passed in; nothing is read from process
    state. The clock is consulted once, for the assessment timestamp.
    Policy problems surface here, at construction, as ConfigurationError.
    """

    policy: ScoringPolicy
    clock: Clock = utc_now
    category_aggregator: CategoryAggregationComponent = field(default_factory=CategoryAggregator)
    overall_aggregator: Optional[OverallAggregationComponent] = None

    def __post_init__(self) -> None:
        self.policy = policy_from_dict(self.policy.raw)
        if self.overall_aggregator is None:
            self.overall_aggregator = OverallAggregator(RiskClassifier(self.policy.thresholds()))

        self._plans: Dict[str, Tuple[CategoryPlan, ...]] = {}
        self._recommenders: Dict[str, RecommendationGenerator] = {}
        for entity_type, profile in self.policy.profiles().items():
            plans = build_scoring_plan(profile)
            for plan in plans:
                _check_weights(entity_type, plan)
            self._plans[entity_type] = plans
            self._recommenders[entity_type] = RecommendationGenerator.from_profile(profile)

    @property
    def entity_types(self) -> List[str]:
        return sorted(self._plans)

    def assemble(self, entity_id: str, entity_type: str, facts: NormalizedFacts) -> RiskAssessment:
        if not isinstance(entity_id, str) or not entity_id.strip():
            raise InvalidInputError("entity_id must be a non-empty string")
        if entity_type not in self._plans:
            raise InvalidInputError(
                f"No scoring profile for entity type '{entity_type}' "
                f"(supported: {', '.join(self.entity_types)})"
            )
        if not isinstance(facts, MappingABC):
            raise InvalidInputError("Normalized facts must be a mapping of fact name to value")

        facts = dict(facts)
        recommender = self._recommenders[entity_type]

        categories: List[CategoryScore] = []
        for plan in self._plans[entity_type]:
            factors = [recommender.apply(e.evaluate(facts)) for e in plan.evaluators]
            categories.append(self.category_aggregator.aggregate(plan.name, factors, plan.weights))

        overall = self.overall_aggregator.aggregate(categories)

        assessment = RiskAssessment(
            entity_id=entity_id,
            entity_type=entity_type,
            overall_score=overall.value,
            risk_level=overall.risk_level,
            categories=tuple(categories),
            timestamp=self.clock(),
        )
        logger.debug(
            "Assessed %s '%s': %.2f%% (%s)",
            entity_type,
            entity_id,
            assessment.overall_score,
            assessment.risk_level.value,
        )
        return assessment


def _check_weights(entity_type: str, plan: CategoryPlan) -> None:
    if plan.weights is None:
        return
    names = {e.name for e in plan.evaluators}
    unknown = sorted(set(plan.weights) - names)
    if unknown:
        raise ConfigurationError(
            f"Weight map of '{entity_type}/{plan.name}' references unknown factors: {', '.join(unknown)}"
        )
