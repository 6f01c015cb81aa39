from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Type

from compliance_risk.core.assessment_types import FactorScore, FactValue, NormalizedFacts
from compliance_risk.core.errors import InvalidInputError
from compliance_risk.core.policy import CategorySpec, EntityProfile, FactorSpec


class _Absent:
    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


class FactorEvaluator:
    """
    Scores one factor from normalized facts.

    Evaluators are pure: the same facts always give the same FactorScore.
    An absent optional fact scores the evaluator's floor; an absent required
    fact raises InvalidInputError. Recommendations are attached later.
    """

    kind = ""

    def __init__(self, spec: FactorSpec):
        self.spec = spec

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def max_score(self) -> float:
        return self.spec.max_score

    def evaluate(self, facts: NormalizedFacts) -> FactorScore:
        value = self._read(facts, self.spec.facts[0])
        if value is ABSENT:
            return self._factor(self.spec.floor_score, self.spec.absent_description)
        points, shown = self._score(value)
        return self._factor(points, self.spec.description.format(value=shown))

    def _score(self, value: FactValue) -> Tuple[float, Any]:
        raise NotImplementedError

    def _read(self, facts: NormalizedFacts, key: str) -> Any:
        value = facts.get(key)
        if value is None:
            if self.spec.required:
                raise InvalidInputError(f"Missing required fact '{key}' for factor '{self.name}'")
            return ABSENT
        return value

    def _factor(self, points: float, description: str) -> FactorScore:
        points = min(max(float(points), 0.0), self.max_score)
        return FactorScore(
            name=self.name,
            score=points,
            max_score=self.max_score,
            description=description,
        )

    def _number(self, value: FactValue) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidInputError(f"Factor '{self.name}' expects a number, got {value!r}")
        out = float(value)
        if not math.isfinite(out):
            raise InvalidInputError(f"Factor '{self.name}' expects a finite number, got {value!r}")
        return out

    def _flag(self, value: FactValue, key: str) -> bool:
        if not isinstance(value, bool):
            raise InvalidInputError(f"Fact '{key}' for factor '{self.name}' must be true or false, got {value!r}")
        return value


class BooleanEvaluator(FactorEvaluator):
    kind = "boolean"

    def _score(self, value: FactValue) -> Tuple[float, Any]:
        ok = self._flag(value, self.spec.facts[0])
        return (self.max_score if ok else 0.0), ("yes" if ok else "no")


class ChecklistEvaluator(FactorEvaluator):
    """Share of controls in place; each absent optional control counts as missing."""

    kind = "checklist"

    def evaluate(self, facts: NormalizedFacts) -> FactorScore:
        if not self.spec.required and all(facts.get(k) is None for k in self.spec.facts):
            return self._factor(self.spec.floor_score, self.spec.absent_description)

        labels: Dict[str, str] = dict(self.spec.params.get("labels") or {})
        met = 0
        missing: List[str] = []
        for key in self.spec.facts:
            value = self._read(facts, key)
            if value is not ABSENT and self._flag(value, key):
                met += 1
            else:
                missing.append(labels.get(key, key))

        total = len(self.spec.facts)
        points = self.max_score * (met / total)
        description = self.spec.description.format(
            met=met,
            total=total,
            missing=", ".join(missing) if missing else "none",
        )
        return self._factor(points, description)


class LinearEvaluator(FactorEvaluator):
    """Interpolates between floor_value (no points) and ideal_value (full points)."""

    kind = "linear"

    def _score(self, value: FactValue) -> Tuple[float, Any]:
        v = self._number(value)
        lo = float(self.spec.params["floor_value"])
        hi = float(self.spec.params["ideal_value"])
        fraction = (v - lo) / (hi - lo)
        fraction = min(max(fraction, 0.0), 1.0)
        return self.max_score * fraction, v


class LadderEvaluator(FactorEvaluator):
    """Stepwise score: the first step whose lower bound the value reaches."""

    kind = "ladder"

    def __init__(self, spec: FactorSpec):
        super().__init__(spec)
        self.steps = [(float(b), float(p)) for b, p in spec.params["steps"]]
        self.below = float(spec.params.get("below", 0.0))

    def _score(self, value: FactValue) -> Tuple[float, Any]:
        v = self._number(value)
        for bound, points in self.steps:
            if v >= bound:
                return points, v
        return self.below, v


class LookupEvaluator(FactorEvaluator):
    """Discrete lookup for enumerated facts; unknown values score the default."""

    kind = "lookup"

    def __init__(self, spec: FactorSpec):
        super().__init__(spec)
        self.table = {str(k).strip().lower(): float(v) for k, v in spec.params["table"].items()}
        self.default = float(spec.params.get("default", spec.floor_score))

    def _score(self, value: FactValue) -> Tuple[float, Any]:
        if not isinstance(value, str):
            raise InvalidInputError(f"Factor '{self.name}' expects a text value, got {value!r}")
        return self.table.get(value.strip().lower(), self.default), value


EVALUATOR_KINDS: Dict[str, Type[FactorEvaluator]] = {
    cls.kind: cls
    for cls in (BooleanEvaluator, ChecklistEvaluator, LinearEvaluator, LadderEvaluator, LookupEvaluator)
}


def build_evaluator(spec: FactorSpec) -> FactorEvaluator:
    return EVALUATOR_KINDS[spec.kind](spec)


@dataclass(frozen=True)
class CategoryPlan:
    name: str
    evaluators: Tuple[FactorEvaluator, ...]
    weights: Optional[Dict[str, float]] = None


def build_category_plan(spec: CategorySpec) -> CategoryPlan:
    evaluators = tuple(build_evaluator(f) for f in spec.factors)
    return CategoryPlan(
        name=spec.name,
        evaluators=evaluators,
        weights=dict(spec.weights) if spec.weights is not None else None,
    )


def build_scoring_plan(profile: EntityProfile) -> Tuple[CategoryPlan, ...]:
    return tuple(build_category_plan(c) for c in profile.categories)
