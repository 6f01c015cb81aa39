from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple, Union


FactValue = Union[bool, int, float, str, None]
NormalizedFacts = Mapping[str, FactValue]


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def severity(self) -> int:
        return _SEVERITY[self.value]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.severity < other.severity

    def __le__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.severity <= other.severity

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.severity > other.severity

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.severity >= other.severity


_SEVERITY: Dict[str, int] = {"Low": 0, "Medium": 1, "High": 2, "Critical": 3}


def _check_bounds(label: str, score: float, max_score: float) -> None:
    if not math.isfinite(score) or not math.isfinite(max_score):
        raise ValueError(f"{label}: score and max_score must be finite")
    if max_score <= 0:
        raise ValueError(f"{label}: max_score must be positive, got {max_score}")
    if score < 0 or score > max_score:
        raise ValueError(f"{label}: score {score} outside [0, {max_score}]")


@dataclass(frozen=True)
class FactorScore:
    name: str
    score: float
    max_score: float
    description: str
    recommendation: Optional[str] = None

    def __post_init__(self) -> None:
        _check_bounds(f"factor '{self.name}'", self.score, self.max_score)

    @property
    def percentage(self) -> float:
        return self.score / self.max_score * 100.0


@dataclass(frozen=True)
class CategoryScore:
    category: str
    score: float
    max_score: float
    factors: Tuple[FactorScore, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        _check_bounds(f"category '{self.category}'", self.score, self.max_score)
        object.__setattr__(self, "factors", tuple(self.factors))

    @property
    def percentage(self) -> float:
        return self.score / self.max_score * 100.0


@dataclass(frozen=True)
class OverallScore:
    value: float
    risk_level: RiskLevel


@dataclass(frozen=True)
class RiskAssessment:
    """
    One immutable snapshot of an entity's risk.

    Identity is (entity_id, timestamp). A re-assessment is a new record.
    """

    entity_id: str
    entity_type: str
    overall_score: float
    risk_level: RiskLevel
    categories: Tuple[CategoryScore, ...]
    timestamp: datetime

    def __post_init__(self) -> None:
        if self.timestamp.tzinfo is None or self.timestamp.utcoffset() is None:
            raise ValueError("RiskAssessment.timestamp must be timezone-aware")
        if not 0.0 <= self.overall_score <= 100.0:
            raise ValueError(f"overall_score {self.overall_score} outside [0, 100]")
        object.__setattr__(self, "categories", tuple(self.categories))

    @property
    def identity(self) -> Tuple[str, datetime]:
        return (self.entity_id, self.timestamp)

    @property
    def recommendations(self) -> Tuple[str, ...]:
        return tuple(
            f.recommendation
            for c in self.categories
            for f in c.factors
            if f.recommendation
        )
