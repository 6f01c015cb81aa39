from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from compliance_risk.core.assessment_types import RiskAssessment, RiskLevel


@dataclass(frozen=True)
class TrendPoint:
    timestamp: datetime
    overall_score: float
    risk_level: RiskLevel


def trend_series(history: Sequence[RiskAssessment]) -> List[TrendPoint]:
    """Line series of overall score over time; history is expected in time order."""
    return [
        TrendPoint(timestamp=a.timestamp, overall_score=a.overall_score, risk_level=a.risk_level)
        for a in history
    ]


def latest(history: Sequence[RiskAssessment]) -> Optional[RiskAssessment]:
    return history[-1] if history else None


def score_change(history: Sequence[RiskAssessment]) -> Optional[float]:
    """Difference between the two most recent snapshots, None with fewer than two."""
    if len(history) < 2:
        return None
    return history[-1].overall_score - history[-2].overall_score
