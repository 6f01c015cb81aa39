from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from compliance_risk.core.assessment_types import (
    CategoryScore,
    FactorScore,
    RiskAssessment,
    RiskLevel,
)
from compliance_risk.core.fingerprints import stable_serialize


def factor_to_dict(f: FactorScore) -> Dict[str, Any]:
    return {
        "name": f.name,
        "score": f.score,
        "maxScore": f.max_score,
        "description": f.description,
        "recommendation": f.recommendation,
    }


def category_to_dict(c: CategoryScore) -> Dict[str, Any]:
    return {
        "category": c.category,
        "score": c.score,
        "maxScore": c.max_score,
        "factors": [factor_to_dict(f) for f in c.factors],
    }


def assessment_to_dict(a: RiskAssessment) -> Dict[str, Any]:
    """Rendered contract consumed by the dashboard and the portal front end."""
    return {
        "entityId": a.entity_id,
        "entityType": a.entity_type,
        "overallScore": a.overall_score,
        "riskLevel": a.risk_level.value,
        "categories": [category_to_dict(c) for c in a.categories],
        "timestamp": a.timestamp.isoformat(),
    }


def assessment_to_json(a: RiskAssessment) -> str:
    return stable_serialize(assessment_to_dict(a))


def assessment_from_dict(raw: Dict[str, Any]) -> RiskAssessment:
    try:
        return RiskAssessment(
            entity_id=str(raw["entityId"]),
            entity_type=str(raw["entityType"]),
            overall_score=float(raw["overallScore"]),
            risk_level=RiskLevel(raw["riskLevel"]),
            categories=tuple(
                CategoryScore(
                    category=str(c["category"]),
                    score=float(c["score"]),
                    max_score=float(c["maxScore"]),
                    factors=tuple(
                        FactorScore(
                            name=str(f["name"]),
                            score=float(f["score"]),
                            max_score=float(f["maxScore"]),
                            description=str(f["description"]),
                            recommendation=f.get("recommendation"),
                        )
                        for f in c["factors"]
                    ),
                )
                for c in raw["categories"]
            ),
            timestamp=datetime.fromisoformat(str(raw["timestamp"])),
        )
    except (KeyError, TypeError, AttributeError) as exc:
        raise ValueError(f"Malformed assessment record: {exc}") from exc
