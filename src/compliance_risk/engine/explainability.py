from __future__ import annotations

from typing import Any, Dict, List

from compliance_risk.core.assessment_types import RiskAssessment


def weakest_factors(assessment: RiskAssessment, top_n: int = 5) -> List[Dict[str, Any]]:
    """Factors ranked by percentage of their maximum, lowest first; ties keep evaluation order."""
    entries: List[Dict[str, Any]] = []

    for c in assessment.categories:
        for f in c.factors:
            entries.append(
                {
                    "category": c.category,
                    "factor": f.name,
                    "percentage": f.percentage,
                    "recommendation": f.recommendation,
                }
            )

    entries.sort(key=lambda x: float(x["percentage"]))
    return entries[: max(0, int(top_n))]
