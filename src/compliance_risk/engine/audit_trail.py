from __future__ import annotations

from typing import Any, Dict, List, Mapping

from compliance_risk.core.assessment_types import RiskAssessment
from compliance_risk.core.fingerprints import build_fingerprints, hash_object
from compliance_risk.core.policy import ScoringPolicy
from compliance_risk.core.serialization import assessment_to_dict


class SnapshotAuditTrail:
    def build_audit(
        self,
        assessment: RiskAssessment,
        facts: Mapping[str, Any],
        policy: ScoringPolicy,
    ) -> Dict[str, Any]:
        fingerprint = build_fingerprints(
            facts=facts,
            policy=policy.raw,
            policy_version=policy.policy_version,
        )

        audit_entries: List[Dict[str, Any]] = []

        audit_entries.append(
            {
                "key": "overall_score",
                "value": assessment.overall_score,
            }
        )

        audit_entries.append(
            {
                "key": "risk_level",
                "value": assessment.risk_level.value,
            }
        )

        audit_entries.append(
            {
                "key": "category_scores",
                "value": {
                    c.category: {"score": c.score, "maxScore": c.max_score}
                    for c in assessment.categories
                },
            }
        )

        audit_entries.append(
            {
                "key": "recommended_controls",
                "value": [
                    f.name
                    for c in assessment.categories
                    for f in c.factors
                    if f.recommendation
                ],
            }
        )

        return {
            "audit_trail": audit_entries,
            "fingerprint": fingerprint,
            "assessment_hash": hash_object(assessment_to_dict(assessment)),
        }
