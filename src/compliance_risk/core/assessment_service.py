from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from compliance_risk.core.assessment_engine import AssessmentAssembler
from compliance_risk.core.assessment_types import NormalizedFacts, RiskAssessment
from compliance_risk.core.errors import StoreError
from compliance_risk.core.snapshot_store import SnapshotStore, TimeRange
from compliance_risk.domain.normalizers import DEFAULT_NORMALIZERS, FactNormalizer, get_normalizer
from compliance_risk.engine.audit_trail import SnapshotAuditTrail
from compliance_risk.engine.trends import TrendPoint, latest, trend_series

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssessmentOutcome:
    """
    A computed assessment plus the result of recording it.

    The assessment is valid whether or not the snapshot was stored.
    """

    assessment: RiskAssessment
    stored: bool
    store_error: Optional[StoreError] = None


@dataclass
class RiskAssessmentService:
    assembler: AssessmentAssembler
    store: SnapshotStore
    normalizers: Mapping[str, FactNormalizer] = field(default_factory=lambda: dict(DEFAULT_NORMALIZERS))
    audit: Optional[SnapshotAuditTrail] = field(default_factory=SnapshotAuditTrail)

    async def assess(self, entity_id: str, entity_type: str, facts: NormalizedFacts) -> AssessmentOutcome:
        assessment = self.assembler.assemble(entity_id, entity_type, facts)

        audit = None
        if self.audit is not None:
            audit = self.audit.build_audit(assessment, facts, self.assembler.policy)

        try:
            await self.store.append(entity_id, assessment, audit)
        except StoreError as exc:
            logger.warning("Snapshot for '%s' was not stored: %s", entity_id, exc)
            return AssessmentOutcome(assessment=assessment, stored=False, store_error=exc)

        return AssessmentOutcome(assessment=assessment, stored=True)

    async def assess_disclosure(
        self,
        entity_id: str,
        entity_type: str,
        disclosure: Mapping[str, Any],
    ) -> AssessmentOutcome:
        facts = get_normalizer(entity_type, self.normalizers).normalize(disclosure)
        return await self.assess(entity_id, entity_type, facts)

    async def history(self, entity_id: str, time_range: Optional[TimeRange] = None) -> List[RiskAssessment]:
        return await self.store.history(entity_id, time_range)

    async def latest(self, entity_id: str) -> Optional[RiskAssessment]:
        return latest(await self.store.history(entity_id))

    async def trend(self, entity_id: str, time_range: Optional[TimeRange] = None) -> List[TrendPoint]:
        return trend_series(await self.store.history(entity_id, time_range))
