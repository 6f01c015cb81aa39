from datetime import datetime, timedelta, timezone

import pytest

from compliance_risk.core.assessment_engine import AssessmentAssembler
from compliance_risk.core.assessment_service import RiskAssessmentService
from compliance_risk.core.assessment_types import RiskLevel
from compliance_risk.core.errors import InvalidInputError, StoreError
from compliance_risk.core.snapshot_store import InMemorySnapshotStore, JsonlSnapshotStore


class FailingStore:
    async def append(self, entity_id, assessment, audit=None):
        raise StoreError("disk full")

    async def history(self, entity_id, time_range=None):
        return []


class TickingClock:
    def __init__(self):
        self.now = datetime(2024, 3, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.now = self.now + timedelta(hours=1)
        return self.now


@pytest.mark.asyncio
async def test_assessment_is_recorded_with_audit(small_policy, scenario_facts, fixed_clock):
    store = InMemorySnapshotStore()
    service = RiskAssessmentService(AssessmentAssembler(policy=small_policy, clock=fixed_clock), store)

    outcome = await service.assess("ex-1", "exchange", scenario_facts)

    assert outcome.stored is True
    assert outcome.store_error is None
    records = await store.records("ex-1")
    assert records[0].assessment == outcome.assessment
    assert records[0].audit["fingerprint"]["policy_version"] == "test-1"


@pytest.mark.asyncio
async def test_store_failure_still_returns_assessment(small_policy, scenario_facts, fixed_clock):
    service = RiskAssessmentService(AssessmentAssembler(policy=small_policy, clock=fixed_clock), FailingStore())

    outcome = await service.assess("ex-1", "exchange", scenario_facts)

    assert outcome.stored is False
    assert isinstance(outcome.store_error, StoreError)
    assert outcome.assessment.risk_level == RiskLevel.MEDIUM


@pytest.mark.asyncio
async def test_invalid_facts_are_not_recorded(small_policy, fixed_clock):
    store = InMemorySnapshotStore()
    service = RiskAssessmentService(AssessmentAssembler(policy=small_policy, clock=fixed_clock), store)

    with pytest.raises(InvalidInputError):
        await service.assess("ex-1", "exchange", {"cold_storage_pct": 90})

    assert await store.history("ex-1") == []


@pytest.mark.asyncio
async def test_disclosure_is_normalized_and_scored(bundled_policy, fixed_clock):
    service = RiskAssessmentService(AssessmentAssembler(policy=bundled_policy, clock=fixed_clock), InMemorySnapshotStore())
    disclosure = {
        "protocolName": "Pool",
        "security": {"auditFirms": ["A", "B", "C"], "bugBounty": True, "upgradeTimelock": True},
        "adminControls": {"multisig": True, "emergencyPause": True},
        "governance": {"topHolderVotingPercentage": 10},
        "oracles": {"redundantOracles": True, "twapPricing": True},
        "frontendSanctionsScreening": True,
    }

    outcome = await service.assess_disclosure("pool-1", "defi", disclosure)

    assert outcome.assessment.overall_score == 100.0
    assert outcome.assessment.recommendations == ()


@pytest.mark.asyncio
async def test_history_latest_and_trend(small_policy, scenario_facts):
    service = RiskAssessmentService(
        AssessmentAssembler(policy=small_policy, clock=TickingClock()), InMemorySnapshotStore()
    )
    await service.assess("ex-1", "exchange", scenario_facts)
    improved = dict(scenario_facts, sanctions_eu_compliant=True)
    await service.assess("ex-1", "exchange", improved)

    history = await service.history("ex-1")
    latest = await service.latest("ex-1")
    trend = await service.trend("ex-1")

    assert len(history) == 2
    assert latest == history[-1]
    assert [p.overall_score for p in trend] == [75.0, 87.5]
    assert trend[-1].risk_level == RiskLevel.LOW


@pytest.mark.asyncio
async def test_latest_without_history_is_none(small_policy):
    service = RiskAssessmentService(AssessmentAssembler(policy=small_policy), InMemorySnapshotStore())

    assert await service.latest("nobody") is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "content",
    [b"\xff\xfe not utf-8\n", b"[1, 2]\n", b'{"seq": "x"}\n'],
    ids=["invalid-utf8", "non-object-line", "non-numeric-seq"],
)
async def test_damaged_snapshot_file_still_returns_assessment(
    tmp_path, small_policy, scenario_facts, fixed_clock, content
):
    store = JsonlSnapshotStore(tmp_path)
    path = store.paths.snapshots_path("ex-1")
    path.parent.mkdir(parents=True)
    path.write_bytes(content)
    service = RiskAssessmentService(AssessmentAssembler(policy=small_policy, clock=fixed_clock), store)

    outcome = await service.assess("ex-1", "exchange", scenario_facts)

    assert outcome.stored is False
    assert isinstance(outcome.store_error, StoreError)
    assert outcome.assessment.overall_score == 75.0
    assert path.read_bytes() == content


@pytest.mark.asyncio
async def test_exchange_without_users_scores_zero_kyc_rate(bundled_policy, fixed_clock):
    service = RiskAssessmentService(AssessmentAssembler(policy=bundled_policy, clock=fixed_clock), InMemorySnapshotStore())
    disclosure = {
        "exchangeName": "New Venue",
        "headquartersLocation": "Tokyo, Japan",
        "regulatoryLicenses": "JFSA",
        "kycVerificationMetrics": {"verifiedUsers": 0, "nonVerifiedUsers": 0, "highRiskJurisdictionPercentage": 0},
        "custodyArrangements": {"coldStoragePercentage": 95, "hotWalletPercentage": 5, "userFundSegregation": True},
    }

    outcome = await service.assess_disclosure("new-venue", "exchange", disclosure)

    factors = {f.name: f for c in outcome.assessment.categories for f in c.factors}
    assert outcome.stored is True
    assert factors["KYC Verification Rate"].score == 0.0
    assert factors["KYC Verification Rate"].recommendation is not None


def _token_disclosure():
    return {
        "tokenName": "Example Token",
        "issuerLegalEntity": "Example Issuer Ltd",
        "whitepaperUrl": "https://example.com/whitepaper.pdf",
        "regulatoryStatus": "registered",
        "jurisdictions": [{"name": "Switzerland"}],
        "complianceContacts": [{"name": "Jane Doe", "email": "compliance@example.com"}],
        "kycRequirements": "Full KYC for all holders",
        "amlPolicyUrl": "https://example.com/aml",
        "transferRestrictions": "Transfers limited to whitelisted wallets",
        "whitelistStatus": True,
        "securityAuditDetails": {"firm": "Audit Co", "report": "https://example.com/audit.pdf"},
    }


@pytest.mark.asyncio
async def test_token_disclosure_is_scored(bundled_policy, fixed_clock):
    service = RiskAssessmentService(AssessmentAssembler(policy=bundled_policy, clock=fixed_clock), InMemorySnapshotStore())

    outcome = await service.assess_disclosure("ext", "token", _token_disclosure())

    assert outcome.assessment.entity_type == "token"
    assert outcome.assessment.overall_score == 100.0
    assert outcome.assessment.risk_level == RiskLevel.LOW
    assert outcome.assessment.recommendations == ()


@pytest.mark.asyncio
async def test_token_offered_in_high_risk_jurisdiction_loses_points(bundled_policy, fixed_clock):
    service = RiskAssessmentService(AssessmentAssembler(policy=bundled_policy, clock=fixed_clock), InMemorySnapshotStore())
    disclosure = dict(_token_disclosure(), jurisdictions=[{"name": "Switzerland"}, {"name": "Seychelles"}])

    outcome = await service.assess_disclosure("ext", "token", disclosure)

    factors = {f.name: f for c in outcome.assessment.categories for f in c.factors}
    assert factors["Jurisdiction Risk"].score == 2.0
    assert factors["Jurisdiction Risk"].recommendation is not None
    assert outcome.assessment.overall_score == pytest.approx(90.0)


@pytest.mark.asyncio
async def test_nft_marketplace_disclosure_is_scored(bundled_policy, fixed_clock):
    service = RiskAssessmentService(AssessmentAssembler(policy=bundled_policy, clock=fixed_clock), InMemorySnapshotStore())
    disclosure = {
        "marketplaceName": "Gallery",
        "jurisdiction": "United Kingdom",
        "smartContracts": {"audited": True},
        "listingPolicies": {"creatorVerification": True, "prohibitedContentPolicy": True},
        "moderationProcedures": {"takedownProcess": True, "washTradingMonitoring": False},
        "copyrightPolicies": {"claimsProcess": True},
        "amlPolicies": {"sellerKyc": True, "sanctionsScreening": True, "highValueMonitoring": True},
    }

    outcome = await service.assess_disclosure("gallery", "nft", disclosure)

    assert outcome.assessment.overall_score == pytest.approx(80.0 / 90.0 * 100.0)
    assert outcome.assessment.risk_level == RiskLevel.LOW
    assert [r.split(":")[0] for r in outcome.assessment.recommendations] == ["Wash Trading Monitoring"]


@pytest.mark.asyncio
async def test_nft_marketplace_without_aml_policies_is_rejected(bundled_policy, fixed_clock):
    store = InMemorySnapshotStore()
    service = RiskAssessmentService(AssessmentAssembler(policy=bundled_policy, clock=fixed_clock), store)

    with pytest.raises(InvalidInputError):
        await service.assess_disclosure("gallery", "nft", {"marketplaceName": "Gallery", "jurisdiction": "Japan"})

    assert await store.history("gallery") == []
