from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List

import streamlit as st

SRC_PATH = Path(__file__).resolve().parents[2]
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from compliance_risk.core.assessment_engine import AssessmentAssembler
from compliance_risk.core.assessment_service import AssessmentOutcome, RiskAssessmentService
from compliance_risk.core.assessment_types import RiskAssessment, RiskLevel
from compliance_risk.core.errors import ComplianceRiskError
from compliance_risk.core.settings import load_settings
from compliance_risk.core.snapshot_store import JsonlSnapshotStore
from compliance_risk.engine.explainability import weakest_factors
from compliance_risk.engine.trends import TrendPoint, score_change, trend_series


APP_TITLE = "Compliance Risk Assessment"

LEVEL_COLORS = {
    RiskLevel.LOW: "green",
    RiskLevel.MEDIUM: "orange",
    RiskLevel.HIGH: "red",
    RiskLevel.CRITICAL: "violet",
}


def _default_input() -> Dict[str, Any]:
    return {
        "entity_id": "demo-exchange",
        "entity_type": "exchange",
        "disclosure": {
            "exchangeName": "Demo Exchange",
            "headquartersLocation": "Singapore",
            "regulatoryLicenses": "MAS DPT licence",
            "washTradingDetection": {
                "automatedBotDetection": True,
                "spoofingDetection": False,
                "timeStampGranularity": "milliseconds",
            },
            "securityMeasures": {"twoFactorAuth": True, "multiSigRequired": True},
            "riskManagement": {"marketSurveillance": True, "automatedControls": False},
            "kycVerificationMetrics": {
                "verifiedUsers": 9200,
                "nonVerifiedUsers": 800,
                "highRiskJurisdictionPercentage": 4,
            },
            "sanctionsCompliance": {"ofacCompliant": True, "fatfCompliant": True, "euCompliant": False},
            "custodyArrangements": {
                "coldStoragePercentage": 92,
                "hotWalletPercentage": 8,
                "userFundSegregation": True,
            },
            "blockchainAnalytics": {"monitoringTools": ["Chainalysis", "Elliptic"]},
        },
    }


def _build_service() -> RiskAssessmentService:
    settings = load_settings()
    return RiskAssessmentService(
        assembler=AssessmentAssembler(policy=settings.load_policy()),
        store=JsonlSnapshotStore(settings.store_dir),
    )


def _run_assessment(service: RiskAssessmentService, raw: Dict[str, Any]) -> AssessmentOutcome:
    entity_id = str(raw.get("entity_id", "")).strip()
    entity_type = str(raw.get("entity_type", "")).strip().lower()
    if "facts" in raw:
        return asyncio.run(service.assess(entity_id, entity_type, raw.get("facts") or {}))
    return asyncio.run(service.assess_disclosure(entity_id, entity_type, raw.get("disclosure") or {}))


def _render_key_points(assessment: RiskAssessment) -> List[str]:
    points: List[str] = []

    weak = [c.category for c in assessment.categories if c.percentage < 60.0]
    if weak:
        points.append("Categories below 60% of their maximum: " + ", ".join(weak))
    else:
        points.append("Every category scores at least 60% of its maximum.")

    open_items = assessment.recommendations
    if open_items:
        points.append(f"{len(open_items)} control(s) fall short of their remediation target.")
    return points


def _render_assessment(assessment: RiskAssessment) -> None:
    level = assessment.risk_level
    m1, m2, m3 = st.columns([1, 1, 2])
    m1.metric("Overall score", f"{assessment.overall_score:.1f}%")
    m2.markdown(f"**Risk level**\n\n:{LEVEL_COLORS.get(level, 'gray')}[{level.value}]")
    m3.caption(f"Assessed at {assessment.timestamp.isoformat()}")

    for p in _render_key_points(assessment):
        st.write(f"- {p}")

    st.subheader("Categories")
    for c in assessment.categories:
        st.write(f"**{c.category}**: {c.score:.1f} / {c.max_score:g}")
        st.progress(min(max(c.percentage / 100.0, 0.0), 1.0))
        with st.expander(f"{c.category} factors"):
            for f in c.factors:
                st.write(f"{f.name}: {f.score:.1f} / {f.max_score:g}. {f.description}")
                if f.recommendation:
                    st.warning(f.recommendation)

    st.subheader("Priorities")
    st.dataframe(weakest_factors(assessment, top_n=5), use_container_width=True)


def _trend_chart_data(series: List[TrendPoint]) -> Dict[str, List[Any]]:
    # Snapshots are unevenly spaced; plot against time, not row index.
    return {
        "timestamp": [p.timestamp for p in series],
        "overall score": [p.overall_score for p in series],
    }


def _render_trend(service: RiskAssessmentService, entity_id: str) -> None:
    history = asyncio.run(service.history(entity_id))
    if len(history) < 2:
        st.caption("Score trend appears once two or more snapshots are recorded.")
        return

    st.subheader("Score trend")
    st.line_chart(_trend_chart_data(trend_series(history)), x="timestamp", y="overall score")
    change = score_change(history)
    if change is not None:
        st.caption(f"Change since previous snapshot: {change:+.1f} points")


def main() -> None:
    st.set_page_config(page_title=APP_TITLE, layout="wide")
    st.title(APP_TITLE)

    with st.sidebar:
        st.subheader("Input")
        st.caption("Paste a JSON object with keys: entity_id, entity_type and disclosure (or facts)")
        st.caption("Policy and store location come from COMPLIANCE_RISK_* environment variables.")

    if "input_json" not in st.session_state:
        st.session_state.input_json = json.dumps(_default_input(), ensure_ascii=False, indent=2)

    input_text = st.text_area("Input JSON", value=st.session_state.input_json, height=360)

    c1, c2 = st.columns([1, 1])
    run = c1.button("Run assessment")
    reset = c2.button("Reset demo input")

    if reset:
        st.session_state.input_json = json.dumps(_default_input(), ensure_ascii=False, indent=2)
        st.rerun()

    if not run:
        st.info("Click Run assessment to score the disclosure.")
        return

    try:
        raw = json.loads(input_text)
    except json.JSONDecodeError as e:
        st.error(f"Invalid JSON: {e}")
        return

    try:
        service = _build_service()
        outcome = _run_assessment(service, raw)
    except ComplianceRiskError as e:
        st.error(str(e))
        return

    if not outcome.stored:
        st.warning(f"Assessment computed but snapshot not stored: {outcome.store_error}")

    _render_assessment(outcome.assessment)
    _render_trend(service, outcome.assessment.entity_id)


if __name__ == "__main__":
    main()
