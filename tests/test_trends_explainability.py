from datetime import datetime, timedelta, timezone

from compliance_risk.core.assessment_types import CategoryScore, FactorScore, RiskAssessment, RiskLevel
from compliance_risk.engine.explainability import weakest_factors
from compliance_risk.engine.trends import latest, score_change, trend_series

T0 = datetime(2024, 5, 1, tzinfo=timezone.utc)


def _assessment(ts, score, factors=()):
    categories = (
        CategoryScore(
            category="Custody",
            score=sum(f.score for f in factors) if factors else 10.0,
            max_score=sum(f.max_score for f in factors) if factors else 20.0,
            factors=factors,
        ),
    )
    return RiskAssessment(
        entity_id="ex-1",
        entity_type="exchange",
        overall_score=score,
        risk_level=RiskLevel.MEDIUM,
        categories=categories,
        timestamp=ts,
    )


def test_trend_series_follows_history():
    history = [_assessment(T0, 60.0), _assessment(T0 + timedelta(days=1), 72.5)]

    series = trend_series(history)

    assert [p.overall_score for p in series] == [60.0, 72.5]
    assert series[1].timestamp == T0 + timedelta(days=1)
    assert latest(history) is history[-1]
    assert score_change(history) == 12.5


def test_empty_history():
    assert trend_series([]) == []
    assert latest([]) is None
    assert score_change([_assessment(T0, 50.0)]) is None


def test_weakest_factors_rank_lowest_share_first():
    factors = (
        FactorScore(name="a", score=9.0, max_score=10.0, description="a"),
        FactorScore(name="b", score=1.0, max_score=10.0, description="b", recommendation="fix b"),
        FactorScore(name="c", score=5.0, max_score=20.0, description="c"),
        FactorScore(name="d", score=1.0, max_score=10.0, description="d"),
    )

    ranked = weakest_factors(_assessment(T0, 40.0, factors), top_n=3)

    assert [r["factor"] for r in ranked] == ["b", "d", "c"]
    assert ranked[0]["recommendation"] == "fix b"
    assert ranked[0]["category"] == "Custody"
