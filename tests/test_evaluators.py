import math

import pytest
from hypothesis import given, settings
import hypothesis.strategies as st

from compliance_risk.core.errors import InvalidInputError
from compliance_risk.core.policy import FactorSpec
from compliance_risk.engine.evaluators import (
    BooleanEvaluator,
    ChecklistEvaluator,
    LadderEvaluator,
    LinearEvaluator,
    LookupEvaluator,
    build_evaluator,
)


def _spec(kind, facts, max_score=10.0, required=False, floor_score=0.0, description="{value}", **params):
    return FactorSpec(
        name="Factor",
        kind=kind,
        facts=tuple(facts),
        max_score=max_score,
        remediation_threshold=80.0,
        recommendation="Improve",
        description=description,
        absent_description="Not disclosed",
        required=required,
        floor_score=floor_score,
        params=params,
    )


def test_linear_interpolates_and_clamps():
    ev = LinearEvaluator(_spec("linear", ["x"], floor_value=0, ideal_value=100))

    assert ev.evaluate({"x": 50}).score == 5.0
    assert ev.evaluate({"x": 150}).score == 10.0
    assert ev.evaluate({"x": -20}).score == 0.0


def test_linear_supports_descending_scale():
    ev = LinearEvaluator(_spec("linear", ["x"], max_score=5.0, floor_value=25, ideal_value=0))

    assert ev.evaluate({"x": 0}).score == 5.0
    assert ev.evaluate({"x": 25}).score == 0.0
    assert ev.evaluate({"x": 40}).score == 0.0


def test_ladder_uses_first_step_reached():
    ev = LadderEvaluator(
        _spec("ladder", ["cold"], steps=[[95, 10], [90, 8], [80, 6]], below=4)
    )

    assert ev.evaluate({"cold": 97}).score == 10.0
    assert ev.evaluate({"cold": 95}).score == 10.0
    assert ev.evaluate({"cold": 90}).score == 8.0
    assert ev.evaluate({"cold": 85}).score == 6.0
    assert ev.evaluate({"cold": 10}).score == 4.0


def test_lookup_is_case_insensitive_with_default():
    ev = LookupEvaluator(
        _spec("lookup", ["tier"], table={"low": 10, "medium": 6, "high": 2}, default=2, floor_score=2)
    )

    assert ev.evaluate({"tier": "LOW"}).score == 10.0
    assert ev.evaluate({"tier": " medium "}).score == 6.0
    assert ev.evaluate({"tier": "unknown"}).score == 2.0
    assert ev.evaluate({}).score == 2.0


def test_lookup_rejects_non_text():
    ev = LookupEvaluator(_spec("lookup", ["tier"], table={"low": 10}))

    with pytest.raises(InvalidInputError):
        ev.evaluate({"tier": 3})


def test_boolean_scores_all_or_nothing():
    ev = BooleanEvaluator(_spec("boolean", ["flag"], description="Enabled: {value}"))

    yes = ev.evaluate({"flag": True})
    no = ev.evaluate({"flag": False})

    assert yes.score == 10.0
    assert yes.description == "Enabled: yes"
    assert no.score == 0.0


def test_boolean_rejects_non_bool():
    ev = BooleanEvaluator(_spec("boolean", ["flag"]))

    with pytest.raises(InvalidInputError):
        ev.evaluate({"flag": "yes"})


def test_checklist_counts_met_items_and_lists_missing():
    ev = ChecklistEvaluator(
        _spec(
            "checklist",
            ["a", "b", "c"],
            max_score=15.0,
            description="{met}/{total} (missing: {missing})",
            labels={"b": "Bravo"},
        )
    )

    result = ev.evaluate({"a": True, "b": False})

    assert result.score == pytest.approx(5.0)
    assert result.description == "1/3 (missing: Bravo, c)"


def test_checklist_all_absent_scores_floor():
    ev = ChecklistEvaluator(_spec("checklist", ["a", "b"], floor_score=1.0, description="{met}/{total} {missing}"))

    result = ev.evaluate({})

    assert result.score == 1.0
    assert result.description == "Not disclosed"


def test_absent_optional_fact_scores_floor():
    ev = LinearEvaluator(_spec("linear", ["x"], floor_score=2.0, floor_value=0, ideal_value=100))

    assert ev.evaluate({}).score == 2.0
    assert ev.evaluate({"x": None}).description == "Not disclosed"


def test_absent_required_fact_is_rejected():
    ev = LinearEvaluator(_spec("linear", ["x"], required=True, floor_value=0, ideal_value=100))

    with pytest.raises(InvalidInputError):
        ev.evaluate({"other": 1})


@pytest.mark.parametrize("bad", [True, "50", math.nan, math.inf])
def test_numeric_factors_reject_ill_formed_values(bad):
    ev = LinearEvaluator(_spec("linear", ["x"], floor_value=0, ideal_value=100))

    with pytest.raises(InvalidInputError):
        ev.evaluate({"x": bad})


def test_build_evaluator_picks_kind():
    ev = build_evaluator(_spec("ladder", ["n"], steps=[[3, 10], [1, 4]]))

    assert isinstance(ev, LadderEvaluator)


@given(
    value=st.floats(allow_nan=False, allow_infinity=False, min_value=-1e9, max_value=1e9),
    max_score=st.floats(min_value=0.5, max_value=50.0),
)
@settings(max_examples=60, deadline=None)
def test_linear_score_stays_within_bounds(value, max_score):
    ev = LinearEvaluator(_spec("linear", ["x"], max_score=max_score, floor_value=10, ideal_value=90))

    result = ev.evaluate({"x": value})

    assert 0.0 <= result.score <= result.max_score


@given(flags=st.lists(st.one_of(st.booleans(), st.none()), min_size=1, max_size=6))
@settings(max_examples=60, deadline=None)
def test_checklist_score_stays_within_bounds(flags):
    keys = [f"k{i}" for i in range(len(flags))]
    ev = ChecklistEvaluator(_spec("checklist", keys, max_score=7.0, description="{met}/{total} {missing}"))

    result = ev.evaluate(dict(zip(keys, flags)))

    assert 0.0 <= result.score <= 7.0
