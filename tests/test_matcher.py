import pytest

from netbirdsync.utils.matcher import (
    MISMATCH_PENALTY,
    Criterion,
    CriterionKind,
    FilterCriteria,
    contribution,
    evaluate,
    score,
)
from netbirdsync.utils.tristate import TriState

EQ = CriterionKind.EQUALS
ALL = CriterionKind.CONTAINS_ALL


def test_contribution_values():
    cand = {"name": "x", "groups": ["g1", "g2"]}
    assert contribution(cand, Criterion("name")) == 0
    assert contribution(cand, Criterion("name", TriState.known("x"))) == 1
    assert contribution(cand, Criterion("name", TriState.known("y"))) == MISMATCH_PENALTY
    assert contribution(cand, Criterion("groups", TriState.known(["g2"]), ALL)) == 1
    assert contribution(cand, Criterion("groups", TriState.known(["g3"]), ALL)) == MISMATCH_PENALTY


def test_contains_all_edge_cases():
    cand = {"groups": None, "labels": ["a"]}
    assert contribution(cand, Criterion("groups", TriState.known([]), ALL)) == 1
    assert contribution(cand, Criterion("groups", TriState.known(["g1"]), ALL)) == MISMATCH_PENALTY
    # a bare string is one required member, not a sequence of characters
    assert contribution(cand, Criterion("labels", TriState.known("a"), ALL)) == 1


def test_extractor_applies_before_comparison():
    crit = Criterion("groups", TriState.known(["g1"]), ALL, extract=lambda gs: [g["id"] for g in gs])
    assert contribution({"groups": [{"id": "g1", "name": "devs"}]}, crit) == 1


def test_unknown_attribute_on_candidate_raises():
    with pytest.raises(KeyError):
        evaluate({"name": "x"}, FilterCriteria.build({"ip": EQ}, {"ip": "10.0.0.1"}))


def test_unset_criterion_never_reads_candidate():
    assert evaluate({}, FilterCriteria.build({"ip": EQ}, {})).matched == 0


@pytest.mark.parametrize("n", [1, 2, 10, 100])
def test_single_mismatch_dominates(n):
    kinds = {f"a{i}": EQ for i in range(n)}
    selector = {f"a{i}": i for i in range(n)}
    cand = dict(selector)
    cand["a0"] = "other"
    criteria = FilterCriteria.build(kinds, selector)
    assert score(cand, criteria) < 0
    outcome = evaluate(cand, criteria)
    assert outcome.mismatched == 1 and not outcome.selected


def test_outcome_selected_needs_a_match():
    criteria = FilterCriteria.build({"name": EQ, "ip": EQ}, {"name": "x"})
    assert evaluate({"name": "x", "ip": "1"}, criteria).selected
    assert evaluate({"name": "x", "ip": "1"}, criteria).score == 1
    assert not evaluate({"name": "x", "ip": "1"}, FilterCriteria.build({"name": EQ}, {})).selected


def test_build_rejects_unknown_selector_key():
    with pytest.raises(KeyError):
        FilterCriteria.build({"name": EQ}, {"colour": "red"})


def test_build_keeps_kind_order_and_known_values():
    criteria = FilterCriteria.build({"id": EQ, "name": EQ}, {"name": None})
    assert [c.attribute for c in criteria] == ["id", "name"]
    assert criteria.known_count == 1
    assert criteria.known == {"name": None}
