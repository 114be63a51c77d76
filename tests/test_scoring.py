from __future__ import annotations

import pytest

from conftest import make_item, make_recs
from rpi_assessment.domain.models import Dimension, QuestionBank, ScaleMeta
from rpi_assessment.domain.services import (
    ScoringService,
    compute_result,
    item_contribution,
    round2,
)
from rpi_assessment.infrastructure.bank import get_default_bank


def test_two_dimensions_reverse_item_and_overall(two_dim_bank):
    result = compute_result({"q1": 6, "q2": 2}, two_dim_bank)

    assert result is not None
    assert result.dimensions == {"a": 6.0, "b": 6.0}
    assert result.overall == 6.0

    # Both qualify; ties keep bank order and each block carries two entries
    assert [b.dimension_id for b in result.recommendations] == ["a", "b"]
    assert [r.id for r in result.recommendations[0].items] == ["a_r1", "a_r2"]
    assert result.recommendations[0].dimension == "Alpha"


def test_reverse_contribution_is_an_involution():
    scale = ScaleMeta(min=1, max=7)
    item = make_item("r", "a", direction="reverse")
    for answer in range(1, 8):
        mirrored = item_contribution(item, answer, scale)
        assert scale.contains(mirrored)
        assert item_contribution(item, mirrored, scale) == answer


def test_fallback_recommends_single_entry_for_top_dimension(two_dim_bank):
    result = compute_result({"q1": 2, "q2": 7}, two_dim_bank)

    assert result.dimensions == {"a": 2.0, "b": 1.0}
    assert len(result.recommendations) == 1
    block = result.recommendations[0]
    assert block.dimension_id == "a"
    assert [r.id for r in block.items] == ["a_r1"]


def test_threshold_is_inclusive(two_dim_bank):
    result = compute_result({"q1": 4, "q2": 5}, two_dim_bank)

    assert result.dimensions == {"a": 4.0, "b": 3.0}
    assert [b.dimension_id for b in result.recommendations] == ["a"]
    assert len(result.recommendations[0].items) == 2


def test_dimension_weights_shape_overall():
    bank = QuestionBank(
        bank_id="w",
        title="",
        version="1",
        scale=ScaleMeta(),
        dimensions=(Dimension("a", "A", 2.0), Dimension("b", "B", 1.0)),
        items=(make_item("q1", "a"), make_item("q2", "b")),
    )

    result = compute_result({"q1": 6, "q2": 3}, bank)

    assert result.overall == 5.0


def test_item_weights_and_half_up_rounding():
    bank = QuestionBank(
        bank_id="w",
        title="",
        version="1",
        scale=ScaleMeta(),
        dimensions=(Dimension("a", "A"),),
        items=(make_item("q1", "a", weight=1.0), make_item("q2", "a", weight=2.0)),
    )

    result = compute_result({"q1": 1, "q2": 2}, bank)

    assert result.dimensions["a"] == 1.67
    assert round2(2.675) == 2.68
    assert round2(0.125) == 0.13


def test_missing_weight_counts_as_one_and_zero_weight_dimension_is_skipped():
    bank = QuestionBank(
        bank_id="w",
        title="",
        version="1",
        scale=ScaleMeta(),
        dimensions=(Dimension("a", "A"), Dimension("z", "Zero")),
        items=(
            make_item("q1", "a", weight=None),
            make_item("q2", "a", weight=1.0),
            make_item("q3", "z", weight=0),
        ),
    )

    result = compute_result({"q1": 2, "q2": 4, "q3": 7}, bank)

    assert result.dimensions == {"a": 3.0, "z": 0.0}
    assert result.overall == 3.0


def test_empty_bank_scores_zero():
    bank = QuestionBank(
        bank_id="e", title="", version="1", scale=ScaleMeta(), dimensions=(), items=()
    )

    result = compute_result({}, bank)

    assert result.dimensions == {}
    assert result.overall == 0.0
    assert result.recommendations == []


def test_incomplete_answers_produce_no_result(two_dim_bank):
    outcome = ScoringService().evaluate({"q1": 5}, two_dim_bank)

    assert outcome.result is None
    assert not outcome.is_complete
    assert outcome.missing == ["q2"]
    assert outcome.error.missing == ["q2"]


@pytest.mark.parametrize("bad", [0, 8, 3.5, "4", True])
def test_out_of_range_answers_are_reported_invalid(two_dim_bank, bad):
    outcome = ScoringService().evaluate({"q1": bad, "q2": 4}, two_dim_bank)

    assert outcome.result is None
    assert outcome.invalid == ["q1"]
    assert outcome.missing == []


def test_check_items_are_not_required_and_not_scored(two_dim_bank):
    with_check = compute_result({"q1": 3, "q2": 3, "q3": 1}, two_dim_bank)
    without_check = compute_result({"q1": 3, "q2": 3}, two_dim_bank)

    assert with_check.dimensions == without_check.dimensions


def test_whole_number_floats_are_accepted(two_dim_bank):
    result = compute_result({"q1": 5.0, "q2": 3}, two_dim_bank)

    assert result.dimensions["a"] == 5.0


def test_results_reflect_latest_answers(two_dim_bank):
    service = ScoringService()
    answers = {"q1": 6, "q2": 2}
    first = service.compute_result(answers, two_dim_bank)
    answers["q1"] = 1
    second = service.compute_result(answers, two_dim_bank)

    assert first.dimensions["a"] == 6.0
    assert second.dimensions["a"] == 1.0


def test_custom_threshold():
    bank = QuestionBank(
        bank_id="t",
        title="",
        version="1",
        scale=ScaleMeta(),
        dimensions=(Dimension("a", "A"),),
        items=(make_item("q1", "a"),),
        recommendations={"a": make_recs("a")},
    )

    result = ScoringService(threshold=6.0).compute_result({"q1": 5}, bank)

    # Below the raised threshold, so the fallback block applies
    assert len(result.recommendations) == 1
    assert len(result.recommendations[0].items) == 1


def test_bundled_bank_neutral_answers():
    bank = get_default_bank()
    answers = {q.id: 4 for q in bank.scored_items()}

    result = compute_result(answers, bank)

    assert set(result.dimensions) == {d.id for d in bank.dimensions}
    assert all(score == 4.0 for score in result.dimensions.values())
    assert result.overall == 4.0
    assert len(result.recommendations) == len(bank.dimensions)


def test_weighted_dimensions_with_reverse_item():
    bank = QuestionBank(
        bank_id="w",
        title="",
        version="1",
        scale=ScaleMeta(min=1, max=7),
        dimensions=(Dimension("a", "A", 1.0), Dimension("b", "B", 2.0)),
        items=(make_item("q1", "a"), make_item("q2", "b", direction="reverse")),
    )

    result = compute_result({"q1": 6, "q2": 2}, bank)

    assert result.dimensions == {"a": 6.0, "b": 6.0}
    assert result.overall == 6.0


def test_scores_stay_on_scale_for_every_answer_pair(two_dim_bank):
    for q1 in range(1, 8):
        for q2 in range(1, 8):
            result = compute_result({"q1": q1, "q2": q2}, two_dim_bank)
            assert all(1 <= score <= 7 for score in result.dimensions.values())
            assert 1 <= result.overall <= 7


def test_bundled_bank_scores_stay_on_scale_for_mixed_answers():
    bank = get_default_bank()
    items = bank.scored_items()

    for step in range(7):
        answers = {q.id: 1 + (i * step + step) % 7 for i, q in enumerate(items)}
        result = compute_result(answers, bank)
        assert all(
            bank.scale.min <= score <= bank.scale.max for score in result.dimensions.values()
        )
        assert bank.scale.min <= result.overall <= bank.scale.max
