"""Tests for ranking and filtering of judged documents."""

import pytest
from pydantic import ValidationError

from services.coach_pipeline.ResultRanker import ResultRanker
from shared.models.search import SmartSearchResult


@pytest.fixture
def ranker(helper_config):
    return ResultRanker(helper_config)


@pytest.fixture
def judged(make_handle):
    def _make(name: str, relevance: int, confidence: int) -> SmartSearchResult:
        return SmartSearchResult(document=make_handle(name), relevance_score=relevance, confidence=confidence)
    return _make


def _names(ranked):
    return [r.document.display_name for r in ranked.results]


def test_confidence_reweights_ordering(ranker, judged):
    ranked = ranker.rank_and_filter([judged("a.pdf", 80, 50), judged("b.pdf", 50, 90)])

    assert _names(ranked) == ["b.pdf", "a.pdf"]
    assert [r.relevance_score for r in ranked.results] == [45, 40]
    assert ranked.meta.highest_score == 45
    assert ranked.meta.average_confidence == 70


def test_floor_is_exclusive(ranker, judged):
    ranked = ranker.rank_and_filter([judged("low.pdf", 20, 50), judged("edge.pdf", 22, 50)])

    # 20 * 0.5 = 10 is not above the floor, 22 * 0.5 = 11 is
    assert _names(ranked) == ["edge.pdf"]
    assert ranked.results[0].relevance_score == 11


def test_rescaled_score_rounds_half_up(ranker, judged):
    ranked = ranker.rank_and_filter([judged("half.pdf", 45, 50)])

    assert ranked.results[0].relevance_score == 23


def test_ties_break_on_confidence_then_input_order(ranker, judged):
    ranked = ranker.rank_and_filter([
        judged("first.pdf", 60, 50),
        judged("confident.pdf", 30, 100),
        judged("second.pdf", 60, 50),
    ])

    # all rescale to 30
    assert _names(ranked) == ["confident.pdf", "first.pdf", "second.pdf"]


def test_zero_relevance_never_survives(ranker, judged):
    ranked = ranker.rank_and_filter([judged("zero.pdf", 0, 100), judged("ok.pdf", 70, 70)])

    assert _names(ranked) == ["ok.pdf"]


def test_empty_and_fully_filtered_inputs(ranker, judged):
    for results in ([], [judged("weak.pdf", 15, 40)]):
        ranked = ranker.rank_and_filter(results)
        assert ranked.results == []
        assert ranked.meta.average_confidence == 0
        assert ranked.meta.highest_score == 0


def test_input_is_not_modified(ranker, judged):
    original = judged("a.pdf", 80, 50)

    ranker.rank_and_filter([original])

    assert original.relevance_score == 80


def test_floor_is_configurable(helper_config, judged, monkeypatch):
    monkeypatch.setenv("COACH_RELEVANCE_FLOOR", "40")
    ranker = ResultRanker(helper_config)

    ranked = ranker.rank_and_filter([judged("a.pdf", 80, 50), judged("b.pdf", 90, 50)])

    assert _names(ranked) == ["b.pdf"]


def test_judgement_caps_sections_and_key_points(make_handle):
    SmartSearchResult(
        document=make_handle("a.pdf"),
        relevance_score=70,
        confidence=70,
        relevant_sections=["1", "2", "3"],
        key_points=["1", "2", "3", "4", "5"],
    )

    with pytest.raises(ValidationError):
        SmartSearchResult(document=make_handle("a.pdf"), relevance_score=70, confidence=70, key_points=["x"] * 6)
    with pytest.raises(ValidationError):
        SmartSearchResult(document=make_handle("a.pdf"), relevance_score=70, confidence=70, relevant_sections=["x"] * 4)
