import pytest

from quiz_data import CATEGORY_IDS, DIAGNOSTIC_QUESTIONS, INTERPRETATIONS
from scoring import (
    MAX_TOTAL,
    category_scores,
    find_interpretation,
    interpretation_by_title,
    round_half_up,
    score_diagnostic,
    score_from_category_scores,
    summarize,
)


def _responses(ratings_by_category):
    return [
        (question.id, ratings_by_category[question.category], question.category)
        for question in DIAGNOSTIC_QUESTIONS
    ]


def test_uniform_ratings_give_expected_total_and_band():
    score = score_diagnostic(_responses({"data": 4, "processes": 2, "people": 5, "results": 4}))

    assert score.category_scores == {"data": 4, "processes": 2, "people": 5, "results": 4}
    assert score.total == 15
    assert score.interpretation.level == "ready"
    assert [category.id for category in score.warnings] == ["processes"]
    assert score.weakest == "processes"
    assert score.strongest == "people"
    assert score.average == 3.8


def test_category_mean_rounds_half_up():
    responses = [(1, 1, "data"), (2, 2, "data"), (3, 3, "data"), (4, 4, "data")]
    assert category_scores(responses)["data"] == 3
    assert round_half_up(2.5) == 3
    assert round_half_up(3.49) == 3
    assert round_half_up(1.75) == 2


def test_category_without_responses_scores_zero():
    scores = category_scores([(1, 5, "data")])
    assert scores == {"data": 5, "processes": 0, "people": 0, "results": 0}


def test_rating_outside_scale_is_rejected():
    with pytest.raises(ValueError):
        category_scores([(1, 6, "data")])
    with pytest.raises(ValueError):
        category_scores([(1, 0, "data")])


def test_unknown_category_is_rejected():
    with pytest.raises(ValueError):
        category_scores([(1, 3, "finance")])


@pytest.mark.parametrize("total", range(0, MAX_TOTAL + 1))
def test_every_total_maps_to_exactly_one_band(total):
    matching = [interpretation for interpretation in INTERPRETATIONS if interpretation.contains(total)]
    assert len(matching) == 1
    expected = "high-risk" if total <= 8 else "preparation" if total <= 14 else "ready"
    assert find_interpretation(total).level == expected


@pytest.mark.parametrize("total", [-1, MAX_TOTAL + 1])
def test_total_outside_range_is_rejected(total):
    with pytest.raises(ValueError):
        find_interpretation(total)


def test_warning_thresholds_per_category():
    score = score_from_category_scores({"data": 3, "processes": 3, "people": 2, "results": 4})
    assert [category.id for category in score.warnings] == ["data", "people"]


def test_ties_keep_category_order():
    average, weakest, strongest = summarize({category_id: 3 for category_id in CATEGORY_IDS})
    assert average == 3.0
    assert weakest == "data"
    assert strongest == "results"



def test_interpretation_by_title_falls_back_to_first_band():
    ready = INTERPRETATIONS[-1]
    assert interpretation_by_title(ready.title) is ready
    assert interpretation_by_title("unknown") is INTERPRETATIONS[0]


def test_mixed_ratings_round_per_category():
    ratings = {"data": [4, 5, 3, 4], "processes": [2, 2, 3, 1], "people": [5, 5, 4, 5], "results": [3, 4, 3, 4]}
    responses = []
    for category_id, values in ratings.items():
        questions = [question for question in DIAGNOSTIC_QUESTIONS if question.category == category_id]
        responses.extend((question.id, value, category_id) for question, value in zip(questions, values))

    score = score_diagnostic(responses)
    assert score.category_scores == {"data": 4, "processes": 2, "people": 5, "results": 4}
    assert score.total == 15
    assert score.interpretation.level == "ready"
