from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from quiz_data import CATEGORY_BY_ID, CATEGORY_IDS, INTERPRETATIONS, Category, Interpretation

MIN_RATING = 1
MAX_RATING = 5
MAX_TOTAL = MAX_RATING * len(CATEGORY_IDS)

Response = Tuple[int, int, str]  # (question_id, rating, category_id)


@dataclass(frozen=True)
class DiagnosticScore:
    category_scores: Dict[str, int]
    total: int
    interpretation: Interpretation
    warnings: List[Category]
    average: float
    weakest: str
    strongest: str


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def category_scores(responses: Iterable[Response]) -> Dict[str, int]:
    """Average the ratings of every category and round the mean (ties up).

    A category without responses scores 0.
    """
    buckets: Dict[str, List[int]] = {category_id: [] for category_id in CATEGORY_IDS}
    for question_id, rating, category_id in responses:
        if category_id not in buckets:
            raise ValueError(f"Unknown category {category_id!r} for question {question_id}")
        rating = int(rating)
        if not MIN_RATING <= rating <= MAX_RATING:
            raise ValueError(f"Rating {rating} for question {question_id} is outside 1-5")
        buckets[category_id].append(rating)

    return {
        category_id: round_half_up(sum(ratings) / len(ratings)) if ratings else 0
        for category_id, ratings in buckets.items()
    }


def total_score(scores: Dict[str, int]) -> int:
    return sum(scores.get(category_id, 0) for category_id in CATEGORY_IDS)


def find_interpretation(total: int) -> Interpretation:
    if not 0 <= total <= MAX_TOTAL:
        raise ValueError(f"Total score {total} is outside 0-{MAX_TOTAL}")
    for interpretation in INTERPRETATIONS:
        if interpretation.contains(total):
            return interpretation
    raise ValueError(f"No interpretation covers total score {total}")


def interpretation_by_title(title: str | None) -> Interpretation:
    for interpretation in INTERPRETATIONS:
        if interpretation.title == title:
            return interpretation
    return INTERPRETATIONS[0]


def summarize(scores: Dict[str, int]) -> Tuple[float, str, str]:
    """Return the average category score and the weakest/strongest category ids."""
    ordered = sorted(CATEGORY_IDS, key=lambda category_id: scores.get(category_id, 0))
    average = round(sum(scores.get(category_id, 0) for category_id in CATEGORY_IDS) / len(CATEGORY_IDS), 1)
    return average, ordered[0], ordered[-1]


def category_warnings(scores: Dict[str, int]) -> List[Category]:
    return [
        CATEGORY_BY_ID[category_id]
        for category_id in CATEGORY_IDS
        if CATEGORY_BY_ID[category_id].is_warning(scores.get(category_id, 0))
    ]


def score_from_category_scores(scores: Dict[str, int]) -> DiagnosticScore:
    normalized = {category_id: int(scores.get(category_id, 0)) for category_id in CATEGORY_IDS}
    total = total_score(normalized)
    average, weakest, strongest = summarize(normalized)
    return DiagnosticScore(
        category_scores=normalized,
        total=total,
        interpretation=find_interpretation(total),
        warnings=category_warnings(normalized),
        average=average,
        weakest=weakest,
        strongest=strongest,
    )


def score_diagnostic(responses: Iterable[Response]) -> DiagnosticScore:
    return score_from_category_scores(category_scores(responses))
