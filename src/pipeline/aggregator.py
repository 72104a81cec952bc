"""Score aggregation: per-question grades into category, total and weighted scores.

A pure function of (answers, assessment, weights). Unanswered questions count
toward the denominator under the ``all_questions`` policy. Ungraded answers
are left out of both sides and reported as pending review. When nothing
graded is left there is no score at all: total and weighted are None.
"""

import logging

from pydantic import BaseModel, ConfigDict, Field

from src.core.schemas import CATEGORIES, AnswerRecord, Assessment, DetailedScores, SkillWeights

logger = logging.getLogger(__name__)


class AggregateScores(BaseModel):
    """Output of one aggregation run."""

    model_config = ConfigDict(frozen=True)

    total_score: float | None
    weighted_score: float | None
    detailed_scores: DetailedScores
    achieved_points: float
    max_points: float
    pending_review: list[str] = Field(default_factory=list)


def _percent(achieved: float, possible: float) -> float:
    return round(100.0 * achieved / possible, 2) if possible > 0 else 0.0


def weighted_score(
    detailed: DetailedScores,
    weights: SkillWeights,
    fallback: float | None = None,
) -> float | None:
    """Combine category scores by job weights: sum(score * w) / sum(w).

    Categories no question targeted are skipped along with their weight. If no
    weighted category remains, ``fallback`` (the total score) is returned.
    """
    numerator = 0.0
    denominator = 0.0
    for category in CATEGORIES:
        score = getattr(detailed, category)
        weight = getattr(weights, category)
        if score is None or weight <= 0:
            continue
        numerator += score * weight
        denominator += weight
    if denominator == 0:
        return None if fallback is None else round(fallback, 2)
    return round(numerator / denominator, 2)


def aggregate_scores(
    answers: list[AnswerRecord],
    assessment: Assessment,
    weights: SkillWeights,
) -> AggregateScores:
    """Aggregate graded answers for one application."""
    by_question = {a.question_id: a for a in answers}
    include_unanswered = assessment.scoring_policy == "all_questions"

    achieved = 0.0
    possible = 0.0
    cat_achieved = dict.fromkeys(CATEGORIES, 0.0)
    cat_possible = dict.fromkeys(CATEGORIES, 0.0)
    pending: list[str] = []

    for question in assessment.questions:
        record = by_question.get(question.id)
        category = question.effective_category

        if record is None:
            if not include_unanswered:
                continue
            earned = 0.0
        elif record.grade.status == "ungraded":
            pending.append(question.id)
            continue
        else:
            earned = record.grade.score or 0.0

        achieved += earned
        possible += question.points
        cat_achieved[category] += earned
        cat_possible[category] += question.points

    detailed = DetailedScores(
        **{
            c: _percent(cat_achieved[c], cat_possible[c]) if cat_possible[c] > 0 else None
            for c in CATEGORIES
        }
    )
    total = _percent(achieved, possible) if possible > 0 else None

    if pending:
        logger.debug("Aggregation left %d answers pending review", len(pending))

    return AggregateScores(
        total_score=total,
        weighted_score=weighted_score(detailed, weights, fallback=total),
        detailed_scores=detailed,
        achieved_points=round(achieved, 2),
        max_points=round(possible, 2),
        pending_review=pending,
    )
