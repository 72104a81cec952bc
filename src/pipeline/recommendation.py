"""Advisory hiring recommendation from score, integrity and skill gaps.

The label never moves an application on its own; the lifecycle controller
applies the job's explicit thresholds.
"""

from pydantic import BaseModel, ConfigDict

from src.core.config import RecommendationConfig
from src.core.schemas import QualificationCriteria, RecommendationLabel, SkillGap


class Recommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: RecommendationLabel
    reasoning: str


def recommend(
    weighted_score: float | None,
    credibility_score: float,
    skill_gaps: list[SkillGap],
    criteria: QualificationCriteria,
    config: RecommendationConfig,
    *,
    pending_review: int = 0,
    similar_submissions: int = 0,
    incomplete_stages: list[str] | None = None,
) -> Recommendation:
    """Derive a label plus reasoning that names every disqualifying signal."""
    if weighted_score is None:
        return Recommendation(
            label="maybe",
            reasoning="Score unavailable: pending re-evaluation before a recommendation.",
        )

    if weighted_score < criteria.auto_reject_below and not pending_review:
        return Recommendation(
            label="no-hire",
            reasoning=(
                f"Weighted score {weighted_score:g} is below the auto-reject "
                f"threshold of {criteria.auto_reject_below:g}."
            ),
        )

    concerns: list[str] = []
    if weighted_score < criteria.minimum_score:
        concerns.append(
            f"borderline score: {weighted_score:g} is between the auto-reject threshold "
            f"{criteria.auto_reject_below:g} and the minimum {criteria.minimum_score:g}"
        )
    if credibility_score < config.integrity_floor:
        concerns.append(
            f"low integrity: credibility {credibility_score:g} is below the floor "
            f"of {config.integrity_floor:g}"
        )
    high_gaps = [g for g in skill_gaps if g.severity == "high"]
    if high_gaps:
        listed = ", ".join(f"{g.skill} ({g.actual_score:g}%)" for g in high_gaps)
        concerns.append(f"skill gap: claimed but performed poorly on {listed}")
    if pending_review:
        concerns.append(f"pending re-evaluation of {pending_review} answer(s)")
    if similar_submissions:
        concerns.append(f"coding answers closely match {similar_submissions} other submission(s)")
    if incomplete_stages:
        concerns.append(f"incomplete evaluation: {', '.join(incomplete_stages)} failed")

    if concerns:
        return Recommendation(label="maybe", reasoning="Needs review. " + "; ".join(concerns) + ".")

    if weighted_score >= config.strong_hire_score:
        return Recommendation(
            label="strong-hire",
            reasoning=(
                f"Weighted score {weighted_score:g} clears the strong-hire bar of "
                f"{config.strong_hire_score:g} with credibility {credibility_score:g} "
                "and no high-severity skill gaps."
            ),
        )
    return Recommendation(
        label="hire",
        reasoning=(
            f"Weighted score {weighted_score:g} meets the minimum of "
            f"{criteria.minimum_score:g} with credibility {credibility_score:g} "
            "and no high-severity skill gaps."
        ),
    )
