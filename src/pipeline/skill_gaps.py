"""Reconcile resume-claimed skills against measured per-skill performance.

A claimed skill that no question assessed yields no entry: absence of evidence
is not a gap.
"""

import logging

from src.core.config import SkillGapConfig
from src.core.schemas import AnswerRecord, Assessment, SkillGap

logger = logging.getLogger(__name__)

_SEVERITY_ORDER = {"high": 0, "medium": 1, "none": 2}


def normalize_skill(skill: str) -> str:
    return " ".join(skill.lower().split())


def skill_performance(
    answers: list[AnswerRecord],
    assessment: Assessment,
) -> dict[str, tuple[str, float]]:
    """Percentage achieved per assessed skill.

    Returns normalized skill -> (display name, percent). Scoring follows the
    assessment's policy for unanswered questions; ungraded answers are skipped.
    """
    by_question = {a.question_id: a for a in answers}
    include_unanswered = assessment.scoring_policy == "all_questions"
    totals: dict[str, list[float]] = {}
    names: dict[str, str] = {}

    for question in assessment.questions:
        key = normalize_skill(question.skill)
        if not key:
            continue
        record = by_question.get(question.id)
        if record is None:
            if not include_unanswered:
                continue
            earned = 0.0
        elif record.grade.status == "ungraded":
            continue
        else:
            earned = record.grade.score or 0.0

        names.setdefault(key, question.skill.strip())
        achieved, possible = totals.get(key, [0.0, 0.0])
        totals[key] = [achieved + earned, possible + question.points]

    return {
        key: (names[key], round(100.0 * achieved / possible, 2))
        for key, (achieved, possible) in totals.items()
        if possible > 0
    }


def reconcile_skill_gaps(
    claimed_skills: list[str],
    performance: dict[str, tuple[str, float]],
    config: SkillGapConfig,
) -> list[SkillGap]:
    """Compare claims to performance. Ordered by severity, then weakest first."""
    claimed = {normalize_skill(s): s.strip() for s in claimed_skills if s.strip()}
    gaps: list[SkillGap] = []

    for key, (assessed_name, actual) in performance.items():
        if key in claimed:
            if actual < config.low_threshold:
                severity, flag = "high", "claims-skill-performs-poorly"
            elif actual < config.moderate_threshold:
                severity, flag = "medium", "claimed-skill-below-expectation"
            else:
                continue
            gaps.append(
                SkillGap(
                    skill=claimed[key],
                    claimed=True,
                    actual_score=actual,
                    severity=severity,
                    flag=flag,
                )
            )
        elif config.surface_unclaimed and actual >= config.moderate_threshold:
            gaps.append(
                SkillGap(
                    skill=assessed_name,
                    claimed=False,
                    actual_score=actual,
                    severity="none",
                    flag="demonstrated-unclaimed-skill",
                )
            )

    gaps.sort(key=lambda g: (_SEVERITY_ORDER[g.severity], g.actual_score, g.skill.lower()))
    high = sum(1 for g in gaps if g.severity == "high")
    if high:
        logger.debug("Skill reconciliation found %d high-severity gaps", high)
    return gaps
