"""Proctoring signal aggregation: behavioral telemetry into a credibility score.

Deductions are additive and capped, so the result does not depend on
delivery order. Events are deduplicated by event_id before counting.
"""

import logging
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict

from src.core.config import ProctoringConfig
from src.core.schemas import AnswerRecord, ProctoringEvent, ProctoringSummary, TimeAnalysis

logger = logging.getLogger(__name__)

MAX_CREDIBILITY = 100.0

TAB_SWITCH_KINDS = frozenset({"tab-switch", "focus-lost"})
COPY_PASTE_KINDS = frozenset({"copy-paste", "copy", "paste"})


class ProctoringResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    credibility_score: float
    summary: ProctoringSummary


def deduction_for(event: ProctoringEvent, config: ProctoringConfig) -> float:
    """Penalty for a single event under the configured policy."""
    if event.kind in TAB_SWITCH_KINDS:
        return config.tab_switch_penalty
    if event.kind in COPY_PASTE_KINDS:
        return config.copy_paste_penalty
    return getattr(config.severity_penalties, event.severity)


def distinct_events(events: Iterable[ProctoringEvent]) -> list[ProctoringEvent]:
    """One event per event_id, sorted by id. Duplicate deliveries collapse."""
    ordered = sorted(events, key=lambda e: (e.event_id, e.kind, e.severity, e.occurred_at))
    seen: dict[str, ProctoringEvent] = {}
    for event in ordered:
        seen.setdefault(event.event_id, event)
    return list(seen.values())


def aggregate_proctoring(
    events: Iterable[ProctoringEvent],
    config: ProctoringConfig,
) -> ProctoringResult:
    """Fold an attempt's events into a credibility score and summary counters."""
    tab_switches = 0
    copy_paste = 0
    suspicious = 0
    deduction = 0.0

    for event in distinct_events(events):
        if event.kind in TAB_SWITCH_KINDS:
            tab_switches += 1
        elif event.kind in COPY_PASTE_KINDS:
            copy_paste += 1
        else:
            suspicious += 1
        deduction += deduction_for(event, config)

    deduction = min(deduction, MAX_CREDIBILITY)
    flagged = (
        tab_switches > config.tab_switch_threshold
        or copy_paste > config.copy_paste_threshold
    )
    if flagged:
        logger.info(
            "Attempt flagged for review: %d tab switches, %d copy/paste events",
            tab_switches, copy_paste,
        )

    return ProctoringResult(
        credibility_score=round(MAX_CREDIBILITY - deduction, 2),
        summary=ProctoringSummary(
            tab_switches=tab_switches,
            copy_paste_events=copy_paste,
            suspicious_activities=suspicious,
            flagged_for_review=flagged,
            total_deduction=round(deduction, 2),
        ),
    )


def analyze_time_distribution(
    answers: list[AnswerRecord],
    duration_minutes: int,
    config: ProctoringConfig,
) -> TimeAnalysis:
    """Flag implausibly fast answering from per-answer time_spent values."""
    times = [a.time_spent for a in answers if a.time_spent is not None]
    if not times:
        return TimeAnalysis()

    total = sum(times)
    ratio = total / (duration_minutes * 60) if duration_minutes > 0 else None
    rapid = sum(1 for t in times if t < config.rapid_answer_seconds)

    flags: list[str] = []
    if rapid > config.rapid_answer_limit:
        flags.append("rapid_answers")
    if ratio is not None and ratio < config.early_completion_ratio:
        flags.append("early_completion")

    return TimeAnalysis(
        total_time_spent=round(total, 2),
        completion_ratio=round(ratio, 4) if ratio is not None else None,
        rapid_answers=rapid,
        flags=flags,
    )
