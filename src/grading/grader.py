"""Question grader: scores one answer against one question, per question type.

Objective answers are graded locally and deterministically. Subjective and
coding answers go through external collaborators under a bounded timeout.
Collaborator failures never become a silent zero: subjective answers come
back ``ungraded`` (score None) and coding answers ``execution_failed`` with
the reason recorded. Nothing here persists; the caller owns storage.
"""

import asyncio
import logging

from src.core.errors import InvalidAnswerError
from src.core.schemas import (
    AnswerPayload,
    CodingAnswer,
    CodingQuestion,
    EvaluationMetadata,
    GradeResult,
    ObjectiveAnswer,
    ObjectiveQuestion,
    Question,
    SubjectiveAnswer,
    SubjectiveQuestion,
)
from src.grading.evaluator import TextEvaluator
from src.grading.executor import CodeExecutor

logger = logging.getLogger(__name__)


def _clamp(value: float, upper: float) -> float:
    return round(max(0.0, min(upper, value)), 2)


def validate_answer(question: Question, payload: AnswerPayload) -> None:
    """Reject answers whose tag or shape does not fit the question."""
    if question.type != payload.type:
        msg = f"question {question.id} expects a {question.type} answer, got {payload.type}"
        raise InvalidAnswerError(msg)
    if isinstance(question, CodingQuestion) and isinstance(payload, CodingAnswer):
        allowed = {lang.lower() for lang in question.languages}
        if allowed and payload.language.lower() not in allowed:
            msg = (
                f"language '{payload.language}' not allowed for question {question.id}; "
                f"expected one of {sorted(allowed)}"
            )
            raise InvalidAnswerError(msg)


def grade_objective(question: ObjectiveQuestion, answer: ObjectiveAnswer) -> GradeResult:
    """Exact match on the correct option index. Binary: full points or zero."""
    is_correct = answer.selected_option == question.correct_option
    return GradeResult(
        status="graded",
        score=question.points if is_correct else 0.0,
        max_score=question.points,
        is_correct=is_correct,
    )


def _ungraded(question: Question, reason: str) -> GradeResult:
    return GradeResult(
        status="ungraded",
        score=None,
        max_score=question.points,
        metadata=EvaluationMetadata(graded_by="collaborator", failure_reason=reason),
    )


async def grade_subjective(
    question: SubjectiveQuestion,
    answer: SubjectiveAnswer,
    evaluator: TextEvaluator | None,
    timeout_s: float,
) -> GradeResult:
    """Delegate to the text evaluator; clamp its score to [0, points]."""
    if not answer.text.strip():
        return GradeResult(
            status="graded",
            score=0.0,
            max_score=question.points,
            metadata=EvaluationMetadata(feedback="No answer provided."),
        )
    if evaluator is None:
        return _ungraded(question, "no text evaluator configured")

    try:
        evaluation = await asyncio.wait_for(
            asyncio.to_thread(evaluator.evaluate, question, answer.text),
            timeout=timeout_s,
        )
    except TimeoutError:
        logger.warning(
            "Evaluator timed out after %.1fs on question %s; left ungraded",
            timeout_s, question.id,
        )
        return _ungraded(question, f"evaluator timed out after {timeout_s:g}s")
    except Exception as e:
        logger.warning(
            "Evaluator failed on question %s; left ungraded", question.id, exc_info=True,
        )
        return _ungraded(question, f"evaluator error: {e}")

    return GradeResult(
        status="graded",
        score=_clamp(evaluation.score, question.points),
        max_score=question.points,
        metadata=EvaluationMetadata(
            graded_by="collaborator",
            feedback=evaluation.feedback,
            strengths=evaluation.strengths,
            improvements=evaluation.improvements,
            confidence=evaluation.confidence,
        ),
    )


def _execution_failed(question: CodingQuestion, reason: str) -> GradeResult:
    return GradeResult(
        status="execution_failed",
        score=0.0,
        max_score=question.points,
        metadata=EvaluationMetadata(
            graded_by="executor",
            tests_passed=0,
            tests_total=len(question.test_cases),
            failure_reason=reason,
        ),
    )


async def grade_coding(
    question: CodingQuestion,
    answer: CodingAnswer,
    executor: CodeExecutor | None,
    timeout_s: float,
) -> GradeResult:
    """Fractional score: points * passed / total test cases."""
    if executor is None:
        return _execution_failed(question, "no code executor configured")

    try:
        outcomes = await asyncio.wait_for(
            asyncio.to_thread(
                executor.run,
                answer.code,
                answer.language,
                list(question.test_cases),
                question.time_limit_s,
            ),
            timeout=timeout_s,
        )
    except TimeoutError:
        logger.warning(
            "Executor timed out after %.1fs on question %s", timeout_s, question.id,
        )
        return _execution_failed(question, f"executor timed out after {timeout_s:g}s")
    except Exception as e:
        logger.warning("Executor failed on question %s", question.id, exc_info=True)
        return _execution_failed(question, f"executor error: {e}")

    total = len(question.test_cases)
    if len(outcomes) != total:
        return _execution_failed(
            question, f"executor returned {len(outcomes)} results for {total} test cases",
        )

    passed = sum(1 for o in outcomes if o.passed)
    return GradeResult(
        status="graded",
        score=_clamp(question.points * passed / total, question.points),
        max_score=question.points,
        metadata=EvaluationMetadata(
            graded_by="executor",
            tests_passed=passed,
            tests_total=total,
        ),
    )


async def grade_answer(
    question: Question,
    payload: AnswerPayload,
    *,
    evaluator: TextEvaluator | None = None,
    executor: CodeExecutor | None = None,
    evaluator_timeout_s: float = 30.0,
    executor_timeout_s: float = 20.0,
) -> GradeResult:
    """Grade one answer, dispatching on the question/answer type tag."""
    validate_answer(question, payload)

    if isinstance(question, ObjectiveQuestion) and isinstance(payload, ObjectiveAnswer):
        return grade_objective(question, payload)
    if isinstance(question, SubjectiveQuestion) and isinstance(payload, SubjectiveAnswer):
        return await grade_subjective(question, payload, evaluator, evaluator_timeout_s)
    if isinstance(question, CodingQuestion) and isinstance(payload, CodingAnswer):
        return await grade_coding(question, payload, executor, executor_timeout_s)

    msg = f"unsupported question type '{question.type}'"
    raise InvalidAnswerError(msg)


def manual_grade(question: Question, score: float, feedback: str = "") -> GradeResult:
    """A recruiter's grade, clamped to the question's points."""
    return GradeResult(
        status="graded",
        score=_clamp(score, question.points),
        max_score=question.points,
        is_correct=None,
        metadata=EvaluationMetadata(graded_by="manual", feedback=feedback),
    )
