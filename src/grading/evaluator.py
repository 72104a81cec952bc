"""LLM-backed evaluation of free-text (subjective) answers."""

import logging
from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict, Field

from src.core.schemas import SubjectiveQuestion
from src.llm import get_provider, parse_json_object
from src.llm.base import LLMProvider

logger = logging.getLogger(__name__)

_EVALUATOR_SYSTEM_PROMPT = (
    "You are an expert technical evaluator grading a candidate's written answer.\n\n"
    "Evaluate based on:\n"
    "  1. Correctness and accuracy\n"
    "  2. Depth of understanding\n"
    "  3. Clarity of explanation\n"
    "  4. Practical relevance\n\n"
    "If rubric criteria are given, weigh them above the general criteria.\n\n"
    "Return ONLY a JSON object (no markdown, no explanation):\n"
    '{"score": <number between 0 and the max score>, '
    '"feedback": "<2-3 sentences>", '
    '"strengths": ["..."], "improvements": ["..."], '
    '"confidence": <0.0 to 1.0>}'
)


class TextEvaluation(BaseModel):
    """Raw collaborator verdict. The grader clamps the score to the question's points."""

    model_config = ConfigDict(frozen=True)

    score: float
    feedback: str = ""
    strengths: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class TextEvaluator(ABC):
    """Scores a subjective answer. Implementations raise on any failure."""

    @abstractmethod
    def evaluate(self, question: SubjectiveQuestion, answer: str) -> TextEvaluation:
        """Return a verdict for one answer, or raise."""


def _build_user_prompt(question: SubjectiveQuestion, answer: str) -> str:
    """Assemble the evaluation request from question, rubric and answer."""
    rubric = (
        "\n".join(f"- {c}" for c in question.rubric) if question.rubric else "not specified"
    )
    return (
        f"QUESTION:\n{question.prompt}\n\n"
        f"SKILL PROBED: {question.skill or 'general'}\n"
        f"DIFFICULTY: {question.difficulty}\n"
        f"MAX SCORE: {question.points:g}\n\n"
        f"RUBRIC:\n{rubric}\n\n"
        f"CANDIDATE'S ANSWER:\n{answer}\n"
    )


def _parse_evaluation(raw_text: str) -> TextEvaluation:
    """Parse the LLM JSON response into a TextEvaluation.

    Raises ValueError on malformed response or missing score.
    """
    data = parse_json_object(raw_text)
    if "score" not in data:
        msg = "LLM response missing 'score' field"
        raise ValueError(msg)

    confidence = data.get("confidence", 0.5)
    try:
        confidence = max(0.0, min(1.0, float(confidence)))
    except (TypeError, ValueError):
        confidence = 0.5

    return TextEvaluation(
        score=float(data["score"]),
        feedback=str(data.get("feedback", "")),
        strengths=[str(s) for s in data.get("strengths") or []],
        improvements=[str(s) for s in data.get("improvements") or []],
        confidence=confidence,
    )


class LLMTextEvaluator(TextEvaluator):
    """TextEvaluator that delegates to a registered LLM provider."""

    def __init__(self, provider: LLMProvider, model: str | None = None) -> None:
        self._provider = provider
        self._model = model

    @classmethod
    def from_provider_name(cls, name: str, model: str | None = None) -> "LLMTextEvaluator":
        return cls(get_provider(name), model)

    def evaluate(self, question: SubjectiveQuestion, answer: str) -> TextEvaluation:
        prompt = _build_user_prompt(question, answer)
        raw = self._provider.complete(prompt, self._model, system=_EVALUATOR_SYSTEM_PROMPT)
        evaluation = _parse_evaluation(raw)
        logger.debug(
            "Evaluated question %s via %s: %.2f (confidence %.2f)",
            question.id, self._provider.provider_id, evaluation.score, evaluation.confidence,
        )
        return evaluation
