"""Cross-candidate code similarity for coding answers within one job.

Code is normalized before comparison (comments and docstrings removed,
whitespace collapsed, lowercased), so a copy that only differs in formatting
still matches. Scores are symmetric: a pair compares the same either way round.
"""

import logging
import re
from collections.abc import Iterable
from difflib import SequenceMatcher

from src.core.config import SimilarityConfig
from src.core.schemas import Application, CodingAnswer, SimilarityLevel, SimilarityMatch

logger = logging.getLogger(__name__)

CRITICAL_SIMILARITY = 0.9
HIGH_SIMILARITY = 0.8

_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_DOCSTRING = re.compile(r'""".*?"""|' + r"'''.*?'''", re.DOTALL)
_LINE_COMMENT = re.compile(r"(//|#).*$", re.MULTILINE)
_WHITESPACE = re.compile(r"\s+")


def normalize_code(code: str) -> str:
    code = _BLOCK_COMMENT.sub("", code)
    code = _DOCSTRING.sub("", code)
    code = _LINE_COMMENT.sub("", code)
    return _WHITESPACE.sub(" ", code).strip().lower()


def code_similarity(a: str, b: str) -> float:
    """Similarity ratio in [0, 1] of two normalized sources."""
    left, right = sorted((normalize_code(a), normalize_code(b)))
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    return SequenceMatcher(None, left, right, autojunk=False).ratio()


def similarity_level(score: float) -> SimilarityLevel:
    if score > CRITICAL_SIMILARITY:
        return "critical"
    if score > HIGH_SIMILARITY:
        return "high"
    return "medium"


def sort_matches(matches: Iterable[SimilarityMatch]) -> list[SimilarityMatch]:
    return sorted(matches, key=lambda m: (-m.similarity, m.question_id, m.other_application_id))


def _coding_answers(app: Application, min_length: int) -> dict[str, str]:
    return {
        record.question_id: record.payload.code
        for record in app.answers
        if isinstance(record.payload, CodingAnswer)
        and len(normalize_code(record.payload.code)) >= min_length
    }


def find_similar_submissions(
    app: Application,
    others: Iterable[Application],
    config: SimilarityConfig,
) -> list[SimilarityMatch]:
    """Coding answers of ``app`` that closely match another candidate's answer
    to the same question. Only scores strictly above the threshold are reported.
    """
    own = _coding_answers(app, config.min_code_length)
    if not own:
        return []

    matches: list[SimilarityMatch] = []
    for other in others:
        if other.id == app.id:
            continue
        for question_id, code in _coding_answers(other, config.min_code_length).items():
            mine = own.get(question_id)
            if mine is None:
                continue
            score = code_similarity(mine, code)
            if score > config.threshold:
                matches.append(
                    SimilarityMatch(
                        question_id=question_id,
                        other_application_id=other.id,
                        similarity=round(score, 2),
                        level=similarity_level(score),
                    )
                )

    if matches:
        logger.debug("Application %s: %d similar coding submissions", app.id, len(matches))
    return sort_matches(matches)
