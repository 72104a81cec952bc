"""Tests for score aggregation: category percentages, weighting, pending review."""

from src.core.schemas import (
    AnswerRecord,
    Assessment,
    DetailedScores,
    GradeResult,
    ObjectiveAnswer,
    ObjectiveQuestion,
    SkillWeights,
    SubjectiveAnswer,
    SubjectiveQuestion,
)
from src.pipeline.aggregator import aggregate_scores, weighted_score


def _q(qid: str, category: str, points: float = 10) -> ObjectiveQuestion:
    return ObjectiveQuestion(
        id=qid, prompt="Pick", options=["a", "b"], correct_option=0, points=points, category=category
    )


def _graded(qid: str, score: float, max_score: float = 10) -> AnswerRecord:
    return AnswerRecord(
        question_id=qid,
        payload=ObjectiveAnswer(selected_option=0),
        grade=GradeResult(status="graded", score=score, max_score=max_score),
    )


def _ungraded(qid: str) -> AnswerRecord:
    return AnswerRecord(
        question_id=qid,
        payload=SubjectiveAnswer(text="essay"),
        grade=GradeResult(status="ungraded", score=None, max_score=10),
    )


class TestWeightedScore:
    def test_example_weighting(self) -> None:
        detailed = DetailedScores(technical=80, problem_solving=60, communication=90)
        weights = SkillWeights(technical=50, problem_solving=30, communication=20)
        assert weighted_score(detailed, weights) == 76.0

    def test_missing_category_drops_its_weight(self) -> None:
        detailed = DetailedScores(technical=80, problem_solving=60)
        weights = SkillWeights(technical=50, problem_solving=30, communication=20)
        # (80*50 + 60*30) / 80
        assert weighted_score(detailed, weights) == 72.5

    def test_zero_weights_fall_back_to_total(self) -> None:
        detailed = DetailedScores(coding=40)
        weights = SkillWeights(technical=50, problem_solving=30, communication=20, coding=0)
        assert weighted_score(detailed, weights, fallback=55.5) == 55.5

    def test_nothing_weighted_and_no_fallback_is_none(self) -> None:
        assert weighted_score(DetailedScores(), SkillWeights()) is None


class TestAggregateScores:
    def test_category_breakdown_and_total(self) -> None:
        assessment = Assessment(
            questions=[
                _q("t1", "technical"),
                _q("t2", "technical"),
                _q("p1", "problem_solving"),
                _q("c1", "communication"),
            ]
        )
        answers = [_graded("t1", 10), _graded("t2", 6), _graded("p1", 6), _graded("c1", 9)]
        result = aggregate_scores(answers, assessment, SkillWeights())

        assert result.detailed_scores.technical == 80.0
        assert result.detailed_scores.problem_solving == 60.0
        assert result.detailed_scores.communication == 90.0
        assert result.detailed_scores.coding is None
        assert result.total_score == 77.5
        assert result.weighted_score == 76.0
        assert result.max_points == 40.0

    def test_unanswered_counts_under_all_questions(self) -> None:
        assessment = Assessment(questions=[_q("t1", "technical"), _q("t2", "technical")])
        result = aggregate_scores([_graded("t1", 10)], assessment, SkillWeights())
        assert result.total_score == 50.0

    def test_unanswered_skipped_under_answered_questions(self) -> None:
        assessment = Assessment(
            questions=[_q("t1", "technical"), _q("t2", "technical")],
            scoring_policy="answered_questions",
        )
        result = aggregate_scores([_graded("t1", 10)], assessment, SkillWeights())
        assert result.total_score == 100.0

    def test_ungraded_excluded_and_listed(self) -> None:
        assessment = Assessment(
            questions=[
                _q("t1", "technical"),
                SubjectiveQuestion(id="s1", prompt="Explain", points=10),
            ]
        )
        result = aggregate_scores([_graded("t1", 8), _ungraded("s1")], assessment, SkillWeights())
        assert result.pending_review == ["s1"]
        assert result.total_score == 80.0
        assert result.max_points == 10.0
        assert result.detailed_scores.communication is None

    def test_execution_failed_counts_as_zero(self) -> None:
        assessment = Assessment(questions=[_q("t1", "technical"), _q("t2", "technical")])
        failed = AnswerRecord(
            question_id="t2",
            payload=ObjectiveAnswer(selected_option=0),
            grade=GradeResult(status="execution_failed", score=0.0, max_score=10),
        )
        result = aggregate_scores([_graded("t1", 10), failed], assessment, SkillWeights())
        assert result.total_score == 50.0
        assert result.pending_review == []

    def test_no_answers_under_answered_questions_has_no_score(self) -> None:
        assessment = Assessment(questions=[_q("t1", "technical")], scoring_policy="answered_questions")
        result = aggregate_scores([], assessment, SkillWeights())
        assert result.total_score is None
        assert result.weighted_score is None

    def test_no_answers_under_all_questions_scores_zero(self) -> None:
        assessment = Assessment(questions=[_q("t1", "technical")])
        result = aggregate_scores([], assessment, SkillWeights())
        assert result.total_score == 0.0
        assert result.weighted_score == 0.0

    def test_all_ungraded_has_no_score(self) -> None:
        assessment = Assessment(
            questions=[
                SubjectiveQuestion(id="s1", prompt="Explain", points=10),
                SubjectiveQuestion(id="s2", prompt="Compare", points=10),
            ]
        )
        result = aggregate_scores([_ungraded("s1"), _ungraded("s2")], assessment, SkillWeights())
        assert result.pending_review == ["s1", "s2"]
        assert result.total_score is None
        assert result.weighted_score is None
        assert result.max_points == 0.0

    def test_answers_to_unknown_questions_ignored(self) -> None:
        assessment = Assessment(questions=[_q("t1", "technical")])
        result = aggregate_scores([_graded("t1", 5), _graded("ghost", 10)], assessment, SkillWeights())
        assert result.total_score == 50.0

    def test_input_order_irrelevant(self) -> None:
        assessment = Assessment(questions=[_q("t1", "technical"), _q("p1", "problem_solving")])
        answers = [_graded("t1", 7), _graded("p1", 3)]
        forward = aggregate_scores(answers, assessment, SkillWeights())
        backward = aggregate_scores(list(reversed(answers)), assessment, SkillWeights())
        assert forward == backward
