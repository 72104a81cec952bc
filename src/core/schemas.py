"""Core data models for the assessment pipeline.

Questions and answer payloads are tagged unions keyed by ``type``; graders
dispatch on the tag. Value objects are frozen. Application is the mutable
source of truth for one candidate's attempt; the leaderboard is a projection.
"""

import secrets
import uuid
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any, ClassVar, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

CATEGORIES: tuple[str, ...] = ("technical", "problem_solving", "communication", "coding")

Category = Literal["technical", "problem_solving", "communication", "coding"]
Difficulty = Literal["easy", "medium", "hard"]
Severity = Literal["low", "medium", "high", "critical"]
ApplicationStatus = Literal["pending", "in-progress", "completed", "shortlisted", "rejected"]
RecommendationLabel = Literal["strong-hire", "hire", "maybe", "no-hire"]
ScoringPolicy = Literal["all_questions", "answered_questions"]
GradeStatus = Literal["graded", "ungraded", "execution_failed"]

TERMINAL_STATUSES = frozenset({"shortlisted", "rejected"})
RANKED_STATUSES = frozenset({"completed", "shortlisted", "rejected"})


def new_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Jobs and assessments
# ---------------------------------------------------------------------------


class SkillWeights(BaseModel):
    """Relative weight of each category in the weighted score."""

    technical: float = Field(default=50.0, ge=0.0)
    problem_solving: float = Field(default=30.0, ge=0.0)
    communication: float = Field(default=20.0, ge=0.0)
    coding: float = Field(default=0.0, ge=0.0)


class QualificationCriteria(BaseModel):
    """Job-defined thresholds. These are authoritative for auto-transitions."""

    minimum_score: float = Field(default=60.0, ge=0.0, le=100.0)
    auto_shortlist: bool = True
    auto_reject: bool = True
    auto_reject_below: float = Field(default=40.0, ge=0.0, le=100.0)
    skill_weights: SkillWeights = Field(default_factory=SkillWeights)

    @model_validator(mode="after")
    def reject_below_minimum(self) -> "QualificationCriteria":
        if self.auto_reject_below > self.minimum_score:
            msg = "auto_reject_below must not exceed minimum_score"
            raise ValueError(msg)
        return self


class _QuestionBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    default_category: ClassVar[str] = "technical"
    private_fields: ClassVar[frozenset[str]] = frozenset()

    id: str
    prompt: str
    points: float = Field(gt=0.0)
    difficulty: Difficulty = "medium"
    skill: str = ""
    category: Category | None = None

    @property
    def effective_category(self) -> str:
        return self.category or self.default_category

    def public_view(self) -> dict[str, Any]:
        """Candidate-facing shape: no correct answers, no test cases."""
        return self.model_dump(exclude=set(self.private_fields))


class ObjectiveQuestion(_QuestionBase):
    private_fields: ClassVar[frozenset[str]] = frozenset({"correct_option"})

    type: Literal["objective"] = "objective"
    options: list[str] = Field(min_length=2)
    correct_option: int = Field(ge=0)

    @model_validator(mode="after")
    def correct_option_in_range(self) -> "ObjectiveQuestion":
        if self.correct_option >= len(self.options):
            msg = (
                f"correct_option {self.correct_option} out of range "
                f"for {len(self.options)} options"
            )
            raise ValueError(msg)
        return self


class SubjectiveQuestion(_QuestionBase):
    default_category: ClassVar[str] = "communication"

    type: Literal["subjective"] = "subjective"
    rubric: list[str] = Field(default_factory=list)


class CodeTestCase(BaseModel):
    """One input/expected-output pair for a coding question."""

    model_config = ConfigDict(frozen=True)

    input: str = ""
    expected_output: str
    hidden: bool = False


class CodingQuestion(_QuestionBase):
    default_category: ClassVar[str] = "coding"
    private_fields: ClassVar[frozenset[str]] = frozenset({"test_cases"})

    type: Literal["coding"] = "coding"
    test_cases: list[CodeTestCase] = Field(min_length=1)
    languages: list[str] = Field(default_factory=list)
    time_limit_s: float = Field(default=2.0, gt=0.0)


Question = Annotated[
    ObjectiveQuestion | SubjectiveQuestion | CodingQuestion,
    Field(discriminator="type"),
]


class Assessment(BaseModel):
    """Ordered questions plus timing and scoring policy, fixed at creation."""

    questions: list[Question] = Field(min_length=1)
    duration_minutes: int = Field(default=60, gt=0)
    passing_score: float = Field(default=60.0, ge=0.0, le=100.0)
    scoring_policy: ScoringPolicy = "all_questions"
    link_token: str = Field(default_factory=lambda: secrets.token_urlsafe(16))

    @field_validator("questions")
    @classmethod
    def unique_question_ids(cls, v: list[Any]) -> list[Any]:
        ids = [q.id for q in v]
        if len(ids) != len(set(ids)):
            msg = "question ids must be unique within an assessment"
            raise ValueError(msg)
        return v

    def question(self, question_id: str) -> ObjectiveQuestion | SubjectiveQuestion | CodingQuestion | None:
        return next((q for q in self.questions if q.id == question_id), None)


class Job(BaseModel):
    """A hiring requisition owning at most one assessment."""

    id: str = Field(default_factory=new_id)
    title: str
    status: Literal["open", "closed"] = "open"
    criteria: QualificationCriteria = Field(default_factory=QualificationCriteria)
    assessment: Assessment | None = None
    created_at: datetime = Field(default_factory=datetime.now)

    @field_validator("title")
    @classmethod
    def title_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "title must not be empty"
            raise ValueError(msg)
        return v.strip()

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Job":
        """Load a job definition (criteria + assessment) from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Job file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)


# ---------------------------------------------------------------------------
# Answers and grades
# ---------------------------------------------------------------------------


class ObjectiveAnswer(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["objective"] = "objective"
    selected_option: int


class SubjectiveAnswer(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["subjective"] = "subjective"
    text: str


class CodingAnswer(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["coding"] = "coding"
    code: str
    language: str


AnswerPayload = Annotated[
    ObjectiveAnswer | SubjectiveAnswer | CodingAnswer,
    Field(discriminator="type"),
]


class EvaluationMetadata(BaseModel):
    """How a grade was produced. Failure reasons are kept apart from wrong answers."""

    model_config = ConfigDict(frozen=True)

    graded_by: Literal["rule", "collaborator", "executor", "manual"] = "rule"
    feedback: str = ""
    strengths: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    tests_passed: int | None = None
    tests_total: int | None = None
    failure_reason: str | None = None


class GradeResult(BaseModel):
    """Outcome of grading one answer.

    ``ungraded`` means the collaborator could not evaluate: score is None and
    the answer waits for a human. ``execution_failed`` scores 0 but records why.
    """

    model_config = ConfigDict(frozen=True)

    status: GradeStatus
    score: float | None
    max_score: float = Field(gt=0.0)
    is_correct: bool | None = None
    metadata: EvaluationMetadata = Field(default_factory=EvaluationMetadata)

    @property
    def pending_review(self) -> bool:
        return self.status == "ungraded"


class AnswerRecord(BaseModel):
    """A submitted answer and its grade, keyed by question id."""

    model_config = ConfigDict(frozen=True)

    question_id: str
    payload: AnswerPayload
    grade: GradeResult
    time_spent: float | None = Field(default=None, ge=0.0)
    submitted_at: datetime = Field(default_factory=datetime.now)


# ---------------------------------------------------------------------------
# Proctoring, skill gaps, scores
# ---------------------------------------------------------------------------


class ProctoringEvent(BaseModel):
    """One behavioral signal reported by the client, idempotent per event_id."""

    model_config = ConfigDict(frozen=True)

    event_id: str
    kind: str
    severity: Severity = "low"
    occurred_at: datetime = Field(default_factory=datetime.now)

    @field_validator("kind")
    @classmethod
    def normalize_kind(cls, v: str) -> str:
        v = v.strip().lower().replace("_", "-")
        if not v:
            msg = "kind must not be empty"
            raise ValueError(msg)
        return v


class ProctoringSummary(BaseModel):
    tab_switches: int = 0
    copy_paste_events: int = 0
    suspicious_activities: int = 0
    flagged_for_review: bool = False
    total_deduction: float = 0.0


class DetailedScores(BaseModel):
    """Per-category percentages. None means no question targeted the category."""

    technical: float | None = None
    problem_solving: float | None = None
    communication: float | None = None
    coding: float | None = None


class SkillGap(BaseModel):
    model_config = ConfigDict(frozen=True)

    skill: str
    claimed: bool
    actual_score: float
    severity: Literal["high", "medium", "none"]
    flag: str


SimilarityLevel = Literal["medium", "high", "critical"]


class SimilarityMatch(BaseModel):
    """A coding answer that closely matches another candidate's answer to the same question."""

    model_config = ConfigDict(frozen=True)

    question_id: str
    other_application_id: str
    similarity: float = Field(ge=0.0, le=1.0)
    level: SimilarityLevel


class TimeAnalysis(BaseModel):
    total_time_spent: float = 0.0
    completion_ratio: float | None = None
    rapid_answers: int = 0
    flags: list[str] = Field(default_factory=list)


class Application(BaseModel):
    """One candidate's attempt at one job's assessment."""

    id: str = Field(default_factory=new_id)
    job_id: str
    candidate_email: str
    status: ApplicationStatus = "pending"
    claimed_skills: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    completion_trigger: Literal["submitted", "expired"] | None = None
    answers: list[AnswerRecord] = Field(default_factory=list)
    total_score: float | None = None
    weighted_score: float | None = None
    detailed_scores: DetailedScores = Field(default_factory=DetailedScores)
    rank: int | None = None
    percentile: int | None = None
    credibility_score: float = Field(default=100.0, ge=0.0, le=100.0)
    proctoring: ProctoringSummary = Field(default_factory=ProctoringSummary)
    skill_gaps: list[SkillGap] = Field(default_factory=list)
    similarity_matches: list[SimilarityMatch] = Field(default_factory=list)
    ai_recommendation: RecommendationLabel | None = None
    ai_reasoning: str = ""
    pending_review: list[str] = Field(default_factory=list)
    failed_stages: list[str] = Field(default_factory=list)
    needs_review: bool = False
    status_overridden: bool = False

    @field_validator("candidate_email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            msg = f"invalid candidate email: '{v}'"
            raise ValueError(msg)
        return v

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def answer_for(self, question_id: str) -> AnswerRecord | None:
        return next((a for a in self.answers if a.question_id == question_id), None)

    def upsert_answer(self, record: AnswerRecord) -> bool:
        """Replace the answer for the same question, or append. Returns True if replaced."""
        for i, existing in enumerate(self.answers):
            if existing.question_id == record.question_id:
                self.answers[i] = record
                return True
        self.answers.append(record)
        return False


# ---------------------------------------------------------------------------
# Exposed views
# ---------------------------------------------------------------------------


class StartResult(BaseModel):
    application_id: str
    questions: list[dict[str, Any]]
    duration_minutes: int
    started_at: datetime
    remaining_seconds: float
    resumed: bool = False


class SubmitAck(BaseModel):
    application_id: str
    question_id: str
    replaced: bool = False


class CandidateSummary(BaseModel):
    """The limited result a candidate sees after finalize."""

    application_id: str
    status: ApplicationStatus
    total_score: float | None
    completed_at: datetime | None


class LeaderboardEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    application_id: str
    candidate_email: str
    rank: int = Field(ge=1)
    score: float | None
    percentile: int = Field(ge=0, le=100)
    status: ApplicationStatus
    completed_at: datetime
    pending_review: int = Field(default=0, ge=0)
    needs_review: bool = False


class ApplicationReport(BaseModel):
    """Recruiter-only breakdown of scores, integrity and skill gaps."""

    application_id: str
    candidate_email: str
    status: ApplicationStatus
    total_score: float | None
    weighted_score: float | None
    detailed_scores: DetailedScores
    rank: int | None
    percentile: int | None
    credibility_score: float
    proctoring: ProctoringSummary
    skill_gaps: list[SkillGap]
    similarity_matches: list[SimilarityMatch]
    ai_recommendation: RecommendationLabel | None
    ai_reasoning: str
    pending_review: list[str]
    failed_stages: list[str]
    needs_review: bool
    time_analysis: TimeAnalysis
