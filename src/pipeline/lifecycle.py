"""Application lifecycle controller: owns every Application state transition.

State machine::

    pending -> in-progress -> completed -> shortlisted | rejected

Finalize runs the evaluation stages in order (scoring, proctoring, code
similarity, skill gaps, recommendation), applies the job's thresholds, flags
any earlier candidate whose code matched, then rebuilds the job leaderboard.
Each stage is isolated: a failure is logged, recorded in ``failed_stages``
and flags the application for review without aborting the others.
Operations on one application are serialized by a per-application lock;
different applications proceed independently.
"""

import asyncio
import logging
import os
import sqlite3
import weakref
from collections.abc import Callable
from datetime import datetime, timedelta

from src.core import db
from src.core.config import Settings
from src.core.errors import (
    AssessmentExpiredError,
    AssessmentLockedError,
    DuplicateApplicationError,
    DuplicateJobError,
    InvalidTransitionError,
    JobClosedError,
    NotFoundError,
)
from src.core.schemas import (
    RANKED_STATUSES,
    TERMINAL_STATUSES,
    AnswerPayload,
    AnswerRecord,
    Application,
    ApplicationReport,
    Assessment,
    CandidateSummary,
    Job,
    LeaderboardEntry,
    ProctoringEvent,
    QualificationCriteria,
    StartResult,
    SubmitAck,
)
from src.grading.evaluator import LLMTextEvaluator, TextEvaluator
from src.grading.executor import CodeExecutor, Judge0Executor
from src.grading.grader import grade_answer, manual_grade, validate_answer
from src.pipeline.aggregator import aggregate_scores
from src.pipeline.proctoring import aggregate_proctoring, analyze_time_distribution
from src.pipeline.ranking import RankingEngine
from src.pipeline.recommendation import recommend
from src.pipeline.similarity import find_similar_submissions, sort_matches
from src.pipeline.skill_gaps import reconcile_skill_gaps, skill_performance

logger = logging.getLogger(__name__)

_OPEN_STATUSES = frozenset({"pending", "in-progress"})


def _assessment_changed(stored: Assessment | None, incoming: Assessment) -> bool:
    if stored is None:
        return True
    return stored.model_dump(exclude={"link_token"}) != incoming.model_dump(exclude={"link_token"})


class ApplicationLifecycle:
    """Entry point for jobs, attempts, answers, events and recruiter actions.

    Usage::

        lifecycle = ApplicationLifecycle.from_settings(conn, settings)
        started = await lifecycle.start(job.id, "dev@example.com", ["python"])
        await lifecycle.submit_answer(started.application_id, "q1", ObjectiveAnswer(selected_option=2))
        summary = await lifecycle.finalize(started.application_id)
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        settings: Settings,
        *,
        evaluator: TextEvaluator | None = None,
        executor: CodeExecutor | None = None,
        ranking: RankingEngine | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._conn = conn
        self._settings = settings
        self._evaluator = evaluator
        self._executor = executor
        self._ranking = ranking or RankingEngine(conn)
        self._clock = clock
        # an application's lock lives only while some operation holds or awaits it
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    @classmethod
    def from_settings(cls, conn: sqlite3.Connection, settings: Settings) -> "ApplicationLifecycle":
        """Build with the configured LLM evaluator and code executor."""
        grading = settings.grading
        evaluator = LLMTextEvaluator.from_provider_name(grading.provider, grading.model)
        executor = None
        if grading.executor_url:
            executor = Judge0Executor(
                grading.executor_url,
                api_key=os.environ.get(grading.executor_api_key_env),
                timeout_s=grading.executor_timeout_s,
            )
        else:
            logger.warning("No executor_url configured; coding answers will not be executed")
        return cls(conn, settings, evaluator=evaluator, executor=executor)

    def _lock(self, application_id: str) -> asyncio.Lock:
        lock = self._locks.get(application_id)
        if lock is None:
            lock = self._locks[application_id] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def create_job(self, job: Job) -> Job:
        if db.get_job(self._conn, job.id) is not None:
            msg = f"job {job.id} already exists"
            raise DuplicateJobError(msg)
        db.save_job(self._conn, job)
        logger.info("Created job %s (%s)", job.id, job.title)
        return job

    def load_job(self, job: Job) -> Job:
        """Create ``job``, or update the stored job with the same id.

        Title and criteria are always taken from ``job``. A changed question
        set goes through ``replace_assessment`` and is refused once any
        candidate has answered; the link token of the stored assessment is kept.
        """
        existing = db.get_job(self._conn, job.id)
        if existing is None:
            return self.create_job(job)

        if job.assessment is not None and _assessment_changed(existing.assessment, job.assessment):
            assessment = job.assessment
            if existing.assessment is not None:
                assessment = assessment.model_copy(
                    update={"link_token": existing.assessment.link_token}
                )
            self.replace_assessment(job.id, assessment)

        updated = self.get_job(job.id).model_copy(
            update={"title": job.title, "criteria": job.criteria}
        )
        db.save_job(self._conn, updated)
        logger.info("Updated job %s (%s)", job.id, job.title)
        return updated

    def get_job(self, job_id: str) -> Job:
        job = db.get_job(self._conn, job_id)
        if job is None:
            msg = f"job not found: {job_id}"
            raise NotFoundError(msg)
        return job

    def update_criteria(self, job_id: str, criteria: QualificationCriteria) -> Job:
        """Replace thresholds. Applies to attempts finalized from now on."""
        job = self.get_job(job_id).model_copy(update={"criteria": criteria})
        db.save_job(self._conn, job)
        return job

    def replace_assessment(self, job_id: str, assessment: Assessment) -> Job:
        """Swap the question set, refused once any candidate has answered."""
        job = self.get_job(job_id)
        if db.job_has_answers(self._conn, job_id):
            msg = f"job {job_id} already has recorded answers; assessment is locked"
            raise AssessmentLockedError(msg)
        job = job.model_copy(update={"assessment": assessment})
        db.save_job(self._conn, job)
        return job

    def close_job(self, job_id: str) -> Job:
        job = self.get_job(job_id).model_copy(update={"status": "closed"})
        db.save_job(self._conn, job)
        logger.info("Closed job %s", job_id)
        return job

    def _open_job_with_assessment(self, job_id: str) -> tuple[Job, Assessment]:
        job = self.get_job(job_id)
        if job.status != "open":
            msg = f"job {job_id} is closed"
            raise JobClosedError(msg)
        if job.assessment is None:
            msg = f"job {job_id} has no assessment"
            raise InvalidTransitionError(msg)
        return job, job.assessment

    def _job_and_assessment(self, job_id: str) -> tuple[Job, Assessment]:
        job = self.get_job(job_id)
        if job.assessment is None:
            msg = f"job {job_id} has no assessment"
            raise InvalidTransitionError(msg)
        return job, job.assessment

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    def get_application(self, application_id: str) -> Application:
        app = db.get_application(self._conn, application_id)
        if app is None:
            msg = f"application not found: {application_id}"
            raise NotFoundError(msg)
        return app

    def create_application(
        self,
        job_id: str,
        candidate_email: str,
        claimed_skills: list[str] | None = None,
    ) -> Application:
        """Invite a candidate: a pending Application ready to be started."""
        self._open_job_with_assessment(job_id)
        app = Application(
            job_id=job_id,
            candidate_email=candidate_email,
            claimed_skills=claimed_skills or [],
            created_at=self._clock(),
        )
        if not db.insert_application(self._conn, app):
            msg = f"{app.candidate_email} already has an application for job {job_id}"
            raise DuplicateApplicationError(msg)
        logger.info("Invited %s to job %s", app.candidate_email, job_id)
        return app

    def _deadline(self, app: Application, assessment: Assessment) -> datetime | None:
        if app.started_at is None:
            return None
        return app.started_at + timedelta(minutes=assessment.duration_minutes)

    def _is_expired(self, app: Application, assessment: Assessment) -> bool:
        deadline = self._deadline(app, assessment)
        return deadline is not None and self._clock() >= deadline

    def _start_result(self, app: Application, assessment: Assessment, resumed: bool) -> StartResult:
        deadline = self._deadline(app, assessment)
        remaining = max(0.0, (deadline - self._clock()).total_seconds()) if deadline else 0.0
        return StartResult(
            application_id=app.id,
            questions=[q.public_view() for q in assessment.questions],
            duration_minutes=assessment.duration_minutes,
            started_at=app.started_at,  # type: ignore[arg-type]
            remaining_seconds=remaining,
            resumed=resumed,
        )

    async def start(
        self,
        job_id: str,
        candidate_email: str,
        claimed_skills: list[str] | None = None,
    ) -> StartResult:
        """Begin (or resume) an attempt and return the candidate-facing questions.

        A first call creates the Application in-progress. Starting a pending
        invite moves it to in-progress. Calling again while in-progress resumes
        the same attempt with the original clock. Anything later is rejected.
        """
        job, assessment = self._open_job_with_assessment(job_id)
        app = db.find_application(self._conn, job_id, candidate_email)

        if app is None:
            now = self._clock()
            app = Application(
                job_id=job.id,
                candidate_email=candidate_email,
                claimed_skills=claimed_skills or [],
                status="in-progress",
                created_at=now,
                started_at=now,
            )
            if db.insert_application(self._conn, app):
                logger.info("Started attempt %s for %s on job %s", app.id, app.candidate_email, job.id)
                return self._start_result(app, assessment, resumed=False)
            # lost a race with a concurrent start for the same candidate
            app = db.find_application(self._conn, job_id, candidate_email)
            if app is None:
                msg = f"could not create application for {candidate_email}"
                raise DuplicateApplicationError(msg)

        expired = False
        async with self._lock(app.id):
            app = self.get_application(app.id)
            if app.status == "pending":
                app.status = "in-progress"
                app.started_at = self._clock()
                if claimed_skills:
                    app.claimed_skills = claimed_skills
                db.save_application(self._conn, app)
                logger.info("Started attempt %s for %s on job %s", app.id, app.candidate_email, job.id)
                return self._start_result(app, assessment, resumed=False)
            if app.status != "in-progress":
                msg = f"attempt {app.id} is already {app.status}"
                raise InvalidTransitionError(msg)
            expired = self._is_expired(app, assessment)
            if not expired:
                logger.info("Resumed attempt %s", app.id)
                return self._start_result(app, assessment, resumed=True)

        await self.finalize(app.id, trigger="expired")
        msg = f"attempt {app.id} has expired"
        raise AssessmentExpiredError(msg)

    async def submit_answer(
        self,
        application_id: str,
        question_id: str,
        payload: AnswerPayload,
        time_spent: float | None = None,
    ) -> SubmitAck:
        """Grade and store one answer. Resubmitting a question replaces the old answer."""
        async with self._lock(application_id):
            app = self.get_application(application_id)
            if app.status != "in-progress":
                msg = f"attempt {application_id} is {app.status}; answers are not accepted"
                raise InvalidTransitionError(msg)
            _, assessment = self._job_and_assessment(app.job_id)

            expired = self._is_expired(app, assessment)
            if not expired:
                question = assessment.question(question_id)
                if question is None:
                    msg = f"question not found: {question_id}"
                    raise NotFoundError(msg)
                validate_answer(question, payload)
                grade = await grade_answer(
                    question,
                    payload,
                    evaluator=self._evaluator,
                    executor=self._executor,
                    evaluator_timeout_s=self._settings.grading.evaluator_timeout_s,
                    executor_timeout_s=self._settings.grading.executor_timeout_s,
                )
                record = AnswerRecord(
                    question_id=question_id,
                    payload=payload,
                    grade=grade,
                    time_spent=time_spent,
                    submitted_at=self._clock(),
                )
                replaced = app.upsert_answer(record)
                db.save_application(self._conn, app)
                logger.debug(
                    "Answer %s for %s graded %s (%s)",
                    question_id, application_id, grade.score, grade.status,
                )
                return SubmitAck(application_id=application_id, question_id=question_id, replaced=replaced)

        await self.finalize(application_id, trigger="expired")
        msg = f"attempt {application_id} has expired"
        raise AssessmentExpiredError(msg)

    async def record_proctoring_event(self, application_id: str, event: ProctoringEvent) -> bool:
        """Apply one event to the live credibility score.

        Returns False for duplicates and for events arriving after completion.
        """
        async with self._lock(application_id):
            app = self.get_application(application_id)
            if app.status not in _OPEN_STATUSES:
                logger.info(
                    "Ignoring event %s for %s attempt %s",
                    event.event_id, app.status, application_id,
                )
                return False
            if not db.insert_proctoring_event(self._conn, application_id, event):
                logger.debug("Duplicate event %s for %s", event.event_id, application_id)
                return False

            result = aggregate_proctoring(
                db.list_proctoring_events(self._conn, application_id),
                self._settings.proctoring,
            )
            app.credibility_score = result.credibility_score
            app.proctoring = result.summary
            db.save_application(self._conn, app)
            return True

    # ------------------------------------------------------------------
    # Finalize
    # ------------------------------------------------------------------

    async def _retry_incomplete_grades(self, app: Application, assessment: Assessment) -> None:
        for record in list(app.answers):
            if record.grade.status == "graded":
                continue
            question = assessment.question(record.question_id)
            if question is None:
                continue
            grade = await grade_answer(
                question,
                record.payload,
                evaluator=self._evaluator,
                executor=self._executor,
                evaluator_timeout_s=self._settings.grading.evaluator_timeout_s,
                executor_timeout_s=self._settings.grading.executor_timeout_s,
            )
            if grade.status == "graded":
                logger.info("Re-graded %s on %s", record.question_id, app.id)
                app.upsert_answer(record.model_copy(update={"grade": grade}))

    def _run_stages(self, app: Application, job: Job, assessment: Assessment) -> list[str]:
        """Run every evaluation stage against ``app`` in place. Returns failed stage names."""
        failed: list[str] = []

        try:
            scores = aggregate_scores(app.answers, assessment, job.criteria.skill_weights)
            app.total_score = scores.total_score
            app.weighted_score = scores.weighted_score
            app.detailed_scores = scores.detailed_scores
            app.pending_review = scores.pending_review
        except Exception:
            logger.exception("Score aggregation failed for %s", app.id)
            failed.append("scoring")

        try:
            result = aggregate_proctoring(
                db.list_proctoring_events(self._conn, app.id),
                self._settings.proctoring,
            )
            app.credibility_score = result.credibility_score
            app.proctoring = result.summary
        except Exception:
            logger.exception("Proctoring aggregation failed for %s", app.id)
            failed.append("proctoring")

        try:
            others = db.list_applications(self._conn, app.job_id, RANKED_STATUSES)
            app.similarity_matches = find_similar_submissions(app, others, self._settings.similarity)
        except Exception:
            logger.exception("Code similarity check failed for %s", app.id)
            failed.append("similarity")

        try:
            performance = skill_performance(app.answers, assessment)
            app.skill_gaps = reconcile_skill_gaps(
                app.claimed_skills, performance, self._settings.skill_gaps
            )
        except Exception:
            logger.exception("Skill-gap reconciliation failed for %s", app.id)
            failed.append("skill_gaps")

        try:
            rec = recommend(
                app.weighted_score,
                app.credibility_score,
                app.skill_gaps,
                job.criteria,
                self._settings.recommendation,
                pending_review=len(app.pending_review),
                similar_submissions=len(app.similarity_matches),
                incomplete_stages=list(failed),
            )
            app.ai_recommendation = rec.label
            app.ai_reasoning = rec.reasoning
        except Exception:
            logger.exception("Recommendation failed for %s", app.id)
            failed.append("recommendation")

        app.failed_stages = failed
        app.needs_review = (
            bool(failed)
            or bool(app.pending_review)
            or bool(app.similarity_matches)
            or any(a.grade.status == "execution_failed" for a in app.answers)
        )
        return failed

    @staticmethod
    def _threshold_status(app: Application, criteria: QualificationCriteria) -> str:
        score = app.weighted_score
        if score is None or app.pending_review:
            # incomplete grading is left for a recruiter, never auto-decided
            return "completed"
        if criteria.auto_reject and score < criteria.auto_reject_below:
            return "rejected"
        if (
            criteria.auto_shortlist
            and score >= criteria.minimum_score
            and app.ai_recommendation in ("hire", "strong-hire")
        ):
            return "shortlisted"
        return "completed"

    async def _flag_similar_counterparts(self, app: Application) -> None:
        """Record each match on the other application too, flagging it for review."""
        for match in app.similarity_matches:
            async with self._lock(match.other_application_id):
                other = db.get_application(self._conn, match.other_application_id)
                if other is None:
                    continue
                if any(
                    m.question_id == match.question_id and m.other_application_id == app.id
                    for m in other.similarity_matches
                ):
                    continue
                reciprocal = match.model_copy(update={"other_application_id": app.id})
                other.similarity_matches = sort_matches([*other.similarity_matches, reciprocal])
                other.needs_review = True
                db.save_application(self._conn, other)
                logger.warning(
                    "Code on %s for %s matches %s (%.2f, %s)",
                    match.question_id, other.id, app.id, match.similarity, match.level,
                )

    async def _rebuild_ranking(self, job_id: str) -> None:
        try:
            await self._ranking.rebuild(job_id)
        except Exception:
            # the application record stays authoritative; the next rebuild catches up
            logger.exception("Leaderboard rebuild failed for job %s", job_id)

    @staticmethod
    def _summary(app: Application) -> CandidateSummary:
        return CandidateSummary(
            application_id=app.id,
            status=app.status,
            total_score=app.total_score,
            completed_at=app.completed_at,
        )

    async def finalize(self, application_id: str, trigger: str = "submitted") -> CandidateSummary:
        """Close an attempt, evaluate it, apply job thresholds and re-rank.

        Idempotent: finalizing an already completed attempt returns the stored
        result without re-scoring.
        """
        async with self._lock(application_id):
            app = self.get_application(application_id)
            if app.status == "pending":
                msg = f"attempt {application_id} has not been started"
                raise InvalidTransitionError(msg)
            if app.status != "in-progress":
                logger.info("Attempt %s already %s; finalize is a no-op", application_id, app.status)
                return self._summary(app)

            job, assessment = self._job_and_assessment(app.job_id)
            app.status = "completed"
            app.completed_at = self._clock()
            app.completion_trigger = "expired" if trigger == "expired" else "submitted"

            await self._retry_incomplete_grades(app, assessment)
            self._run_stages(app, job, assessment)
            app.status = self._threshold_status(app, job.criteria)
            db.save_application(self._conn, app)
            logger.info(
                "Finalized %s (%s): weighted %s, credibility %s, status %s",
                app.id, app.completion_trigger, app.weighted_score,
                app.credibility_score, app.status,
            )

        await self._flag_similar_counterparts(app)
        await self._rebuild_ranking(app.job_id)
        return self._summary(self.get_application(application_id))

    async def finalize_expired(self) -> list[CandidateSummary]:
        """Finalize every in-progress attempt whose time limit has passed."""
        summaries: list[CandidateSummary] = []
        assessments: dict[str, Assessment | None] = {}
        for app in db.list_applications(self._conn, statuses={"in-progress"}):
            if app.job_id not in assessments:
                job = db.get_job(self._conn, app.job_id)
                assessments[app.job_id] = job.assessment if job else None
            assessment = assessments[app.job_id]
            if assessment is None or not self._is_expired(app, assessment):
                continue
            summaries.append(await self.finalize(app.id, trigger="expired"))
        if summaries:
            logger.info("Finalized %d expired attempts", len(summaries))
        return summaries

    # ------------------------------------------------------------------
    # Recruiter actions
    # ------------------------------------------------------------------

    async def override_status(self, application_id: str, status: str) -> Application:
        """Manually shortlist or reject. Allowed from any state, sticky afterwards."""
        if status not in TERMINAL_STATUSES:
            msg = f"override status must be one of {sorted(TERMINAL_STATUSES)}, got '{status}'"
            raise InvalidTransitionError(msg)
        async with self._lock(application_id):
            app = self.get_application(application_id)
            previous = app.status
            app.status = status  # type: ignore[assignment]
            app.status_overridden = True
            db.save_application(self._conn, app)
            logger.info("Override %s: %s -> %s", application_id, previous, status)

        if app.completed_at is not None:
            await self._rebuild_ranking(app.job_id)
        return self.get_application(application_id)

    async def record_manual_grade(
        self,
        application_id: str,
        question_id: str,
        score: float,
        feedback: str = "",
    ) -> Application:
        """Grade an answer by hand, then re-aggregate and re-rank. Status is kept."""
        async with self._lock(application_id):
            app = self.get_application(application_id)
            if app.status not in RANKED_STATUSES:
                msg = f"attempt {application_id} is {app.status}; manual grades need a completed attempt"
                raise InvalidTransitionError(msg)
            job, assessment = self._job_and_assessment(app.job_id)
            question = assessment.question(question_id)
            record = app.answer_for(question_id)
            if question is None or record is None:
                msg = f"no answer to question {question_id} on {application_id}"
                raise NotFoundError(msg)

            grade = manual_grade(question, score, feedback)
            app.upsert_answer(record.model_copy(update={"grade": grade}))
            self._run_stages(app, job, assessment)
            db.save_application(self._conn, app)
            logger.info("Manual grade %s on %s: %.2f", question_id, application_id, grade.score)

        await self._rebuild_ranking(app.job_id)
        return self.get_application(application_id)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def leaderboard(self, job_id: str, limit: int | None = None) -> list[LeaderboardEntry]:
        self.get_job(job_id)
        return self._ranking.leaderboard(job_id, limit)

    def report(self, application_id: str) -> ApplicationReport:
        """Full recruiter-facing breakdown for one application."""
        app = self.get_application(application_id)
        _, assessment = self._job_and_assessment(app.job_id)
        return ApplicationReport(
            application_id=app.id,
            candidate_email=app.candidate_email,
            status=app.status,
            total_score=app.total_score,
            weighted_score=app.weighted_score,
            detailed_scores=app.detailed_scores,
            rank=app.rank,
            percentile=app.percentile,
            credibility_score=app.credibility_score,
            proctoring=app.proctoring,
            skill_gaps=app.skill_gaps,
            similarity_matches=app.similarity_matches,
            ai_recommendation=app.ai_recommendation,
            ai_reasoning=app.ai_reasoning,
            pending_review=app.pending_review,
            failed_stages=app.failed_stages,
            needs_review=app.needs_review,
            time_analysis=analyze_time_distribution(
                app.answers, assessment.duration_minutes, self._settings.proctoring
            ),
        )
