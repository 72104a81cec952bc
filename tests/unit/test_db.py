"""Tests for the database layer: jobs, applications, events, leaderboard."""

from datetime import datetime, timedelta

import pytest

from src.core.db import (
    find_application,
    get_application,
    get_job,
    get_leaderboard,
    init_db,
    insert_application,
    insert_proctoring_event,
    job_has_answers,
    list_applications,
    list_proctoring_events,
    replace_leaderboard,
    save_application,
    save_job,
)
from src.core.schemas import (
    AnswerRecord,
    Application,
    Assessment,
    GradeResult,
    Job,
    LeaderboardEntry,
    ObjectiveAnswer,
    ObjectiveQuestion,
    ProctoringEvent,
    SimilarityMatch,
)

_T0 = datetime(2026, 3, 1, 9, 0, 0)


def _make_job(**kw: object) -> Job:
    defaults: dict[str, object] = {
        "id": "job-1",
        "title": "Backend Engineer",
        "assessment": Assessment(
            questions=[
                ObjectiveQuestion(id="q1", prompt="Pick", options=["a", "b"], correct_option=0, points=10),
            ],
        ),
    }
    defaults.update(kw)
    return Job(**defaults)  # type: ignore[arg-type]


def _make_app(email: str = "dev@example.com", **kw: object) -> Application:
    defaults: dict[str, object] = {"job_id": "job-1", "candidate_email": email}
    defaults.update(kw)
    return Application(**defaults)  # type: ignore[arg-type]


def _entry(app: Application, rank: int, score: float, percentile: int) -> LeaderboardEntry:
    return LeaderboardEntry(
        application_id=app.id,
        candidate_email=app.candidate_email,
        rank=rank,
        score=score,
        percentile=percentile,
        status="completed",
        completed_at=_T0,
    )


@pytest.fixture()
def db(tmp_path):  # type: ignore[no-untyped-def]
    """Provide a fresh SQLite connection per test."""
    return init_db(tmp_path / "test.db")


class TestInitDb:
    def test_creates_tables(self, db) -> None:  # type: ignore[no-untyped-def]
        tables = {
            row[0]
            for row in db.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            ).fetchall()
        }
        assert {"jobs", "applications", "proctoring_events", "leaderboard"} <= tables

    def test_idempotent(self, tmp_path) -> None:  # type: ignore[no-untyped-def]
        p = tmp_path / "double.db"
        init_db(p).close()
        init_db(p).close()


class TestJobs:
    def test_round_trip(self, db) -> None:  # type: ignore[no-untyped-def]
        save_job(db, _make_job())
        job = get_job(db, "job-1")
        assert job is not None
        assert job.title == "Backend Engineer"
        assert job.assessment is not None
        assert isinstance(job.assessment.questions[0], ObjectiveQuestion)

    def test_save_updates(self, db) -> None:  # type: ignore[no-untyped-def]
        save_job(db, _make_job())
        save_job(db, _make_job(status="closed"))
        job = get_job(db, "job-1")
        assert job is not None
        assert job.status == "closed"

    def test_missing(self, db) -> None:  # type: ignore[no-untyped-def]
        assert get_job(db, "nope") is None


class TestApplications:
    def test_insert_and_get(self, db) -> None:  # type: ignore[no-untyped-def]
        app = _make_app()
        assert insert_application(db, app) is True
        loaded = get_application(db, app.id)
        assert loaded is not None
        assert loaded.candidate_email == "dev@example.com"

    def test_duplicate_job_email_refused(self, db) -> None:  # type: ignore[no-untyped-def]
        assert insert_application(db, _make_app()) is True
        assert insert_application(db, _make_app("DEV@example.com")) is False

    def test_same_email_other_job_allowed(self, db) -> None:  # type: ignore[no-untyped-def]
        assert insert_application(db, _make_app()) is True
        assert insert_application(db, _make_app(job_id="job-2")) is True

    def test_find_case_insensitive(self, db) -> None:  # type: ignore[no-untyped-def]
        app = _make_app()
        insert_application(db, app)
        found = find_application(db, "job-1", " Dev@Example.com")
        assert found is not None
        assert found.id == app.id

    def test_save_application_persists_state(self, db) -> None:  # type: ignore[no-untyped-def]
        app = _make_app()
        insert_application(db, app)
        app.status = "in-progress"
        app.started_at = _T0
        app.similarity_matches = [
            SimilarityMatch(question_id="c1", other_application_id="other", similarity=0.93, level="critical")
        ]
        save_application(db, app)
        loaded = get_application(db, app.id)
        assert loaded is not None
        assert loaded.status == "in-progress"
        assert loaded.started_at == _T0
        assert loaded.similarity_matches == app.similarity_matches

    def test_list_filters_by_status(self, db) -> None:  # type: ignore[no-untyped-def]
        a = _make_app("a@example.com", status="completed", completed_at=_T0)
        b = _make_app("b@example.com", status="in-progress")
        insert_application(db, a)
        insert_application(db, b)
        done = list_applications(db, "job-1", {"completed"})
        assert [x.id for x in done] == [a.id]
        assert len(list_applications(db)) == 2

    def test_job_has_answers(self, db) -> None:  # type: ignore[no-untyped-def]
        app = _make_app()
        insert_application(db, app)
        assert job_has_answers(db, "job-1") is False
        app.upsert_answer(
            AnswerRecord(
                question_id="q1",
                payload=ObjectiveAnswer(selected_option=0),
                grade=GradeResult(status="graded", score=10, max_score=10),
            )
        )
        save_application(db, app)
        assert job_has_answers(db, "job-1") is True


class TestProctoringEvents:
    def test_duplicate_ignored(self, db) -> None:  # type: ignore[no-untyped-def]
        event = ProctoringEvent(event_id="e1", kind="copy-paste")
        assert insert_proctoring_event(db, "app-1", event) is True
        assert insert_proctoring_event(db, "app-1", event) is False
        assert len(list_proctoring_events(db, "app-1")) == 1

    def test_scoped_per_application(self, db) -> None:  # type: ignore[no-untyped-def]
        event = ProctoringEvent(event_id="e1", kind="tab-switch")
        assert insert_proctoring_event(db, "app-1", event) is True
        assert insert_proctoring_event(db, "app-2", event) is True

    def test_listed_in_event_id_order(self, db) -> None:  # type: ignore[no-untyped-def]
        for eid in ("e3", "e1", "e2"):
            insert_proctoring_event(db, "app-1", ProctoringEvent(event_id=eid, kind="tab-switch"))
        assert [e.event_id for e in list_proctoring_events(db, "app-1")] == ["e1", "e2", "e3"]


class TestLeaderboard:
    def test_replace_sets_application_ranks(self, db) -> None:  # type: ignore[no-untyped-def]
        a = _make_app("a@example.com", status="completed", completed_at=_T0)
        b = _make_app("b@example.com", status="completed", completed_at=_T0 + timedelta(seconds=5))
        insert_application(db, a)
        insert_application(db, b)

        replace_leaderboard(db, "job-1", [_entry(b, 1, 90.0, 50), _entry(a, 2, 70.0, 0)])

        board = get_leaderboard(db, "job-1")
        assert [e.application_id for e in board] == [b.id, a.id]
        loaded = get_application(db, b.id)
        assert loaded is not None
        assert loaded.rank == 1
        assert loaded.percentile == 50

    def test_replace_clears_previous(self, db) -> None:  # type: ignore[no-untyped-def]
        a = _make_app("a@example.com", status="completed", completed_at=_T0)
        insert_application(db, a)
        replace_leaderboard(db, "job-1", [_entry(a, 1, 70.0, 0)])
        replace_leaderboard(db, "job-1", [])
        assert get_leaderboard(db, "job-1") == []
        loaded = get_application(db, a.id)
        assert loaded is not None
        assert loaded.rank is None

    def test_save_application_keeps_rank(self, db) -> None:  # type: ignore[no-untyped-def]
        a = _make_app("a@example.com", status="completed", completed_at=_T0)
        insert_application(db, a)
        replace_leaderboard(db, "job-1", [_entry(a, 1, 70.0, 0)])
        loaded = get_application(db, a.id)
        assert loaded is not None
        loaded.ai_reasoning = "updated"
        save_application(db, loaded)
        again = get_application(db, a.id)
        assert again is not None
        assert again.rank == 1

    def test_review_markers_round_trip(self, db) -> None:  # type: ignore[no-untyped-def]
        a = _make_app("a@example.com", status="completed", completed_at=_T0)
        insert_application(db, a)
        entry = _entry(a, 1, 70.0, 0).model_copy(update={"pending_review": 1, "needs_review": True})
        replace_leaderboard(db, "job-1", [entry])
        loaded = get_leaderboard(db, "job-1")[0]
        assert loaded.pending_review == 1
        assert loaded.needs_review is True

    def test_limit(self, db) -> None:  # type: ignore[no-untyped-def]
        apps = [_make_app(f"{i}@example.com", status="completed", completed_at=_T0) for i in range(3)]
        for app in apps:
            insert_application(db, app)
        replace_leaderboard(
            db, "job-1", [_entry(app, i + 1, 90.0 - i, 0) for i, app in enumerate(apps)]
        )
        assert len(get_leaderboard(db, "job-1", limit=2)) == 2
