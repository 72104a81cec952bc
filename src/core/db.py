"""SQLite persistence for jobs, applications, proctoring events and leaderboards.

Applications are the source of truth. Rank and percentile live in their own
columns and are only written by ``replace_leaderboard``, in the same
transaction that rewrites the job's leaderboard rows.
"""

import sqlite3
from pathlib import Path

from src.core.schemas import Application, Job, LeaderboardEntry, ProctoringEvent

_JOBS_TABLE = """
CREATE TABLE IF NOT EXISTS jobs (
    id          TEXT PRIMARY KEY,
    title       TEXT NOT NULL,
    status      TEXT NOT NULL DEFAULT 'open',
    payload     TEXT NOT NULL
);
"""

_APPLICATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS applications (
    id               TEXT PRIMARY KEY,
    job_id           TEXT NOT NULL,
    candidate_email  TEXT NOT NULL,
    status           TEXT NOT NULL DEFAULT 'pending',
    answer_count     INTEGER NOT NULL DEFAULT 0,
    weighted_score   REAL,
    started_at       TEXT,
    completed_at     TEXT,
    rank             INTEGER,
    percentile       INTEGER,
    payload          TEXT NOT NULL,
    UNIQUE(job_id, candidate_email)
);
"""

_PROCTORING_EVENTS_TABLE = """
CREATE TABLE IF NOT EXISTS proctoring_events (
    application_id  TEXT NOT NULL,
    event_id        TEXT NOT NULL,
    kind            TEXT NOT NULL,
    severity        TEXT NOT NULL DEFAULT 'low',
    occurred_at     TEXT NOT NULL,
    PRIMARY KEY (application_id, event_id)
);
"""

_LEADERBOARD_TABLE = """
CREATE TABLE IF NOT EXISTS leaderboard (
    job_id          TEXT NOT NULL,
    application_id  TEXT NOT NULL,
    candidate_email TEXT NOT NULL,
    rank            INTEGER NOT NULL,
    score           REAL,
    percentile      INTEGER NOT NULL,
    status          TEXT NOT NULL,
    completed_at    TEXT NOT NULL,
    pending_review  INTEGER NOT NULL DEFAULT 0,
    needs_review    INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (job_id, application_id)
);
"""

_APPLICATION_PAYLOAD_EXCLUDE = {"rank", "percentile"}


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_JOBS_TABLE)
    conn.execute(_APPLICATIONS_TABLE)
    conn.execute(_PROCTORING_EVENTS_TABLE)
    conn.execute(_LEADERBOARD_TABLE)
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_applications_job_status "
        "ON applications (job_id, status)"
    )
    conn.commit()
    return conn


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


def save_job(conn: sqlite3.Connection, job: Job) -> None:
    """Insert or replace a job record."""
    conn.execute(
        """
        INSERT INTO jobs (id, title, status, payload)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            title = excluded.title,
            status = excluded.status,
            payload = excluded.payload
        """,
        (job.id, job.title, job.status, job.model_dump_json()),
    )
    conn.commit()


def get_job(conn: sqlite3.Connection, job_id: str) -> Job | None:
    row = conn.execute("SELECT payload FROM jobs WHERE id = ?", (job_id,)).fetchone()
    if row is None:
        return None
    return Job.model_validate_json(row["payload"])


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------


def _application_from_row(row: sqlite3.Row) -> Application:
    app = Application.model_validate_json(row["payload"])
    return app.model_copy(update={"rank": row["rank"], "percentile": row["percentile"]})


def insert_application(conn: sqlite3.Connection, app: Application) -> bool:
    """Insert an application, refusing a second one for the same (job, email).

    Returns True if a new row was inserted, False if it was a duplicate.
    """
    try:
        conn.execute(
            """
            INSERT INTO applications
                (id, job_id, candidate_email, status, answer_count, weighted_score,
                 started_at, completed_at, payload)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                app.id,
                app.job_id,
                app.candidate_email,
                app.status,
                len(app.answers),
                app.weighted_score,
                app.started_at.isoformat() if app.started_at else None,
                app.completed_at.isoformat() if app.completed_at else None,
                app.model_dump_json(exclude=_APPLICATION_PAYLOAD_EXCLUDE),
            ),
        )
        conn.commit()
        return True
    except sqlite3.IntegrityError:
        return False


def save_application(conn: sqlite3.Connection, app: Application) -> None:
    """Persist an application's state. Rank and percentile are left untouched."""
    conn.execute(
        """
        UPDATE applications SET
            status = ?,
            answer_count = ?,
            weighted_score = ?,
            started_at = ?,
            completed_at = ?,
            payload = ?
        WHERE id = ?
        """,
        (
            app.status,
            len(app.answers),
            app.weighted_score,
            app.started_at.isoformat() if app.started_at else None,
            app.completed_at.isoformat() if app.completed_at else None,
            app.model_dump_json(exclude=_APPLICATION_PAYLOAD_EXCLUDE),
            app.id,
        ),
    )
    conn.commit()


def get_application(conn: sqlite3.Connection, application_id: str) -> Application | None:
    row = conn.execute(
        "SELECT payload, rank, percentile FROM applications WHERE id = ?",
        (application_id,),
    ).fetchone()
    if row is None:
        return None
    return _application_from_row(row)


def find_application(
    conn: sqlite3.Connection,
    job_id: str,
    candidate_email: str,
) -> Application | None:
    """Look up the single application for a (job, email) pair."""
    row = conn.execute(
        """
        SELECT payload, rank, percentile FROM applications
        WHERE job_id = ? AND candidate_email = ?
        """,
        (job_id, candidate_email.strip().lower()),
    ).fetchone()
    if row is None:
        return None
    return _application_from_row(row)


def list_applications(
    conn: sqlite3.Connection,
    job_id: str | None = None,
    statuses: frozenset[str] | set[str] | None = None,
) -> list[Application]:
    """Return applications, optionally filtered by job and status."""
    query = "SELECT payload, rank, percentile FROM applications"
    clauses: list[str] = []
    params: list[str] = []
    if job_id is not None:
        clauses.append("job_id = ?")
        params.append(job_id)
    if statuses:
        ordered = sorted(statuses)
        clauses.append(f"status IN ({', '.join('?' for _ in ordered)})")
        params.extend(ordered)
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " ORDER BY id"
    return [_application_from_row(row) for row in conn.execute(query, params).fetchall()]


def job_has_answers(conn: sqlite3.Connection, job_id: str) -> bool:
    """Return True if any application for the job has recorded an answer."""
    row = conn.execute(
        "SELECT 1 FROM applications WHERE job_id = ? AND answer_count > 0 LIMIT 1",
        (job_id,),
    ).fetchone()
    return row is not None


# ---------------------------------------------------------------------------
# Proctoring events
# ---------------------------------------------------------------------------


def insert_proctoring_event(
    conn: sqlite3.Connection,
    application_id: str,
    event: ProctoringEvent,
) -> bool:
    """Record an event once per (application, event_id).

    Returns True if the event was new, False if it was a duplicate delivery.
    """
    cursor = conn.execute(
        """
        INSERT OR IGNORE INTO proctoring_events
            (application_id, event_id, kind, severity, occurred_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (
            application_id,
            event.event_id,
            event.kind,
            event.severity,
            event.occurred_at.isoformat(),
        ),
    )
    conn.commit()
    return cursor.rowcount == 1


def list_proctoring_events(
    conn: sqlite3.Connection,
    application_id: str,
) -> list[ProctoringEvent]:
    rows = conn.execute(
        """
        SELECT event_id, kind, severity, occurred_at FROM proctoring_events
        WHERE application_id = ?
        ORDER BY event_id
        """,
        (application_id,),
    ).fetchall()
    return [
        ProctoringEvent(
            event_id=row["event_id"],
            kind=row["kind"],
            severity=row["severity"],
            occurred_at=row["occurred_at"],
        )
        for row in rows
    ]


# ---------------------------------------------------------------------------
# Leaderboard
# ---------------------------------------------------------------------------


def replace_leaderboard(
    conn: sqlite3.Connection,
    job_id: str,
    entries: list[LeaderboardEntry],
) -> None:
    """Rewrite a job's leaderboard and application ranks in one transaction."""
    with conn:
        conn.execute("DELETE FROM leaderboard WHERE job_id = ?", (job_id,))
        conn.execute(
            "UPDATE applications SET rank = NULL, percentile = NULL WHERE job_id = ?",
            (job_id,),
        )
        conn.executemany(
            """
            INSERT INTO leaderboard
                (job_id, application_id, candidate_email, rank, score, percentile,
                 status, completed_at, pending_review, needs_review)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    job_id,
                    e.application_id,
                    e.candidate_email,
                    e.rank,
                    e.score,
                    e.percentile,
                    e.status,
                    e.completed_at.isoformat(),
                    e.pending_review,
                    int(e.needs_review),
                )
                for e in entries
            ],
        )
        conn.executemany(
            "UPDATE applications SET rank = ?, percentile = ? WHERE id = ?",
            [(e.rank, e.percentile, e.application_id) for e in entries],
        )


def get_leaderboard(
    conn: sqlite3.Connection,
    job_id: str,
    limit: int | None = None,
) -> list[LeaderboardEntry]:
    """Return the materialized leaderboard for a job, best rank first."""
    query = """
        SELECT application_id, candidate_email, rank, score, percentile, status, completed_at,
               pending_review, needs_review
        FROM leaderboard WHERE job_id = ? ORDER BY rank
    """
    params: tuple[object, ...] = (job_id,)
    if limit is not None:
        query += " LIMIT ?"
        params = (job_id, limit)
    return [
        LeaderboardEntry(
            application_id=row["application_id"],
            candidate_email=row["candidate_email"],
            rank=row["rank"],
            score=row["score"],
            percentile=row["percentile"],
            status=row["status"],
            completed_at=row["completed_at"],
            pending_review=row["pending_review"],
            needs_review=bool(row["needs_review"]),
        )
        for row in conn.execute(query, params).fetchall()
    ]
