"""Ranking engine: per-job leaderboard rebuilt from application records.

Order: weighted score descending, then earlier completion, then id.
Percentile is "better than": share of the pool with a strictly lower score.
Rebuilds for the same job are serialized; different jobs never contend.
"""

import asyncio
import bisect
import logging
import math
import sqlite3
import weakref

from src.core.db import get_leaderboard, list_applications, replace_leaderboard
from src.core.schemas import RANKED_STATUSES, Application, LeaderboardEntry

logger = logging.getLogger(__name__)


def _percentile(strictly_lower: int, pool_size: int) -> int:
    # round half up; built-in round() is banker's rounding
    return math.floor(100.0 * strictly_lower / pool_size + 0.5)


def compute_rankings(applications: list[Application]) -> list[LeaderboardEntry]:
    """Rank every completed-or-later application. Pure; input order is irrelevant."""
    pool = [
        a for a in applications
        if a.status in RANKED_STATUSES and a.completed_at is not None
    ]
    if not pool:
        return []

    ordered = sorted(
        pool,
        key=lambda a: (
            a.weighted_score is None,
            -(a.weighted_score or 0.0),
            a.completed_at,
            a.id,
        ),
    )
    scores = sorted(a.weighted_score for a in pool if a.weighted_score is not None)
    size = len(pool)

    entries: list[LeaderboardEntry] = []
    for position, app in enumerate(ordered, start=1):
        lower = 0 if app.weighted_score is None else bisect.bisect_left(scores, app.weighted_score)
        entries.append(
            LeaderboardEntry(
                application_id=app.id,
                candidate_email=app.candidate_email,
                rank=position,
                score=app.weighted_score,
                percentile=_percentile(lower, size),
                status=app.status,
                completed_at=app.completed_at,  # type: ignore[arg-type]
                pending_review=len(app.pending_review),
                needs_review=app.needs_review,
            )
        )
    return entries


class RankingEngine:
    """Rebuilds and serves job leaderboards.

    Usage::

        engine = RankingEngine(conn)
        await engine.rebuild(job_id)
        top = engine.leaderboard(job_id, limit=10)
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        # a job's lock lives only while some rebuild holds or awaits it
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, job_id: str) -> asyncio.Lock:
        lock = self._locks.get(job_id)
        if lock is None:
            lock = self._locks[job_id] = asyncio.Lock()
        return lock

    async def rebuild(self, job_id: str) -> list[LeaderboardEntry]:
        """Recompute the whole pool for a job and persist it atomically."""
        async with self._lock_for(job_id):
            pool = list_applications(self._conn, job_id, RANKED_STATUSES)
            entries = compute_rankings(pool)
            replace_leaderboard(self._conn, job_id, entries)
        logger.info("Leaderboard rebuilt for job %s: %d ranked", job_id, len(entries))
        return entries

    def leaderboard(self, job_id: str, limit: int | None = None) -> list[LeaderboardEntry]:
        return get_leaderboard(self._conn, job_id, limit)
