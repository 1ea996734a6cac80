from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_upsert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.exceptions import PersistenceError
from core.models import Post, ScrapingResult
from data.database import async_session_factory, get_session
from data.schema import DBPost, DBPostHistory, DBScrapeJob, DBScrapeRun

log = logging.getLogger(__name__)

# the sqlite driver raises OverflowError for integers outside 64 bits
_DB_ERRORS = (SQLAlchemyError, OverflowError)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _snapshot(internal_id: int, score: int, num_comments: int) -> DBPostHistory:
    return DBPostHistory(
        post_id=internal_id, score=score, num_comments=num_comments, recorded_at=_utcnow()
    )


# ── PostStore ────────────────────────────────────────────────────────


class PostStore:
    """Reconciliation store for one source.

    Every call runs in its own short transaction, so concurrent runs of
    different sources only contend on SQLite's write lock. The upsert is a
    single ``INSERT .. ON CONFLICT DO UPDATE`` keyed on ``(source, source_id)``.
    """

    def __init__(
        self,
        source: str,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
    ) -> None:
        self._source = source
        self._factory = session_factory

    @property
    def source(self) -> str:
        return self._source

    async def record_exists(self, source_id: int) -> bool:
        return await self.current_counts(source_id) is not None

    async def current_counts(self, source_id: int) -> tuple[int, int] | None:
        """Stored ``(score, num_comments)`` for an item, or None if unknown."""
        q = select(DBPost.score, DBPost.num_comments).where(
            DBPost.source == self._source, DBPost.source_id == source_id
        )
        try:
            async with get_session(self._factory) as session:
                row = (await session.execute(q)).first()
        except _DB_ERRORS as exc:
            raise PersistenceError(f"lookup of {source_id} failed: {exc}") from exc
        return (row[0], row[1]) if row else None

    async def upsert(self, post: Post, with_history: bool = False) -> int:
        """Insert or refresh a post; returns its internal row id.

        With ``with_history`` a snapshot of the new counts is written in the
        same transaction, so a post never lands without it.
        """
        now = _utcnow()
        stmt = (
            sqlite_upsert(DBPost)
            .values(
                source=self._source,
                source_id=post.source_id,
                title=post.title,
                url=post.link,
                author=post.author,
                score=post.score,
                num_comments=post.comment_count,
                published_at=post.published_at,
                scraped_at=post.captured_at,
                created_at=now,
                updated_at=now,
                last_seen=now,
            )
            .on_conflict_do_update(
                index_elements=["source", "source_id"],
                set_={
                    "score": post.score,
                    "num_comments": post.comment_count,
                    "scraped_at": post.captured_at,
                    "updated_at": now,
                    "last_seen": now,
                },
            )
            .returning(DBPost.id)
        )
        try:
            async with get_session(self._factory) as session:
                internal_id = (await session.execute(stmt)).scalar_one()
                if with_history:
                    session.add(_snapshot(internal_id, post.score, post.comment_count))
        except _DB_ERRORS as exc:
            raise PersistenceError(f"upsert of {post.source_id} failed: {exc}") from exc
        return internal_id

    async def append_history(self, internal_id: int, score: int, num_comments: int) -> None:
        try:
            async with get_session(self._factory) as session:
                session.add(_snapshot(internal_id, score, num_comments))
        except _DB_ERRORS as exc:
            raise PersistenceError(f"history for post {internal_id} failed: {exc}") from exc

    async def highest_known_id(self) -> int:
        q = select(func.coalesce(func.max(DBPost.source_id), 0)).where(
            DBPost.source == self._source
        )
        try:
            async with get_session(self._factory) as session:
                return int(await session.scalar(q) or 0)
        except _DB_ERRORS as exc:
            raise PersistenceError(f"highest id lookup failed: {exc}") from exc

    async def create_run_journal_entry(self, mode: str) -> int:
        job = DBScrapeJob(source=self._source, mode=mode, status="running", started_at=_utcnow())
        try:
            async with get_session(self._factory) as session:
                session.add(job)
                await session.flush()
                return job.id
        except _DB_ERRORS as exc:
            raise PersistenceError(f"could not open run journal: {exc}") from exc

    async def complete_run_journal_entry(
        self, job_id: int, status: str, posts_scraped: int, error_message: str = ""
    ) -> None:
        stmt = (
            update(DBScrapeJob)
            .where(DBScrapeJob.id == job_id)
            .values(
                status=status,
                posts_scraped=posts_scraped,
                error_message=error_message or None,
                completed_at=_utcnow(),
            )
        )
        try:
            async with get_session(self._factory) as session:
                await session.execute(stmt)
        except _DB_ERRORS as exc:
            raise PersistenceError(f"could not close run journal {job_id}: {exc}") from exc

    async def persist_detailed_run_result(self, result: ScrapingResult) -> None:
        run = DBScrapeRun(
            source=result.source,
            mode=result.mode.value,
            status=result.status,
            pages_scraped=result.pages_scraped,
            posts_scraped=result.posts_scraped,
            new_posts=result.new_posts,
            updated_posts=result.updated_posts,
            duplicate_posts=result.duplicate_posts,
            deleted_posts=result.deleted_posts,
            last_known_id=result.last_known_id,
            highest_id_seen=result.highest_id_seen,
            error_count=len(result.errors),
            error_message="; ".join(result.errors)[:500],
            duration_seconds=round(result.duration.total_seconds(), 2),
            started_at=result.start_time,
            finished_at=result.end_time,
        )
        try:
            async with get_session(self._factory) as session:
                session.add(run)
        except _DB_ERRORS as exc:
            raise PersistenceError(f"could not store run result: {exc}") from exc


# ── PostRepository ───────────────────────────────────────────────────


class PostRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._s = session

    async def list_posts(
        self,
        *,
        source: str | None = None,
        sort: str = "published_at",
        order: str = "desc",
        limit: int = 50,
        offset: int = 0,
    ) -> list[DBPost]:
        q = select(DBPost)
        if source:
            q = q.where(DBPost.source == source)
        sort_col = getattr(DBPost, sort, DBPost.published_at)
        q = q.order_by(sort_col.desc() if order == "desc" else sort_col.asc())
        q = q.limit(limit).offset(offset)
        result = await self._s.execute(q)
        return list(result.scalars().all())

    async def history(self, source: str, source_id: int) -> list[DBPostHistory]:
        q = (
            select(DBPostHistory)
            .join(DBPost, DBPost.id == DBPostHistory.post_id)
            .where(DBPost.source == source, DBPost.source_id == source_id)
            .order_by(DBPostHistory.recorded_at.asc(), DBPostHistory.id.asc())
        )
        result = await self._s.execute(q)
        return list(result.scalars().all())


# ── ScrapeLogRepository ──────────────────────────────────────────────


class ScrapeLogRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._s = session

    async def recent_runs(self, limit: int = 20, source: str | None = None) -> list[DBScrapeRun]:
        q = select(DBScrapeRun)
        if source:
            q = q.where(DBScrapeRun.source == source)
        q = q.order_by(DBScrapeRun.started_at.desc()).limit(limit)
        result = await self._s.execute(q)
        return list(result.scalars().all())

    async def recent_jobs(self, limit: int = 20) -> list[DBScrapeJob]:
        q = select(DBScrapeJob).order_by(DBScrapeJob.started_at.desc()).limit(limit)
        result = await self._s.execute(q)
        return list(result.scalars().all())
