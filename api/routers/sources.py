from __future__ import annotations

from fastapi import APIRouter, Query

from config.sources import SOURCE_CONFIGS
from data.database import get_session
from data.repositories import ScrapeLogRepository

router = APIRouter(prefix="/api/sources", tags=["sources"])


@router.get("")
async def list_sources():
    return [
        {"name": s.name, "url": s.url, "interval_minutes": s.interval_minutes}
        for s in SOURCE_CONFIGS.values()
    ]


@router.get("/runs")
async def recent_runs(
    limit: int = Query(20, ge=1, le=100),
    source: str | None = None,
):
    async with get_session() as session:
        repo = ScrapeLogRepository(session)
        runs = await repo.recent_runs(limit=limit, source=source)
        return [
            {
                "id": r.id,
                "source": r.source,
                "mode": r.mode,
                "status": r.status,
                "pages_scraped": r.pages_scraped,
                "posts_scraped": r.posts_scraped,
                "new_posts": r.new_posts,
                "updated_posts": r.updated_posts,
                "duplicate_posts": r.duplicate_posts,
                "deleted_posts": r.deleted_posts,
                "last_known_id": r.last_known_id,
                "highest_id_seen": r.highest_id_seen,
                "error_message": r.error_message,
                "duration_seconds": r.duration_seconds,
                "started_at": r.started_at.isoformat() if r.started_at else None,
                "finished_at": r.finished_at.isoformat() if r.finished_at else None,
            }
            for r in runs
        ]


@router.get("/jobs")
async def recent_jobs(limit: int = Query(20, ge=1, le=100)):
    async with get_session() as session:
        repo = ScrapeLogRepository(session)
        jobs = await repo.recent_jobs(limit=limit)
        return [
            {
                "id": j.id,
                "source": j.source,
                "mode": j.mode,
                "status": j.status,
                "posts_scraped": j.posts_scraped,
                "error_message": j.error_message,
                "started_at": j.started_at.isoformat() if j.started_at else None,
                "completed_at": j.completed_at.isoformat() if j.completed_at else None,
            }
            for j in jobs
        ]
