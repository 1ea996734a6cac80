from __future__ import annotations

from fastapi import APIRouter, Query

from data.database import get_session
from data.repositories import PostRepository

router = APIRouter(prefix="/api/posts", tags=["posts"])


def _post_to_dict(p) -> dict:
    return {
        "id": p.id,
        "source": p.source,
        "source_id": p.source_id,
        "title": p.title,
        "url": p.url,
        "author": p.author,
        "score": p.score,
        "num_comments": p.num_comments,
        "published_at": p.published_at.isoformat() if p.published_at else None,
        "scraped_at": p.scraped_at.isoformat() if p.scraped_at else None,
        "last_seen": p.last_seen.isoformat() if p.last_seen else None,
    }


@router.get("")
async def list_posts(
    source: str | None = None,
    sort: str = Query("published_at", pattern="^(published_at|score|num_comments|source_id)$"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    async with get_session() as session:
        repo = PostRepository(session)
        posts = await repo.list_posts(
            source=source,
            sort=sort,
            order=order,
            limit=limit,
            offset=offset,
        )
        return [_post_to_dict(p) for p in posts]


@router.get("/{source}/{source_id}/history")
async def post_history(source: str, source_id: int):
    async with get_session() as session:
        repo = PostRepository(session)
        rows = await repo.history(source, source_id)
        return [
            {
                "score": h.score,
                "num_comments": h.num_comments,
                "recorded_at": h.recorded_at.isoformat() if h.recorded_at else None,
            }
            for h in rows
        ]
