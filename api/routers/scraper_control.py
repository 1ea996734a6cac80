from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from core.exceptions import ConfigurationError, SchedulerError
from core.models import CrawlMode
from scrapers.scheduler import SourceScheduler

router = APIRouter(prefix="/api/scraper", tags=["scraper"])


def get_scheduler(request: Request) -> SourceScheduler:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(503, "Scheduler not initialized")
    return scheduler


@router.post("/sources/{name}/start")
async def start_source(
    name: str,
    interval_minutes: float | None = Query(None, gt=0),
    mode: CrawlMode | None = None,
    scheduler: SourceScheduler = Depends(get_scheduler),
):
    interval = timedelta(minutes=interval_minutes) if interval_minutes else None
    try:
        entry = scheduler.start_source(name, interval=interval, mode=mode)
    except ConfigurationError as e:
        raise HTTPException(404, e.message)
    except SchedulerError as e:
        raise HTTPException(409, e.message)
    return {
        "source": entry.name,
        "active": entry.is_active,
        "mode": entry.mode.value,
        "interval_seconds": entry.interval.total_seconds(),
    }


@router.post("/sources/{name}/stop")
async def stop_source(name: str, scheduler: SourceScheduler = Depends(get_scheduler)):
    try:
        scheduler.stop_source(name)
    except SchedulerError as e:
        raise HTTPException(409, e.message)
    return {"source": name, "active": False}


@router.post("/stop-all")
async def stop_all(scheduler: SourceScheduler = Depends(get_scheduler)):
    return {"stopped": scheduler.stop_all()}


@router.post("/run/{name}")
async def trigger_scrape(
    name: str,
    mode: CrawlMode | None = None,
    max_pages: int | None = Query(None, ge=1, le=100),
    scheduler: SourceScheduler = Depends(get_scheduler),
):
    try:
        result = await scheduler.run_source(name, mode=mode, max_pages=max_pages)
    except ConfigurationError as e:
        raise HTTPException(404, e.message)
    except SchedulerError as e:
        raise HTTPException(409, e.message)
    return result.to_dict()


@router.get("/status")
async def scheduler_status(request: Request):
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        return {"running": False, "sources": []}
    status = scheduler.get_status()
    status["active"] = scheduler.list_active_sources()
    return status
