from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config.settings import settings
from config.sources import SourceConfig, get_source
from core.exceptions import SchedulerError
from core.models import CrawlMode, ScrapingResult
from data.repositories import PostStore
from scrapers.strategy import CrawlStrategyEngine

log = logging.getLogger(__name__)

EngineFactory = Callable[[SourceConfig, CrawlMode, int], CrawlStrategyEngine]


def default_engine_factory(
    source: SourceConfig, mode: CrawlMode, max_pages: int
) -> CrawlStrategyEngine:
    return CrawlStrategyEngine(source, PostStore(source.name), mode=mode, max_pages=max_pages)


@dataclass
class ScheduledSource:
    """Handle for one periodically crawled source."""

    source: SourceConfig
    interval: timedelta
    mode: CrawlMode
    max_pages: int
    cancel: threading.Event = field(default_factory=threading.Event)
    is_active: bool = True
    job_ids: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.source.name

    def stop(self) -> None:
        self.cancel.set()
        self.is_active = False


class SourceScheduler:
    """Runs each started source now and then on its own interval.

    Sources are started and stopped independently. The registry lock is held
    only while the mapping and its jobs are touched; crawls run outside it.
    Stopping a source prevents future runs but lets an in-flight run finish.
    """

    def __init__(
        self,
        engine_factory: EngineFactory | None = None,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._engine_factory = engine_factory or default_engine_factory
        self._scheduler = scheduler or AsyncIOScheduler()
        self._sources: dict[str, ScheduledSource] = {}
        # names with a crawl in flight, scheduled or manual
        self._crawling: set[str] = set()
        self._lock = threading.Lock()

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            log.info("Source scheduler started")

    def start_source(
        self,
        name: str,
        interval: timedelta | None = None,
        mode: CrawlMode | str | None = None,
        max_pages: int | None = None,
    ) -> ScheduledSource:
        source = get_source(name)
        entry = ScheduledSource(
            source=source,
            interval=interval or timedelta(minutes=source.interval_minutes),
            mode=CrawlMode(mode or settings.SCRAPE_MODE),
            max_pages=max_pages or settings.SCRAPE_MAX_PAGES,
        )

        with self._lock:
            current = self._sources.get(name)
            if current is not None and current.is_active:
                raise SchedulerError(f"scraper {name} is already running")

            self.start()
            # one job, first fire right away; max_instances then covers every run
            job = self._scheduler.add_job(
                self._run_scheduled,
                "interval",
                seconds=entry.interval.total_seconds(),
                args=[entry],
                id=f"crawl_{name}",
                replace_existing=True,
                coalesce=True,
                max_instances=1,
                next_run_time=datetime.now(timezone.utc),
            )
            entry.job_ids = [job.id]
            self._sources[name] = entry

        log.info("Started scheduler for %s with interval %s (%s mode)", name, entry.interval, entry.mode.value)
        return entry

    def stop_source(self, name: str) -> None:
        with self._lock:
            entry = self._sources.get(name)
            if entry is None or not entry.is_active:
                raise SchedulerError(f"scraper {name} is not running")
            self._deactivate(entry)
            del self._sources[name]
        log.info("Stopped scheduler for %s", name)

    def stop_all(self) -> list[str]:
        with self._lock:
            stopped = [name for name, entry in self._sources.items() if entry.is_active]
            for name in stopped:
                self._deactivate(self._sources[name])
            self._sources.clear()
        for name in stopped:
            log.info("Stopped scheduler for %s", name)
        return stopped

    def shutdown(self) -> None:
        self.stop_all()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def is_source_active(self, name: str) -> bool:
        with self._lock:
            entry = self._sources.get(name)
            return entry is not None and entry.is_active

    def list_active_sources(self) -> list[str]:
        with self._lock:
            return sorted(name for name, entry in self._sources.items() if entry.is_active)

    async def run_source(
        self,
        name: str,
        mode: CrawlMode | str | None = None,
        max_pages: int | None = None,
    ) -> ScrapingResult:
        """Manually trigger a single run of a source.

        Raises ``SchedulerError`` if a run of the same source is in flight.
        """
        source = get_source(name)
        if not self._claim(name):
            raise SchedulerError(f"scraper {name} is already crawling")
        try:
            engine = self._engine_factory(
                source,
                CrawlMode(mode or settings.SCRAPE_MODE),
                max_pages or settings.SCRAPE_MAX_PAGES,
            )
            return await engine.run()
        finally:
            self._release(name)

    def get_status(self) -> dict:
        with self._lock:
            entries = list(self._sources.values())
        sources = []
        for entry in entries:
            job = self._scheduler.get_job(f"crawl_{entry.name}")
            sources.append(
                {
                    "name": entry.name,
                    "active": entry.is_active,
                    "mode": entry.mode.value,
                    "interval_seconds": entry.interval.total_seconds(),
                    "next_run": job.next_run_time.isoformat()
                    if job and job.next_run_time
                    else None,
                }
            )
        return {"running": self._scheduler.running, "sources": sources}

    def _deactivate(self, entry: ScheduledSource) -> None:
        entry.stop()
        for job_id in entry.job_ids:
            try:
                self._scheduler.remove_job(job_id)
            except JobLookupError:
                pass

    def _claim(self, name: str) -> bool:
        with self._lock:
            if name in self._crawling:
                return False
            self._crawling.add(name)
            return True

    def _release(self, name: str) -> None:
        with self._lock:
            self._crawling.discard(name)

    async def _run_scheduled(self, entry: ScheduledSource) -> ScrapingResult | None:
        if entry.cancel.is_set():
            return None
        if not self._claim(entry.name):
            log.warning("Skipping run of %s: previous run still in progress", entry.name)
            return None
        try:
            engine = self._engine_factory(entry.source, entry.mode, entry.max_pages)
            result = await engine.run()
        finally:
            self._release(entry.name)
        log.info(
            "Auto-scraped %s: %d new, %d updated, %d errors",
            entry.name,
            result.new_posts,
            result.updated_posts,
            len(result.errors),
        )
        return result
