"""Listing Sync entry point."""

from __future__ import annotations

import logging

import uvicorn

from api.app import create_app
from config.settings import settings
from core.exceptions import ConfigurationError, SchedulerError
from data.database import init_db
from scrapers.scheduler import SourceScheduler

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)
log = logging.getLogger(__name__)

app = create_app()


@app.on_event("startup")
async def on_startup() -> None:
    log.info("Initialising database…")
    await init_db()

    log.info("Starting source scheduler…")
    scheduler = SourceScheduler()
    app.state.scheduler = scheduler
    scheduler.start()

    if settings.AUTO_START_SOURCES:
        for name in settings.enabled_sources():
            try:
                scheduler.start_source(name)
            except (ConfigurationError, SchedulerError) as e:
                log.error("Could not start source %s: %s", name, e)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    if hasattr(app.state, "scheduler"):
        app.state.scheduler.shutdown()
        log.info("Source scheduler stopped.")


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.DASHBOARD_PORT,
        reload=False,
    )
