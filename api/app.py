from __future__ import annotations

import logging

from fastapi import FastAPI

from api.routers import posts, scraper_control, sources

log = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(title="Listing Sync", version="0.1.0")

    # Register API routers
    app.include_router(posts.router)
    app.include_router(sources.router)
    app.include_router(scraper_control.router)

    # Health check
    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app
