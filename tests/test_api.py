from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from config.sources import get_source
from core.exceptions import SchedulerError
from core.models import CrawlMode, ScrapingResult
from scrapers.scheduler import ScheduledSource


class FakeScheduler:
    def __init__(self) -> None:
        self.active: dict[str, ScheduledSource] = {}

    def start_source(self, name, interval=None, mode=None, max_pages=None):
        source = get_source(name)
        if name in self.active:
            raise SchedulerError(f"scraper {name} is already running")
        entry = ScheduledSource(
            source=source,
            interval=interval or timedelta(minutes=source.interval_minutes),
            mode=CrawlMode(mode or "latest"),
            max_pages=max_pages or 10,
        )
        self.active[name] = entry
        return entry

    def stop_source(self, name):
        if name not in self.active:
            raise SchedulerError(f"scraper {name} is not running")
        self.active.pop(name).stop()

    def stop_all(self):
        names = sorted(self.active)
        self.active.clear()
        return names

    def list_active_sources(self):
        return sorted(self.active)

    def get_status(self):
        return {"running": True, "sources": [{"name": n} for n in sorted(self.active)]}

    async def run_source(self, name, mode=None, max_pages=None):
        get_source(name)
        result = ScrapingResult(source=name, mode=CrawlMode(mode or "latest"))
        result.pages_scraped = max_pages or 1
        result.finish()
        return result


@pytest.fixture
def client():
    app = create_app()
    app.state.scheduler = FakeScheduler()
    return TestClient(app)


def test_start_and_stop_source(client):
    resp = client.post("/api/scraper/sources/hackernews/start", params={"interval_minutes": 2})
    assert resp.status_code == 200
    assert resp.json()["interval_seconds"] == 120

    assert client.post("/api/scraper/sources/hackernews/start").status_code == 409
    assert client.get("/api/scraper/status").json()["active"] == ["hackernews"]

    assert client.post("/api/scraper/sources/hackernews/stop").status_code == 200
    assert client.post("/api/scraper/sources/hackernews/stop").status_code == 409


def test_unknown_source_is_404(client):
    assert client.post("/api/scraper/sources/nope/start").status_code == 404
    assert client.post("/api/scraper/run/nope").status_code == 404


def test_stop_all(client):
    client.post("/api/scraper/sources/hackernews/start")
    client.post("/api/scraper/sources/hackernews_ask/start")
    resp = client.post("/api/scraper/stop-all")
    assert resp.json() == {"stopped": ["hackernews", "hackernews_ask"]}


def test_manual_run_returns_summary(client):
    resp = client.post("/api/scraper/run/hackernews", params={"mode": "since_last", "max_pages": 4})
    assert resp.status_code == 200
    body = resp.json()
    assert body["mode"] == "since_last"
    assert body["pages_scraped"] == 4
    assert body["deleted_posts"] == 0
    assert body["status"] == "completed"


def test_status_without_scheduler():
    client = TestClient(create_app())
    assert client.get("/api/scraper/status").json() == {"running": False, "sources": []}
    assert client.post("/api/scraper/stop-all").status_code == 503


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
