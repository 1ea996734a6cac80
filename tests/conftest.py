"""
Shared fixtures: Hacker News style markup builders and in-memory fakes for
the page fetcher and the reconciliation store.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import pytest
from hypothesis import Verbosity, settings

from config.sources import get_source
from core.exceptions import FetchError, PersistenceError
from core.models import Post, ScrapingResult

settings.register_profile("fast", max_examples=25, deadline=2000, verbosity=Verbosity.quiet)
settings.register_profile("thorough", max_examples=200, deadline=10000, verbosity=Verbosity.normal)
settings.load_profile("fast")

logging.getLogger("scrapers").setLevel(logging.WARNING)

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def hn_row(
    source_id,
    *,
    title: str = "A post",
    href: str | None = None,
    score: int | None = 10,
    author: str | None = "alice",
    age_title: str | None = "2024-05-01T12:00:00 1714564800",
    age_text: str = "3 hours ago",
    comments: str = "5&nbsp;comments",
    with_meta: bool = True,
) -> str:
    href = href if href is not None else f"https://example.com/{source_id}"
    id_attr = f' id="{source_id}"' if source_id is not None else ""
    item = (
        f'<tr class="athing submission"{id_attr}>'
        f'<td class="title"><span class="rank">1.</span></td>'
        f'<td class="title"><span class="titleline"><a href="{href}">{title}</a>'
        f'<span class="sitebit comhead"> (<a href="from?site=example.com">'
        f'<span class="sitestr">example.com</span></a>)</span></span></td>'
        f"</tr>\n"
    )
    if not with_meta:
        return item

    score_html = f'<span class="score" id="score_{source_id}">{score} points</span> ' if score is not None else ""
    author_html = f'by <a href="user?id={author}" class="hnuser">{author}</a> ' if author else ""
    title_attr = f' title="{age_title}"' if age_title is not None else ""
    meta = (
        f'<tr><td colspan="2"></td><td class="subtext"><span class="subline">'
        f"{score_html}{author_html}"
        f'<span class="age"{title_attr}><a href="item?id={source_id}">{age_text}</a></span> '
        f'| <a href="hide?id={source_id}">hide</a> '
        f'| <a href="item?id={source_id}">{comments}</a>'
        f"</span></td></tr>\n"
        f'<tr class="spacer" style="height:5px"></tr>\n'
    )
    return item + meta


def hn_page(*rows: str) -> str:
    return (
        "<html><head><title>Hacker News</title></head><body>"
        '<table id="hnmain"><tr><td><table>\n'
        + "".join(rows)
        + "</table></td></tr></table></body></html>"
    )


def page_of(*ids: int, score: int = 10, comments: int = 5) -> str:
    return hn_page(*(hn_row(i, score=score, comments=f"{comments}&nbsp;comments") for i in ids))


class FakeFetcher:
    """Serves canned markup per page number of one source."""

    def __init__(self, pages: dict[int, str | Exception], source_name: str = "hackernews") -> None:
        self.source = get_source(source_name)
        self.pages = {self.source.page_url(n): body for n, body in pages.items()}
        self.fetched: list[str] = []

    async def fetch(self, url: str) -> str:
        self.fetched.append(url)
        body = self.pages.get(url)
        if isinstance(body, Exception):
            raise body
        if body is None:
            raise FetchError(f"HTTP 404 for {url}")
        return body


class FakeStore:
    """In-memory stand-in for PostStore."""

    def __init__(self, known: dict[int, tuple[int, int]] | list[int] | None = None) -> None:
        if isinstance(known, dict):
            self.posts = dict(known)
        else:
            self.posts = {sid: (10, 5) for sid in (known or [])}
        self.history: list[tuple[int, int, int]] = []
        self.jobs: dict[int, dict] = {}
        self.results: list[ScrapingResult] = []
        self.inserted: list[int] = []
        self.fail_upsert: set[int] = set()
        self.fail_history: set[int] = set()
        self.fail_highest = False
        self.fail_persist = False

    async def record_exists(self, source_id: int) -> bool:
        return source_id in self.posts

    async def current_counts(self, source_id: int) -> tuple[int, int] | None:
        return self.posts.get(source_id)

    async def upsert(self, post: Post, with_history: bool = False) -> int:
        if post.source_id in self.fail_upsert:
            raise PersistenceError(f"upsert of {post.source_id} failed")
        if with_history and post.source_id in self.fail_history:
            # the post and its snapshot share a transaction, so neither is kept
            raise PersistenceError(f"history for {post.source_id} failed")
        if post.source_id not in self.posts:
            self.inserted.append(post.source_id)
        self.posts[post.source_id] = (post.score, post.comment_count)
        if with_history:
            self.history.append((post.source_id, post.score, post.comment_count))
        return post.source_id

    async def append_history(self, internal_id: int, score: int, num_comments: int) -> None:
        self.history.append((internal_id, score, num_comments))

    async def highest_known_id(self) -> int:
        if self.fail_highest:
            raise PersistenceError("database unavailable")
        return max(self.posts, default=0)

    async def create_run_journal_entry(self, mode: str) -> int:
        job_id = len(self.jobs) + 1
        self.jobs[job_id] = {"mode": mode, "status": "running"}
        return job_id

    async def complete_run_journal_entry(
        self, job_id: int, status: str, posts_scraped: int, error_message: str = ""
    ) -> None:
        self.jobs[job_id].update(status=status, posts_scraped=posts_scraped, error_message=error_message)

    async def persist_detailed_run_result(self, result: ScrapingResult) -> None:
        if self.fail_persist:
            raise PersistenceError("could not store run result")
        self.results.append(result)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def hn_source():
    return get_source("hackernews")


@pytest.fixture
def row():
    return hn_row


@pytest.fixture
def page():
    return hn_page


@pytest.fixture
def ids_page():
    return page_of


@pytest.fixture
def fake_fetcher():
    return FakeFetcher


@pytest.fixture
def fake_store():
    return FakeStore
