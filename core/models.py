from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any


class CrawlMode(str, enum.Enum):
    LATEST = "latest"
    SINCE_LAST = "since_last"
    FULL_ARCHIVE = "full"
    UNTIL_EXISTING = "until_existing"


class ReconcileOutcome(str, enum.Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Post:
    """A single listing item extracted from one page."""

    source: str
    source_id: int
    title: str
    link: str
    author: str
    score: int
    comment_count: int
    published_at: datetime
    captured_at: datetime


@dataclass
class ScrapingResult:
    """Summary of one engine run."""

    source: str
    mode: CrawlMode
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: datetime | None = None
    duration: timedelta = timedelta(0)
    pages_scraped: int = 0
    posts_scraped: int = 0
    new_posts: int = 0
    updated_posts: int = 0
    duplicate_posts: int = 0
    # Nothing detects removed items yet, so this stays 0.
    deleted_posts: int = 0
    last_known_id: int = 0
    highest_id_seen: int = 0
    errors: list[str] = field(default_factory=list)

    def observe(self, post: Post) -> None:
        if post.source_id > self.highest_id_seen:
            self.highest_id_seen = post.source_id

    def finish(self) -> None:
        self.end_time = datetime.now(timezone.utc)
        self.duration = self.end_time - self.start_time

    @property
    def status(self) -> str:
        if not self.errors:
            return "completed"
        if self.posts_scraped:
            return "partial"
        return "failed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "mode": self.mode.value,
            "status": self.status,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_seconds": round(self.duration.total_seconds(), 2),
            "pages_scraped": self.pages_scraped,
            "posts_scraped": self.posts_scraped,
            "new_posts": self.new_posts,
            "updated_posts": self.updated_posts,
            "duplicate_posts": self.duplicate_posts,
            "deleted_posts": self.deleted_posts,
            "last_known_id": self.last_known_id,
            "highest_id_seen": self.highest_id_seen,
            "errors": list(self.errors),
        }
