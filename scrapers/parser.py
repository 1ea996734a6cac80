"""
HTML-to-record extraction for ranked listing pages.

A listing page is a table of item rows (``tr.athing`` on Hacker News), each
followed by a metadata row carrying score, author, age and comment links.
Bad items are logged and dropped; a bad timestamp never drops an item, it is
replaced by the capture time.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from urllib.parse import urljoin

from dateutil.relativedelta import relativedelta
from scrapling.parser import Selector

from config.sources import SourceConfig
from core.exceptions import ParseError
from core.models import Post

log = logging.getLogger(__name__)

UNKNOWN_AUTHOR = "unknown"
MIN_PUBLISHED_AT = datetime(2000, 1, 1, tzinfo=timezone.utc)
# item ids are stored as signed 64-bit integers
MAX_SOURCE_ID = 2**63 - 1

_SCORE_RE = re.compile(r"^\s*(\d+)\s+\S+")
_COMMENTS_RE = re.compile(r"^\s*(\d+)\s*comments?\b")


def resolve_relative_time(label: str, now: datetime) -> datetime:
    """Turn an age label like ``"3 hours ago"`` into an absolute time.

    Anything that can't be understood resolves to ``now``.
    """
    text = " ".join(label.lower().split())
    if text.endswith(" ago"):
        text = text[: -len(" ago")]

    if text == "just now":
        return now
    if text == "yesterday":
        return now - timedelta(days=1)

    parts = text.split()
    if len(parts) < 2:
        return now

    head, unit = parts[0], parts[1]
    if head in ("a", "an"):
        head = "1"
    elif not _is_number(head):
        return now

    try:
        value = int(head)
        if "second" in unit:
            return now - timedelta(seconds=value)
        if "minute" in unit:
            return now - timedelta(minutes=value)
        if "hour" in unit:
            return now - timedelta(hours=value)
        if "day" in unit:
            return now - relativedelta(days=value)
        if "week" in unit:
            return now - relativedelta(days=value * 7)
        if "month" in unit:
            return now - relativedelta(months=value)
        if "year" in unit:
            return now - relativedelta(years=value)
    except (OverflowError, ValueError):
        return now
    return now


def _parse_absolute(value: str) -> datetime:
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _coerce_published(ts: datetime | None, now: datetime) -> datetime:
    if ts is None or ts < MIN_PUBLISHED_AT:
        return now
    return ts


def _text(node) -> str:
    return str(node.text or "").replace("\xa0", " ").strip()


def _is_number(value: str) -> bool:
    return value.isascii() and value.isdigit()


class PostExtractor:
    """Extracts ``Post`` records from one listing page of a source."""

    def __init__(self, source: SourceConfig) -> None:
        self._source = source
        self._sel = source.selectors

    def parse_document(self, markup: str, now: datetime | None = None) -> list[Post]:
        if not markup or not markup.strip():
            raise ParseError("empty document", {"source": self._source.name})
        try:
            page = Selector(markup)
        except Exception as exc:
            raise ParseError(f"failed to parse page: {exc}", {"source": self._source.name}) from exc

        now = now or datetime.now(timezone.utc)
        posts: list[Post] = []
        for index, item in enumerate(page.css(self._sel.item)):
            try:
                post = self.parse_item(item, now)
            except ParseError as exc:
                log.warning("Error parsing %s item #%d: %s", self._source.name, index + 1, exc)
                continue
            if post.source_id > 0:
                posts.append(post)

        log.info("Parsed %d posts from %s", len(posts), self._source.name)
        return posts

    def parse_item(self, item, now: datetime) -> Post:
        raw_id = item.attrib.get("id")
        if not raw_id:
            raise ParseError("no ID found")
        raw_id = str(raw_id).strip()
        if not _is_number(raw_id):
            raise ParseError(f"invalid ID: {raw_id}")
        source_id = int(raw_id)
        if source_id > MAX_SOURCE_ID:
            raise ParseError(f"ID out of range: {raw_id}")

        title, link = self._title_and_link(item)

        if self._sel.metadata_in_next_row:
            row = item.next
            if row is None:
                raise ParseError("no metadata row found")
        else:
            row = item
        regions = row.css(self._sel.metadata)
        meta = regions[0] if regions else None

        return Post(
            source=self._source.name,
            source_id=source_id,
            title=title,
            link=link,
            author=self._author(meta),
            score=self._score(meta),
            comment_count=self._comments(meta),
            published_at=_coerce_published(self._published(meta, now), now),
            captured_at=now,
        )

    def _title_and_link(self, item) -> tuple[str, str]:
        anchors = item.css(self._sel.title)
        if not anchors:
            return "", ""
        anchor = anchors[0]
        link = str(anchor.attrib.get("href", "") or "").strip()
        if link and not link.startswith("http") and self._source.base_url:
            link = urljoin(self._source.base_url, link)
        return _text(anchor), link

    def _score(self, meta) -> int:
        if meta is None:
            return 0
        nodes = meta.css(self._sel.score)
        if not nodes:
            return 0
        m = _SCORE_RE.match(_text(nodes[0]))
        return int(m.group(1)) if m else 0

    def _author(self, meta) -> str:
        if meta is None:
            return UNKNOWN_AUTHOR
        nodes = meta.css(self._sel.author)
        author = _text(nodes[0]) if nodes else ""
        return author or UNKNOWN_AUTHOR

    def _comments(self, meta) -> int:
        if meta is None:
            return 0
        comments = 0
        for link in meta.css(self._sel.comments):
            text = _text(link)
            if text == "discuss":
                continue
            if "comment" in text:
                m = _COMMENTS_RE.match(text)
                if m:
                    comments = int(m.group(1))
        return comments

    def _published(self, meta, now: datetime) -> datetime | None:
        if meta is None:
            return None
        nodes = meta.css(self._sel.age)
        if not nodes:
            return None
        age = nodes[0]

        # title="2024-05-01T12:00:00 1714564800": ISO stamp, then epoch seconds
        tokens = str(age.attrib.get("title", "") or "").split()
        if tokens:
            try:
                return _parse_absolute(tokens[0])
            except ValueError:
                log.debug("Unparseable age title %r, falling back to label", tokens[0])
        labels = age.css("a")
        label = _text(labels[0]) if labels else _text(age)
        return resolve_relative_time(label, now)
