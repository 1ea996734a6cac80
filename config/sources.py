"""Registry of listing sources and how to pull records out of their HTML."""

from __future__ import annotations

from dataclasses import dataclass, field

from core.exceptions import ConfigurationError


@dataclass(frozen=True)
class SourceSelectors:
    item: str = "tr.athing"
    title: str = ".titleline a"
    metadata: str = ".subtext"
    score: str = ".score"
    author: str = ".hnuser"
    age: str = ".age"
    comments: str = "a"
    # Hacker News keeps the metadata in the row right after the item row.
    metadata_in_next_row: bool = True


@dataclass(frozen=True)
class SourceConfig:
    name: str
    url: str
    interval_minutes: int = 5
    page_param: str = "p"
    base_url: str = ""
    selectors: SourceSelectors = field(default_factory=SourceSelectors)

    def page_url(self, page: int) -> str:
        """Page 1 is the bare URL; later pages add the pagination parameter."""
        if page <= 1:
            return self.url
        sep = "&" if "?" in self.url else "?"
        return f"{self.url}{sep}{self.page_param}={page}"


_HN_BASE = "https://news.ycombinator.com/"

SOURCE_CONFIGS: dict[str, SourceConfig] = {
    "hackernews": SourceConfig(
        name="hackernews",
        url="https://news.ycombinator.com/newest",
        interval_minutes=5,
        base_url=_HN_BASE,
    ),
    "hackernews_front": SourceConfig(
        name="hackernews_front",
        url="https://news.ycombinator.com/news",
        interval_minutes=15,
        base_url=_HN_BASE,
    ),
    "hackernews_ask": SourceConfig(
        name="hackernews_ask",
        url="https://news.ycombinator.com/ask",
        interval_minutes=30,
        base_url=_HN_BASE,
    ),
    "hackernews_show": SourceConfig(
        name="hackernews_show",
        url="https://news.ycombinator.com/show",
        interval_minutes=30,
        base_url=_HN_BASE,
    ),
}


def get_source(name: str) -> SourceConfig:
    try:
        return SOURCE_CONFIGS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown source: {name}", {"known": sorted(SOURCE_CONFIGS)}
        ) from None
