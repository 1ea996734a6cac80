"""
Exception hierarchy for the crawl/sync engine.

Page and item failures are absorbed by the engine and show up in the run
summary; only scheduler control-plane errors reach callers.
"""

from __future__ import annotations

from typing import Any


class ListingSyncError(Exception):
    """Base exception for all listing sync errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class CrawlError(ListingSyncError):
    """A single page could not be turned into records."""


class FetchError(CrawlError):
    """Network or HTTP failure while retrieving one page."""


class ParseError(CrawlError):
    """Malformed markup for a page or for one item within a page."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        item_index: int | None = None,
    ) -> None:
        super().__init__(message, details)
        self.item_index = item_index


class PersistenceError(ListingSyncError):
    """The store rejected a read or write."""


class ConfigurationError(ListingSyncError):
    """Unknown source or invalid configuration."""


class SchedulerError(ListingSyncError):
    """Invalid scheduler control operation (double start, stop when idle)."""
