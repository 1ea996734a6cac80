"""
Multi-page crawl strategies.

One ``CrawlStrategyEngine.run()`` call fetches pages of a source in ascending
order, extracts posts and reconciles them with the store according to the
selected ``CrawlMode``:

* ``latest``          page 1 only, insert-or-update every post
* ``since_last``      walk pages until a post at or below the highest known id
                      shows up, then insert everything newer
* ``full``            walk pages until one is empty (or, with
                      ``stop_on_duplicates``, until one adds nothing new)
* ``until_existing``  insert new posts only; stop on two empty pages in a row,
                      five known posts in a row, or a page with no new posts

Page failures end the page loop but keep what was gathered so far. The
engine always returns a result.
"""

from __future__ import annotations

import logging

from config.settings import settings
from config.sources import SourceConfig
from core.exceptions import CrawlError, PersistenceError
from core.models import CrawlMode, Post, ReconcileOutcome, ScrapingResult
from data.repositories import PostStore
from scrapers.base import RateLimiter
from scrapers.fetcher import PageFetcher
from scrapers.parser import PostExtractor

log = logging.getLogger(__name__)

DUPLICATE_THRESHOLD = 5
EMPTY_PAGE_THRESHOLD = 2


def default_page_delay(mode: CrawlMode) -> float:
    if mode is CrawlMode.FULL_ARCHIVE:
        return settings.FULL_ARCHIVE_PAGE_DELAY
    if mode is CrawlMode.SINCE_LAST:
        return settings.SINCE_LAST_PAGE_DELAY
    if mode is CrawlMode.UNTIL_EXISTING:
        return settings.UNTIL_EXISTING_PAGE_DELAY
    return 0.0


class CrawlStrategyEngine:
    def __init__(
        self,
        source: SourceConfig,
        store: PostStore,
        *,
        mode: CrawlMode = CrawlMode.LATEST,
        max_pages: int | None = None,
        stop_on_duplicates: bool | None = None,
        fetcher: PageFetcher | None = None,
        extractor: PostExtractor | None = None,
        page_delay: float | None = None,
    ) -> None:
        self._source = source
        self._store = store
        self._mode = CrawlMode(mode)
        self._max_pages = max(1, max_pages if max_pages is not None else settings.SCRAPE_MAX_PAGES)
        self._stop_on_duplicates = (
            settings.STOP_ON_DUPLICATES if stop_on_duplicates is None else stop_on_duplicates
        )
        self._fetcher = fetcher or PageFetcher()
        self._extractor = extractor or PostExtractor(source)
        delay = default_page_delay(self._mode) if page_delay is None else page_delay
        self._limiter = RateLimiter(delay)

    @property
    def mode(self) -> CrawlMode:
        return self._mode

    async def run(self) -> ScrapingResult:
        result = ScrapingResult(source=self._source.name, mode=self._mode)

        try:
            last_known_id = await self._store.highest_known_id()
        except PersistenceError as exc:
            log.warning("Could not get latest post ID for %s: %s", self._source.name, exc)
            last_known_id = 0
        result.last_known_id = last_known_id
        result.highest_id_seen = last_known_id

        job_id: int | None = None
        try:
            job_id = await self._store.create_run_journal_entry(self._mode.value)
        except PersistenceError as exc:
            log.warning("Could not open run journal for %s: %s", self._source.name, exc)

        log.info(
            "Starting %s scrape for %s. Last known post ID: %d",
            self._mode.value,
            self._source.name,
            last_known_id,
        )

        try:
            if self._mode is CrawlMode.SINCE_LAST:
                await self._scrape_since_last(result, last_known_id)
            elif self._mode is CrawlMode.FULL_ARCHIVE:
                await self._scrape_full_archive(result)
            elif self._mode is CrawlMode.UNTIL_EXISTING:
                await self._scrape_until_existing(result)
            else:
                await self._scrape_latest(result)
        except Exception as exc:
            # keep what was gathered and still close the journal
            log.exception("Unexpected error scraping %s", self._source.name)
            result.errors.append(f"Unexpected error: {exc}")

        result.finish()
        await self._save_result(result, job_id)

        log.info(
            "Finished %s scrape for %s | %d pages | %d new, %d updated | %.1fs | %d errors",
            self._mode.value,
            self._source.name,
            result.pages_scraped,
            result.new_posts,
            result.updated_posts,
            result.duration.total_seconds(),
            len(result.errors),
        )
        return result

    # ── modes ────────────────────────────────────────────────────────

    async def _scrape_latest(self, result: ScrapingResult) -> None:
        posts = await self._scrape_page(1, result)
        if posts is None:
            return
        result.pages_scraped = 1
        for post in posts:
            await self._save_post(post, result)

    async def _scrape_since_last(self, result: ScrapingResult, last_known_id: int) -> None:
        new_posts: list[Post] = []
        found_last_known = False

        for page in range(1, self._max_pages + 1):
            posts = await self._scrape_page(page, result)
            if posts is None:
                break

            for post in posts:
                result.observe(post)
                if post.source_id <= last_known_id:
                    found_last_known = True
                    break
                new_posts.append(post)

            result.pages_scraped = page
            if found_last_known:
                break

        for post in new_posts:
            try:
                await self._store.upsert(post, with_history=True)
            except PersistenceError as exc:
                log.warning("Failed to insert post %d: %s", post.source_id, exc)
                continue
            result.posts_scraped += 1
            result.new_posts += 1

        log.info("Found %d new posts since ID %d", len(new_posts), last_known_id)

    async def _scrape_full_archive(self, result: ScrapingResult) -> None:
        for page in range(1, self._max_pages + 1):
            posts = await self._scrape_page(page, result)
            if posts is None:
                break
            if not posts:
                log.info("No posts found on page %d, stopping", page)
                break

            inserted = 0
            for post in posts:
                if await self._save_post(post, result) is ReconcileOutcome.INSERTED:
                    inserted += 1
            result.pages_scraped = page

            if self._stop_on_duplicates and inserted == 0:
                log.info("No new posts saved on page %d (stop on duplicate enabled), stopping", page)
                break

    async def _scrape_until_existing(self, result: ScrapingResult) -> None:
        duplicate_streak = 0
        empty_pages = 0

        for page in range(1, self._max_pages + 1):
            posts = await self._scrape_page(page, result)
            if posts is None:
                break

            if not posts:
                empty_pages += 1
                if empty_pages >= EMPTY_PAGE_THRESHOLD:
                    log.info("No posts found on %d consecutive pages, stopping", empty_pages)
                    break
                continue
            empty_pages = 0

            inserted = 0
            threshold_hit = False
            for post in posts:
                result.observe(post)
                try:
                    exists = await self._store.record_exists(post.source_id)
                except PersistenceError as exc:
                    log.warning("Existence check for post %d failed: %s", post.source_id, exc)
                    continue

                if exists:
                    result.duplicate_posts += 1
                    duplicate_streak += 1
                    if duplicate_streak >= DUPLICATE_THRESHOLD:
                        threshold_hit = True
                        break
                    continue

                duplicate_streak = 0
                try:
                    await self._store.upsert(post, with_history=True)
                except PersistenceError as exc:
                    log.warning("Failed to insert post %d: %s", post.source_id, exc)
                    continue
                inserted += 1
                result.new_posts += 1
                result.posts_scraped += 1

            result.pages_scraped = page

            if threshold_hit:
                log.info("Found %d duplicates in a row, stopping", DUPLICATE_THRESHOLD)
                break
            if inserted == 0:
                log.info("No new posts on page %d, stopping", page)
                break

    # ── helpers ──────────────────────────────────────────────────────

    async def _scrape_page(self, page: int, result: ScrapingResult) -> list[Post] | None:
        """Fetch and parse one page; on failure record it and return None."""
        url = self._source.page_url(page)
        await self._limiter.wait()
        log.info("Scraping page %d: %s", page, url)
        try:
            markup = await self._fetcher.fetch(url)
            return self._extractor.parse_document(markup)
        except CrawlError as exc:
            log.warning("Error scraping page %d of %s: %s", page, self._source.name, exc)
            result.errors.append(f"Page {page}: {exc}")
            return None

    async def _save_post(self, post: Post, result: ScrapingResult) -> ReconcileOutcome:
        """Insert-or-update one post and count the outcome."""
        result.observe(post)
        try:
            stored = await self._store.current_counts(post.source_id)
            if stored is None:
                outcome = ReconcileOutcome.INSERTED
            elif stored != (post.score, post.comment_count):
                outcome = ReconcileOutcome.UPDATED
            else:
                outcome = ReconcileOutcome.UNCHANGED
            await self._store.upsert(post, with_history=outcome is not ReconcileOutcome.UNCHANGED)
        except PersistenceError as exc:
            log.warning("Failed to save post %d: %s", post.source_id, exc)
            return ReconcileOutcome.SKIPPED

        result.posts_scraped += 1
        if outcome is ReconcileOutcome.INSERTED:
            result.new_posts += 1
        elif outcome is ReconcileOutcome.UPDATED:
            result.updated_posts += 1
        return outcome

    async def _save_result(self, result: ScrapingResult, job_id: int | None) -> None:
        if job_id is not None:
            try:
                await self._store.complete_run_journal_entry(
                    job_id,
                    result.status,
                    result.posts_scraped,
                    "; ".join(result.errors)[:500],
                )
            except PersistenceError as exc:
                log.error("Failed to close run journal for %s: %s", self._source.name, exc)
        try:
            await self._store.persist_detailed_run_result(result)
        except PersistenceError as exc:
            log.error("Failed to persist scrape result for %s: %s", self._source.name, exc)
