"""Plain HTTP GET of listing pages using httpx."""

from __future__ import annotations

import logging

import httpx

from config.settings import settings
from core.exceptions import FetchError

log = logging.getLogger(__name__)


class PageFetcher:
    def __init__(
        self,
        *,
        timeout: float | None = None,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = settings.FETCH_TIMEOUT_SECONDS if timeout is None else timeout
        self._headers = {"User-Agent": user_agent or settings.USER_AGENT}
        self._transport = transport

    async def fetch(self, url: str) -> str:
        """Return the raw markup of ``url`` or raise ``FetchError``."""
        try:
            async with httpx.AsyncClient(
                headers=self._headers,
                follow_redirects=True,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                resp = await client.get(url)
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise FetchError(f"failed to fetch page: {exc}", {"url": url}) from exc

        log.debug("Fetched %s (status %d, %d bytes)", url, resp.status_code, len(resp.content))
        return resp.text
