"""Request-level orchestration: single page or one-level subpage crawl."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from markdowner.errors import BROWSER_NOT_STARTED, ErrorCode, MarkdownerError
from markdowner.tweets import is_tweet_url

if TYPE_CHECKING:
    from markdowner.browser import BrowserSessionManager
    from markdowner.extractor import ContentExtractor
    from markdowner.models.crawl import CrawlRequest, PageResult
    from markdowner.pipeline import PageGate

log = structlog.get_logger()


def unique_links(links: list[str], limit: int) -> list[str]:
    """First-seen order, duplicates removed, at most ``limit`` entries."""
    return list(dict.fromkeys(links))[:limit]


class CrawlOrchestrator:
    def __init__(
        self,
        *,
        sessions: BrowserSessionManager,
        extractor: ContentExtractor,
        gate: PageGate,
        max_subpages: int = 10,
    ) -> None:
        self._sessions = sessions
        self._extractor = extractor
        self._gate = gate
        self._max_subpages = max_subpages

    async def handle(self, request: CrawlRequest) -> list[PageResult]:
        """Process ``request`` and return one result per URL, in input order.

        Raises ``MarkdownerError(BROWSER_UNAVAILABLE)`` when the browser
        cannot be started.
        """
        async with self._sessions.in_use():
            if request.crawl_subpages:
                await self._require_browser()
                links = await self._extractor.extract_links(self._sessions.browser, request.url)
                urls = unique_links(links, self._max_subpages)
                log.info("crawl_links_found", base_url=request.url, found=len(links), kept=len(urls))
            else:
                if not is_tweet_url(request.url):
                    await self._require_browser()
                urls = [request.url]
            return await self.run(urls, request)

    async def run(self, urls: list[str], request: CrawlRequest) -> list[PageResult]:
        async with asyncio.TaskGroup() as tg:
            tasks = [tg.create_task(self._gate.process(url, request)) for url in urls]
        return [task.result() for task in tasks]

    async def _require_browser(self) -> None:
        if not await self._sessions.ensure():
            raise MarkdownerError(
                ErrorCode.BROWSER_UNAVAILABLE,
                BROWSER_NOT_STARTED,
                suggestion="Retry later; the browser pool may be exhausted.",
                recoverable=True,
            )
