"""Rendered page → markdown.

The browser only renders; readability scoring, sanitising and markdown
conversion happen in Python on the rendered HTML.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import html2text
import structlog
from bs4 import BeautifulSoup
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from readability import Document
from readability.readability import Unparseable

from markdowner.errors import PAGE_LOAD_TIMED_OUT

if TYPE_CHECKING:
    from playwright.async_api import Browser, Page

log = structlog.get_logger()

_STRIPPED_TAGS = ("script", "style", "iframe", "noscript")

_COLLECT_LINKS_JS = "anchors => anchors.map(a => a.href)"


def _converter() -> html2text.HTML2Text:
    h = html2text.HTML2Text()
    h.body_width = 0  # no hard wrapping
    h.ignore_images = False
    h.ignore_links = False
    return h


def sanitize_html(html: str) -> str:
    """Drop script, style, iframe and noscript elements."""
    soup = BeautifulSoup(html, "lxml")
    for tag in soup.find_all(_STRIPPED_TAGS):
        tag.decompose()
    return str(soup)


def html_to_markdown(html: str, detailed: bool) -> str:
    """Convert a full HTML document to markdown.

    ``detailed`` converts the whole sanitised document; otherwise only the
    main article readability identifies. An empty article yields whatever
    the converter makes of it, possibly an empty string.
    """
    if detailed:
        body = sanitize_html(html)
    else:
        try:
            body = Document(html).summary(html_partial=True)
        except Unparseable:
            log.info("article_not_found")
            body = ""
    return _converter().handle(body).strip()


class ContentExtractor:
    def __init__(self, navigation_timeout_seconds: float = 30) -> None:
        self._timeout_ms = navigation_timeout_seconds * 1000

    async def _open(self, browser: Browser, url: str) -> Page:
        page = await browser.new_page()
        try:
            await page.goto(url, wait_until="load", timeout=self._timeout_ms)
        except BaseException:
            await page.close()
            raise
        return page

    async def extract(self, browser: Browser, url: str, detailed: bool) -> str:
        """Render ``url`` in a fresh tab and return its markdown."""
        try:
            page = await self._open(browser, url)
        except PlaywrightTimeoutError:
            log.warning("page_load_timeout", url=url)
            return PAGE_LOAD_TIMED_OUT
        try:
            html = await page.content()
        finally:
            await page.close()

        md = await asyncio.to_thread(html_to_markdown, html, detailed)
        log.debug("page_extracted", url=url, detailed=detailed, chars=len(md))
        return md

    async def extract_links(self, browser: Browser, base_url: str) -> list[str]:
        """Every resolved anchor href on ``base_url`` that starts with ``base_url``.

        Order and duplicates are preserved as found in the document.
        """
        page = await self._open(browser, base_url)
        try:
            hrefs: list[str] = await page.eval_on_selector_all("a", _COLLECT_LINKS_JS)
        finally:
            await page.close()
        return [href for href in hrefs if href.startswith(base_url)]
