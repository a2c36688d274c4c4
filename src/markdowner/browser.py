"""Shared headless-browser lifecycle: launch, liveness, retry and idle shutdown.

One ``BrowserSessionManager`` exists per process and owns the only browser
handle. Request tasks share it and each opens its own page. Launching and
closing are serialised through an ``asyncio.Lock``; everything else runs on
the event loop without extra locking.
"""

from __future__ import annotations

import asyncio
import contextlib
import uuid
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Protocol

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

if TYPE_CHECKING:
    from playwright.async_api import Browser, Playwright

    from markdowner.config import BrowserSettings

log = structlog.get_logger()


class BrowserBackend(Protocol):
    """Where browsers come from. Separated so tests can supply a fake."""

    async def launch(self) -> Browser: ...

    async def sessions(self) -> list[str]: ...

    async def connect(self, session_id: str) -> Browser: ...

    async def shutdown(self) -> None: ...


class PlaywrightBackend:
    """Launches Chromium locally, or connects to ``ws_endpoint`` when one is configured.

    Every browser handed out is tracked under a session id until it
    disconnects, so a failed launch can reclaim whatever is still open.
    """

    def __init__(self, settings: BrowserSettings) -> None:
        self._settings = settings
        self._playwright: Playwright | None = None
        self._browsers: dict[str, Browser] = {}

    async def _runtime(self) -> Playwright:
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        return self._playwright

    async def launch(self) -> Browser:
        playwright = await self._runtime()
        if self._settings.ws_endpoint:
            browser = await playwright.chromium.connect(self._settings.ws_endpoint)
        else:
            browser = await playwright.chromium.launch(headless=self._settings.headless)

        session_id = uuid.uuid4().hex
        self._browsers[session_id] = browser
        browser.on("disconnected", lambda _: self._browsers.pop(session_id, None))
        return browser

    async def sessions(self) -> list[str]:
        return list(self._browsers)

    async def connect(self, session_id: str) -> Browser:
        return self._browsers[session_id]

    async def shutdown(self) -> None:
        for browser in list(self._browsers.values()):
            with contextlib.suppress(PlaywrightError):
                await browser.close()
        self._browsers.clear()
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


class BrowserSessionManager:
    def __init__(self, backend: BrowserBackend, settings: BrowserSettings) -> None:
        self._backend = backend
        self._settings = settings
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()
        self._idle_task: asyncio.Task[None] | None = None
        self._active = 0
        self.idle_seconds: float = 0

    @property
    def browser(self) -> Browser:
        if self._browser is None:
            raise RuntimeError("browser session is not running; call ensure() first")
        return self._browser

    @property
    def is_connected(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    def touch(self) -> None:
        """Mark the session as used now, postponing idle shutdown."""
        self.idle_seconds = 0

    @contextlib.asynccontextmanager
    async def in_use(self) -> AsyncIterator[None]:
        """Hold the session open for the duration of a request."""
        self._active += 1
        self.touch()
        try:
            yield
        finally:
            self._active -= 1
            self.touch()

    async def ensure(self) -> bool:
        """Make sure a connected browser exists.

        Returns ``False`` only after every launch attempt failed. Between
        attempts, all sessions the backend still knows of are closed so the
        next launch is not starved by orphans.
        """
        async with self._lock:
            if self.is_connected:
                self._arm_idle_timer()
                return True

            retries = self._settings.launch_retries
            while retries:
                try:
                    self._browser = await self._backend.launch()
                except Exception:
                    retries -= 1
                    log.error("browser_launch_failed", retries_left=retries, exc_info=True)
                    if not retries:
                        return False
                    await self._reclaim_sessions()
                    log.info("browser_launch_retry", retries_left=retries)
                    continue
                log.info("browser_launched")
                self._arm_idle_timer()
                return True
            return False

    async def _reclaim_sessions(self) -> None:
        self._browser = None
        for session_id in await self._backend.sessions():
            try:
                orphan = await self._backend.connect(session_id)
                await orphan.close()
            except Exception:
                log.warning("browser_session_close_failed", session_id=session_id, exc_info=True)

    def _arm_idle_timer(self) -> None:
        if self._idle_task is None or self._idle_task.done():
            self._idle_task = asyncio.create_task(self._watch_idle())

    async def _watch_idle(self) -> None:
        tick = self._settings.idle_tick_seconds
        while True:
            await asyncio.sleep(tick)
            if self._active:
                self.touch()
                continue
            self.idle_seconds += tick
            if self.idle_seconds >= self._settings.keep_alive_seconds:
                break
        log.info("browser_idle_shutdown", idle_seconds=self.idle_seconds)
        await self._close_browser()

    async def _close_browser(self) -> None:
        async with self._lock:
            browser, self._browser = self._browser, None
            if browser is None:
                return
            try:
                await browser.close()
            except PlaywrightError:
                log.debug("browser_close_failed", exc_info=True)

    async def close(self) -> None:
        """Stop the idle timer, close the browser and release the backend."""
        if self._idle_task is not None:
            self._idle_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._idle_task
            self._idle_task = None
        await self._close_browser()
        await self._backend.shutdown()
