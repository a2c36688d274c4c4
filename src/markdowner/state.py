"""Wired application state: one instance of every engine component."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from markdowner.crawler import CrawlOrchestrator
from markdowner.extractor import ContentExtractor
from markdowner.llm import LLMFilter
from markdowner.pipeline import PageGate
from markdowner.ratelimit import RateLimiter
from markdowner.tweets import TweetResolver

if TYPE_CHECKING:
    import httpx

    from markdowner.browser import BrowserSessionManager
    from markdowner.cache import Cache
    from markdowner.config import Settings
    from markdowner.llm import CompletionModel


@dataclass
class AppState:
    settings: Settings
    cache: Cache
    limiter: RateLimiter
    sessions: BrowserSessionManager
    orchestrator: CrawlOrchestrator


def build_state(
    settings: Settings,
    *,
    cache: Cache,
    http_client: httpx.AsyncClient,
    sessions: BrowserSessionManager,
    model: CompletionModel,
    limiter: RateLimiter | None = None,
) -> AppState:
    if limiter is None:
        limiter = RateLimiter(settings.ratelimit.rate, settings.ratelimit.storage_uri)
    extractor = ContentExtractor(settings.browser.navigation_timeout_seconds)
    gate = PageGate(
        cache=cache,
        limiter=limiter,
        sessions=sessions,
        extractor=extractor,
        tweets=TweetResolver(http_client, cache, settings.tweets.endpoint),
        llm_filter=LLMFilter(
            model,
            limiter,
            rate_limit_cost=settings.llm.rate_limit_cost,
            timeout_seconds=settings.llm.timeout_seconds,
        ),
        trusted_token=settings.security.trusted_token,
        ttl_seconds=settings.cache.ttl_seconds,
    )
    orchestrator = CrawlOrchestrator(
        sessions=sessions,
        extractor=extractor,
        gate=gate,
        max_subpages=settings.crawler.max_subpages,
    )
    return AppState(
        settings=settings,
        cache=cache,
        limiter=limiter,
        sessions=sessions,
        orchestrator=orchestrator,
    )
