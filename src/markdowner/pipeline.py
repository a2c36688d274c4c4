"""Per-URL processing: cache lookup, admission control, extraction, cache write.

Caching and rate limiting come before any extraction so that repeated or
abusive requests never reach the browser.
"""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING

import structlog

from markdowner.errors import INVALID_TWEET_URL, RATE_LIMIT_EXCEEDED, UNCACHEABLE
from markdowner.models.crawl import PageResult
from markdowner.tweets import is_tweet_url, parse_tweet_id

if TYPE_CHECKING:
    from markdowner.browser import BrowserSessionManager
    from markdowner.cache import Cache
    from markdowner.extractor import ContentExtractor
    from markdowner.llm import LLMFilter
    from markdowner.models.crawl import CrawlRequest
    from markdowner.ratelimit import RateLimiter
    from markdowner.tweets import TweetResolver

log = structlog.get_logger()


class PageGate:
    def __init__(
        self,
        *,
        cache: Cache,
        limiter: RateLimiter,
        sessions: BrowserSessionManager,
        extractor: ContentExtractor,
        tweets: TweetResolver,
        llm_filter: LLMFilter,
        trusted_token: str = "",
        ttl_seconds: int = 3600,
    ) -> None:
        self._cache = cache
        self._limiter = limiter
        self._sessions = sessions
        self._extractor = extractor
        self._tweets = tweets
        self._llm_filter = llm_filter
        self._trusted_token = trusted_token
        self._ttl_seconds = ttl_seconds

    def is_trusted(self, token: str) -> bool:
        if not self._trusted_token or not token:
            return False
        return secrets.compare_digest(token.encode(), self._trusted_token.encode())

    async def admit(self, request: CrawlRequest) -> bool:
        if self.is_trusted(request.token):
            return True
        return await self._limiter.limit(request.ip)

    async def process(self, url: str, request: CrawlRequest) -> PageResult:
        if is_tweet_url(url):
            return await self._process_tweet(url, request)

        key = request.cache_key(url)
        cached = await self._cache.get(key)
        if cached is not None:
            log.debug("cache_hit", key=key)
            return PageResult(url=url, md=cached)

        if not await self.admit(request):
            return PageResult(url=url, md=RATE_LIMIT_EXCEEDED)

        self._sessions.touch()
        md = await self._extractor.extract(self._sessions.browser, url, request.detailed)

        if request.llm_filter and md not in UNCACHEABLE:
            md = await self._llm_filter.filter(md, request.ip)

        if md not in UNCACHEABLE:
            await self._cache.put(key, md, ttl_seconds=self._ttl_seconds)
        return PageResult(url=url, md=md)

    async def _process_tweet(self, url: str, request: CrawlRequest) -> PageResult:
        tweet_id = parse_tweet_id(url)
        if tweet_id is None:
            return PageResult(url=url, md=INVALID_TWEET_URL)

        cached = await self._cache.get(tweet_id)
        if cached is not None:
            log.debug("cache_hit", key=tweet_id)
            return PageResult(url=url, md=cached)

        if not await self.admit(request):
            return PageResult(url=url, md=RATE_LIMIT_EXCEEDED)

        return PageResult(url=url, md=await self._tweets.resolve(tweet_id))
