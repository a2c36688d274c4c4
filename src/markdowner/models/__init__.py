from __future__ import annotations

from markdowner.models.cache import CacheEntry
from markdowner.models.crawl import CrawlRequest, PageResult, ResponseFormat

__all__ = [
    # cache
    "CacheEntry",
    # crawl
    "CrawlRequest",
    "PageResult",
    "ResponseFormat",
]
