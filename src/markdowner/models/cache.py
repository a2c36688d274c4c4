from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class CacheEntry(BaseModel):
    """Cached markdown for one cache key."""

    key: str  # url[-detailed][-llm], or the bare tweet id
    content: str  # Page markdown
    fetched_at: datetime
    expires_at: datetime | None = None  # None = never expires (tweets)
