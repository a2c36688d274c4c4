from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator

from markdowner.errors import SENTINELS

URL_PATTERN = re.compile(r'^(http|https)://[^ "]+$')

ResponseFormat = Literal["text", "json"]


def is_valid_url(url: str) -> bool:
    return URL_PATTERN.match(url) is not None


class CrawlRequest(BaseModel):
    """One accepted inbound request, passed explicitly through the engine."""

    model_config = ConfigDict(frozen=True)

    url: str
    detailed: bool = False
    crawl_subpages: bool = False
    llm_filter: bool = False
    token: str = ""
    ip: str = ""
    response_format: ResponseFormat = "text"

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not is_valid_url(v):
            raise ValueError("url must be a full URL starting with http:// or https://")
        return v

    def cache_key(self, url: str) -> str:
        """Composite key for a non-tweet page fetched under this request's flags."""
        return url + ("-detailed" if self.detailed else "") + ("-llm" if self.llm_filter else "")


class PageResult(BaseModel):
    url: str
    md: str

    @property
    def is_error(self) -> bool:
        return self.md in SENTINELS
