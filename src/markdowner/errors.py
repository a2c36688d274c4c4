"""Error taxonomy.

Request-level failures raise ``MarkdownerError``; the HTTP layer maps the
code to a status. Per-URL failures never raise: they are reported as one of
the sentinel strings below so that a bad URL in a crawl batch leaves its
siblings untouched.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    INVALID_URL = "INVALID_URL"
    INVALID_CONTENT_TYPE = "INVALID_CONTENT_TYPE"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    BROWSER_UNAVAILABLE = "BROWSER_UNAVAILABLE"


_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INVALID_URL: 400,
    ErrorCode.INVALID_CONTENT_TYPE: 400,
    ErrorCode.METHOD_NOT_ALLOWED: 405,
    ErrorCode.BROWSER_UNAVAILABLE: 500,
}


class MarkdownerError(Exception):
    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str = "",
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable


def http_status_for(code: ErrorCode) -> int:
    return _HTTP_STATUS[code]


# Message of the request-level BROWSER_UNAVAILABLE error.
BROWSER_NOT_STARTED = "Could not start browser instance"

# Per-URL sentinel values standing in for markdown.
RATE_LIMIT_EXCEEDED = "Rate limit exceeded"
TWEET_NOT_FOUND = "Tweet not found"
INVALID_TWEET_URL = "Invalid tweet URL"
PAGE_LOAD_TIMED_OUT = "Page load timed out"
LLM_FILTER_TIMED_OUT = "LLM filter timed out"

SENTINELS = frozenset(
    {
        RATE_LIMIT_EXCEEDED,
        TWEET_NOT_FOUND,
        INVALID_TWEET_URL,
        PAGE_LOAD_TIMED_OUT,
        LLM_FILTER_TIMED_OUT,
    }
)

# Sentinels that describe a transient condition and must not be cached.
UNCACHEABLE = frozenset({PAGE_LOAD_TIMED_OUT, LLM_FILTER_TIMED_OUT})
