"""HTTP entry point.

Run with ``python -m markdowner.server``. Settings are validated before
anything else starts, so a bad config value exits non-zero immediately.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite
import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response
from openai import AsyncOpenAI
from pydantic import ValidationError

from markdowner.browser import BrowserSessionManager, PlaywrightBackend
from markdowner.cache import Cache
from markdowner.config import LoggingSettings, Settings
from markdowner.errors import (
    RATE_LIMIT_EXCEEDED,
    ErrorCode,
    MarkdownerError,
    http_status_for,
)
from markdowner.llm import OpenAIModel
from markdowner.models.crawl import CrawlRequest
from markdowner.state import AppState, build_state

log = structlog.get_logger()

HELP_HTML = """<!doctype html>
<html>
<head><meta charset="utf-8"><title>Markdowner</title></head>
<body>
<h1>Markdowner</h1>
<p>Convert any website into LLM-ready markdown.</p>
<pre><code>$ curl 'http://localhost:8080/?url=https://example.com'</code></pre>
<h2>Required parameters</h2>
<ul>
  <li><b>url</b> (string): the website URL to convert into markdown.</li>
</ul>
<h2>Optional parameters</h2>
<ul>
  <li><b>enableDetailedResponse</b> (boolean, default <code>false</code>):
      convert the full page instead of the main article.</li>
  <li><b>crawlSubpages</b> (boolean, default <code>false</code>):
      return markdown for up to 10 subpages. Requires JSON.</li>
  <li><b>llmFilter</b> (boolean, default <code>false</code>):
      filter out unnecessary information with an LLM.</li>
</ul>
<h2>Response types</h2>
<ul>
  <li><code>Content-Type: text/plain</code> for a plain text response.</li>
  <li><code>Content-Type: application/json</code> for a JSON response.</li>
</ul>
</body>
</html>
"""

_CRAWL_NEEDS_JSON = "Error: Crawl subpages can only be enabled with JSON content type"
_INVALID_URL = "Invalid URL provided, should be a full URL starting with http:// or https://"


def setup_logging(settings: LoggingSettings) -> None:
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if settings.format == "json":
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, settings.level)),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def client_ip(request: Request) -> str:
    if ip := request.headers.get("cf-connecting-ip"):
        return ip
    if forwarded := request.headers.get("x-forwarded-for"):
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


def bearer_token(request: Request) -> str:
    return request.headers.get("authorization", "").replace("Bearer ", "", 1)


def _flag(request: Request, name: str) -> bool:
    return request.query_params.get(name) == "true"


def parse_request(request: Request) -> CrawlRequest | None:
    """Validate the inbound request. ``None`` means no URL was given.

    Checks run in a fixed order so that an invalid crawl/content-type
    combination is rejected before the URL is looked at.
    """
    if request.method != "GET":
        raise MarkdownerError(ErrorCode.METHOD_NOT_ALLOWED, "Method Not Allowed")

    response_format = (
        "json" if request.headers.get("content-type") == "application/json" else "text"
    )
    crawl_subpages = _flag(request, "crawlSubpages")
    if response_format == "text" and crawl_subpages:
        raise MarkdownerError(ErrorCode.INVALID_CONTENT_TYPE, _CRAWL_NEEDS_JSON)

    url = request.query_params.get("url")
    if not url:
        return None

    try:
        return CrawlRequest(
            url=url,
            detailed=_flag(request, "enableDetailedResponse"),
            crawl_subpages=crawl_subpages,
            llm_filter=_flag(request, "llmFilter"),
            token=bearer_token(request),
            ip=client_ip(request),
            response_format=response_format,
        )
    except ValidationError as exc:
        raise MarkdownerError(ErrorCode.INVALID_URL, _INVALID_URL) from exc


async def markdown_endpoint(request: Request) -> Response:
    crawl_request = parse_request(request)
    if crawl_request is None:
        return HTMLResponse(HELP_HTML)

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(url=crawl_request.url, ip=crawl_request.ip)
    state: AppState = request.app.state.markdowner
    results = await state.orchestrator.handle(crawl_request)

    if crawl_request.response_format == "json":
        status = 429 if any(r.md == RATE_LIMIT_EXCEEDED for r in results) else 200
        return JSONResponse([r.model_dump() for r in results], status_code=status)

    md = results[0].md
    return PlainTextResponse(md, status_code=429 if md == RATE_LIMIT_EXCEEDED else 200)


async def _markdowner_error_handler(request: Request, exc: MarkdownerError) -> Response:
    log.info("request_rejected", code=exc.code, message=exc.message)
    return PlainTextResponse(exc.message, status_code=http_status_for(exc.code))


async def _unhandled_error_handler(request: Request, exc: Exception) -> Response:
    log.error("request_failed", exc_info=exc)
    return PlainTextResponse("Internal Server Error", status_code=500)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    db_path = Path(settings.cache.db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    async with (
        aiosqlite.connect(db_path) as db,
        httpx.AsyncClient(timeout=settings.tweets.timeout_seconds) as http_client,
    ):
        cache = Cache(db)
        await cache.init_db()
        await cache.cleanup_expired()

        sessions = BrowserSessionManager(PlaywrightBackend(settings.browser), settings.browser)
        # AsyncOpenAI refuses to start without a key; requests fail until one is set.
        llm_client = AsyncOpenAI(
            base_url=settings.llm.base_url, api_key=settings.llm.api_key or "unset"
        )
        app.state.markdowner = build_state(
            settings,
            cache=cache,
            http_client=http_client,
            sessions=sessions,
            model=OpenAIModel(llm_client, settings.llm.model),
        )
        log.info("server_started", host=settings.server.host, port=settings.server.port)
        try:
            yield
        finally:
            await sessions.close()
            await llm_client.close()
            log.info("server_stopped")


def create_app(settings: Settings | None = None, state: AppState | None = None) -> FastAPI:
    """Build the ASGI app.

    With ``state`` given, the app uses it as-is and skips resource setup;
    otherwise resources are opened and closed by the lifespan.
    """
    app = FastAPI(
        title="Markdowner",
        lifespan=None if state is not None else _lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = state.settings if state is not None else (settings or Settings())
    if state is not None:
        app.state.markdowner = state

    app.add_api_route(
        "/",
        markdown_endpoint,
        methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"],
    )
    app.add_exception_handler(MarkdownerError, _markdowner_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
    return app


def main() -> None:
    import uvicorn

    settings = Settings()
    setup_logging(settings.logging)
    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
