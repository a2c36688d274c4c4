"""End-to-end tests for the HTTP surface, driven through the ASGI app."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest
from fakes import FakeBackend, FakeSite

if TYPE_CHECKING:
    from markdowner.state import AppState

JSON = {"content-type": "application/json"}


# ---------------------------------------------------------------------------
# Single page
# ---------------------------------------------------------------------------


class TestSinglePage:
    async def test_text_response(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/", params={"url": "https://example.com"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "illustrative examples" in response.text

    async def test_json_response_is_a_list_of_results(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/", params={"url": "https://example.com"}, headers=JSON)

        assert response.status_code == 200
        body = response.json()
        assert len(body) == 1
        assert set(body[0]) == {"url", "md"}
        assert body[0]["url"] == "https://example.com"

    async def test_detailed_and_llm_flags(
        self, client: httpx.AsyncClient, app_state: AppState
    ) -> None:
        response = await client.get(
            "/",
            params={
                "url": "https://example.com",
                "enableDetailedResponse": "true",
                "llmFilter": "true",
            },
        )

        assert response.status_code == 200
        assert response.text == "# Filtered"
        assert await app_state.cache.get("https://example.com-detailed-llm") == "# Filtered"

    async def test_tweet(self, client: httpx.AsyncClient, backend: FakeBackend) -> None:
        response = await client.get("/", params={"url": "https://x.com/tester/status/1776"})

        assert response.status_code == 200
        assert response.text.startswith("Tweet from @tester")
        assert backend.launches == 0

    async def test_unknown_tweet(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/", params={"url": "https://x.com/tester/status/404"})

        assert response.status_code == 200
        assert response.text == "Tweet not found"


# ---------------------------------------------------------------------------
# Request validation
# ---------------------------------------------------------------------------


class TestValidation:
    async def test_missing_url_returns_help_page(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "enableDetailedResponse" in response.text

    async def test_invalid_url(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/", params={"url": "example.com"})

        assert response.status_code == 400
        assert response.text.startswith("Invalid URL provided")

    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE"])
    async def test_non_get_rejected(self, client: httpx.AsyncClient, method: str) -> None:
        response = await client.request(method, "/", params={"url": "https://example.com"})
        assert response.status_code == 405

    async def test_crawl_requires_json(
        self, client: httpx.AsyncClient, app_state: AppState, backend: FakeBackend
    ) -> None:
        response = await client.get(
            "/", params={"url": "https://example.com", "crawlSubpages": "true"}
        )

        assert response.status_code == 400
        assert "JSON content type" in response.text
        assert backend.launches == 0
        assert await app_state.cache.get("https://example.com") is None

    async def test_crawl_content_type_checked_before_url(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/", params={"url": "not a url", "crawlSubpages": "true"})
        assert response.status_code == 400
        assert "JSON content type" in response.text


# ---------------------------------------------------------------------------
# Crawl
# ---------------------------------------------------------------------------


class TestCrawl:
    async def test_returns_one_result_per_subpage(
        self, client: httpx.AsyncClient, site: FakeSite
    ) -> None:
        base = "https://docs.example.com"
        site.links[base] = [f"{base}/a", f"{base}/b", f"{base}/a", "https://other.org/"]

        response = await client.get(
            "/", params={"url": base, "crawlSubpages": "true"}, headers=JSON
        )

        assert response.status_code == 200
        assert [r["url"] for r in response.json()] == [f"{base}/a", f"{base}/b"]


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


class TestRateLimit:
    @pytest.fixture()
    def rate(self) -> str:
        return "1/minute"

    async def test_text_429(self, client: httpx.AsyncClient) -> None:
        await client.get("/", params={"url": "https://example.com/a"})
        response = await client.get("/", params={"url": "https://example.com/b"})

        assert response.status_code == 429
        assert response.text == "Rate limit exceeded"

    async def test_json_429(self, client: httpx.AsyncClient) -> None:
        await client.get("/", params={"url": "https://example.com/a"}, headers=JSON)
        response = await client.get("/", params={"url": "https://example.com/b"}, headers=JSON)

        assert response.status_code == 429
        assert response.json() == [{"url": "https://example.com/b", "md": "Rate limit exceeded"}]

    async def test_cached_page_is_free(self, client: httpx.AsyncClient) -> None:
        first = await client.get("/", params={"url": "https://example.com/a"})
        again = await client.get("/", params={"url": "https://example.com/a"})

        assert again.status_code == 200
        assert again.text == first.text

    async def test_trusted_token_bypasses_limit(
        self, client: httpx.AsyncClient, app_state: AppState
    ) -> None:
        token = app_state.settings.security.trusted_token
        headers = {"authorization": f"Bearer {token}"}
        for i in range(3):
            response = await client.get(
                "/", params={"url": f"https://example.com/{i}"}, headers=headers
            )
            assert response.status_code == 200

    async def test_budget_is_per_client_ip(self, client: httpx.AsyncClient) -> None:
        first = await client.get(
            "/",
            params={"url": "https://example.com/a"},
            headers={"cf-connecting-ip": "198.51.100.1"},
        )
        second = await client.get(
            "/",
            params={"url": "https://example.com/b"},
            headers={"cf-connecting-ip": "198.51.100.2"},
        )

        assert first.status_code == 200
        assert second.status_code == 200


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestBrowserUnavailable:
    @pytest.fixture()
    def backend(self, site: FakeSite) -> FakeBackend:
        return FakeBackend(site, failures=10)

    async def test_returns_500(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/", params={"url": "https://example.com"})

        assert response.status_code == 500
        assert response.text == "Could not start browser instance"

    async def test_tweets_still_served(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/", params={"url": "https://x.com/tester/status/1"})
        assert response.status_code == 200


class TestBrowserDriverUnavailable:
    @pytest.fixture()
    def backend(self, site: FakeSite) -> FakeBackend:
        return FakeBackend(site, failures=10, error=OSError)

    async def test_os_error_reports_browser_unavailable(
        self, client: httpx.AsyncClient, backend: FakeBackend
    ) -> None:
        response = await client.get("/", params={"url": "https://example.com"})

        assert response.status_code == 500
        assert response.text == "Could not start browser instance"
        assert backend.launches == 3


class TestUpstreamFailure:
    async def test_crashing_page_fails_request(
        self, client: httpx.AsyncClient, site: FakeSite
    ) -> None:
        site.failures.add("https://example.com/broken")

        response = await client.get("/", params={"url": "https://example.com/broken"})

        assert response.status_code == 500
        assert response.text == "Internal Server Error"
