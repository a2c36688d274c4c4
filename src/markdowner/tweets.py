"""Tweet lookup through the public syndication endpoint.

Tweets are treated as immutable: a rendered tweet is cached under its bare
id with no expiry.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

import httpx
import structlog

from markdowner.errors import TWEET_NOT_FOUND

if TYPE_CHECKING:
    from markdowner.cache import Cache

log = structlog.get_logger()

TWEET_HOSTS = frozenset({"x.com", "twitter.com", "www.x.com", "www.twitter.com"})

_FEATURES = ";".join(
    [
        "tfw_timeline_list:",
        "tfw_follower_count_sunset:true",
        "tfw_tweet_edit_backend:on",
        "tfw_refsrc_session:on",
        "tfw_fosnr_soft_interventions_enabled:on",
        "tfw_show_birdwatch_pivots_enabled:on",
        "tfw_show_business_verified_badge:on",
        "tfw_duplicate_scribes_to_settings:on",
        "tfw_use_profile_image_shape_enabled:on",
        "tfw_show_blue_verified_badge:on",
        "tfw_legacy_timeline_sunset:true",
        "tfw_show_gov_verified_badge:on",
        "tfw_show_business_affiliate_badge:on",
        "tfw_tweet_edit_frontend:on",
    ]
)

_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/58.0.3029.110 Safari/537.3"
    ),
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.5",
    "Accept-Encoding": "gzip, deflate, br",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
    "Cache-Control": "max-age=0",
    "TE": "Trailers",
}


def is_tweet_url(url: str) -> bool:
    return (urlparse(url).hostname or "") in TWEET_HOSTS


def parse_tweet_id(url: str) -> str | None:
    """The final path segment, when it is a numeric id."""
    tweet_id = urlparse(url).path.rsplit("/", 1)[-1]
    return tweet_id if tweet_id.isdigit() else None


def render_tweet(tweet: dict[str, Any]) -> str:
    user = tweet.get("user") or {}
    author = user.get("name") or user.get("screen_name") or "Unknown"
    photos = tweet.get("photos")
    images = ", ".join(photo.get("url", "") for photo in photos) if photos else "none"
    return (
        f"Tweet from @{author}\n\n"
        f"{tweet['text']}\n"
        f"Images: {images}\n"
        f"Time: {tweet.get('created_at')}, Likes: {tweet.get('favorite_count')}, "
        f"Retweets: {tweet.get('conversation_count')}"
    )


class TweetResolver:
    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: Cache,
        endpoint: str = "https://cdn.syndication.twimg.com/tweet-result",
    ) -> None:
        self._client = client
        self._cache = cache
        self._endpoint = endpoint

    async def fetch(self, tweet_id: str) -> dict[str, Any] | None:
        """Raw tweet object, or ``None`` when the endpoint has no usable tweet."""
        params = {"id": tweet_id, "lang": "en", "features": _FEATURES, "token": "4c2mmul6mnh"}
        try:
            response = await self._client.get(self._endpoint, params=params, headers=_HEADERS)
            log.debug("tweet_fetched", tweet_id=tweet_id, status=response.status_code)
            data = response.json()
        except httpx.HTTPError:
            log.warning("tweet_fetch_failed", tweet_id=tweet_id, exc_info=True)
            return None
        except ValueError:
            log.info("tweet_not_json", tweet_id=tweet_id)
            return None

        if not isinstance(data, dict) or "text" not in data:
            return None
        return data

    async def resolve(self, tweet_id: str) -> str:
        tweet = await self.fetch(tweet_id)
        if tweet is None:
            return TWEET_NOT_FOUND

        md = render_tweet(tweet)
        await self._cache.put(tweet_id, md)
        return md
