"""Per-caller admission control backed by the ``limits`` package."""

from __future__ import annotations

import structlog
from limits import parse
from limits.aio.strategies import MovingWindowRateLimiter
from limits.storage import storage_from_string

log = structlog.get_logger()


class RateLimiter:
    """Moving-window limiter keyed by caller IP.

    ``storage_uri`` accepts any ``limits`` storage URI (``memory://``,
    ``redis://...``); the async variant is selected automatically.
    """

    def __init__(self, rate: str = "100/minute", storage_uri: str = "memory://") -> None:
        if not storage_uri.startswith("async+"):
            storage_uri = f"async+{storage_uri}"
        self._item = parse(rate)
        self._limiter = MovingWindowRateLimiter(storage_from_string(storage_uri))

    async def limit(self, key: str, cost: int = 1) -> bool:
        """Consume ``cost`` units for ``key``. Returns ``False`` when denied."""
        allowed = await self._limiter.hit(self._item, "markdowner", key, cost=cost)
        if not allowed:
            log.info("rate_limit_denied", key=key, cost=cost)
        return allowed

    async def charge(self, key: str, units: int) -> None:
        """Spend up to ``units`` single hits against ``key``, stopping once the window is full.

        The outcome is not reported: the charge applies whether or not the
        work it pays for succeeds.
        """
        for _ in range(units):
            if not await self._limiter.hit(self._item, "markdowner", key):
                break
