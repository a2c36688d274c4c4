"""SQLite markdown cache.

All cache operations catch ``aiosqlite.Error`` internally and degrade
gracefully: read failures return ``None`` (treated as cache miss by callers),
write failures are logged and ignored (the extracted markdown is still
returned). Infrastructure errors never cross the Cache class boundary.

Entries carry an optional expiry. Page markdown is written with a TTL;
tweets are written without one and live until overwritten.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import aiosqlite
import structlog

if TYPE_CHECKING:
    from markdowner.models.cache import CacheEntry

log = structlog.get_logger()

_CREATE_MD_TABLE = """
CREATE TABLE IF NOT EXISTS md_cache (
    key         TEXT PRIMARY KEY,
    content     TEXT NOT NULL,
    fetched_at  TEXT NOT NULL,
    expires_at  TEXT
)
"""

_CREATE_MD_INDEX = "CREATE INDEX IF NOT EXISTS idx_md_expires ON md_cache(expires_at)"


class Cache:
    """SQLite-backed key/value store for extracted markdown."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def init_db(self) -> None:
        """Create tables and set WAL mode. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_MD_TABLE)
        await self._db.execute(_CREATE_MD_INDEX)
        await self._db.commit()

    async def get_entry(self, key: str) -> CacheEntry | None:
        """Read a fresh entry. Expired entries, misses and read failures return ``None``."""
        try:
            cursor = await self._db.execute(
                "SELECT key, content, fetched_at, expires_at FROM md_cache WHERE key = ?",
                (key,),
            )
            row = await cursor.fetchone()
            if row is None:
                return None

            from markdowner.models.cache import CacheEntry

            expires_at = datetime.fromisoformat(row[3]) if row[3] else None
            if expires_at is not None and datetime.now(UTC) >= expires_at:
                return None

            return CacheEntry(
                key=row[0],
                content=row[1],
                fetched_at=datetime.fromisoformat(row[2]),
                expires_at=expires_at,
            )
        except aiosqlite.Error:
            log.warning("cache_read_error", key=key, exc_info=True)
            return None

    async def get(self, key: str) -> str | None:
        entry = await self.get_entry(key)
        return entry.content if entry is not None else None

    async def put(self, key: str, content: str, ttl_seconds: int | None = None) -> None:
        """Write an entry, replacing any previous one. Non-fatal on failure.

        ``ttl_seconds=None`` stores the entry without an expiry.
        """
        try:
            now = datetime.now(UTC)
            expires_at = (
                (now + timedelta(seconds=ttl_seconds)).isoformat()
                if ttl_seconds is not None
                else None
            )
            await self._db.execute(
                "INSERT OR REPLACE INTO md_cache (key, content, fetched_at, expires_at) "
                "VALUES (?, ?, ?, ?)",
                (key, content, now.isoformat(), expires_at),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_write_error", key=key, exc_info=True)

    async def cleanup_expired(self) -> None:
        """Delete expired entries. Non-fatal on failure."""
        try:
            cursor = await self._db.execute(
                "DELETE FROM md_cache WHERE expires_at IS NOT NULL AND expires_at < ?",
                (datetime.now(UTC).isoformat(),),
            )
            deleted = cursor.rowcount
            await self._db.commit()
            log.info("cache_cleanup_complete", deleted=deleted)
        except aiosqlite.Error:
            log.warning("cache_cleanup_error", exc_info=True)
