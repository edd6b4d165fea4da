"""
Content-addressable translation cache.

Identical (text, source language, target language, model) requests share one
SHA-256 fingerprint, so a translation is paid for once and served from the
cache until it expires.
"""

from __future__ import annotations

import asyncio
import hashlib
from dataclasses import replace
from datetime import timedelta
from typing import Any

from docscan_ai.cache.base import CacheEntry, CacheStats, CacheStore
from docscan_ai.exceptions import CacheUnavailableError
from docscan_ai.timeutil import Clock, utc_now

DEFAULT_TTL = timedelta(days=30)
DEFAULT_AGGRESSIVE_TTL = timedelta(days=7)
DEFAULT_MAX_ENTRIES = 10_000
DEFAULT_CLEANUP_FRACTION = 0.1

_DELIMITER = "|"


def fingerprint(text: str, source_lang: str, target_lang: str, model: str) -> str:
    """
    Compute the cache key for a translation request.

    Inputs are hashed verbatim. Callers are responsible for normalizing text
    and language codes consistently before asking.

    Returns:
        64-character hex SHA-256 digest.
    """
    payload = _DELIMITER.join((text, source_lang, target_lang, model))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class TranslationCache:
    """
    Translation cache with lazy expiry and a size bound.

    Store failures surface as CacheUnavailableError so callers can treat the
    cache as a miss and carry on.
    """

    def __init__(
        self,
        store: CacheStore,
        *,
        ttl: timedelta = DEFAULT_TTL,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        aggressive_ttl: timedelta = DEFAULT_AGGRESSIVE_TTL,
        cleanup_fraction: float = DEFAULT_CLEANUP_FRACTION,
        clock: Clock = utc_now,
        log_callback: Any = None,
    ):
        """
        Initialize the cache.

        Args:
            store: Backing key-value store.
            ttl: Age after which an entry is no longer served.
            max_entries: Size above which the oldest entries are evicted.
            aggressive_ttl: Shorter TTL applied when eviction alone is not enough.
            cleanup_fraction: Share of entries evicted when the cache is full.
            clock: Returns the current aware UTC time.
            log_callback: Optional callback accepting (level, message, context).
        """
        self._store = store
        self._ttl = ttl
        self._max_entries = max_entries
        self._aggressive_ttl = aggressive_ttl
        self._cleanup_fraction = cleanup_fraction
        self._clock = clock
        self._log_callback = log_callback
        self._lock = asyncio.Lock()

        self._hits = 0
        self._misses = 0

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def get_stats(self) -> dict[str, Any]:
        """Hit/miss counters for this process."""
        lookups = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / lookups if lookups > 0 else 0.0,
        }

    def _log(self, level: str, message: str, context: dict[str, Any] | None = None) -> None:
        """Log a message via callback if available."""
        if self._log_callback:
            self._log_callback(level, message, context or {})

    def _unavailable(self, action: str, error: Exception) -> CacheUnavailableError:
        return CacheUnavailableError(f"Cache {action} failed: {type(error).__name__}: {error}")

    async def get(self, key: str) -> CacheEntry | None:
        """
        Look up an entry.

        Expired entries are treated as absent even if the sweep has not
        removed them yet.

        Raises:
            CacheUnavailableError: If the store cannot be read.
        """
        async with self._lock:
            try:
                entry = self._store.load_cache_entry(key)
            except Exception as e:
                raise self._unavailable("read", e) from e

        if entry is None or entry.is_expired(self._clock(), self._ttl):
            self._misses += 1
            return None

        self._hits += 1
        return entry

    async def put(self, key: str, entry: CacheEntry) -> None:
        """
        Store an entry, replacing any previous one under the same key.

        Raises:
            ValueError: If key is not the entry's own key.
            CacheUnavailableError: If the store cannot be written.
        """
        if key != entry.key:
            raise ValueError("Cache key does not match entry key")

        async with self._lock:
            try:
                self._store.save_cache_entry(entry)
            except Exception as e:
                raise self._unavailable("write", e) from e

            try:
                self._enforce_limit()
            except Exception as e:
                # The entry is stored; an over-full cache only costs space.
                self._log(
                    "WARNING",
                    "Cache size enforcement failed",
                    {"error_type": type(e).__name__, "error": str(e)},
                )

    async def lookup(
        self, text: str, source_lang: str, target_lang: str, model: str
    ) -> CacheEntry | None:
        """Fingerprint the request and look it up."""
        return await self.get(fingerprint(text, source_lang, target_lang, model))

    async def remember(
        self,
        text: str,
        translated_text: str,
        source_lang: str,
        target_lang: str,
        model: str,
    ) -> CacheEntry:
        """Store a fresh translation under its fingerprint."""
        entry = CacheEntry(
            key=fingerprint(text, source_lang, target_lang, model),
            original_text=text,
            translated_text=translated_text,
            source_language=source_lang,
            target_language=target_lang,
            model=model,
            created_at=self._clock(),
        )
        await self.put(entry.key, entry)
        return entry

    def _enforce_limit(self) -> int:
        count = self._store.count_cache_entries()
        if count <= self._max_entries:
            return 0

        to_delete = max(1, int(count * self._cleanup_fraction))
        removed = self._store.delete_oldest_cache_entries(to_delete)

        if self._store.count_cache_entries() > self._max_entries:
            removed += self._store.sweep_expired_cache_entries(self._aggressive_ttl, self._clock())

        self._log(
            "WARNING",
            f"Cache full, evicted {removed} entries",
            {"before": count, "max_entries": self._max_entries},
        )
        return removed

    async def enforce_limit(self) -> int:
        """
        Evict entries if the cache holds more than max_entries.

        The oldest share (cleanup_fraction) goes first; if that is not enough,
        everything older than the aggressive TTL is removed too.

        Returns:
            Number of entries removed.
        """
        async with self._lock:
            try:
                return self._enforce_limit()
            except Exception as e:
                raise self._unavailable("eviction", e) from e

    async def sweep(self) -> int:
        """Delete expired entries and return how many were removed."""
        async with self._lock:
            try:
                removed = self._store.sweep_expired_cache_entries(self._ttl, self._clock())
            except Exception as e:
                raise self._unavailable("sweep", e) from e

        if removed:
            self._log("INFO", f"Swept {removed} expired cache entries")
        return removed

    async def stats(self) -> CacheStats:
        async with self._lock:
            try:
                stats = self._store.cache_stats()
            except Exception as e:
                raise self._unavailable("stats", e) from e
        return replace(stats, max_entries=self._max_entries)

    async def clear(self) -> int:
        """Delete every entry."""
        async with self._lock:
            try:
                removed = self._store.clear_cache()
            except Exception as e:
                raise self._unavailable("clear", e) from e

        self._log("INFO", f"Cleared {removed} cache entries")
        return removed

    async def sweep_periodically(self, interval: float, stop_event: asyncio.Event) -> None:
        """
        Run sweep() every `interval` seconds until stop_event is set.

        Sweep failures are logged and the loop keeps going.
        """
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            else:
                break

            try:
                await self.sweep()
            except CacheUnavailableError as e:
                self._log("WARNING", "Periodic cache sweep failed", {"error": str(e)})
