"""
Translation cache entries and the storage interface behind them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class CacheEntry:
    """A cached translation keyed by the fingerprint of its inputs."""

    key: str
    original_text: str
    translated_text: str
    source_language: str
    target_language: str
    model: str
    created_at: datetime

    def is_expired(self, now: datetime, ttl: timedelta) -> bool:
        return now - self.created_at > ttl


@dataclass
class CacheStats:
    """Summary of cache contents."""

    total_entries: int = 0
    total_original_chars: int = 0
    total_translated_chars: int = 0
    oldest_entry: datetime | None = None
    newest_entry: datetime | None = None
    max_entries: int | None = None

    @property
    def is_healthy(self) -> bool:
        """Whether the cache is below its size limit."""
        return self.max_entries is None or self.total_entries < self.max_entries


class CacheStore(ABC):
    """Key-value persistence for cache entries."""

    @abstractmethod
    def load_cache_entry(self, key: str) -> CacheEntry | None:
        """Return the entry stored under key, expired or not."""
        ...

    @abstractmethod
    def save_cache_entry(self, entry: CacheEntry) -> None:
        """Insert or replace the entry under entry.key."""
        ...

    @abstractmethod
    def sweep_expired_cache_entries(self, ttl: timedelta, now: datetime) -> int:
        """Delete entries older than ttl and return how many were removed."""
        ...

    @abstractmethod
    def count_cache_entries(self) -> int: ...

    @abstractmethod
    def delete_oldest_cache_entries(self, count: int) -> int:
        """Delete up to count entries with the oldest write time."""
        ...

    @abstractmethod
    def cache_stats(self) -> CacheStats: ...

    @abstractmethod
    def clear_cache(self) -> int:
        """Delete every entry and return how many were removed."""
        ...
