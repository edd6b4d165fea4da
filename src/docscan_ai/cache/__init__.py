"""
Content-addressable translation cache.
"""

from docscan_ai.cache.base import CacheEntry, CacheStats, CacheStore
from docscan_ai.cache.translation_cache import TranslationCache, fingerprint

__all__ = [
    "CacheEntry",
    "CacheStats",
    "CacheStore",
    "TranslationCache",
    "fingerprint",
]
