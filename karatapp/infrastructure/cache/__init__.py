"""Disk cache used when the backend is unreachable."""

from karatapp.infrastructure.cache.offline_cache import OfflineCache, cache_key

__all__ = ["OfflineCache", "cache_key"]
