"""Disk-based cache of remote tool sources.

This package provides :class:`SourceCache`, used by
:class:`~toolscribe.loader.fetcher.Fetcher` to keep fetched HTTP(S) content
between loads when the ``cache`` section of the configuration
(:class:`~toolscribe.models.CacheConfig`) enables it.
"""

from toolscribe.cache.cache import SourceCache

__all__ = ["SourceCache"]
