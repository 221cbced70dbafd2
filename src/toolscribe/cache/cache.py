"""Disk-based cache of fetched remote tool sources.

Uses :mod:`diskcache` to keep the bytes of HTTP(S) sources on the
filesystem with a configurable time-to-live (TTL). Only remote content is
cached; local files are always read fresh. The cache sits below the
resolver: a load still fetches each location at most once, the cache only
spares the network round trip across loads.

Cache keys are SHA-256 hashes of the canonical URL.

See Also:
    :class:`~toolscribe.models.CacheConfig` -- ``enabled`` and ``ttl_seconds``.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Any, Optional

import diskcache

from toolscribe.models import CacheConfig


class SourceCache:
    """Disk-backed cache of remote source bytes.

    Args:
        cache_dir: Root directory for the cache. A ``sources/``
            subdirectory is created inside it.
        config: Cache configuration (``enabled`` flag and ``ttl_seconds``).

    Example::

        cache = SourceCache("/tmp/ts-cache", CacheConfig(enabled=True))
        cache.set("https://example.com/tool.gpt", b"echo hi")
        cache.get("https://example.com/tool.gpt")  # b"echo hi"
    """

    def __init__(self, cache_dir: str | Path, config: CacheConfig) -> None:
        self._config = config
        self._cache: Optional[diskcache.Cache] = None
        self._cache_dir = Path(cache_dir)
        if config.enabled:
            self._cache = diskcache.Cache(str(self._cache_dir / "sources"))

    @property
    def enabled(self) -> bool:
        return self._cache is not None

    def get(self, url: str) -> Optional[bytes]:
        """Return the cached bytes for *url*, or ``None`` on a miss or when disabled."""
        if self._cache is None:
            return None
        return self._cache.get(self._make_key(url))

    def set(self, url: str, content: bytes) -> None:
        """Store *content* for *url*; ignored when disabled."""
        if self._cache is None:
            return
        self._cache.set(self._make_key(url), content, expire=self._config.ttl_seconds)

    def invalidate(self, url: str) -> None:
        if self._cache is None:
            return
        self._cache.delete(self._make_key(url))

    def clear(self) -> None:
        """Remove all entries from the cache."""
        if self._cache is not None:
            self._cache.clear()

    def stats(self) -> dict[str, Any]:
        """Return ``{"enabled": False}`` or size, directory and TTL."""
        if self._cache is None:
            return {"enabled": False}
        return {
            "enabled": True,
            "size": len(self._cache),
            "directory": str(self._cache_dir / "sources"),
            "ttl_seconds": self._config.ttl_seconds,
        }

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache`."""
        if self._cache is not None:
            self._cache.close()

    def _make_key(self, url: str) -> str:
        return hashlib.sha256(url.encode()).hexdigest()
