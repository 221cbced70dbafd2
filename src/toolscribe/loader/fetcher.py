"""Fetch tool sources from local files and HTTP(S) URLs.

:class:`Fetcher` is the loader's only I/O collaborator. It turns a location
into a canonical form (:meth:`Fetcher.canonical_location`) and returns the
raw bytes found there (:meth:`Fetcher.fetch`).

Canonicalisation rules:

* ``https://github.com/<owner>/<repo>/blob/<ref>/<path>`` (the code-hosting
  "view" page) becomes the raw-content URL
  ``https://raw.githubusercontent.com/<owner>/<repo>/<ref>/<path>``.
* A bare ``github.com/<owner>/<repo>[/<path>][@<ref>]`` reference becomes the
  same raw-content URL; the path defaults to ``tool.gpt`` and the ref to
  ``HEAD``.
* Local paths are made absolute; a directory stands for its ``tool.gpt``.

Remote fetches go through :class:`httpx.AsyncClient` with exponential
backoff on transport errors and 5xx responses, bounded by a semaphore, and
optionally through a :class:`~toolscribe.cache.SourceCache`.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

import httpx

from toolscribe.cache import SourceCache
from toolscribe.exceptions import SourceNotFoundError
from toolscribe.loader.reference import is_url
from toolscribe.models import LoaderConfig

logger = logging.getLogger(__name__)

DEFAULT_TOOL_FILE = "tool.gpt"

_GITHUB_PREFIX = "github.com/"
_GITHUB_HOSTS = ("github.com", "www.github.com")
_RAW_GITHUB = "https://raw.githubusercontent.com"


@dataclass(frozen=True)
class FetchedSource:
    """Raw content found at a canonical location.

    ``line_anchor`` is the line number the content starts on within the
    location (always 1 for whole files and URLs).
    """

    location: str
    content: bytes
    line_anchor: int = 1


class Fetcher:
    """Read local files and download remote sources.

    The HTTP client is opened lazily on the first remote fetch and must be
    released with :meth:`aclose` (or by using the fetcher as an async
    context manager).

    Args:
        config: Loader settings (request timeout, retries, SSL, concurrency).
        cache: Optional on-disk cache for remote content.
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`.
        backoff: Base delay in seconds; attempt *n* waits ``backoff * 2**n``.
    """

    def __init__(
        self,
        config: Optional[LoaderConfig] = None,
        cache: Optional[SourceCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        backoff: float = 1.0,
    ) -> None:
        self._config = config or LoaderConfig()
        self._cache = cache
        self._transport = transport
        self._backoff = backoff
        self._client: Optional[httpx.AsyncClient] = None
        self._semaphore: Optional[asyncio.Semaphore] = None

    async def __aenter__(self) -> Fetcher:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            self._semaphore = None

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def canonical_location(self, location: str) -> str:
        """Return the canonical form of an absolute location (see module docs)."""
        if location.startswith(_GITHUB_PREFIX):
            return _github_raw_url(location)
        if is_url(location):
            return _rewrite_blob_url(location)
        path = os.path.abspath(os.path.expanduser(location))
        if os.path.isdir(path):
            path = os.path.join(path, DEFAULT_TOOL_FILE)
        return path

    async def fetch(self, location: str) -> FetchedSource:
        """Return the bytes at *location*.

        Raises:
            SourceNotFoundError: If the file cannot be read or the URL cannot
                be fetched (after retries).
        """
        canonical = self.canonical_location(location)
        if is_url(canonical):
            content = await self._fetch_url(canonical)
        else:
            content = await self._read_file(canonical)
        return FetchedSource(location=canonical, content=content)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _read_file(self, path: str) -> bytes:
        logger.debug("Reading %s", path)
        try:
            return await asyncio.to_thread(Path(path).read_bytes)
        except OSError as exc:
            raise SourceNotFoundError(path, exc.strerror or str(exc)) from exc

    def _open_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._config.request_timeout,
                verify=self._config.verify_ssl,
                follow_redirects=True,
                transport=self._transport,
            )
            self._semaphore = asyncio.Semaphore(self._config.max_concurrency)
        return self._client

    async def _fetch_url(self, url: str) -> bytes:
        if self._cache is not None:
            cached = await asyncio.to_thread(self._cache.get, url)
            if cached is not None:
                logger.debug("Cache hit for %s", url)
                return cached

        client = self._open_client()
        assert self._semaphore is not None
        async with self._semaphore:
            content = await self._get_with_retry(client, url)

        if self._cache is not None:
            await asyncio.to_thread(self._cache.set, url, content)
        return content

    async def _get_with_retry(self, client: httpx.AsyncClient, url: str) -> bytes:
        """GET *url*, retrying 5xx responses and transport errors with exponential backoff."""
        max_retries = self._config.max_retries

        for attempt in range(max_retries + 1):
            logger.debug("Fetching %s (attempt %d)", url, attempt + 1)
            try:
                response = await client.get(url)
            except httpx.TransportError as exc:
                if attempt < max_retries:
                    delay = self._backoff * 2**attempt
                    logger.warning("Fetching %s failed: %s, retrying in %ss", url, exc, delay)
                    await asyncio.sleep(delay)
                    continue
                raise SourceNotFoundError(url, str(exc) or type(exc).__name__) from exc

            if response.status_code >= 500 and attempt < max_retries:
                delay = self._backoff * 2**attempt
                logger.warning(
                    "Server error %d for %s, retrying in %ss", response.status_code, url, delay
                )
                await asyncio.sleep(delay)
                continue
            if response.status_code >= 400:
                raise SourceNotFoundError(url, f"HTTP {response.status_code}")
            return response.content

        raise SourceNotFoundError(url, "request failed after all retries")  # pragma: no cover


def _rewrite_blob_url(url: str) -> str:
    parts = urlsplit(url)
    segments = parts.path.strip("/").split("/")
    if parts.netloc in _GITHUB_HOSTS and len(segments) > 4 and segments[2] == "blob":
        owner, repo, _, ref, *path = segments
        return f"{_RAW_GITHUB}/{owner}/{repo}/{ref}/{'/'.join(path)}"
    return url


def _github_raw_url(ref: str) -> str:
    path_part, _, version = ref[len(_GITHUB_PREFIX) :].partition("@")
    segments = [s for s in path_part.split("/") if s]
    if len(segments) < 2:
        raise SourceNotFoundError(ref, "expected github.com/<owner>/<repo>[/<path>]")
    owner, repo, *path = segments
    return f"{_RAW_GITHUB}/{owner}/{repo}/{version or 'HEAD'}/{'/'.join(path) or DEFAULT_TOOL_FILE}"
