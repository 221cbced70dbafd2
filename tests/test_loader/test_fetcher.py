"""Tests for toolscribe.loader.fetcher."""

from __future__ import annotations

import asyncio
import threading
from pathlib import Path

import httpx
import pytest

from toolscribe.cache import SourceCache
from toolscribe.exceptions import SourceNotFoundError
from toolscribe.loader.fetcher import Fetcher
from toolscribe.models import CacheConfig, LoaderConfig


def _fetch(fetcher: Fetcher, location: str):
    async def _run():
        async with fetcher:
            return await fetcher.fetch(location)

    return asyncio.run(_run())


def _transport(handler) -> httpx.MockTransport:
    return httpx.MockTransport(handler)


# ---------------------------------------------------------------------------
# Canonical locations
# ---------------------------------------------------------------------------


class TestCanonicalLocation:
    def test_blob_url_is_rewritten(self) -> None:
        fetcher = Fetcher()
        assert (
            fetcher.canonical_location("https://github.com/acme/tools/blob/main/agents/tool.gpt")
            == "https://raw.githubusercontent.com/acme/tools/main/agents/tool.gpt"
        )

    def test_other_urls_are_unchanged(self) -> None:
        fetcher = Fetcher()
        assert fetcher.canonical_location("https://example.com/a.gpt") == "https://example.com/a.gpt"
        assert (
            fetcher.canonical_location("https://github.com/acme/tools/tree/main")
            == "https://github.com/acme/tools/tree/main"
        )

    def test_bare_github_reference(self) -> None:
        fetcher = Fetcher()
        assert (
            fetcher.canonical_location("github.com/acme/tools")
            == "https://raw.githubusercontent.com/acme/tools/HEAD/tool.gpt"
        )
        assert (
            fetcher.canonical_location("github.com/acme/tools/agents/search.gpt@v1.2")
            == "https://raw.githubusercontent.com/acme/tools/v1.2/agents/search.gpt"
        )

    def test_bare_github_reference_needs_owner_and_repo(self) -> None:
        with pytest.raises(SourceNotFoundError):
            Fetcher().canonical_location("github.com/acme")

    def test_directory_means_its_tool_file(self, tmp_path: Path) -> None:
        assert Fetcher().canonical_location(str(tmp_path)) == str(tmp_path / "tool.gpt")

    def test_relative_path_becomes_absolute(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        assert Fetcher().canonical_location("a.gpt") == str(tmp_path / "a.gpt")


# ---------------------------------------------------------------------------
# Local files
# ---------------------------------------------------------------------------


class TestLocalFetch:
    def test_reads_bytes(self, tmp_path: Path) -> None:
        path = tmp_path / "tool.gpt"
        path.write_text("Say hello world\n", encoding="utf-8")
        source = _fetch(Fetcher(), str(path))
        assert source.location == str(path)
        assert source.content == b"Say hello world\n"
        assert source.line_anchor == 1

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(SourceNotFoundError) as exc_info:
            _fetch(Fetcher(), str(tmp_path / "missing.gpt"))
        assert exc_info.value.location == str(tmp_path / "missing.gpt")
        assert exc_info.value.exit_code == 4


# ---------------------------------------------------------------------------
# Remote fetches
# ---------------------------------------------------------------------------


class TestRemoteFetch:
    def test_downloads_content(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert str(request.url) == "https://example.com/echo.gpt"
            return httpx.Response(200, text="echo hi")

        source = _fetch(Fetcher(transport=_transport(handler)), "https://example.com/echo.gpt")
        assert source.content == b"echo hi"
        assert source.location == "https://example.com/echo.gpt"

    def test_blob_url_fetches_raw_content(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, text="x")

        source = _fetch(
            Fetcher(transport=_transport(handler)),
            "https://github.com/acme/tools/blob/main/tool.gpt",
        )
        assert seen == ["https://raw.githubusercontent.com/acme/tools/main/tool.gpt"]
        assert source.location == seen[0]

    def test_404_is_not_retried(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(404)

        with pytest.raises(SourceNotFoundError, match="HTTP 404"):
            _fetch(Fetcher(transport=_transport(handler), backoff=0), "https://example.com/x.gpt")
        assert len(calls) == 1

    def test_5xx_is_retried(self) -> None:
        responses = iter([httpx.Response(503), httpx.Response(502), httpx.Response(200, text="ok")])

        def handler(request: httpx.Request) -> httpx.Response:
            return next(responses)

        source = _fetch(
            Fetcher(LoaderConfig(max_retries=2), transport=_transport(handler), backoff=0),
            "https://example.com/x.gpt",
        )
        assert source.content == b"ok"

    def test_5xx_gives_up_after_retries(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(500)

        with pytest.raises(SourceNotFoundError, match="HTTP 500"):
            _fetch(
                Fetcher(LoaderConfig(max_retries=1), transport=_transport(handler), backoff=0),
                "https://example.com/x.gpt",
            )
        assert len(calls) == 2

    def test_transport_error_is_retried(self) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, text="ok")

        source = _fetch(Fetcher(transport=_transport(handler), backoff=0), "https://example.com/x.gpt")
        assert source.content == b"ok"
        assert len(attempts) == 2

    def test_transport_error_without_retries(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SourceNotFoundError, match="connection refused"):
            _fetch(
                Fetcher(LoaderConfig(max_retries=0), transport=_transport(handler), backoff=0),
                "https://example.com/x.gpt",
            )


class TestCachedFetch:
    def test_second_fetch_is_served_from_cache(self, tmp_path: Path) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, text="cached body")

        cache = SourceCache(tmp_path, CacheConfig(enabled=True))
        try:
            fetcher = Fetcher(cache=cache, transport=_transport(handler))
            first = _fetch(fetcher, "https://example.com/a.gpt")
            second = _fetch(fetcher, "https://example.com/a.gpt")
        finally:
            cache.close()

        assert first.content == second.content == b"cached body"
        assert len(calls) == 1

    def test_local_files_are_not_cached(self, tmp_path: Path) -> None:
        path = tmp_path / "a.gpt"
        path.write_text("one", encoding="utf-8")
        cache = SourceCache(tmp_path / "cache", CacheConfig(enabled=True))
        try:
            fetcher = Fetcher(cache=cache)
            _fetch(fetcher, str(path))
            path.write_text("two", encoding="utf-8")
            assert _fetch(fetcher, str(path)).content == b"two"
            assert cache.stats()["size"] == 0
        finally:
            cache.close()

    def test_cache_is_used_off_the_event_loop(self, tmp_path: Path) -> None:
        threads: list[int] = []

        class RecordingCache(SourceCache):
            def get(self, url: str):
                threads.append(threading.get_ident())
                return super().get(url)

            def set(self, url: str, content: bytes) -> None:
                threads.append(threading.get_ident())
                super().set(url, content)

        cache = RecordingCache(tmp_path, CacheConfig(enabled=True))
        try:
            fetcher = Fetcher(
                cache=cache, transport=_transport(lambda request: httpx.Response(200, text="x"))
            )
            _fetch(fetcher, "https://example.com/a.gpt")
        finally:
            cache.close()

        assert len(threads) == 2
        assert threading.get_ident() not in threads
