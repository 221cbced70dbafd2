"""Resolve a tool reference into a :class:`~toolscribe.models.Program`.

:class:`Loader` drives fetch -> sniff -> parse -> reference resolution:

1. The root reference is split (``<sub> from <tool> with <args>``), joined
   against the base directory and canonicalised by the fetcher.
2. Every canonical location is fetched and parsed at most once per load.
   The per-load memo table maps a location to the task that fetches and
   parses it; the first caller creates the task without yielding to the
   event loop, later callers await the same task. That task finishes as
   soon as the source's tools are in the tool set. Its references are then
   resolved by a separate task, so a reference only ever waits for its
   target to be *parsed*, never for the target's own references. Diamonds
   collapse onto one fetch and genuine cycles (A -> B -> A) terminate.
3. A reference whose text (or, without ``from``, whose tool part) matches a
   tool of the same source maps to that sibling. A ``sys.*`` name maps to the
   built-in tool of that name. Any other reference is a location relative
   to the referencing tool's ``working_dir``; it maps to the target source's
   first tool, or to its named sub tool. References a source maps itself
   (the root tool of an OpenAPI document) are left as they are.
4. The entry tool is the root source's first tool or its named sub tool.

Resolution is fail-fast: the first error cancels every in-flight task and
propagates; no partial Program is returned. Errors below the root are
wrapped in :class:`~toolscribe.exceptions.ReferenceResolutionError` once per
hop back to the root, each chained to the previous one.

Nothing outlives a load: memo table and tool set belong to one call.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Coroutine, Optional

from toolscribe.assemble import disassemble
from toolscribe.cache import SourceCache
from toolscribe.exceptions import (
    EntryNotFoundError,
    LoadTimeoutError,
    ParseError,
    ReferenceResolutionError,
    ToolscribeError,
)
from toolscribe.loader.builtin import builtin_tool, is_builtin_ref
from toolscribe.loader.fetcher import FetchedSource, Fetcher
from toolscribe.loader.parser import parse_tools
from toolscribe.loader.reference import join_location, split_tool_ref, working_dir
from toolscribe.loader.sniffer import decode_document, is_assembled, is_openapi
from toolscribe.models import LoaderConfig, Program, Tool
from toolscribe.openapi import tools_from_openapi

logger = logging.getLogger(__name__)

INLINE_LOCATION = "inline"


@dataclass
class _ParsedSource:
    """The tools one location produced, in definition order."""

    location: str
    tool_ids: list[str]
    local_tools: dict[str, str]
    # Assembled artifacts arrive with every reference already mapped.
    linked: bool = False


@dataclass
class _LoadState:
    base_dir: str
    tool_set: dict[str, Tool] = field(default_factory=dict)
    mappings: dict[str, dict[str, str]] = field(default_factory=dict)
    sources: dict[str, asyncio.Future[_ParsedSource]] = field(default_factory=dict)
    referrers: dict[str, tuple[str, str]] = field(default_factory=dict)
    pending: set[asyncio.Future[Any]] = field(default_factory=set)

    def schedule(self, coro: Coroutine[Any, Any, None]) -> None:
        self.pending.add(asyncio.ensure_future(coro))

    async def drain(self) -> None:
        """Wait until no resolution task is left, raising the first failure."""
        while self.pending:
            done, _ = await asyncio.wait(self.pending, return_when=asyncio.FIRST_EXCEPTION)
            self.pending -= done
            for task in done:
                task.result()

    async def abandon(self) -> None:
        """Cancel whatever is still running and collect every outcome."""
        tasks = [*self.pending, *self.sources.values()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.pending.clear()

    def with_provenance(self, location: str, exc: ToolscribeError) -> ToolscribeError:
        """Wrap *exc* once per referencing tool on the path from the root to *location*."""
        seen = {location}
        while location in self.referrers:
            tool_id, raw_ref = self.referrers[location]
            wrapped = ReferenceResolutionError(tool_id, raw_ref, str(exc))
            wrapped.__cause__ = exc
            exc = wrapped
            location = self.tool_set[tool_id].source.location
            if location in seen:
                break
            seen.add(location)
        return exc

    def program(self, name: str, entry_tool_id: str) -> Program:
        tool_set: dict[str, Tool] = {}
        for tool_id, tool in self.tool_set.items():
            mapping = self.mappings.get(tool_id)
            if mapping:
                ordered = dict(tool.tool_mapping)
                ordered.update((raw, mapping[raw]) for raw in tool.tools if raw in mapping)
                tool = tool.model_copy(update={"tool_mapping": MappingProxyType(ordered)})
            tool_set[tool_id] = tool
        return Program(name=name, entry_tool_id=entry_tool_id, tool_set=tool_set)


class Loader:
    """Load tool references into Programs.

    Args:
        config: Loader settings; ``timeout`` bounds a whole load and
            ``default_model`` is given to tools without a model.
        fetcher: Source fetcher. Defaults to a :class:`Fetcher` built from
            *config* and *cache*. Its HTTP client is closed after every load.
        cache: Optional on-disk cache for the default fetcher.

    Example::

        program = await Loader().load("./examples/tool.gpt")
        program.entry_tool.instructions
    """

    def __init__(
        self,
        config: Optional[LoaderConfig] = None,
        fetcher: Optional[Fetcher] = None,
        cache: Optional[SourceCache] = None,
    ) -> None:
        self._config = config or LoaderConfig()
        self._fetcher = fetcher or Fetcher(self._config, cache=cache)

    async def load(self, ref: str, sub_tool: str = "", base_dir: Optional[str] = None) -> Program:
        """Resolve *ref* and everything it references.

        Args:
            ref: A reference (path, URL, ``github.com/...``), optionally in
                ``<sub> from <tool>`` form.
            sub_tool: Entry tool name; takes precedence over a sub tool
                named in *ref*.
            base_dir: Directory (or URL prefix) that a relative *ref* is
                joined against. Defaults to the current directory.

        Raises:
            SourceNotFoundError: If the root location cannot be fetched.
            ParseError: If the root source is malformed.
            OpenAPIConversionError: If the root OpenAPI document cannot be
                converted.
            EntryNotFoundError: If *sub_tool* is not defined by the root source.
            ReferenceResolutionError: If anything below the root fails.
            LoadTimeoutError: If the configured timeout elapses.
        """
        tool_ref, ref_sub_tool = split_tool_ref(ref)
        state = _LoadState(base_dir=base_dir or os.getcwd())

        async def _run() -> Program:
            location = self._fetcher.canonical_location(join_location(tool_ref, state.base_dir))
            root = await self._source(state, location)
            return await self._finish(state, ref, root, sub_tool or ref_sub_tool)

        return await self._bounded(_run(), ref)

    async def load_source(
        self,
        content: str,
        sub_tool: str = "",
        location: str = INLINE_LOCATION,
        base_dir: Optional[str] = None,
    ) -> Program:
        """Resolve inline *content* as if it had been fetched from *location*.

        When *location* is a synthetic label rather than a path or URL,
        relative references resolve against *base_dir* (default: the
        current directory).
        """
        state = _LoadState(base_dir=base_dir or os.getcwd())

        async def _run() -> Program:
            future: asyncio.Future[_ParsedSource] = asyncio.get_running_loop().create_future()
            state.sources[location] = future
            future.set_result(self._register(state, FetchedSource(location, content.encode("utf-8"))))
            return await self._finish(state, location, future.result(), sub_tool)

        return await self._bounded(_run(), location)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _bounded(self, coro: Coroutine[Any, Any, Program], name: str) -> Program:
        try:
            if self._config.timeout is None:
                return await coro
            return await asyncio.wait_for(coro, self._config.timeout)
        except asyncio.TimeoutError:
            raise LoadTimeoutError(
                f"Loading '{name}' did not finish within {self._config.timeout}s"
            ) from None
        finally:
            await self._fetcher.aclose()

    async def _finish(
        self, state: _LoadState, name: str, root: _ParsedSource, sub_tool: str
    ) -> Program:
        try:
            entry_tool_id = _select(root, sub_tool)
            await state.drain()
        finally:
            await state.abandon()
        logger.debug("Loaded %s: %d tool(s)", name, len(state.tool_set))
        return state.program(name, entry_tool_id)

    async def _source(self, state: _LoadState, location: str) -> _ParsedSource:
        """Return the parsed source at *location*, fetching it on first use."""
        task = state.sources.get(location)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_register(state, location))
            state.sources[location] = task
        return await task

    async def _fetch_and_register(self, state: _LoadState, location: str) -> _ParsedSource:
        fetched = await self._fetcher.fetch(location)
        return self._register(state, fetched)

    def _register(self, state: _LoadState, fetched: FetchedSource) -> _ParsedSource:
        """Parse *fetched*, add its tools to the tool set and schedule their references."""
        tools, linked = self._parse(fetched, state.base_dir)
        for tool in tools:
            state.tool_set.setdefault(tool.id, tool)

        parsed = _ParsedSource(
            location=fetched.location,
            tool_ids=[tool.id for tool in tools],
            local_tools=dict(tools[0].local_tools),
            linked=linked,
        )
        if not linked and any(_unresolved(tool) for tool in tools):
            state.schedule(self._resolve_references(state, parsed))
        return parsed

    def _parse(self, fetched: FetchedSource, base_dir: str) -> tuple[list[Tool], bool]:
        location = fetched.location
        if is_assembled(fetched.content):
            program = disassemble(fetched.content)
            entry = program.entry_tool
            others = [t for tool_id, t in sorted(program.tool_set.items()) if tool_id != entry.id]
            logger.debug("Using assembled program from %s", location)
            return [entry, *others], True

        try:
            text = fetched.content.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError(location, 0, f"content is not UTF-8 text: {exc}") from exc

        wd = working_dir(location, base_dir)
        version, ok = is_openapi(fetched.content)
        if ok:
            document = decode_document(text, location)
            tools = tools_from_openapi(document, version, location, wd, self._config.default_model)
        else:
            tools = parse_tools(
                text, location, wd, self._config.default_model, first_line=fetched.line_anchor
            )
        return tools, False

    async def _resolve_references(self, state: _LoadState, parsed: _ParsedSource) -> None:
        jobs = [
            asyncio.ensure_future(self._resolve_reference(state, tool, raw_ref))
            for tool in (state.tool_set[tool_id] for tool_id in parsed.tool_ids)
            for raw_ref in _unresolved(tool)
        ]
        try:
            await asyncio.gather(*jobs)
        except ToolscribeError as exc:
            wrapped = state.with_provenance(parsed.location, exc)
            if wrapped is exc:
                raise
            raise wrapped  # __cause__ is already exc
        finally:
            for job in jobs:
                job.cancel()
            await asyncio.gather(*jobs, return_exceptions=True)

    async def _resolve_reference(self, state: _LoadState, tool: Tool, raw_ref: str) -> None:
        tool_ref, sub_tool = split_tool_ref(raw_ref)
        if not tool_ref:
            raise ReferenceResolutionError(tool.id, raw_ref, "empty reference")

        # A sibling whose name is the whole reference wins over the grammar.
        local_id = tool.local_tools.get(raw_ref.lower())
        if local_id is None and not sub_tool:
            local_id = tool.local_tools.get(tool_ref.lower())

        if local_id is not None:
            target = local_id
        elif not sub_tool and is_builtin_ref(tool_ref):
            builtin = builtin_tool(tool_ref)
            if builtin is None:
                raise ReferenceResolutionError(tool.id, raw_ref, f"unknown built-in tool '{tool_ref}'")
            state.tool_set.setdefault(builtin.id, builtin)
            target = builtin.id
        else:
            try:
                location = self._fetcher.canonical_location(join_location(tool_ref, tool.working_dir))
                state.referrers.setdefault(location, (tool.id, raw_ref))
                target = _select(await self._source(state, location), sub_tool)
            except ReferenceResolutionError:
                raise
            except ToolscribeError as exc:
                raise ReferenceResolutionError(tool.id, raw_ref, str(exc)) from exc

        logger.debug("%s: '%s' -> %s", tool.id, raw_ref, target)
        state.mappings.setdefault(tool.id, {})[raw_ref] = target


def _unresolved(tool: Tool) -> list[str]:
    """References of *tool* that its source did not already map."""
    return [raw_ref for raw_ref in tool.tools if raw_ref not in tool.tool_mapping]


def _select(parsed: _ParsedSource, sub_tool: str) -> str:
    if not sub_tool:
        return parsed.tool_ids[0]
    target = parsed.local_tools.get(sub_tool.lower())
    if target is None:
        raise EntryNotFoundError(sub_tool, parsed.location)
    return target


def load_program(
    ref: str,
    sub_tool: str = "",
    config: Optional[LoaderConfig] = None,
    base_dir: Optional[str] = None,
    fetcher: Optional[Fetcher] = None,
    cache: Optional[SourceCache] = None,
) -> Program:
    """Synchronous wrapper around :meth:`Loader.load`."""
    return asyncio.run(Loader(config, fetcher=fetcher, cache=cache).load(ref, sub_tool, base_dir))


def load_program_from_source(
    content: str,
    sub_tool: str = "",
    location: str = INLINE_LOCATION,
    config: Optional[LoaderConfig] = None,
    base_dir: Optional[str] = None,
    fetcher: Optional[Fetcher] = None,
) -> Program:
    """Synchronous wrapper around :meth:`Loader.load_source`."""
    return asyncio.run(
        Loader(config, fetcher=fetcher).load_source(content, sub_tool, location, base_dir)
    )
