"""Loading tool references into resolved Programs.

This package turns a reference (local path, URL, ``github.com/...`` or
inline text) into a :class:`~toolscribe.models.Program`:

* :mod:`~toolscribe.loader.reference` -- reference grammar and location arithmetic.
* :mod:`~toolscribe.loader.fetcher` -- local and HTTP(S) fetching.
* :mod:`~toolscribe.loader.sniffer` -- native / OpenAPI / assembled detection.
* :mod:`~toolscribe.loader.parser` -- the native tool syntax.
* :mod:`~toolscribe.loader.builtin` -- the built-in ``sys.*`` tools.
* :mod:`~toolscribe.loader.resolver` -- recursive reference resolution.
"""

from toolscribe.loader.builtin import builtin_tool, list_builtin_tools
from toolscribe.loader.fetcher import FetchedSource, Fetcher
from toolscribe.loader.parser import parse_tools
from toolscribe.loader.reference import join_location, split_tool_ref, working_dir
from toolscribe.loader.resolver import Loader, load_program, load_program_from_source
from toolscribe.loader.sniffer import decode_document, is_assembled, is_openapi

__all__ = [
    "FetchedSource",
    "Fetcher",
    "Loader",
    "builtin_tool",
    "decode_document",
    "is_assembled",
    "is_openapi",
    "join_location",
    "list_builtin_tools",
    "load_program",
    "load_program_from_source",
    "parse_tools",
    "split_tool_ref",
    "working_dir",
]
