"""Reference strings and location arithmetic.

A reference is what an author writes in a tool's ``tools:`` header or passes
on the command line. It has one of three shapes::

    <sub tool> from <tool> with <args>
    <tool> with <args>
    <tool>

:func:`split_tool_ref` separates the tool part from the sub tool name and
drops the argument text. The remaining helpers turn a tool part into a
canonical location and derive the working directory that references found
inside that location are resolved against.
"""

from __future__ import annotations

import os
import posixpath
import re
from urllib.parse import urljoin, urlsplit

_URL_PREFIXES = ("http://", "https://")
_GITHUB_PREFIX = "github.com/"
_FROM = re.compile(r"(?:^|\s)from(?:\s|$)")
_WITH = re.compile(r"(?:^|\s)with(?:\s|$)")


def split_tool_ref(ref: str) -> tuple[str, str]:
    """Split a reference into ``(tool, sub_tool)``.

    ``from`` and ``with`` are only recognised as whole, lower-case words.
    Everything after ``with`` is argument text and is discarded. The tool
    part is returned as written, inner whitespace included.

    Example::

        >>> split_tool_ref("a from b with x")
        ('b', 'a')
        >>> split_tool_ref("a with x")
        ('a', '')
    """
    ref = ref.strip()
    sub_tool = ""
    keyword = _FROM.search(ref)
    if keyword:
        sub_tool = ref[: keyword.start()].strip()
        ref = ref[keyword.end() :].strip()
    keyword = _WITH.search(ref)
    if keyword:
        ref = ref[: keyword.start()].strip()
    return ref, sub_tool


def is_url(location: str) -> bool:
    return location.startswith(_URL_PREFIXES)


def is_absolute(ref: str) -> bool:
    """True for URLs, bare ``github.com/...`` references and absolute paths."""
    return is_url(ref) or ref.startswith(_GITHUB_PREFIX) or os.path.isabs(ref)


def join_location(ref: str, base_dir: str) -> str:
    """Resolve *ref* against *base_dir* unless it is already absolute.

    *base_dir* is either a URL prefix or a local directory; the join follows
    URL semantics for the former (``../`` climbs path segments) and
    :func:`os.path.join` plus normalisation for the latter.
    """
    if is_absolute(ref):
        return ref
    if is_url(base_dir):
        return urljoin(base_dir.rstrip("/") + "/", ref)
    return os.path.normpath(os.path.join(base_dir, os.path.expanduser(ref)))


def working_dir(location: str, base_dir: str | None = None) -> str:
    """Derive the working directory of a source from its location alone.

    * URL: scheme and host plus the directory part of the path
      (``https://h/echo.gpt`` -> ``https://h/``,
      ``https://h/a/sub/tool.gpt`` -> ``https://h/a/sub``).
    * Absolute path: its parent directory.
    * Anything else is a synthetic label (inline text); its working dir is
      *base_dir*, defaulting to the current directory.
    """
    if is_url(location):
        parts = urlsplit(location)
        return f"{parts.scheme}://{parts.netloc}{posixpath.dirname(parts.path) or '/'}"
    if os.path.isabs(location):
        return os.path.dirname(location)
    return base_dir or os.getcwd()
