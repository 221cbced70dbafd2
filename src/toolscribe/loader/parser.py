"""Parser for the native tool syntax.

A source holds one or more tool blocks separated by lines that consist of
``---`` alone. Each block starts with a header of ``key: value`` lines and
continues with free-text instructions::

    name: summarize
    description: Summarize a file
    tools: sys.read, ../helpers/clean.gpt
    args: file: The file to summarize

    Read ${file} and summarize it.
    ---
    name: other
    ...

Header keys are case-insensitive and may contain spaces (``Internal
Prompt``). The header ends at the first line that is not a recognised
``key: value`` pair or that starts with ``#!``; that line and everything
after it are the instructions. ``#`` comment lines inside the header are
skipped.

References in ``tools`` are kept verbatim. Turning them into ids is the
resolver's job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from toolscribe.exceptions import ParseError
from toolscribe.models import DEFAULT_MODEL, Tool, ToolSource

logger = logging.getLogger(__name__)

_SEPARATOR = "---"

_HEADER_KEYS = {
    "name": "name",
    "description": "description",
    "model": "model_name",
    "modelname": "model_name",
    "tool": "tools",
    "tools": "tools",
    "arg": "args",
    "args": "args",
    "param": "args",
    "params": "args",
    "parameter": "args",
    "parameters": "args",
    "internalprompt": "internal_prompt",
    "maxtoken": "max_tokens",
    "maxtokens": "max_tokens",
    "temperature": "temperature",
    "jsonresponse": "json_response",
    "cache": "cache",
}


@dataclass
class _Block:
    start: int
    fields: dict[str, Any] = field(default_factory=dict)
    tools: list[str] = field(default_factory=list)
    properties: dict[str, Any] = field(default_factory=dict)
    body: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (self.fields or self.tools or self.properties or "".join(self.body).strip())


def parse_tools(
    content: str,
    location: str,
    working_dir: str,
    default_model: str = DEFAULT_MODEL,
    first_line: int = 1,
) -> list[Tool]:
    """Parse every tool block in *content*.

    Args:
        content: Source text.
        location: Canonical location of the source; tool ids are
            ``<location>:<first line of the block>``.
        working_dir: Working directory recorded on every tool.
        default_model: Model name for blocks without a ``model`` header.
        first_line: Line number of the first line of *content* within its
            location.

    Returns:
        The tools in the order they are defined. All of them share one
        ``local_tools`` map; ``""`` points at the first.

    Raises:
        ParseError: On an invalid header value, a duplicate tool name, or a
            source without any tool.
    """
    blocks = [b for b in _split_blocks(content, location, first_line) if not b.empty]
    if not blocks:
        raise ParseError(location, 0, "no tool definitions found")

    local_tools: dict[str, str] = {}
    for block in blocks:
        tool_id = f"{location}:{block.start}"
        name = block.fields.get("name", "")
        if name:
            key = name.lower()
            if key in local_tools:
                raise ParseError(location, block.start, f"duplicate tool name '{name}'")
            local_tools[key] = tool_id
    local_tools[""] = f"{location}:{blocks[0].start}"

    tools = []
    for block in blocks:
        arguments: Optional[dict[str, Any]] = None
        if block.properties:
            arguments = {"properties": block.properties, "type": "object"}
        tools.append(
            Tool(
                id=f"{location}:{block.start}",
                name=block.fields.get("name", ""),
                description=block.fields.get("description", ""),
                model_name=block.fields.get("model_name") or default_model,
                max_tokens=block.fields.get("max_tokens"),
                temperature=block.fields.get("temperature"),
                json_response=block.fields.get("json_response"),
                cache=block.fields.get("cache"),
                internal_prompt=block.fields.get("internal_prompt"),
                arguments=arguments,
                tools=block.tools,
                instructions="\n".join(block.body).strip(),
                local_tools=dict(local_tools),
                source=ToolSource(location=location, line_no=block.start),
                working_dir=working_dir,
            )
        )

    logger.debug("Parsed %d tool(s) from %s", len(tools), location)
    return tools


def _split_blocks(content: str, location: str, first_line: int) -> list[_Block]:
    blocks: list[_Block] = []
    block = _Block(start=first_line)
    in_header = True

    for lineno, line in enumerate(content.splitlines(), start=first_line):
        if line.strip() == _SEPARATOR:
            blocks.append(block)
            block = _Block(start=lineno + 1)
            in_header = True
            continue

        if in_header:
            stripped = line.strip()
            if stripped.startswith("#") and not stripped.startswith("#!"):
                continue
            if not stripped.startswith("#!") and _apply_header(block, line, location, lineno):
                continue
            in_header = False

        block.body.append(line)

    blocks.append(block)
    return blocks


def _apply_header(block: _Block, line: str, location: str, lineno: int) -> bool:
    """Record a header line on *block*; return False if it is not a header line."""
    raw_key, sep, raw_value = line.partition(":")
    if not sep:
        return False
    key = _HEADER_KEYS.get(raw_key.lower().replace(" ", "").strip())
    if key is None:
        return False
    value = raw_value.strip()

    if key == "tools":
        block.tools.extend(t.strip() for t in value.split(",") if t.strip())
    elif key == "args":
        arg_name, arg_sep, arg_desc = value.partition(":")
        if not arg_sep or not arg_name.strip():
            raise ParseError(
                location, lineno, f"argument must be written as 'name: description', got '{value}'"
            )
        block.properties[arg_name.strip()] = {"description": arg_desc.strip(), "type": "string"}
    elif key in ("internal_prompt", "json_response", "cache"):
        block.fields[key] = _parse_bool(value, raw_key.strip(), location, lineno)
    elif key == "max_tokens":
        try:
            block.fields[key] = int(value)
        except ValueError:
            raise ParseError(location, lineno, f"invalid integer for {raw_key.strip()}: '{value}'") from None
    elif key == "temperature":
        try:
            block.fields[key] = float(value)
        except ValueError:
            raise ParseError(location, lineno, f"invalid number for {raw_key.strip()}: '{value}'") from None
    else:
        block.fields[key] = value
    return True


def _parse_bool(value: str, key: str, location: str, lineno: int) -> bool:
    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    raise ParseError(location, lineno, f"invalid boolean for {key}: '{value}'")
