"""Serialize a resolved Program into one self-contained artifact and back.

The artifact is a JSON document::

    {
      "kind": "toolscribe.assembled/v1",
      "name": "<root reference>",
      "entry": 0,
      "tools": [ {...tool...}, ... ]
    }

Tools are listed entry first, then by id. Inside each tool the values of
``toolMapping`` and ``localTools`` are rewritten from global ids to indices
into ``tools``, so the artifact carries every tool it needs and reloading it
touches nothing but the artifact. Assembling the same Program twice yields
byte-identical output.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, TextIO

from pydantic import ValidationError

from toolscribe.exceptions import AssembleError
from toolscribe.models import Program, Tool

ASSEMBLED_KIND = "toolscribe.assembled/v1"


def assembled_dict(program: Program) -> dict[str, Any]:
    """Build the artifact as a plain dict.

    Raises:
        AssembleError: If a tool maps to an id missing from the tool set.
    """
    order = [program.entry_tool_id]
    order.extend(sorted(tool_id for tool_id in program.tool_set if tool_id != program.entry_tool_id))
    index = {tool_id: i for i, tool_id in enumerate(order)}

    def _local(tool_id: str, refs: dict[str, str]) -> dict[str, int]:
        try:
            return {key: index[target] for key, target in refs.items()}
        except KeyError as exc:
            raise AssembleError(f"{tool_id} references {exc.args[0]}, which is not in the program") from None

    tools = []
    for tool_id in order:
        data = program.tool_set[tool_id].to_json_dict()
        if "toolMapping" in data:
            data["toolMapping"] = _local(tool_id, data["toolMapping"])
        data["localTools"] = _local(tool_id, data["localTools"])
        tools.append(data)

    return {"kind": ASSEMBLED_KIND, "name": program.name, "entry": 0, "tools": tools}


def assemble(program: Program, out: TextIO) -> None:
    """Write the artifact for *program* to the text stream *out*."""
    out.write(json.dumps(assembled_dict(program), indent=2, ensure_ascii=False) + "\n")


def assemble_to_file(program: Program, path: str | Path) -> None:
    """Write the artifact for *program* to *path* atomically."""
    from toolscribe.config import atomic_write

    atomic_write(Path(path), json.dumps(assembled_dict(program), indent=2, ensure_ascii=False) + "\n")


def disassemble(content: str | bytes) -> Program:
    """Rebuild the Program stored in an artifact.

    Raises:
        AssembleError: If *content* is not a valid artifact.
    """
    try:
        data = json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise AssembleError(f"Invalid assembled artifact: {exc}") from exc
    if not isinstance(data, dict) or data.get("kind") != ASSEMBLED_KIND:
        raise AssembleError(f"Not a {ASSEMBLED_KIND} artifact")

    try:
        entries = data["tools"]
        ids = [entry["id"] for entry in entries]
        tool_set: dict[str, Tool] = {}
        for entry in entries:
            entry = dict(entry)
            entry["toolMapping"] = {raw: ids[i] for raw, i in (entry.get("toolMapping") or {}).items()}
            entry["localTools"] = {name: ids[i] for name, i in (entry.get("localTools") or {}).items()}
            tool = Tool.model_validate(entry)
            tool_set[tool.id] = tool
        return Program(name=data["name"], entry_tool_id=ids[data["entry"]], tool_set=tool_set)
    except (KeyError, IndexError, TypeError, ValidationError) as exc:
        raise AssembleError(f"Malformed assembled artifact: {exc}") from exc


def load_assembled(path: str | Path) -> Program:
    """Read and :func:`disassemble` the artifact at *path*."""
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise AssembleError(f"Cannot read assembled artifact {path}: {exc}") from exc
    return disassemble(content)
