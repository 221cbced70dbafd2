"""Built-in ``sys.*`` tools.

A reference such as ``tools: sys.read`` never reaches the fetcher. The
resolver takes the tool from this registry and adds it to the Program's tool
set under its own name, so the mapping reads ``"sys.read" -> "sys.read"``.
A built-in's instructions are ``#!<name>``; the runner dispatches that
directive to its own implementation, the same way it handles the
``#!sys.openapi`` directive of OpenAPI tools.
"""

from __future__ import annotations

from typing import Optional

from toolscribe.models import Tool

BUILTIN_PREFIX = "sys."

# name -> (description, {argument: description})
_BUILTINS: dict[str, tuple[str, dict[str, str]]] = {
    "sys.abort": (
        "Aborts execution",
        {"message": "The description of the error or unexpected result that caused abort to be called"},
    ),
    "sys.append": (
        "Appends the contents to a file",
        {"filename": "The name of the file to append to", "content": "The content to append"},
    ),
    "sys.download": (
        "Downloads a URL, saving the contents to disk at a given location",
        {
            "url": "The URL to download, either http or https.",
            "location": "(optional) The on disk location to store the file. If no location is specified "
            "a temp location will be used.",
            "override": "If true and a file at the location exists, the file will be overwritten, "
            "otherwise fail. Default is false",
        },
    ),
    "sys.exec": (
        "Execute a command and get the output of the command",
        {
            "command": "The command to run including all applicable arguments",
            "directory": "The directory to use as the current working directory of the command. "
            "The current directory '.' will be used if no argument is passed",
        },
    ),
    "sys.find": (
        "Traverse a directory looking for files that match a pattern in the style of the unix find command",
        {
            "pattern": "The file pattern to look for. The pattern is a traditional unix glob format "
            "with * matching any character and ? matching a single character",
            "directory": "The directory to search in. The current directory '.' will be used as the "
            "default if no argument is passed",
        },
    ),
    "sys.getenv": (
        "Gets the value of an OS environment variable",
        {"name": "The environment variable name to lookup"},
    ),
    "sys.http.get": (
        "Download the contents of a http or https URL",
        {"url": "The URL to download"},
    ),
    "sys.http.html2text": (
        "Download the contents of a http or https URL returning the content as rendered text converted from HTML",
        {"url": "The URL to download"},
    ),
    "sys.http.post": (
        "Write contents to a http or https URL using the POST method",
        {
            "url": "The URL to POST to",
            "content": "The content to POST",
            "contentType": "The \"content type\" of the content such as application/json or text/plain",
        },
    ),
    "sys.ls": (
        "Lists the contents of a directory",
        {"dir": "The directory to list"},
    ),
    "sys.read": (
        "Reads the contents of a file",
        {"filename": "The name of the file to read"},
    ),
    "sys.remove": (
        "Removes the specified file",
        {"location": "The file to remove"},
    ),
    "sys.stat": (
        "Gets size, modified time, and mode of the specified file",
        {"filepath": "The complete path and filename of the file"},
    ),
    "sys.write": (
        "Write the contents to a file",
        {"filename": "The name of the file to write to", "content": "The content to write"},
    ),
}


def is_builtin_ref(ref: str) -> bool:
    """Return True if *ref* names the built-in namespace (``sys.*``)."""
    return ref.startswith(BUILTIN_PREFIX)


def builtin_tool(name: str) -> Optional[Tool]:
    """Return the built-in tool called *name*, or None if there is none."""
    entry = _BUILTINS.get(name)
    if entry is None:
        return None
    description, params = entry
    return Tool(
        id=name,
        name=name,
        description=description,
        arguments={
            "properties": {
                arg: {"description": text, "type": "string"} for arg, text in params.items()
            },
            "type": "object",
        },
        instructions=f"#!{name}",
    )


def list_builtin_tools() -> list[Tool]:
    """Every built-in tool, sorted by name."""
    return [tool for tool in map(builtin_tool, sorted(_BUILTINS)) if tool is not None]
