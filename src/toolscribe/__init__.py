"""toolscribe -- load tool definitions into an immutable, resolved Program.

A *tool* is an LLM-callable action written in a small text syntax, or derived
from an operation of an OpenAPI document. Tools reference each other by
name, by relative path or by URL. This package fetches every source a root
reference needs, parses it, resolves each reference to a stable tool id, and
returns a :class:`~toolscribe.models.Program` that a runner can execute.

Typical use::

    from toolscribe.loader import load_program

    program = load_program("./agent.gpt")
    print(program.to_json())

    toolscribe assemble ./agent.gpt -o agent.json   # one self-contained file

Modules:
    loader: Fetching, sniffing, parsing and resolving references.
    openapi: OpenAPI v2/v3 documents as tools.
    assemble: Self-contained Program artifacts.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    output: stdout/stderr formatting for the command line.
    app: Typer application and CLI entry point.
"""

__version__ = "0.1.0"
