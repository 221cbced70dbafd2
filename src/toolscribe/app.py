"""Typer application and CLI entry point for toolscribe.

The first three commands sit on top of :func:`~toolscribe.loader.load_program`:

* ``toolscribe load REF`` prints the resolved Program as JSON.
* ``toolscribe assemble REF -o FILE`` writes the self-contained artifact.
* ``toolscribe inspect REF`` lists the tools of the Program.
* ``toolscribe list-tools`` lists the built-in ``sys.*`` tools.

:func:`main` is the console-script entry point declared in
``pyproject.toml``. :class:`~toolscribe.exceptions.ToolscribeError` exits
with its ``exit_code``; anything else is written to a crash log under the
data directory.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer

from toolscribe import __version__
from toolscribe.exit_codes import EXIT_GENERIC_FAILURE
from toolscribe.models import Program

app = typer.Typer(
    name="toolscribe",
    help="Load tool definitions and OpenAPI documents into resolved Programs.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"toolscribe {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit."
    ),
    model: Optional[str] = typer.Option(
        None, "--model", help="Default model for tools that do not name one."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Give up on a load after this many seconds."
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Install the output manager and logging, and keep shared options in ``ctx.obj``."""
    from toolscribe.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN
    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
            stream=sys.stderr,
        )

    ctx.ensure_object(dict)
    ctx.obj["model"] = model
    ctx.obj["timeout"] = timeout


def _load(ctx: typer.Context, ref: str, sub_tool: str) -> Program:
    """Resolve the effective configuration and load *ref*.

    Errors are reported on stderr and turned into the matching exit code.
    """
    from toolscribe.cache import SourceCache
    from toolscribe.config import get_cache_dir, resolve_config
    from toolscribe.exceptions import ToolscribeError
    from toolscribe.loader import load_program
    from toolscribe.output import debug, error

    obj = ctx.obj or {}
    cache: Optional[SourceCache] = None
    try:
        config = resolve_config(cli_default_model=obj.get("model"), cli_timeout=obj.get("timeout"))
        if config.cache.enabled:
            cache = SourceCache(get_cache_dir(), config.cache)
        debug(f"Loading {ref}")
        return load_program(ref, sub_tool, config=config.loader, cache=cache)
    except ToolscribeError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    finally:
        if cache is not None:
            cache.close()


@app.command("load")
def load_command(
    ctx: typer.Context,
    ref: str = typer.Argument(help="Path, URL or github.com/<owner>/<repo> reference."),
    sub_tool: str = typer.Option("", "--sub-tool", "-s", help="Entry tool name in the root source."),
    output_file: Optional[Path] = typer.Option(
        None, "-o", "--output", help="Write the Program JSON to this file."
    ),
) -> None:
    """Resolve REF and print the Program as JSON.

    Example::

        toolscribe load ./agent.gpt
        toolscribe load "summarize from ./tools.gpt" -o program.json
    """
    from toolscribe.config import atomic_write
    from toolscribe.output import print_json, success

    program = _load(ctx, ref, sub_tool)
    if output_file is None:
        print_json(program.to_json_dict())
        return
    atomic_write(output_file, program.to_json() + "\n")
    success(f"Wrote {len(program.tool_set)} tool(s) to {output_file}")


@app.command("assemble")
def assemble_command(
    ctx: typer.Context,
    ref: str = typer.Argument(help="Path, URL or github.com/<owner>/<repo> reference."),
    sub_tool: str = typer.Option("", "--sub-tool", "-s", help="Entry tool name in the root source."),
    output_file: str = typer.Option("-", "-o", "--output", help="Artifact path, '-' for stdout."),
) -> None:
    """Write REF and everything it references as one self-contained artifact.

    The artifact loads like any other source and never triggers a fetch.

    Example::

        toolscribe assemble ./agent.gpt -o agent.json
        toolscribe load agent.json
    """
    from toolscribe.assemble import assemble, assemble_to_file
    from toolscribe.exceptions import AssembleError
    from toolscribe.output import error, success

    program = _load(ctx, ref, sub_tool)
    try:
        if output_file == "-":
            assemble(program, sys.stdout)
            return
        assemble_to_file(program, output_file)
    except AssembleError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    success(f"Assembled {len(program.tool_set)} tool(s) into {output_file}")


@app.command("inspect")
def inspect_command(
    ctx: typer.Context,
    ref: str = typer.Argument(help="Path, URL or github.com/<owner>/<repo> reference."),
    sub_tool: str = typer.Option("", "--sub-tool", "-s", help="Entry tool name in the root source."),
) -> None:
    """List every tool of the resolved Program, entry tool first.

    Example::

        toolscribe inspect ./agent.gpt
        toolscribe --json inspect https://example.com/openapi.yaml
    """
    from toolscribe.output import print_table

    program = _load(ctx, ref, sub_tool)
    order = [program.entry_tool_id] + sorted(
        tool_id for tool_id in program.tool_set if tool_id != program.entry_tool_id
    )
    rows: list[list[str]] = []
    for tool_id in order:
        tool = program.tool_set[tool_id]
        rows.append([
            tool_id,
            tool.name or "-",
            tool.description or "-",
            ", ".join(tool.tools),
        ])
    print_table(["ID", "Name", "Description", "Tools"], rows, title=f"{program.name} ({len(rows)} tools)")


@app.command("list-tools")
def list_tools_command() -> None:
    """List the built-in ``sys.*`` tools a reference can name.

    Example::

        toolscribe list-tools
        toolscribe --json list-tools
    """
    from toolscribe.loader import list_builtin_tools
    from toolscribe.output import print_table

    rows = [
        [tool.name, tool.description, ", ".join((tool.arguments or {}).get("properties", {}))]
        for tool in list_builtin_tools()
    ]
    print_table(["Name", "Description", "Arguments"], rows, title=f"Built-in tools ({len(rows)})")


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write the current traceback under the data directory and return its path."""
    from toolscribe.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``toolscribe`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from toolscribe.exceptions import ToolscribeError
        from toolscribe.output import error

        if isinstance(exc, ToolscribeError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
