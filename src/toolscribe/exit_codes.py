"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~toolscribe.exceptions.ToolscribeError` subclass.
Shell wrappers can inspect the exit code to tell a missing source from a
broken one without parsing stderr.

Example::

    $ toolscribe load ./missing.gpt
    $ echo $?
    4   # EXIT_SOURCE_NOT_FOUND -- the reference could not be fetched
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_SOURCE_NOT_FOUND = 4
"""A tool source could not be read or fetched."""

EXIT_TIMEOUT = 6
"""Resolution did not finish within the configured timeout."""

EXIT_PARSE_ERROR = 7
"""A tool source or OpenAPI document could not be parsed."""

EXIT_RESOLUTION_ERROR = 8
"""A tool reference or the requested entry tool could not be resolved."""
