"""Exception hierarchy for toolscribe.

All exceptions inherit from :class:`ToolscribeError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`toolscribe.exit_codes`.
The top-level error handler in :func:`toolscribe.app.main` catches
``ToolscribeError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    ToolscribeError (exit 1)
    +-- ConfigError               (exit 1)
    +-- AssembleError             (exit 1)
    +-- SourceNotFoundError       (exit 4)
    +-- LoadTimeoutError          (exit 6)
    +-- ParseError                (exit 7)
    +-- OpenAPIConversionError    (exit 7)
    +-- ReferenceResolutionError  (exit 8)
    +-- EntryNotFoundError        (exit 8)

Resolution is fail-fast: any of these raised while loading aborts the whole
load. Failures below the root are wrapped in
:class:`ReferenceResolutionError` and chained (``raise ... from``) to their
cause, so ``__cause__`` walks the provenance back to the original failure.
"""

from __future__ import annotations

from toolscribe.exit_codes import (
    EXIT_GENERIC_FAILURE,
    EXIT_PARSE_ERROR,
    EXIT_RESOLUTION_ERROR,
    EXIT_SOURCE_NOT_FOUND,
    EXIT_TIMEOUT,
)


class ToolscribeError(Exception):
    """Base exception for all toolscribe errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(ToolscribeError):
    """Raised for configuration problems (invalid JSON, bad values)."""

    exit_code = EXIT_GENERIC_FAILURE


class AssembleError(ToolscribeError):
    """Raised when an assembled artifact cannot be written or read back."""

    exit_code = EXIT_GENERIC_FAILURE


class SourceNotFoundError(ToolscribeError):
    """Raised when a location cannot be read from disk or fetched over HTTP."""

    exit_code = EXIT_SOURCE_NOT_FOUND

    def __init__(self, location: str, reason: str = ""):
        self.location = location
        self.reason = reason
        message = f"Source not found: {location}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class LoadTimeoutError(ToolscribeError):
    """Raised when a load does not finish within the configured timeout."""

    exit_code = EXIT_TIMEOUT


class ParseError(ToolscribeError):
    """Raised when a native tool source is malformed.

    ``line`` is the 1-based line of the offending header entry, or ``0``
    when the problem concerns the source as a whole.
    """

    exit_code = EXIT_PARSE_ERROR

    def __init__(self, location: str, line: int, message: str):
        self.location = location
        self.line = line
        self.message = message
        super().__init__(f"{location}:{line}: {message}")


class OpenAPIConversionError(ToolscribeError):
    """Raised when an OpenAPI document cannot be converted into tools."""

    exit_code = EXIT_PARSE_ERROR

    def __init__(self, location: str, message: str):
        self.location = location
        self.message = message
        super().__init__(f"{location}: {message}")


class ReferenceResolutionError(ToolscribeError):
    """Raised when a tool's reference (or a named sub tool) cannot be resolved.

    Attributes:
        from_tool_id: Id of the tool whose ``tools`` list held the reference,
            empty when the root reference itself failed.
        raw_ref: The reference exactly as the author wrote it.
        reason: Short description of the failure.
    """

    exit_code = EXIT_RESOLUTION_ERROR

    def __init__(self, from_tool_id: str, raw_ref: str, reason: str):
        self.from_tool_id = from_tool_id
        self.raw_ref = raw_ref
        self.reason = reason
        if from_tool_id:
            message = f"Resolving '{raw_ref}' from {from_tool_id}: {reason}"
        else:
            message = f"Resolving '{raw_ref}': {reason}"
        super().__init__(message)


class EntryNotFoundError(ToolscribeError):
    """Raised when the requested sub tool does not exist in the root source."""

    exit_code = EXIT_RESOLUTION_ERROR

    def __init__(self, requested_sub_tool: str, location: str = ""):
        self.requested_sub_tool = requested_sub_tool
        self.location = location
        message = f"Tool '{requested_sub_tool}' not found"
        if location:
            message += f" in {location}"
        super().__init__(message)
