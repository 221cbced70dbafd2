"""Cheap classification of raw source bytes before committing to a parser.

Three dialects reach the loader: native tool syntax, OpenAPI documents (JSON
or YAML, Swagger 2.0 or OpenAPI 3.x), and previously assembled artifacts.
:func:`is_openapi` and :func:`is_assembled` look only at top-level keys;
everything else is treated as native syntax.

:func:`decode_document` is shared with the OpenAPI adapter. It tries JSON
first, since valid JSON is also valid YAML but JSON parsing is stricter and
faster, then falls back to YAML.
"""

from __future__ import annotations

import json
from typing import Any

import yaml

from toolscribe.assemble import ASSEMBLED_KIND
from toolscribe.exceptions import OpenAPIConversionError


def decode_document(content: str, location: str = "", hint: str = "") -> dict[str, Any]:
    """Parse *content* as a JSON or YAML object.

    Args:
        content: The raw text.
        location: Used in error messages only.
        hint: ``"json"`` or ``"yaml"`` to skip the other format.

    Raises:
        OpenAPIConversionError: If the content is neither a JSON nor a
            YAML object.
    """
    json_error: Exception | None = None
    yaml_error: Exception | None = None

    if hint != "yaml":
        try:
            result = json.loads(content)
        except json.JSONDecodeError as exc:
            json_error = exc
            if hint == "json":
                raise OpenAPIConversionError(location, f"Invalid JSON: {exc}") from exc
        else:
            if not isinstance(result, dict):
                raise OpenAPIConversionError(
                    location, f"Document must be a JSON/YAML object (got {type(result).__name__})"
                )
            return result

    try:
        result = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        yaml_error = exc
    else:
        if not isinstance(result, dict):
            kind = type(result).__name__ if result is not None else "empty document"
            raise OpenAPIConversionError(
                location, f"Document must be a JSON/YAML object (got {kind})"
            )
        return result

    msg = "Failed to parse document as JSON or YAML"
    if json_error:
        msg += f"\n  JSON error: {json_error}"
    if yaml_error:
        msg += f"\n  YAML error: {yaml_error}"
    raise OpenAPIConversionError(location, msg)


def is_openapi(content: bytes) -> tuple[int, bool]:
    """Return ``(version, True)`` for OpenAPI documents, ``(0, False)`` otherwise.

    A non-empty ``swagger`` key means version 2; an ``openapi`` value
    starting with ``"3"`` means version 3.
    """
    if b"swagger" not in content and b"openapi" not in content:
        return 0, False
    try:
        doc = decode_document(content.decode("utf-8"))
    except (UnicodeDecodeError, OpenAPIConversionError):
        return 0, False

    if doc.get("swagger"):
        return 2, True
    if str(doc.get("openapi", "")).startswith("3"):
        return 3, True
    return 0, False


def is_assembled(content: bytes) -> bool:
    """True when *content* is an artifact written by :func:`~toolscribe.assemble.assemble`."""
    if ASSEMBLED_KIND.encode() not in content:
        return False
    try:
        doc = json.loads(content)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return False
    return isinstance(doc, dict) and doc.get("kind") == ASSEMBLED_KIND
