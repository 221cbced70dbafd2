"""Inline ``$ref`` JSON Reference pointers in OpenAPI documents.

Operation parameters and request bodies frequently point into
``#/components`` (OpenAPI 3) or ``#/definitions`` and ``#/parameters``
(Swagger 2). Tool arguments have to be self-contained, so the adapter
replaces every pointer with a copy of its target before extracting
operations.

Only internal references (``#/...``) are followed. A reference back onto a
pointer already being expanded on the current branch is left as the raw
``{"$ref": ...}`` dict so that recursive schemas terminate.
"""

from __future__ import annotations

import copy
from typing import Any

from toolscribe.exceptions import OpenAPIConversionError


def inline_refs(document: dict[str, Any], location: str = "") -> dict[str, Any]:
    """Return a deep copy of *document* with every internal ``$ref`` replaced.

    Args:
        document: The decoded OpenAPI document.
        location: Canonical location of the document, for error messages.

    Raises:
        OpenAPIConversionError: If a pointer is external or does not resolve.

    Example::

        doc = {"definitions": {"Pet": {"type": "object"}},
               "x": {"$ref": "#/definitions/Pet"}}
        inline_refs(doc)["x"]  # {"type": "object"}
    """
    root = copy.deepcopy(document)
    return _expand(root, root, frozenset(), location)


def _lookup(ref: str, root: dict[str, Any], location: str) -> Any:
    """Follow a ``#/a/b/0`` pointer (RFC 6901 escaping) inside *root*."""
    if not ref.startswith("#/"):
        raise OpenAPIConversionError(
            location, f"External $ref not supported: {ref}"
        )

    current: Any = root
    for segment in ref[2:].split("/"):
        segment = segment.replace("~1", "/").replace("~0", "~")
        if isinstance(current, dict):
            if segment not in current:
                raise OpenAPIConversionError(
                    location, f"Cannot resolve $ref '{ref}': key '{segment}' not found"
                )
            current = current[segment]
        elif isinstance(current, list):
            try:
                current = current[int(segment)]
            except (ValueError, IndexError) as exc:
                raise OpenAPIConversionError(
                    location, f"Cannot resolve $ref '{ref}': invalid array index '{segment}'"
                ) from exc
        else:
            raise OpenAPIConversionError(
                location,
                f"Cannot resolve $ref '{ref}': cannot navigate into {type(current).__name__}",
            )
    return current


def _expand(obj: Any, root: dict[str, Any], active: frozenset[str], location: str) -> Any:
    if isinstance(obj, dict):
        ref = obj.get("$ref")
        if isinstance(ref, str):
            if ref in active:
                return obj
            return _expand(_lookup(ref, root, location), root, active | {ref}, location)
        return {key: _expand(value, root, active, location) for key, value in obj.items()}

    if isinstance(obj, list):
        return [_expand(item, root, active, location) for item in obj]

    return obj
