"""OpenAPI adapter -- turn Swagger 2.0 / OpenAPI 3.x documents into tools.

* :mod:`~toolscribe.openapi.refs` -- inline internal ``$ref`` pointers.
* :mod:`~toolscribe.openapi.adapter` -- extract operations and synthesize
  one :class:`~toolscribe.models.Tool` per operation plus a root tool.

Typical usage::

    from toolscribe.openapi import tools_from_openapi

    tools = tools_from_openapi(document, 3, "https://example.com/openapi.yaml",
                               "https://example.com/")
"""

from toolscribe.openapi.adapter import OPENAPI_DIRECTIVE, tools_from_openapi
from toolscribe.openapi.refs import inline_refs

__all__ = ["OPENAPI_DIRECTIVE", "inline_refs", "tools_from_openapi"]
