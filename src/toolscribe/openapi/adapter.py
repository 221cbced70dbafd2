"""Convert OpenAPI documents into native tools.

The adapter turns a decoded Swagger 2.0 or OpenAPI 3.x document into one
:class:`~toolscribe.models.Tool` per operation plus a root tool that lists
all of them. Only the first half differs between versions:

* ``_extract_operations`` walks ``paths`` and normalises parameters and
  request bodies into :class:`~toolscribe.models.APIOperation` objects
  (path-level parameters are merged with operation-level ones, the latter
  winning on equal ``name`` and ``in``).
* ``_base_url_v2`` / ``_base_url_v3`` read the server address.

The second half, :func:`_operation_tool`, is shared. A tool's
``instructions`` is a directive for the runner's OpenAPI handler::

    #!sys.openapi GET https://petstore.example.com/v1/pets/${petId}?limit=${limit}

Path placeholders ``{petId}`` become ``${petId}`` and query parameters are
appended in the same form, so the runner fills them from the tool arguments
the way it fills any other tool's instructions.

Ids are synthetic: the root tool is ``<location>:1`` and the n-th operation
(in document order) is ``<location>:<n + 1>``. The root tool's
``tool_mapping`` is filled in here, since operation names are not
references and must never be re-read as ``<tool> from <location>``.

Every part of the document the adapter reads is shape-checked; a wrong shape
(a parameter that is not an object, ``servers`` that is not a list, ...)
raises :class:`~toolscribe.exceptions.OpenAPIConversionError`.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional
from urllib.parse import urljoin, urlsplit

from pydantic import ValidationError

from toolscribe.exceptions import OpenAPIConversionError
from toolscribe.models import (
    DEFAULT_MODEL,
    APIOperation,
    APIParameter,
    HTTPMethod,
    ParameterLocation,
    RequestBodyInfo,
    Tool,
    ToolSource,
)
from toolscribe.openapi.refs import inline_refs

logger = logging.getLogger(__name__)

OPENAPI_DIRECTIVE = "#!sys.openapi"

_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
_BODY_ARGUMENT = "requestBodyContent"
_PLACEHOLDER = re.compile(r"\{([^}]+)\}")
_URL_PREFIXES = ("http://", "https://")
_KINDS = {dict: "objects", str: "strings", object: "values"}


def tools_from_openapi(
    document: dict[str, Any],
    version: int,
    location: str,
    working_dir: str,
    default_model: str = DEFAULT_MODEL,
) -> list[Tool]:
    """Build the tools of an OpenAPI document, root tool first.

    Args:
        document: The decoded document (``$ref`` pointers not yet inlined).
        version: ``2`` or ``3`` as reported by
            :func:`~toolscribe.loader.sniffer.is_openapi`.
        location: Canonical location of the document.
        working_dir: Working directory recorded on every tool.
        default_model: Model name given to every synthesized tool.

    Raises:
        OpenAPIConversionError: If the document has no operations, is
            malformed, or a ``$ref`` cannot be resolved.
    """
    spec = inline_refs(document, location)
    operations = _extract_operations(spec, version, location)
    if not operations:
        raise OpenAPIConversionError(location, "document defines no operations")

    base_url = _base_url_v2(spec, location) if version == 2 else _base_url_v3(spec, location)
    info = _object(spec.get("info"), location, "info")
    title = str(info.get("title") or "API")

    root_id = f"{location}:1"
    names: list[str] = []
    local_tools: dict[str, str] = {}
    for ordinal, operation in enumerate(operations, start=2):
        name = _operation_name(operation)
        if name.lower() in local_tools:
            name = f"{name}_{ordinal}"
        names.append(name)
        local_tools[name.lower()] = f"{location}:{ordinal}"

    root_name = _sanitize_name(title)
    if root_name.lower() not in local_tools:
        local_tools[root_name.lower()] = root_id
    local_tools[""] = root_id

    root = Tool(
        id=root_id,
        name=root_name,
        description=str(info.get("description") or title),
        model_name=default_model,
        tools=names,
        instructions=f"Use the available tools to call the {title} API.",
        tool_mapping={name: local_tools[name.lower()] for name in names},
        local_tools=local_tools,
        source=ToolSource(location=location, line_no=1),
        working_dir=working_dir,
    )
    tools = [root]
    for ordinal, (name, operation) in enumerate(zip(names, operations), start=2):
        tools.append(
            _operation_tool(
                operation,
                name=name,
                base_url=base_url,
                location=location,
                line_no=ordinal,
                local_tools=local_tools,
                working_dir=working_dir,
                default_model=default_model,
            )
        )

    logger.debug("Converted %d OpenAPI v%d operation(s) from %s", len(operations), version, location)
    return tools


# ------------------------------------------------------------------ #
# Shape checks
# ------------------------------------------------------------------ #


def _object(value: Any, location: str, what: str) -> dict[str, Any]:
    """*value* as a mapping; a missing value reads as empty."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise OpenAPIConversionError(
            location, f"{what} must be an object, not {type(value).__name__}"
        )
    return value


def _array(value: Any, location: str, what: str, of: type = object) -> list[Any]:
    """*value* as a list whose items are all *of*; a missing value reads as empty."""
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, of) for item in value):
        raise OpenAPIConversionError(location, f"{what} must be a list of {_KINDS[of]}")
    return value


# ------------------------------------------------------------------ #
# Operation extraction
# ------------------------------------------------------------------ #


def _extract_operations(spec: dict[str, Any], version: int, location: str) -> list[APIOperation]:
    operations: list[APIOperation] = []
    global_consumes = _array(spec.get("consumes"), location, "consumes", of=str)

    for path, path_item in _object(spec.get("paths"), location, "paths").items():
        path_item = _object(path_item, location, f"paths['{path}']")
        path_params = _array(
            path_item.get("parameters"), location, f"paths['{path}'].parameters", of=dict
        )

        for method in HTTPMethod:
            if path_item.get(method.value) is None:
                continue
            where = f"{method.value.upper()} {path}"
            operation = _object(path_item[method.value], location, where)
            op_params = _array(operation.get("parameters"), location, f"{where} parameters", of=dict)

            try:
                merged = _merge_parameters(path_params, op_params)
                if version == 2:
                    consumes = (
                        _array(operation.get("consumes"), location, f"{where} consumes", of=str)
                        or global_consumes
                    )
                    parameters, request_body = _parameters_v2(merged, consumes)
                else:
                    parameters = _parameters_v3(merged)
                    request_body = _request_body_v3(operation.get("requestBody"), location, where)

                operations.append(
                    APIOperation(
                        path=path,
                        method=method,
                        operation_id=operation.get("operationId"),
                        summary=operation.get("summary"),
                        description=operation.get("description"),
                        parameters=parameters,
                        request_body=request_body,
                    )
                )
            except ValidationError as exc:
                raise OpenAPIConversionError(location, f"{where}: {exc}") from exc

    return operations


def _merge_parameters(
    path_params: list[dict[str, Any]],
    op_params: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Path-level parameters overridden by operation-level ones with the same name and ``in``."""

    def _key(param: dict[str, Any]) -> tuple[str, str]:
        return str(param.get("name", "")), str(param.get("in", ""))

    overridden = {_key(p) for p in op_params}
    merged = [p for p in path_params if _key(p) not in overridden]
    merged.extend(op_params)
    return merged


def _parameters_v3(params: list[dict[str, Any]]) -> list[APIParameter]:
    parameters: list[APIParameter] = []
    for param in params:
        location = _parameter_location(param)
        if location is None or location == ParameterLocation.FORM_DATA:
            continue
        parameters.append(
            APIParameter(
                name=param.get("name", ""),
                location=location,
                # Path parameters are always required.
                required=location == ParameterLocation.PATH or bool(param.get("required")),
                description=param.get("description"),
                schema_type=_schema_type(param.get("schema")),
            )
        )
    return parameters


def _parameters_v2(
    params: list[dict[str, Any]],
    consumes: list[str],
) -> tuple[list[APIParameter], Optional[RequestBodyInfo]]:
    parameters: list[APIParameter] = []
    request_body: Optional[RequestBodyInfo] = None

    for param in params:
        if param.get("in") == "body":
            request_body = RequestBodyInfo(
                required=bool(param.get("required")),
                description=param.get("description"),
                content_type=_pick_content_type(consumes),
                schema=param.get("schema"),
            )
            continue

        location = _parameter_location(param)
        if location is None:
            continue
        if location == ParameterLocation.FORM_DATA and request_body is None:
            form_type = next((c for c in consumes if "form" in c), _FORM_CONTENT_TYPE)
            request_body = RequestBodyInfo(content_type=form_type)
        parameters.append(
            APIParameter(
                name=param.get("name", ""),
                location=location,
                required=location == ParameterLocation.PATH or bool(param.get("required")),
                description=param.get("description"),
                schema_type=_schema_type(param),
            )
        )

    return parameters, request_body


def _request_body_v3(body: Any, location: str, where: str) -> RequestBodyInfo | None:
    body = _object(body, location, f"{where} requestBody")
    content = _object(body.get("content"), location, f"{where} requestBody.content")
    if not content:
        return None
    content_type = _pick_content_type([str(key) for key in content])
    media = _object(content.get(content_type), location, f"{where} requestBody.content['{content_type}']")
    return RequestBodyInfo(
        required=bool(body.get("required")),
        description=body.get("description"),
        content_type=content_type,
        schema=media.get("schema"),
    )


def _parameter_location(param: dict[str, Any]) -> ParameterLocation | None:
    try:
        return ParameterLocation(param.get("in", "query"))
    except ValueError:
        return None


def _pick_content_type(content_types: list[str]) -> str:
    """Prefer a JSON media type, else the first declared one."""
    for content_type in content_types:
        if "json" in content_type:
            return content_type
    return content_types[0] if content_types else "application/json"


def _schema_type(schema: Any) -> str:
    """First non-null ``type`` of a schema (OpenAPI 3.1 allows a list); ``string`` by default."""
    if not isinstance(schema, dict):
        return "string"
    type_value = schema.get("type", "string")
    if isinstance(type_value, list):
        non_null = [t for t in type_value if t != "null"]
        return str(non_null[0]) if non_null else "string"
    return str(type_value)


# ------------------------------------------------------------------ #
# Server address
# ------------------------------------------------------------------ #


def _base_url_v3(spec: dict[str, Any], location: str) -> str:
    servers = _array(spec.get("servers"), location, "servers", of=dict)
    server = servers[0] if servers else {"url": "/"}
    variables = _object(server.get("variables"), location, "servers[0].variables")

    def _default(match: re.Match[str]) -> str:
        variable = _object(variables.get(match.group(1)), location, f"server variable '{match.group(1)}'")
        return str(variable.get("default", match.group(0)))

    url = _PLACEHOLDER.sub(_default, str(server.get("url") or "/"))
    if not url.startswith(_URL_PREFIXES) and location.startswith(_URL_PREFIXES):
        url = urljoin(location, url)
    return url.rstrip("/")


def _base_url_v2(spec: dict[str, Any], location: str) -> str:
    base_path = str(spec.get("basePath") or "")
    host = spec.get("host")
    scheme = "https"
    if location.startswith(_URL_PREFIXES):
        parts = urlsplit(location)
        scheme = parts.scheme
        host = host or parts.netloc
    schemes = _array(spec.get("schemes"), location, "schemes", of=str) or [scheme]
    if not host:
        return base_path.rstrip("/")
    return f"{schemes[0]}://{host}{base_path}".rstrip("/")


# ------------------------------------------------------------------ #
# Tool synthesis
# ------------------------------------------------------------------ #


def _operation_tool(
    operation: APIOperation,
    name: str,
    base_url: str,
    location: str,
    line_no: int,
    local_tools: dict[str, str],
    working_dir: str,
    default_model: str,
) -> Tool:
    return Tool(
        id=f"{location}:{line_no}",
        name=name,
        description=operation.summary or operation.description or "",
        model_name=default_model,
        arguments=_arguments(operation),
        instructions=_instructions(operation, base_url),
        local_tools=dict(local_tools),
        source=ToolSource(location=location, line_no=line_no),
        working_dir=working_dir,
    )


def _arguments(operation: APIOperation) -> dict[str, Any] | None:
    properties: dict[str, Any] = {}
    required: list[str] = []

    for param in operation.parameters:
        prop: dict[str, Any] = {}
        if param.description:
            prop["description"] = param.description
        prop["type"] = param.schema_type
        properties[param.name] = prop
        if param.required:
            required.append(param.name)

    body = operation.request_body
    schema = body.schema_ if body is not None else None
    if schema:
        if schema.get("type", "object") == "object" and isinstance(schema.get("properties"), dict):
            for prop_name, prop in schema["properties"].items():
                properties.setdefault(prop_name, prop)
            body_required = schema.get("required")
            if body.required and isinstance(body_required, list):
                required.extend(str(r) for r in body_required if str(r) not in required)
        else:
            properties[_BODY_ARGUMENT] = schema
            if body.required:
                required.append(_BODY_ARGUMENT)

    if not properties:
        return None
    arguments: dict[str, Any] = {"properties": properties, "type": "object"}
    if required:
        arguments["required"] = required
    return arguments


def _instructions(operation: APIOperation, base_url: str) -> str:
    url = base_url + _PLACEHOLDER.sub(r"${\1}", operation.path)
    query = [
        f"{p.name}=${{{p.name}}}"
        for p in operation.parameters
        if p.location == ParameterLocation.QUERY
    ]
    if query:
        url += "?" + "&".join(query)

    directive = f"{OPENAPI_DIRECTIVE} {operation.method.value.upper()} {url}"
    if operation.request_body is not None:
        directive += f" {operation.request_body.content_type}"
    return directive


def _operation_name(operation: APIOperation) -> str:
    if operation.operation_id:
        return operation.operation_id
    sanitized = operation.path.strip("/").replace("/", "_").replace("{", "").replace("}", "")
    return f"{operation.method.value}_{sanitized or 'root'}"


def _sanitize_name(name: str) -> str:
    return "".join(ch if ch.isalnum() else "_" for ch in name).strip("_") or "api"
