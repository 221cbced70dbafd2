"""Canonical Pydantic models shared across all toolscribe modules.

This is the single source of truth for data shapes in the project. The models
fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`LoaderConfig`, :class:`CacheConfig`, and :class:`GlobalConfig`.

**OpenAPI models** -- intermediate shapes used by the OpenAPI adapter:
    :class:`HTTPMethod`, :class:`ParameterLocation`, :class:`APIParameter`,
    :class:`RequestBodyInfo`, and :class:`APIOperation`.

**Program models** -- produced by the loader and consumed by the assembler
and by any runner:
    :class:`ToolSource`, :class:`Tool`, and :class:`Program`.

Program models are frozen and their containers are read-only: ``tools`` is a
tuple and ``tool_mapping``, ``local_tools`` and ``tool_set`` are
:class:`types.MappingProxyType` views. A :class:`Tool` is built once by the
native parser or the OpenAPI adapter; the resolver emits a copy of it with
``tool_mapping`` filled in, and never changes anything else. Their JSON form
uses camelCase keys (``modelName``, ``toolMapping``, ``entryToolId``...) via
the pydantic alias generator, see :meth:`Program.to_json_dict`.
"""

from __future__ import annotations

import enum
import json
from types import MappingProxyType
from typing import Any, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_MODEL = "gpt-4-turbo-preview"
"""Model name assigned to tools that do not declare one."""


# --- Config ---


class LoaderConfig(BaseModel):
    """Settings that control how references are fetched and resolved."""

    default_model: str = Field(
        default=DEFAULT_MODEL, description="Model name for tools without a model header"
    )
    timeout: Optional[float] = Field(
        default=None, description="Upper bound in seconds for a whole load (None = unbounded)"
    )
    request_timeout: float = Field(
        default=30.0, description="Per-request HTTP timeout in seconds"
    )
    max_concurrency: int = Field(
        default=8, ge=1, description="Maximum number of fetches in flight"
    )
    max_retries: int = Field(
        default=2, ge=0, description="Retries for transport errors and 5xx responses"
    )
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")


class CacheConfig(BaseModel):
    """On-disk cache of fetched remote sources."""

    enabled: bool = Field(default=False, description="Cache remote source content")
    ttl_seconds: int = Field(default=300, description="Cache TTL in seconds")


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/toolscribe/config.json``.

    Loaded and saved by :func:`~toolscribe.config.load_global_config` and
    :func:`~toolscribe.config.save_global_config`. See
    :func:`~toolscribe.config.resolve_config` for the precedence chain.
    """

    loader: LoaderConfig = Field(default_factory=LoaderConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)


# --- OpenAPI operations ---


class HTTPMethod(str, enum.Enum):
    """HTTP methods of an OpenAPI path item, in the order the adapter visits them."""

    GET = "get"
    PUT = "put"
    POST = "post"
    DELETE = "delete"
    OPTIONS = "options"
    HEAD = "head"
    PATCH = "patch"
    TRACE = "trace"


class ParameterLocation(str, enum.Enum):
    """Values of a parameter's ``in`` field (``formData`` is Swagger 2 only)."""

    QUERY = "query"
    HEADER = "header"
    PATH = "path"
    COOKIE = "cookie"
    FORM_DATA = "formData"


class APIParameter(BaseModel):
    """A single operation parameter, normalised across Swagger 2 and OpenAPI 3."""

    name: str
    location: ParameterLocation
    required: bool = False
    description: Optional[str] = None
    schema_type: str = Field(default="string", description="JSON Schema type")


class RequestBodyInfo(BaseModel):
    """The request body of an operation (v3 ``requestBody`` or a v2 ``in: body`` parameter)."""

    model_config = ConfigDict(populate_by_name=True)

    required: bool = False
    description: Optional[str] = None
    content_type: str = "application/json"
    schema_: Optional[dict[str, Any]] = Field(default=None, alias="schema")


class APIOperation(BaseModel):
    """One path + method pair; each becomes one tool."""

    path: str
    method: HTTPMethod
    operation_id: Optional[str] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    parameters: list[APIParameter] = Field(default_factory=list)
    request_body: Optional[RequestBodyInfo] = None


# --- Program ---

# JSON keys dropped from a tool's serialised form when unset.
_OMIT_WHEN_NONE = ("maxTokens", "cache", "jsonResponse", "temperature", "arguments")
_OMIT_WHEN_EMPTY = ("name", "description", "tools", "toolMapping")


class ToolSource(BaseModel):
    """Provenance of a tool: the canonical location and 1-based line it starts on."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    location: str = ""
    line_no: int = 0


class Tool(BaseModel):
    """A single callable tool definition.

    ``id`` is ``<source location>:<line number>`` and is therefore stable
    across reloads of the same content. ``tools`` holds the references as
    the author wrote them; ``tool_mapping`` maps each of them to the id of
    the tool it resolved to. ``local_tools`` maps the lower-cased names of
    every tool in the same source (and ``""`` for the first one) to ids.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        protected_namespaces=(),
    )

    name: str = ""
    description: str = ""
    max_tokens: Optional[int] = None
    model_name: str = DEFAULT_MODEL
    cache: Optional[bool] = None
    json_response: Optional[bool] = None
    temperature: Optional[float] = None
    internal_prompt: Optional[bool] = None
    arguments: Optional[dict[str, Any]] = None
    tools: tuple[str, ...] = ()
    instructions: str = ""
    id: str
    tool_mapping: Mapping[str, str] = Field(default_factory=dict, validate_default=True)
    local_tools: Mapping[str, str] = Field(default_factory=dict, validate_default=True)
    source: ToolSource = Field(default_factory=ToolSource)
    working_dir: str = ""

    @field_validator("tool_mapping", "local_tools")
    @classmethod
    def _read_only(cls, value: Mapping[str, str]) -> Mapping[str, str]:
        return MappingProxyType(dict(value))

    @field_serializer("tool_mapping", "local_tools")
    def _serialize_mapping(self, value: Mapping[str, str]) -> dict[str, str]:
        return dict(value)

    def to_json_dict(self) -> dict[str, Any]:
        """Return the wire form of the tool, omitting unset optional keys."""
        data = self.model_dump(mode="json", by_alias=True)
        for key in _OMIT_WHEN_NONE:
            if data.get(key) is None:
                data.pop(key, None)
        for key in _OMIT_WHEN_EMPTY:
            if not data.get(key):
                data.pop(key, None)
        return data


class Program(BaseModel):
    """The resolved closure of every tool reachable from an entry tool.

    Invariants: ``entry_tool_id`` and every ``tool_mapping`` value of every
    tool are keys of ``tool_set``. Instances are frozen; a new load always
    produces a new Program.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    name: str
    entry_tool_id: str = Field(
        validation_alias=AliasChoices("entryToolId", "entryToolID", "entry_tool_id"),
    )
    tool_set: Mapping[str, Tool] = Field(default_factory=dict, validate_default=True)

    @field_validator("tool_set")
    @classmethod
    def _read_only(cls, value: Mapping[str, Tool]) -> Mapping[str, Tool]:
        return MappingProxyType(dict(value))

    @field_serializer("tool_set")
    def _serialize_tool_set(self, value: Mapping[str, Tool]) -> dict[str, Tool]:
        return dict(value)

    @property
    def entry_tool(self) -> Tool:
        """The tool execution starts from."""
        return self.tool_set[self.entry_tool_id]

    def to_json_dict(self) -> dict[str, Any]:
        """Return the wire form: ``{"name", "entryToolId", "toolSet"}`` with tools sorted by id."""
        return {
            "name": self.name,
            "entryToolId": self.entry_tool_id,
            "toolSet": {
                tool_id: self.tool_set[tool_id].to_json_dict()
                for tool_id in sorted(self.tool_set)
            },
        }

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_json_dict(), indent=indent, ensure_ascii=False)

    @classmethod
    def from_json_dict(cls, data: dict[str, Any]) -> Program:
        """Rebuild a Program from its wire form (accepts ``entryToolID`` too)."""
        return cls.model_validate(data)
