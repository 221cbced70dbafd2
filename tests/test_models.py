"""Tests for the Program models and their JSON form."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from toolscribe.models import DEFAULT_MODEL, LoaderConfig, Program, Tool, ToolSource


def _tool(**kwargs) -> Tool:
    defaults = dict(
        id="/w/a.gpt:1",
        instructions="hi",
        local_tools={"": "/w/a.gpt:1"},
        source=ToolSource(location="/w/a.gpt", line_no=1),
        working_dir="/w",
    )
    defaults.update(kwargs)
    return Tool(**defaults)


class TestTool:
    def test_json_keys_are_camel_case(self) -> None:
        data = _tool(name="a", tools=["b"], tool_mapping={"b": "/w/b.gpt:1"}).to_json_dict()
        assert data == {
            "name": "a",
            "modelName": DEFAULT_MODEL,
            "internalPrompt": None,
            "tools": ["b"],
            "instructions": "hi",
            "id": "/w/a.gpt:1",
            "toolMapping": {"b": "/w/b.gpt:1"},
            "localTools": {"": "/w/a.gpt:1"},
            "source": {"location": "/w/a.gpt", "lineNo": 1},
            "workingDir": "/w",
        }

    def test_optional_fields_appear_when_set(self) -> None:
        data = _tool(max_tokens=10, temperature=0.0, json_response=False, cache=True).to_json_dict()
        assert data["maxTokens"] == 10
        assert data["temperature"] == 0.0
        assert data["jsonResponse"] is False
        assert data["cache"] is True

    def test_frozen(self) -> None:
        tool = _tool()
        with pytest.raises(ValidationError):
            tool.name = "changed"

    def test_containers_are_read_only(self) -> None:
        tool = _tool(tools=["b.gpt"], tool_mapping={"b.gpt": "/w/b.gpt:1"})
        with pytest.raises(TypeError):
            tool.tool_mapping["b.gpt"] = "dangling:1"  # type: ignore[index]
        with pytest.raises(TypeError):
            tool.local_tools["x"] = "/w/x.gpt:1"  # type: ignore[index]
        with pytest.raises(AttributeError):
            tool.tools.append("c.gpt")  # type: ignore[attr-defined]
        assert tool.tool_mapping == {"b.gpt": "/w/b.gpt:1"}

    def test_caller_dict_is_copied(self) -> None:
        mapping = {"b.gpt": "/w/b.gpt:1"}
        tool = _tool(tool_mapping=mapping)
        mapping["b.gpt"] = "changed:1"
        assert tool.tool_mapping["b.gpt"] == "/w/b.gpt:1"

    def test_accepts_camel_and_snake_names(self) -> None:
        assert Tool.model_validate({"id": "x:1", "workingDir": "/a"}).working_dir == "/a"
        assert Tool.model_validate({"id": "x:1", "working_dir": "/a"}).working_dir == "/a"


class TestProgram:
    def test_json_shape(self) -> None:
        b = _tool(id="/w/b.gpt:1", source=ToolSource(location="/w/b.gpt", line_no=1))
        a = _tool(tools=["b.gpt"], tool_mapping={"b.gpt": b.id})
        program = Program(name="a.gpt", entry_tool_id=a.id, tool_set={b.id: b, a.id: a})

        data = program.to_json_dict()
        assert list(data) == ["name", "entryToolId", "toolSet"]
        assert list(data["toolSet"]) == ["/w/a.gpt:1", "/w/b.gpt:1"]
        assert program.entry_tool == a

    def test_tool_set_is_read_only(self) -> None:
        a = _tool()
        program = Program(name="a", entry_tool_id=a.id, tool_set={a.id: a})
        with pytest.raises(TypeError):
            program.tool_set["evil"] = Tool(id="evil")  # type: ignore[index]
        with pytest.raises(TypeError):
            del program.tool_set[a.id]  # type: ignore[attr-defined]
        assert list(program.tool_set) == [a.id]

    def test_legacy_entry_key(self) -> None:
        data = {"name": "x", "entryToolID": "x:1", "toolSet": {"x:1": {"id": "x:1"}}}
        assert Program.from_json_dict(data).entry_tool_id == "x:1"

    def test_round_trip(self) -> None:
        a = _tool(arguments={"properties": {"q": {"type": "string"}}, "type": "object"})
        program = Program(name="a", entry_tool_id=a.id, tool_set={a.id: a})
        assert Program.model_validate_json(program.to_json()) == program


class TestLoaderConfig:
    def test_bounds(self) -> None:
        with pytest.raises(ValidationError):
            LoaderConfig(max_concurrency=0)
        with pytest.raises(ValidationError):
            LoaderConfig(max_retries=-1)
