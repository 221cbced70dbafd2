"""Tests for toolscribe.loader.builtin."""

from __future__ import annotations

from toolscribe.loader.builtin import builtin_tool, is_builtin_ref, list_builtin_tools


class TestBuiltinTool:
    def test_known_tool(self) -> None:
        tool = builtin_tool("sys.read")
        assert tool is not None
        assert tool.id == tool.name == "sys.read"
        assert tool.instructions == "#!sys.read"
        assert tool.arguments == {
            "properties": {"filename": {"description": "The name of the file to read", "type": "string"}},
            "type": "object",
        }

    def test_unknown_tool(self) -> None:
        assert builtin_tool("sys.nope") is None
        assert builtin_tool("read") is None

    def test_prefix(self) -> None:
        assert is_builtin_ref("sys.http.get")
        assert not is_builtin_ref("system.gpt")
        assert not is_builtin_ref("./sys.read")


class TestListBuiltinTools:
    def test_sorted_and_complete(self) -> None:
        names = [tool.name for tool in list_builtin_tools()]
        assert names == sorted(names)
        assert {"sys.read", "sys.write", "sys.exec", "sys.http.get"} <= set(names)

    def test_every_tool_has_a_description(self) -> None:
        assert all(tool.description for tool in list_builtin_tools())
