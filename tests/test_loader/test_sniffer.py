"""Tests for toolscribe.loader.sniffer."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from toolscribe.assemble import ASSEMBLED_KIND
from toolscribe.exceptions import OpenAPIConversionError
from toolscribe.loader.sniffer import decode_document, is_assembled, is_openapi

FIXTURES_DIR = Path(__file__).parent.parent / "fixtures"


class TestIsOpenAPI:
    def test_v2_json(self) -> None:
        assert is_openapi((FIXTURES_DIR / "todo_v2.json").read_bytes()) == (2, True)

    def test_v3_yaml(self) -> None:
        assert is_openapi((FIXTURES_DIR / "petstore_v3.yaml").read_bytes()) == (3, True)

    def test_native_source(self) -> None:
        _, ok = is_openapi((FIXTURES_DIR / "agent" / "tool.gpt").read_bytes())
        assert ok is False

    def test_native_source_mentioning_openapi(self) -> None:
        content = b"name: caller\n\nCall the openapi tool and read the swagger docs.\n"
        assert is_openapi(content) == (0, False)

    def test_openapi_2_is_not_v3(self) -> None:
        assert is_openapi(b'{"openapi": "2.0", "paths": {}}') == (0, False)

    def test_empty_swagger_value(self) -> None:
        assert is_openapi(b'{"swagger": "", "paths": {}}') == (0, False)

    def test_binary_content(self) -> None:
        assert is_openapi(b"\xff\xfeopenapi") == (0, False)


class TestIsAssembled:
    def test_detects_artifact(self) -> None:
        content = json.dumps({"kind": ASSEMBLED_KIND, "name": "x", "entry": 0, "tools": []})
        assert is_assembled(content.encode())

    def test_other_json(self) -> None:
        assert not is_assembled(b'{"kind": "something-else"}')

    def test_mentions_kind_in_text(self) -> None:
        assert not is_assembled(f"Explain {ASSEMBLED_KIND} files".encode())


class TestDecodeDocument:
    def test_json(self) -> None:
        assert decode_document('{"a": 1}') == {"a": 1}

    def test_yaml(self) -> None:
        assert decode_document("a: 1\nb: [x, y]\n") == {"a": 1, "b": ["x", "y"]}

    def test_json_hint_rejects_yaml(self) -> None:
        with pytest.raises(OpenAPIConversionError, match="Invalid JSON"):
            decode_document("a: 1", "spec.json", hint="json")

    def test_non_object(self) -> None:
        with pytest.raises(OpenAPIConversionError, match="must be a JSON/YAML object"):
            decode_document("[1, 2]")

    def test_empty_document(self) -> None:
        with pytest.raises(OpenAPIConversionError, match="empty document"):
            decode_document("")

    def test_invalid_everything(self) -> None:
        with pytest.raises(OpenAPIConversionError, match="Failed to parse") as exc_info:
            decode_document("a: [1, 2", "broken.yaml")
        assert exc_info.value.location == "broken.yaml"
