import json
import os

import pytest

from ai_translate.document_store import (
    load_source_document,
    load_target_document,
    save_document
)
from ai_translate.errors import SetupError


class TestLoadSourceDocument:
    def test_loads_object(self, write_json):
        path = write_json("en.json", {"a": {"b": "Hello"}})
        assert load_source_document(path) == {"a": {"b": "Hello"}}

    def test_missing_file_is_setup_error(self, tmp_path):
        with pytest.raises(SetupError, match="not found"):
            load_source_document(str(tmp_path / "missing.json"))

    def test_invalid_json_is_setup_error(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(SetupError, match="not valid JSON"):
            load_source_document(str(path))

    def test_top_level_array_is_setup_error(self, write_json):
        path = write_json("list.json", ["a", "b"])
        with pytest.raises(SetupError, match="JSON object"):
            load_source_document(path)


class TestLoadTargetDocument:
    def test_missing_file_is_empty(self, tmp_path):
        assert load_target_document(str(tmp_path / "fr.json")) == {}

    def test_corrupt_file_is_empty(self, tmp_path):
        path = tmp_path / "fr.json"
        path.write_text('{"a": "Bonjour",', encoding="utf-8")
        assert load_target_document(str(path)) == {}

    def test_non_object_is_empty(self, write_json):
        assert load_target_document(write_json("fr.json", "just a string")) == {}

    def test_existing_document_is_loaded(self, write_json):
        assert load_target_document(write_json("fr.json", {"a": "Bonjour"})) == {"a": "Bonjour"}


class TestSaveDocument:
    def test_writes_pretty_utf8_json(self, tmp_path):
        path = tmp_path / "out" / "zh.json"
        save_document(str(path), {"greeting": "你好", "count": 3})

        content = path.read_text(encoding="utf-8")
        assert "你好" in content
        assert content.endswith("\n")
        assert json.loads(content) == {"greeting": "你好", "count": 3}
        assert content == json.dumps({"greeting": "你好", "count": 3}, ensure_ascii=False, indent=2) + "\n"

    def test_overwrites_and_leaves_no_temp_files(self, tmp_path):
        path = tmp_path / "fr.json"
        save_document(str(path), {"a": "1"})
        save_document(str(path), {"a": "2"})
        assert json.loads(path.read_text(encoding="utf-8")) == {"a": "2"}
        assert os.listdir(tmp_path) == ["fr.json"]
