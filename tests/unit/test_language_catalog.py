import os
import tomllib

import pytest

from ai_translate import language_catalog
from ai_translate.errors import SetupError
from ai_translate.language_catalog import DEFAULT_LANGUAGES_FILE, load_language_catalog, validate_language_code

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..'))


class TestLanguageCatalog:
    def test_bundled_catalog_loads_from_the_package(self):
        package_dir = os.path.dirname(os.path.abspath(language_catalog.__file__))
        assert os.path.commonpath([package_dir, DEFAULT_LANGUAGES_FILE]) == package_dir

        catalog = load_language_catalog(DEFAULT_LANGUAGES_FILE)
        assert catalog["de"].name == "German"
        assert catalog["zh-CN"].native_name == "简体中文"

    def test_bundled_catalog_is_declared_as_package_data(self):
        with open(os.path.join(PROJECT_ROOT, 'pyproject.toml'), 'rb') as f:
            pyproject = tomllib.load(f)
        package_data = pyproject["tool"]["setuptools"]["package-data"]["ai_translate"]
        relative = os.path.relpath(DEFAULT_LANGUAGES_FILE, os.path.dirname(language_catalog.__file__))
        assert relative.replace(os.sep, '/') == "data/languages.json"
        assert "data/*.json" in package_data

    def test_validate_known_code(self, write_json):
        catalog = load_language_catalog(write_json("languages.json", {
            "languages": [{"code": "fr", "name": "French", "nativeName": "Français"}]
        }))
        assert validate_language_code("fr", catalog).name == "French"

    def test_unknown_code_is_setup_error(self, write_json):
        catalog = load_language_catalog(write_json("languages.json", {"languages": [{"code": "fr", "name": "French"}]}))
        with pytest.raises(SetupError, match="Invalid target language code"):
            validate_language_code("xx", catalog)

    def test_missing_code_is_setup_error(self):
        with pytest.raises(SetupError):
            validate_language_code(None, {})

    def test_missing_catalog_is_setup_error(self, tmp_path):
        with pytest.raises(SetupError, match="not found"):
            load_language_catalog(str(tmp_path / "languages.json"))

    def test_malformed_catalog_is_setup_error(self, write_json):
        with pytest.raises(SetupError, match="malformed"):
            load_language_catalog(write_json("languages.json", {"languages": [{"code": "fr"}]}))

    def test_invalid_json_catalog_is_setup_error(self, tmp_path):
        path = tmp_path / "languages.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(SetupError, match="not valid JSON"):
            load_language_catalog(str(path))
