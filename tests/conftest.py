import json
import logging

import pytest

from tests.fakes import FakeTranslator


@pytest.fixture
def fake_translator():
    return FakeTranslator()


@pytest.fixture
def write_json(tmp_path):
    """Write a JSON document into the test's temporary directory and return its path."""
    def _write(name, document):
        path = tmp_path / name
        path.write_text(json.dumps(document, ensure_ascii=False, indent=2), encoding='utf-8')
        return str(path)
    return _write


@pytest.fixture(autouse=True)
def reset_package_logger():
    """setup_logger() detaches the package logger from the root; undo that after each test."""
    yield
    logger = logging.getLogger("ai_translate")
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
