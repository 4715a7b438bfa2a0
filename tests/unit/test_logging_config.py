import io
import logging
from unittest.mock import patch

from ai_translate.logging_config import TqdmLoggingHandler, resolve_level, setup_logger


class TestSetupLogger:
    def test_file_and_console_handlers(self, tmp_path):
        log_file = tmp_path / "logs" / "run.log"
        logger = setup_logger("debug", str(log_file), True)

        assert logger.name == "ai_translate"
        assert logger.level == logging.DEBUG
        assert logger.propagate is False
        assert any(isinstance(h, logging.FileHandler) for h in logger.handlers)
        assert any(isinstance(h, TqdmLoggingHandler) for h in logger.handlers)

        logging.getLogger("ai_translate.sync_engine").info("checkpoint written")
        for handler in logger.handlers:
            handler.flush()
        assert "INFO - ai_translate.sync_engine - checkpoint written" in log_file.read_text(encoding="utf-8")

    def test_repeated_setup_does_not_duplicate_handlers(self, tmp_path):
        setup_logger("INFO", str(tmp_path / "a.log"), True)
        logger = setup_logger("INFO", str(tmp_path / "a.log"), True)
        assert len(logger.handlers) == 2

    def test_console_only(self):
        logger = setup_logger("WARNING", "", True)
        assert [type(h) for h in logger.handlers] == [TqdmLoggingHandler]
        assert logger.level == logging.WARNING

    def test_unknown_level_defaults_to_info(self, tmp_path):
        logger = setup_logger("chatty", str(tmp_path / "a.log"), False)
        assert logger.level == logging.INFO

    def test_tqdm_handler_writes_through_tqdm(self):
        handler = TqdmLoggingHandler()
        handler.setFormatter(logging.Formatter('%(levelname)s - %(message)s'))
        record = logging.LogRecord("ai_translate", logging.WARNING, __file__, 1, "batch %d skipped", (2,), None)
        with patch("ai_translate.logging_config.tqdm.write") as mock_write:
            handler.emit(record)
        assert mock_write.call_args.args[0] == "WARNING - batch 2 skipped"

    def test_console_lines_have_no_timestamp(self):
        logger = setup_logger("INFO", "", True)
        stream = io.StringIO()
        logger.handlers[0].setStream(stream)

        logging.getLogger("ai_translate.cli").warning("2 batch(es) could not be translated")

        assert stream.getvalue() == "WARNING - 2 batch(es) could not be translated\n"


class TestResolveLevel:
    def test_names_are_case_insensitive(self):
        assert resolve_level("debug") == logging.DEBUG
        assert resolve_level("Warning") == logging.WARNING

    def test_unknown_names_fall_back_to_info(self):
        assert resolve_level("chatty") == logging.INFO
        assert resolve_level("") == logging.INFO
