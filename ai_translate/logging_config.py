import logging
import os
import sys

from tqdm import tqdm

LOGGER_NAME = "ai_translate"

# The log file keeps timestamps and the emitting module; the console only
# needs the level and the message.
FILE_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
CONSOLE_FORMAT = '%(levelname)s - %(message)s'


class TqdmLoggingHandler(logging.StreamHandler):
    """Console handler that prints through ``tqdm.write``, so log lines appear above the batch progress bar."""

    def __init__(self, stream=None):
        super().__init__(stream or sys.stderr)

    def emit(self, record):
        try:
            tqdm.write(self.format(record), file=self.stream)
        except RecursionError:
            raise
        except Exception:
            self.handleError(record)


def resolve_level(level_name: str) -> int:
    """Map a level name such as ``'debug'`` to its ``logging`` constant, defaulting to INFO."""
    level = logging.getLevelName(str(level_name).upper())
    return level if isinstance(level, int) else logging.INFO


def _detach_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def _file_handler(log_file_path: str) -> logging.FileHandler:
    log_dir = os.path.dirname(log_file_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    handler = logging.FileHandler(log_file_path, encoding='utf-8')
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    return handler


def setup_logger(log_level_str: str, log_file_path: str, log_to_console: bool) -> logging.Logger:
    """
    Configure the ``ai_translate`` package logger.

    Every module logs through a child of this logger (``ai_translate.sync_engine``
    and so on), so this is the only place handlers are attached. Calling it again
    replaces the previous handlers. Records do not propagate to the root logger.

    Args:
        log_level_str: Level name, e.g. 'INFO' or 'debug'. Unknown names mean INFO.
        log_file_path: Log file to append to. An empty value disables file logging.
        log_to_console: Whether to echo records to stderr through tqdm.

    Returns:
        The configured logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    _detach_handlers(logger)
    logger.setLevel(resolve_level(log_level_str))
    logger.propagate = False

    if log_file_path:
        logger.addHandler(_file_handler(log_file_path))

    if log_to_console:
        console_handler = TqdmLoggingHandler()
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        logger.addHandler(console_handler)

    return logger
