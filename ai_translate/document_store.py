"""Reading and checkpointing of JSON localization documents."""
import json
import logging
import os
import tempfile
from typing import Any, Dict

from ai_translate.errors import SetupError

logger = logging.getLogger(__name__)


def load_source_document(file_path: str) -> Dict[str, Any]:
    """
    Load the source (template) localization file.

    Args:
        file_path: Path to the source JSON file.

    Returns:
        Dict[str, Any]: The parsed document.

    Raises:
        SetupError: If the file is missing, unreadable, not valid JSON or not a JSON object.
    """
    if not os.path.exists(file_path):
        raise SetupError(f"Template file not found: {file_path}")
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            document = json.load(f)
    except json.JSONDecodeError as json_exc:
        raise SetupError(f"Template file '{file_path}' is not valid JSON: {json_exc}") from json_exc
    except (OSError, UnicodeDecodeError) as io_exc:
        raise SetupError(f"Could not read template file '{file_path}': {io_exc}") from io_exc

    if not isinstance(document, dict):
        raise SetupError(f"Template file '{file_path}' must contain a JSON object at the top level.")
    return document


def load_target_document(file_path: str) -> Dict[str, Any]:
    """
    Load a previously written target file as the starting point of a run.

    This is best-effort: a missing, unreadable or corrupt file simply means
    there is no prior work, so an empty document is returned.
    """
    if not os.path.exists(file_path):
        logger.info("No existing output at '%s'; starting from an empty document.", file_path)
        return {}
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            document = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError, OSError) as exc:
        logger.warning("Existing output '%s' could not be parsed (%s); starting from an empty document.",
                       file_path, exc)
        return {}

    if not isinstance(document, dict):
        logger.warning("Existing output '%s' is not a JSON object; starting from an empty document.", file_path)
        return {}
    return document


def serialize_document(document: Dict[str, Any]) -> str:
    return json.dumps(document, ensure_ascii=False, indent=2) + '\n'


def save_document(file_path: str, document: Dict[str, Any]) -> None:
    """
    Write the document to ``file_path`` atomically.

    The content goes to a temporary file in the same directory first and then
    replaces the target in one step, so an interrupted write never leaves a
    truncated checkpoint behind.

    Args:
        file_path: Destination path.
        document: The document to write.
    """
    directory = os.path.dirname(os.path.abspath(file_path))
    os.makedirs(directory, exist_ok=True)
    content = serialize_document(document)

    fd, temp_file_path = tempfile.mkstemp(prefix=f".{os.path.basename(file_path)}.", suffix='.tmp', dir=directory)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as temp_f:
            temp_f.write(content)
            temp_f.flush()
            os.fsync(temp_f.fileno())
        os.replace(temp_file_path, file_path)
    finally:
        if os.path.exists(temp_file_path):
            try:
                os.remove(temp_file_path)
            except OSError as _e:
                logger.warning("Could not delete temporary file '%s': %s", temp_file_path, _e)
    logger.debug("Saved %s", file_path)
