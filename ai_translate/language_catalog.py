import json
import os
from dataclasses import dataclass
from typing import Dict, Optional

import jsonschema

from ai_translate.errors import SetupError

# Catalog shipped inside the package, next to this module.
DEFAULT_LANGUAGES_FILE = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'data', 'languages.json')

LANGUAGE_CATALOG_SCHEMA = {
    "type": "object",
    "required": ["languages"],
    "properties": {
        "languages": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["code", "name"],
                "properties": {
                    "code": {"type": "string", "minLength": 1},
                    "name": {"type": "string", "minLength": 1},
                    "nativeName": {"type": "string"}
                }
            }
        }
    }
}


@dataclass(frozen=True)
class Language:
    code: str
    name: str
    native_name: Optional[str] = None


def load_language_catalog(catalog_path: str) -> Dict[str, Language]:
    """
    Load the list of supported target languages.

    Args:
        catalog_path: Path to the languages JSON file.

    Returns:
        Dict[str, Language]: Languages keyed by code, in file order.

    Raises:
        SetupError: If the file is missing, unreadable or malformed.
    """
    if not os.path.exists(catalog_path):
        raise SetupError(f"Language catalog not found: {catalog_path}")
    try:
        with open(catalog_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        jsonschema.validate(instance=data, schema=LANGUAGE_CATALOG_SCHEMA)
    except json.JSONDecodeError as json_exc:
        raise SetupError(f"Language catalog '{catalog_path}' is not valid JSON: {json_exc}") from json_exc
    except jsonschema.ValidationError as schema_exc:
        raise SetupError(f"Language catalog '{catalog_path}' is malformed: {schema_exc.message}") from schema_exc
    except OSError as io_exc:
        raise SetupError(f"Could not read language catalog '{catalog_path}': {io_exc}") from io_exc

    return {
        entry['code']: Language(code=entry['code'], name=entry['name'], native_name=entry.get('nativeName'))
        for entry in data['languages']
    }


def validate_language_code(code: Optional[str], catalog: Dict[str, Language]) -> Language:
    """
    Make sure ``code`` names a supported language.

    Raises:
        SetupError: If the code is missing or not in the catalog.
    """
    if not code:
        raise SetupError("A target language code is required.")
    language = catalog.get(code)
    if language is None:
        raise SetupError(f"Invalid target language code \"{code}\". Check the language catalog for supported codes.")
    return language
