from typing import Any, Iterable, Set, Tuple
import re
from collections import Counter

# Tokens that must survive translation untouched: {{name}}, {name}/{0},
# printf-style %s / %d / %1$s, and HTML tags. Tags are compared by name only,
# so translated attribute values such as alt="..." are allowed.
PLACEHOLDER_PATTERN = re.compile(
    r'\{\{\s*[\w.]+\s*\}\}'
    r'|\{\s*[\w.]+\s*\}'
    r'|%(?:\d+\$)?[sdif@]'
    r'|</?[A-Za-z][\w-]*'
)


def check_key_coverage(expected_keys: Iterable[str], returned_keys: Iterable[str]) -> Tuple[Set[str], Set[str]]:
    """
    Compares the keys returned by the translation service against the keys that were sent.

    Args:
        expected_keys: The safe keys of the outbound batch.
        returned_keys: The keys found in the response.

    Returns:
        A tuple containing two sets:
        - missing_keys: Keys that were sent but not returned.
        - extra_keys: Keys that were returned but never sent.
    """
    expected_keys = set(expected_keys)
    returned_keys = set(returned_keys)
    return expected_keys - returned_keys, returned_keys - expected_keys


def extract_placeholders(text: str) -> Counter:
    return Counter(PLACEHOLDER_PATTERN.findall(text))


def check_placeholder_parity(source_string: str, translated_string: str) -> bool:
    """
    Checks if the multiset of placeholders is identical between a source and a translated string.
    Placeholders may be reordered, since word order differs between languages,
    but none may be lost, duplicated or altered.

    Args:
        source_string: The source text.
        translated_string: The translated text.

    Returns:
        True if both strings carry the same placeholders, False otherwise.
    """
    return extract_placeholders(source_string) == extract_placeholders(translated_string)


def is_acceptable_translation(source_string: str, translated: Any) -> bool:
    """A translation is usable if it is a non-blank string that kept every placeholder."""
    if not isinstance(translated, str) or not translated.strip():
        return False
    return check_placeholder_parity(source_string, translated)
