import copy
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Sequence, Tuple

# Keys whose values are copied verbatim instead of being translated
# (e.g. a language's own name for itself).
DEFAULT_EXEMPT_KEYS = frozenset({'nativeName'})

# Any Unicode letter. CJK ideographs are letters too, so this covers both.
_LETTER_PATTERN = re.compile(r'[^\W\d_]')


class _Missing:
    """Sentinel type for a path that does not exist in a document."""

    def __repr__(self) -> str:
        return 'MISSING'

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


class LeafClass(Enum):
    TRANSLATABLE = 'translatable'
    PASS_THROUGH = 'pass_through'


@dataclass(frozen=True)
class Leaf:
    """A terminal value of a document together with the keys leading to it."""
    path: Tuple[str, ...]
    value: Any
    classification: LeafClass

    @property
    def is_translatable(self) -> bool:
        return self.classification is LeafClass.TRANSLATABLE

    @property
    def dotted_path(self) -> str:
        return '.'.join(self.path)


def needs_translation(text: Any) -> bool:
    """
    Check whether a value carries any text worth translating.

    Args:
        text: The value to inspect.

    Returns:
        True if ``text`` is a string containing at least one letter or CJK ideograph.
    """
    return isinstance(text, str) and _LETTER_PATTERN.search(text) is not None


def classify_leaf(key: str, value: Any, exempt_keys: Iterable[str] = DEFAULT_EXEMPT_KEYS) -> LeafClass:
    if key in exempt_keys or not needs_translation(value):
        return LeafClass.PASS_THROUGH
    return LeafClass.TRANSLATABLE


def flatten_document(
        document: Dict[str, Any],
        exempt_keys: Iterable[str] = DEFAULT_EXEMPT_KEYS,
        _prefix: Tuple[str, ...] = ()
) -> List[Leaf]:
    """
    Flatten a nested document into an ordered list of leaves.

    Nested objects are descended into and never emitted themselves. Every other
    value (strings, numbers, booleans, arrays, null) becomes exactly one leaf.
    The order follows the document's key order, with nested leaves spliced in
    where their parent object sits.

    Args:
        document: The nested mapping to flatten.
        exempt_keys: Terminal key names that are always copied verbatim.

    Returns:
        List[Leaf]: One leaf per terminal value.
    """
    exempt_keys = frozenset(exempt_keys)
    leaves: List[Leaf] = []
    for key, value in document.items():
        path = _prefix + (key,)
        if isinstance(value, dict):
            leaves.extend(flatten_document(value, exempt_keys, path))
        else:
            leaves.append(Leaf(path=path, value=value, classification=classify_leaf(key, value, exempt_keys)))
    return leaves


def get_nested_value(document: Dict[str, Any], path: Sequence[str]) -> Any:
    """
    Look up the value stored at ``path``.

    A stored JSON ``null`` is returned as ``None``; a path that does not exist
    returns the ``MISSING`` sentinel.
    """
    current: Any = document
    for key in path:
        if not isinstance(current, dict) or key not in current:
            return MISSING
        current = current[key]
    return current


def set_nested_value(document: Dict[str, Any], path: Sequence[str], value: Any) -> None:
    """
    Store ``value`` at ``path``, creating intermediate objects as needed.

    An intermediate key that holds something other than an object is replaced
    by an empty object, since the source document says it must be one.
    """
    if not path:
        raise ValueError("Cannot set a value at an empty path.")
    current = document
    for key in path[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    # Lists are copied so the target never aliases the source document.
    current[path[-1]] = copy.deepcopy(value) if isinstance(value, list) else value


def reorder_like(document: Dict[str, Any], template: Dict[str, Any]) -> None:
    """
    Reorder ``document`` in place so its keys follow ``template``'s key order.

    Nested objects present in both are reordered the same way. Keys that only
    ``document`` has keep their relative order after the shared ones.
    """
    ordered = [key for key in template if key in document]
    ordered += [key for key in document if key not in template]
    for key in ordered:
        value = document.pop(key)
        document[key] = value
        if isinstance(value, dict) and isinstance(template.get(key), dict):
            reorder_like(value, template[key])
