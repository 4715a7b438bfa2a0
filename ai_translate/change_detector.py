import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from ai_translate.document_tree import (
    MISSING,
    Leaf,
    get_nested_value,
    needs_translation,
    set_nested_value
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeafDecision:
    is_satisfied: bool
    value_to_write: Any = None


def _has_value(value: Any) -> bool:
    """A target value counts as present unless it is missing, null or an empty string."""
    return value is not MISSING and value is not None and value != ''


def decide_leaf(leaf: Leaf, target_document: Dict[str, Any], force: bool = False) -> LeafDecision:
    """
    Decide whether a source leaf still needs translation.

    Rules, in order:
    1. Pass-through leaves are satisfied. The existing target value is kept if
       there is one (manual overrides survive), otherwise the source is copied.
    2. A translatable leaf whose target value exists and differs from the
       source is assumed to have been translated by an earlier run.
    3. A target value identical to a source that needs no translation is fine as is.
    4. A missing target value for a source that needs no translation is
       satisfied by copying the source.
    5. Everything else is pending.

    In force mode every translatable leaf is pending.

    Args:
        leaf: The source leaf.
        target_document: The target document as loaded or built so far.
        force: Re-translate every translatable leaf.

    Returns:
        LeafDecision: Whether the leaf is satisfied and, if so, the value to store.
    """
    existing = get_nested_value(target_document, leaf.path)

    if not leaf.is_translatable:
        return LeafDecision(True, existing if existing is not MISSING else leaf.value)

    if force:
        return LeafDecision(False)

    source = leaf.value
    if _has_value(existing):
        if existing != source:
            return LeafDecision(True, existing)
        if not needs_translation(source):
            return LeafDecision(True, existing)
    elif not needs_translation(source):
        return LeafDecision(True, source)

    return LeafDecision(False)


def partition_leaves(leaves: List[Leaf], target_document: Dict[str, Any], force: bool = False) -> List[Leaf]:
    """
    Apply every satisfied decision to the target document and collect the rest.

    Args:
        leaves: Flattened source leaves.
        target_document: Target document, updated in place.
        force: Re-translate every translatable leaf.

    Returns:
        List[Leaf]: Leaves that need translation, in source order.
    """
    pending: List[Leaf] = []
    for leaf in leaves:
        decision = decide_leaf(leaf, target_document, force)
        if decision.is_satisfied:
            set_nested_value(target_document, leaf.path, decision.value_to_write)
        else:
            pending.append(leaf)
    logger.debug("%d of %d leaves need translation.", len(pending), len(leaves))
    return pending
