import re
from dataclasses import dataclass
from typing import Dict, Iterator, List, Sequence, Tuple

from ai_translate.document_tree import Leaf

DEFAULT_BATCH_SIZE = 20

_NON_ALPHANUMERIC = re.compile(r'[^a-zA-Z0-9]')


def safe_key(index: int, path: Sequence[str]) -> str:
    """
    Build the wire key for one leaf of a batch.

    The batch-local index makes the key unique; the last two path segments,
    stripped of anything but ASCII letters and digits, give the model a hint
    about where the text is used (``btn``, ``msg``, ...).

    Args:
        index: Position of the leaf inside its batch.
        path: The leaf's path in the document.

    Returns:
        str: A key such as ``idx_3_login_submitBtn``.
    """
    context_hint = '_'.join(_NON_ALPHANUMERIC.sub('', segment) for segment in path[-2:])
    return f"idx_{index}_{context_hint}"


@dataclass(frozen=True)
class Batch:
    """A contiguous slice of pending leaves sent in a single request."""
    number: int
    start: int
    leaves: Tuple[Leaf, ...]

    def __len__(self) -> int:
        return len(self.leaves)

    @property
    def end(self) -> int:
        return self.start + len(self.leaves)

    def keyed_leaves(self) -> Iterator[Tuple[str, Leaf]]:
        for index, leaf in enumerate(self.leaves):
            yield safe_key(index, leaf.path), leaf

    def payload(self) -> Dict[str, str]:
        """The outbound ``{safe_key: source_text}`` mapping, in batch order."""
        return {key: leaf.value for key, leaf in self.keyed_leaves()}


def make_batches(pending_leaves: Sequence[Leaf], batch_size: int = DEFAULT_BATCH_SIZE) -> List[Batch]:
    """
    Split pending leaves into contiguous batches of at most ``batch_size`` leaves.

    Args:
        pending_leaves: Leaves to translate, in the order they should be sent.
        batch_size: Maximum number of leaves per batch.

    Returns:
        List[Batch]: Batches numbered from 1.
    """
    if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size < 1:
        raise ValueError(f"Batch size must be a positive integer, got {batch_size!r}.")
    return [
        Batch(number=i // batch_size + 1, start=i, leaves=tuple(pending_leaves[i:i + batch_size]))
        for i in range(0, len(pending_leaves), batch_size)
    ]
