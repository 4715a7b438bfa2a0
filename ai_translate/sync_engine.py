import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from openai import OpenAIError
from tqdm import tqdm

from ai_translate.batcher import DEFAULT_BATCH_SIZE, Batch, make_batches
from ai_translate.change_detector import partition_leaves
from ai_translate.document_store import load_source_document, load_target_document, save_document
from ai_translate.document_tree import (
    DEFAULT_EXEMPT_KEYS,
    MISSING,
    Leaf,
    flatten_document,
    get_nested_value,
    reorder_like,
    set_nested_value
)
from ai_translate.errors import TranslationError
from ai_translate.translation_client import Translator
from ai_translate.translation_validator import check_key_coverage, is_acceptable_translation

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3

# Errors after which a batch is worth sending again.
RETRYABLE_ERRORS = (OpenAIError, TranslationError)

PersistCallback = Callable[[Dict[str, Any]], None]


@dataclass
class SyncOptions:
    batch_size: int = DEFAULT_BATCH_SIZE
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_base_delay: float = 1.0
    force: bool = False
    dry_run: bool = False
    show_progress: bool = True
    exempt_keys: FrozenSet[str] = DEFAULT_EXEMPT_KEYS


@dataclass
class BatchOutcome:
    batch: Batch
    succeeded: bool
    attempts: int
    translated: int = 0
    fallbacks: int = 0


@dataclass
class SyncResult:
    """Summary of one synchronization run."""
    document: Dict[str, Any]
    total_leaves: int = 0
    pending_leaves: int = 0
    batches: int = 0
    failed_batches: int = 0
    translated_leaves: int = 0
    fallback_leaves: int = 0
    outcomes: List[BatchOutcome] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return self.pending_leaves == 0


def _retry_delay(attempt: int, base_delay: float, api_exc: Optional[Exception] = None) -> float:
    """
    Work out how long to wait before the next attempt.

    A ``Retry-After`` header sent with an API error wins; otherwise exponential
    backoff with jitter is used.
    """
    retry_after = None
    response = getattr(api_exc, 'response', None)
    headers = getattr(response, 'headers', None) or {}
    try:
        retry_after_header = headers.get('Retry-After') if isinstance(api_exc, OpenAIError) else None
        if retry_after_header:
            if retry_after_header.isdigit():
                retry_after = float(retry_after_header)
            elif retry_after_header.endswith('ms'):
                retry_after = float(retry_after_header[:-2]) / 1000
    except (AttributeError, ValueError) as exc:
        logger.warning("Failed to parse Retry-After header: %s. Falling back to exponential backoff.", exc)
    if retry_after is None:
        retry_after = base_delay * (2 ** (attempt - 1)) + random.uniform(0, base_delay)
    return retry_after


async def _handle_retry(attempt: int, max_retries: int, base_delay: float, batch: Batch,
                        api_exc: Optional[Exception] = None) -> bool:
    """
    Handle the retry mechanism with exponential backoff and jitter.

    Args:
        attempt (int): The attempt that just failed, starting at 1.
        max_retries (int): The maximum number of attempts.
        base_delay (float): The base delay in seconds.
        batch (Batch): The batch being translated.
        api_exc (Optional[Exception]): The exception raised by the attempt.

    Returns:
        bool: True if the batch should be sent again, False otherwise.
    """
    if attempt < max_retries:
        delay = _retry_delay(attempt, base_delay, api_exc)
        logger.info("Retrying batch %d in %.2f seconds (Attempt %d/%d)", batch.number, delay, attempt, max_retries)
        await asyncio.sleep(delay)
        return True
    logger.error("Reached maximum retries for batch %d (items %d-%d); skipping it.",
                 batch.number, batch.start + 1, batch.end)
    return False


def merge_batch_results(batch: Batch, translated: Dict[str, Any], target_document: Dict[str, Any]) -> Tuple[int, int]:
    """
    Write the translations of one batch back into the target document.

    Every leaf of the batch gets a value: the translation when it is usable, or
    the source text when the key is missing, the value is empty, or a
    placeholder was lost.

    Args:
        batch: The batch that was sent.
        translated: The mapping returned by the translator.
        target_document: Target document, updated in place.

    Returns:
        Tuple[int, int]: Number of translated leaves and number of source fallbacks.
    """
    expected_keys = [key for key, _ in batch.keyed_leaves()]
    missing_keys, extra_keys = check_key_coverage(expected_keys, translated.keys())
    if missing_keys:
        logger.warning("Batch %d: response is missing %d of %d keys.", batch.number, len(missing_keys), len(batch))
    if extra_keys:
        logger.warning("Batch %d: ignoring %d unexpected key(s): %s", batch.number, len(extra_keys),
                       ', '.join(sorted(extra_keys)))

    translated_count = 0
    fallback_count = 0
    for key, leaf in batch.keyed_leaves():
        value = translated.get(key)
        if is_acceptable_translation(leaf.value, value):
            set_nested_value(target_document, leaf.path, value)
            translated_count += 1
        else:
            if isinstance(value, str) and value.strip():
                logger.warning("Translation for '%s' lost or altered a placeholder; keeping source text: \"%s\"",
                               leaf.dotted_path, leaf.value)
            else:
                logger.warning("Missing translation for '%s'; keeping source text: \"%s\"",
                               leaf.dotted_path, leaf.value)
            set_nested_value(target_document, leaf.path, leaf.value)
            fallback_count += 1
    return translated_count, fallback_count


async def execute_batch(
        batch: Batch,
        target_document: Dict[str, Any],
        translator: Translator,
        target_language: str,
        options: SyncOptions,
        persist: PersistCallback
) -> BatchOutcome:
    """
    Translate one batch, merge it into the target document and checkpoint.

    The whole batch is retried on transport errors and unparseable responses,
    up to ``options.max_retries`` attempts. A batch that keeps failing is
    abandoned so the run can move on; batches that already completed are
    never touched.

    Args:
        batch: The batch to translate.
        target_document: Target document, updated in place on success.
        translator: The translation capability.
        target_language: Target language code.
        options: Run options.
        persist: Called with the target document after a successful merge.

    Returns:
        BatchOutcome: Whether the batch succeeded and what it contributed.
    """
    payload = batch.payload()
    logger.info("Requesting translation of items %d to %d...", batch.start + 1, batch.end)

    for attempt in range(1, options.max_retries + 1):
        try:
            translated = await translator.translate(payload, target_language)
        except RETRYABLE_ERRORS as exc:
            logger.error("Translation batch %d failed (items %d-%d), attempt %d/%d: %s - %s",
                         batch.number, batch.start + 1, batch.end, attempt, options.max_retries,
                         exc.__class__.__name__, exc)
            if await _handle_retry(attempt, options.max_retries, options.retry_base_delay, batch, exc):
                continue
            return BatchOutcome(batch=batch, succeeded=False, attempts=attempt)

        translated_count, fallback_count = merge_batch_results(batch, translated, target_document)
        persist(target_document)
        return BatchOutcome(batch=batch, succeeded=True, attempts=attempt,
                            translated=translated_count, fallbacks=fallback_count)

    return BatchOutcome(batch=batch, succeeded=False, attempts=options.max_retries)


def fill_missing_leaves(leaves: List[Leaf], target_document: Dict[str, Any]) -> int:
    """
    Copy the source value into every leaf path that is still absent from the target.

    Returns:
        int: Number of leaves filled.
    """
    filled = 0
    for leaf in leaves:
        if get_nested_value(target_document, leaf.path) is MISSING:
            set_nested_value(target_document, leaf.path, leaf.value)
            filled += 1
    return filled


async def sync_document(
        source_document: Dict[str, Any],
        target_document: Dict[str, Any],
        translator: Translator,
        target_language: str,
        options: SyncOptions,
        persist: PersistCallback
) -> SyncResult:
    """
    Bring ``target_document`` in line with ``source_document``.

    Leaves that are already satisfied are written straight into the target.
    If nothing is pending the target is persisted and the run ends without any
    translation request. Otherwise pending leaves are translated batch by batch,
    strictly in order, with a checkpoint after each successful batch. The
    final document follows the source document's key order.

    Args:
        source_document: The source localization document (not modified).
        target_document: The existing target document, updated in place.
        translator: The translation capability.
        target_language: Target language code.
        options: Run options.
        persist: Writes the target document to storage.

    Returns:
        SyncResult: The final document and run statistics.
    """
    leaves = flatten_document(source_document, options.exempt_keys)
    pending = partition_leaves(leaves, target_document, options.force)
    result = SyncResult(document=target_document, total_leaves=len(leaves), pending_leaves=len(pending))

    if not pending:
        logger.info("- %s needs no further translation; it is fully in sync.", target_language)
        reorder_like(target_document, source_document)
        if options.dry_run:
            logger.info("[Dry Run] Would write the synchronized document.")
        else:
            persist(target_document)
        return result

    batches = make_batches(pending, options.batch_size)
    result.batches = len(batches)
    logger.info("- Found %d text(s) to translate for %s, split into %d batch(es).",
                len(pending), target_language, len(batches))

    if options.dry_run:
        for batch in batches:
            logger.info("[Dry Run] Would translate batch %d (items %d-%d, %d texts).",
                        batch.number, batch.start + 1, batch.end, len(batch))
        return result

    progress = tqdm(batches, desc=f"Translating {target_language}", unit="batch", disable=not options.show_progress)
    try:
        for batch in progress:
            outcome = await execute_batch(batch, target_document, translator, target_language, options, persist)
            result.outcomes.append(outcome)
            if outcome.succeeded:
                result.translated_leaves += outcome.translated
                result.fallback_leaves += outcome.fallbacks
            else:
                result.failed_batches += 1
    finally:
        progress.close()

    filled = fill_missing_leaves(pending, target_document)
    if filled:
        logger.warning("%d text(s) from abandoned batches were filled with source text; "
                       "they will be retried on the next run.", filled)
        result.fallback_leaves += filled
    reorder_like(target_document, source_document)
    persist(target_document)

    logger.info("Language %s finished: %d translated, %d fell back to source, %d of %d batch(es) failed.",
                target_language, result.translated_leaves, result.fallback_leaves,
                result.failed_batches, result.batches)
    return result


async def sync_file(
        template_path: str,
        output_path: str,
        target_language: str,
        translator: Translator,
        options: SyncOptions
) -> SyncResult:
    """
    Synchronize the file at ``output_path`` with the template at ``template_path``.

    Raises:
        SetupError: If the template cannot be loaded.
    """
    logger.info("Loading source template %s", template_path)
    source_document = load_source_document(template_path)
    target_document = load_target_document(output_path)

    def persist(document: Dict[str, Any]) -> None:
        save_document(output_path, document)

    result = await sync_document(source_document, target_document, translator, target_language, options, persist)
    if not options.dry_run:
        logger.info("Output written to %s", output_path)
    return result
