"""Drives a whole subtitle file through the batch translator, one batch at a time."""

import dataclasses
import logging
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .cancellation import CancellationToken
from .exceptions import BatchExhausted
from .models import SubtitleLine, TranslationStatus
from .translator import BatchTranslator
from .utils import chunked

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10

ProgressCallback = Callable[[int], None]
PartialCallback = Callable[[Tuple[SubtitleLine, ...]], None]


class FileOrchestrator:
    """
    Partitions a file into batches and merges translations back by id.

    Batches run strictly in order and never concurrently: they share one rate
    governor, and the progress callbacks must fire in batch order.
    """

    def __init__(self, translator: BatchTranslator, batch_size: int = DEFAULT_BATCH_SIZE):
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.translator = translator
        self.batch_size = batch_size
        self.status = TranslationStatus.IDLE

    @staticmethod
    def _index_by_id(lines: Sequence[SubtitleLine]) -> Dict[int, int]:
        index: Dict[int, int] = {}
        for position, line in enumerate(lines):
            if line.id in index:
                raise ValueError(f"Duplicate subtitle id {line.id} in input.")
            index[line.id] = position
        return index

    def run(
        self,
        lines: Sequence[SubtitleLine],
        source_lang: str,
        target_lang: str,
        on_progress: Optional[ProgressCallback] = None,
        on_partial: Optional[PartialCallback] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> List[SubtitleLine]:
        """
        Translates every line of a file.

        Args:
            lines: The file's subtitle lines, ids unique.
            source_lang: Source language name, or "auto".
            target_lang: Target language name.
            on_progress: Called after each batch with the number of lines processed so far.
            on_partial: Called after each batch with a read-only snapshot of the full result.
            cancel_token: Checked before each batch is dispatched.

        Returns:
            A new list of lines with translated ``text``.

        Raises:
            BatchExhausted: On the first batch that fails all its retries. Nothing
                after it is attempted; ``partial_result`` holds the merged output
                of the earlier batches.
            OperationCancelled: If the token is cancelled.
        """
        results: List[SubtitleLine] = list(lines)
        positions = self._index_by_id(results)
        batches = chunked(results, self.batch_size)
        total = len(results)
        processed = 0

        self.status = TranslationStatus.TRANSLATING
        started = time.time()
        logger.info(f"Translating {total} lines in {len(batches)} batch(es) ({source_lang} -> {target_lang}).")

        try:
            for number, batch in enumerate(batches, start=1):
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()

                outcome = self.translator.translate(batch, source_lang, target_lang, cancel_token)
                if not outcome.ok:
                    logger.error(f"Batch {number}/{len(batches)} failed after {outcome.attempts} attempt(s): {outcome.error}")
                    raise BatchExhausted(
                        first_id=batch[0].id,
                        attempts=outcome.attempts,
                        last_error=outcome.error,
                        partial_result=results,
                    ) from outcome.error

                batch_ids = {line.id for line in batch}
                merged_ids = set()
                for result in outcome.results:
                    if result.id not in batch_ids:
                        logger.debug(f"Ignoring id {result.id} not present in batch {number}.")
                        continue
                    if result.id in merged_ids:
                        # first answer for an id wins
                        logger.debug(f"Ignoring repeated id {result.id} in batch {number}.")
                        continue
                    position = positions[result.id]
                    results[position] = dataclasses.replace(results[position], text=result.text)
                    merged_ids.add(result.id)
                if len(merged_ids) < len(batch):
                    missing = len(batch) - len(merged_ids)
                    logger.warning(f"Batch {number}: {missing} line(s) missing from the response were left unchanged.")

                processed += len(batch)
                if on_progress is not None:
                    on_progress(min(processed, total))
                if on_partial is not None:
                    on_partial(tuple(results))
        except Exception:
            self.status = TranslationStatus.FAILED
            raise

        self.status = TranslationStatus.COMPLETED
        logger.info(f"Translated {total} lines in {time.time() - started:.2f} seconds.")
        return results
