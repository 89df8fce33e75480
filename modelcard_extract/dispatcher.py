from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Sequence

from tqdm import tqdm

from .models import FAILED, ReferenceResult
from .utils import sanitize_reference

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 5


def run_references(
    references: Sequence[str],
    process: Callable[[str], ReferenceResult],
    *,
    max_workers: int = DEFAULT_MAX_WORKERS,
    show_progress: bool = True,
) -> list[ReferenceResult]:
    """Run ``process`` once per reference with at most ``max_workers`` in flight.

    Blocks until every reference has finished. An exception escaping
    ``process`` becomes a failed result for that reference only. Results come
    back in input order.
    """
    if max_workers < 1:
        raise ValueError(f"max_workers must be a positive integer, got {max_workers}")

    results: list[ReferenceResult | None] = [None] * len(references)
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {pool.submit(process, ref): idx for idx, ref in enumerate(references)}
        for fut in tqdm(
            as_completed(futures),
            total=len(futures),
            desc="modelcards",
            disable=not show_progress,
        ):
            idx = futures[fut]
            reference = references[idx]
            try:
                results[idx] = fut.result()
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("Unhandled error while processing %s", reference)
                results[idx] = ReferenceResult(
                    reference=reference,
                    status=FAILED,
                    sanitized_dir=sanitize_reference(reference),
                    error=str(exc),
                    phase="internal",
                )

    LOGGER.info("All %s reference(s) processed", len(references))
    return [result for result in results if result is not None]
