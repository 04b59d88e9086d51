"""
Sequential chunked processing of large collections.
"""

from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar, TYPE_CHECKING

from shared.errors import ValidationError
from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


T = TypeVar("T")
R = TypeVar("R")

logger = get_logger("backing.batch")


async def process_batch(
    items: Sequence[T],
    batch_size: int,
    fn: Callable[[List[T]], Awaitable[Sequence[R]]],
    *,
    metrics: Optional["MetricsCollector"] = None,
) -> List[R]:
    """Apply ``fn`` to consecutive chunks of ``items``, one chunk at a time.

    Chunks have ``batch_size`` items (the last may be shorter) and each is
    awaited before the next starts. Results are concatenated in input order.
    The first chunk that raises aborts the run and the exception propagates;
    later chunks are never started.

    Raises:
        ValidationError: if ``batch_size`` is not a positive integer.
    """
    if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size <= 0:
        raise ValidationError("batch_size must be a positive integer", {"batch_size": batch_size})

    results: List[R] = []
    items = list(items)
    if not items:
        return results

    total_chunks = (len(items) + batch_size - 1) // batch_size
    for index, start in enumerate(range(0, len(items), batch_size)):
        chunk = items[start:start + batch_size]
        try:
            chunk_results = await fn(chunk)
        except Exception as exc:
            if metrics:
                metrics.increment_counter("batch_chunks_total", result="error")
            logger.error(
                "Batch chunk failed, aborting remaining chunks",
                chunk=index + 1,
                total_chunks=total_chunks,
                chunk_size=len(chunk),
                error=str(exc),
            )
            raise
        if metrics:
            metrics.increment_counter("batch_chunks_total", result="ok")
        results.extend(chunk_results)

    logger.debug("Batch completed", items=len(items), chunks=total_chunks, results=len(results))
    return results
