"""Sequential, paced batch runner for rate-limited providers.

Splits a list into fixed-size batches and feeds them to an async worker
one after another, sleeping between batches. A failing batch is logged
and counted; the remaining batches still run. Cancellation (for example
a caller-side timeout) is never swallowed.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from keyword_intel.core.config import get_settings
from keyword_intel.core.errors import KeywordIntelError, ValidationError
from keyword_intel.core.logging import batch_logger, get_logger

logger = get_logger(__name__)

ItemT = TypeVar("ItemT")
ResultT = TypeVar("ResultT")


@dataclass
class BatchError:
    """A failed batch."""

    batch_index: int
    error: str
    error_kind: str | None = None


@dataclass
class BatchRunResult(Generic[ResultT]):
    """Outcome of a batch run."""

    results: list[ResultT] = field(default_factory=list)
    failed_batches: int = 0
    total_batches: int = 0
    errors: list[BatchError] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def all_failed(self) -> bool:
        """True if there was at least one batch and none succeeded."""
        return self.total_batches > 0 and self.failed_batches == self.total_batches


class BatchFetcher:
    """Runs an async worker over fixed-size batches, one batch at a time."""

    def __init__(
        self,
        batch_size: int | None = None,
        pacing_ms: int | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        settings = get_settings()
        self._batch_size = batch_size if batch_size is not None else settings.batch_size
        self._pacing_ms = pacing_ms if pacing_ms is not None else settings.batch_pacing_ms
        self._sleep = sleep

    @property
    def batch_size(self) -> int:
        return self._batch_size

    async def run_batches(
        self,
        items: Sequence[ItemT],
        worker: Callable[[list[ItemT]], Awaitable[list[ResultT]]],
        batch_size: int | None = None,
        pacing_ms: int | None = None,
        operation: str = "batch",
    ) -> BatchRunResult[ResultT]:
        """Run ``worker`` over ``items`` in sequential batches.

        Args:
            items: Items to process
            worker: Async callable taking one batch and returning its results
            batch_size: Items per batch (overrides the instance default)
            pacing_ms: Pause between batches in ms (overrides the default)
            operation: Label used in logs

        Returns:
            BatchRunResult with concatenated results and failure counts

        Raises:
            ValidationError: If batch_size is not positive
        """
        size = batch_size if batch_size is not None else self._batch_size
        pacing = pacing_ms if pacing_ms is not None else self._pacing_ms
        if size <= 0:
            raise ValidationError("batch_size", size, "Batch size must be positive")

        start_time = time.monotonic()
        batches = [list(items[i : i + size]) for i in range(0, len(items), size)]
        run: BatchRunResult[ResultT] = BatchRunResult(total_batches=len(batches))

        for index, batch in enumerate(batches):
            batch_start = time.monotonic()
            batch_logger.batch_start(index, len(batch), len(batches), len(items), operation)

            try:
                batch_results = await worker(batch)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                run.failed_batches += 1
                kind = e.kind.value if isinstance(e, KeywordIntelError) else None
                run.errors.append(
                    BatchError(batch_index=index, error=str(e), error_kind=kind)
                )
                logger.error(
                    f"{operation} batch {index + 1}/{len(batches)} failed, continuing",
                    extra={
                        "operation": operation,
                        "batch_index": index,
                        "batch_size": len(batch),
                        "error_type": type(e).__name__,
                        "error_kind": kind,
                        "error_message": str(e)[:500],
                    },
                    exc_info=True,
                )
            else:
                run.results.extend(batch_results)
                batch_logger.batch_complete(
                    index,
                    len(batches),
                    len(batch_results),
                    (time.monotonic() - batch_start) * 1000,
                    operation,
                )

            if index < len(batches) - 1 and pacing > 0:
                await self._sleep(pacing / 1000)

        run.duration_ms = (time.monotonic() - start_time) * 1000
        logger.info(
            f"{operation} batch run complete",
            extra={
                "operation": operation,
                "total_items": len(items),
                "total_batches": run.total_batches,
                "failed_batches": run.failed_batches,
                "result_count": len(run.results),
                "duration_ms": round(run.duration_ms, 2),
            },
        )
        return run
