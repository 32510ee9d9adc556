"""
Concurrent batch processing with bounded parallelism, rate limiting,
per-attempt timeouts and retries.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import time
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Sequence, TypeVar, Union
from uuid import uuid4

import structlog
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_fixed

from .. import observability
from ..config.config import BatchConfig
from ..errors import BatchProcessingError, BatchTimeoutError, ItemSkipped
from .models import BatchResult, ProcessingItem, ProcessingStats, ProcessingStatus
from .rate_limiter import TokenBucketRateLimiter

logger = structlog.get_logger(__name__)

T = TypeVar("T")

ProcessorFn = Callable[[ProcessingItem], Union[Any, Awaitable[Any]]]


class BatchProcessor:
    """
    Runs a processor function over many items.

    Features:
    - At most ``max_concurrent`` items in flight (asyncio.Semaphore)
    - Token bucket rate limiting before each item is dispatched
    - Retries with a fixed delay between attempts (tenacity)
    - Per-attempt timeout
    - Optional fail-fast when ``continue_on_error`` is off

    The processor function may be a coroutine function or a plain callable;
    plain callables run in the default thread pool.
    """

    def __init__(self, config: Optional[BatchConfig] = None) -> None:
        self.config = config or BatchConfig()
        self.rate_limiter: Optional[TokenBucketRateLimiter] = None
        if self.config.rate_limit is not None:
            self.rate_limiter = TokenBucketRateLimiter.from_config(self.config.rate_limit)
        self.logger = logger.bind(component="BatchProcessor")

    async def process_batch(self, items: Sequence[ProcessingItem], processor_fn: ProcessorFn) -> BatchResult:
        """Process all items concurrently.

        ``BatchResult.results`` is in completion order; use ``ProcessingItem.id``
        to correlate with the input.

        Raises:
            BatchProcessingError: an item failed and ``continue_on_error`` is off.
        """
        batch_id = str(uuid4())
        start_time = time.perf_counter()
        semaphore = asyncio.Semaphore(self.config.max_concurrent)

        async def run_item(item: ProcessingItem) -> ProcessingItem:
            async with semaphore:
                if self.rate_limiter is not None:
                    await self.rate_limiter.acquire()
                return await self.process_item_with_retry(item, processor_fn)

        with structlog.contextvars.bound_contextvars(correlation_id=batch_id):
            self.logger.debug(
                "Starting batch processing", item_count=len(items), max_concurrent=self.config.max_concurrent
            )

            tasks = [asyncio.create_task(run_item(item)) for item in items]
            results: List[ProcessingItem] = []
            try:
                for next_done in asyncio.as_completed(tasks):
                    item = await next_done
                    results.append(item)
                    if item.status is ProcessingStatus.FAILED and not self.config.continue_on_error:
                        self.logger.error("Item failed, aborting batch", item_id=item.id, error=item.error)
                        self._record_items([item])
                        raise BatchProcessingError(f"Item {item.id} failed: {item.error}", item_id=item.id)
            finally:
                pending = [task for task in tasks if not task.done()]
                for task in pending:
                    task.cancel()
                if pending:
                    await asyncio.wait(pending)
                self._collect_task_errors(tasks)

            return self._finish(batch_id, results, start_time)

    async def process_sequential(self, items: Sequence[ProcessingItem], processor_fn: ProcessorFn) -> BatchResult:
        """Process items one at a time in input order."""
        batch_id = str(uuid4())
        start_time = time.perf_counter()

        with structlog.contextvars.bound_contextvars(correlation_id=batch_id):
            self.logger.debug("Starting sequential processing", item_count=len(items))

            results: List[ProcessingItem] = []
            for item in items:
                if self.rate_limiter is not None:
                    await self.rate_limiter.acquire()

                item = await self.process_item_with_retry(item, processor_fn)
                results.append(item)

                if item.status is ProcessingStatus.FAILED and not self.config.continue_on_error:
                    self.logger.error("Item failed, aborting batch", item_id=item.id, error=item.error)
                    self._record_items([item])
                    raise BatchProcessingError(f"Item {item.id} failed: {item.error}", item_id=item.id)

            return self._finish(batch_id, results, start_time)

    async def process_item_with_retry(self, item: ProcessingItem, processor_fn: ProcessorFn) -> ProcessingItem:
        """
        Run the processor on one item, retrying on failure.

        Failures after the last attempt are recorded on the item, not raised.
        Each attempt works on its own shallow copy of the item, so a timed-out
        attempt still running in a worker thread cannot touch the final state.
        """
        item.status = ProcessingStatus.PROCESSING

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.retry_count + 1),
            wait=wait_fixed(self.config.retry_delay),
            retry=retry_if_exception(_is_retryable),
            before_sleep=self._log_retry(item),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    item.attempts += 1
                    attempt_item = copy.copy(item)
                    outcome = await self._run_attempt(attempt_item, processor_fn)
        except ItemSkipped as e:
            item.status = ProcessingStatus.SKIPPED
            item.error = None
            self.logger.debug("Item skipped", item_id=item.id, reason=str(e))
            return item
        except Exception as e:
            item.status = ProcessingStatus.FAILED
            item.error = str(e) or type(e).__name__
            self.logger.warning("Item failed", item_id=item.id, attempts=item.attempts, error=item.error)
            return item

        return self._apply_outcome(item, attempt_item, outcome)

    def chunk_items(self, items: Sequence[T], batch_size: Optional[int] = None) -> List[List[T]]:
        """Split items into consecutive chunks; the last chunk may be shorter."""
        size = batch_size if batch_size is not None else self.config.batch_size
        if size <= 0:
            raise ValueError("batch_size must be positive")
        return [list(items[i : i + size]) for i in range(0, len(items), size)]

    def get_stats(self, result: BatchResult) -> ProcessingStats:
        elapsed_ms = result.processing_time_ms
        return ProcessingStats(
            total_items=result.total_items,
            processed_items=result.processed_items,
            failed_items=result.failed_items,
            skipped_items=result.skipped_items,
            success_rate=result.success_rate,
            processing_time_ms=elapsed_ms,
            items_per_second=result.processed_items / elapsed_ms * 1000.0 if elapsed_ms > 0 else 0.0,
        )

    async def _run_attempt(self, item: ProcessingItem, processor_fn: ProcessorFn) -> Any:
        coro = _invoke(processor_fn, item)
        if self.config.timeout is None:
            return await coro
        try:
            return await asyncio.wait_for(coro, timeout=self.config.timeout)
        except asyncio.TimeoutError:
            raise BatchTimeoutError(f"Item {item.id} timed out after {self.config.timeout}s") from None

    @staticmethod
    def _apply_outcome(item: ProcessingItem, attempt_item: ProcessingItem, outcome: Any) -> ProcessingItem:
        if outcome is attempt_item:
            item.data = outcome.data
            item.status = outcome.status
            item.error = outcome.error
            item.result = outcome.result
            outcome = item

        if isinstance(outcome, ProcessingItem):
            returned = outcome
            returned.attempts = max(returned.attempts, item.attempts)
            if not returned.status.is_terminal:
                returned.status = ProcessingStatus.SUCCESS
            if returned.status is ProcessingStatus.FAILED:
                returned.error = returned.error or "Processor marked item as failed"
            else:
                returned.error = None
            return returned

        item.data = attempt_item.data
        item.result = outcome
        item.status = ProcessingStatus.SUCCESS
        item.error = None
        return item

    def _log_retry(self, item: ProcessingItem) -> Callable[[Any], None]:
        def before_sleep(retry_state: Any) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            self.logger.debug(
                "Retrying item", item_id=item.id, attempt=retry_state.attempt_number, error=str(exc) if exc else None
            )

        return before_sleep

    def _finish(self, batch_id: str, results: List[ProcessingItem], start_time: float) -> BatchResult:
        elapsed = time.perf_counter() - start_time
        result = BatchResult.from_items(batch_id, results, elapsed * 1000.0)

        self._record_items(results)
        observability.observe("batch_duration_seconds", elapsed)

        self.logger.info(
            "Batch processing completed",
            success=result.processed_items,
            failed=result.failed_items,
            skipped=result.skipped_items,
            duration_ms=round(result.processing_time_ms, 2),
        )
        return result

    def _collect_task_errors(self, tasks: List["asyncio.Task[ProcessingItem]"]) -> None:
        for task in tasks:
            if task.done() and not task.cancelled() and task.exception() is not None:
                self.logger.error("Batch task crashed", error=repr(task.exception()))

    @staticmethod
    def _record_items(items: Iterable[ProcessingItem]) -> None:
        for item in items:
            observability.increment("batch_items", labels={"status": item.status.value})


def to_items(values: Iterable[Any]) -> List[ProcessingItem]:
    """Wrap raw values as pending items; existing items pass through unchanged."""
    items = []
    for index, value in enumerate(values):
        if isinstance(value, ProcessingItem):
            items.append(value)
        else:
            items.append(ProcessingItem(id=str(index), data=value))
    return items


def _is_retryable(exc: BaseException) -> bool:
    """Skips and cancellations end the item immediately."""
    return isinstance(exc, Exception) and not isinstance(exc, ItemSkipped)


async def _invoke(processor_fn: ProcessorFn, item: ProcessingItem) -> Any:
    if inspect.iscoroutinefunction(processor_fn):
        return await processor_fn(item)
    result = await asyncio.to_thread(processor_fn, item)
    if inspect.isawaitable(result):
        return await result
    return result
