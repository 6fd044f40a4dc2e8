from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Sequence

from ..core.models import Message, Summary
from .summarizer import ConversationSummarizer

logger = logging.getLogger(__name__)


class SummarizationPipeline:
    """Single-consumer FIFO worker that turns message batches into summaries.

    At most one worker task exists at a time; it is started by `enqueue`
    when none is running and exits once the queue is empty. A failed batch
    abandons everything still queued behind it. Nothing is retried.
    """

    def __init__(
        self,
        summarizer: ConversationSummarizer,
        on_summary: Callable[[Summary], None],
    ) -> None:
        self.summarizer = summarizer
        self._on_summary = on_summary
        self._queue: asyncio.Queue[list[Message]] = asyncio.Queue()
        self._worker_task: asyncio.Task[None] | None = None
        self._generation = 0

    @property
    def is_draining(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def enqueue(self, batch: Sequence[Message]) -> None:
        self._queue.put_nowait(list(batch))
        self._ensure_worker()

    def _ensure_worker(self) -> bool:
        if self.is_draining:
            return True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Outside an event loop the batch waits for the next drain().
            logger.debug("No running event loop; %d batch(es) pending", self.pending)
            return False
        self._worker_task = loop.create_task(self._worker_loop())
        return True

    async def drain(self) -> None:
        """Process everything queued and wait for the worker to go idle."""
        if self._queue.empty() and not self.is_draining:
            return
        self._ensure_worker()
        if self._worker_task is not None:
            await self._worker_task

    def invalidate(self) -> int:
        """Drop queued batches and any summary still being generated.

        Returns the number of queued batches dropped.
        """
        self._generation += 1
        return self.discard_pending()

    def discard_pending(self) -> int:
        discarded = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
            discarded += 1
        return discarded

    async def close(self) -> None:
        self.discard_pending()
        if self._worker_task is None:
            return
        self._worker_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker_task
        self._worker_task = None

    async def _worker_loop(self) -> None:
        while not self._queue.empty():
            batch = self._queue.get_nowait()
            generation = self._generation
            try:
                content = await self.summarizer.summarize(batch)
                if generation != self._generation:
                    logger.debug("Discarding summary of a batch invalidated while generating")
                    continue
                summary = Summary(content=content, replaces=[message.id for message in batch])
                self._on_summary(summary)
                logger.info(
                    "Generated summary %s replacing %d messages", summary.id, len(batch)
                )
            except Exception:
                abandoned = self.discard_pending()
                logger.exception(
                    "Summarization failed; abandoning %d queued batch(es)", abandoned
                )
                return
            finally:
                self._queue.task_done()
