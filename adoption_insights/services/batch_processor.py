"""
In-memory event batching with per-event retries and dead-letter fallback
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from adoption_insights.core.metrics import (
    EVENTS_DEAD_LETTERED,
    EVENTS_INSERTED,
    EVENTS_QUEUED,
    EVENTS_RETRIED,
)
from adoption_insights.services.event_model import TrackedEvent

logger = logging.getLogger(__name__)

STATS_INTERVAL_SECONDS = 5.0
SHUTDOWN_ERROR_MESSAGE = "Event batch processor stopped before the event was inserted"


@dataclass
class BatchProcessorConfig:
    batch_size: int = 5
    batch_interval: int = 2000  # milliseconds
    max_retries: int = 3
    debug: bool = False


class EventBatchProcessor:
    """
    Buffers events and flushes them to the database on a fixed interval.

    A failed batch insert is recovered per event: each event is re-queued at
    the back of the queue up to ``max_retries`` times, then written to the
    failed_events table. Events still queued when the processor stops are
    dead-lettered as well. Nothing here is surfaced to the
    caller that submitted the event.
    """

    def __init__(self, database, config: Optional[BatchProcessorConfig] = None):
        self.database = database
        self.config = config or BatchProcessorConfig()
        self.queue: List[TrackedEvent] = []
        self.retry_counts: Dict[str, int] = {}
        self.processing = False
        self._tasks: List[asyncio.Task] = []
        self._flushes: Set[asyncio.Task] = set()

    def add_event(self, event: TrackedEvent) -> None:
        if any(queued.id == event.id for queued in self.queue):
            return
        self.queue.append(event)
        EVENTS_QUEUED.inc()
        if self.config.debug:
            logger.info(f"Event added: {event.to_json()}")
        else:
            logger.debug(f"Event added: {event.id}")

    async def process_events(self) -> None:
        """Flush one batch; skipped if a flush is already running"""
        if self.processing or not self.queue:
            return

        self.processing = True
        batch = self.queue[:self.config.batch_size]
        del self.queue[:self.config.batch_size]
        try:
            await self.database.insert_events(batch)
            for event in batch:
                self.retry_counts.pop(event.id, None)
            EVENTS_INSERTED.inc(len(batch))
        except Exception as e:
            logger.error(f"Batch insert failed: {type(e).__name__}: {e}")
            for event in batch:
                await self.retry_or_store_failed_event(event, str(e))
        finally:
            self.processing = False

    async def retry_or_store_failed_event(self, event: TrackedEvent, error_message: str) -> None:
        # max_retries re-queues, so max_retries + 1 insert attempts in total
        retries = self.retry_counts.get(event.id, 0)
        if retries < self.config.max_retries:
            self.retry_counts[event.id] = retries + 1
            self.queue.append(event)
            EVENTS_RETRIED.inc()
            logger.warning(f"Retrying event {event.id} (retry {retries + 1}/{self.config.max_retries})")
            return

        self.retry_counts.pop(event.id, None)
        logger.error(f"Event permanently failed, storing in DB: {event.to_json()}")
        await self.store_failed_event(event, error_message)

    async def store_failed_event(self, event: TrackedEvent, error_message: str) -> None:
        try:
            await self.database.insert_failed_event(event.to_json(), error_message, self.config.max_retries)
            EVENTS_DEAD_LETTERED.inc()
        except Exception as e:
            logger.error(f"Failed to store event in DB: {type(e).__name__}: {e}")

    def log_queue_stats(self) -> None:
        if not self.config.debug:
            return
        logger.info(
            f"Queue size: {len(self.queue)} | Failed events being retried: {len(self.retry_counts)}"
        )

    # Timers

    def start(self) -> None:
        """Start the flush and stats tickers on the running loop"""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._flush_ticker(), name="event-batch-flush"),
            asyncio.create_task(self._stats_ticker(), name="event-queue-stats"),
        ]
        logger.info(
            f"Event batch processor started (batch_size={self.config.batch_size}, "
            f"interval={self.config.batch_interval}ms, max_retries={self.config.max_retries})"
        )

    async def stop(self, flush: bool = True) -> None:
        """Cancel the tickers and optionally drain what is still queued"""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        if self._flushes:
            await asyncio.gather(*self._flushes, return_exceptions=True)

        if flush:
            # One attempt per pending batch; retried events land back in the
            # queue, so bound the passes to what was queued at shutdown
            passes = -(-len(self.queue) // self.config.batch_size)
            for _ in range(passes):
                await self.process_events()

            leftover = list(self.queue)
            self.queue.clear()
            for event in leftover:
                self.retry_counts.pop(event.id, None)
                await self.store_failed_event(event, SHUTDOWN_ERROR_MESSAGE)
            if leftover:
                logger.warning(f"Dead-lettered {len(leftover)} unsent events on shutdown")
        logger.info(f"Event batch processor stopped ({len(self.queue)} events left in queue)")

    async def _flush_ticker(self) -> None:
        interval = self.config.batch_interval / 1000
        while True:
            await asyncio.sleep(interval)
            # Not awaited: a tick that lands during a running flush is skipped
            flush = asyncio.create_task(self.process_events())
            self._flushes.add(flush)
            flush.add_done_callback(self._flushes.discard)

    async def _stats_ticker(self) -> None:
        while True:
            await asyncio.sleep(STATS_INTERVAL_SECONDS)
            self.log_queue_stats()
