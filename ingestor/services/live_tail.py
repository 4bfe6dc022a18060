"""
Live-tail poller: enqueue newly produced blocks as high-priority jobs.
"""

import threading
from typing import Optional

import structlog

from ingestor.config import settings

from .chain_client import ChainClient
from .job_queue import BlockJob, JobQueue, Priority
from .sync_state import SyncStateStore


class LiveTailPoller:
    """
    Poll the chain head on a fixed interval until stopped.

    The poller remembers the highest block it (or the backfill pass) has
    enqueued, so each block is submitted once and live jobs never overlap an
    outstanding backfill range. When the sync state reports a rollback, the
    poller starts again from the fork point.
    """

    def __init__(
        self,
        chain_client: ChainClient,
        sync_state: SyncStateStore,
        queue: JobQueue,
        interval_ms: int = None,
        high_water: Optional[int] = None,
    ):
        self.rpc = chain_client
        self.sync_state = sync_state
        self.queue = queue
        self.interval = (interval_ms if interval_ms is not None else settings.POLL_INTERVAL_MS) / 1000.0
        self.high_water = high_water
        self.logger = structlog.get_logger()

        self._seen_generation = sync_state.generation
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def poll_once(self) -> int:
        """
        Run one poll iteration.

        Returns:
            Number of single-block jobs enqueued
        """
        last_block = self.sync_state.get().last_block
        head = self.rpc.get_head_number()

        generation = self.sync_state.generation
        fork_point = self.sync_state.lowest_fork_point_since(self._seen_generation)
        if fork_point is not None:
            self.logger.warning(
                "Rollback observed, re-covering from fork point",
                fork_point=fork_point,
                previous_high_water=self.high_water,
            )
            start = fork_point + 1
        else:
            start = max(last_block, self.high_water if self.high_water is not None else last_block) + 1

        if start > head:
            self._seen_generation = generation
            return 0

        for number in range(start, head + 1):
            self.queue.enqueue(BlockJob(number, number, kind="live"), Priority.LIVE_TAIL)
        self.high_water = head
        self._seen_generation = generation

        self.logger.info("Enqueued live blocks", start_block=start, end_block=head)
        return head - start + 1

    def run(self) -> None:
        """Poll until stop() is called; poll errors are logged and the loop continues"""
        self.logger.info("Live-tail started", interval_seconds=self.interval, high_water=self.high_water)
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except Exception as e:
                self.logger.error("Live-tail poll error", error=str(e))
            self._stop_event.wait(self.interval)
        self.logger.info("Live-tail stopped")

    def start(self) -> threading.Thread:
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name="LiveTailPoller", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
