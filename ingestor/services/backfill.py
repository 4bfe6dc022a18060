"""
Backfill scheduler: one-shot catch-up from the checkpoint to the chain head.
"""

from typing import List, Optional, Tuple

import structlog

from ingestor.config import settings
from ingestor.utils.exceptions import ValidationError

from .chain_client import ChainClient
from .job_queue import BlockJob, JobQueue, Priority
from .sync_state import SyncStateStore


def partition(start: int, end: int, size: int) -> List[Tuple[int, int]]:
    """
    Split the inclusive range [start, end] into contiguous chunks of at most size blocks.

    >>> partition(1, 25, 10)
    [(1, 10), (11, 20), (21, 25)]
    """
    if size < 1:
        raise ValidationError(f"Chunk size must be >= 1, got {size}")
    if start > end:
        raise ValidationError(f"Range start {start} is after end {end}")

    return [(s, min(s + size - 1, end)) for s in range(start, end + 1, size)]


class BackfillScheduler:
    """Partition the gap between checkpoint and head into low-priority jobs"""

    def __init__(
        self,
        chain_client: ChainClient,
        sync_state: SyncStateStore,
        queue: JobQueue,
        chunk_size: int = None,
    ):
        self.rpc = chain_client
        self.sync_state = sync_state
        self.queue = queue
        self.chunk_size = chunk_size or settings.BACKFILL_CHUNK_SIZE
        self.logger = structlog.get_logger()
        # Head observed by the last backfill pass; live-tail starts above it
        self.scheduled_head: Optional[int] = None

    def schedule_backfill(self) -> int:
        """
        Enqueue backfill jobs for every block after the checkpoint up to the head.

        Returns:
            Number of chunks enqueued
        """
        last_block = self.sync_state.get().last_block
        head = self.rpc.get_head_number()
        self.scheduled_head = max(head, last_block)

        if last_block >= head:
            self.logger.info("Already synced", last_block=last_block, head=head)
            return 0

        chunks = self.enqueue_range(last_block + 1, head)
        self.logger.info(
            "Backfill scheduled",
            chunks=chunks,
            start_block=last_block + 1,
            end_block=head,
            chunk_size=self.chunk_size,
        )
        return chunks

    def enqueue_range(self, start_block: int, end_block: int, kind: str = "backfill") -> int:
        """Enqueue chunked jobs for an explicit range at backfill priority"""
        chunks = partition(start_block, end_block, self.chunk_size)
        for chunk_start, chunk_end in chunks:
            self.queue.enqueue(BlockJob(chunk_start, chunk_end, kind=kind), Priority.BACKFILL)
        return len(chunks)
