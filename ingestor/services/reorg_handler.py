"""
Reorg handling service for the chain-mirror ingestor.

This service decides whether a newly fetched block extends the stored chain
and, when it does not, finds the fork point and rolls storage back to it.
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from ingestor.config import settings
from ingestor.utils.exceptions import IndexerError, ReorgDepthExceeded

from .block_fetcher import BlockFetcher
from .storage_writer import StorageWriter
from .sync_state import SyncStateStore


@dataclass
class ReorgResolution:
    """Outcome of checking one block against the stored chain"""

    rolled_back: bool
    fork_point: Optional[int] = None
    resume_from: Optional[int] = None
    depth: int = 0
    deleted_blocks: int = 0
    alert: Optional[ReorgDepthExceeded] = None

    @property
    def depth_exceeded(self) -> bool:
        return self.alert is not None


NO_REORG = ReorgResolution(rolled_back=False)


class ReorgHandler:
    """Handle blockchain reorganizations"""

    def __init__(
        self,
        storage: StorageWriter,
        sync_state: SyncStateStore,
        fetcher: BlockFetcher,
        max_depth: int = None,
        monitor=None,
        publisher=None,
    ):
        """
        Initialize the reorg handler.

        Args:
            storage: Storage writer for stored hashes and rollback deletes
            sync_state: Checkpoint store rewound on rollback
            fetcher: Block fetcher used to read the current chain while walking back
            max_depth: Maximum number of blocks to walk back (default from settings)
            monitor: Optional IngestMonitor notified of reorgs
            publisher: Optional InvalidationPublisher notified after rollback
        """
        self.storage = storage
        self.sync_state = sync_state
        self.fetcher = fetcher
        self.max_depth = max_depth if max_depth is not None else settings.MAX_REORG_DEPTH
        self.monitor = monitor
        self.publisher = publisher
        self.logger = structlog.get_logger()

    def resolve(self, block_number: int, parent_hash: str) -> ReorgResolution:
        """
        Check a new block against the stored chain and roll back on a fork.

        Args:
            block_number: Number of the newly fetched block
            parent_hash: Parent hash of the newly fetched block

        Returns:
            NO_REORG, or a resolution carrying the fork point and resume point
        """
        with self.sync_state.lock:
            stored_parent = self.storage.get_block_hash(block_number - 1)

            if stored_parent is None:
                return NO_REORG
            if stored_parent == parent_hash:
                return NO_REORG

            self.logger.warning(
                "Reorg detected: parent hash mismatch",
                block_number=block_number,
                stored_parent_hash=stored_parent,
                new_parent_hash=parent_hash,
            )
            return self.handle_reorg(block_number)

    def handle_reorg(self, block_number: int) -> ReorgResolution:
        """
        Roll storage back to the fork point below block_number.

        Returns:
            Resolution with the block number to resume ingestion from
        """
        with self.sync_state.lock:
            try:
                fork_point, depth, alert = self._find_fork_point(block_number)

                deleted = self.storage.delete_blocks_above(fork_point)
                fork_hash = self.storage.get_block_hash(fork_point) or ""
                self.sync_state.rewind(fork_point, fork_hash)
            except IndexerError:
                raise
            except Exception as e:
                self.logger.error("Failed to handle reorg", block_number=block_number, error=str(e))
                raise IndexerError(f"Reorg handling failed: {e}")

        resolution = ReorgResolution(
            rolled_back=True,
            fork_point=fork_point,
            resume_from=fork_point + 1,
            depth=depth,
            deleted_blocks=deleted,
            alert=alert,
        )

        self.logger.warning(
            "Reorg rolled back",
            block_number=block_number,
            fork_point=fork_point,
            resume_from=resolution.resume_from,
            deleted_blocks=deleted,
            depth=depth,
        )

        if self.monitor is not None:
            self.monitor.record_reorg(block_number, fork_point, depth, alert)
        if self.publisher is not None:
            self.publisher.publish_data_changed(reason="reorg", fork_point=fork_point)

        return resolution

    def _find_fork_point(self, block_number: int):
        """
        Walk back from block_number - 1 to the highest height where the stored
        hash equals the hash currently on chain.

        Each candidate is re-read from the live chain, so a chain that keeps
        reorganizing during the walk is observed as it moves.

        Returns:
            (fork_point, depth walked, ReorgDepthExceeded alert or None)
        """
        for depth in range(1, self.max_depth + 1):
            candidate = block_number - 1 - depth
            if candidate < 0:
                return 0, depth, None

            stored_hash = self.storage.get_block_hash(candidate)
            if stored_hash is None:
                continue

            chain_hash = self.fetcher.get_block_hash(candidate)
            if stored_hash == chain_hash:
                self.logger.info("Found fork point", fork_point=candidate, depth=depth)
                return candidate, depth, None

        fork_point = max(block_number - 1 - self.max_depth, 0)
        alert = ReorgDepthExceeded(block_number, self.max_depth, fork_point)
        self.logger.critical(
            "Reorg deeper than maximum depth, rolling back to depth limit",
            alert=True,
            block_number=block_number,
            max_depth=self.max_depth,
            fork_point=fork_point,
            error=str(alert),
        )
        return fork_point, self.max_depth, alert
