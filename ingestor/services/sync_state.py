"""
Sync state store: the single persisted ingestion checkpoint.

The checkpoint only moves forward through advance(), which is a conditional
update keyed on the block number. rewind() is the sole path that lowers it
and is reserved for reorg rollback. Both run under the store lock, which
workers also hold while committing a block, so a rollback never interleaves
with a block commit.
"""

import threading
from dataclasses import dataclass
from typing import List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ingestor.models import SYNC_STATE_ID, SyncState
from ingestor.utils.exceptions import StorageError


@dataclass(frozen=True)
class Checkpoint:
    """Last committed block number and hash"""

    last_block: int
    last_block_hash: str


class SyncStateStore:
    """Persist and guard the (last_block, last_block_hash) checkpoint"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory
        self.lock = threading.RLock()
        self.logger = structlog.get_logger()
        # One entry per rewind; in-flight work compares generations to tell its range went stale
        self.fork_points: List[int] = []

    @property
    def generation(self) -> int:
        return len(self.fork_points)

    @property
    def last_fork_point(self) -> Optional[int]:
        return self.fork_points[-1] if self.fork_points else None

    def lowest_fork_point_since(self, generation: int) -> Optional[int]:
        """Lowest fork point of the rewinds after the given generation"""
        newer = self.fork_points[generation:]
        return min(newer) if newer else None

    def initialize(self, start_block: int = 0) -> Checkpoint:
        """Create the singleton row if missing and return the checkpoint"""
        db = self.session_factory()
        try:
            state = db.get(SyncState, SYNC_STATE_ID)
            if state is None:
                db.add(SyncState(id=SYNC_STATE_ID, last_block=start_block, last_block_hash=""))
                db.commit()
                self.logger.info("Sync state created", last_block=start_block)
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to initialize sync state: {e}")
        finally:
            db.close()

        return self.get()

    def get(self) -> Checkpoint:
        db = self.session_factory()
        try:
            state = db.get(SyncState, SYNC_STATE_ID)
            if state is None:
                return Checkpoint(last_block=0, last_block_hash="")
            return Checkpoint(last_block=state.last_block, last_block_hash=state.last_block_hash)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read sync state: {e}")
        finally:
            db.close()

    def advance(self, block_number: int, block_hash: str) -> bool:
        """
        Move the checkpoint forward to a committed block.

        The update only applies when block_number is above the stored value,
        so a slower worker can never overwrite a newer checkpoint.

        Returns:
            True if the checkpoint moved
        """
        with self.lock:
            db = self.session_factory()
            try:
                updated = (
                    db.query(SyncState)
                    .filter(SyncState.id == SYNC_STATE_ID, SyncState.last_block < block_number)
                    .update(
                        {"last_block": block_number, "last_block_hash": block_hash},
                        synchronize_session=False,
                    )
                )
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError(f"Failed to advance sync state to {block_number}: {e}")
            finally:
                db.close()

        return updated > 0

    def rewind(self, fork_point: int, fork_hash: str) -> bool:
        """
        Reset the checkpoint to a reorg fork point.

        Compare-and-set: only applies when the stored checkpoint is at or
        above the fork point, so a rewind never moves it forward.

        Returns:
            True if the checkpoint was rewound
        """
        with self.lock:
            db = self.session_factory()
            try:
                updated = (
                    db.query(SyncState)
                    .filter(SyncState.id == SYNC_STATE_ID, SyncState.last_block >= fork_point)
                    .update(
                        {"last_block": fork_point, "last_block_hash": fork_hash},
                        synchronize_session=False,
                    )
                )
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError(f"Failed to rewind sync state to {fork_point}: {e}")
            finally:
                db.close()

            self.fork_points.append(fork_point)

        self.logger.warning(
            "Sync state rewound",
            fork_point=fork_point,
            fork_hash=fork_hash,
            applied=updated > 0,
            generation=self.generation,
        )
        return updated > 0
