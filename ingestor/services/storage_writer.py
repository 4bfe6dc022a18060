"""
Storage writer: idempotent persistence of fetched blocks and reorg deletes.
"""

from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ingestor.models import Block, TokenTransfer, Transaction
from ingestor.utils.exceptions import StorageError

from .block_fetcher import FetchedBlock


class StorageWriter:
    """Write blocks, transactions and transfers; delete above a fork point"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory
        self.logger = structlog.get_logger()

    def write_block(self, fetched: FetchedBlock) -> None:
        """
        Upsert a block with its transactions and transfers in one transaction.

        Re-writing the same block is a no-op on row counts. If a different
        block is stored at the same number, its transactions and transfers
        are removed first so only the new block's rows remain.

        Raises:
            StorageError: If the write fails
        """
        db = self.session_factory()
        try:
            existing = db.get(Block, fetched.number)
            if existing is not None and existing.hash != fetched.hash:
                self.logger.warning(
                    "Replacing block with different hash",
                    number=fetched.number,
                    old_hash=existing.hash,
                    new_hash=fetched.hash,
                )
                self._delete_children(db, fetched.number)

            db.merge(fetched.block)
            db.flush()
            for tx in fetched.transactions:
                db.merge(tx)
            db.flush()
            for transfer in fetched.transfers:
                db.merge(transfer)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to write block {fetched.number}: {e}")
        finally:
            db.close()

    def _delete_children(self, db, block_number: int) -> None:
        db.query(TokenTransfer).filter(TokenTransfer.block_number == block_number).delete(
            synchronize_session=False
        )
        db.query(Transaction).filter(Transaction.block_number == block_number).delete(
            synchronize_session=False
        )

    def get_block_hash(self, block_number: int) -> Optional[str]:
        db = self.session_factory()
        try:
            row = db.query(Block.hash).filter(Block.number == block_number).first()
            return row[0] if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read block hash at {block_number}: {e}")
        finally:
            db.close()

    def delete_blocks_above(self, block_number: int) -> int:
        """
        Delete all blocks above block_number with their transactions and transfers.

        Children are deleted explicitly as well as through the foreign key
        cascade, so backends without enforced foreign keys stay consistent.

        Returns:
            Number of deleted blocks
        """
        db = self.session_factory()
        try:
            deleted_transfers = (
                db.query(TokenTransfer)
                .filter(TokenTransfer.block_number > block_number)
                .delete(synchronize_session=False)
            )
            deleted_transactions = (
                db.query(Transaction)
                .filter(Transaction.block_number > block_number)
                .delete(synchronize_session=False)
            )
            deleted_blocks = (
                db.query(Block).filter(Block.number > block_number).delete(synchronize_session=False)
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to delete blocks above {block_number}: {e}")
        finally:
            db.close()

        self.logger.info(
            "Deleted blocks above fork point",
            fork_point=block_number,
            deleted_blocks=deleted_blocks,
            deleted_transactions=deleted_transactions,
            deleted_transfers=deleted_transfers,
        )
        return deleted_blocks
