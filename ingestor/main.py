"""
Main entry point for the chain-mirror ingestor.
"""

import signal
import threading
from typing import Optional, Tuple

import structlog
from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .database.connection import SessionLocal, check_connection, engine, init_db
from .services.backfill import BackfillScheduler
from .services.block_fetcher import BlockFetcher
from .services.cache_service import InvalidationPublisher
from .services.chain_client import ChainClient
from .services.job_queue import create_job_queue
from .services.live_tail import LiveTailPoller
from .services.monitoring import IngestMonitor
from .services.reorg_handler import ReorgHandler
from .services.storage_writer import StorageWriter
from .services.sync_state import SyncStateStore
from .services.worker_pool import BlockProcessor, WorkerPool
from .utils.logging import setup_logging

HEALTH_LOG_INTERVAL = 60.0


def install_signal_handlers(shutdown: threading.Event) -> None:
    def _handler(signum, frame):
        structlog.get_logger().info("Shutdown signal received", signal=signal.Signals(signum).name)
        shutdown.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def wait_for_drain(queue, pool: WorkerPool, shutdown: threading.Event, poll_interval: float = 1.0) -> None:
    """Block until the queue is empty and no job is running, or shutdown is requested"""
    while not shutdown.wait(poll_interval):
        if queue.size() == 0 and pool.in_flight == 0:
            return


def main(
    debug: bool = False,
    concurrency: Optional[int] = None,
    backfill: bool = True,
    live_tail: bool = True,
    backfill_range: Optional[Tuple[int, int]] = None,
    shutdown: Optional[threading.Event] = None,
) -> int:
    """
    Run the ingestor until a shutdown signal arrives.

    Args:
        debug: Log at DEBUG level
        concurrency: Worker threads (default from settings)
        backfill: Schedule catch-up from the checkpoint to the head at startup
        live_tail: Poll for new blocks after startup
        backfill_range: Explicit (start, end) range to enqueue instead of the catch-up
        shutdown: Event that stops the run; signal handlers are installed when omitted

    Returns:
        Process exit code
    """
    setup_logging("DEBUG" if debug else settings.LOG_LEVEL)
    logger = structlog.get_logger()
    logger.info(
        "Starting chain-mirror ingestor",
        chain_id=settings.CHAIN_ID,
        rpc_url=settings.CHAIN_RPC_URL,
        queue_backend=settings.QUEUE_BACKEND,
        concurrency=concurrency or settings.WORKER_CONCURRENCY,
    )

    try:
        check_connection()
    except SQLAlchemyError as e:
        logger.error("Storage is unreachable", error=str(e))
        return 1

    chain_client = ChainClient()
    if not chain_client.test_connection():
        logger.error("Chain node is unreachable", rpc_url=chain_client.rpc_url)
        chain_client.close()
        return 1

    init_db()
    sync_state = SyncStateStore(SessionLocal)
    checkpoint = sync_state.initialize(settings.START_BLOCK)
    logger.info("Resuming from checkpoint", last_block=checkpoint.last_block)

    queue = create_job_queue()
    publisher = InvalidationPublisher()
    monitor = IngestMonitor()
    fetcher = BlockFetcher(chain_client)
    storage = StorageWriter(SessionLocal)
    reorg_handler = ReorgHandler(storage, sync_state, fetcher, monitor=monitor, publisher=publisher)
    processor = BlockProcessor(fetcher, reorg_handler, storage, sync_state, monitor=monitor)
    pool = WorkerPool(queue, processor, concurrency=concurrency, monitor=monitor, publisher=publisher)
    scheduler = BackfillScheduler(chain_client, sync_state, queue)
    poller = None

    if shutdown is None:
        shutdown = threading.Event()
        install_signal_handlers(shutdown)

    try:
        pool.start()

        if backfill_range is not None:
            start_block, end_block = backfill_range
            chunks = scheduler.enqueue_range(start_block, end_block, kind="manual")
            logger.info("Manual backfill enqueued", start_block=start_block, end_block=end_block, chunks=chunks)
        elif backfill:
            scheduler.schedule_backfill()

        if live_tail:
            poller = LiveTailPoller(chain_client, sync_state, queue, high_water=scheduler.scheduled_head)
            poller.start()
            while not shutdown.wait(HEALTH_LOG_INTERVAL):
                health = monitor.get_health_status()
                logger.info(
                    "Ingestor health",
                    healthy=health.is_healthy,
                    last_block=health.last_block_number,
                    queued_jobs=queue.size(),
                    failed_jobs=health.failed_jobs,
                    warnings=health.warnings,
                    errors=health.errors,
                )
        else:
            wait_for_drain(queue, pool, shutdown)

    except Exception as e:
        logger.error("Unhandled exception", error=str(e))
        raise

    finally:
        logger.info("Shutting down")
        if poller is not None:
            poller.stop()
        pool.stop()
        fetcher.close()
        chain_client.close()
        queue.close()
        publisher.close()
        engine.dispose()

        metrics = monitor.get_metrics()
        logger.info(
            "Ingestor stopped",
            blocks_committed=metrics.blocks_committed,
            jobs_completed=metrics.jobs_completed,
            jobs_failed=metrics.jobs_failed,
            reorgs=metrics.reorgs,
        )

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
