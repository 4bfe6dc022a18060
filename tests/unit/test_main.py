"""
Unit tests for ingestor/main.py
"""

import threading
from unittest.mock import MagicMock, patch

from sqlalchemy.exc import OperationalError

from ingestor import main as main_module
from ingestor.services.job_queue import InMemoryJobQueue


def test_main_exits_when_storage_unreachable():
    with (
        patch("ingestor.main.setup_logging"),
        patch("ingestor.main.check_connection", side_effect=OperationalError("SELECT 1", {}, Exception("refused"))),
        patch("ingestor.main.ChainClient") as mock_client,
    ):
        assert main_module.main() == 1
        mock_client.assert_not_called()


def test_main_exits_when_chain_unreachable():
    with (
        patch("ingestor.main.setup_logging"),
        patch("ingestor.main.check_connection"),
        patch("ingestor.main.ChainClient") as mock_client,
        patch("ingestor.main.init_db") as mock_init_db,
    ):
        mock_client.return_value.test_connection.return_value = False
        assert main_module.main() == 1
        mock_client.return_value.close.assert_called_once()
        mock_init_db.assert_not_called()


def test_main_manual_backfill_drains_and_shuts_down():
    queue = InMemoryJobQueue()
    with (
        patch("ingestor.main.setup_logging"),
        patch("ingestor.main.check_connection"),
        patch("ingestor.main.ChainClient") as mock_client,
        patch("ingestor.main.init_db"),
        patch("ingestor.main.SyncStateStore") as mock_sync_state,
        patch("ingestor.main.create_job_queue", return_value=queue),
        patch("ingestor.main.InvalidationPublisher") as mock_publisher,
        patch("ingestor.main.BlockFetcher") as mock_fetcher,
        patch("ingestor.main.WorkerPool") as mock_pool,
        patch("ingestor.main.BackfillScheduler") as mock_scheduler,
        patch("ingestor.main.LiveTailPoller") as mock_poller,
        patch("ingestor.main.engine") as mock_engine,
        patch("ingestor.main.wait_for_drain") as mock_drain,
    ):
        mock_client.return_value.test_connection.return_value = True
        mock_sync_state.return_value.initialize.return_value = MagicMock(last_block=0)

        result = main_module.main(backfill_range=(5, 9), live_tail=False, shutdown=threading.Event())

        assert result == 0
        mock_scheduler.return_value.enqueue_range.assert_called_once_with(5, 9, kind="manual")
        mock_scheduler.return_value.schedule_backfill.assert_not_called()
        mock_poller.assert_not_called()
        mock_drain.assert_called_once()
        mock_pool.return_value.start.assert_called_once()
        mock_pool.return_value.stop.assert_called_once()
        mock_fetcher.return_value.close.assert_called_once()
        mock_client.return_value.close.assert_called_once()
        mock_publisher.return_value.close.assert_called_once()
        mock_engine.dispose.assert_called_once()


def test_main_live_tail_runs_until_shutdown():
    shutdown = threading.Event()
    shutdown.set()
    with (
        patch("ingestor.main.setup_logging"),
        patch("ingestor.main.check_connection"),
        patch("ingestor.main.ChainClient") as mock_client,
        patch("ingestor.main.init_db"),
        patch("ingestor.main.SyncStateStore"),
        patch("ingestor.main.create_job_queue", return_value=InMemoryJobQueue()),
        patch("ingestor.main.InvalidationPublisher"),
        patch("ingestor.main.BlockFetcher"),
        patch("ingestor.main.WorkerPool"),
        patch("ingestor.main.BackfillScheduler") as mock_scheduler,
        patch("ingestor.main.LiveTailPoller") as mock_poller,
        patch("ingestor.main.engine"),
    ):
        mock_client.return_value.test_connection.return_value = True
        mock_scheduler.return_value.scheduled_head = 120

        assert main_module.main(shutdown=shutdown) == 0

        mock_scheduler.return_value.schedule_backfill.assert_called_once()
        assert mock_poller.call_args.kwargs["high_water"] == 120
        mock_poller.return_value.start.assert_called_once()
        mock_poller.return_value.stop.assert_called_once()


def test_wait_for_drain_returns_when_idle():
    pool = MagicMock(in_flight=0)
    main_module.wait_for_drain(InMemoryJobQueue(), pool, threading.Event(), poll_interval=0.01)
