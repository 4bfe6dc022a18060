"""
Tests for the ingest monitor counters and health status.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from ingestor.services.monitoring import IngestMonitor
from ingestor.utils.exceptions import ReorgDepthExceeded


@pytest.fixture
def monitor():
    return IngestMonitor(log_interval=2)


# --- record_block_committed ---
def test_record_block_committed(monitor):
    monitor.record_block_committed(100, 0.5, 10, 3)
    metrics = monitor.get_metrics()

    assert metrics.blocks_committed == 1
    assert metrics.transactions_committed == 10
    assert metrics.transfers_committed == 3
    assert metrics.avg_block_processing_time == 0.5
    assert monitor.get_health_status().last_block_number == 100


def test_metrics_logged_every_interval(monitor):
    with patch.object(monitor.logger, "info") as mock_info:
        monitor.record_block_committed(1, 0.1, 0, 0)
        mock_info.assert_not_called()
        monitor.record_block_committed(2, 0.1, 0, 0)
        mock_info.assert_called_once()
        assert mock_info.call_args[0][0] == "Ingestion metrics"


# --- jobs ---
def test_job_outcomes(monitor):
    monitor.record_job_completed("a")
    monitor.record_job_completed("b", abandoned=True)
    with patch.object(monitor.logger, "error") as mock_error:
        monitor.record_job_failed("c", "rpc down", {"start_block": 1})
        mock_error.assert_called_once()

    metrics = monitor.get_metrics()
    assert metrics.jobs_completed == 1
    assert metrics.jobs_abandoned == 1
    assert metrics.jobs_failed == 1
    assert "1 job(s) failed" in monitor.get_health_status().warnings


def test_consecutive_failures_make_unhealthy(monitor):
    with patch.object(monitor.logger, "error"):
        for i in range(11):
            monitor.record_job_failed(str(i), "boom")

    health = monitor.get_health_status()
    assert health.is_healthy is False
    assert any("consecutive" in e for e in health.errors)


# --- reorgs ---
def test_record_reorg_without_alert(monitor):
    with patch.object(monitor.logger, "critical") as mock_critical:
        monitor.record_reorg(50, 48, 2)
        mock_critical.assert_not_called()

    assert monitor.get_metrics().reorgs == 1
    assert monitor.get_health_status().is_healthy is True


def test_record_reorg_depth_exceeded_alerts(monitor):
    alert = ReorgDepthExceeded(100, 20, 79)
    with patch.object(monitor.logger, "critical") as mock_critical:
        monitor.record_reorg(100, 79, 20, alert)
        mock_critical.assert_called_once()

    health = monitor.get_health_status()
    assert health.depth_exceeded_alerts == 1
    assert health.is_healthy is False


def test_stale_ingestion_is_unhealthy(monitor):
    monitor.record_block_committed(1, 0.1, 0, 0)
    monitor._last_block_time = datetime.now(timezone.utc) - timedelta(minutes=11)

    health = monitor.get_health_status()
    assert health.is_healthy is False
    assert health.errors
