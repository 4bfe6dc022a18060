"""
Monitoring and observability service for the chain-mirror ingestor.

Collects in-process counters for committed blocks, job outcomes and reorgs,
and derives a health status operators can log or poll.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import structlog

from ingestor.config import settings


@dataclass
class HealthStatus:
    """Current health status of the ingestor"""

    is_healthy: bool
    last_block_time: Optional[datetime]
    last_block_number: Optional[int]
    failed_jobs: int
    depth_exceeded_alerts: int
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class IngestMetrics:
    """Performance and correctness counters"""

    blocks_committed: int
    blocks_per_second: float
    avg_block_processing_time: float
    transactions_committed: int
    transfers_committed: int
    jobs_completed: int
    jobs_abandoned: int
    jobs_failed: int
    reorgs: int
    depth_exceeded_alerts: int
    uptime_seconds: float


class IngestMonitor:
    """
    Monitor ingestion health and throughput.

    All record_* methods are safe to call from worker threads.
    """

    def __init__(self, log_interval: int = None):
        self.log_interval = log_interval or settings.METRICS_LOG_INTERVAL
        self.logger = structlog.get_logger()
        self._lock = threading.Lock()

        self._start_time = time.time()
        self._block_processing_times = deque(maxlen=1000)
        self._blocks_committed = 0
        self._transactions_committed = 0
        self._transfers_committed = 0
        self._jobs_completed = 0
        self._jobs_abandoned = 0
        self._jobs_failed = 0
        self._consecutive_failures = 0
        self._reorgs = 0
        self._depth_exceeded_alerts = 0

        self._last_block_time: Optional[datetime] = None
        self._last_block_number: Optional[int] = None
        self._errors = deque(maxlen=100)

    def record_block_committed(
        self,
        number: int,
        processing_time: float,
        tx_count: int,
        transfer_count: int,
    ) -> None:
        with self._lock:
            self._block_processing_times.append(processing_time)
            self._blocks_committed += 1
            self._transactions_committed += tx_count
            self._transfers_committed += transfer_count
            self._last_block_time = datetime.now(timezone.utc)
            self._last_block_number = number
            should_log = self._blocks_committed % self.log_interval == 0

        if should_log:
            metrics = self.get_metrics()
            self.logger.info(
                "Ingestion metrics",
                block_number=number,
                blocks_committed=metrics.blocks_committed,
                blocks_per_second=metrics.blocks_per_second,
                avg_processing_time=metrics.avg_block_processing_time,
                jobs_failed=metrics.jobs_failed,
                reorgs=metrics.reorgs,
            )

    def record_job_completed(self, job_id: str, abandoned: bool = False) -> None:
        with self._lock:
            if abandoned:
                self._jobs_abandoned += 1
            else:
                self._jobs_completed += 1
            self._consecutive_failures = 0

    def record_job_failed(self, job_id: str, error: str, context: Dict[str, Any] = None) -> None:
        with self._lock:
            self._jobs_failed += 1
            self._consecutive_failures += 1
            self._errors.append(
                {
                    "timestamp": datetime.now(timezone.utc),
                    "job_id": job_id,
                    "error": error,
                    "context": context or {},
                }
            )

        self.logger.error("Job failed permanently", job_id=job_id, error=error, context=context)

    def record_reorg(self, block_number: int, fork_point: int, depth: int, alert=None) -> None:
        with self._lock:
            self._reorgs += 1
            if alert is not None:
                self._depth_exceeded_alerts += 1

        if alert is not None:
            self.logger.critical(
                "Reorg depth exceeded alert",
                alert=True,
                block_number=block_number,
                fork_point=fork_point,
                depth=depth,
            )

    def get_metrics(self) -> IngestMetrics:
        with self._lock:
            uptime = time.time() - self._start_time
            times = list(self._block_processing_times)
            return IngestMetrics(
                blocks_committed=self._blocks_committed,
                blocks_per_second=self._blocks_committed / uptime if uptime > 0 else 0.0,
                avg_block_processing_time=sum(times) / len(times) if times else 0.0,
                transactions_committed=self._transactions_committed,
                transfers_committed=self._transfers_committed,
                jobs_completed=self._jobs_completed,
                jobs_abandoned=self._jobs_abandoned,
                jobs_failed=self._jobs_failed,
                reorgs=self._reorgs,
                depth_exceeded_alerts=self._depth_exceeded_alerts,
                uptime_seconds=uptime,
            )

    def get_health_status(self) -> HealthStatus:
        """
        Get current health status.

        Returns:
            HealthStatus with current system health
        """
        with self._lock:
            warnings = []
            errors = []
            is_healthy = True

            if self._last_block_time:
                since_last_block = datetime.now(timezone.utc) - self._last_block_time
                if since_last_block > timedelta(minutes=10):
                    is_healthy = False
                    errors.append(f"No blocks committed in {since_last_block}")
                elif since_last_block > timedelta(minutes=5):
                    warnings.append(f"No blocks committed in {since_last_block}")

            if self._depth_exceeded_alerts:
                is_healthy = False
                errors.append(f"Reorg depth exceeded {self._depth_exceeded_alerts} time(s)")

            if self._consecutive_failures > 10:
                is_healthy = False
                errors.append(f"Too many consecutive job failures: {self._consecutive_failures}")
            elif self._jobs_failed:
                warnings.append(f"{self._jobs_failed} job(s) failed")

            return HealthStatus(
                is_healthy=is_healthy,
                last_block_time=self._last_block_time,
                last_block_number=self._last_block_number,
                failed_jobs=self._jobs_failed,
                depth_exceeded_alerts=self._depth_exceeded_alerts,
                warnings=warnings,
                errors=errors,
            )
