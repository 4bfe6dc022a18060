"""Block-processing worker pool for the chain-mirror ingestor."""

import threading
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

import structlog

from ingestor.config import settings
from ingestor.utils.exceptions import ValidationError

from .block_fetcher import BlockFetcher
from .error_handler import ErrorHandler
from .job_queue import BlockJob, JobQueue, Priority
from .reorg_handler import ReorgHandler
from .storage_writer import StorageWriter
from .sync_state import SyncStateStore


@dataclass
class JobResult:
    """Outcome of one processed job"""

    job_id: str
    start_block: int
    end_block: int
    blocks_committed: int
    abandoned: bool = False
    resume_from: Optional[int] = None
    reason: Optional[str] = None


class BlockProcessor:
    """Ingest the blocks of one job, strictly in ascending order."""

    def __init__(
        self,
        fetcher: BlockFetcher,
        reorg_handler: ReorgHandler,
        storage: StorageWriter,
        sync_state: SyncStateStore,
        monitor=None,
    ):
        self.fetcher = fetcher
        self.reorg_handler = reorg_handler
        self.storage = storage
        self.sync_state = sync_state
        self.monitor = monitor
        self.logger = structlog.get_logger()
        self.progress: Dict[str, int] = {}

    def process_job(self, job: BlockJob, abort_event: threading.Event = None) -> JobResult:
        """
        Fetch, reorg-check, persist and checkpoint every block in the job.

        The reorg check, the write and the checkpoint advance of a block run
        together under the sync-state lock. On a reorg found here, or a
        rollback in another worker to a fork point below the current block,
        the rest of the range is abandoned and the live-tail poller re-covers
        it from the rewound checkpoint. Blocks at or below another worker's
        fork point are still ingested.

        Raises:
            ValidationError: If the job payload is malformed
            IndexerError: On fetch or storage failure (the job is retried by the pool)
        """
        job.validate()
        generation = self.sync_state.generation
        committed = 0

        for number in range(job.start_block, job.end_block + 1):
            if abort_event is not None and abort_event.is_set():
                return self._result(job, committed, abandoned=True, reason="shutdown")

            start_time = time.time()
            fetched = self.fetcher.fetch_block(number)

            with self.sync_state.lock:
                if self.sync_state.generation != generation:
                    fork_point = self.sync_state.lowest_fork_point_since(generation)
                    if number > fork_point:
                        return self._result(
                            job,
                            committed,
                            abandoned=True,
                            resume_from=fork_point + 1,
                            reason="rollback in another worker",
                        )
                    # Fork point at or above this block, the rest of the range is still valid
                    generation = self.sync_state.generation

                resolution = self.reorg_handler.resolve(number, fetched.parent_hash)
                if resolution.rolled_back:
                    self.logger.warning(
                        "Reorg detected, abandoning rest of job",
                        job_id=job.job_id,
                        block_number=number,
                        resume_from=resolution.resume_from,
                    )
                    return self._result(
                        job,
                        committed,
                        abandoned=True,
                        resume_from=resolution.resume_from,
                        reason="reorg",
                    )

                self.storage.write_block(fetched)
                self.sync_state.advance(number, fetched.hash)

            committed += 1
            if self.monitor is not None:
                self.monitor.record_block_committed(
                    number,
                    time.time() - start_time,
                    len(fetched.transactions),
                    len(fetched.transfers),
                )
            self._report_progress(job, number)

        return self._result(job, committed)

    def _report_progress(self, job: BlockJob, number: int) -> None:
        percent = round((number - job.start_block + 1) / job.size * 100)
        self.progress[job.job_id] = percent
        self.logger.debug("Job progress", job_id=job.job_id, block_number=number, progress=percent)

    def _result(self, job: BlockJob, committed: int, **kwargs) -> JobResult:
        self.progress.pop(job.job_id, None)
        return JobResult(
            job_id=job.job_id,
            start_block=job.start_block,
            end_block=job.end_block,
            blocks_committed=committed,
            **kwargs,
        )


class WorkerPool:
    """
    Fixed-size pool of threads draining the job queue.

    A job that raises is re-enqueued at its priority until it has used its
    attempts, then it is recorded as failed. Errors never stop a worker.
    """

    def __init__(
        self,
        queue: JobQueue,
        processor: BlockProcessor,
        concurrency: int = None,
        error_handler: ErrorHandler = None,
        monitor=None,
        publisher=None,
        dequeue_timeout: float = None,
    ):
        self.queue = queue
        self.processor = processor
        self.concurrency = concurrency or settings.WORKER_CONCURRENCY
        self.error_handler = error_handler or ErrorHandler()
        self.monitor = monitor
        self.publisher = publisher
        self.dequeue_timeout = dequeue_timeout if dequeue_timeout is not None else settings.JOB_DEQUEUE_TIMEOUT
        self.logger = structlog.get_logger()

        self._threads: List[threading.Thread] = []
        self._stop_event = threading.Event()
        self._abort_event = threading.Event()
        self._in_flight = 0
        self._in_flight_lock = threading.Lock()

    def start(self) -> None:
        self._stop_event.clear()
        self._abort_event.clear()
        for i in range(self.concurrency):
            thread = threading.Thread(target=self._run, name=f"BlockWorker-{i}", daemon=True)
            thread.start()
            self._threads.append(thread)
        self.logger.info("Worker pool started", concurrency=self.concurrency)

    def stop(self, drain_timeout: float = None) -> bool:
        """
        Stop taking new jobs and wait for in-flight jobs.

        Jobs still running when the drain timeout expires are told to stop
        at their next block.

        Returns:
            True if every worker exited within the timeout
        """
        timeout = drain_timeout if drain_timeout is not None else settings.SHUTDOWN_DRAIN_TIMEOUT
        self._stop_event.set()
        deadline = time.time() + timeout

        for thread in self._threads:
            thread.join(max(deadline - time.time(), 0))

        alive = [t.name for t in self._threads if t.is_alive()]
        if alive:
            self.logger.warning("Drain timeout reached, aborting in-flight jobs", workers=alive)
            self._abort_event.set()
            for thread in self._threads:
                thread.join(5)

        self._threads = [t for t in self._threads if t.is_alive()]
        self.logger.info("Worker pool stopped", clean=not alive)
        return not alive

    @property
    def in_flight(self) -> int:
        with self._in_flight_lock:
            return self._in_flight

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                item = self.queue.dequeue(timeout=self.dequeue_timeout)
            except ValidationError as e:
                self.logger.error("Dropping malformed job", error=str(e))
                if self.monitor is not None:
                    self.monitor.record_job_failed("unknown", str(e))
                continue
            except Exception as e:
                self.logger.error("Failed to dequeue job", error=str(e))
                self._stop_event.wait(self.dequeue_timeout)
                continue

            if item is None:
                continue

            job, priority = item
            with self._in_flight_lock:
                self._in_flight += 1
            try:
                self.run_job(job, priority)
            except Exception as e:
                self.logger.error("Worker error while handling job", job_id=job.job_id, error=str(e))
            finally:
                with self._in_flight_lock:
                    self._in_flight -= 1

    def run_job(self, job: BlockJob, priority: Priority) -> Optional[JobResult]:
        """Process one job and apply the retry policy on failure"""
        context = {
            "job_id": job.job_id,
            "kind": job.kind,
            "start_block": job.start_block,
            "end_block": job.end_block,
            "attempt": job.attempts + 1,
        }
        try:
            result = self.processor.process_job(job, abort_event=self._abort_event)
        except Exception as e:
            self._handle_failure(job, priority, e, context)
            return None

        self.logger.info(
            "Job completed",
            job_id=job.job_id,
            start_block=job.start_block,
            end_block=job.end_block,
            blocks_committed=result.blocks_committed,
            abandoned=result.abandoned,
            reason=result.reason,
        )
        if self.monitor is not None:
            self.monitor.record_job_completed(job.job_id, abandoned=result.abandoned)
        if self.publisher is not None and result.blocks_committed:
            self.publisher.publish_data_changed(
                reason="blocks-committed",
                start_block=job.start_block,
                end_block=job.start_block + result.blocks_committed - 1,
            )
        return result

    def _handle_failure(self, job: BlockJob, priority: Priority, error: Exception, context: Dict) -> None:
        retryable = self.error_handler.handle_job_error(error, context)
        attempts = job.attempts + 1

        if retryable and self.error_handler.should_retry(attempts):
            delay = self.error_handler.get_retry_delay(attempts)
            if self._stop_event.wait(delay):
                self.logger.info("Shutting down, requeueing job without delay", job_id=job.job_id)
            self.queue.enqueue(job.next_attempt(), priority)
            return

        self.queue.fail(job, str(error))
        if self.monitor is not None:
            self.monitor.record_job_failed(job.job_id, str(error), context)
        else:
            self.logger.error("Job failed permanently", error=str(error), context=context)
