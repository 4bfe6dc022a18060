"""
Priority job queue shared by the backfill scheduler, live-tail poller and workers.

Lower priority values are served first; jobs of equal priority come out in
submission order.
"""

import heapq
import itertools
import json
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field, replace
from enum import IntEnum
from typing import Any, Dict, List, Optional, Tuple

import redis
import structlog

from ingestor.config import settings
from ingestor.utils.exceptions import ValidationError

logger = structlog.get_logger()

# Sequence numbers stay below this, so priority dominates the redis score
PRIORITY_SCORE_FACTOR = 10**12


class Priority(IntEnum):
    LIVE_TAIL = 1
    BACKFILL = 10


@dataclass
class BlockJob:
    """An inclusive block range for one worker to ingest"""

    start_block: int
    end_block: int
    kind: str = "backfill"
    attempts: int = 0
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def validate(self) -> "BlockJob":
        for name in ("start_block", "end_block", "attempts"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValidationError(f"Job {self.job_id}: {name} must be an integer, got {value!r}")
        if self.start_block < 0:
            raise ValidationError(f"Job {self.job_id}: start_block must be >= 0")
        if self.start_block > self.end_block:
            raise ValidationError(
                f"Job {self.job_id}: start_block {self.start_block} > end_block {self.end_block}"
            )
        return self

    def next_attempt(self) -> "BlockJob":
        return replace(self, attempts=self.attempts + 1)

    @property
    def size(self) -> int:
        return self.end_block - self.start_block + 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BlockJob":
        """Build a job from a queue payload; malformed payloads raise ValidationError"""
        if not isinstance(data, dict):
            raise ValidationError(f"Job payload must be an object, got {type(data).__name__}")
        try:
            return cls(
                start_block=data["start_block"],
                end_block=data["end_block"],
                kind=data.get("kind", "backfill"),
                attempts=data.get("attempts", 0),
                job_id=data.get("job_id") or uuid.uuid4().hex,
            )
        except KeyError as e:
            raise ValidationError(f"Job payload missing field {e}")


class JobQueue(ABC):
    """enqueue(job, priority) / dequeue() returning the highest-priority job"""

    @abstractmethod
    def enqueue(self, job: BlockJob, priority: Priority) -> str:
        pass

    @abstractmethod
    def dequeue(self, timeout: float = None) -> Optional[Tuple[BlockJob, Priority]]:
        """Block up to timeout seconds; None when nothing is queued"""
        pass

    @abstractmethod
    def fail(self, job: BlockJob, error: str) -> None:
        pass

    @abstractmethod
    def size(self) -> int:
        pass

    @abstractmethod
    def failed_count(self) -> int:
        pass

    def close(self) -> None:
        pass


class InMemoryJobQueue(JobQueue):
    """Process-local priority queue"""

    def __init__(self):
        self._heap: List[Tuple[int, int, BlockJob]] = []
        self._seq = itertools.count()
        self._cond = threading.Condition()
        self.failed: List[Tuple[BlockJob, str]] = []

    def enqueue(self, job: BlockJob, priority: Priority) -> str:
        with self._cond:
            heapq.heappush(self._heap, (int(priority), next(self._seq), job))
            self._cond.notify()
        return job.job_id

    def dequeue(self, timeout: float = None) -> Optional[Tuple[BlockJob, Priority]]:
        with self._cond:
            if not self._heap:
                self._cond.wait(timeout)
            if not self._heap:
                return None
            priority, _, job = heapq.heappop(self._heap)
            return job, Priority(priority)

    def fail(self, job: BlockJob, error: str) -> None:
        with self._cond:
            self.failed.append((job, error))

    def size(self) -> int:
        with self._cond:
            return len(self._heap)

    def failed_count(self) -> int:
        with self._cond:
            return len(self.failed)


class RedisJobQueue(JobQueue):
    """
    Durable priority queue on a redis sorted set.

    Scores combine priority with a sequence number from INCR so ties are
    served in submission order. BZPOPMIN hands each job to exactly one worker.
    Failed jobs are appended to a list for operators.
    """

    def __init__(self, redis_client: redis.Redis = None, name: str = None):
        self.redis_client = redis_client or redis.Redis.from_url(
            settings.REDIS_URL, decode_responses=True
        )
        self.name = name or settings.QUEUE_NAME
        self.jobs_key = f"{self.name}:jobs"
        self.seq_key = f"{self.name}:seq"
        self.failed_key = f"{self.name}:failed"

    def enqueue(self, job: BlockJob, priority: Priority) -> str:
        seq = self.redis_client.incr(self.seq_key)
        score = int(priority) * PRIORITY_SCORE_FACTOR + seq
        self.redis_client.zadd(self.jobs_key, {json.dumps(job.to_dict()): score})
        return job.job_id

    def dequeue(self, timeout: float = None) -> Optional[Tuple[BlockJob, Priority]]:
        popped = self.redis_client.bzpopmin(self.jobs_key, timeout=timeout or 0)
        if not popped:
            return None

        _, member, score = popped
        priority = Priority(int(score) // PRIORITY_SCORE_FACTOR)
        try:
            return BlockJob.from_dict(json.loads(member)), priority
        except (ValueError, ValidationError) as e:
            error = f"Malformed job payload {member!r}: {e}"
            # Already removed by BZPOPMIN
            self.redis_client.rpush(self.failed_key, json.dumps({"payload": member, "error": error}))
            raise ValidationError(error)

    def fail(self, job: BlockJob, error: str) -> None:
        entry = {**job.to_dict(), "error": error}
        self.redis_client.rpush(self.failed_key, json.dumps(entry))

    def size(self) -> int:
        return self.redis_client.zcard(self.jobs_key)

    def failed_count(self) -> int:
        return self.redis_client.llen(self.failed_key)

    def close(self) -> None:
        self.redis_client.close()


def create_job_queue(backend: str = None) -> JobQueue:
    backend = (backend or settings.QUEUE_BACKEND).lower()
    if backend == "memory":
        return InMemoryJobQueue()
    if backend == "redis":
        return RedisJobQueue()
    raise ValueError(f"Unknown queue backend: {backend}")
