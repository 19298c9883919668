"""In-memory keyed delay queue (single-process development / tests).

Features:
- Per-job delay (scheduled execution time).
- Duplicate suppression: a job key stays *outstanding* from enqueue until the
  consumer calls ``complete`` or the job fails terminally; enqueueing an
  outstanding key is a no-op.
- Failed deliveries are re-scheduled with exponential backoff until
  ``max_attempts`` deliveries have happened, then dropped.
- Capacity limit via QUEUE_SETTINGS; thread-safe with a condition variable.
- Injectable clock so tests can move time forward.

Structures:
 1. ready: FIFO deque of items whose ready_at has passed
 2. scheduled_heap: (ready_at_ts, seq, item)

Nothing here survives a restart; use RedisDelayQueue when durability matters.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional
import threading
import time
import heapq

from recovery.config import QUEUE_SETTINGS
from recovery.errors import SchedulingUnavailable
from recovery.jobs.verification_job import VerificationJob
from recovery.utils import get_logger
from recovery.utils.backoff import compute_backoff_seconds

logger = get_logger(__name__)


@dataclass(slots=True)
class QueueItem:
    job: VerificationJob
    enqueued_at: float
    ready_at: float
    seq: int


class DelayQueue:
    def __init__(self, *, clock: Callable[[], float] = time.time, max_attempts: int | None = None) -> None:
        self._clock = clock
        self._warn_depth = int(QUEUE_SETTINGS.get("warn_depth", 1000))
        self._max_in_memory = int(QUEUE_SETTINGS.get("max_in_memory", 5000))
        self._max_attempts = int(max_attempts if max_attempts is not None else QUEUE_SETTINGS.get("max_attempts", 5))
        self._lock = threading.RLock()
        self._cv = threading.Condition(self._lock)
        self._ready: deque[QueueItem] = deque()
        self._scheduled_heap: list[tuple[float, int, QueueItem]] = []
        self._outstanding: dict[str, QueueItem] = {}
        self._in_flight: set[str] = set()
        self._seq_counter = 0
        self._shutdown = False

    # ----------------------------- internal helpers ----------------------------- #
    def _next_seq(self) -> int:
        self._seq_counter += 1
        return self._seq_counter

    def _promote_scheduled(self) -> None:
        now_ts = self._clock()
        while self._scheduled_heap and self._scheduled_heap[0][0] <= now_ts:
            _, _, item = heapq.heappop(self._scheduled_heap)
            self._ready.append(item)

    def _schedule(self, item: QueueItem) -> None:
        if item.ready_at <= self._clock():
            self._ready.append(item)
        else:
            heapq.heappush(self._scheduled_heap, (item.ready_at, item.seq, item))
        self._cv.notify()

    def _await_next_ready(self, timeout: Optional[float]) -> None:
        if not self._scheduled_heap:
            self._cv.wait(timeout=timeout)
            return
        wait_time = max(0.0, self._scheduled_heap[0][0] - self._clock())
        if timeout is not None:
            wait_time = min(wait_time, timeout)
        if wait_time > 0:
            self._cv.wait(timeout=wait_time)

    # ----------------------------- public API ----------------------------- #
    def enqueue(self, job: VerificationJob, *, delay_seconds: float = 0.0) -> QueueItem | None:
        """Schedule ``job``; returns None when its key is already outstanding."""
        with self._lock:
            if self._shutdown:
                raise SchedulingUnavailable("Queue shutdown")
            key = job.key()
            if key in self._outstanding:
                logger.info("Duplicate verification job suppressed", transaction_id=key)
                return None
            if len(self._outstanding) >= self._max_in_memory:
                raise SchedulingUnavailable("Queue capacity exceeded")
            now_ts = self._clock()
            job.enqueued_at = now_ts
            job.ready_at = now_ts + max(0.0, delay_seconds)
            item = QueueItem(
                job=job,
                enqueued_at=now_ts,
                ready_at=job.ready_at,
                seq=self._next_seq(),
            )
            self._outstanding[key] = item
            self._schedule(item)
            if self.depth() >= self._warn_depth:
                logger.warning("Queue depth warning", depth=self.depth())
            return item

    def dequeue(self, *, block: bool = True, timeout: Optional[float] = None) -> VerificationJob | None:
        """Pop next ready job. Returns None if non-blocking and empty or timeout occurs."""
        end_time = None if timeout is None else time.monotonic() + timeout
        with self._lock:
            while True:
                if self._shutdown and not self._ready:
                    return None
                self._promote_scheduled()
                if self._ready:
                    item = self._ready.popleft()
                    item.job.attempts += 1
                    self._in_flight.add(item.job.key())
                    return item.job
                if not block:
                    return None
                remaining = None if end_time is None else max(0.0, end_time - time.monotonic())
                if remaining == 0:
                    return None
                self._await_next_ready(remaining)

    def complete(self, job: VerificationJob) -> None:
        """Remove a finished job; its key may be enqueued again afterwards."""
        with self._lock:
            self._in_flight.discard(job.key())
            self._outstanding.pop(job.key(), None)

    def fail(self, job: VerificationJob, error: str) -> bool:
        """Record a failed delivery. Returns True if the job was re-scheduled."""
        with self._lock:
            key = job.key()
            self._in_flight.discard(key)
            job.last_error = error
            if job.attempts >= self._max_attempts or key not in self._outstanding:
                self._outstanding.pop(key, None)
                return False
            delay = compute_backoff_seconds(job.attempts)
            now_ts = self._clock()
            job.ready_at = now_ts + delay
            item = QueueItem(job=job, enqueued_at=now_ts, ready_at=job.ready_at, seq=self._next_seq())
            self._outstanding[key] = item
            self._schedule(item)
            return True

    def is_outstanding(self, key: str) -> bool:
        with self._lock:
            return key in self._outstanding

    def shutdown(self) -> None:
        with self._lock:
            self._shutdown = True
            self._cv.notify_all()

    # ----------------------------- test utilities ----------------------------- #
    def purge(self) -> None:
        """Drop every queued, scheduled and in-flight job (test isolation)."""
        with self._lock:
            self._ready.clear()
            self._scheduled_heap.clear()
            self._outstanding.clear()
            self._in_flight.clear()
            self._cv.notify_all()

    # ----------------------------- inspection ----------------------------- #
    def depth(self) -> int:
        return len(self._ready) + len(self._scheduled_heap)

    def __len__(self) -> int:  # pragma: no cover
        return self.depth()

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "backend": "memory",
                "depth": self.depth(),
                "ready": len(self._ready),
                "scheduled": len(self._scheduled_heap),
                "active": len(self._in_flight),
                "shutdown": self._shutdown,
            }


__all__ = ["DelayQueue", "QueueItem"]
