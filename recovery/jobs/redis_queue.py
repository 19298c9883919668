"""Redis-backed keyed delay queue (durable, multi-process).

Producers (webhook handlers) and the consumer (reconciliation worker) share
nothing but Redis, so scheduled jobs survive restarts of either side.

Data structures in Redis (prefix = QUEUE_SETTINGS["name"], "recovery-queue"):
 1. String  {prefix}:job:{id}  - serialized job; written with SET NX, which is
    the duplicate-suppression gate for a transaction id.
 2. Sorted Set {prefix}:delayed - members=job ids, score=ready_at_ts
 3. List {prefix}:wait   - job ids ready to run
 4. List {prefix}:active - job ids handed to a consumer and not yet finished

On enqueue:
  - SET NX the job body; if the key exists the call is a silent duplicate.
  - ZADD into delayed (or LPUSH into wait when there is no delay).
On dequeue:
  - Promote due ids from delayed to wait; ZREM's return value decides which
    consumer promotes, so an id is never pushed twice.
  - RPOPLPUSH wait -> active, then load the job body.
On complete / terminal failure:
  - Delete the body and drop the id from active (no retained history).
On retryable failure:
  - Re-score the id into delayed after a backoff.

A consumer that dies between dequeue and complete leaves the id in active;
``recover_stalled`` puts such ids back on wait (at-least-once delivery). The
body carries its own ready_at, so an id that reaches wait ahead of the body's
schedule goes back on delayed instead of running early.

No process-local lock is held around Redis calls; every structure relies on
Redis' own per-command atomicity.
"""
from __future__ import annotations

import json
import time
from typing import Any, Callable, Optional

import redis

from recovery.config import QUEUE_SETTINGS
from recovery.errors import SchedulingUnavailable
from recovery.jobs.queue import QueueItem
from recovery.jobs.verification_job import VerificationJob
from recovery.utils import get_logger
from recovery.utils.backoff import compute_backoff_seconds

logger = get_logger(__name__)

# Body outlives its schedule by this much, so an abandoned job cannot block its
# transaction id forever.
JOB_RETENTION_SECONDS = 24 * 3600


class RedisDelayQueue:
    def __init__(
        self,
        client: redis.Redis,
        *,
        name: str | None = None,
        clock: Callable[[], float] = time.time,
        max_attempts: int | None = None,
    ) -> None:
        self._client = client
        self._name = str(name or QUEUE_SETTINGS.get("name", "recovery-queue"))
        self._clock = clock
        self._delayed_key = f"{self._name}:delayed"
        self._wait_key = f"{self._name}:wait"
        self._active_key = f"{self._name}:active"
        self._warn_depth = int(QUEUE_SETTINGS.get("warn_depth", 1000))
        self._max_attempts = int(max_attempts if max_attempts is not None else QUEUE_SETTINGS.get("max_attempts", 5))
        self._shutdown = False

    @property
    def name(self) -> str:
        return self._name

    def job_key(self, job_id: str) -> str:
        return f"{self._name}:job:{job_id}"

    def health_check(self) -> bool:
        try:
            self._client.ping()
            return True
        except redis.RedisError as e:
            logger.warning("Redis queue health check failed", error=str(e))
            return False

    # ----------------------------- serialization ----------------------------- #
    def _serialize_job(self, job: VerificationJob) -> str:
        return json.dumps(job.to_payload(), default=str)

    def _deserialize_job(self, serialized_job: str) -> VerificationJob:
        return VerificationJob.from_payload(json.loads(serialized_job))

    def _ttl_for(self, delay_seconds: float) -> int:
        return int(max(0.0, delay_seconds)) + JOB_RETENTION_SECONDS

    # ----------------------------- producer side ----------------------------- #
    def enqueue(self, job: VerificationJob, *, delay_seconds: float = 0.0) -> QueueItem | None:
        """Persist and schedule ``job``; returns None for an outstanding duplicate."""
        if self._shutdown:
            raise SchedulingUnavailable("Queue shutdown")
        now_ts = self._clock()
        job.enqueued_at = now_ts
        ready_at_ts = now_ts + max(0.0, delay_seconds)
        job.ready_at = ready_at_ts
        job_id = job.key()
        body_key = self.job_key(job_id)

        try:
            created = self._client.set(body_key, self._serialize_job(job), nx=True, ex=self._ttl_for(delay_seconds))
        except redis.RedisError as e:
            logger.error("Redis error during enqueue", transaction_id=job_id, error=str(e))
            raise SchedulingUnavailable(f"Job queue unavailable: {e}") from e

        if not created:
            logger.info("Duplicate verification job suppressed", transaction_id=job_id, queue=self._name)
            return None

        try:
            if ready_at_ts <= now_ts:
                self._client.lpush(self._wait_key, job_id)
            else:
                self._client.zadd(self._delayed_key, {job_id: ready_at_ts})
        except redis.RedisError as e:
            logger.error("Redis error scheduling job; releasing its key", transaction_id=job_id, error=str(e))
            try:
                self._client.delete(body_key)
            except redis.RedisError as cleanup_error:
                logger.error("Could not release job key", transaction_id=job_id, error=str(cleanup_error))
            raise SchedulingUnavailable(f"Job queue unavailable: {e}") from e

        depth = self.depth()
        if depth >= self._warn_depth:
            logger.warning("Queue depth warning", depth=depth)
        return QueueItem(job=job, enqueued_at=now_ts, ready_at=ready_at_ts, seq=int(now_ts * 1000))

    def is_outstanding(self, key: str) -> bool:
        return bool(self._client.exists(self.job_key(key)))

    # ----------------------------- consumer side ----------------------------- #
    def _promote_scheduled(self) -> int:
        now_ts = self._clock()
        due = self._client.zrangebyscore(self._delayed_key, 0, now_ts) or []
        promoted = 0
        for job_id in due:
            if self._client.zrem(self._delayed_key, job_id):
                self._client.lpush(self._wait_key, job_id)
                promoted += 1
        if promoted:
            logger.debug("Promoted scheduled jobs to wait list", count=promoted)
        return promoted

    def _claim(self, block: bool) -> Optional[str]:
        if not block:
            return self._client.rpoplpush(self._wait_key, self._active_key)
        # One-second slices so jobs coming due in the delayed set get promoted.
        return self._client.brpoplpush(self._wait_key, self._active_key, timeout=1)

    def dequeue(self, *, block: bool = True, timeout: Optional[float] = None) -> VerificationJob | None:
        """Claim the next ready job, moving its id onto the active list."""
        end_time = None if timeout is None else time.monotonic() + timeout
        while not self._shutdown:
            self._promote_scheduled()
            remaining = None if end_time is None else max(0.0, end_time - time.monotonic())
            job_id = self._claim(block and remaining != 0)
            if job_id is None:
                if not block or (end_time is not None and time.monotonic() >= end_time):
                    return None
                continue
            serialized = self._client.get(self.job_key(job_id))
            if serialized is None:
                logger.warning("Job body missing; dropping id", transaction_id=job_id)
                self._client.lrem(self._active_key, 0, job_id)
                continue
            job = self._deserialize_job(serialized)
            if job.ready_at is not None and job.ready_at > self._clock():
                # Stale id left on wait for a body that was re-enqueued since.
                logger.warning("Claimed job not yet due; rescheduling", transaction_id=job_id, ready_at=job.ready_at)
                self._client.zadd(self._delayed_key, {job_id: job.ready_at})
                self._client.lrem(self._active_key, 0, job_id)
                continue
            job.attempts += 1
            self._client.set(self.job_key(job_id), self._serialize_job(job), xx=True, ex=JOB_RETENTION_SECONDS)
            return job
        return None

    def complete(self, job: VerificationJob) -> None:
        job_id = job.key()
        self._client.delete(self.job_key(job_id))
        self._client.lrem(self._active_key, 0, job_id)

    def fail(self, job: VerificationJob, error: str) -> bool:
        """Record a failed delivery. Returns True if the job was re-scheduled."""
        job_id = job.key()
        job.last_error = error
        if job.attempts >= self._max_attempts:
            logger.warning(
                "Verification job exhausted its attempts; removing",
                transaction_id=job_id,
                attempts=job.attempts,
                error=error,
            )
            self.complete(job)
            return False
        delay = compute_backoff_seconds(job.attempts)
        job.ready_at = self._clock() + delay
        self._client.set(self.job_key(job_id), self._serialize_job(job), xx=True, ex=self._ttl_for(delay))
        self._client.zadd(self._delayed_key, {job_id: job.ready_at})
        self._client.lrem(self._active_key, 0, job_id)
        return True

    def recover_stalled(self) -> int:
        """Return ids left on the active list by a dead consumer to the wait list.

        Only safe while no other consumer is running.
        """
        stalled = self._client.lrange(self._active_key, 0, -1) or []
        for job_id in stalled:
            self._client.rpush(self._wait_key, job_id)
            self._client.lrem(self._active_key, 0, job_id)
        if stalled:
            logger.warning("Re-queued stalled verification jobs", count=len(stalled))
        return len(stalled)

    def shutdown(self) -> None:
        self._shutdown = True

    # ----------------------------- test utilities ----------------------------- #
    def purge(self) -> None:
        """Remove all queued jobs and their bodies (test isolation)."""
        ids: set[Any] = set()
        ids.update(self._client.zrange(self._delayed_key, 0, -1) or [])
        ids.update(self._client.lrange(self._wait_key, 0, -1) or [])
        ids.update(self._client.lrange(self._active_key, 0, -1) or [])
        for job_id in ids:
            self._client.delete(self.job_key(job_id))
        self._client.delete(self._delayed_key, self._wait_key, self._active_key)
        logger.info("Redis queue purged", queue=self._name)

    # ----------------------------- inspection ----------------------------- #
    def depth(self) -> int:
        return int(self._client.zcard(self._delayed_key) or 0) + int(self._client.llen(self._wait_key) or 0)

    def __len__(self) -> int:
        return self.depth()

    def snapshot(self) -> dict:
        try:
            scheduled = int(self._client.zcard(self._delayed_key) or 0)
            ready = int(self._client.llen(self._wait_key) or 0)
            active = int(self._client.llen(self._active_key) or 0)
        except redis.RedisError as e:
            logger.error("Error getting queue snapshot", error=str(e))
            return {"backend": "redis", "redis_active": False, "shutdown": self._shutdown}
        return {
            "backend": "redis",
            "name": self._name,
            "depth": scheduled + ready,
            "ready": ready,
            "scheduled": scheduled,
            "active": active,
            "shutdown": self._shutdown,
            "redis_active": True,
        }


__all__ = ["RedisDelayQueue", "JOB_RETENTION_SECONDS"]
