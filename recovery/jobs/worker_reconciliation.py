"""Background worker consuming verification jobs."""
from __future__ import annotations

import threading
import time
from typing import Callable, Optional, Union

import redis
from sqlalchemy.orm import Session

from recovery.config import QUEUE_SETTINGS
from recovery.jobs.queue import DelayQueue
from recovery.jobs.redis_queue import RedisDelayQueue
from recovery.jobs.verification_job import VerificationJob
from recovery.models.db.enums import ReconciliationOutcome
from recovery.services.paid_flags import PaidFlagStore
from recovery.services.reconciliation import reconcile
from recovery.utils import get_logger
from recovery.utils.time import from_epoch
import recovery.database as database

logger = get_logger(__name__)


class ReconciliationWorker:
    def __init__(
        self,
        queue: Union[DelayQueue, RedisDelayQueue],
        flags: PaidFlagStore,
        *,
        session_factory: Optional[Callable[[], Session]] = None,
        poll_timeout: float | None = None,
    ):
        self.queue = queue
        self.flags = flags
        self._session_factory = session_factory
        self.poll_timeout = float(poll_timeout if poll_timeout is not None else QUEUE_SETTINGS.get("poll_timeout_seconds", 5.0))
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    def _new_session(self) -> Session:
        factory = self._session_factory or database.SessionLocal
        return factory()

    def start(self) -> None:
        if self._thread and self._thread.is_alive():  # pragma: no cover
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run_forever, name="reconciliation-worker", daemon=True)
        self._thread.start()
        logger.info("Reconciliation worker started")

    def stop(self, join_timeout: float | None = None) -> None:
        self._stop_event.set()
        logger.info("Reconciliation worker stop requested")
        if join_timeout is not None and self._thread is not None:
            self._thread.join(join_timeout)

    def run_forever(self) -> None:
        while not self._stop_event.is_set():
            try:
                job = self.queue.dequeue(timeout=self.poll_timeout)
                if job is None:
                    continue
                self.on_job_ready(job)
            except Exception as e:  # pragma: no cover
                logger.error("Worker loop error", error=str(e), exc_info=True)
                time.sleep(1)

    def run_once(self) -> Optional[ReconciliationOutcome]:
        """Process at most one ready job without blocking. Used by tests and scripts."""
        job = self.queue.dequeue(block=False)
        if job is None:
            return None
        return self.on_job_ready(job)

    def on_job_ready(self, job: VerificationJob) -> Optional[ReconciliationOutcome]:
        """Run one delivery; the queue learns the result via complete() or fail()."""
        logger.info(
            "Processing verification job",
            transaction_id=job.transaction_id,
            store_id=job.store_id,
            attempt=job.attempts,
            enqueued_at=from_epoch(job.enqueued_at).isoformat() if job.enqueued_at else None,
        )
        session = self._new_session()
        try:
            outcome = reconcile(session, self.flags, job)
        except Exception as e:
            rescheduled = self.queue.fail(job, str(e))
            logger.error(
                "Verification job failed",
                transaction_id=job.transaction_id,
                error=str(e),
                error_type=type(e).__name__,
                attempt=job.attempts,
                rescheduled=rescheduled,
                exc_info=True,
            )
            return None
        finally:
            session.close()
        self.queue.complete(job)
        logger.info("Verification job completed", transaction_id=job.transaction_id, outcome=outcome.value)
        return outcome


def create_queue(redis_client: redis.Redis | None = None) -> Union[DelayQueue, RedisDelayQueue]:
    """Create the queue backend named by QUEUE_SETTINGS["use_redis"].

    The Redis backend is returned even when the server is down at startup;
    enqueue then fails with SchedulingUnavailable rather than silently
    degrading to a queue that would lose jobs on restart.
    """
    if QUEUE_SETTINGS.get("use_redis", False):
        if redis_client is None:
            from recovery.cache import create_redis_client
            redis_client = create_redis_client()
        queue = RedisDelayQueue(redis_client)
        if queue.health_check():
            logger.info("Using Redis-backed queue", queue=queue.name)
        else:
            logger.warning("Redis-backed queue configured but Redis is unreachable; enqueue will fail until it recovers")
        return queue

    logger.info("Using in-memory queue")
    return DelayQueue()


__all__ = ["ReconciliationWorker", "create_queue"]
