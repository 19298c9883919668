"""Deferred verification scheduler.

Turns a ScheduleVerification action into a VerificationJob on the queue with
the fixed grace delay. The delay is a deployment setting, never a per-job
argument. A second pending event for an outstanding transaction id is
suppressed silently; queue outages surface as SchedulingUnavailable and are
not retried here (the webhook sender's own retry is the recovery path).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol

from recovery.config import RECOVERY_SETTINGS
from recovery.jobs.verification_job import VerificationJob
from recovery.services.webhook_classifier import ScheduleVerification


class QueueProtocol(Protocol):
    def enqueue(self, job: VerificationJob, *, delay_seconds: float = 0.0) -> Any: ...
    def dequeue(self, *, block: bool = True, timeout: Optional[float] = None) -> Optional[VerificationJob]: ...
    def complete(self, job: VerificationJob) -> None: ...
    def fail(self, job: VerificationJob, error: str) -> bool: ...
    def is_outstanding(self, key: str) -> bool: ...
    def shutdown(self) -> None: ...
    def snapshot(self) -> dict: ...
    def depth(self) -> int: ...


@dataclass(slots=True)
class ScheduleResult:
    job: VerificationJob
    enqueued: bool
    delay_ms: int

    @property
    def duplicate(self) -> bool:
        return not self.enqueued


class VerificationScheduler:
    def __init__(self, queue: QueueProtocol) -> None:
        self.queue = queue

    @property
    def delay_seconds(self) -> int:
        return int(RECOVERY_SETTINGS["verification_delay_seconds"])

    def schedule(self, action: ScheduleVerification) -> ScheduleResult:
        job = VerificationJob(
            transaction_id=action.transaction_id,
            store_id=action.store_id,
            raw_data=action.raw_data,
            parsed_data=action.normalized.model_dump(),
        )
        delay = self.delay_seconds
        item = self.queue.enqueue(job, delay_seconds=delay)
        return ScheduleResult(job=job, enqueued=item is not None, delay_ms=delay * 1000)


__all__ = ["VerificationScheduler", "ScheduleResult", "QueueProtocol"]
