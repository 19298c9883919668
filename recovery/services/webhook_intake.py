"""Webhook intake: classify an event and apply its single side effect.

RecordPaid -> paid flag write, ScheduleVerification -> queue enqueue,
NoAction -> nothing. Errors propagate to the HTTP layer unchanged so the
sender sees 400 for input defects and 503 for retryable infrastructure faults.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from recovery.parsers.registry import ParserRegistry
from recovery.services.paid_flags import PaidFlagStore
from recovery.services.scheduler import VerificationScheduler
from recovery.services.webhook_classifier import (
    Action,
    RecordPaid,
    ScheduleVerification,
    classify,
)
from recovery.utils import get_logger, log_business_event

logger = get_logger(__name__)


@dataclass(slots=True)
class IntakeResult:
    action: Action
    status_code: int
    message: str
    data: Dict[str, Any] = field(default_factory=dict)


class WebhookIntake:
    def __init__(self, registry: ParserRegistry, flags: PaidFlagStore, scheduler: VerificationScheduler) -> None:
        self.registry = registry
        self.flags = flags
        self.scheduler = scheduler

    def handle(self, platform: str, store_id: str, raw: Dict[str, Any], *, request_id: Optional[str] = None) -> IntakeResult:
        action = classify(platform, store_id, raw, self.registry)

        if isinstance(action, RecordPaid):
            self.flags.mark_paid(action.transaction_id)
            log_business_event(
                event_type="paid_flag_recorded",
                details={"transaction_id": action.transaction_id, "platform": platform, "ttl_seconds": self.flags.ttl_seconds},
                store_id=store_id,
                request_id=request_id,
            )
            return IntakeResult(
                action=action,
                status_code=200,
                message="Payment approval recorded",
                data={"transaction_id": action.transaction_id, "action": "record_paid"},
            )

        if isinstance(action, ScheduleVerification):
            result = self.scheduler.schedule(action)
            if result.enqueued:
                log_business_event(
                    event_type="verification_scheduled",
                    details={"transaction_id": action.transaction_id, "platform": platform, "delay_ms": result.delay_ms},
                    store_id=store_id,
                    request_id=request_id,
                )
            return IntakeResult(
                action=action,
                status_code=202,
                message="Verification scheduled" if result.enqueued else "Verification already pending",
                data={
                    "transaction_id": action.transaction_id,
                    "action": "schedule_verification",
                    "delay_ms": result.delay_ms,
                    "duplicate": result.duplicate,
                },
            )

        logger.info(
            "Webhook ignored",
            platform=platform,
            store_id=store_id,
            transaction_id=action.transaction_id,
            event=action.event,
            request_id=request_id,
        )
        return IntakeResult(
            action=action,
            status_code=200,
            message="Webhook received; no action required",
            data={"transaction_id": action.transaction_id, "action": "none"},
        )


__all__ = ["WebhookIntake", "IntakeResult"]
