"""Reconciliation step executed when a verification job's grace window closes.

Single public function `reconcile(session, flags, job)`:
1. Reads the paid flag. A flag store error propagates (FastFlagUnavailable) and
   fails the job; it never counts as "unpaid".
2. Flag present -> PAID_AND_SKIPPED, nothing written.
3. Flag absent  -> insert a `new` lead keyed by the job's verification token.
   A redelivered job finds its earlier row and reports LEAD_ALREADY_RECORDED.
   Storage errors propagate as LeadInsertFailed.

No retry happens here; the queue decides whether a failed job runs again.
"""
from __future__ import annotations

from sqlalchemy.orm import Session

from recovery.jobs.verification_job import VerificationJob
from recovery.models.db.enums import LeadStatus, ReconciliationOutcome
from recovery.services.lead_store import insert_lead
from recovery.services.paid_flags import PaidFlagStore
from recovery.utils import get_logger, log_business_event

logger = get_logger(__name__)


def reconcile(session: Session, flags: PaidFlagStore, job: VerificationJob) -> ReconciliationOutcome:
    if flags.is_paid(job.transaction_id):
        logger.info(
            "Transaction paid during grace window; no lead",
            transaction_id=job.transaction_id,
            store_id=job.store_id,
        )
        log_business_event(
            event_type="verification_paid_skipped",
            details={"transaction_id": job.transaction_id},
            store_id=job.store_id,
        )
        return ReconciliationOutcome.PAID_AND_SKIPPED

    logger.info("Transaction still unpaid; creating lead", transaction_id=job.transaction_id, store_id=job.store_id)
    result = insert_lead(
        session,
        store_id=job.store_id,
        raw_data=job.raw_data,
        parsed_data=job.parsed_data,
        status=LeadStatus.NEW,
        transaction_id=job.transaction_id,
        verification_token=job.token,
    )
    if not result.created:
        logger.warning(
            "Lead already recorded for this verification; redelivery ignored",
            transaction_id=job.transaction_id,
            lead_id=result.lead_id,
        )
        return ReconciliationOutcome.LEAD_ALREADY_RECORDED

    log_business_event(
        event_type="lead_created",
        details={"transaction_id": job.transaction_id, "lead_id": result.lead_id, "attempts": job.attempts},
        store_id=job.store_id,
    )
    return ReconciliationOutcome.LEAD_CREATED


__all__ = ["reconcile"]
