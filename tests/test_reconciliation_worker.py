import pytest
import redis
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from recovery.jobs.redis_queue import RedisDelayQueue
from recovery.jobs.verification_job import VerificationJob
from recovery.jobs.worker_reconciliation import ReconciliationWorker
from recovery.models.db import LeadStatus, ReconciliationOutcome, SalesLead
from recovery.services import lead_store
from recovery.services.paid_flags import RedisPaidFlagStore


def _job(tx: str = "tx2") -> VerificationJob:
    return VerificationJob(
        transaction_id=tx,
        store_id="store-1",
        raw_data={"event": "order.created", "resource": {"gateway_transaction_id": tx, "status": "pending"}},
        parsed_data={"customer_email": "maria@example.com", "status": "pending"},
    )


def test_paid_transaction_is_skipped(worker, reconciliation_queue, paid_flags, clock, db_session):
    reconciliation_queue.enqueue(_job(), delay_seconds=600)
    paid_flags.mark_paid("tx2")
    clock.advance(600)

    assert worker.run_once() == ReconciliationOutcome.PAID_AND_SKIPPED
    assert db_session.query(SalesLead).count() == 0
    assert not reconciliation_queue.is_outstanding("tx2")


def test_unpaid_transaction_creates_new_lead(worker, reconciliation_queue, clock, db_session):
    job = _job()
    reconciliation_queue.enqueue(job, delay_seconds=600)
    clock.advance(600)

    assert worker.run_once() == ReconciliationOutcome.LEAD_CREATED
    lead = db_session.query(SalesLead).one()
    assert lead.store_id == "store-1"
    assert lead.transaction_id == "tx2"
    assert lead.status == LeadStatus.NEW
    assert lead.raw_data == job.raw_data
    assert lead.parsed_data == job.parsed_data
    assert lead.verification_token == job.token


def test_nothing_ready_returns_none(worker, reconciliation_queue):
    reconciliation_queue.enqueue(_job(), delay_seconds=600)
    assert worker.run_once() is None


def test_flag_store_outage_fails_job_without_lead(fake_redis, clock, db_session, session_factory):
    queue = RedisDelayQueue(fake_redis, clock=clock)
    flags = RedisPaidFlagStore(fake_redis)
    worker = ReconciliationWorker(queue, flags, session_factory=session_factory)
    queue.enqueue(_job(), delay_seconds=0)
    job = queue.dequeue(block=False)

    # Flag reads fail but the queue itself still answers.
    original_get = fake_redis.get

    def flaky_get(key):
        if key.startswith("paid:"):
            raise redis.ConnectionError("flag store down")
        return original_get(key)

    fake_redis.get = flaky_get
    assert worker.on_job_ready(job) is None
    assert db_session.query(SalesLead).count() == 0
    assert "tx2" in fake_redis.zsets["recovery-queue:delayed"]  # retried later

    fake_redis.get = original_get
    clock.advance(3600)
    assert worker.run_once() == ReconciliationOutcome.LEAD_CREATED
    assert db_session.query(SalesLead).count() == 1


def test_redelivered_job_does_not_duplicate_lead(reconciliation_queue, paid_flags, db_session, session_factory):
    job = _job()
    reconciliation_queue.enqueue(job, delay_seconds=0)
    delivered = reconciliation_queue.dequeue(block=False)

    worker = ReconciliationWorker(reconciliation_queue, paid_flags, session_factory=session_factory)
    assert worker.on_job_ready(delivered) == ReconciliationOutcome.LEAD_CREATED
    # same job again, as after a crash between insert and acknowledgement
    assert worker.on_job_ready(delivered) == ReconciliationOutcome.LEAD_ALREADY_RECORDED
    assert db_session.query(SalesLead).count() == 1


def test_lead_insert_failure_fails_the_job(worker, reconciliation_queue, clock, monkeypatch, db_session):
    reconciliation_queue.enqueue(_job(), delay_seconds=0)

    def broken_commit(self):
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    monkeypatch.setattr(Session, "commit", broken_commit)
    assert worker.run_once() is None
    monkeypatch.undo()

    assert reconciliation_queue.is_outstanding("tx2")
    assert reconciliation_queue.snapshot()["scheduled"] == 1
    assert db_session.query(SalesLead).count() == 0


def test_job_dropped_after_max_attempts(paid_flags, clock, monkeypatch, session_factory):
    from recovery.jobs.queue import DelayQueue
    queue = DelayQueue(clock=clock, max_attempts=1)
    worker = ReconciliationWorker(queue, paid_flags, session_factory=session_factory)
    queue.enqueue(_job(), delay_seconds=0)

    def unavailable(_tx):
        from recovery.errors import FastFlagUnavailable
        raise FastFlagUnavailable("down")

    monkeypatch.setattr(paid_flags, "is_paid", unavailable)
    assert worker.run_once() is None
    assert not queue.is_outstanding("tx2")


def test_lead_store_token_idempotency(db_session):
    first = lead_store.insert_lead(db_session, store_id="s", raw_data={}, parsed_data={}, verification_token="tok")
    second = lead_store.insert_lead(db_session, store_id="s", raw_data={}, parsed_data={}, verification_token="tok")
    assert first.created is True
    assert second.created is False
    assert second.lead_id == first.lead_id

    # without a token every insert is a new row
    lead_store.insert_lead(db_session, store_id="s", raw_data={}, parsed_data={})
    lead_store.insert_lead(db_session, store_id="s", raw_data={}, parsed_data={})
    assert db_session.query(SalesLead).count() == 3


@pytest.mark.parametrize("status", list(LeadStatus))
def test_lead_store_update_status(db_session, status):
    created = lead_store.insert_lead(db_session, store_id="s", raw_data={}, parsed_data={})
    lead = lead_store.update_lead_status(db_session, created.lead_id, status)
    assert lead.status == status
    assert lead_store.update_lead_status(db_session, 999999, status) is None
