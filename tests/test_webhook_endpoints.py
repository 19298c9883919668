import logging

import pytest
from fastapi.testclient import TestClient

from recovery.main import app
from recovery.services.paid_flags import paid_flag_key


def test_approved_event_sets_paid_flag(client, paid_flags, reconciliation_queue, adoorei_approved):
    r = client.post("/webhook/adoorei/42", json=adoorei_approved("tx1"))
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["success"] is True
    assert body["data"] == {"transaction_id": "tx1", "action": "record_paid"}
    assert paid_flags.is_paid("tx1")
    assert paid_flags.ttl("tx1") == 900
    assert reconciliation_queue.depth() == 0


def test_pending_event_schedules_verification(client, reconciliation_queue, clock, adoorei_created):
    r = client.post("/webhook/adoorei/42", json=adoorei_created("tx2"))
    assert r.status_code == 202, r.text
    data = r.json()["data"]
    assert data["transaction_id"] == "tx2"
    assert data["action"] == "schedule_verification"
    assert data["delay_ms"] == 600000
    assert data["duplicate"] is False

    assert reconciliation_queue.is_outstanding("tx2")
    assert reconciliation_queue.dequeue(block=False) is None
    clock.advance(600)
    job = reconciliation_queue.dequeue(block=False)
    assert job.key() == "tx2"
    assert job.store_id == "42"
    assert job.parsed_data["customer_name"] == "Maria Souza"
    assert job.raw_data["resource"]["gateway_transaction_id"] == "tx2"


def test_duplicate_pending_event_keeps_one_job(client, reconciliation_queue, adoorei_created):
    first = client.post("/webhook/adoorei/42", json=adoorei_created("tx2"))
    second = client.post("/webhook/adoorei/42", json=adoorei_created("tx2"))
    assert first.status_code == second.status_code == 202
    assert second.json()["data"]["duplicate"] is True
    assert reconciliation_queue.depth() == 1


@pytest.mark.parametrize(
    "field, value, parsed_field, expected",
    [
        ("phone", 5511999999999, "customer_phone", "5511999999999"),
        ("currency", 986, "currency", "986"),
        ("payment_method", 3, "payment_method", "3"),
        ("name", 12345, "customer_name", "12345"),
    ],
)
def test_numeric_fields_still_schedule_verification(
    client, reconciliation_queue, clock, adoorei_created, field, value, parsed_field, expected
):
    payload = adoorei_created("tx-num")
    if field in ("phone", "name"):
        payload["resource"]["customer"][field] = value
    else:
        payload["resource"][field] = value

    r = client.post("/webhook/adoorei/store-1", json=payload)
    assert r.status_code == 202, r.text
    assert reconciliation_queue.is_outstanding("tx-num")

    clock.advance(600)
    job = reconciliation_queue.dequeue(block=False)
    assert job.parsed_data[parsed_field] == expected


def test_scheduling_logs_one_business_event(client, adoorei_created):
    records = []

    class _Collector(logging.Handler):
        def emit(self, record):
            records.append(record.getMessage())

    handler = _Collector(level=logging.INFO)
    recovery_logger = logging.getLogger("recovery")
    previous_level = recovery_logger.level
    recovery_logger.addHandler(handler)
    recovery_logger.setLevel(logging.INFO)
    try:
        r = client.post("/webhook/adoorei/42", json=adoorei_created("tx-log"))
    finally:
        recovery_logger.removeHandler(handler)
        recovery_logger.setLevel(previous_level)

    assert r.status_code == 202
    assert records.count("Business event: verification_scheduled") == 1
    assert not [m for m in records if m.startswith("Verification scheduled")]


def test_unrelated_event_is_acknowledged(client, reconciliation_queue, paid_flags):
    r = client.post("/webhook/adoorei/42", json={"event": "order.refunded", "resource": {"gateway_transaction_id": "tx3"}})
    assert r.status_code == 200
    assert r.json()["data"]["action"] == "none"
    assert reconciliation_queue.depth() == 0
    assert not paid_flags.is_paid("tx3")


def test_missing_transaction_id_returns_400(client, reconciliation_queue, paid_flags):
    r = client.post("/webhook/adoorei/42", json={"event": "order.approved", "resource": {}})
    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert body["error_code"] == "MISSING_TRANSACTION_ID"
    assert body["retryable"] is False

    r = client.post("/webhook/adoorei/42", json={"event": "order.created", "resource": {"status": "pending"}})
    assert r.status_code == 400
    assert reconciliation_queue.depth() == 0


def test_unsupported_platform_returns_400(client, reconciliation_queue, adoorei_created):
    r = client.post("/webhook/shopify/42", json=adoorei_created("tx5"))
    assert r.status_code == 400
    assert r.json()["error_code"] == "UNSUPPORTED_PLATFORM"
    assert reconciliation_queue.depth() == 0
    assert not reconciliation_queue.is_outstanding("tx5")


def test_non_object_body_returns_400(client):
    r = client.post("/webhook/adoorei/42", json=["not", "an", "object"])
    assert r.status_code == 400
    assert r.json()["success"] is False


def test_redis_backed_flow_writes_expected_keys(client, redis_services, fake_redis, clock, adoorei_approved, adoorei_created):
    r = client.post("/webhook/adoorei/42", json=adoorei_approved("tx1"))
    assert r.status_code == 200
    assert fake_redis.get(paid_flag_key("tx1")) == "1"
    assert fake_redis.ttl("paid:tx1") == 900

    r = client.post("/webhook/adoorei/42", json=adoorei_created("tx2"))
    assert r.status_code == 202
    assert fake_redis.zsets["recovery-queue:delayed"]["tx2"] == clock.now + 600
    assert fake_redis.get("recovery-queue:job:tx2") is not None


def test_redis_down_returns_503(client, redis_services, fake_redis, adoorei_approved, adoorei_created):
    fake_redis.down = True

    r = client.post("/webhook/adoorei/42", json=adoorei_created("tx2"))
    assert r.status_code == 503
    assert r.json()["error_code"] == "SCHEDULING_UNAVAILABLE"
    assert r.json()["retryable"] is True

    r = client.post("/webhook/adoorei/42", json=adoorei_approved("tx1"))
    assert r.status_code == 503
    assert r.json()["error_code"] == "FAST_FLAG_UNAVAILABLE"


def test_unexpected_error_returns_500(app_services, monkeypatch, adoorei_approved):
    def explode(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(app_services.webhook_intake, "handle", explode)
    client = TestClient(app, raise_server_exceptions=False)
    r = client.post("/webhook/adoorei/42", json=adoorei_approved("tx1"))
    assert r.status_code == 500
    assert r.json()["message"] == "Internal server error"


def test_intake_not_initialized_returns_503(app_services, client, adoorei_approved):
    app_services.webhook_intake = None
    r = client.post("/webhook/adoorei/42", json=adoorei_approved("tx1"))
    assert r.status_code == 503


def test_request_id_is_echoed(client, adoorei_approved):
    r = client.post("/webhook/adoorei/42", json=adoorei_approved("tx1"), headers={"X-Request-ID": "req-123"})
    assert r.headers["X-Request-ID"] == "req-123"
