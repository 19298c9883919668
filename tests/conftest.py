import os
import sys
from pathlib import Path

# Process-wide settings must be in place before the recovery package is imported.
os.environ["USE_REDIS"] = "false"
os.environ["EMBEDDED_WORKER"] = "false"
os.environ["LOG_FILE"] = ""
os.environ.pop("ADMIN_API_TOKEN", None)

import pytest
import redis
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Ensure project root on sys.path so 'recovery' resolves without an editable install
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from recovery.main import app  # noqa: E402
from recovery.database import Base  # noqa: E402
from recovery.api import deps  # noqa: E402
from recovery.models.db import SalesLead  # noqa: E402
from recovery.jobs.queue import DelayQueue  # noqa: E402
from recovery.jobs.redis_queue import RedisDelayQueue  # noqa: E402
from recovery.jobs.worker_reconciliation import ReconciliationWorker  # noqa: E402
from recovery.parsers.registry import default_registry  # noqa: E402
from recovery.services.paid_flags import InMemoryPaidFlagStore, RedisPaidFlagStore  # noqa: E402
from recovery.services.scheduler import VerificationScheduler  # noqa: E402
from recovery.services.webhook_intake import WebhookIntake  # noqa: E402

# File-based SQLite so the worker (own session) and the API (request session)
# see the same rows.
SQLALCHEMY_TEST_URL = "sqlite+pysqlite:///./test_recovery.db"
engine = create_engine(
    SQLALCHEMY_TEST_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

import recovery.database as _recovery_database  # noqa: E402
_recovery_database.SessionLocal = TestingSessionLocal  # type: ignore


@pytest.fixture(scope="session", autouse=True)
def create_test_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    try:
        os.remove("test_recovery.db")
    except OSError:
        pass


@pytest.fixture(autouse=True)
def _clean_leads(create_test_db):
    session = TestingSessionLocal()
    try:
        session.query(SalesLead).delete()
        session.commit()
    finally:
        session.close()
    yield


@pytest.fixture()
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def _override_get_db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


app.dependency_overrides[deps.get_db] = _override_get_db


# ---------- Deterministic time ----------

class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock():
    return FakeClock()


# ---------- Redis double ----------

class FakeRedis:
    """Dict-backed stand-in for the subset of redis.Redis the service calls.

    Set ``down = True`` to make every command raise ``redis.ConnectionError``.
    Values are stored as str, mirroring ``decode_responses=True``.
    """

    def __init__(self, clock=None):
        self._clock = clock or FakeClock()
        self.strings = {}
        self.expires_at = {}
        self.lists = {}
        self.zsets = {}
        self.down = False
        self.calls = []

    def _check(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        if self.down:
            raise redis.ConnectionError("Connection refused")

    def _alive(self, key):
        expires = self.expires_at.get(key)
        if expires is not None and expires <= self._clock():
            self.strings.pop(key, None)
            self.expires_at.pop(key, None)
        return key in self.strings

    # strings
    def ping(self):
        self._check("ping")
        return True

    def set(self, key, value, ex=None, nx=False, xx=False):
        self._check("set", key, value, ex=ex, nx=nx, xx=xx)
        exists = self._alive(key)
        if nx and exists:
            return None
        if xx and not exists:
            return None
        self.strings[key] = str(value)
        if ex is not None:
            self.expires_at[key] = self._clock() + ex
        else:
            self.expires_at.pop(key, None)
        return True

    def get(self, key):
        self._check("get", key)
        return self.strings[key] if self._alive(key) else None

    def ttl(self, key):
        self._check("ttl", key)
        if not self._alive(key):
            return -2
        expires = self.expires_at.get(key)
        return -1 if expires is None else int(expires - self._clock())

    def exists(self, *keys):
        self._check("exists", *keys)
        return sum(1 for k in keys if self._alive(k) or k in self.lists or k in self.zsets)

    def delete(self, *keys):
        self._check("delete", *keys)
        removed = 0
        for k in keys:
            for store in (self.strings, self.lists, self.zsets):
                if k in store:
                    del store[k]
                    removed += 1
            self.expires_at.pop(k, None)
        return removed

    # lists (index 0 is the head)
    def lpush(self, key, *values):
        self._check("lpush", key, *values)
        lst = self.lists.setdefault(key, [])
        for v in values:
            lst.insert(0, str(v))
        return len(lst)

    def rpush(self, key, *values):
        self._check("rpush", key, *values)
        lst = self.lists.setdefault(key, [])
        lst.extend(str(v) for v in values)
        return len(lst)

    def llen(self, key):
        self._check("llen", key)
        return len(self.lists.get(key, []))

    def lrange(self, key, start, end):
        self._check("lrange", key, start, end)
        lst = self.lists.get(key, [])
        return list(lst[start:] if end == -1 else lst[start:end + 1])

    def lrem(self, key, count, value):
        self._check("lrem", key, count, value)
        lst = self.lists.get(key, [])
        kept = [v for v in lst if v != value]
        removed = len(lst) - len(kept)
        if key in self.lists:
            self.lists[key] = kept
        return removed

    def rpoplpush(self, src, dst):
        self._check("rpoplpush", src, dst)
        lst = self.lists.get(src)
        if not lst:
            return None
        value = lst.pop()
        self.lists.setdefault(dst, []).insert(0, value)
        return value

    def brpoplpush(self, src, dst, timeout=0):
        return self.rpoplpush(src, dst)

    # sorted sets
    def zadd(self, key, mapping):
        self._check("zadd", key, mapping)
        zs = self.zsets.setdefault(key, {})
        added = sum(1 for m in mapping if m not in zs)
        for member, score in mapping.items():
            zs[str(member)] = float(score)
        return added

    def zrem(self, key, *members):
        self._check("zrem", key, *members)
        zs = self.zsets.get(key, {})
        removed = 0
        for m in members:
            if m in zs:
                del zs[m]
                removed += 1
        return removed

    def zcard(self, key):
        self._check("zcard", key)
        return len(self.zsets.get(key, {}))

    def zrange(self, key, start, end):
        self._check("zrange", key, start, end)
        ordered = [m for m, _ in sorted(self.zsets.get(key, {}).items(), key=lambda kv: kv[1])]
        return ordered[start:] if end == -1 else ordered[start:end + 1]

    def zrangebyscore(self, key, min_score, max_score):
        self._check("zrangebyscore", key, min_score, max_score)
        items = sorted(self.zsets.get(key, {}).items(), key=lambda kv: kv[1])
        return [m for m, s in items if float(min_score) <= s <= float(max_score)]


@pytest.fixture()
def fake_redis(clock):
    return FakeRedis(clock)


# ---------- Service wiring ----------

@pytest.fixture()
def paid_flags(clock):
    return InMemoryPaidFlagStore(clock=clock)


@pytest.fixture()
def reconciliation_queue(clock):
    queue = DelayQueue(clock=clock)
    yield queue
    queue.shutdown()


@pytest.fixture(autouse=True)
def app_services(reconciliation_queue, paid_flags):
    """Replicate the lifespan wiring on app.state (tests bypass lifespan).

    No worker thread: tests drive the consumer with ``worker.run_once()``.
    """
    registry = default_registry()
    app.state.parser_registry = registry
    app.state.paid_flags = paid_flags
    app.state.reconciliation_queue = reconciliation_queue
    app.state.redis_client = None
    app.state.webhook_intake = WebhookIntake(registry, paid_flags, VerificationScheduler(reconciliation_queue))
    yield app.state


@pytest.fixture()
def redis_services(fake_redis, clock, app_services):
    """Swap app.state over to Redis-backed flags and queue on the FakeRedis double."""
    flags = RedisPaidFlagStore(fake_redis)
    queue = RedisDelayQueue(fake_redis, clock=clock)
    app_services.paid_flags = flags
    app_services.reconciliation_queue = queue
    app_services.redis_client = fake_redis
    app_services.webhook_intake = WebhookIntake(app_services.parser_registry, flags, VerificationScheduler(queue))
    return flags, queue


@pytest.fixture()
def session_factory():
    return TestingSessionLocal


@pytest.fixture()
def worker(reconciliation_queue, paid_flags):
    return ReconciliationWorker(reconciliation_queue, paid_flags, session_factory=TestingSessionLocal)


@pytest.fixture()
def client():
    return TestClient(app)


# ---------- Payload factories ----------

@pytest.fixture()
def adoorei_created():
    def _make(transaction_id: str = "tx2", status: str = "pending", **customer):
        return {
            "event": "order.created",
            "resource": {
                "status": status,
                "gateway_transaction_id": transaction_id,
                "customer": customer or {"name": "Maria Souza", "email": "maria@example.com", "phone": "5511999999999"},
                "items": [{"name": "Curso Online"}],
                "value_total": 197.0,
                "currency": "BRL",
                "payment_method": "pix",
            },
        }
    return _make


@pytest.fixture()
def adoorei_approved():
    def _make(transaction_id: str = "tx1"):
        return {"event": "order.approved", "resource": {"gateway_transaction_id": transaction_id}}
    return _make
