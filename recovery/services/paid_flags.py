"""Fast "has this order been paid?" signal.

An approved-payment webhook writes ``paid:{transaction_id}`` with a TTL
(900 s by default); the reconciliation worker reads it when a pending order's
grace window closes. Flags are never updated or deleted by the application,
they simply expire.

Read and write failures raise FastFlagUnavailable. Callers must not treat an
unreachable store as "not paid": the worker lets the error fail the job so the
queue retries it later.
"""
from __future__ import annotations

import threading
import time
from typing import Callable, Protocol

import redis

from recovery.config import RECOVERY_SETTINGS
from recovery.errors import FastFlagUnavailable
from recovery.utils import get_logger

logger = get_logger(__name__)


def paid_flag_key(transaction_id: str) -> str:
    return f"{RECOVERY_SETTINGS['paid_flag_key_prefix']}{transaction_id}"


class PaidFlagStore(Protocol):
    ttl_seconds: int

    def mark_paid(self, transaction_id: str) -> None: ...
    def is_paid(self, transaction_id: str) -> bool: ...


class RedisPaidFlagStore:
    def __init__(self, client: redis.Redis, *, ttl_seconds: int | None = None) -> None:
        self._client = client
        self.ttl_seconds = int(ttl_seconds if ttl_seconds is not None else RECOVERY_SETTINGS["paid_flag_ttl_seconds"])

    def mark_paid(self, transaction_id: str) -> None:
        key = paid_flag_key(transaction_id)
        try:
            self._client.set(key, "1", ex=self.ttl_seconds)
        except redis.RedisError as e:
            logger.error("Paid flag write failed", transaction_id=transaction_id, error=str(e))
            raise FastFlagUnavailable(f"Paid flag store unavailable: {e}") from e

    def is_paid(self, transaction_id: str) -> bool:
        key = paid_flag_key(transaction_id)
        try:
            return self._client.get(key) is not None
        except redis.RedisError as e:
            logger.error("Paid flag read failed", transaction_id=transaction_id, error=str(e))
            raise FastFlagUnavailable(f"Paid flag store unavailable: {e}") from e


class InMemoryPaidFlagStore:
    """Process-local flags with expiry; pairs with the in-memory DelayQueue."""

    def __init__(self, *, ttl_seconds: int | None = None, clock: Callable[[], float] = time.time) -> None:
        self.ttl_seconds = int(ttl_seconds if ttl_seconds is not None else RECOVERY_SETTINGS["paid_flag_ttl_seconds"])
        self._clock = clock
        self._lock = threading.Lock()
        self._expires_at: dict[str, float] = {}

    def mark_paid(self, transaction_id: str) -> None:
        with self._lock:
            self._expires_at[paid_flag_key(transaction_id)] = self._clock() + self.ttl_seconds

    def is_paid(self, transaction_id: str) -> bool:
        key = paid_flag_key(transaction_id)
        with self._lock:
            expires_at = self._expires_at.get(key)
            if expires_at is None:
                return False
            if expires_at <= self._clock():
                del self._expires_at[key]
                return False
            return True

    def ttl(self, transaction_id: str) -> float | None:
        """Seconds left on a live flag, None when absent or expired."""
        with self._lock:
            expires_at = self._expires_at.get(paid_flag_key(transaction_id))
        if expires_at is None:
            return None
        remaining = expires_at - self._clock()
        return remaining if remaining > 0 else None

    def clear(self) -> None:
        with self._lock:
            self._expires_at.clear()


__all__ = [
    "PaidFlagStore",
    "RedisPaidFlagStore",
    "InMemoryPaidFlagStore",
    "paid_flag_key",
]
