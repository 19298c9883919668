"""Verification job payload structure."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(slots=True)
class VerificationJob:
    transaction_id: str
    store_id: str
    raw_data: Dict[str, Any]
    parsed_data: Dict[str, Any]
    # Fresh per enqueue; ties a lead row to the job run that created it.
    token: str = field(default_factory=lambda: uuid.uuid4().hex)
    attempts: int = 0
    enqueued_at: float | None = None  # epoch seconds
    ready_at: float | None = None
    last_error: Optional[str] = None

    def key(self) -> str:
        """Queue identity; doubles as the duplicate-suppression token."""
        return self.transaction_id

    def to_payload(self) -> Dict[str, Any]:
        return {
            "transactionId": self.transaction_id,
            "storeId": self.store_id,
            "rawData": self.raw_data,
            "parsedData": self.parsed_data,
            "token": self.token,
            "attempts": self.attempts,
            "enqueuedAt": self.enqueued_at,
            "readyAt": self.ready_at,
            "lastError": self.last_error,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "VerificationJob":
        return cls(
            transaction_id=str(payload["transactionId"]),
            store_id=str(payload["storeId"]),
            raw_data=payload.get("rawData") or {},
            parsed_data=payload.get("parsedData") or {},
            token=payload.get("token") or uuid.uuid4().hex,
            attempts=int(payload.get("attempts") or 0),
            enqueued_at=payload.get("enqueuedAt"),
            ready_at=payload.get("readyAt"),
            last_error=payload.get("lastError"),
        )


__all__ = ["VerificationJob"]
