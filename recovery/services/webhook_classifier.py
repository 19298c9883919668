"""Webhook classifier: decide what an inbound checkout event means.

``classify(platform, store_id, raw, registry)`` returns exactly one action:

* RecordPaid            - payment approved; only the transaction id matters, so
                          no parser is needed and an approval that arrives before
                          (or without) its pending event is handled normally.
* ScheduleVerification  - order created with a pending status; the payload is
                          normalized through the platform's parser.
* NoAction              - anything else.

The transaction id is extracted first, for every event; an event without one
is rejected before any other decision is made.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from recovery.errors import MissingTransactionId
from recovery.models.schemas.leads import NormalizedLead
from recovery.parsers.base import dig
from recovery.parsers.registry import ParserRegistry

# Locations checked, in order, for the platform-assigned transaction id.
TRANSACTION_ID_PATHS: tuple[tuple[str, ...], ...] = (
    ("resource", "gateway_transaction_id"),
    ("resource", "transaction_id"),
    ("transaction", "id"),
    ("purchase", "transaction"),
    ("data", "purchase", "transaction"),
    ("transaction_id",),
)

APPROVED_EVENTS = frozenset({"order.approved", "order.paid", "purchase_approved", "order_paid"})
CREATED_EVENTS = frozenset({"order.created", "order_created", "purchase_billet_printed"})
PENDING_STATUSES = frozenset({"pending"})


@dataclass(frozen=True, slots=True)
class RecordPaid:
    transaction_id: str


@dataclass(frozen=True, slots=True)
class ScheduleVerification:
    transaction_id: str
    store_id: str
    raw_data: Dict[str, Any]
    normalized: NormalizedLead


@dataclass(frozen=True, slots=True)
class NoAction:
    transaction_id: str
    event: Optional[str] = None


Action = Union[RecordPaid, ScheduleVerification, NoAction]


def extract_transaction_id(raw: Dict[str, Any]) -> str:
    for path in TRANSACTION_ID_PATHS:
        value = dig(raw, *path)
        if value is None or isinstance(value, (dict, list, bool)):
            continue
        text = str(value).strip()
        if text:
            return text
    raise MissingTransactionId()


def event_name(raw: Dict[str, Any]) -> Optional[str]:
    for path in (("event",), ("event_type",), ("type",)):
        value = dig(raw, *path)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def order_status(raw: Dict[str, Any]) -> Optional[str]:
    for path in (("resource", "status"), ("status",), ("data", "purchase", "status")):
        value = dig(raw, *path)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def classify(platform: str, store_id: str, raw: Dict[str, Any], registry: ParserRegistry) -> Action:
    transaction_id = extract_transaction_id(raw)
    event = event_name(raw)
    normalized_event = (event or "").lower()

    if normalized_event in APPROVED_EVENTS:
        return RecordPaid(transaction_id=transaction_id)

    status = (order_status(raw) or "").lower()
    if normalized_event in CREATED_EVENTS and status in PENDING_STATUSES:
        # Raises UnsupportedPlatform before anything is scheduled.
        normalized = registry.normalize(platform, raw)
        return ScheduleVerification(
            transaction_id=transaction_id,
            store_id=store_id,
            raw_data=raw,
            normalized=normalized,
        )

    return NoAction(transaction_id=transaction_id, event=event)


__all__ = [
    "RecordPaid",
    "ScheduleVerification",
    "NoAction",
    "Action",
    "classify",
    "extract_transaction_id",
    "event_name",
    "order_status",
]
