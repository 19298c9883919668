"""Central Enum definitions for lead and reconciliation states."""
from __future__ import annotations
import enum


class LeadStatus(str, enum.Enum):
    NEW = "new"
    CONTACTED = "contacted"
    RECOVERED = "recovered"
    LOST = "lost"


class ReconciliationOutcome(str, enum.Enum):
    PAID_AND_SKIPPED = "PAID_AND_SKIPPED"
    LEAD_CREATED = "LEAD_CREATED"
    # Redelivered job whose lead row already exists (same verification token).
    LEAD_ALREADY_RECORDED = "LEAD_ALREADY_RECORDED"


__all__ = [
    "LeadStatus",
    "ReconciliationOutcome",
]
