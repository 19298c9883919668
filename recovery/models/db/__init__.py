from .leads import SalesLead
from .enums import LeadStatus, ReconciliationOutcome

__all__ = [
    "SalesLead",
    "LeadStatus",
    "ReconciliationOutcome",
]
