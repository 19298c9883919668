from .base import ResponseBase
from .leads import NormalizedLead, LeadRead, LeadStatusUpdate

__all__ = [
    "ResponseBase",
    "NormalizedLead",
    "LeadRead",
    "LeadStatusUpdate",
]
