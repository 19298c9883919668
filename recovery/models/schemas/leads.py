"""
Pydantic schemas for recovery leads.
"""
from datetime import datetime
from typing import Optional, Dict, Any, Union
from pydantic import BaseModel, Field, ConfigDict

from recovery.models.db.enums import LeadStatus

class NormalizedLead(BaseModel):
    """
    Platform-neutral view of a checkout payload.
    Every field is optional: parsers map structure only and never validate
    one field against another.
    """
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    product_name: Optional[str] = None
    total_value: Optional[Union[float, int, str]] = None
    currency: Optional[str] = None
    payment_method: Optional[str] = None
    status: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "customer_name": "Maria Souza",
            "customer_email": "maria@example.com",
            "customer_phone": "5511999999999",
            "product_name": "Curso Online",
            "total_value": 197.0,
            "currency": "BRL",
            "payment_method": "pix",
            "status": "order.created",
        }
    })

class LeadRead(BaseModel):
    id: int
    store_id: str
    transaction_id: Optional[str]
    status: LeadStatus
    raw_data: Dict[str, Any]
    parsed_data: Dict[str, Any]
    received_at: datetime

    model_config = ConfigDict(from_attributes=True)

class LeadStatusUpdate(BaseModel):
    status: str = Field(description="One of new, contacted, recovered, lost")
