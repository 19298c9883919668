"""SQLAlchemy model for recovery leads."""
from __future__ import annotations
from datetime import datetime
from sqlalchemy import Integer, String, DateTime, Enum, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from recovery.database import Base
from recovery.utils.time import utc_now
from .enums import LeadStatus

class SalesLead(Base):
    __tablename__ = "sales_leads"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    store_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    transaction_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    # One token per scheduled verification; redelivery of the same job cannot
    # insert a second row.
    verification_token: Mapped[str | None] = mapped_column(String, nullable=True)

    raw_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    parsed_data: Mapped[dict] = mapped_column(JSON, nullable=False)

    status: Mapped[LeadStatus] = mapped_column(
        Enum(LeadStatus, values_callable=lambda e: [m.value for m in e]),
        default=LeadStatus.NEW,
        nullable=False,
        index=True,
    )
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)

    __table_args__ = (
        UniqueConstraint("verification_token", name="uq_sales_leads_verification_token"),
    )
