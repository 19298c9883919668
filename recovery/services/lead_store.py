"""Lead store: the only writer and reader of the ``sales_leads`` table."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from recovery.errors import LeadInsertFailed
from recovery.models.db.enums import LeadStatus
from recovery.models.db.leads import SalesLead
from recovery.utils import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class LeadInsertResult:
    lead_id: int
    created: bool


def insert_lead(
    session: Session,
    *,
    store_id: str,
    raw_data: Dict[str, Any],
    parsed_data: Dict[str, Any],
    status: LeadStatus = LeadStatus.NEW,
    transaction_id: Optional[str] = None,
    verification_token: Optional[str] = None,
) -> LeadInsertResult:
    """Insert a lead and commit.

    With a ``verification_token`` the insert is idempotent: a second call with
    the same token returns the existing row with ``created=False``.
    Any other storage failure raises LeadInsertFailed.
    """
    lead = SalesLead(
        store_id=store_id,
        transaction_id=transaction_id,
        verification_token=verification_token,
        raw_data=raw_data,
        parsed_data=parsed_data,
        status=status,
    )
    try:
        session.add(lead)
        session.commit()
        session.refresh(lead)
        return LeadInsertResult(lead_id=lead.id, created=True)
    except IntegrityError as e:
        session.rollback()
        if verification_token is not None:
            existing = find_by_verification_token(session, verification_token)
            if existing is not None:
                return LeadInsertResult(lead_id=existing.id, created=False)
        raise LeadInsertFailed(f"Lead insert rejected: {e.orig}") from e
    except SQLAlchemyError as e:
        session.rollback()
        raise LeadInsertFailed(f"Lead store unavailable: {e}") from e


def find_by_verification_token(session: Session, token: str) -> Optional[SalesLead]:
    return session.query(SalesLead).filter(SalesLead.verification_token == token).first()


def get_lead(session: Session, lead_id: int) -> Optional[SalesLead]:
    return session.query(SalesLead).filter(SalesLead.id == lead_id).first()


def list_leads(
    session: Session,
    *,
    store_id: Optional[str] = None,
    status: Optional[LeadStatus] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[SalesLead]:
    query = session.query(SalesLead)
    if store_id is not None:
        query = query.filter(SalesLead.store_id == store_id)
    if status is not None:
        query = query.filter(SalesLead.status == status)
    return query.order_by(SalesLead.received_at.desc(), SalesLead.id.desc()).offset(offset).limit(limit).all()


def update_lead_status(session: Session, lead_id: int, status: LeadStatus) -> Optional[SalesLead]:
    lead = get_lead(session, lead_id)
    if lead is None:
        return None
    lead.status = status
    session.commit()
    session.refresh(lead)
    return lead


__all__ = [
    "LeadInsertResult",
    "insert_lead",
    "find_by_verification_token",
    "get_lead",
    "list_leads",
    "update_lead_status",
]
