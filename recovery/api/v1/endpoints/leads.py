"""
Recovery lead endpoints: list, inspect and move leads through the follow-up
workflow (new -> contacted -> recovered | lost).
"""
import time
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from recovery.api.deps import get_db, require_admin_token
from recovery.models.db.enums import LeadStatus
from recovery.models.schemas.leads import LeadRead, LeadStatusUpdate
from recovery.services import lead_store
from recovery.utils import get_logger, log_business_event, log_performance

router = APIRouter(dependencies=[Depends(require_admin_token)])
logger = get_logger(__name__)


def _parse_status(value: str) -> LeadStatus:
    try:
        return LeadStatus(value.strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in LeadStatus)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid lead status '{value}'. Expected one of: {allowed}",
        )


@router.get(
    "",
    response_model=List[LeadRead],
    summary="List recovery leads, newest first"
)
def list_leads(
    request: Request,
    store_id: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
) -> List[LeadRead]:
    start_time = time.time()
    request_id = getattr(request.state, "request_id", None)
    lead_status = _parse_status(status_filter) if status_filter else None

    leads = lead_store.list_leads(db, store_id=store_id, status=lead_status, limit=limit, offset=offset)

    duration_ms = (time.time() - start_time) * 1000
    log_performance(
        operation="list_leads",
        duration_ms=duration_ms,
        additional_data={"leads_returned": len(leads)}
    )
    logger.info(
        "Lead list completed",
        store_id=store_id,
        status=lead_status.value if lead_status else None,
        leads_returned=len(leads),
        request_id=request_id,
    )
    return [LeadRead.model_validate(lead) for lead in leads]


@router.get(
    "/{lead_id}",
    response_model=LeadRead,
    summary="Get a single lead"
)
def get_lead(lead_id: int, db: Session = Depends(get_db)) -> LeadRead:
    lead = lead_store.get_lead(db, lead_id)
    if lead is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Lead {lead_id} not found")
    return LeadRead.model_validate(lead)


@router.patch(
    "/{lead_id}/status",
    response_model=LeadRead,
    summary="Update a lead's follow-up status"
)
def update_lead_status(
    lead_id: int,
    update: LeadStatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
) -> LeadRead:
    """Set the follow-up status. Unknown statuses are rejected with 400."""
    new_status = _parse_status(update.status)
    lead = lead_store.update_lead_status(db, lead_id, new_status)
    if lead is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Lead {lead_id} not found")

    log_business_event(
        event_type="lead_status_updated",
        details={"lead_id": lead.id, "status": new_status.value},
        store_id=lead.store_id,
        request_id=getattr(request.state, "request_id", None),
    )
    return LeadRead.model_validate(lead)
