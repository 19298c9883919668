"""
Inbound checkout webhooks.

One route per (platform, store). Every payload is classified into exactly one
action and acknowledged with the matching status code:
  200 - paid flag recorded, or nothing to do
  202 - verification scheduled (or already pending)
  400 - unsupported platform or no transaction id
  503 - flag store or queue unavailable; the sender should retry
"""
import time
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from recovery.api.deps import get_webhook_intake
from recovery.models.schemas.base import ResponseBase
from recovery.services.webhook_intake import WebhookIntake
from recovery.utils import get_logger, log_performance

router = APIRouter()
logger = get_logger(__name__)


# Plain def: the flag store and queue clients are blocking, so FastAPI runs
# this in its threadpool instead of the event loop.
@router.post(
    "/{platform}/{store_id}",
    response_model=ResponseBase,
    summary="Receive a checkout webhook",
)
def receive_webhook(
    platform: str,
    store_id: str,
    request: Request,
    payload: Any = Body(None),
    intake: WebhookIntake = Depends(get_webhook_intake),
) -> JSONResponse:
    start_time = time.time()
    request_id = getattr(request.state, "request_id", None)

    if not isinstance(payload, dict):
        logger.warning(
            "Webhook body is not a JSON object",
            platform=platform,
            store_id=store_id,
            body_type=type(payload).__name__,
            request_id=request_id,
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Webhook body must be a JSON object",
        )

    logger.info("Webhook received", platform=platform, store_id=store_id, request_id=request_id)
    result = intake.handle(platform, store_id, payload, request_id=request_id)

    log_performance(
        operation="receive_webhook",
        duration_ms=(time.time() - start_time) * 1000,
        additional_data={"platform": platform, "action": result.data.get("action"), "status_code": result.status_code},
    )

    body = ResponseBase(success=True, message=result.message, data=result.data)
    return JSONResponse(status_code=result.status_code, content=body.model_dump(mode="json"))
