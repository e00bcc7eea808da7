"""Notification dispatch and delivery log routes."""

from uuid import UUID

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ..config import settings
from ..dependencies import get_dispatch_engine
from ..errors import DenialError, NotFoundError
from ..rate_limit import limiter
from .engine import DeniedResult, DispatchEngine
from .schemas import DeliveryLogResponse, NotificationSendRequest

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.post("/send")
@limiter.limit(settings.rate_limit_send)
def send_notification(
    request: Request,
    payload: NotificationSendRequest,
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    """Dispatch one notification.

    201 with the delivery log entry whenever a send was attempted, including
    failed deliveries (status=failed). 403 with the reason when the user's
    preferences block it.
    """
    outcome = engine.dispatch(payload.user_id, payload.notification_type, payload.channel, payload.content)
    if isinstance(outcome, DeniedResult):
        raise DenialError(
            outcome.reason,
            userId=outcome.user_id,
            type=str(outcome.notification_type),
            channel=str(outcome.channel),
        )
    return JSONResponse(DeliveryLogResponse.from_entry(outcome).to_json(), status_code=201)


# Registered before /logs/{log_id} so a user whose id is "logs" still gets their list
@router.get("/{user_id}/logs")
def list_delivery_logs(
    user_id: str,
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    return JSONResponse([DeliveryLogResponse.from_entry(e).to_json() for e in engine.list_logs(user_id)])


@router.get("/logs/{log_id}")
def get_delivery_log(
    log_id: str,
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    try:
        uid = UUID(log_id)
    except ValueError:
        raise NotFoundError(f"Delivery log {log_id} not found") from None
    return JSONResponse(DeliveryLogResponse.from_entry(engine.get_log(uid)).to_json())
