"""Notification API endpoints - immediate and scheduled sends."""
import logging

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_delivery, get_scheduler, verify_api_key
from ..exceptions import DeviceNotFoundError, SchedulerNotRunningError
from ..schemas.job import JobResponse
from ..schemas.notification import (
    NotificationSchedule,
    NotificationSend,
    SendResponse,
    SendResultItem,
    SingleSendResponse,
)
from ..services.delivery import DeliveryService
from ..services.messages import count_successes
from ..services.scheduler import OutreachScheduler
from ..utils.tokens import token_prefix

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/notifications",
    tags=["notifications"],
    dependencies=[Depends(verify_api_key)],
)


def build_send_response(outcomes) -> SendResponse:
    return SendResponse(
        sent=count_successes(outcomes),
        results=[
            SendResultItem(
                token_prefix=token_prefix(outcome.token),
                success=outcome.success,
                reason=outcome.reason,
            )
            for outcome in outcomes
        ],
    )


@router.post("/send", response_model=SendResponse)
async def send_to_all(
    request: NotificationSend,
    delivery: DeliveryService = Depends(get_delivery),
):
    """Send a notification to every registered device."""
    outcomes = await delivery.broadcast(request.to_message())
    return build_send_response(outcomes)


@router.post("/send/{token}", response_model=SingleSendResponse)
async def send_to_device(
    token: str,
    request: NotificationSend,
    delivery: DeliveryService = Depends(get_delivery),
):
    """Send a notification to one registered device."""
    try:
        outcome = await delivery.deliver_to(token, request.to_message())
    except DeviceNotFoundError:
        raise HTTPException(status_code=404, detail="Device not found")

    return SingleSendResponse(
        success=outcome.success,
        gateway_id=outcome.gateway_id,
        reason=outcome.reason,
    )


@router.post("/schedule", response_model=JobResponse, status_code=201)
async def schedule_notification(
    request: NotificationSchedule,
    scheduler: OutreachScheduler = Depends(get_scheduler),
):
    """Broadcast a notification once after `delay_minutes`."""
    try:
        job = scheduler.schedule_once(
            request.to_message(default_context="scheduled"),
            delay_minutes=request.delay_minutes,
        )
    except SchedulerNotRunningError:
        raise HTTPException(status_code=503, detail="Scheduler is not running")
    return JobResponse.model_validate(job)
