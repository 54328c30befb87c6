"""AI agent callbacks and application event endpoints."""
import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException

from ..dependencies import get_scheduler, verify_api_key
from ..exceptions import SchedulerNotRunningError
from ..schemas.agent import AIDecisionResponse, TaskComplete, ToolNotifyRequest, ToolNotifyResponse
from ..schemas.notification import SendResponse
from ..services.scheduler import OutreachScheduler
from .notifications import build_send_response

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1",
    tags=["agent"],
    dependencies=[Depends(verify_api_key)],
)


@router.post("/agent/notify", response_model=ToolNotifyResponse)
async def agent_notify(
    request: ToolNotifyRequest,
    scheduler: OutreachScheduler = Depends(get_scheduler),
):
    """Notify tool called by the AI agent.

    High urgency uses the alert category; low and normal a plain message.
    """
    try:
        notified = await scheduler.notify_from_tool(request.title, request.message, request.urgency)
    except SchedulerNotRunningError:
        raise HTTPException(status_code=503, detail="Scheduler is not running")
    return ToolNotifyResponse(success=True, devices_notified=notified)


@router.post("/agent/decision", response_model=AIDecisionResponse)
async def agent_decision(
    payload: Any = Body(None),
    scheduler: OutreachScheduler = Depends(get_scheduler),
):
    """Structured {shouldNotify, message} decision from the AI agent.

    The body is validated by the scheduler so malformed decisions come back
    as status "ignored" instead of a 422.
    """
    try:
        result = await scheduler.handle_ai_decision(payload)
    except SchedulerNotRunningError:
        raise HTTPException(status_code=503, detail="Scheduler is not running")
    return AIDecisionResponse(status=result.status, devices_notified=result.devices_notified)


@router.post("/events/task-complete", response_model=SendResponse)
async def task_complete(
    request: TaskComplete,
    scheduler: OutreachScheduler = Depends(get_scheduler),
):
    """Application event: broadcast that a task finished."""
    try:
        outcomes = await scheduler.task_complete(request.name, request.result)
    except SchedulerNotRunningError:
        raise HTTPException(status_code=503, detail="Scheduler is not running")
    return build_send_response(outcomes)
