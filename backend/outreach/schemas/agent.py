"""Schemas for AI agent callbacks and application events."""
from typing import Optional

from pydantic import BaseModel, Field, StrictBool, StrictStr

from ..services.messages import Urgency


class ToolNotifyRequest(BaseModel):
    """Notification requested by the AI agent's notify tool."""
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1, max_length=4000)
    urgency: Urgency = Urgency.NORMAL


class ToolNotifyResponse(BaseModel):
    success: bool
    devices_notified: int


class AIDecision(BaseModel):
    """Structured decision from the agent on whether to reach out."""
    should_notify: StrictBool = Field(..., alias="shouldNotify")
    message: StrictStr
    title: Optional[StrictStr] = Field(None, max_length=255)

    class Config:
        populate_by_name = True


class AIDecisionResponse(BaseModel):
    """Outcome of an AI decision: sent, declined or ignored (malformed)."""
    success: bool = True
    status: str
    devices_notified: int = 0


class TaskComplete(BaseModel):
    """Application event: a long-running task finished."""
    name: str = Field(..., min_length=1, max_length=255)
    result: str = Field(..., max_length=1000)
