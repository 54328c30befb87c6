"""Pydantic schemas for API request/response models."""
from .device import (
    DeviceRegister,
    DeviceRegisterResponse,
    DeviceSummary,
    DeviceListItem,
    DeviceListResponse,
    StatusResponse,
)
from .notification import (
    NotificationData,
    NotificationSend,
    NotificationSchedule,
    SendResultItem,
    SendResponse,
    SingleSendResponse,
)
from .agent import (
    ToolNotifyRequest,
    ToolNotifyResponse,
    AIDecision,
    AIDecisionResponse,
    TaskComplete,
)
from .job import JobResponse, JobListResponse

__all__ = [
    "DeviceRegister",
    "DeviceRegisterResponse",
    "DeviceSummary",
    "DeviceListItem",
    "DeviceListResponse",
    "StatusResponse",
    "NotificationData",
    "NotificationSend",
    "NotificationSchedule",
    "SendResultItem",
    "SendResponse",
    "SingleSendResponse",
    "ToolNotifyRequest",
    "ToolNotifyResponse",
    "AIDecision",
    "AIDecisionResponse",
    "TaskComplete",
    "JobResponse",
    "JobListResponse",
]
