"""Notification schemas for API."""
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, StrictFloat, StrictInt, StrictStr, field_validator

from ..services.messages import CATEGORY_MESSAGE, OutboundMessage, Urgency

ContextType = Literal["morning", "evening", "task_complete", "ai", "manual", "scheduled"]


class NotificationData(BaseModel):
    """Structured data delivered to the app alongside a notification.

    Only these keys are accepted. Free-form values go in `attributes` and
    must be strings or numbers.
    """
    context_type: Optional[ContextType] = None
    task_name: Optional[str] = Field(None, max_length=255)
    job_id: Optional[str] = Field(None, max_length=128)
    deep_link: Optional[str] = Field(None, max_length=2048)
    attributes: Dict[str, Union[StrictInt, StrictFloat, StrictStr]] = Field(default_factory=dict)

    class Config:
        extra = "forbid"

    @field_validator("attributes")
    @classmethod
    def check_attribute_keys(cls, value):
        reserved = {"context_type", "task_name", "job_id", "deep_link"}
        for key in value:
            if not key or len(key) > 64:
                raise ValueError("attribute keys must be 1-64 characters")
            if key in reserved:
                raise ValueError(f"attribute key '{key}' is reserved")
        return value

    def to_payload(self) -> Dict[str, Union[str, int, float]]:
        """Flatten into the opaque data dict sent under the APNs 'data' key."""
        payload = {
            key: value
            for key, value in (
                ("context_type", self.context_type),
                ("task_name", self.task_name),
                ("job_id", self.job_id),
                ("deep_link", self.deep_link),
            )
            if value is not None
        }
        payload.update(self.attributes)
        return payload


class NotificationSend(BaseModel):
    """Request to send a notification."""
    title: str = Field(..., min_length=1, max_length=255)
    body: str = Field(..., min_length=1, max_length=4000)
    subtitle: Optional[str] = Field(None, max_length=255)
    category: str = Field(default=CATEGORY_MESSAGE, min_length=1, max_length=64)
    badge: Optional[int] = Field(None, ge=0)
    data: Optional[NotificationData] = None
    urgency: Urgency = Urgency.NORMAL

    def to_message(self, default_context: str = "manual") -> OutboundMessage:
        data = self.data or NotificationData()
        if data.context_type is None:
            data = data.model_copy(update={"context_type": default_context})
        return OutboundMessage(
            title=self.title,
            body=self.body,
            subtitle=self.subtitle,
            category=self.category,
            badge=self.badge,
            data=data.to_payload(),
            urgency=self.urgency,
        )


class NotificationSchedule(NotificationSend):
    """Request to send a notification once, after a delay."""
    delay_minutes: float = Field(..., gt=0, le=60 * 24 * 30)


class SendResultItem(BaseModel):
    token_prefix: str
    success: bool
    reason: Optional[str] = None


class SendResponse(BaseModel):
    """Result of a broadcast."""
    sent: int
    results: List[SendResultItem]


class SingleSendResponse(BaseModel):
    success: bool
    gateway_id: Optional[str] = None
    reason: Optional[str] = None
