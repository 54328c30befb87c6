"""Message and delivery result types shared by the push services."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Union

DataValue = Union[str, int, float]


class Urgency(str, Enum):
    """Caller-supplied urgency, mapped to APNs priority."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"

    @property
    def apns_priority(self) -> str:
        return {"low": "1", "normal": "5", "high": "10"}[self.value]


# Client-side notification categories (registered by the app with actions)
CATEGORY_MESSAGE = "OUTREACH_MESSAGE"
CATEGORY_ALERT = "OUTREACH_ALERT"
CATEGORY_MORNING = "MORNING_CHECKIN"
CATEGORY_EVENING = "EVENING_CHECKIN"
CATEGORY_TASK_COMPLETE = "TASK_COMPLETE"


def category_for_urgency(urgency: Urgency) -> str:
    """High urgency gets the alert category, everything else a plain message."""
    return CATEGORY_ALERT if urgency == Urgency.HIGH else CATEGORY_MESSAGE


# Reasons meaning the token will never be deliverable again
PERMANENT_FAILURE_REASONS = frozenset({
    "BadDeviceToken",
    "Unregistered",
    "ExpiredToken",
    "DeviceTokenNotForTopic",
})


@dataclass
class OutboundMessage:
    """A notification to deliver to one or more devices."""
    title: str
    body: str
    category: str = CATEGORY_MESSAGE
    subtitle: Optional[str] = None
    badge: Optional[int] = None
    data: Dict[str, DataValue] = field(default_factory=dict)
    urgency: Urgency = Urgency.NORMAL
    thread_id: Optional[str] = None  # defaults to category
    sound: str = "default"

    def to_payload(self) -> dict:
        """Build the APNs JSON body."""
        alert = {"title": self.title, "body": self.body}
        if self.subtitle:
            alert["subtitle"] = self.subtitle

        aps = {
            "alert": alert,
            "sound": self.sound,
            "category": self.category,
            "thread-id": self.thread_id or self.category,
        }
        if self.badge is not None:
            aps["badge"] = self.badge

        payload = {"aps": aps}
        if self.data:
            payload["data"] = dict(self.data)
        return payload


@dataclass
class DeliveryOutcome:
    """Result of one push to one device.

    status_code is None when the request never got a gateway response.
    """
    token: str
    success: bool
    status_code: Optional[int] = None
    gateway_id: Optional[str] = None
    reason: Optional[str] = None

    @property
    def is_permanent_failure(self) -> bool:
        """Whether the gateway says this token is dead."""
        if self.success:
            return False
        return self.status_code == 410 or self.reason in PERMANENT_FAILURE_REASONS


def count_successes(outcomes) -> int:
    return sum(1 for outcome in outcomes if outcome.success)
