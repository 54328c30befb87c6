"""Device registration schemas for API."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class DeviceRegister(BaseModel):
    """Request to register (or re-register) a device."""
    token: str = Field(..., min_length=1, max_length=200, pattern=r"^[A-Za-z0-9._:-]+$")
    name: Optional[str] = Field(None, max_length=255)
    model: Optional[str] = Field(None, max_length=255)
    os_version: Optional[str] = Field(None, max_length=64)
    app_version: Optional[str] = Field(None, max_length=64)


class DeviceSummary(BaseModel):
    """Device as returned after registration."""
    token_prefix: str
    name: Optional[str] = None
    registered_at: datetime


class DeviceRegisterResponse(BaseModel):
    status: str
    device: DeviceSummary


class DeviceListItem(BaseModel):
    token_prefix: str
    name: Optional[str] = None
    model: Optional[str] = None
    last_seen_at: datetime


class DeviceListResponse(BaseModel):
    count: int
    devices: List[DeviceListItem]


class StatusResponse(BaseModel):
    status: str
