"""Scheduled job schemas for API."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class JobResponse(BaseModel):
    """Schema for a scheduled job in API responses."""
    id: str
    name: str
    kind: str  # fixed, once
    trigger: str
    state: str  # idle, firing
    next_fire_time: Optional[datetime] = None
    last_fire_time: Optional[datetime] = None

    class Config:
        from_attributes = True


class JobListResponse(BaseModel):
    count: int
    jobs: List[JobResponse]
