"""Device model - stores push tokens and device metadata."""
from sqlalchemy import Column, String, DateTime

from ..database import Base


class Device(Base):
    """Registered device for proactive push notifications."""

    __tablename__ = "devices"

    token = Column(String, primary_key=True)
    name = Column(String, nullable=True)
    model = Column(String, nullable=True)
    os_version = Column(String, nullable=True)
    app_version = Column(String, nullable=True)
    registered_at = Column(DateTime, nullable=False)  # first seen, never changes
    last_seen_at = Column(DateTime, nullable=False, index=True)
