"""API routers."""
from .devices import router as devices_router
from .notifications import router as notifications_router
from .agent import router as agent_router
from .jobs import router as jobs_router

__all__ = ["devices_router", "notifications_router", "agent_router", "jobs_router"]
