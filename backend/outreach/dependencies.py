"""FastAPI dependencies: API key check and access to wired-up services."""
import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException, Request

from .services.delivery import DeliveryService
from .services.registry import DeviceRegistry
from .services.scheduler import OutreachScheduler
from .utils.tokens import token_prefix

logger = logging.getLogger(__name__)


async def verify_api_key(
    request: Request,
    x_api_key: Optional[str] = Header(None),
):
    """Require X-API-Key to match SHARED_SECRET, when one is configured."""
    expected = request.app.state.settings.shared_secret
    if not expected:
        return

    if x_api_key is None or not hmac.compare_digest(x_api_key.encode(), expected.encode()):
        path = request.url.path
        for value in request.path_params.values():
            path = path.replace(str(value), token_prefix(str(value)))
        logger.warning(f"Rejected request to {path} - invalid API key")
        raise HTTPException(status_code=401, detail="Invalid API key")


def get_registry(request: Request) -> DeviceRegistry:
    return request.app.state.registry


def get_delivery(request: Request) -> DeliveryService:
    return request.app.state.delivery


def get_scheduler(request: Request) -> OutreachScheduler:
    return request.app.state.scheduler
