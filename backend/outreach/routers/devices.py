"""Device registration API endpoints for push notifications."""
import logging

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_registry, verify_api_key
from ..schemas.device import (
    DeviceListItem,
    DeviceListResponse,
    DeviceRegister,
    DeviceRegisterResponse,
    DeviceSummary,
    StatusResponse,
)
from ..services.registry import DeviceMetadata, DeviceRegistry
from ..utils.tokens import token_prefix

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/devices",
    tags=["devices"],
    dependencies=[Depends(verify_api_key)],
)


@router.post("/register", response_model=DeviceRegisterResponse)
async def register_device(
    request: DeviceRegister,
    registry: DeviceRegistry = Depends(get_registry),
):
    """Register a device for push notifications.

    Re-registering a known token refreshes its metadata and last_seen_at.
    The app should call this on every launch to keep the token current.
    """
    device = await registry.upsert(
        request.token,
        DeviceMetadata(
            name=request.name,
            model=request.model,
            os_version=request.os_version,
            app_version=request.app_version,
        ),
    )
    return DeviceRegisterResponse(
        status="registered",
        device=DeviceSummary(
            token_prefix=token_prefix(device.token),
            name=device.name,
            registered_at=device.registered_at,
        ),
    )


@router.delete("/{token}", response_model=StatusResponse)
async def unregister_device(
    token: str,
    registry: DeviceRegistry = Depends(get_registry),
):
    """Remove a device from the registry."""
    if not await registry.remove(token):
        raise HTTPException(status_code=404, detail="Device not found")
    return StatusResponse(status="removed")


@router.get("", response_model=DeviceListResponse)
async def list_devices(registry: DeviceRegistry = Depends(get_registry)):
    """List registered devices (tokens redacted)."""
    devices = await registry.list_devices()
    return DeviceListResponse(
        count=len(devices),
        devices=[
            DeviceListItem(
                token_prefix=token_prefix(device.token),
                name=device.name,
                model=device.model,
                last_seen_at=device.last_seen_at,
            )
            for device in devices
        ],
    )
