"""Services for push delivery, device registry, and outreach scheduling."""
from .gateway import GatewayClient, GatewayConfig
from .registry import DeviceRegistry, DeviceMetadata
from .delivery import DeliveryService
from .content import ContentGenerator
from .scheduler import OutreachScheduler

__all__ = [
    "GatewayClient",
    "GatewayConfig",
    "DeviceRegistry",
    "DeviceMetadata",
    "DeliveryService",
    "ContentGenerator",
    "OutreachScheduler",
]
