"""Device registry - durable map of push tokens to device metadata."""
import asyncio
import logging
import weakref
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models.device import Device
from ..utils.db_utils import retry_on_lock
from ..utils.tokens import token_prefix, utcnow

logger = logging.getLogger(__name__)


@dataclass
class DeviceMetadata:
    """Client-supplied device details."""
    name: Optional[str] = None
    model: Optional[str] = None
    os_version: Optional[str] = None
    app_version: Optional[str] = None


class DeviceRegistry:
    """Create, update, remove and list registered devices.

    Writes for the same token are serialized with a per-token lock; writes
    for different tokens run concurrently.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, token: str) -> asyncio.Lock:
        lock = self._locks.get(token)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[token] = lock
        return lock

    async def upsert(self, token: str, metadata: DeviceMetadata) -> Device:
        """Register a device, or refresh its metadata if already known.

        registered_at is set once; last_seen_at never moves backwards.
        """
        async with self._lock_for(token):
            async with self._session_factory() as session:
                now = self._clock()
                result = await session.execute(select(Device).where(Device.token == token))
                device = result.scalar_one_or_none()

                if device is None:
                    device = Device(token=token, registered_at=now, last_seen_at=now)
                    session.add(device)
                    created = True
                else:
                    device.last_seen_at = max(device.last_seen_at, now)
                    created = False

                device.name = metadata.name
                device.model = metadata.model
                device.os_version = metadata.os_version
                device.app_version = metadata.app_version

                await retry_on_lock(session.commit)

        if created:
            logger.info(f"New device registered: {token_prefix(token)}")
        else:
            logger.info(f"Device updated: {token_prefix(token)}")
        return device

    async def remove(self, token: str) -> bool:
        """Delete a device. Returns True if it existed."""
        async with self._lock_for(token):
            async with self._session_factory() as session:
                result = await session.execute(delete(Device).where(Device.token == token))
                await retry_on_lock(session.commit)

        removed = result.rowcount > 0
        if removed:
            logger.info(f"Device unregistered: {token_prefix(token)}")
        return removed

    async def get(self, token: str) -> Optional[Device]:
        async with self._session_factory() as session:
            result = await session.execute(select(Device).where(Device.token == token))
            return result.scalar_one_or_none()

    async def list_tokens(self) -> List[str]:
        """All registered tokens, oldest registration first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Device.token).order_by(Device.registered_at, Device.token)
            )
            return list(result.scalars().all())

    async def list_devices(self) -> List[Device]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Device).order_by(Device.registered_at, Device.token)
            )
            return list(result.scalars().all())
