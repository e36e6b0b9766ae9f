import asyncio
from typing import AsyncIterable, Optional

from udiskr.core.block_device import BLOCK_DEVICES_PREFIX, device_name
from udiskr.core.errors import EventStreamClosed
from udiskr.core.events import DeviceRemoved, InterfacesRemoved
from udiskr.core.registry import Entry, Registry


class UnmountHandler:
    """Correlates InterfacesRemoved signals with tracked devices."""

    def __init__(self, notifications, config, logger):
        self.notifications = notifications
        self.logger = logger
        self.prefix = config.get_root_setting(
            ["udisks", "block_devices_prefix"], BLOCK_DEVICES_PREFIX
        )
        self.summary = config.get_root_setting(
            ["notifications", "unmounted_summary"], "block device unmounted"
        )

    async def handle(self, registry: Registry, path: str) -> Optional[Entry]:
        """
        Reports and forgets the device at ``path``. Unknown paths are ignored.
        The entry is dropped even if the notification could not be shown.
        """
        index = registry.find_by_path(path)
        if index is None:
            return None
        entry = registry[index]
        message = (
            f"/dev/{device_name(path, self.prefix)} unmounted from {entry.mount_point}"
        )
        self.logger.info(message)
        try:
            await self.notifications.notify(
                self.summary, message, [], replaces_id=entry.notification_id
            )
        finally:
            registry.remove(index)
        return entry

    async def run(self, events: AsyncIterable[InterfacesRemoved], outbox: asyncio.Queue):
        async for event in events:
            await outbox.put(DeviceRemoved(event.path))
        raise EventStreamClosed("InterfacesRemoved")
