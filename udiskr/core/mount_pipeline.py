import asyncio
from typing import AsyncIterable, Optional

from udiskr.core.block_device import (
    ALREADY_MOUNTED_ERROR,
    BLOCK_DEVICES_PREFIX,
    MountFailure,
    classify_mount_error,
    device_name,
    is_block_device,
)
from udiskr.core.errors import EventStreamClosed
from udiskr.core.events import (
    InterfacesAdded,
    MountAbandoned,
    MountStarted,
    MountSucceeded,
)
from udiskr.core.registry import NO_NOTIFICATION, Entry
from udiskr.core.results import CallResult


class MountPipeline:
    """
    Turns UDisks2 InterfacesAdded signals into mounted, notified devices.

    The pipeline never reads the registry. A repeated add for a device that
    is still mounted is just another mount attempt; UDisks2 answers it with
    AlreadyMounted and the event is dropped.
    """

    def __init__(self, udisks, notifications, config, logger):
        self.udisks = udisks
        self.notifications = notifications
        self.logger = logger
        self.prefix = config.get_root_setting(
            ["udisks", "block_devices_prefix"], BLOCK_DEVICES_PREFIX
        )
        self.suppressed_errors = config.get_root_setting(
            ["udisks", "suppressed_mount_errors"], [ALREADY_MOUNTED_ERROR]
        )
        self.summary = config.get_root_setting(
            ["notifications", "mounted_summary"], "block device mounted"
        )
        open_label = config.get_root_setting(["notifications", "open_label"], "Open")
        self.actions = ["default", open_label, "open", open_label]

    async def handle(self, event: InterfacesAdded) -> Optional[Entry]:
        """
        Mounts the device behind ``event`` and shows the mounted notification.
        Returns the entry to track, or None when the event was ignored or the
        mount failed.
        """
        if not is_block_device(event.path, self.prefix):
            return None
        result = await self.udisks.mount(event.path)
        if not result.ok:
            self._report_mount_failure(event.path, result)
            return None
        mount_point = result.value
        message = f"Mounted /dev/{device_name(event.path, self.prefix)} at {mount_point}"
        self.logger.info(message)
        notified = await self.notifications.notify(self.summary, message, self.actions)
        notification_id = notified.value if notified.ok else NO_NOTIFICATION
        return Entry(
            device_path=event.path,
            mount_point=mount_point,
            notification_id=notification_id,
        )

    def _report_mount_failure(self, path: str, result: CallResult) -> None:
        failure = classify_mount_error(result.error_name, self.suppressed_errors)
        if failure is MountFailure.ALREADY_MOUNTED:
            return
        if failure is MountFailure.NOT_A_FILESYSTEM:
            self.logger.debug(f"Skipping {path}: no mountable filesystem ({result})")
            return
        self.logger.error(f"Failed to mount device {path}: {result}")

    async def run(self, events: AsyncIterable[InterfacesAdded], outbox: asyncio.Queue):
        """
        Brackets every mount attempt with MountStarted and either
        MountSucceeded or MountAbandoned, so the registry owner knows which
        paths are still being mounted.
        """
        async for event in events:
            if not is_block_device(event.path, self.prefix):
                continue
            await outbox.put(MountStarted(event.path))
            entry = None
            try:
                entry = await self.handle(event)
            except Exception as e:
                self.logger.error(
                    f"Error while processing added object {event.path}: {e}",
                    exc_info=True,
                )
            if entry is not None:
                await outbox.put(MountSucceeded(entry))
            else:
                await outbox.put(MountAbandoned(event.path))
        raise EventStreamClosed("InterfacesAdded")
