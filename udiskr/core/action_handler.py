import asyncio
from typing import AsyncIterable

from udiskr.core.errors import EventStreamClosed
from udiskr.core.events import ActionInvoked, ActionRequested
from udiskr.core.registry import Registry


class ActionHandler:
    """Opens the mount point when a mounted notification is clicked."""

    def __init__(self, command_runner, logger):
        self.command_runner = command_runner
        self.logger = logger

    def handle(self, registry: Registry, notification_id: int) -> bool:
        # Every action key opens the directory.
        entry = registry.find_by_notification_id(notification_id)
        if entry is None:
            return False
        return self.command_runner.open_directory(entry.mount_point)

    async def run(self, events: AsyncIterable[ActionInvoked], outbox: asyncio.Queue):
        async for event in events:
            await outbox.put(ActionRequested(event.notification_id))
        raise EventStreamClosed("ActionInvoked")
