import asyncio
from typing import AsyncIterable, Dict, Optional

from udiskr.core.events import (
    ActionInvoked,
    ActionRequested,
    DeviceRemoved,
    InterfacesAdded,
    InterfacesRemoved,
    MountAbandoned,
    MountStarted,
    MountSucceeded,
)
from udiskr.core.registry import Registry


class Coordinator:
    """
    Owns the registry of mounted devices.

    The three event flows never touch the registry themselves. They post
    messages to ``inbox`` and a single owner task applies them one at a
    time, so no entry is read or written by two flows at once.
    """

    def __init__(
        self,
        mount_pipeline,
        unmount_handler,
        action_handler,
        logger,
        registry: Optional[Registry] = None,
    ):
        self.mount_pipeline = mount_pipeline
        self.unmount_handler = unmount_handler
        self.action_handler = action_handler
        self.logger = logger
        self.registry = registry if registry is not None else Registry()
        self.inbox: asyncio.Queue = asyncio.Queue()
        # Paths with a mount in progress -> removed before it finished.
        self._mounting: Dict[str, bool] = {}

    async def dispatch(self, message) -> None:
        if isinstance(message, MountStarted):
            self._mounting[message.path] = False
        elif isinstance(message, MountSucceeded):
            removed_meanwhile = self._mounting.pop(message.entry.device_path, False)
            replaced = self.registry.insert(message.entry)
            if replaced is not None:
                self.logger.warning(
                    f"{replaced.device_path} was already tracked at "
                    f"{replaced.mount_point}; replacing it"
                )
            if removed_meanwhile:
                # The device left before its mount finished. Report the
                # unmount now instead of keeping an entry nothing will clear.
                await self.unmount_handler.handle(
                    self.registry, message.entry.device_path
                )
        elif isinstance(message, MountAbandoned):
            self._mounting.pop(message.path, None)
        elif isinstance(message, DeviceRemoved):
            if message.path in self._mounting:
                self._mounting[message.path] = True
            await self.unmount_handler.handle(self.registry, message.path)
        elif isinstance(message, ActionRequested):
            self.action_handler.handle(self.registry, message.notification_id)
        else:
            self.logger.warning(f"Ignoring unknown message: {message!r}")

    async def serve(self) -> None:
        while True:
            message = await self.inbox.get()
            try:
                await self.dispatch(message)
            except Exception as e:
                self.logger.error(f"Error while handling {message!r}: {e}", exc_info=True)
            finally:
                self.inbox.task_done()

    async def run(
        self,
        added: AsyncIterable[InterfacesAdded],
        removed: AsyncIterable[InterfacesRemoved],
        invoked: AsyncIterable[ActionInvoked],
    ) -> None:
        """
        Runs until the process is terminated. The first stream to end raises
        EventStreamClosed out of here and the remaining tasks are cancelled.
        """
        tasks = [
            asyncio.create_task(self.serve(), name="registry-owner"),
            asyncio.create_task(
                self.mount_pipeline.run(added, self.inbox), name="mount-pipeline"
            ),
            asyncio.create_task(
                self.unmount_handler.run(removed, self.inbox), name="unmount-handler"
            ),
            asyncio.create_task(
                self.action_handler.run(invoked, self.inbox), name="action-handler"
            ),
        ]
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
