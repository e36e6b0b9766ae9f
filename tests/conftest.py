"""
Shared fixtures and in-memory stand-ins for the bus clients.
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from udiskr.core.results import CallResult
from udiskr.shared.config_handler import ConfigHandler

BLOCK = "/org/freedesktop/UDisks2/block_devices/"
ALREADY_MOUNTED = "org.freedesktop.UDisks2.Error.AlreadyMounted"


class FakeUDisks:
    """Mounts everything at /media/<name> unless told otherwise."""

    def __init__(self):
        self.results = {}
        self.mount_calls = []

    async def mount(self, path):
        self.mount_calls.append(path)
        if path in self.results:
            return self.results[path]
        return CallResult.success("/media/" + path.rsplit("/", 1)[-1])


class FakeNotifications:
    """Hands out ids from ``ids``; a None id means the Notify call failed."""

    def __init__(self, ids=None):
        self.ids = list(ids or [])
        self.sent = []
        self._next_id = 100

    async def notify(self, summary, body, actions, replaces_id=0):
        self.sent.append(
            {
                "summary": summary,
                "body": body,
                "actions": list(actions),
                "replaces_id": replaces_id,
            }
        )
        if self.ids:
            next_id = self.ids.pop(0)
        else:
            self._next_id += 1
            next_id = self._next_id
        if next_id is None:
            return CallResult.failure(
                "org.freedesktop.DBus.Error.ServiceUnknown", "no notification daemon"
            )
        return CallResult.success(next_id)


class FakeCommandRunner:
    def __init__(self, succeed=True):
        self.opened = []
        self.succeed = succeed

    def open_directory(self, path):
        self.opened.append(path)
        return self.succeed


class QueueStream:
    """Event stream fed by the test; ``close`` ends it."""

    _END = object()

    def __init__(self):
        self._queue = asyncio.Queue()

    def put(self, event):
        self._queue.put_nowait(event)

    def close(self):
        self._queue.put_nowait(self._END)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._queue.get()
        if item is self._END:
            raise StopAsyncIteration
        return item


@pytest.fixture
def logger():
    return MagicMock()


@pytest.fixture
def config(tmp_path):
    return ConfigHandler(MagicMock(), config_file=tmp_path / "config.toml")


@pytest.fixture
def udisks():
    return FakeUDisks()


@pytest.fixture
def notifications():
    return FakeNotifications()


@pytest.fixture
def command_runner():
    return FakeCommandRunner()


@pytest.fixture
def dev_block_config(tmp_path):
    """Config whose block devices live under /dev_block/."""
    config_file = tmp_path / "dev_block.toml"
    config_file.write_text('[udisks]\nblock_devices_prefix = "/dev_block/"\n')
    return ConfigHandler(MagicMock(), config_file=config_file)
