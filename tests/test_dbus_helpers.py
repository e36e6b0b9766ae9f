import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from dbus_fast import BusType, Message, MessageType, Variant

from udiskr.core.errors import EventStreamClosed, StartupError
from udiskr.core.events import ActionInvoked, InterfacesAdded, InterfacesRemoved
from udiskr.shared.config_handler import ConfigHandler
from udiskr.shared.dbus_helpers import NotificationsClient, UDisksClient, connect
from tests.conftest import ALREADY_MOUNTED, BLOCK

pytestmark = pytest.mark.asyncio

SERVICE_OWNER = ":1.5"


def method_return(signature="", body=None):
    return Message(
        message_type=MessageType.METHOD_RETURN,
        reply_serial=1,
        signature=signature,
        body=body or [],
    )


def error_reply(name, text):
    return Message(
        message_type=MessageType.ERROR,
        error_name=name,
        reply_serial=1,
        signature="s",
        body=[text],
    )


class FakeBus:
    """Answers calls by member name and lets tests emit signals."""

    def __init__(self, replies=None):
        self.replies = {"GetNameOwner": method_return("s", [SERVICE_OWNER])}
        self.replies.update(replies or {})
        self.calls = []
        self.handlers = []
        self.disconnected = asyncio.Event()

    async def call(self, message):
        self.calls.append(message)
        reply = self.replies.get(message.member)
        if isinstance(reply, Exception):
            raise reply
        if reply is None:
            return method_return()
        return reply

    def add_message_handler(self, handler):
        self.handlers.append(handler)

    async def wait_for_disconnect(self):
        await self.disconnected.wait()

    def emit(self, message):
        for handler in self.handlers:
            handler(message)


def signal(path, interface, member, signature, body, sender=None):
    return Message(
        message_type=MessageType.SIGNAL,
        sender=sender or SERVICE_OWNER,
        path=path,
        interface=interface,
        member=member,
        signature=signature,
        body=body,
    )


class TestUDisksClient:
    async def test_mount_returns_mount_point(self, config, logger):
        bus = FakeBus({"Mount": method_return("s", ["/media/sdb1"])})
        client = UDisksClient(bus, config, logger)

        result = await client.mount(BLOCK + "sdb1")

        assert result.ok
        assert result.value == "/media/sdb1"
        call = bus.calls[0]
        assert call.destination == "org.freedesktop.UDisks2"
        assert call.path == BLOCK + "sdb1"
        assert call.interface == "org.freedesktop.UDisks2.Filesystem"
        assert call.signature == "a{sv}"
        assert call.body == [{}]

    async def test_mount_error_is_returned(self, config, logger):
        bus = FakeBus({"Mount": error_reply(ALREADY_MOUNTED, "already mounted")})
        client = UDisksClient(bus, config, logger)

        result = await client.mount(BLOCK + "sdb1")

        assert not result.ok
        assert result.error_name == ALREADY_MOUNTED
        assert result.error_message == "already mounted"

    async def test_transport_error_is_returned(self, config, logger):
        bus = FakeBus({"Mount": ConnectionResetError("reset")})
        client = UDisksClient(bus, config, logger)

        result = await client.mount(BLOCK + "sdb1")

        assert not result.ok
        assert result.error_name is None
        assert "reset" in result.error_message

    async def test_ping(self, config, logger):
        bus = FakeBus()
        await UDisksClient(bus, config, logger).ping()

        assert bus.calls[0].interface == "org.freedesktop.DBus.Peer"
        assert bus.calls[0].path == "/org/freedesktop/UDisks2/Manager"

    async def test_failed_ping_is_fatal(self, config, logger):
        bus = FakeBus(
            {"Ping": error_reply("org.freedesktop.DBus.Error.ServiceUnknown", "nope")}
        )

        with pytest.raises(StartupError):
            await UDisksClient(bus, config, logger).ping()

    async def test_failed_subscription_is_fatal(self, config, logger):
        bus = FakeBus(
            {"AddMatch": error_reply("org.freedesktop.DBus.Error.AccessDenied", "no")}
        )

        with pytest.raises(StartupError):
            await UDisksClient(bus, config, logger).interfaces_added()

    async def test_signals_are_delivered_as_events(self, config, logger):
        bus = FakeBus()
        client = UDisksClient(bus, config, logger)
        added = await client.interfaces_added()
        removed = await client.interfaces_removed()

        bus.emit(
            signal(
                "/org/freedesktop/UDisks2",
                "org.freedesktop.DBus.ObjectManager",
                "InterfacesAdded",
                "oa{sa{sv}}",
                [
                    BLOCK + "sdb1",
                    {"org.freedesktop.UDisks2.Block": {"Size": Variant("t", 1024)}},
                ],
            )
        )
        bus.emit(
            signal(
                "/org/freedesktop/UDisks2",
                "org.freedesktop.DBus.ObjectManager",
                "InterfacesRemoved",
                "oas",
                [BLOCK + "sdb1", ["org.freedesktop.UDisks2.Block"]],
            )
        )

        event = await asyncio.wait_for(added.__anext__(), 1)
        assert event == InterfacesAdded(
            BLOCK + "sdb1", {"org.freedesktop.UDisks2.Block": {"Size": 1024}}
        )
        event = await asyncio.wait_for(removed.__anext__(), 1)
        assert event == InterfacesRemoved(
            BLOCK + "sdb1", ["org.freedesktop.UDisks2.Block"]
        )
        rules = [call.body[0] for call in bus.calls if call.member == "AddMatch"]
        assert any(
            "member='InterfacesAdded'" in rule
            and "sender='org.freedesktop.UDisks2'" in rule
            for rule in rules
        )
        assert len(bus.handlers) == 1

    async def test_disconnect_closes_streams(self, config, logger):
        bus = FakeBus()
        stream = await UDisksClient(bus, config, logger).interfaces_added()

        bus.disconnected.set()

        with pytest.raises(EventStreamClosed):
            await asyncio.wait_for(stream.__anext__(), 1)
        logger.error.assert_called_once()

    async def test_signal_from_other_sender_is_dropped(self, config, logger):
        bus = FakeBus()
        removed = await UDisksClient(bus, config, logger).interfaces_removed()

        bus.emit(
            signal(
                "/org/freedesktop/UDisks2",
                "org.freedesktop.DBus.ObjectManager",
                "InterfacesRemoved",
                "oas",
                [BLOCK + "sdb1", ["org.freedesktop.UDisks2.Block"]],
                sender=":1.999",
            )
        )
        bus.emit(
            signal(
                "/org/freedesktop/UDisks2",
                "org.freedesktop.DBus.ObjectManager",
                "InterfacesRemoved",
                "oas",
                [BLOCK + "sdc1", ["org.freedesktop.UDisks2.Block"]],
            )
        )

        event = await asyncio.wait_for(removed.__anext__(), 1)
        assert event.path == BLOCK + "sdc1"
        logger.warning.assert_called_once()

    async def test_signals_follow_new_service_owner(self, config, logger):
        bus = FakeBus()
        removed = await UDisksClient(bus, config, logger).interfaces_removed()

        bus.emit(
            signal(
                "/org/freedesktop/DBus",
                "org.freedesktop.DBus",
                "NameOwnerChanged",
                "sss",
                ["org.freedesktop.UDisks2", SERVICE_OWNER, ":1.42"],
                sender="org.freedesktop.DBus",
            )
        )
        for sender, name in ((SERVICE_OWNER, "sdb1"), (":1.42", "sdc1")):
            bus.emit(
                signal(
                    "/org/freedesktop/UDisks2",
                    "org.freedesktop.DBus.ObjectManager",
                    "InterfacesRemoved",
                    "oas",
                    [BLOCK + name, []],
                    sender=sender,
                )
            )

        event = await asyncio.wait_for(removed.__anext__(), 1)
        assert event.path == BLOCK + "sdc1"

    async def test_ping_uses_configured_manager_path(self, tmp_path, logger):
        config_file = tmp_path / "config.toml"
        config_file.write_text('[udisks]\nmanager_path = "/org/example/Manager"\n')
        bus = FakeBus()

        await UDisksClient(
            bus, ConfigHandler(MagicMock(), config_file=config_file), logger
        ).ping()

        assert bus.calls[0].path == "/org/example/Manager"


class TestNotificationsClient:
    async def test_notify_sends_all_arguments(self, config, logger):
        bus = FakeBus({"Notify": method_return("u", [7])})
        client = NotificationsClient(bus, config, logger)

        result = await client.notify("summary", "body", ["default", "Open"], 3)

        assert result.value == 7
        call = bus.calls[0]
        assert call.signature == "susssasa{sv}i"
        assert call.body == [
            "udiskr",
            3,
            "",
            "summary",
            "body",
            ["default", "Open"],
            {},
            30000,
        ]

    async def test_notify_failure_is_logged_and_returned(self, config, logger):
        bus = FakeBus(
            {"Notify": error_reply("org.freedesktop.DBus.Error.ServiceUnknown", "gone")}
        )
        client = NotificationsClient(bus, config, logger)

        result = await client.notify("summary", "body", [])

        assert not result.ok
        logger.error.assert_called_once()

    async def test_action_invoked_stream(self, config, logger):
        bus = FakeBus()
        stream = await NotificationsClient(bus, config, logger).action_invoked()

        bus.emit(
            signal(
                "/org/freedesktop/Notifications",
                "org.freedesktop.Notifications",
                "ActionInvoked",
                "us",
                [7, "open"],
            )
        )
        bus.emit(
            signal(
                "/org/freedesktop/Notifications",
                "org.freedesktop.Notifications",
                "NotificationClosed",
                "uu",
                [7, 1],
            )
        )

        assert await asyncio.wait_for(stream.__anext__(), 1) == ActionInvoked(7, "open")
        bus.emit(
            signal(
                "/org/freedesktop/Notifications",
                "org.freedesktop.Notifications",
                "ActionInvoked",
                "us",
                [8, "default"],
            )
        )
        assert await asyncio.wait_for(stream.__anext__(), 1) == ActionInvoked(
            8, "default"
        )


async def test_connect_failure_is_fatal():
    bus = MagicMock()
    bus.connect = AsyncMock(side_effect=FileNotFoundError("no socket"))
    with patch("udiskr.shared.dbus_helpers.MessageBus", return_value=bus):
        with pytest.raises(StartupError, match="system bus"):
            await connect(BusType.SYSTEM)
