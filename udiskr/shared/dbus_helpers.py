import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

from dbus_fast import BusType, Message, MessageType, Variant
from dbus_fast.aio import MessageBus

from udiskr.core.errors import EventStreamClosed, StartupError
from udiskr.core.events import ActionInvoked, InterfacesAdded, InterfacesRemoved
from udiskr.core.results import CallResult

DBUS_SERVICE = "org.freedesktop.DBus"
DBUS_PATH = "/org/freedesktop/DBus"
PEER_INTERFACE = "org.freedesktop.DBus.Peer"
OBJECT_MANAGER_INTERFACE = "org.freedesktop.DBus.ObjectManager"

UDISKS_SERVICE = "org.freedesktop.UDisks2"
UDISKS_PATH = "/org/freedesktop/UDisks2"
UDISKS_MANAGER_PATH = "/org/freedesktop/UDisks2/Manager"
FILESYSTEM_INTERFACE = "org.freedesktop.UDisks2.Filesystem"

NOTIFICATIONS_SERVICE = "org.freedesktop.Notifications"
NOTIFICATIONS_PATH = "/org/freedesktop/Notifications"
NOTIFICATIONS_INTERFACE = "org.freedesktop.Notifications"

_CLOSED = object()


async def connect(bus_type: BusType) -> MessageBus:
    """Opens a bus connection. Any failure is fatal at startup."""
    try:
        return await MessageBus(bus_type=bus_type).connect()
    except Exception as e:
        raise StartupError(
            f"Failed to connect to the {bus_type.name.lower()} bus: {e}"
        ) from e


def _unwrap(value: Any) -> Any:
    if isinstance(value, Variant):
        return _unwrap(value.value)
    if isinstance(value, dict):
        return {k: _unwrap(v) for k, v in value.items()}
    return value


class SignalStream:
    """
    Async iterator over one kind of signal. The bus message handler pushes
    parsed events in; closing the stream makes the consumer raise
    EventStreamClosed.
    """

    def __init__(self, name: str):
        self.name = name
        self._queue: asyncio.Queue = asyncio.Queue()

    def push(self, event: Any) -> None:
        self._queue.put_nowait(event)

    def close(self) -> None:
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._queue.get()
        if item is _CLOSED:
            raise EventStreamClosed(self.name)
        return item


class DbusHelpers:
    """
    Thin request/response layer over a dbus_fast MessageBus. Method calls
    come back as CallResult, signals as SignalStream.
    """

    def __init__(self, bus: MessageBus, logger):
        self.bus = bus
        self.logger = logger
        self._subscriptions: List[
            Tuple[str, str, str, str, Callable[[list], Any], SignalStream]
        ] = []
        # Well-known name -> current unique name; None while nobody owns it.
        self._owners: Dict[str, Optional[str]] = {}
        self._handler_installed = False
        self._disconnect_watch: Optional[asyncio.Task] = None

    async def call(
        self,
        destination: str,
        path: str,
        interface: str,
        member: str,
        signature: str = "",
        body: Optional[list] = None,
    ) -> CallResult:
        try:
            reply = await self.bus.call(
                Message(
                    message_type=MessageType.METHOD_CALL,
                    destination=destination,
                    path=path,
                    interface=interface,
                    member=member,
                    signature=signature,
                    body=body or [],
                )
            )
        except Exception as e:
            return CallResult.failure(None, str(e))
        if reply is None:
            return CallResult.failure(None, f"No reply to {interface}.{member}")
        if reply.message_type == MessageType.ERROR:
            text = reply.body[0] if reply.body else ""
            return CallResult.failure(reply.error_name, text)
        return CallResult.success(reply.body[0] if reply.body else None)

    async def _add_match(self, rule: str, what: str) -> None:
        result = await self.call(
            DBUS_SERVICE, DBUS_PATH, DBUS_SERVICE, "AddMatch", "s", [rule]
        )
        if not result.ok:
            raise StartupError(f"Failed to subscribe to {what}: {result}")

    def _install_handler(self) -> None:
        if self._handler_installed:
            return
        self.bus.add_message_handler(self._on_message)
        self._disconnect_watch = asyncio.ensure_future(self._watch_disconnect())
        self._handler_installed = True

    async def _track_owner(self, service: str) -> None:
        """
        Follows which connection owns ``service`` so that signals can be
        checked against their real sender.
        """
        if service in self._owners:
            return
        self._owners[service] = None
        self._install_handler()
        await self._add_match(
            f"type='signal',sender='{DBUS_SERVICE}',interface='{DBUS_SERVICE}',"
            f"member='NameOwnerChanged',path='{DBUS_PATH}',arg0='{service}'",
            f"NameOwnerChanged for {service}",
        )
        result = await self.call(
            DBUS_SERVICE, DBUS_PATH, DBUS_SERVICE, "GetNameOwner", "s", [service]
        )
        if result.ok:
            self._owners[service] = result.value
        else:
            self.logger.debug(f"{service} has no owner yet: {result}")

    async def subscribe(
        self,
        service: str,
        path: str,
        interface: str,
        member: str,
        parse: Callable[[list], Any],
    ) -> SignalStream:
        """
        Registers a match rule for a signal sent by ``service`` and returns
        the stream its occurrences are delivered to. Signals from any other
        connection are dropped.
        """
        await self._track_owner(service)
        await self._add_match(
            f"type='signal',sender='{service}',interface='{interface}',"
            f"member='{member}',path='{path}'",
            f"{interface}.{member}",
        )
        stream = SignalStream(member)
        self._subscriptions.append((service, path, interface, member, parse, stream))
        self.logger.debug(f"Subscribed to {interface}.{member} on {path}")
        return stream

    def _on_message(self, message: Message):
        if message.message_type != MessageType.SIGNAL:
            return None
        if (
            message.interface == DBUS_SERVICE
            and message.member == "NameOwnerChanged"
            and message.sender == DBUS_SERVICE
        ):
            name, _, new_owner = message.body
            if name in self._owners:
                self._owners[name] = new_owner or None
                self.logger.debug(f"{name} is now owned by {new_owner or 'nobody'}")
            return None
        for service, path, interface, member, parse, stream in self._subscriptions:
            if (
                message.path == path
                and message.interface == interface
                and message.member == member
            ):
                owner = self._owners.get(service)
                if owner is None or message.sender != owner:
                    self.logger.warning(
                        f"Ignoring {member} from {message.sender}, "
                        f"not sent by {service}"
                    )
                    continue
                try:
                    stream.push(parse(message.body))
                except (IndexError, TypeError, ValueError) as e:
                    self.logger.warning(f"Malformed {member} signal: {e}")
        return None

    async def _watch_disconnect(self) -> None:
        try:
            await self.bus.wait_for_disconnect()
            self.logger.error("Bus connection closed")
        except Exception as e:
            self.logger.error(f"Bus connection lost: {e}")
        for *_, stream in self._subscriptions:
            stream.close()


class UDisksClient(DbusHelpers):
    """Client for the UDisks2 device-management service on the system bus."""

    def __init__(self, bus: MessageBus, config, logger):
        super().__init__(bus, logger)
        self.service = config.get_root_setting(["udisks", "service"], UDISKS_SERVICE)
        self.manager_path = config.get_root_setting(
            ["udisks", "manager_path"], UDISKS_MANAGER_PATH
        )

    async def ping(self) -> None:
        result = await self.call(
            self.service, self.manager_path, PEER_INTERFACE, "Ping"
        )
        if not result.ok:
            raise StartupError(f"{self.service} is not responding: {result}")
        self.logger.debug(f"{self.service} answered ping")

    async def mount(self, path: str) -> CallResult:
        """Mounts the filesystem at ``path`` with default options."""
        return await self.call(
            self.service, path, FILESYSTEM_INTERFACE, "Mount", "a{sv}", [{}]
        )

    async def interfaces_added(self) -> SignalStream:
        return await self.subscribe(
            self.service,
            UDISKS_PATH,
            OBJECT_MANAGER_INTERFACE,
            "InterfacesAdded",
            lambda body: InterfacesAdded(path=body[0], interfaces=_unwrap(body[1])),
        )

    async def interfaces_removed(self) -> SignalStream:
        return await self.subscribe(
            self.service,
            UDISKS_PATH,
            OBJECT_MANAGER_INTERFACE,
            "InterfacesRemoved",
            lambda body: InterfacesRemoved(path=body[0], interfaces=list(body[1])),
        )


class NotificationsClient(DbusHelpers):
    """Client for org.freedesktop.Notifications on the session bus."""

    def __init__(self, bus: MessageBus, config, logger):
        super().__init__(bus, logger)
        self.app_name = config.get_root_setting(["notifications", "app_name"], "udiskr")
        self.app_icon = config.get_root_setting(["notifications", "app_icon"], "")
        self.expire_timeout = config.get_root_setting(
            ["notifications", "expire_timeout"], 30000
        )

    async def notify(
        self,
        summary: str,
        body: str,
        actions: List[str],
        replaces_id: int = 0,
    ) -> CallResult:
        """
        Sends a notification and returns its id. ``actions`` is the flat
        key/label list of the Notify call.
        """
        result = await self.call(
            NOTIFICATIONS_SERVICE,
            NOTIFICATIONS_PATH,
            NOTIFICATIONS_INTERFACE,
            "Notify",
            "susssasa{sv}i",
            [
                self.app_name,
                replaces_id,
                self.app_icon,
                summary,
                body,
                actions,
                {},
                self.expire_timeout,
            ],
        )
        if not result.ok:
            self.logger.error(f"Failed to send notification: {result}")
        return result

    async def action_invoked(self) -> SignalStream:
        return await self.subscribe(
            NOTIFICATIONS_SERVICE,
            NOTIFICATIONS_PATH,
            NOTIFICATIONS_INTERFACE,
            "ActionInvoked",
            lambda body: ActionInvoked(notification_id=body[0], action_key=body[1]),
        )
