class UdiskrError(Exception):
    """Base class for errors that stop the daemon."""


class StartupError(UdiskrError):
    """A bus connection, ping or signal subscription failed."""


class EventStreamClosed(UdiskrError):
    """An event stream ended while the coordinator still depended on it."""

    def __init__(self, stream_name: str):
        super().__init__(f"Event stream '{stream_name}' terminated unexpectedly")
        self.stream_name = stream_name
