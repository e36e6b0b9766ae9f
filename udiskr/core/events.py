from dataclasses import dataclass, field
from typing import Any, Dict, List

from udiskr.core.registry import Entry


@dataclass(frozen=True)
class InterfacesAdded:
    path: str
    interfaces: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass(frozen=True)
class InterfacesRemoved:
    path: str
    interfaces: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ActionInvoked:
    notification_id: int
    action_key: str = ""


# Messages consumed by the task that owns the registry.


@dataclass(frozen=True)
class MountStarted:
    path: str


@dataclass(frozen=True)
class MountSucceeded:
    entry: Entry


@dataclass(frozen=True)
class MountAbandoned:
    path: str


@dataclass(frozen=True)
class DeviceRemoved:
    path: str


@dataclass(frozen=True)
class ActionRequested:
    notification_id: int
