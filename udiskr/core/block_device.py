from enum import Enum
from typing import Iterable

BLOCK_DEVICES_PREFIX = "/org/freedesktop/UDisks2/block_devices/"
ALREADY_MOUNTED_ERROR = "org.freedesktop.UDisks2.Error.AlreadyMounted"
NO_FILESYSTEM_ERRORS = (
    "org.freedesktop.DBus.Error.UnknownMethod",
    "org.freedesktop.DBus.Error.UnknownInterface",
    "org.freedesktop.DBus.Error.UnknownObject",
)


class MountFailure(Enum):
    ALREADY_MOUNTED = "already_mounted"
    NOT_A_FILESYSTEM = "not_a_filesystem"
    FAILED = "failed"


def _normalize_prefix(prefix: str) -> str:
    return prefix if prefix.endswith("/") else prefix + "/"


def is_block_device(path: str, prefix: str = BLOCK_DEVICES_PREFIX) -> bool:
    """True when the object path names a block device object."""
    prefix = _normalize_prefix(prefix)
    return path.startswith(prefix) and len(path) > len(prefix)


def device_name(path: str, prefix: str = BLOCK_DEVICES_PREFIX) -> str:
    """Kernel name of the device, e.g. ``sdb1`` for ``.../block_devices/sdb1``."""
    prefix = _normalize_prefix(prefix)
    if path.startswith(prefix):
        return path[len(prefix):]
    return path.rsplit("/", 1)[-1]


def classify_mount_error(
    error_name: str | None,
    suppressed: Iterable[str] = (ALREADY_MOUNTED_ERROR,),
) -> MountFailure:
    """
    Sorts a failed Mount reply. Only the names in ``suppressed`` are known
    to be benign; this list is not assumed to be exhaustive.
    """
    if error_name and error_name in set(suppressed):
        return MountFailure.ALREADY_MOUNTED
    # Objects without a Filesystem interface answer with a standard bus error.
    if error_name in NO_FILESYSTEM_ERRORS:
        return MountFailure.NOT_A_FILESYSTEM
    return MountFailure.FAILED
