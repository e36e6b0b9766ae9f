from dataclasses import dataclass
from typing import Iterator, List, Optional

NO_NOTIFICATION = 0


@dataclass
class Entry:
    """A device that is currently mounted and tracked."""

    device_path: str
    mount_point: str
    notification_id: int = NO_NOTIFICATION


class Registry:
    """
    Table of mounted devices, keyed by device path.

    Not synchronized: only the coordinator's owner task may touch it.
    Iteration order is unspecified because removal swaps the last entry
    into the freed slot.
    """

    def __init__(self):
        self._entries: List[Entry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Entry]:
        return iter(list(self._entries))

    def __getitem__(self, index: int) -> Entry:
        return self._entries[index]

    def insert(self, entry: Entry) -> Optional[Entry]:
        """
        Adds an entry. If the device path is already tracked the old entry
        is replaced and returned, otherwise returns None.
        """
        index = self.find_by_path(entry.device_path)
        if index is not None:
            previous = self._entries[index]
            self._entries[index] = entry
            return previous
        self._entries.append(entry)
        return None

    def find_by_path(self, path: str) -> Optional[int]:
        for index, entry in enumerate(self._entries):
            if entry.device_path == path:
                return index
        return None

    def find_by_notification_id(self, notification_id: int) -> Optional[Entry]:
        if notification_id == NO_NOTIFICATION:
            return None
        for entry in self._entries:
            if entry.notification_id == notification_id:
                return entry
        return None

    def remove(self, index: int) -> Entry:
        last = self._entries.pop()
        if index == len(self._entries):
            return last
        removed = self._entries[index]
        self._entries[index] = last
        return removed
