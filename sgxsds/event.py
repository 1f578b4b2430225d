"""Registry update events."""

from enum import IntEnum


class Event(IntEnum):
    """Kind of change made to a watched object."""

    ADD = 0
    UPDATE = 1
    DELETE = 2

    def __str__(self) -> str:
        return _NAMES.get(self, "unknown")


_NAMES = {Event.ADD: "add", Event.UPDATE: "update", Event.DELETE: "delete"}