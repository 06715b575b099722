"""Priority types that decide which messages win quality-of-service ties."""

from __future__ import annotations

import enum


class PriorityTypeInvalidError(ValueError):
    """Raised when a priority type is not one of the known values."""

    def __init__(self, message: str = "Priority type is invalid") -> None:
        super().__init__(message)


class MisconfiguredQOSError(ValueError):
    """Raised when the quality-of-service handler is configured badly."""

    def __init__(self, message: str = "misconfigured QOS") -> None:
        super().__init__(message)


class PriorityType(enum.IntEnum):
    """Which messages are kept when quality of service is tied: newest or oldest."""

    UNKNOWN = 0
    OLDEST = 1
    NEWEST = 2

    def __str__(self) -> str:
        return self.name.lower()


_BY_NAME = {str(member): member for member in PriorityType}


def priority_keys() -> str:
    """Return the accepted priority names, quoted, sorted and comma separated."""
    return ", ".join(sorted(f"'{name}'" for name in _BY_NAME))


def parse_priority_type(text) -> PriorityType:
    """Parse a priority type name, ignoring case."""
    if isinstance(text, (bytes, bytearray)):
        text = bytes(text).decode()
    name = text.lower()
    try:
        return _BY_NAME[name]
    except KeyError:
        raise PriorityTypeInvalidError(
            f"Priority type is invalid: PriorityType error: '{name}' does not match "
            f"any valid options: {priority_keys()}"
        ) from None