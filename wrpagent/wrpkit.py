"""Core WRP message model and the handler interface used throughout the agent."""

from __future__ import annotations

import abc
import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional


class MessageType(enum.IntEnum):
    """WRP message types."""

    INVALID0 = 0
    INVALID1 = 1
    AUTHORIZATION = 2
    SIMPLE_REQUEST_RESPONSE = 3
    SIMPLE_EVENT = 4
    CREATE = 5
    RETRIEVE = 6
    UPDATE = 7
    DELETE = 8
    SERVICE_REGISTRATION = 9
    SERVICE_ALIVE = 10
    UNKNOWN = 11

    def requires_transaction(self) -> bool:
        """Return True if messages of this type carry a transaction and expect a reply."""
        return self in {
            MessageType.SIMPLE_REQUEST_RESPONSE,
            MessageType.CREATE,
            MessageType.RETRIEVE,
            MessageType.UPDATE,
            MessageType.DELETE,
        }


QOS_LOW_VALUE = 0
QOS_MEDIUM_VALUE = 25
QOS_HIGH_VALUE = 50
QOS_CRITICAL_VALUE = 75


class QOSLevel(enum.Enum):
    """Coarse quality-of-service levels derived from a numeric QOS value."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def from_value(cls, value: int) -> "QOSLevel":
        """Map a numeric quality-of-service value to its level."""
        if value < QOS_MEDIUM_VALUE:
            return cls.LOW
        if value < QOS_HIGH_VALUE:
            return cls.MEDIUM
        if value < QOS_CRITICAL_VALUE:
            return cls.HIGH
        return cls.CRITICAL


@dataclass
class Message:
    """A WRP message."""

    type: MessageType = MessageType.INVALID0
    source: str = ""
    destination: str = ""
    transaction_uuid: str = ""
    content_type: str = ""
    accept: str = ""
    status: Optional[int] = None
    request_delivery_response: Optional[int] = None
    headers: List[str] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)
    path: str = ""
    payload: bytes = b""
    service_name: str = ""
    url: str = ""
    partner_ids: List[str] = field(default_factory=list)
    session_id: str = ""
    quality_of_service: int = 0

    def qos_level(self) -> QOSLevel:
        """Return the quality-of-service level of this message."""
        return QOSLevel.from_value(self.quality_of_service)


class NotHandledError(Exception):
    """Raised by a handler that did not consume the message."""

    def __init__(self, message: str = "message not handled") -> None:
        super().__init__(message)


class Handler(abc.ABC):
    """Something that consumes WRP messages.

    Returning normally means the message was consumed.  Raising
    NotHandledError means it was not; any other exception is a failure.
    """

    @abc.abstractmethod
    def handle_wrp(self, msg: Message) -> Any:
        """Process a message."""


class HandlerFunc(Handler):
    """Adapts a plain callable into a Handler."""

    def __init__(self, func: Callable[[Message], Any]) -> None:
        self._func = func

    def handle_wrp(self, msg: Message) -> Any:
        return self._func(msg)