"""Byte-bounded priority queue of WRP messages ordered by quality of service."""

from __future__ import annotations

import dataclasses
import itertools
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, List, Optional

from wrpagent.qos.priority import (
    MisconfiguredQOSError,
    PriorityType,
    PriorityTypeInvalidError,
)
from wrpagent.wrpkit import Message, QOSLevel

DEFAULT_MAX_QUEUE_BYTES = 1 * 1024 * 1024
DEFAULT_MAX_MESSAGE_BYTES = 256 * 1024

DEFAULT_LOW_EXPIRES = timedelta(minutes=15)
DEFAULT_MEDIUM_EXPIRES = timedelta(minutes=20)
DEFAULT_HIGH_EXPIRES = timedelta(minutes=25)
DEFAULT_CRITICAL_EXPIRES = timedelta(minutes=30)

# Request delivery response codes.
MESSAGE_IS_TOO_LARGE = 4
HIGHER_PRIORITY_MESSAGE_TOOK_THE_SPOT = 102


class MaxMessageBytesError(ValueError):
    """Raised when a message payload is larger than the allowed maximum."""

    def __init__(self, limit: int) -> None:
        super().__init__(f"wrp message payload exceeds maxMessageBytes: {limit}")
        self.limit = limit


class _InvalidPriorityError(PriorityTypeInvalidError, MisconfiguredQOSError):
    """An invalid priority type, which also makes the QOS configuration invalid."""


@dataclass
class Item:
    """A queued message together with its expiry time (monotonic seconds)."""

    msg: Message
    expires: float = 0.0
    discard: bool = False
    seq: int = 0

    def dispose(self) -> int:
        """Mark the item as discarded, drop its payload and return the payload size."""
        size = len(self.msg.payload)
        self.discard = True
        self.msg.payload = b""
        self.msg.request_delivery_response = HIGHER_PRIORITY_MESSAGE_TOOK_THE_SPOT
        return size


TieBreaker = Callable[[Item, Item], bool]


def priority_newest_msg(i: Item, j: Item) -> bool:
    """Return True if i is newer than j."""
    return (i.expires, i.seq) > (j.expires, j.seq)


def priority_oldest_msg(i: Item, j: Item) -> bool:
    """Return True if i is older than j."""
    return (i.expires, i.seq) < (j.expires, j.seq)


def _priority_name(priority) -> str:
    try:
        return str(PriorityType(priority))
    except ValueError:
        return str(PriorityType.UNKNOWN)


def tie_breaker(priority) -> TieBreaker:
    """Return the tie breaker used for the given priority type."""
    if priority == PriorityType.NEWEST:
        return priority_newest_msg
    if priority == PriorityType.OLDEST:
        return priority_oldest_msg
    raise _InvalidPriorityError(
        f"Priority type is invalid: {_priority_name(priority)}\nmisconfigured QOS"
    )


class PriorityQueue:
    """A max-heap of messages keyed on quality of service.

    The sum of queued payloads is kept at or below max_queue_bytes by
    discarding expired and then lowest-priority messages.
    """

    def __init__(
        self,
        priority=PriorityType.NEWEST,
        max_queue_bytes: int = 0,
        max_message_bytes: int = 0,
        low_expires: timedelta = DEFAULT_LOW_EXPIRES,
        medium_expires: timedelta = DEFAULT_MEDIUM_EXPIRES,
        high_expires: timedelta = DEFAULT_HIGH_EXPIRES,
        critical_expires: timedelta = DEFAULT_CRITICAL_EXPIRES,
    ) -> None:
        self.tie_breaker = tie_breaker(priority)
        self.priority = PriorityType(priority)
        self.max_queue_bytes = max_queue_bytes
        self.max_message_bytes = max_message_bytes
        self._expires = {
            QOSLevel.LOW: low_expires,
            QOSLevel.MEDIUM: medium_expires,
            QOSLevel.HIGH: high_expires,
            QOSLevel.CRITICAL: critical_expires,
        }
        self.items: List[Item] = []
        self.size_bytes = 0
        self._counter = itertools.count(1)

    def __len__(self) -> int:
        return len(self.items)

    def less(self, i: int, j: int) -> bool:
        """Return True if the item at i ranks ahead of the item at j."""
        a, b = self.items[i], self.items[j]
        qa, qb = a.msg.quality_of_service, b.msg.quality_of_service
        if qa != qb:
            return qa > qb
        return self.tie_breaker(a, b)

    def push(self, msg: Message) -> None:
        """Append a copy of msg at the end of the queue, without reordering."""
        msg = dataclasses.replace(msg)
        self.size_bytes += len(msg.payload)
        lifetime = self._expires[msg.qos_level()]
        self.items.append(
            Item(
                msg=msg,
                expires=time.monotonic() + lifetime.total_seconds(),
                seq=next(self._counter),
            )
        )

    def pop(self) -> Optional[Item]:
        """Remove and return the last item of the queue, or None if it is empty."""
        if not self.items:
            return None
        itm = self.items.pop()
        self.size_bytes -= len(itm.msg.payload)
        return itm

    def enqueue(self, msg: Message) -> None:
        """Queue msg and trim the queue to its byte limit.

        A message whose payload is too large is still queued, without its
        payload, and MaxMessageBytesError is raised afterwards.
        """
        msg = dataclasses.replace(msg)
        error = None
        if self.max_message_bytes and len(msg.payload) > self.max_message_bytes:
            msg.payload = b""
            msg.request_delivery_response = MESSAGE_IS_TOO_LARGE
            error = MaxMessageBytesError(self.max_message_bytes)

        self.push(msg)
        self._sift_up(len(self.items) - 1)
        self.trim()

        if error is not None:
            raise error

    def dequeue(self) -> Optional[Message]:
        """Remove and return the highest priority message, or None if empty."""
        if not self.items:
            return None
        last = len(self.items) - 1
        self._swap(0, last)
        self._sift_down(0, last)
        itm = self.pop()
        return itm.msg

    def trim(self) -> None:
        """Discard expired, then lowest priority, messages until within the byte limit."""
        if self.size_bytes <= self.max_queue_bytes:
            return

        now = time.monotonic()
        candidates: List[Item] = []
        for itm in self.items:
            if itm.discard:
                continue
            if now > itm.expires:
                self.size_bytes -= itm.dispose()
                continue
            candidates.append(itm)

        if self.priority == PriorityType.NEWEST:
            candidates.sort(key=lambda it: (it.msg.quality_of_service, it.expires, it.seq))
        else:
            candidates.sort(key=lambda it: (it.msg.quality_of_service, -it.expires, -it.seq))

        for itm in candidates:
            if self.size_bytes <= self.max_queue_bytes:
                break
            self.size_bytes -= itm.dispose()

    def _swap(self, i: int, j: int) -> None:
        self.items[i], self.items[j] = self.items[j], self.items[i]

    def _sift_up(self, j: int) -> None:
        while j > 0:
            parent = (j - 1) // 2
            if not self.less(j, parent):
                break
            self._swap(parent, j)
            j = parent

    def _sift_down(self, i: int, n: int) -> None:
        while True:
            left = 2 * i + 1
            if left >= n:
                break
            child = left
            right = left + 1
            if right < n and self.less(right, left):
                child = right
            if not self.less(child, i):
                break
            self._swap(i, child)
            i = child