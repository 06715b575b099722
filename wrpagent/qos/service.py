"""Quality-of-service handler that queues messages and delivers the most important first."""

from __future__ import annotations

import queue
import threading
from datetime import timedelta
from typing import List, Optional

from wrpagent.qos.priority import MisconfiguredQOSError, PriorityType
from wrpagent.qos.queue import (
    DEFAULT_CRITICAL_EXPIRES,
    DEFAULT_HIGH_EXPIRES,
    DEFAULT_LOW_EXPIRES,
    DEFAULT_MAX_QUEUE_BYTES,
    DEFAULT_MEDIUM_EXPIRES,
    MaxMessageBytesError,
    PriorityQueue,
    tie_breaker,
)
from wrpagent.wrpkit import Handler, Message

_INCOMING = "incoming"
_DELIVERED = "delivered"
_STOP = "stop"


class InvalidInputError(ValueError):
    """Raised when the handler is built without a next handler."""

    def __init__(self, message: str = "invalid input") -> None:
        super().__init__(message)


class QOSHasShutdownError(RuntimeError):
    """Raised when a message is handed to a handler that is not running."""

    def __init__(self, message: str = "QOS has been shutdown") -> None:
        super().__init__(message)


class QOSHandler(Handler):
    """Queues incoming messages and passes them on to the next handler.

    A background worker keeps one delivery in flight at a time, always
    choosing the queued message with the highest quality of service.
    Failed deliveries are queued again.  Once stopped, handle_wrp raises
    QOSHasShutdownError.
    """

    def __init__(
        self,
        next_handler: Optional[Handler],
        *,
        max_queue_bytes: int = 0,
        max_message_bytes: int = 0,
        priority=PriorityType.NEWEST,
        low_expires: timedelta = DEFAULT_LOW_EXPIRES,
        medium_expires: timedelta = DEFAULT_MEDIUM_EXPIRES,
        high_expires: timedelta = DEFAULT_HIGH_EXPIRES,
        critical_expires: timedelta = DEFAULT_CRITICAL_EXPIRES,
    ) -> None:
        if next_handler is None:
            raise InvalidInputError()

        errors: List[Exception] = []

        if max_queue_bytes < 0:
            errors.append(MisconfiguredQOSError("misconfigured QOS: negative MaxQueueBytes"))
        elif max_queue_bytes == 0:
            max_queue_bytes = DEFAULT_MAX_QUEUE_BYTES

        if max_message_bytes < 0:
            errors.append(MisconfiguredQOSError("misconfigured QOS: negative MaxMessageBytes"))

        try:
            tie_breaker(priority)
        except MisconfiguredQOSError as exc:
            errors.append(exc)

        for name, value in (
            ("LowExpires", low_expires),
            ("MediumExpires", medium_expires),
            ("HighExpires", high_expires),
            ("CriticalExpires", critical_expires),
        ):
            if value < timedelta(0):
                errors.append(MisconfiguredQOSError(f"misconfigured QOS: negative {name}"))

        if max_message_bytes > max_queue_bytes >= 0:
            errors.append(
                MisconfiguredQOSError("misconfigured QOS: MaxMessageBytes > MaxQueueBytes")
            )

        if len(errors) == 1:
            raise errors[0]
        if errors:
            raise MisconfiguredQOSError("\n".join(str(e) for e in errors)) from errors[0]

        self._next = next_handler
        self._priority = PriorityType(priority)
        self._max_queue_bytes = max_queue_bytes
        self._max_message_bytes = max_message_bytes
        self._expires = (low_expires, medium_expires, high_expires, critical_expires)
        self._lock = threading.Lock()
        self._inbox: Optional[queue.Queue] = None

    def start(self) -> None:
        """Start the background worker; calling it again while running does nothing."""
        with self._lock:
            if self._inbox is None:
                self._inbox = queue.Queue()
                worker = threading.Thread(
                    target=self._service, args=(self._inbox,), daemon=True
                )
                worker.start()

    def stop(self) -> None:
        """Stop the background worker; calling it again while stopped does nothing."""
        with self._lock:
            if self._inbox is not None:
                self._inbox.put((_STOP, None))
                self._inbox = None

    def handle_wrp(self, msg: Message) -> None:
        """Queue msg for delivery."""
        with self._lock:
            if self._inbox is None:
                raise QOSHasShutdownError()
            self._inbox.put((_INCOMING, msg))

    def _new_queue(self) -> PriorityQueue:
        low, medium, high, critical = self._expires
        return PriorityQueue(
            self._priority,
            self._max_queue_bytes,
            self._max_message_bytes,
            low,
            medium,
            high,
            critical,
        )

    @staticmethod
    def _enqueue(pq: PriorityQueue, msg: Message) -> None:
        try:
            pq.enqueue(msg)
        except MaxMessageBytesError:
            # The message is still queued without its payload.
            pass

    def _service(self, inbox: queue.Queue) -> None:
        pq = self._new_queue()
        in_flight = False
        while True:
            kind, msg = inbox.get()
            if kind == _STOP:
                return
            if kind == _INCOMING:
                self._enqueue(pq, msg)
            elif kind == _DELIVERED:
                in_flight = False
                if msg is not None:
                    self._enqueue(pq, msg)

            if not in_flight:
                top = pq.dequeue()
                if top is not None:
                    in_flight = True
                    threading.Thread(
                        target=self._deliver, args=(top, inbox), daemon=True
                    ).start()

    def _deliver(self, msg: Message, inbox: queue.Queue) -> None:
        failed: Optional[Message] = None
        try:
            self._next.handle_wrp(msg)
        except Exception:
            failed = msg
        inbox.put((_DELIVERED, failed))