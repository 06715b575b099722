"""Handler that answers messages nobody handled but that expect a reply."""

from __future__ import annotations

import dataclasses
from typing import Optional

from wrpagent.wrpkit import Handler, Message, NotHandledError

STATUS_CODE = 531


class InvalidInputError(ValueError):
    """Raised when the handler is built with missing or empty arguments."""


class MissingHandler(Handler):
    """Sends a 531 response when the next handler did not handle a
    message that requires a reply."""

    def __init__(
        self,
        next_handler: Optional[Handler],
        egress: Optional[Handler],
        source: str,
    ) -> None:
        if next_handler is None or egress is None or not source:
            raise InvalidInputError("invalid input")
        self._next = next_handler
        self._egress = egress
        self._source = source

    def handle_wrp(self, msg: Message) -> None:
        try:
            self._next.handle_wrp(msg)
        except NotHandledError:
            if not msg.type.requires_transaction():
                raise
        else:
            return

        response = dataclasses.replace(
            msg,
            destination=msg.source,
            source=self._source,
            content_type="application/json",
            status=STATUS_CODE,
            payload=f"{{statusCode: {STATUS_CODE}}}".encode(),
        )
        self._egress.handle_wrp(response)