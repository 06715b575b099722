"""Handler that only passes on messages from allowed partners."""

from __future__ import annotations

import dataclasses
from typing import Optional

from wrpagent.wrpkit import Handler, Message

STATUS_CODE = 403
WILDCARD = "*"


class InvalidInputError(ValueError):
    """Raised when the handler is built with missing or empty arguments."""


class UnauthorizedError(Exception):
    """Raised when a message is not from an allowed partner."""


class AuthHandler(Handler):
    """Forwards messages from allowed partners to the next handler.

    Messages from other partners are rejected; when such a message expects a
    reply, a 403 response is sent through the egress handler.
    """

    def __init__(
        self,
        next_handler: Optional[Handler],
        egress: Optional[Handler],
        source: str,
        *args: str,
    ) -> None:
        partners = [p.strip() for p in args]
        self._partners = [p for p in partners if p]
        self._next = next_handler
        self._egress = egress
        self._source = source
        if next_handler is None or egress is None or not source or not self._partners:
            raise InvalidInputError("invalid input")

    @property
    def partners(self) -> list:
        return list(self._partners)

    def _allowed(self, msg: Message) -> bool:
        received = [p.strip() for p in msg.partner_ids]
        return any(
            allowed == WILDCARD or allowed == got
            for allowed in self._partners
            for got in received
        )

    def handle_wrp(self, msg: Message):
        if self._allowed(msg):
            return self._next.handle_wrp(msg)

        if not msg.type.requires_transaction():
            raise UnauthorizedError("unauthorized")

        got = "','".join(msg.partner_ids)
        want = "','".join(self._partners)
        response = dataclasses.replace(
            msg,
            destination=msg.source,
            source=self._source,
            content_type="application/json",
            status=STATUS_CODE,
            payload=(
                f"{{statusCode: {STATUS_CODE}, message:\"Partner(s) '{got}' "
                f"not allowed.  Allowed: '{want}'\"}}"
            ).encode(),
        )
        try:
            self._egress.handle_wrp(response)
        except Exception as exc:
            raise UnauthorizedError("unauthorized") from exc
        raise UnauthorizedError("unauthorized")