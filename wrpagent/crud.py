"""Handler for CRUD messages addressed to the agent itself."""

from __future__ import annotations

import abc
import dataclasses
import json
import re
from datetime import timedelta
from fractions import Fraction
from typing import Any, Dict, Optional

from wrpagent.wrpkit import Handler, Message, MessageType

DEFAULT_LOG_LEVEL_CHANGE_DURATION = timedelta(minutes=30)

_STATUS_OK = 200
_STATUS_BAD_REQUEST = 400
_STATUS_INTERNAL_ERROR = 500

_UNIT_NANOS = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_COMPONENT = re.compile(r"(\d*)(?:\.(\d*))?(ns|us|\u00b5s|\u03bcs|ms|s|m|h)?")
_MAX_NANOS = (1 << 63) - 1


class LogLevel(abc.ABC):
    """Something whose log level can be changed for a while."""

    @abc.abstractmethod
    def set_level(self, level: str, duration: timedelta) -> None:
        """Set the log level for the given duration."""


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as "1h30m", "1.5s" or "300ms"."""
    s = text
    negative = False
    if s[:1] in ("+", "-"):
        negative = s[0] == "-"
        s = s[1:]
    if s == "0":
        return timedelta(0)
    if not s:
        raise ValueError(f'invalid duration "{text}"')

    total = Fraction(0)
    pos = 0
    while pos < len(s):
        match = _COMPONENT.match(s, pos)
        whole, frac, unit = match.groups()
        if not whole and not frac:
            raise ValueError(f'invalid duration "{text}"')
        if unit is None:
            raise ValueError(f'missing or unknown unit in duration "{text}"')
        amount = Fraction(int(whole or "0"))
        if frac:
            amount += Fraction(int(frac), 10 ** len(frac))
        total += amount * _UNIT_NANOS[unit]
        pos = match.end()

    if total > _MAX_NANOS + (1 if negative else 0):
        raise ValueError(f'invalid duration "{text}"')
    nanos = -total if negative else total
    return timedelta(microseconds=round(nanos / 1000))


def _decode_payload(payload: bytes) -> Dict[str, str]:
    data = json.loads(payload)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("payload is not a JSON object")
    for key, value in data.items():
        if value is not None and not isinstance(value, str):
            raise ValueError(f"value for {key!r} is not a string")
    return {k: v for k, v in data.items() if v is not None}


def _body(status: int, message: str) -> bytes:
    return f'{{statusCode: {status}, message: "{message}"}}'.encode()


class CrudHandler(Handler):
    """Handles update requests aimed at the agent, such as changing its log level."""

    def __init__(self, egress: Handler, source: str, log_level: LogLevel) -> None:
        self._egress = egress
        self._source = source
        self._log_level = log_level

    def handle_wrp(self, msg: Message) -> Any:
        response = dataclasses.replace(
            msg,
            destination=msg.source,
            source=self._source,
            content_type="application/json",
        )

        try:
            payload = _decode_payload(msg.payload)
        except (ValueError, TypeError) as exc:
            response.status = _STATUS_INTERNAL_ERROR
            response.payload = _body(_STATUS_INTERNAL_ERROR, str(exc))
            return self._egress.handle_wrp(response)

        status = _STATUS_BAD_REQUEST
        message = ""
        if msg.type == MessageType.UPDATE:
            try:
                status = self._update(msg.path, payload)
            except Exception as exc:
                status = _STATUS_BAD_REQUEST
                message = str(exc)

        response.payload = _body(status, message)
        response.status = status
        return self._egress.handle_wrp(response)

    def _update(self, path: str, payload: Dict[str, str]) -> int:
        if path == "loglevel":
            self._change_log_level(payload)
            return _STATUS_OK
        return _STATUS_BAD_REQUEST

    def _change_log_level(self, payload: Dict[str, str]) -> None:
        duration: Optional[timedelta]
        try:
            duration = parse_duration(payload.get("duration", ""))
        except ValueError:
            duration = DEFAULT_LOG_LEVEL_CHANGE_DURATION
        self._log_level.set_level(payload.get("loglevel", ""), duration)