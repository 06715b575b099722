"""Handler that answers TR-181 GET and SET commands from a mock parameter file."""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from wrpagent.wrpkit import Handler, Message, NotHandledError

_STATUS_FAILURE = 520
_STATUS_OK = 200
_STATUS_ACCEPTED = 202


class Tr181Error(Exception):
    """Base class for mock TR-181 errors."""


class InvalidInputError(Tr181Error, ValueError):
    """Raised when the handler is built with missing or empty arguments."""


class InvalidFileInputError(Tr181Error, ValueError):
    """Raised when the mock file is misconfigured or malformed."""


class UnableToReadFileError(Tr181Error):
    """Raised when the mock file cannot be loaded."""


class InvalidPayloadError(Tr181Error, ValueError):
    """Raised when a request payload cannot be decoded."""


class InvalidResponsePayloadError(Tr181Error):
    """Raised when a response payload cannot be encoded."""


class _MockFileContentError(UnableToReadFileError, InvalidFileInputError):
    """The mock file was read but its content is not a valid parameter list."""


# Field specs: lower-cased JSON key -> (attribute name, kind).
_MOCK_PARAMETER_FIELDS = {
    "name": ("name", "str"),
    "value": ("value", "str"),
    "access": ("access", "str"),
    "datatype": ("data_type", "int"),
    "attributes": ("attributes", "dict"),
    "delay": ("delay", "int"),
}

_PARAMETER_FIELDS = {
    "name": ("name", "str"),
    "value": ("value", "str"),
    "datatype": ("data_type", "int"),
    "attributes": ("attributes", "dict"),
    "message": ("message", "str"),
    "parametercount": ("count", "int"),
}

_PAYLOAD_FIELDS = {
    "command": ("command", "str"),
    "names": ("names", "strlist"),
    "parameters": ("parameters", "paramlist"),
    "statuscode": ("status_code", "int"),
}


def _convert(value: Any, kind: str, key: str, error: type) -> Any:
    if kind == "str":
        if isinstance(value, str):
            return value
    elif kind == "int":
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif kind == "dict":
        if isinstance(value, dict):
            return value
    elif kind == "strlist":
        if isinstance(value, list):
            return [_convert(v, "str", key, error) if v is not None else "" for v in value]
    elif kind == "paramlist":
        if isinstance(value, list):
            return [
                Parameter(**_decode_object(v, _PARAMETER_FIELDS, error)) if v is not None else Parameter()
                for v in value
            ]
    raise error(f"field {key!r}: unexpected value {value!r}")


def _decode_object(obj: Any, spec: Dict[str, Tuple[str, str]], error: type) -> Dict[str, Any]:
    """Decode a JSON object into keyword arguments, matching keys case-insensitively."""
    if not isinstance(obj, dict):
        raise error(f"expected an object, got {obj!r}")
    values: Dict[str, Any] = {}
    for key, value in obj.items():
        entry = spec.get(key.lower())
        if entry is None or value is None:
            continue
        attr, kind = entry
        values[attr] = _convert(value, kind, key, error)
    return values


def _encode_json(obj: Any) -> bytes:
    text = json.dumps(obj, ensure_ascii=False, separators=(",", ":"))
    for char, escape in (
        ("<", "\\u003c"),
        (">", "\\u003e"),
        ("&", "\\u0026"),
        ("\u2028", "\\u2028"),
        ("\u2029", "\\u2029"),
    ):
        text = text.replace(char, escape)
    return text.encode()


@dataclass
class MockParameter:
    """A parameter held by the mock device."""

    name: str = ""
    value: str = ""
    access: str = ""
    data_type: int = 0
    attributes: Optional[Dict[str, Any]] = None
    delay: int = 0


@dataclass
class Parameter:
    """A parameter as carried in a TR-181 request or response."""

    name: str = ""
    value: str = ""
    data_type: int = 0
    attributes: Optional[Dict[str, Any]] = None
    message: str = ""
    count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "dataType": self.data_type,
            "attributes": self.attributes,
            "message": self.message,
            "parameterCount": self.count,
        }


@dataclass
class Tr181Payload:
    """A TR-181 command or its result."""

    command: str = ""
    names: Optional[List[str]] = None
    parameters: Optional[List[Parameter]] = None
    status_code: int = 0

    def to_json(self) -> bytes:
        """Encode the payload as compact JSON."""
        try:
            return _encode_json(
                {
                    "command": self.command,
                    "names": self.names,
                    "parameters": (
                        None
                        if self.parameters is None
                        else [p.to_dict() for p in self.parameters]
                    ),
                    "statusCode": self.status_code,
                }
            )
        except (TypeError, ValueError) as exc:
            raise InvalidResponsePayloadError(str(exc)) from exc

    @staticmethod
    def from_json(data) -> "Tr181Payload":
        """Decode a payload from JSON bytes or text."""
        try:
            obj = json.loads(data)
        except (TypeError, ValueError) as exc:
            raise InvalidPayloadError(str(exc)) from exc
        return Tr181Payload(**_decode_object(obj, _PAYLOAD_FIELDS, InvalidPayloadError))


def load_parameters(file_path) -> List[MockParameter]:
    """Read the list of mock parameters from a JSON file."""
    try:
        with open(file_path, "rb") as fh:
            raw = fh.read()
    except (OSError, TypeError, ValueError) as exc:
        raise UnableToReadFileError(f"unable to read file: {exc}") from exc

    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise _MockFileContentError(f"misconfigured file input: {exc}") from exc
    if data is None:
        return []
    if not isinstance(data, list):
        raise _MockFileContentError("misconfigured file input: expected a list")
    return [
        MockParameter(**_decode_object(entry, _MOCK_PARAMETER_FIELDS, _MockFileContentError))
        if entry is not None
        else MockParameter()
        for entry in data
    ]


class MockTr181Handler(Handler):
    """Answers TR-181 GET and SET commands against an in-memory parameter set."""

    def __init__(
        self,
        egress: Optional[Handler],
        source: str,
        *,
        file_path: Optional[str] = None,
        enabled: bool = False,
    ) -> None:
        if file_path == "":
            raise InvalidFileInputError("misconfigured file input: empty mock file location")
        if file_path is None:
            raise UnableToReadFileError("unable to read file: no mock file location")
        self._egress = egress
        self._source = source
        self._file_path = file_path
        self._enabled = enabled
        self._parameters = load_parameters(file_path)
        if egress is None or not source:
            raise InvalidInputError("invalid input")

    def enabled(self) -> bool:
        return self._enabled

    @property
    def parameters(self) -> List[MockParameter]:
        return self._parameters

    def handle_wrp(self, msg: Message) -> None:
        try:
            status, payload = self.process_command(msg.payload)
        except Exception as exc:
            raise NotHandledError(str(exc)) from exc

        response = dataclasses.replace(
            msg,
            destination=msg.source,
            source=self._source,
            content_type="application/json",
            payload=payload,
            status=status,
        )
        try:
            self._egress.handle_wrp(response)
        except Exception as exc:
            raise NotHandledError(str(exc)) from exc

    def process_command(self, payload: bytes) -> Tuple[int, bytes]:
        """Run a TR-181 command and return the status code and response body."""
        if not payload:
            return _STATUS_FAILURE, (
                f'{{"message": ""Invalid Input Command"", "statusCode": {_STATUS_FAILURE}}}'
            ).encode()

        request = Tr181Payload.from_json(payload)
        if request.command == "GET":
            return self._get(request)
        if request.command == "SET":
            return self._set(request)
        return _STATUS_FAILURE, (
            f'{{"message": "command \'{request.command}\' is not supported", '
            f'"statusCode": {_STATUS_FAILURE}}}'
        ).encode()

    def _get(self, request: Tr181Payload) -> Tuple[int, bytes]:
        result = Tr181Payload(command=request.command, names=request.names, status_code=_STATUS_OK)
        failed: List[str] = []
        readable: List[Parameter] = []

        for name in request.names or []:
            found = False
            for mock in self._parameters:
                if not name or not mock.name.startswith(name):
                    continue
                if "r" in mock.access:
                    found = True
                    readable.append(
                        Parameter(
                            name=mock.name,
                            value=mock.value,
                            data_type=mock.data_type,
                            attributes=mock.attributes,
                            message="Success",
                            count=1,
                        )
                    )
                    continue
                if name.endswith("."):
                    continue
                failed.append(mock.name)
            if not found:
                failed.append(name)

        result.parameters = readable or None
        if failed:
            result.parameters = [
                Parameter(message=f"Invalid parameter names: [{' '.join(failed)}]")
            ]
            result.status_code = _STATUS_FAILURE

        return result.status_code, result.to_json()

    def _set(self, request: Tr181Payload) -> Tuple[int, bytes]:
        result = Tr181Payload(
            command=request.command, names=request.names, status_code=_STATUS_ACCEPTED
        )
        requested = request.parameters or []
        writable: List[MockParameter] = []
        failed: List[Parameter] = []

        for parameter in requested:
            found = False
            for mock in self._parameters:
                if mock.name != parameter.name:
                    continue
                if "w" in mock.access:
                    found = True
                    writable.append(mock)
                    continue
                failed.append(Parameter(name=mock.name, message="Parameter is not writable"))
            if not found:
                failed.append(Parameter(name=parameter.name, message="Invalid parameter name"))

        if failed:
            writable = []
            result.parameters = failed
            result.status_code = _STATUS_FAILURE

        for parameter in requested:
            for mock in writable:
                if mock.name != parameter.name:
                    continue
                mock.value = parameter.value
                mock.data_type = parameter.data_type
                mock.attributes = parameter.attributes
                if result.parameters is None:
                    result.parameters = []
                result.parameters.append(
                    Parameter(
                        name=mock.name,
                        value=mock.value,
                        data_type=mock.data_type,
                        attributes=mock.attributes,
                        message="Success",
                    )
                )

        return result.status_code, result.to_json()