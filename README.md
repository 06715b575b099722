# wrpagent

Composable handlers for WRP messages. Every handler is a
`wrpagent.wrpkit.Handler` with a single method, `handle_wrp(msg)`.
Returning normally means the message was consumed; raising means it was
not. Handlers are chained by passing one as the `next_handler` or
`egress` of another.

## Installation

```
pip install wrpagent
```

## Modules

### `wrpagent.wrpkit`

- `Message` – a dataclass holding a WRP message: `type`, `source`,
  `destination`, `transaction_uuid`, `content_type`, `status`,
  `request_delivery_response`, `path`, `payload` (bytes), `partner_ids`,
  `quality_of_service` and more. `Message.qos_level()` maps the numeric
  quality of service to a `QOSLevel` (`LOW` below 25, `MEDIUM` below 50,
  `HIGH` below 75, `CRITICAL` otherwise).
- `MessageType` – the WRP message types. `requires_transaction()` is true
  for `SIMPLE_REQUEST_RESPONSE`, `CREATE`, `RETRIEVE`, `UPDATE` and
  `DELETE`.
- `Handler` – the abstract base class; `HandlerFunc(func)` wraps a plain
  callable as a handler.
- `NotHandledError` – raised by a handler that did not consume a message.

### `wrpagent.auth.AuthHandler`

`AuthHandler(next_handler, egress, source, *partners)` passes a message to
`next_handler` when one of its `partner_ids` matches an allowed partner, or
when `"*"` is among the allowed partners. Partner names are stripped of
surrounding whitespace and empty ones are dropped. Otherwise it raises
`UnauthorizedError`; if the message type requires a transaction, it first
sends a response with status 403 back to the message's source through
`egress`. Missing handlers, an empty source or no partners raise
`InvalidInputError`.

### `wrpagent.missing.MissingHandler`

`MissingHandler(next_handler, egress, source)` calls `next_handler`. When
that raises `NotHandledError` for a message that requires a transaction,
it sends a response with status 531 through `egress` instead of raising.
Any other error, or `NotHandledError` for a message that needs no reply,
is raised to the caller.

### `wrpagent.mocktr181.MockTr181Handler`

`MockTr181Handler(egress, source, file_path=..., enabled=...)` loads mock
parameters from a JSON file (a list of objects with `name`, `value`,
`access`, `dataType`, `attributes` and `delay`; `load_parameters(path)`
reads the same format) and answers TR-181 commands carried in message
payloads, sending the reply through `egress`:

- `GET` returns every readable parameter (`access` containing `r`) whose
  name starts with a requested name, with status 200. If any requested
  name is not found, or a non-wildcard name (one not ending in `.`)
  matches an unreadable parameter, the reply has status 520 and a single
  parameter listing the failed names.
- `SET` updates the value, data type and attributes of writable
  parameters (`access` containing `w`) with status 202. If any requested
  parameter is unknown or not writable, nothing is changed and the reply
  has status 520 listing the failures.
- An empty payload or any other command gets a 520 reply.

`process_command(payload)` returns the status code and reply body without
sending anything. A payload that is not valid JSON, or an error from
`egress`, makes `handle_wrp` raise `NotHandledError`. The payload types
`Tr181Payload` and `Parameter` convert to and from JSON with
`Tr181Payload.to_json()` and `Tr181Payload.from_json(data)`.

### `wrpagent.crud.CrudHandler`

`CrudHandler(egress, source, log_level)` handles `UPDATE` messages whose
`path` is `"loglevel"`. The JSON payload gives `loglevel` and an optional
`duration` such as `"1m"` or `"1h30m"`, parsed by `parse_duration`; a
missing or unparsable duration means 30 minutes. It calls
`log_level.set_level(level, duration)` on an object implementing the
`LogLevel` base class and replies with status 200, or 400 if `set_level`
raises. Other paths and other message types get 400; a payload that is
not a JSON object of strings gets 500.

### `wrpagent.qos`

- `wrpagent.qos.priority` – `PriorityType` (`UNKNOWN`, `OLDEST`,
  `NEWEST`), `parse_priority_type(text)` and `priority_keys()`.
- `wrpagent.qos.queue.PriorityQueue` – a heap of messages ordered by
  quality of service, ties broken in favour of the newest or the oldest
  message. When the sum of queued payloads exceeds `max_queue_bytes`, it
  drops the payloads of expired messages first, then of the lowest
  priority ones, marking them with request delivery response 102. A
  payload larger than `max_message_bytes` (when non-zero) is dropped with
  response code 4 and `MaxMessageBytesError` is raised, though the
  message stays queued. Expiry times default to 15, 20, 25 and 30 minutes
  for low, medium, high and critical messages.
- `wrpagent.qos.service.QOSHandler` – queues incoming messages and
  delivers them to `next_handler` on a background thread, one at a time,
  highest priority first, queueing failed deliveries again. Options:
  `max_queue_bytes` (0 means 1 MiB), `max_message_bytes` (0 means no
  limit), `priority`, and `low_expires`, `medium_expires`, `high_expires`,
  `critical_expires` as `timedelta`. Bad settings raise
  `MisconfiguredQOSError`; `handle_wrp` before `start()` or after
  `stop()` raises `QOSHasShutdownError`.

## Example

```python
from wrpagent.wrpkit import HandlerFunc, Message, MessageType
from wrpagent.auth import AuthHandler
from wrpagent.missing import MissingHandler

sent = []
egress = HandlerFunc(sent.append)
service = HandlerFunc(lambda msg: None)

chain = AuthHandler(
    MissingHandler(service, egress, "self:/agent/missing"),
    egress,
    "self:/agent/auth",
    "example-partner",
)

chain.handle_wrp(
    Message(
        type=MessageType.SIMPLE_EVENT,
        source="dns:server.example.com/service",
        destination="event:event_1",
        partner_ids=["example-partner"],
    )
)
```

Quality-of-service queueing:

```python
from wrpagent.qos.priority import PriorityType
from wrpagent.qos.service import QOSHandler

qos = QOSHandler(service, max_queue_bytes=1024, priority=PriorityType.NEWEST)
qos.start()
try:
    qos.handle_wrp(Message(type=MessageType.SIMPLE_EVENT, payload=b"{}"))
finally:
    qos.stop()
```

## What it does not do

The package holds message handlers only. It opens no connection to a
server and has no command-line program: messages come from whatever code
calls `handle_wrp`, and responses go to whatever handler is supplied as
`egress`. `CrudHandler` changes no logging by itself; it calls the
`LogLevel` object it is given.

## Running the tests

```
pip install -e ".[test]"
pytest
```