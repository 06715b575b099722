import pytest

from wrpagent.auth import AuthHandler, InvalidInputError, UnauthorizedError
from wrpagent.wrpkit import HandlerFunc, Message, MessageType

SOURCE = "self:/xmidt-agent/missing"


class Recorder:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def __call__(self, msg):
        self.calls.append(msg)
        if self.error is not None:
            raise self.error


def event_msg(partners=None):
    return Message(
        type=MessageType.SIMPLE_EVENT,
        source="dns:tr1d1um.example.com/service/ignored",
        destination="event:event_1/ignored",
        partner_ids=list(partners or []),
    )


def request_msg(partners=None):
    return Message(
        type=MessageType.SIMPLE_REQUEST_RESPONSE,
        source="dns:tr1d1um.example.com/service/ignored",
        destination="mac:000000000000/service",
        transaction_uuid="1234",
        partner_ids=list(partners or []),
    )


@pytest.mark.parametrize(
    "msg, partner, next_calls, egress_calls, expect_error",
    [
        (event_msg(["example-partner"]), "example-partner", 1, 0, False),
        (event_msg(["example-partner"]), "*", 1, 0, False),
        (event_msg(["example-partner"]), "some-other-partner", 0, 0, True),
        (request_msg(["example-partner"]), "some-other-partner", 0, 1, True),
        (request_msg(), "some-partner", 0, 1, True),
    ],
    ids=[
        "normal message, good auth",
        "normal message, wildcard auth",
        "partner not allowed, no response needed",
        "partner not allowed, response needed",
        "no partner provided, response needed",
    ],
)
def test_handle_wrp(msg, partner, next_calls, egress_calls, expect_error):
    nxt = Recorder()
    egress = Recorder()
    h = AuthHandler(HandlerFunc(nxt), HandlerFunc(egress), SOURCE, partner)

    if expect_error:
        with pytest.raises(UnauthorizedError):
            h.handle_wrp(msg)
    else:
        assert h.handle_wrp(msg) is None

    assert len(nxt.calls) == next_calls
    assert len(egress.calls) == egress_calls


def test_response_contents():
    egress = Recorder()
    h = AuthHandler(HandlerFunc(Recorder()), HandlerFunc(egress), SOURCE, "allowed")
    msg = request_msg(["example-partner"])
    with pytest.raises(UnauthorizedError):
        h.handle_wrp(msg)

    (response,) = egress.calls
    assert response.status == 403
    assert response.source == SOURCE
    assert response.destination == msg.source
    assert response.content_type == "application/json"
    assert response.transaction_uuid == "1234"
    assert response.payload == (
        b"{statusCode: 403, message:\"Partner(s) 'example-partner' not allowed."
        b"  Allowed: 'allowed'\"}"
    )
    # The original message is left untouched.
    assert msg.source == "dns:tr1d1um.example.com/service/ignored"
    assert msg.status is None


def test_egress_failure_is_chained():
    boom = RuntimeError("boom")
    h = AuthHandler(
        HandlerFunc(Recorder()), HandlerFunc(Recorder(boom)), SOURCE, "allowed"
    )
    with pytest.raises(UnauthorizedError) as info:
        h.handle_wrp(request_msg(["other"]))
    assert info.value.__cause__ is boom


def test_partner_whitespace_is_trimmed():
    nxt = Recorder()
    h = AuthHandler(HandlerFunc(nxt), HandlerFunc(Recorder()), SOURCE, "  p1  ", "")
    h.handle_wrp(event_msg([" p1 "]))
    assert len(nxt.calls) == 1
    assert h.partners == ["p1"]


def test_wildcard_needs_some_partner():
    h = AuthHandler(HandlerFunc(Recorder()), HandlerFunc(Recorder()), SOURCE, "*")
    with pytest.raises(UnauthorizedError):
        h.handle_wrp(event_msg())


def test_next_error_propagates():
    boom = ValueError("next failed")
    h = AuthHandler(HandlerFunc(Recorder(boom)), HandlerFunc(Recorder()), SOURCE, "p")
    with pytest.raises(ValueError, match="next failed"):
        h.handle_wrp(event_msg(["p"]))


@pytest.mark.parametrize(
    "use_next, use_egress, source, partners",
    [
        (False, True, SOURCE, ("p",)),
        (True, False, SOURCE, ("p",)),
        (True, True, "", ("p",)),
        (True, True, SOURCE, ()),
        (True, True, SOURCE, ("  ", "")),
    ],
)
def test_invalid_input(use_next, use_egress, source, partners):
    nxt = HandlerFunc(Recorder()) if use_next else None
    egress = HandlerFunc(Recorder()) if use_egress else None
    with pytest.raises(InvalidInputError):
        AuthHandler(nxt, egress, source, *partners)