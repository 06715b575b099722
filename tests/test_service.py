import threading
import time
from datetime import timedelta

import pytest

from wrpagent.qos.priority import MisconfiguredQOSError, PriorityType
from wrpagent.qos.service import InvalidInputError, QOSHandler, QOSHasShutdownError
from wrpagent.wrpkit import (
    QOS_CRITICAL_VALUE,
    QOS_LOW_VALUE,
    HandlerFunc,
    Message,
    MessageType,
)


def make_msg(qos=QOS_LOW_VALUE, destination="mac:000000000000/config"):
    return Message(
        type=MessageType.SIMPLE_REQUEST_RESPONSE,
        source="dns:tr1d1um.example.com/service/ignored",
        destination=destination,
        payload=b'{"command":"GET","names":["NoSuchParameter"]}',
        quality_of_service=qos,
    )


class Recorder:
    def __init__(self, fail_times=0, gate=None):
        self.received = []
        self.fail_times = fail_times
        self.gate = gate
        self.started = threading.Event()
        self.lock = threading.Lock()

    def __call__(self, msg):
        self.started.set()
        if self.gate is not None:
            self.gate.wait(5)
        with self.lock:
            self.received.append(msg)
            if len(self.received) <= self.fail_times:
                raise RuntimeError("random error")

    def wait_for(self, count, timeout=2.0):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            with self.lock:
                if len(self.received) >= count:
                    return True
            time.sleep(0.01)
        return False


BASE = dict(max_queue_bytes=100, max_message_bytes=50, priority=PriorityType.NEWEST)


@pytest.mark.parametrize(
    "options",
    [
        BASE,
        dict(max_queue_bytes=100, priority=PriorityType.NEWEST),
        dict(max_queue_bytes=100, max_message_bytes=50, priority=PriorityType.OLDEST),
        dict(max_queue_bytes=0, max_message_bytes=0, priority=PriorityType.NEWEST),
        dict(BASE, low_expires=timedelta(0)),
        dict(BASE, medium_expires=timedelta(0)),
        dict(BASE, high_expires=timedelta(0)),
        dict(BASE, critical_expires=timedelta(0)),
    ],
)
def test_delivers_message(options):
    rec = Recorder()
    h = QOSHandler(HandlerFunc(rec), **options)
    h.start()
    h.start()
    try:
        msg = make_msg()
        h.handle_wrp(msg)
        assert rec.wait_for(1)
        time.sleep(0.1)
        assert len(rec.received) == 1
        assert rec.received[0] == msg
    finally:
        h.stop()


def test_failed_delivery_is_retried():
    rec = Recorder(fail_times=1)
    h = QOSHandler(HandlerFunc(rec), **BASE)
    h.start()
    try:
        h.handle_wrp(make_msg())
        assert rec.wait_for(2)
        time.sleep(0.1)
        assert len(rec.received) == 2
        assert rec.received[0] == rec.received[1]
    finally:
        h.stop()


def test_queues_while_delivery_is_blocked():
    gate = threading.Event()
    rec = Recorder(gate=gate)
    h = QOSHandler(HandlerFunc(rec), **BASE)
    h.start()
    try:
        h.handle_wrp(make_msg())
        assert rec.started.wait(2)
        h.handle_wrp(make_msg())
        time.sleep(0.1)
        assert rec.received == []
        gate.set()
        assert rec.wait_for(2)
        assert len(rec.received) == 2
    finally:
        gate.set()
        h.stop()


def test_higher_qos_delivered_first():
    gate = threading.Event()
    rec = Recorder(gate=gate)
    h = QOSHandler(HandlerFunc(rec), max_queue_bytes=1000, max_message_bytes=100)
    h.start()
    try:
        first = make_msg(destination="mac:000000000001/config")
        low = make_msg(QOS_LOW_VALUE, "mac:000000000002/config")
        critical = make_msg(QOS_CRITICAL_VALUE, "mac:000000000003/config")
        h.handle_wrp(first)
        assert rec.started.wait(2)
        h.handle_wrp(low)
        h.handle_wrp(critical)
        time.sleep(0.1)
        gate.set()
        assert rec.wait_for(3)
        assert [m.destination for m in rec.received] == [
            first.destination,
            critical.destination,
            low.destination,
        ]
    finally:
        gate.set()
        h.stop()


def test_handle_after_stop_raises():
    rec = Recorder()
    h = QOSHandler(HandlerFunc(rec), **BASE)
    h.start()
    h.stop()
    h.stop()
    time.sleep(0.01)
    with pytest.raises(QOSHasShutdownError):
        h.handle_wrp(make_msg())
    time.sleep(0.05)
    assert rec.received == []


def test_handle_before_start_raises():
    h = QOSHandler(HandlerFunc(Recorder()), **BASE)
    with pytest.raises(QOSHasShutdownError):
        h.handle_wrp(make_msg())


def test_missing_next_handler():
    with pytest.raises(InvalidInputError):
        QOSHandler(None, **BASE)


@pytest.mark.parametrize(
    "options",
    [
        dict(BASE, max_queue_bytes=-1),
        dict(BASE, max_message_bytes=-1),
        dict(BASE, priority=-1),
        dict(BASE, priority=2**63 - 1),
        dict(BASE, priority=PriorityType.UNKNOWN),
        dict(BASE, low_expires=timedelta(seconds=-1)),
        dict(BASE, medium_expires=timedelta(seconds=-1)),
        dict(BASE, high_expires=timedelta(seconds=-1)),
        dict(BASE, critical_expires=timedelta(seconds=-1)),
        dict(max_queue_bytes=10, max_message_bytes=50, priority=PriorityType.NEWEST),
        dict(max_queue_bytes=-1, max_message_bytes=-1, priority=PriorityType.UNKNOWN),
    ],
)
def test_misconfigured(options):
    with pytest.raises(MisconfiguredQOSError):
        QOSHandler(HandlerFunc(Recorder()), **options)