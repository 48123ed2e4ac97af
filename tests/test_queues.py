"""Tests for the inbound/outbound message queues."""

import threading

import pytest

from serial_link_lib.models import DataMessage, LinkEvent
from serial_link_lib.queues import InboundQueue, MessageQueues, OutboundQueue


def test_inbound_drops_new_when_full() -> None:
    """Capacity 1: A is kept, B is discarded, pop yields A."""
    queue = InboundQueue(capacity=1)

    assert queue.push(DataMessage("A")) is True
    assert queue.push(DataMessage("B")) is False

    assert len(queue) == 1
    assert queue.dropped == 1
    assert queue.pop() == DataMessage("A")
    assert queue.pop() is None


def test_inbound_fifo_order() -> None:
    queue = InboundQueue(capacity=3)
    queue.push(LinkEvent.CONNECTED)
    queue.push(DataMessage("x"))
    queue.push(DataMessage(b"y"))

    assert queue.pop() is LinkEvent.CONNECTED
    assert queue.pop() == DataMessage("x")
    assert queue.pop() == DataMessage(b"y")


def test_inbound_empty_pop_is_idempotent() -> None:
    """Repeated pops on an empty queue return None without side effects."""
    queue = InboundQueue(capacity=2)
    for _ in range(5):
        assert queue.pop() is None
    assert len(queue) == 0
    assert queue.dropped == 0

    # Still accepts messages afterwards
    assert queue.push(DataMessage("late"))
    assert queue.pop() == DataMessage("late")


def test_inbound_accepts_again_after_pop() -> None:
    queue = InboundQueue(capacity=1)
    queue.push(DataMessage("A"))
    queue.pop()
    assert queue.push(DataMessage("B"))
    assert queue.pop() == DataMessage("B")


def test_inbound_invalid_capacity() -> None:
    with pytest.raises(ValueError):
        InboundQueue(capacity=0)


def test_inbound_concurrent_push_respects_capacity() -> None:
    """Concurrent pushers never exceed capacity."""
    queue = InboundQueue(capacity=50)

    def pusher(tag: str) -> None:
        for i in range(100):
            queue.push(DataMessage(f"{tag}{i}"))

    threads = [threading.Thread(target=pusher, args=(t,)) for t in "abcd"]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(queue) == 50
    assert queue.dropped == 350


def test_outbound_unbounded_fifo() -> None:
    queue = OutboundQueue()
    for i in range(1000):
        queue.push(f"m{i}")

    assert len(queue) == 1000
    assert queue.pop() == "m0"
    assert queue.pop() == "m1"

    rest = queue.drain()
    assert rest[0] == "m2"
    assert rest[-1] == "m999"
    assert len(queue) == 0
    assert queue.pop() is None


def test_message_queues_are_independent() -> None:
    queues = MessageQueues(max_unread_messages=1)
    queues.outbound.push("out")
    queues.inbound.push(DataMessage("in"))

    assert queues.inbound.capacity == 1
    assert queues.outbound.pop() == "out"
    assert queues.inbound.pop() == DataMessage("in")
