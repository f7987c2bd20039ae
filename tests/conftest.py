"""Shared fixtures: a fresh bus per test and in-memory channels."""

from typing import List

import pytest

from core.bridge import RemoteBridge
from core.bus import EventBus
from core.events import ChannelMessage
from utils.failures import FailureManager


class RecordingChannel:
    """Channel that just records what would have been sent."""

    def __init__(self) -> None:
        self.sent: List[ChannelMessage] = []

    def send(self, message: ChannelMessage) -> None:
        self.sent.append(message)

    def published(self) -> List[ChannelMessage]:
        return [m for m in self.sent if m.kind.value == "PubSubPublish"]


class PipeChannel:
    """One end of an in-process link: send() hands the wire payload to the other bridge."""

    def __init__(self) -> None:
        self.peer: "RemoteBridge | None" = None
        self.sent: List[ChannelMessage] = []

    def send(self, message: ChannelMessage) -> None:
        self.sent.append(message)
        if self.peer is not None:
            self.peer.handle_message(ChannelMessage.from_wire(message.kind, message.to_wire()))


@pytest.fixture
def failures() -> FailureManager:
    return FailureManager({"threshold": 1000})


@pytest.fixture
def bus(failures: FailureManager) -> EventBus:
    return EventBus(failures=failures)


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def linked_buses():
    """Two buses joined by a pair of pipe channels: (bus_a, bridge_a, bus_b, bridge_b)."""
    bus_a, bus_b = EventBus(), EventBus()
    pipe_a, pipe_b = PipeChannel(), PipeChannel()
    bridge_a = RemoteBridge(bus_a, pipe_a)
    bridge_b = RemoteBridge(bus_b, pipe_b)
    pipe_a.peer = bridge_b
    pipe_b.peer = bridge_a
    return bus_a, bridge_a, bus_b, bridge_b
