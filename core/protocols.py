"""
Protocol definitions (interfaces) for the PubSub bridge.

These define the contracts that transports must implement, so the bridge
can be wired to socket.io in production and to an in-memory fake in tests.
"""
from typing import Any, Dict, Optional, Protocol, Tuple, runtime_checkable

from core.events import ChannelMessage


@runtime_checkable
class Channel(Protocol):
    """Opaque, fire-and-forget channel to a remote bus."""

    def send(self, message: ChannelMessage) -> None:
        """
        Send one message to the remote side.

        Must not raise for a missing or dead peer; undeliverable messages
        are dropped (no delivery guarantee).
        """
        ...


@runtime_checkable
class ClientTransport(Channel, Protocol):
    """A channel that owns an outbound connection."""

    def connect(self) -> bool:
        """Establish connection to the remote peer. Returns True on success."""
        ...

    def disconnect(self) -> None:
        """Cleanly close the connection."""
        ...


class SlowDelegate(Protocol):
    """Called by the bus, once per publish, for events that must cross the boundary."""

    def __call__(self, event_name: str, args: Dict[str, Any], routes: Tuple[str, ...]) -> None:
        ...


class MessageHandler(Protocol):
    """Inbound side of a channel: the transport hands every message here."""

    def __call__(self, message: ChannelMessage, peer_id: Optional[str] = None) -> None:
        ...
