"""
Value types shared by the bus, the bridge and the transports.

Event payloads themselves are plain dicts (they cross the wire as JSON);
the dataclasses here describe outcomes, wire messages and peer sessions.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Set, Tuple

from utils.constants import (LOCAL_ONLY_ARGS, MSG_CONNECT_ACK, MSG_PUBLISH,
                             MSG_SUBSCRIBE, WIRE_ARGS, WIRE_EVENT_ID)


class CheckResult(Enum):
    """Outcome of a read-only check of an event."""
    VETOED = "vetoed"
    NO_SUBSCRIBERS = "no_subscribers"
    ACCEPTED = "accepted"

    def __bool__(self) -> bool:
        return self is CheckResult.ACCEPTED


class MessageKind(str, Enum):
    """Channel message kinds, valued by their socket.io event names."""
    CONNECT_ACK = MSG_CONNECT_ACK
    SUBSCRIBE = MSG_SUBSCRIBE
    PUBLISH = MSG_PUBLISH


@dataclass(frozen=True)
class ChannelMessage:
    """
    One message on the opaque bus-to-bus channel.

    `routes` and `target` are local routing hints for the transport and
    never go on the wire.
    """
    kind: MessageKind
    event_name: Optional[str] = None
    args: Optional[Dict[str, Any]] = None
    routes: Tuple[str, ...] = ()
    target: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.event_name is not None:
            payload[WIRE_EVENT_ID] = self.event_name
        if self.args is not None:
            payload[WIRE_ARGS] = self.args
        return payload

    @classmethod
    def from_wire(cls, kind, data: Any) -> "ChannelMessage":
        """Build a message from a socket.io event name and its payload."""
        data = data if isinstance(data, dict) else {}
        args = data.get(WIRE_ARGS)
        return cls(
            kind=MessageKind(kind),
            event_name=data.get(WIRE_EVENT_ID),
            args=args if isinstance(args, dict) else None,
        )


@dataclass
class RemotePeerSession:
    """A connected remote peer and the event names it asked us to forward."""
    peer_id: str
    attached_event_names: Set[str] = field(default_factory=set)
    connected_at: float = field(default_factory=time.time)


def strip_local_args(args: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of event args without the fields that only make sense locally."""
    return {k: v for k, v in args.items() if k not in LOCAL_ONLY_ARGS}
