"""
Remote Bridge - joins a local EventBus to a remote one over a Channel.

Outbound: installs itself as the bus's slow delegate, so every publish
that touches a remote-marked name is sent across the channel once, under
its original (unexpanded) name.

Inbound: subscribe requests mark names remote, published events re-enter
the bus through EventBus.receive() (never forwarded back, so two bridged
buses cannot echo an event forever), and a connect-ack is announced on
the local bus. The transport calls resubscribe() each time its connection
comes up, so the subscriptions this side asked for survive a reconnect.
"""
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.bus import EventBus
from core.events import ChannelMessage, MessageKind
from core.protocols import Channel
from core.sessions import SessionTracker
from utils.constants import ARG_PEER_ID, EVENT_CONNECTED, WIRE_PEER_ID
from utils.failures import ProtocolError
from utils.logger import Logger


class RemoteBridge:
    """
    Bridges one EventBus to a remote bus.

    Client side: RemoteBridge(bus, channel)
    Server side: RemoteBridge(bus, channel, tracker=SessionTracker(bus))
    """

    def __init__(self, bus: EventBus, channel: Optional[Channel] = None,
                 tracker: Optional[SessionTracker] = None):
        self.bus = bus
        self.tracker = tracker
        self.channel: Optional[Channel] = None
        self.logger = Logger("RemoteBridge")

        self._on_client = True
        self._on_server = True
        # Names we asked the peer to forward, replayed on every (re)connect
        self._requested: List[str] = []
        self._lock = threading.Lock()

        if channel is not None:
            self.set_channel(channel)

    def set_channel(self, channel: Channel) -> None:
        """Attach the transport and start forwarding remote events through it."""
        self.channel = channel
        self.bus.set_slow_delegate(self._forward)

    def detach(self) -> None:
        self.bus.set_slow_delegate(None)
        self.channel = None

    # --- Outbound ---

    def _forward(self, event_name: str, args: Dict[str, Any], routes: Tuple[str, ...]) -> None:
        self.logger.debug(f"slowDelegate: eventID={event_name}")
        self._send(ChannelMessage(MessageKind.PUBLISH, event_name, args, routes=routes))

    def _send(self, message: ChannelMessage) -> None:
        if self.channel is None:
            self.logger.debug(f"No channel attached, dropping {message.kind.value}")
            return
        self.channel.send(message)

    def set_subscribe_client_server(self, on_client: bool = True, on_server: bool = True) -> None:
        """
        Choose what subscribe() does.

        Args:
            on_client: subscribe the callback on the local bus.
            on_server: ask the peer to forward the event to us.
        """
        self._on_client = on_client
        self._on_server = on_server

    def subscribe(self, event_name: str, callback: Optional[Callable[..., Any]] = None,
                  context: Any = None, priority: Optional[int] = None) -> Optional[int]:
        """
        Subscribe to an event published on the peer AND on this local bus.

        Returns:
            The local subscription handle, or None if nothing was
            subscribed locally.
        """
        if self._on_server:
            self.request_subscription(event_name)
        if callback is not None and self._on_client:
            return self.bus.subscribe(event_name, callback, context, priority)
        return None

    def request_subscription(self, event_name: str, peer_id: Optional[str] = None) -> None:
        """
        Ask the peer to forward an event name to us.

        Untargeted requests are remembered and re-sent after a reconnect;
        requests targeted at one peer are one-shot.
        """
        if peer_id is None:
            with self._lock:
                if event_name not in self._requested:
                    self._requested.append(event_name)
        self._send(ChannelMessage(MessageKind.SUBSCRIBE, event_name, target=peer_id))

    def requested_subscriptions(self) -> List[str]:
        with self._lock:
            return list(self._requested)

    def resubscribe(self, peer_id: Optional[str] = None) -> None:
        """
        Re-send every remembered subscription request.

        Called by a client transport once its connection is up, and by a
        server for each newly connected peer (peer_id set).
        """
        for event_name in self.requested_subscriptions():
            self._send(ChannelMessage(MessageKind.SUBSCRIBE, event_name, target=peer_id))

    # --- Inbound ---

    def handle_message(self, message: ChannelMessage, peer_id: Optional[str] = None) -> None:
        """Entry point for the transport: one inbound message from a peer."""
        if message.kind is MessageKind.CONNECT_ACK:
            self._on_connect_ack(message)
        elif message.kind is MessageKind.SUBSCRIBE:
            self._on_subscribe(message, peer_id)
        elif message.kind is MessageKind.PUBLISH:
            self._on_publish(message, peer_id)

    def _on_connect_ack(self, message: ChannelMessage) -> None:
        self.logger.info("PubSubConnect: connected to remote bus")
        self.bus.receive(EVENT_CONNECTED, dict(message.args or {}))

    def _on_subscribe(self, message: ChannelMessage, peer_id: Optional[str]) -> None:
        event_name = message.event_name
        if not event_name:
            self.bus.failures.record_failure(ProtocolError(f"Subscribe request without eventID from {peer_id}"))
            return
        self.logger.info(f"PubSubSubscribe: eventID={event_name}")
        if self.tracker is not None and peer_id is not None:
            if not self.tracker.attach(peer_id, event_name):
                return
        self.bus.subscribe_remote(event_name)

    def _on_publish(self, message: ChannelMessage, peer_id: Optional[str]) -> None:
        event_name = message.event_name
        if not event_name:
            self.bus.failures.record_failure(ProtocolError(f"Publish without eventID from {peer_id}"))
            return
        self.logger.debug(f"PubSubPublish: eventID={event_name}")
        args = dict(message.args or {})
        if peer_id is not None:
            # lets local subscribers answer the peer that published
            args[ARG_PEER_ID] = peer_id
        self.bus.receive(event_name, args)


def connect_ack(peer_id: str) -> ChannelMessage:
    """The message a server sends once it has accepted a peer."""
    return ChannelMessage(MessageKind.CONNECT_ACK, args={WIRE_PEER_ID: peer_id}, target=peer_id)
