"""
Socket Server Handler - server-side transport for remote PubSub peers.

Accepts Socket.IO connections on the PubSub namespace, reports connects and
disconnects to the SessionTracker, and hands every inbound PubSub message
to the bridge tagged with the sending peer's id.

Fan-out: a forwarded event goes to each live peer that asked for one of
the names that triggered forwarding; targeted messages go to one peer;
anything else is broadcast on the namespace.
"""
from typing import Any, Optional

import socketio
from socketio.exceptions import SocketIOError

from core.bridge import connect_ack
from core.events import ChannelMessage, MessageKind
from core.protocols import MessageHandler
from core.sessions import SessionTracker
from utils.constants import DEFAULT_NAMESPACE
from utils.failures import FailureManager, NetworkError
from utils.logger import Logger


class SocketServerHandler:
    """Implements the Channel protocol for a Socket.IO server."""

    def __init__(
        self,
        tracker: SessionTracker,
        on_message: Optional[MessageHandler] = None,
        namespace: str = DEFAULT_NAMESPACE,
        failures: Optional[FailureManager] = None,
        sio: Optional[socketio.Server] = None,
    ):
        """
        Args:
            tracker: Session bookkeeping for connected peers.
            on_message: Called with (ChannelMessage, peer_id) for every inbound message.
            namespace: Socket.IO namespace the buses talk on.
            failures: Where transport failures are recorded.
            sio: Pre-built Socket.IO server (tests).
        """
        self.tracker = tracker
        self.on_message = on_message
        self.namespace = namespace
        self.failures = failures or tracker.failures
        self.sio = sio or socketio.Server(async_mode='threading', cors_allowed_origins='*')
        self.logger = Logger("SocketServerHandler")

        self._setup_handlers()

    def _setup_handlers(self):
        self.sio.on('connect', handler=self._on_connect, namespace=self.namespace)
        self.sio.on('disconnect', handler=self._on_disconnect, namespace=self.namespace)
        for kind in (MessageKind.SUBSCRIBE, MessageKind.PUBLISH):
            self.sio.on(kind.value, handler=self._make_receiver(kind), namespace=self.namespace)

    def create_app(self) -> socketio.WSGIApp:
        """WSGI application serving the Socket.IO endpoint."""
        return socketio.WSGIApp(self.sio)

    def _on_connect(self, sid: str, environ: Optional[dict] = None, auth: Any = None):
        if not self.tracker.on_connect(sid):
            return False
        self.send(connect_ack(sid))
        return True

    def _on_disconnect(self, sid: str, *reason):
        self.tracker.on_disconnect(sid)

    def _make_receiver(self, kind: MessageKind):
        def receive(sid: str, data: Any = None):
            self.logger.debug(f"Socket Event Received from {sid}: '{kind.value}' | Data: {data}")
            if self.on_message is not None:
                self.on_message(ChannelMessage.from_wire(kind, data), sid)
        return receive

    def send(self, message: ChannelMessage) -> None:
        """Route one outbound message to the right peer(s)."""
        if message.target is not None:
            if not self.tracker.is_connected(message.target):
                self.logger.debug(f"Peer {message.target} is gone, dropping {message.kind.value}")
                return
            self._emit(message, to=message.target)
        elif message.kind is MessageKind.PUBLISH:
            peers = self.tracker.peers_for(message.routes)
            if not peers:
                self.logger.debug(f"No peer subscribed to '{message.event_name}'")
            for peer_id in peers:
                self._emit(message, to=peer_id)
        else:
            self._emit(message)

    def _emit(self, message: ChannelMessage, to: Optional[str] = None) -> None:
        try:
            self.sio.emit(message.kind.value, message.to_wire(), to=to, namespace=self.namespace)
        except SocketIOError as e:
            self.failures.record_failure(NetworkError(f"Emit {message.kind.value} to {to or 'all'} failed: {e}"))
