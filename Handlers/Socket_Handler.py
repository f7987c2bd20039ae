"""
Socket Handler - client-side transport to a remote PubSub server.

Implements the ClientTransport protocol over a Socket.IO namespace.
Every PubSub wire event is turned into a ChannelMessage and handed to the
bridge; outbound messages are emitted only while connected (no queueing,
no delivery guarantee). Reconnection uses Socket.IO's exponential backoff;
each (re)connect of the namespace fires on_connected so subscriptions can
be replayed once sending is possible.
"""
from typing import Any, Callable, List, Optional

import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError, SocketIOError

from core.events import ChannelMessage, MessageKind
from core.protocols import MessageHandler
from utils.constants import DEFAULT_NAMESPACE
from utils.failures import FailureManager, NetworkError
from utils.logger import Logger


class SocketHandler:
    """Handles the Socket.IO connection to the PubSub server.

    Implements the ClientTransport protocol:
        connect() -> bool
        disconnect() -> None
        send(message) -> None
    """

    def __init__(
        self,
        server_url: str,
        on_message: Optional[MessageHandler] = None,
        namespace: str = DEFAULT_NAMESPACE,
        failures: Optional[FailureManager] = None,
        sio: Optional[socketio.Client] = None,
        reconnection_attempts: int = 10,
        reconnection_delay: float = 2,
        reconnection_delay_max: float = 30,
        on_connected: Optional[Callable[[], None]] = None,
        transports: Optional[List[str]] = None,
    ):
        """
        Initialize socket handler.

        Args:
            server_url: URL of the PubSub server
            on_message: Called with every inbound ChannelMessage
            namespace: Socket.IO namespace the buses talk on
            failures: Where transport failures are recorded
            sio: Pre-built Socket.IO client (tests)
            on_connected: Called each time the namespace (re)connects
            transports: Engine.IO transports to allow (default: all)
        """
        self.server_url = server_url
        self.namespace = namespace
        self.on_message = on_message
        self.on_connected = on_connected
        self.transports = transports
        self.failures = failures or FailureManager()
        self.sio = sio or socketio.Client(
            reconnection=True,
            reconnection_attempts=reconnection_attempts,
            reconnection_delay=reconnection_delay,
            reconnection_delay_max=reconnection_delay_max,
        )
        self.connected = False
        self.logger = Logger("SocketHandler")

        self._setup_handlers()

    def _setup_handlers(self):
        """Register Socket.IO event handlers on the PubSub namespace."""
        self.sio.on('connect', handler=self._on_connect, namespace=self.namespace)
        self.sio.on('disconnect', handler=self._on_disconnect, namespace=self.namespace)
        for kind in MessageKind:
            self.sio.on(kind.value, handler=self._make_receiver(kind), namespace=self.namespace)

    def _on_connect(self):
        self.connected = True
        self.logger.info(f"Connected to PubSub server at {self.server_url}{self.namespace}")
        if self.on_connected is not None:
            self.on_connected()

    def _on_disconnect(self, *reason):
        self.connected = False
        self.logger.warning("Disconnected from PubSub server")

    def _make_receiver(self, kind: MessageKind):
        def receive(data: Any = None):
            self.logger.debug(f"Socket Event Received: '{kind.value}' | Data: {data}")
            if self.on_message is not None:
                self.on_message(ChannelMessage.from_wire(kind, data))
        return receive

    def connect(self) -> bool:
        """Connect to the PubSub server."""
        if self.connected:
            return True

        try:
            self.sio.connect(self.server_url, namespaces=[self.namespace], transports=self.transports)
            return True
        except SocketConnectionError as e:
            self.failures.record_failure(NetworkError(f"Connection to {self.server_url} failed: {e}"))
            return False

    def disconnect(self) -> None:
        """Disconnect from the server."""
        if self.connected:
            self.sio.disconnect()
            self.connected = False

    def send(self, message: ChannelMessage) -> None:
        """Emit one message to the server; dropped when not connected."""
        if not self.connected:
            self.logger.debug(f"Not connected, dropping {message.kind.value} '{message.event_name}'")
            return
        try:
            self.sio.emit(message.kind.value, message.to_wire(), namespace=self.namespace)
        except SocketIOError as e:
            self.failures.record_failure(NetworkError(f"Emit {message.kind.value} failed: {e}"))
