"""
Network Manager - wires a local EventBus to a remote bus and owns the
transport lifecycle.

Client role: SocketHandler -> RemoteBridge, connects to network.server_url and
replays the bridge's subscription requests every time the namespace connects.
Server role: SocketServerHandler + SessionTracker -> RemoteBridge, serves
the Socket.IO WSGI app from a background thread and asks every new peer
for the names this side subscribed to plus network.default_subscriptions.
"""
import threading
from socketserver import ThreadingMixIn
from typing import Any, Dict, Optional
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from core.bridge import RemoteBridge
from core.bus import EventBus
from core.sessions import SessionTracker
from Handlers.Socket_Handler import SocketHandler
from Handlers.Socket_Server_Handler import SocketServerHandler
from utils.config import Config
from utils.constants import (ARG_PEER_ID, DEFAULT_HOST, DEFAULT_NAMESPACE, DEFAULT_PORT,
                             DEFAULT_SERVER_URL, EVENT_PEER_CONNECT)
from utils.failures import NetworkError
from utils.logger import Logger

ROLE_CLIENT = "client"
ROLE_SERVER = "server"


class _ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _QuietRequestHandler(WSGIRequestHandler):
    def log_message(self, format, *args):
        Logger("WSGI").debug(format % args)


class NetworkManager:
    """Service to bridge the local bus over the network and manage its lifecycle."""

    def __init__(self, config: Config, bus: EventBus, role: str = ROLE_CLIENT):
        """
        Args:
            config: Application configuration.
            bus: Shared event bus.
            role: "client" or "server".
        """
        if role not in (ROLE_CLIENT, ROLE_SERVER):
            raise ValueError(f"Unknown network role: {role}")

        self.config = config
        self.bus = bus
        self.role = role
        self.logger = Logger("NetworkManager")
        self.failures = bus.failures
        self.namespace = config.get('network.namespace', DEFAULT_NAMESPACE)
        self.active = False

        self.tracker: Optional[SessionTracker] = None
        self.socket: Optional[SocketHandler] = None
        self.server_socket: Optional[SocketServerHandler] = None
        self._httpd: Optional[WSGIServer] = None
        self._serve_thread: Optional[threading.Thread] = None
        self._connect_handle: Optional[int] = None

        if role == ROLE_SERVER:
            self.tracker = SessionTracker(bus, failures=self.failures)
            self.bridge = RemoteBridge(bus, tracker=self.tracker)
            self.server_socket = SocketServerHandler(
                self.tracker,
                on_message=self.bridge.handle_message,
                namespace=self.namespace,
                failures=self.failures,
            )
            self.bridge.set_channel(self.server_socket)
            self._connect_handle = self.bus.subscribe(EVENT_PEER_CONNECT, self._on_peer_connect)
        else:
            self.bridge = RemoteBridge(bus)
            self.socket = SocketHandler(
                config.get('network.server_url', DEFAULT_SERVER_URL),
                on_message=self.bridge.handle_message,
                namespace=self.namespace,
                failures=self.failures,
                reconnection_attempts=config.get_int('network.reconnection_attempts', 10),
                reconnection_delay=config.get_float('network.reconnection_delay', 2),
                reconnection_delay_max=config.get_float('network.reconnection_delay_max', 30),
                on_connected=self.bridge.resubscribe,
                transports=config.get_list('network.transports') or None,
            )
            self.bridge.set_channel(self.socket)

    @property
    def port(self) -> Optional[int]:
        """Port the server is bound to (resolves a configured port of 0)."""
        if self._httpd is None:
            return None
        return self._httpd.server_port

    def start(self) -> bool:
        """Connect (client) or start serving (server)."""
        if self.role == ROLE_SERVER:
            return self._start_server()

        self.logger.info(f"Connecting to PubSub server at {self.socket.server_url}...")
        if not self.socket.connect():
            self.failures.record_failure(NetworkError("Initial connection failed", critical=True))
            return False
        self.active = True
        return True

    def _start_server(self) -> bool:
        host = self.config.get('network.host', DEFAULT_HOST)
        port = self.config.get_int('network.port', DEFAULT_PORT)
        try:
            self._httpd = make_server(
                host, port, self.server_socket.create_app(),
                server_class=_ThreadingWSGIServer,
                handler_class=_QuietRequestHandler,
            )
        except OSError as e:
            self.failures.record_failure(NetworkError(f"Cannot listen on {host}:{port}: {e}", critical=True))
            return False

        self._serve_thread = threading.Thread(
            target=self._httpd.serve_forever, daemon=True, name="PubSubServer"
        )
        self._serve_thread.start()
        self.active = True
        self.logger.info(f"PubSub server listening on {host}:{self.port} namespace {self.namespace}")
        return True

    def stop(self) -> None:
        """Cleanly shutdown network operations."""
        self.active = False
        if self._connect_handle is not None:
            self.bus.unsubscribe(self._connect_handle)
            self._connect_handle = None
        if self.socket:
            self.socket.disconnect()
        if self._httpd:
            self._httpd.shutdown()
            self._httpd.server_close()
            self._httpd = None
        if self._serve_thread:
            self._serve_thread.join(timeout=2.0)
            self._serve_thread = None
        self.bridge.detach()
        self.logger.info("Network Manager stopped")

    def _on_peer_connect(self, args: Dict[str, Any]) -> None:
        """Ask a freshly connected peer to forward our requested and default event names."""
        peer_id = args.get(ARG_PEER_ID)
        requested = self.bridge.requested_subscriptions()
        self.bridge.resubscribe(peer_id)
        for event_name in self.config.get_list('network.default_subscriptions'):
            if event_name in requested:
                continue
            self.logger.info(f"Subscribing to {event_name} on new peer {peer_id}")
            self.bridge.request_subscription(event_name, peer_id=peer_id)
