"""
PubSub Node - Entry Point

One local EventBus bridged to a remote bus over Socket.IO:

    local publishers -> EventBus -> local subscribers
                           | (remote-marked names)
                      RemoteBridge <-> SocketHandler / SocketServerHandler <-> remote bus

Run a server:   python main.py --server
Run a client:   python main.py --subscribe cmd.btn
Then type lines like `cmd.btn.1 {"btn": 1}` to publish.
"""
import argparse
import json
import signal
import sys
from threading import Event
from typing import Any, Dict, List, Optional, Tuple

from core.bus import EventBus
from Managers.Network_Manager import ROLE_CLIENT, ROLE_SERVER, NetworkManager
from utils.config import Config
from utils.constants import ARG_EVENT_ID, VETOED
from utils.logger import Logger


def parse_args(argv: Optional[List[str]] = None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="PubSub Node - bridged event bus")
    parser.add_argument(
        '--server', '-s',
        action='store_true',
        help='Accept peer connections instead of connecting to a server'
    )
    parser.add_argument(
        '--url', '-u',
        type=str,
        default=None,
        help='Server URL to connect to (client mode)'
    )
    parser.add_argument(
        '--port', '-p',
        type=int,
        default=None,
        help='Port to listen on (server mode)'
    )
    parser.add_argument(
        '--subscribe',
        action='append',
        default=[],
        metavar='EVENT',
        help='Event name to receive from the peer (repeatable)'
    )
    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='Directory of JSON config files'
    )
    return parser.parse_args(argv)


def parse_command(line: str) -> Optional[Tuple[str, Dict[str, Any]]]:
    """Parse `event.name [json-object]` into (event_name, args)."""
    line = line.strip()
    if not line:
        return None
    event_name, _, raw_args = line.partition(' ')
    args = json.loads(raw_args) if raw_args.strip() else {}
    if not isinstance(args, dict):
        raise ValueError("event args must be a JSON object")
    return event_name, args


class PubSubNode:
    """
    PubSub Node Orchestrator.

    Wires together:
      - the local EventBus
      - the NetworkManager (bridge + Socket.IO transport, client or server)
      - a stdin publisher loop
    """

    def __init__(self, role: str = ROLE_CLIENT, config: Optional[Config] = None,
                 subscriptions: Optional[List[str]] = None):
        self.config = config or Config()
        Logger.setup(self.config.get('logging', {}))
        self.logger = Logger("PubSubNode")
        self.logger.info(f"Initializing PubSub Node ({role})...")

        self.stop_event = Event()
        self.bus = EventBus.from_config(self.config)
        self.network = NetworkManager(self.config, self.bus, role=role)

        for event_name in subscriptions or []:
            self.network.bridge.subscribe(event_name, self._on_remote_event)

        self._setup_signals()

    def _setup_signals(self):
        """Handle OS signals for graceful shutdown."""
        def handler(sig, frame):
            self.logger.info("Shutdown signal received")
            self.stop()
        signal.signal(signal.SIGINT, handler)
        signal.signal(signal.SIGTERM, handler)

    def _on_remote_event(self, args: Dict[str, Any]) -> None:
        payload = {k: v for k, v in args.items() if k != ARG_EVENT_ID}
        self.logger.info(f"Event {args.get(ARG_EVENT_ID)}: {payload}")

    def publish_line(self, line: str) -> Optional[int]:
        """Publish one `event.name [json]` command line; returns the outcome."""
        try:
            command = parse_command(line)
        except ValueError as e:
            self.logger.warning(f"Bad command {line.strip()!r}: {e}")
            return None
        if command is None:
            return None

        event_name, args = command
        result = self.bus.publish(event_name, args)
        if result == VETOED:
            self.logger.info(f"{event_name}: vetoed")
        else:
            self.logger.info(f"{event_name}: delivered to {result} subscriber(s)")
        return result

    def start(self):
        """Start networking and read publish commands until EOF or shutdown."""
        if not self.network.start():
            self.logger.warning("Network failed to start, running local bus only")

        try:
            for line in sys.stdin:
                if self.stop_event.is_set():
                    break
                self.publish_line(line)
            if self.network.role == ROLE_SERVER:
                self.stop_event.wait()
        finally:
            self.stop()

    def stop(self):
        """Gracefully shutdown all components."""
        if self.stop_event.is_set():
            return

        self.stop_event.set()
        self.logger.info("Stopping PubSub Node...")
        self.network.stop()
        self.bus.clear()
        self.logger.info("PubSub Node stopped successfully")


if __name__ == "__main__":
    args = parse_args()

    config = Config(args.config)
    if args.url:
        config.set('network.server_url', args.url)
    if args.port:
        config.set('network.port', args.port)

    node = PubSubNode(
        role=ROLE_SERVER if args.server else ROLE_CLIENT,
        config=config,
        subscriptions=args.subscribe,
    )
    node.start()
