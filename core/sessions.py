"""
Connection/session tracking for remote peers.

Knows which peers are attached right now and which event names each of
them asked to receive. Connects and disconnects are announced on the local
bus so other components can react (e.g. default subscriptions).
"""
import threading
from typing import Dict, Iterable, List, Optional

from core.bus import EventBus
from core.events import RemotePeerSession
from utils.constants import ARG_PEER_ID, EVENT_PEER_CONNECT, EVENT_PEER_DISCONNECT
from utils.failures import FailureManager, ProtocolError
from utils.logger import Logger


class SessionTracker:
    """
    Tracks live remote peers.

    Publishes: pubsub.peer.connect, pubsub.peer.disconnect
    """

    def __init__(self, bus: EventBus, failures: Optional[FailureManager] = None):
        self.bus = bus
        self.failures = failures or bus.failures
        self.logger = Logger("SessionTracker")
        self._sessions: Dict[str, RemotePeerSession] = {}
        self._lock = threading.Lock()

    def on_connect(self, peer_id: str) -> bool:
        """Register a new peer. A peer id already in use is rejected."""
        if not peer_id:
            self.failures.record_failure(ProtocolError("Connect rejected: missing peer id"))
            return False

        with self._lock:
            accepted = peer_id not in self._sessions
            if accepted:
                self._sessions[peer_id] = RemotePeerSession(peer_id=peer_id)
            total = len(self._sessions)

        if not accepted:
            self.failures.record_failure(
                ProtocolError(f"Connect rejected for '{peer_id}': same peer id used twice")
            )
            return False

        self.logger.info(f"New connection. peer id={peer_id} total connections={total}")
        self.bus.publish(EVENT_PEER_CONNECT, {ARG_PEER_ID: peer_id})
        return True

    def on_disconnect(self, peer_id: str) -> bool:
        """Drop a peer and all of its bookkeeping."""
        with self._lock:
            session = self._sessions.pop(peer_id, None)
            total = len(self._sessions)

        if session is None:
            self.failures.record_failure(ProtocolError(f"Unknown peer '{peer_id}' disconnected"))
            return False

        self.logger.info(f"Disconnection. peer id={peer_id} total connections={total}")
        self.bus.publish(EVENT_PEER_DISCONNECT, {ARG_PEER_ID: peer_id})
        return True

    def attach(self, peer_id: str, event_name: str) -> bool:
        """Record that a peer asked to receive an event name."""
        with self._lock:
            session = self._sessions.get(peer_id)
            if session is not None:
                session.attached_event_names.add(event_name)

        if session is None:
            self.failures.record_failure(
                ProtocolError(f"Subscribe request for '{event_name}' from unknown peer '{peer_id}'")
            )
            return False
        self.logger.debug(f"Peer {peer_id} subscribed to {event_name}")
        return True

    def is_connected(self, peer_id: str) -> bool:
        with self._lock:
            return peer_id in self._sessions

    def peers_for(self, event_names: Iterable[str]) -> List[str]:
        """Live peers attached to any of the given names, in connect order."""
        wanted = set(event_names)
        with self._lock:
            return [
                peer_id for peer_id, session in self._sessions.items()
                if session.attached_event_names & wanted
            ]

    def get(self, peer_id: str) -> Optional[RemotePeerSession]:
        with self._lock:
            return self._sessions.get(peer_id)

    def sessions(self) -> List[RemotePeerSession]:
        with self._lock:
            return list(self._sessions.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
