"""
Global constants for the PubSub bridge.
"""
from pathlib import Path

# Project Structure
BASE_DIR = Path(__file__).parent.parent
CONFIGS_DIR = BASE_DIR / "configs"
LOGS_DIR = BASE_DIR / "logs"
LOG_FILE_NAME = "pubsub.log"

# Subscriber Priorities (lower runs first)
DEFAULT_MIN_PRIORITY = 2
DEFAULT_MAX_PRIORITY = 8
DEFAULT_PRIORITY = 5

# Publish Outcomes
VETOED = -1

# Event Names
EVENT_SEPARATOR = "."
CATEGORY_PREFIX = ":"

# Lifecycle Events (published on the local bus)
EVENT_PEER_CONNECT = "pubsub.peer.connect"
EVENT_PEER_DISCONNECT = "pubsub.peer.disconnect"
EVENT_CONNECTED = "pubsub.connected"

# Event Argument Keys (local-only, stripped before forwarding)
ARG_EVENT_ID = "event_id"
ARG_PROCESSED = "processed"
ARG_PEER_ID = "peer_id"
LOCAL_ONLY_ARGS = (ARG_EVENT_ID, ARG_PROCESSED, ARG_PEER_ID)

# Network Settings
DEFAULT_SERVER_URL = "http://localhost:8765"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8765
DEFAULT_NAMESPACE = "/UT"

# Socket.io Events
MSG_CONNECT_ACK = "PubSubConnect"
MSG_SUBSCRIBE = "PubSubSubscribe"
MSG_PUBLISH = "PubSubPublish"

# Wire Payload Keys
WIRE_EVENT_ID = "eventID"
WIRE_ARGS = "args"
WIRE_PEER_ID = "peerID"
