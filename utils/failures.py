"""
Structured error handling and failure tracking for the PubSub bridge.

Nothing in here raises into the publish path: failures are recorded,
logged and counted so a misbehaving peer or subscriber cannot take the
bus down.
"""
import threading
import time
from typing import Dict, List, Optional

from utils.logger import Logger


class PubSubError(Exception):
    """Base class for all PubSub exceptions."""
    def __init__(self, message: str, critical: bool = False):
        super().__init__(message)
        self.message = message
        self.critical = critical
        self.timestamp = time.time()


class ProtocolError(PubSubError):
    """A peer or caller misused the protocol (duplicate connect, unknown peer...)."""
    pass


class SubscriberError(PubSubError):
    """A subscriber or veto callback raised during dispatch."""
    def __init__(self, message: str, event_name: str = "", critical: bool = False):
        super().__init__(message, critical=critical)
        self.event_name = event_name


class NetworkError(PubSubError):
    """Exception raised for transport-related failures."""
    pass


class ConfigError(PubSubError):
    """Exception raised for configuration-related failures."""
    pass


class FailureManager:
    """Tracks and manages recurring failures to improve system resilience."""

    def __init__(self, settings: Optional[dict] = None):
        """
        Initialize the failure manager.

        Args:
            settings: Dictionary containing failure thresholds (from failures.json)
        """
        self.logger = Logger("FailureManager")

        self.settings = settings or {}
        self.threshold = self.settings.get('threshold', 5)
        self.window_seconds = self.settings.get('window_seconds', 300)

        self.failures: Dict[str, List[float]] = {}
        self.history: List[PubSubError] = []
        self._max_history = self.settings.get('max_history', 100)
        self._lock = threading.Lock()

    def record_failure(self, error: Exception):
        """
        Record a failure incident (thread-safe).

        Args:
            error: The exception that occurred.
        """
        with self._lock:
            error_type = type(error).__name__
            now = time.time()

            cutoff = now - self.window_seconds
            recent = [t for t in self.failures.get(error_type, []) if t > cutoff]
            recent.append(now)
            self.failures[error_type] = recent

            if isinstance(error, PubSubError):
                self.history.append(error)
                msg = f"Failure detected: {error_type} - {error.message}"
                if error.critical:
                    self.logger.error(f"CRITICAL: {msg}")
                else:
                    self.logger.warning(msg)
            else:
                self.logger.error(f"Unexpected failure: {error_type} - {error}")

            if len(self.history) > self._max_history:
                self.history = self.history[-self._max_history:]

            if len(recent) >= self.threshold:
                self.logger.warning(
                    f"Resilience Alert: '{error_type}' exceeded threshold "
                    f"({self.threshold} in {self.window_seconds}s)"
                )

    def is_threshold_exceeded(self, error_type: str) -> bool:
        """Check if a specific error type has exceeded the frequency threshold."""
        with self._lock:
            if error_type not in self.failures:
                return False

            now = time.time()
            self.failures[error_type] = [
                t for t in self.failures[error_type] if (now - t) < self.window_seconds
            ]
            return len(self.failures[error_type]) >= self.threshold

    def count(self, error_type: str) -> int:
        """Number of failures of this type inside the current window."""
        with self._lock:
            cutoff = time.time() - self.window_seconds
            return len([t for t in self.failures.get(error_type, []) if t > cutoff])

    def get_recent_history(self, count: int = 10) -> List[PubSubError]:
        """Return the most recent failures."""
        with self._lock:
            return self.history[-count:]

    def clear(self):
        """Reset all tracked failures."""
        with self._lock:
            self.failures = {}
            self.history = []
        self.logger.info("Failure history cleared.")
