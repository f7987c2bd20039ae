"""
In-process Event Bus with priorities, vetoes and hierarchical names.

Publishing "cmd.file.open" checks and publishes "cmd", "cmd.file" and
"cmd.file.open" (plus any categories attached to them). Any veto on any of
those names cancels the whole publish. Events marked remote are handed to
the slow delegate (the network bridge) once per publish.

Thread-safe. Handlers are invoked synchronously on the publisher's thread;
all registry mutation and dispatch is serialized behind one re-entrant
lock, so a subscriber may publish from inside its own callback.
"""
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Tuple, Union

from core.events import CheckResult, strip_local_args
from core.names import category_event_name, expand_event_name
from core.protocols import SlowDelegate
from core.registry import HandleKind, SubscriptionRegistry
from utils.config import Config
from utils.constants import (ARG_EVENT_ID, ARG_PROCESSED, DEFAULT_MAX_PRIORITY,
                             DEFAULT_MIN_PRIORITY, DEFAULT_PRIORITY, VETOED)
from utils.failures import FailureManager, NetworkError, SubscriberError
from utils.logger import Logger


@dataclass
class EventCheck:
    """Result of the veto/presence phase for one publish."""
    result: CheckResult
    names: List[str] = field(default_factory=list)
    remote_names: Tuple[str, ...] = ()


class EventBus:
    """
    Priority-ordered, veto-able publish/subscribe bus.

    Usage:
        bus = EventBus()
        handle = bus.subscribe("cmd.btn", on_button, priority=3)
        bus.add_veto_check("cmd", lambda name, args, checking: args.get("locked"))
        bus.publish("cmd.btn.1", {"btn": 1})   # -> number of deliveries, or VETOED
        bus.unsubscribe(handle)
    """

    _instance: Optional["EventBus"] = None
    _instance_lock = threading.Lock()

    def __init__(
        self,
        min_priority: int = DEFAULT_MIN_PRIORITY,
        max_priority: int = DEFAULT_MAX_PRIORITY,
        default_priority: int = DEFAULT_PRIORITY,
        failures: Optional[FailureManager] = None,
    ):
        self._registry = SubscriptionRegistry(min_priority, max_priority, default_priority)
        self._lock = threading.RLock()
        self._slow_delegate: Optional[SlowDelegate] = None
        self._queue: Deque[Tuple[str, Optional[Dict[str, Any]]]] = deque()
        self.failures = failures or FailureManager()
        self.logger = Logger("EventBus")

    @classmethod
    def from_config(cls, config: Config, failures: Optional[FailureManager] = None) -> "EventBus":
        """Build a bus from the 'bus' section of the configuration."""
        return cls(
            min_priority=config.get_int('bus.min_priority', DEFAULT_MIN_PRIORITY),
            max_priority=config.get_int('bus.max_priority', DEFAULT_MAX_PRIORITY),
            default_priority=config.get_int('bus.default_priority', DEFAULT_PRIORITY),
            failures=failures or FailureManager(config.get('failures', {})),
        )

    @classmethod
    def get_instance(cls) -> "EventBus":
        """Shared bus for call sites that do not get one injected."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    # --- Subscriptions ---

    def subscribe(self, event_name: str, callback: Callable[..., Any],
                  context: Any = None, priority: Optional[int] = None) -> int:
        """
        Register a callback for an exact event name.

        "cmd.file.open" only gets that event; "cmd.file" gets every file
        command; "cmd" gets every command.

        Args:
            event_name: The event name to listen for.
            callback: Called as callback(args), or callback(context, args)
                when a context is given.
            context: Optional object bound as the callback's first argument.
            priority: Lower runs first. Clamped into the bus range; None
                means the default (middle) priority.

        Returns:
            Handle for unsubscribe().
        """
        expand_event_name(event_name)
        with self._lock:
            handle = self._registry.subscribe(event_name, callback, context, priority)
        self.logger.debug(f"Subscribed {_describe(callback)} to {event_name} (handle {handle})")
        return handle

    def unsubscribe(self, handle: Any) -> bool:
        """Stop a subscription. Unknown or already removed handles are a no-op."""
        with self._lock:
            ref = self._registry.locate(handle)
            removed = self._registry.unsubscribe(handle)
        if not removed:
            if ref is not None and ref.kind is HandleKind.VETO:
                self.logger.warning(f"unsubscribe() called with veto handle {handle}; use remove_veto_check()")
            else:
                self.logger.debug(f"unsubscribe() ignored unknown handle {handle!r}")
        return removed

    def add_veto_check(self, event_name: str, callback: Callable[..., Any],
                       context: Any = None) -> int:
        """
        Allow veto power over an event name (and, through expansion, its children).

        The callback is called as callback(event_name, args, just_checking)
        and returns True to cancel the publish. just_checking is True when
        the call comes from check_event() rather than publish().
        """
        expand_event_name(event_name)
        with self._lock:
            handle = self._registry.add_veto_check(event_name, callback, context)
        self.logger.debug(f"Veto check {_describe(callback)} added to {event_name} (handle {handle})")
        return handle

    def remove_veto_check(self, handle: Any) -> bool:
        with self._lock:
            ref = self._registry.locate(handle)
            removed = self._registry.remove_veto_check(handle)
        if not removed:
            if ref is not None and ref.kind is HandleKind.SUBSCRIBER:
                self.logger.warning(f"remove_veto_check() called with subscriber handle {handle}; use unsubscribe()")
            else:
                self.logger.debug(f"remove_veto_check() ignored unknown handle {handle!r}")
        return removed

    def subscribe_remote(self, event_name: str) -> None:
        """Forward local publications of this name (and its children) to the peer."""
        expand_event_name(event_name)
        with self._lock:
            changed = self._registry.mark_remote(event_name)
        if changed:
            self.logger.info(f"Forwarding '{event_name}' to remote peer")

    def unsubscribe_remote(self, event_name: str) -> None:
        with self._lock:
            changed = self._registry.unmark_remote(event_name)
        if changed:
            self.logger.info(f"Stopped forwarding '{event_name}'")

    def attach_category(self, event_name: str, categories: Union[str, Iterable[str]]) -> None:
        """
        Tag an event name with one or more categories.

        Publishing the name (or any child of it) also publishes
        ":<category>" once per category, with the same veto rules.
        """
        if isinstance(categories, str):
            categories = [categories]
        with self._lock:
            self._registry.attach_categories(event_name, categories)

    def set_slow_delegate(self, delegate: Optional[SlowDelegate]) -> None:
        """Install the callable that ships remote events across the boundary."""
        with self._lock:
            self._slow_delegate = delegate

    # --- Publishing ---

    def publish(self, event_name: str, args: Optional[Dict[str, Any]] = None) -> int:
        """
        Publish an event to every matching subscriber.

        Args:
            event_name: Full event name, e.g. "cmd.file.open".
            args: Event payload dict, shared with every subscriber and
                annotated with 'event_id' and 'processed'.

        Returns:
            Number of subscriber invocations (0 means no one listening),
            or VETOED (-1).
        """
        return self._publish(event_name, args, forward=True)

    def receive(self, event_name: str, args: Optional[Dict[str, Any]] = None) -> int:
        """Publish an event that came from the remote peer. Never forwarded back."""
        return self._publish(event_name, args, forward=False)

    def check_event(self, event_name: str, args: Optional[Dict[str, Any]] = None) -> CheckResult:
        """
        Check whether an event would be processed, without publishing it.

        Usually used by a UI to gray out actions that are not valid now.
        """
        names = expand_event_name(event_name)
        with self._lock:
            return self._check(names, {} if args is None else args, just_checking=True).result

    def queue_event(self, event_name: str, args: Optional[Dict[str, Any]] = None) -> None:
        """Defer a publish until process_queue() is called."""
        expand_event_name(event_name)
        with self._lock:
            self._queue.append((event_name, args))

    def process_queue(self) -> List[int]:
        """Publish queued events in FIFO order, including ones queued meanwhile."""
        results = []
        while True:
            with self._lock:
                if not self._queue:
                    break
                event_name, args = self._queue.popleft()
            results.append(self.publish(event_name, args))
        return results

    def _publish(self, event_name: str, args: Optional[Dict[str, Any]], forward: bool) -> int:
        names = expand_event_name(event_name)
        if args is None:
            args = {}
        elif not isinstance(args, dict):
            raise TypeError(f"Event args must be a dict, got {type(args).__name__}")

        args[ARG_PROCESSED] = False
        args[ARG_EVENT_ID] = event_name

        with self._lock:
            check = self._check(names, args, just_checking=False)
            if check.result is CheckResult.VETOED:
                self.logger.debug(f"Event '{event_name}' vetoed")
                return VETOED
            if check.result is CheckResult.NO_SUBSCRIBERS:
                self.logger.debug(f"No subscribers for '{event_name}'")
                return 0

            delivered = 0
            for name in check.names:
                delivered += self._deliver(name, args)

            if forward and check.remote_names:
                self._forward(event_name, args, check.remote_names)

        return delivered

    def _check(self, names: List[str], args: Dict[str, Any], just_checking: bool) -> EventCheck:
        """Veto/presence phase over the expanded names, then their categories."""
        all_names = list(names)
        all_names.extend(category_event_name(c) for c in self._registry.categories_for(names))

        listening = False
        remote: List[str] = []
        for name in all_names:
            registration = self._registry.get(name)
            if registration is None:
                continue
            for checker in list(registration.veto_checkers.values()):
                try:
                    vetoed = checker.check(name, args, just_checking)
                except Exception as e:
                    self.failures.record_failure(SubscriberError(
                        f"Veto check {_describe(checker.callback)} failed on '{name}': {e}",
                        event_name=name,
                    ))
                    continue
                if vetoed:
                    return EventCheck(CheckResult.VETOED, all_names)
            if registration.has_subscribers():
                listening = True
            if registration.is_remote:
                listening = True
                remote.append(name)

        result = CheckResult.ACCEPTED if listening else CheckResult.NO_SUBSCRIBERS
        return EventCheck(result, all_names, tuple(remote))

    def _deliver(self, name: str, args: Dict[str, Any]) -> int:
        """Invoke every subscriber of one exact name; failures are isolated."""
        registration = self._registry.get(name)
        if registration is None:
            return 0

        registration.busy += 1
        try:
            subscribers = registration.subscribers()
            for subscriber in subscribers:
                try:
                    subscriber(args)
                except Exception as e:
                    self.failures.record_failure(SubscriberError(
                        f"Subscriber {_describe(subscriber.callback)} failed on '{name}': {e}",
                        event_name=name,
                    ))
            return len(subscribers)
        finally:
            registration.busy -= 1

    def _forward(self, event_name: str, args: Dict[str, Any], routes: Tuple[str, ...]) -> None:
        delegate = self._slow_delegate
        if delegate is None:
            self.logger.debug(f"'{event_name}' is remote but no slow delegate is installed")
            return
        try:
            delegate(event_name, strip_local_args(args), routes)
        except Exception as e:
            self.failures.record_failure(NetworkError(f"Forwarding '{event_name}' failed: {e}"))

    # --- Maintenance / introspection ---

    def sweep_empty(self) -> int:
        """Remove registrations with no subscribers, vetoes, categories or remote flag."""
        with self._lock:
            removed = self._registry.sweep_empty()
        if removed:
            self.logger.debug(f"Swept {removed} empty event registration(s)")
        return removed

    def subscriber_count(self, event_name: str) -> int:
        """Return the number of subscribers on an exact event name."""
        with self._lock:
            return self._registry.subscriber_count(event_name)

    def has_event(self, event_name: str) -> bool:
        with self._lock:
            return event_name in self._registry

    def is_remote(self, event_name: str) -> bool:
        with self._lock:
            return self._registry.is_remote(event_name)

    def clear(self) -> None:
        """Remove all subscriptions, vetoes, remote flags and queued events."""
        with self._lock:
            self._registry.clear()
            self._queue.clear()


def _describe(callback: Callable[..., Any]) -> str:
    return getattr(callback, '__qualname__', None) or repr(callback)
