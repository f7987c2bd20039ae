"""
Subscription registry: event name -> priority buckets, veto checkers and
the remote flag, plus the handle index used for O(1) removal.

The registry is not thread-safe on its own; the EventBus serializes every
call behind its lock.
"""
import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Set

from utils.constants import DEFAULT_MAX_PRIORITY, DEFAULT_MIN_PRIORITY, DEFAULT_PRIORITY


class HandleKind(Enum):
    SUBSCRIBER = "subscriber"
    VETO = "veto"


@dataclass(frozen=True)
class HandleRef:
    """Where a handle lives: event name, table, and bucket for subscribers."""
    event_name: str
    kind: HandleKind
    priority: Optional[int] = None


@dataclass
class Subscriber:
    handle: int
    callback: Callable[..., Any]
    context: Any = None
    priority: int = DEFAULT_PRIORITY

    def __call__(self, args: Dict[str, Any]) -> Any:
        if self.context is not None:
            return self.callback(self.context, args)
        return self.callback(args)


@dataclass
class VetoChecker:
    handle: int
    callback: Callable[..., Any]
    context: Any = None

    def check(self, event_name: str, args: Dict[str, Any], just_checking: bool) -> bool:
        """True means the event is vetoed."""
        if self.context is not None:
            return bool(self.callback(self.context, event_name, args, just_checking))
        return bool(self.callback(event_name, args, just_checking))


@dataclass
class EventRegistration:
    """
    Everything registered against one exact event name.

    `min_active`/`max_active` bound the priorities that may hold
    subscribers. They only widen on subscribe; emptied buckets leave them
    stale-wide until `tighten_bounds()` runs.
    """
    name: str
    buckets: Dict[int, Dict[int, Subscriber]] = field(default_factory=dict)
    min_active: Optional[int] = None
    max_active: Optional[int] = None
    veto_checkers: Dict[int, VetoChecker] = field(default_factory=dict)
    is_remote: bool = False
    categories: Set[str] = field(default_factory=set)
    busy: int = 0

    def add_subscriber(self, subscriber: Subscriber) -> None:
        priority = subscriber.priority
        self.buckets.setdefault(priority, {})[subscriber.handle] = subscriber
        if self.min_active is None or priority < self.min_active:
            self.min_active = priority
        if self.max_active is None or priority > self.max_active:
            self.max_active = priority

    def remove_subscriber(self, handle: int, priority: int) -> bool:
        bucket = self.buckets.get(priority)
        if not bucket or handle not in bucket:
            return False
        del bucket[handle]
        if not bucket:
            del self.buckets[priority]
        return True

    def subscribers(self) -> List[Subscriber]:
        """Snapshot of subscribers, ascending priority, FIFO within a priority."""
        if self.min_active is None:
            return []
        ordered: List[Subscriber] = []
        for priority in range(self.min_active, self.max_active + 1):
            bucket = self.buckets.get(priority)
            if bucket:
                ordered.extend(bucket.values())
        return ordered

    def subscriber_count(self) -> int:
        return sum(len(bucket) for bucket in self.buckets.values())

    def has_subscribers(self) -> bool:
        return bool(self.buckets)

    def tighten_bounds(self) -> None:
        if self.buckets:
            self.min_active = min(self.buckets)
            self.max_active = max(self.buckets)
        else:
            self.min_active = None
            self.max_active = None

    def is_empty(self) -> bool:
        return not (self.buckets or self.veto_checkers or self.is_remote or self.categories)


class SubscriptionRegistry:
    """Owns every EventRegistration and the handle -> location index."""

    def __init__(
        self,
        min_priority: int = DEFAULT_MIN_PRIORITY,
        max_priority: int = DEFAULT_MAX_PRIORITY,
        default_priority: int = DEFAULT_PRIORITY,
    ):
        if min_priority > max_priority:
            raise ValueError(f"min_priority {min_priority} > max_priority {max_priority}")
        self.min_priority = min_priority
        self.max_priority = max_priority
        self.default_priority = max(min_priority, min(max_priority, default_priority))

        self._registrations: Dict[str, EventRegistration] = {}
        self._handles: Dict[int, HandleRef] = {}
        self._next_handle = itertools.count(1)

    # --- Lookup ---

    def get(self, event_name: str) -> Optional[EventRegistration]:
        return self._registrations.get(event_name)

    def ensure(self, event_name: str) -> EventRegistration:
        registration = self._registrations.get(event_name)
        if registration is None:
            registration = EventRegistration(name=event_name)
            self._registrations[event_name] = registration
        return registration

    def locate(self, handle: Any) -> Optional[HandleRef]:
        try:
            return self._handles.get(handle)
        except TypeError:  # unhashable handle
            return None

    def names(self) -> List[str]:
        return list(self._registrations)

    def __contains__(self, event_name: str) -> bool:
        return event_name in self._registrations

    def __len__(self) -> int:
        return len(self._registrations)

    def __iter__(self) -> Iterator[EventRegistration]:
        return iter(list(self._registrations.values()))

    # --- Subscribers ---

    def clamp_priority(self, priority: Any) -> int:
        """Clamp into [min_priority, max_priority]; non-integers mean default."""
        if isinstance(priority, bool) or not isinstance(priority, int):
            return self.default_priority
        return max(self.min_priority, min(self.max_priority, priority))

    def subscribe(self, event_name: str, callback: Callable[..., Any],
                  context: Any = None, priority: Any = None) -> int:
        handle = next(self._next_handle)
        priority = self.clamp_priority(priority)
        self.ensure(event_name).add_subscriber(
            Subscriber(handle=handle, callback=callback, context=context, priority=priority)
        )
        self._handles[handle] = HandleRef(event_name, HandleKind.SUBSCRIBER, priority)
        return handle

    def unsubscribe(self, handle: Any) -> bool:
        ref = self.locate(handle)
        if ref is None or ref.kind is not HandleKind.SUBSCRIBER:
            return False
        del self._handles[handle]
        registration = self._registrations.get(ref.event_name)
        return bool(registration and registration.remove_subscriber(handle, ref.priority))

    # --- Veto checkers ---

    def add_veto_check(self, event_name: str, callback: Callable[..., Any],
                       context: Any = None) -> int:
        handle = next(self._next_handle)
        self.ensure(event_name).veto_checkers[handle] = VetoChecker(
            handle=handle, callback=callback, context=context
        )
        self._handles[handle] = HandleRef(event_name, HandleKind.VETO)
        return handle

    def remove_veto_check(self, handle: Any) -> bool:
        ref = self.locate(handle)
        if ref is None or ref.kind is not HandleKind.VETO:
            return False
        del self._handles[handle]
        registration = self._registrations.get(ref.event_name)
        return bool(registration and registration.veto_checkers.pop(handle, None))

    # --- Remote flag and categories ---

    def mark_remote(self, event_name: str) -> bool:
        """Returns True if the flag changed."""
        registration = self.ensure(event_name)
        changed = not registration.is_remote
        registration.is_remote = True
        return changed

    def unmark_remote(self, event_name: str) -> bool:
        registration = self.ensure(event_name)
        changed = registration.is_remote
        registration.is_remote = False
        return changed

    def is_remote(self, event_name: str) -> bool:
        registration = self._registrations.get(event_name)
        return bool(registration and registration.is_remote)

    def attach_categories(self, event_name: str, categories: Iterable[str]) -> None:
        self.ensure(event_name).categories.update(categories)

    def categories_for(self, event_names: Iterable[str]) -> List[str]:
        """Categories attached to any of the names, first-seen order, no duplicates."""
        seen: Dict[str, None] = {}
        for name in event_names:
            registration = self._registrations.get(name)
            if registration:
                for category in sorted(registration.categories):
                    seen.setdefault(category, None)
        return list(seen)

    # --- Maintenance ---

    def sweep_empty(self) -> int:
        """Drop empty registrations that are not being dispatched right now."""
        removed = 0
        for name, registration in list(self._registrations.items()):
            if registration.busy:
                continue
            registration.tighten_bounds()
            if registration.is_empty():
                del self._registrations[name]
                removed += 1
        return removed

    def subscriber_count(self, event_name: str) -> int:
        registration = self._registrations.get(event_name)
        return registration.subscriber_count() if registration else 0

    def clear(self) -> None:
        """Remove all registrations. Handles keep counting up."""
        self._registrations.clear()
        self._handles.clear()
