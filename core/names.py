"""
Hierarchical event names.

Event names are dot-separated ("cmd.file.open"). Publishing a name also
publishes every ancestor, so a "cmd" listener sees all command events.
"""
from typing import List

from utils.constants import CATEGORY_PREFIX, EVENT_SEPARATOR


def expand_event_name(event_name: str) -> List[str]:
    """
    Expand a dotted name into its root-to-leaf ancestor chain.

        expand_event_name("cmd.file.open") -> ["cmd", "cmd.file", "cmd.file.open"]

    Raises:
        ValueError: if the name is empty.
    """
    if not isinstance(event_name, str) or not event_name:
        raise ValueError(f"Event name must be a non-empty string, got {event_name!r}")

    parts = event_name.split(EVENT_SEPARATOR)
    chain = [parts[0]]
    for part in parts[1:]:
        chain.append(chain[-1] + EVENT_SEPARATOR + part)
    return chain


def category_event_name(category: str) -> str:
    """Synthetic event name used to publish a category (":" + category)."""
    return CATEGORY_PREFIX + category


def is_category_name(event_name: str) -> bool:
    return event_name.startswith(CATEGORY_PREFIX)
