# src/ekatalog/services/event_bus.py

"""
Process-wide publish/subscribe channel.

Views subscribe to a dataset topic and re-load when it fires. Events may
carry the changed record as payload, but handlers must not rely on it being
present: a bare event still means "re-load this dataset".
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

NOTIFICATION_TOPIC = "toast"

P = TypeVar("P")


def topic_for(dataset: str) -> str:
    return f"{dataset}-updated"


@dataclass(frozen=True)
class Event(Generic[P]):
    topic: str
    payload: Optional[P] = None


@dataclass(frozen=True)
class Notification:
    """Transient message for the operator (success / error / info)."""

    level: str
    message: str


Handler = Callable[[Event], Any]


class EventBus:
    def __init__(self):
        self._subscribers: dict[str, list[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Register `handler`; returns an unsubscribe function that is safe to call twice."""
        with self._lock:
            self._subscribers.setdefault(topic, []).append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._subscribers.get(topic, [])
                if handler in handlers:
                    handlers.remove(handler)
                if not handlers:
                    self._subscribers.pop(topic, None)

        return unsubscribe

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, []))

    def publish(self, topic: str, payload: Any = None) -> int:
        """
        Deliver synchronously to the handlers subscribed at call time and
        return how many were called. A failing handler is logged and does not
        stop delivery to the rest.
        """
        with self._lock:
            handlers = list(self._subscribers.get(topic, []))

        event = Event(topic=topic, payload=payload)
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler %r failed for topic=%s", handler, topic)

        logger.debug("Published topic=%s to %d handler(s)", topic, len(handlers))
        return len(handlers)

    def publish_dataset(self, dataset: str, payload: Any = None) -> int:
        return self.publish(topic_for(dataset), payload)

    def notify(self, level: str, message: str) -> int:
        return self.publish(NOTIFICATION_TOPIC, Notification(level=level, message=message))


event_bus = EventBus()
