import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, DefaultDict, Dict, List

logger = logging.getLogger(__name__)

INVENTORY_CHANGED = "inventory.changed"
CONTAINER_CHANGED = "container.changed"
MARKET_CHANGED = "market.changed"


@dataclass(frozen=True)
class Event:
    """Event broadcast on the bus.

    Attributes:
        name: Event name, e.g. ``scene.loaded``.
        payload: Data attached by the publisher.
    """
    name: str
    payload: Dict[str, Any]


Handler = Callable[[Event], None]


class EventBus:
    """Publish/subscribe bus for scene lifecycle signals and UI refresh hooks.

    Callbacks run synchronously on the publishing thread in registration order.
    A failing subscriber is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._subs: DefaultDict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, event_name: str, callback: Handler) -> None:
        if not callable(callback):
            raise TypeError("callback must be callable")
        self._subs[event_name].append(callback)
        logger.debug("Subscribed %s to '%s'", getattr(callback, "__name__", str(callback)), event_name)

    def unsubscribe(self, event_name: str, callback: Handler) -> None:
        if callback in self._subs.get(event_name, []):
            self._subs[event_name].remove(callback)
            logger.debug("Unsubscribed %s from '%s'", getattr(callback, "__name__", str(callback)), event_name)

    def publish(self, event_name: str, payload: Dict[str, Any]) -> None:
        event = Event(name=event_name, payload=payload)
        subs = list(self._subs.get(event_name, []))
        logger.debug("Publishing '%s' to %d subscribers: %s", event_name, len(subs), payload)
        for cb in subs:
            try:
                cb(event)
            except Exception:
                logger.exception("Unhandled exception in event subscriber for '%s'", event_name)
