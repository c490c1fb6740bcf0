import json
import logging
from collections.abc import Callable

from stocksync.schemas.events import EventName

logger = logging.getLogger(__name__)

Handler = Callable[[dict], None]


class EventBus:
    """Typed publish/subscribe with exactly one handler per event kind.

    Subscribing a second handler for the same kind replaces the first.
    """

    def __init__(self):
        self._handlers: dict[EventName, Handler] = {}

    def subscribe(self, kind: EventName, handler: Handler) -> None:
        if kind in self._handlers:
            logger.debug("Replacing handler for %s", kind.value)
        self._handlers[kind] = handler

    def unsubscribe(self, kind: EventName) -> None:
        self._handlers.pop(kind, None)

    def is_subscribed(self, kind: EventName) -> bool:
        return kind in self._handlers

    def publish(self, kind: EventName, data: dict) -> bool:
        handler = self._handlers.get(kind)
        if handler is None:
            return False
        handler(data)
        return True

    def dispatch(self, message: dict | str | bytes) -> bool:
        """Route a wire frame ``{"event": ..., "data": ...}`` to its handler."""
        if isinstance(message, (str, bytes)):
            message = json.loads(message)
        try:
            kind = EventName(message.get("event"))
        except ValueError:
            logger.debug("Ignoring unknown event %r", message.get("event"))
            return False
        return self.publish(kind, message.get("data") or {})
