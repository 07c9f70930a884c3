"""
Simple in-memory message bus for agent events.
"""
from typing import Any, Callable, Dict, List

from flashtrade.utils.logging import get_logger

logger = get_logger(__name__)

DECISION_RECORDED = "decision_recorded"
TICK_COMPLETED = "tick_completed"


class MessageBus:
    """
    A synchronous in-memory publish/subscribe bus.

    Subscribers run in subscription order. A subscriber that raises is logged
    and skipped; it never affects the publisher or the other subscribers.
    """

    def __init__(self):
        self.listeners: Dict[str, List[Callable[[Any], None]]] = {}

    def subscribe(self, event_type: str, callback: Callable[[Any], None]):
        """
        Subscribes a callback to an event type.

        Args:
            event_type: The type of event to subscribe to.
            callback: Called with the published message.
        """
        self.listeners.setdefault(event_type, []).append(callback)

    def unsubscribe(self, event_type: str, callback: Callable[[Any], None]):
        callbacks = self.listeners.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def publish(self, event_type: str, message: Any) -> int:
        """
        Publishes an event to all subscribed listeners.

        Returns:
            The number of subscribers that handled the message without error.
        """
        delivered = 0
        for callback in list(self.listeners.get(event_type, [])):
            try:
                callback(message)
                delivered += 1
            except Exception:
                logger.exception("Subscriber failed", event_type=event_type, callback=repr(callback))
        return delivered
