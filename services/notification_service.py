"""
Notification Service

In-process change feed. Services announce booking and earnings changes here;
announcements are delivered to subscribers only after the transaction that
made the change has committed, so a rolled-back change is never announced.
"""

from typing import Optional, Dict, Any, Callable, List
from collections import defaultdict
import logging
import threading
import uuid
from flask import current_app
from timezone_utils import get_ist_time_naive
from .transaction_helper import TransactionHelper

logger = logging.getLogger(__name__)

BOOKINGS_CHANNEL = 'bookings'
EARNINGS_CHANNEL = 'earnings'
ALL_CHANNELS = '*'

Listener = Callable[[Dict[str, Any]], None]


class ChangeFeed:
    """Subscriber registry, one per app (app.extensions['change_feed'])."""

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, channel: str, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        with self._lock:
            self._listeners[channel].append(listener)

        def unsubscribe():
            self.unsubscribe(channel, listener)
        return unsubscribe

    def unsubscribe(self, channel: str, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners.get(channel, []):
                self._listeners[channel].remove(listener)

    def publish(self, channel: str, event: Dict[str, Any]) -> int:
        """Deliver an event; returns the number of listeners that received it."""
        with self._lock:
            listeners = list(self._listeners.get(channel, [])) + list(self._listeners.get(ALL_CHANNELS, []))

        delivered = 0
        for listener in listeners:
            try:
                listener(event)
                delivered += 1
            except Exception as e:
                logger.error(f"Change feed listener failed on {channel}/{event.get('event_type')}: {str(e)}",
                             exc_info=True)
        return delivered


def build_event(event_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'event_id': str(uuid.uuid4()),
        'event_type': event_type,
        'occurred_at': get_ist_time_naive().isoformat(),
        'data': data,
    }


class NotificationService:
    """Service class for announcing committed changes"""

    def __init__(self, feed: Optional[ChangeFeed] = None):
        self.feed = feed or current_app.extensions['change_feed']

    def _publish_after_commit(self, channel: str, event: Dict[str, Any]) -> None:
        feed = self.feed

        def deliver():
            count = feed.publish(channel, event)
            logger.debug(f"Published {event['event_type']} to {count} listener(s)")

        TransactionHelper.on_commit(deliver)

    def booking_changed(self, booking, event_type: str) -> None:
        """Queue a booking change for the customer and cleaner views."""
        self._publish_after_commit(BOOKINGS_CHANNEL, build_event(event_type, {
            'booking_id': booking.id,
            'status': booking.status.value,
            'customer_id': booking.customer_id,
            'cleaner_id': booking.cleaner_id,
        }))

    def earnings_changed(self, cleaner_id: int, event_type: str, amount) -> None:
        """Queue a balance change for the cleaner's earnings view."""
        self._publish_after_commit(EARNINGS_CHANNEL, build_event(event_type, {
            'cleaner_id': cleaner_id,
            'amount': str(amount),
        }))
