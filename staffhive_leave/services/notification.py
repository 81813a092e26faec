import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], None]
Unsubscribe = Callable[[], None]


class LeaveEvent:
    REQUEST_CREATED = "leaveRequestSubmitted"
    STATUS_UPDATED = "leaveRequestUpdated"
    STORAGE_CHANGED = "storage"


class NotificationRelay:
    """
    Fire-and-forget pub/sub shared by every store in a process.

    Two channels:
    - events (request created / status updated), delivered to every listener
    - storage changes on a cache key, delivered to every listener except the
      one that wrote the change, so other store instances can resync

    A failing listener is logged and skipped; it never reaches the publisher.
    """

    def __init__(self):
        self._listeners: Dict[str, List[Tuple[Optional[str], Listener]]] = {}

    def _subscribe(self, event: str, listener: Listener, origin: Optional[str] = None) -> Unsubscribe:
        entry = (origin, listener)
        self._listeners.setdefault(event, []).append(entry)

        def unsubscribe():
            entries = self._listeners.get(event, [])
            if entry in entries:
                entries.remove(entry)

        return unsubscribe

    def on_request_created(self, listener: Listener) -> Unsubscribe:
        return self._subscribe(LeaveEvent.REQUEST_CREATED, listener)

    def on_status_updated(self, listener: Listener) -> Unsubscribe:
        return self._subscribe(LeaveEvent.STATUS_UPDATED, listener)

    def on_storage_changed(self, listener: Listener, origin: Optional[str] = None) -> Unsubscribe:
        return self._subscribe(LeaveEvent.STORAGE_CHANGED, listener, origin)

    def publish(self, event: str, payload: Dict[str, Any], origin: Optional[str] = None) -> int:
        """Deliver `payload` to the listeners of `event`. Returns how many received it."""
        delivered = 0
        # Copy so listeners may unsubscribe while being notified
        for listener_origin, listener in list(self._listeners.get(event, [])):
            if origin is not None and listener_origin == origin:
                continue
            try:
                listener(payload)
                delivered += 1
            except Exception as e:
                logger.error(f"Listener for {event} failed: {e}", exc_info=True)
        return delivered

    def request_created(self, request: Any, is_new: bool = True) -> int:
        return self.publish(LeaveEvent.REQUEST_CREATED, {"request": request, "is_new": is_new})

    def status_updated(self, request: Any) -> int:
        return self.publish(LeaveEvent.STATUS_UPDATED, {"request": request})

    def storage_changed(self, key: str, origin: Optional[str] = None) -> int:
        return self.publish(LeaveEvent.STORAGE_CHANGED, {"key": key, "origin": origin}, origin=origin)
