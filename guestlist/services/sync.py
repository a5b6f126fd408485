"""Realtime sync — fans consistent per-event snapshots out to subscribers.

Services call ``hub.publish(db, event_id)`` after every committed mutation.
A snapshot is built from one session after the commit, so a subscriber never
sees half of a transaction.
"""
import logging
import threading
from typing import Any, Callable

from sqlalchemy.orm import Session

from guestlist.models.attendee import Attendee
from guestlist.models.sector import Sector
from guestlist.models.supplier import Supplier
from guestlist.schemas.report import EventSnapshot

logger = logging.getLogger(__name__)

Subscriber = Callable[[dict[str, Any]], None]


def build_snapshot(db: Session, event_id: str) -> dict[str, Any]:
    """Serialize attendees, sectors and suppliers of one event (JSON-safe)."""
    attendees = (
        db.query(Attendee).filter(Attendee.event_id == event_id).order_by(Attendee.name).all()
    )
    sectors = db.query(Sector).filter(Sector.event_id == event_id).order_by(Sector.label).all()
    suppliers = db.query(Supplier).filter(Supplier.event_id == event_id).order_by(Supplier.name).all()
    snapshot = EventSnapshot.model_validate({
        "event_id": event_id,
        "attendees": attendees,
        "sectors": sectors,
        "suppliers": suppliers,
    }, from_attributes=True)
    return snapshot.model_dump(mode="json")


class SnapshotHub:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Subscriber]] = {}

    def subscribe(self, event_id: str, callback: Subscriber) -> Callable[[], None]:
        """Register *callback* for *event_id*; returns the unsubscribe function."""
        with self._lock:
            self._subscribers.setdefault(event_id, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(event_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._subscribers.pop(event_id, None)

        return unsubscribe

    def subscriber_count(self, event_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(event_id, []))

    def publish(self, db: Session, event_id: str) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(event_id, []))
        if not callbacks:
            return

        snapshot = build_snapshot(db, event_id)
        for callback in callbacks:
            try:
                callback(snapshot)
            except Exception:
                # Mutation is already committed; keep notifying the others
                logger.exception("Snapshot subscriber failed for event %s", event_id)


hub = SnapshotHub()
