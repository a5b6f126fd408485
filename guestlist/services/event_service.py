"""Event service — events and the cascade that goes with deleting one."""
import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from guestlist.errors import EventNotFound, ValidationError
from guestlist.models.event import DEFAULT_MODULES, Event
from guestlist.services.sync import hub

logger = logging.getLogger(__name__)


def _clean_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name", "must not be empty")
    return name


def _merge_modules(current: Optional[dict[str, bool]], updates: Optional[dict[str, Any]]) -> dict[str, bool]:
    modules = dict(DEFAULT_MODULES)
    modules.update(current or {})
    for key, value in (updates or {}).items():
        if key not in DEFAULT_MODULES:
            raise ValidationError("modules", f"unknown module '{key}'")
        modules[key] = bool(value)
    return modules


def get_event(db: Session, event_id: str) -> Event:
    event = db.get(Event, event_id)
    if event is None:
        raise EventNotFound(event_id)
    return event


def list_events(db: Session) -> list[Event]:
    return db.query(Event).order_by(Event.created_at.desc(), Event.name).all()


def create_event(
    db: Session,
    name: str,
    modules: Optional[dict[str, Any]] = None,
    allow_photo_change: bool = True,
    allow_guest_uploads: bool = False,
) -> Event:
    event = Event(
        name=_clean_name(name),
        modules=_merge_modules(None, modules),
        allow_photo_change=allow_photo_change,
        allow_guest_uploads=allow_guest_uploads,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("Created event '%s' (%s)", event.name, event.event_id)
    return event


def update_event(db: Session, event_id: str, updates: dict[str, Any]) -> Event:
    event = get_event(db, event_id)
    if updates.get("name") is not None:
        event.name = _clean_name(updates["name"])
    if updates.get("modules") is not None:
        event.modules = _merge_modules(event.modules, updates["modules"])
    for flag in ("allow_photo_change", "allow_guest_uploads"):
        if updates.get(flag) is not None:
            setattr(event, flag, bool(updates[flag]))

    db.commit()
    db.refresh(event)
    logger.info("Updated event %s (%s)", event_id, ", ".join(sorted(updates)))
    hub.publish(db, event_id)
    return event


def delete_event(db: Session, event_id: str) -> None:
    """Delete the event with its attendees, sectors, suppliers and tokens in one commit."""
    event = get_event(db, event_id)
    counts = {
        "attendees": len(event.attendees),
        "sectors": len(event.sectors),
        "suppliers": len(event.suppliers),
        "tokens": len(event.tokens),
    }
    db.delete(event)
    db.commit()
    logger.info("Deleted event %s with %s", event_id, counts)
    hub.publish(db, event_id)
