"""Sector registry — named access categories inside an event."""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from guestlist.errors import EventNotFound, ResourceInUse, SectorNotFound, ValidationError
from guestlist.models.attendee import Attendee
from guestlist.models.event import Event
from guestlist.models.sector import Sector
from guestlist.models.supplier import Supplier
from guestlist.services.sync import hub

logger = logging.getLogger(__name__)


def _require_event(db: Session, event_id: str) -> Event:
    event = db.get(Event, event_id)
    if event is None:
        raise EventNotFound(event_id)
    return event


def get_sector(db: Session, event_id: str, sector_id: str) -> Sector:
    sector = db.get(Sector, sector_id)
    if sector is None or sector.event_id != event_id:
        raise SectorNotFound(sector_id)
    return sector


def list_sectors(db: Session, event_id: str) -> list[Sector]:
    _require_event(db, event_id)
    return db.query(Sector).filter(Sector.event_id == event_id).order_by(Sector.label).all()


def sector_ids_for_event(db: Session, event_id: str) -> set[str]:
    rows = db.query(Sector.sector_id).filter(Sector.event_id == event_id).all()
    return {row[0] for row in rows}


def require_sectors(db: Session, event_id: str, sector_ids: list[str], field: str = "sector_ids") -> list[str]:
    """Deduplicate *sector_ids* keeping order; every id must exist in the event."""
    known = sector_ids_for_event(db, event_id)
    cleaned = []
    for sector_id in sector_ids:
        if sector_id not in known:
            raise SectorNotFound(sector_id)
        if sector_id not in cleaned:
            cleaned.append(sector_id)
    if not cleaned:
        raise ValidationError(field, "at least one sector is required")
    return cleaned


def add_sector(db: Session, event_id: str, label: str, color: Optional[str] = None) -> Sector:
    _require_event(db, event_id)
    label = (label or "").strip()
    if not label:
        raise ValidationError("label", "must not be empty")

    sector = Sector(event_id=event_id, label=label, color=color or "#4f46e5")
    db.add(sector)
    db.commit()
    db.refresh(sector)
    logger.info("Added sector '%s' (%s) to event %s", label, sector.sector_id, event_id)
    hub.publish(db, event_id)
    return sector


def update_sector(db: Session, event_id: str, sector_id: str, updates: dict) -> Sector:
    sector = get_sector(db, event_id, sector_id)
    if "label" in updates and updates["label"] is not None:
        label = updates["label"].strip()
        if not label:
            raise ValidationError("label", "must not be empty")
        sector.label = label
    if updates.get("color"):
        sector.color = updates["color"]

    db.commit()
    db.refresh(sector)
    logger.info("Updated sector %s in event %s", sector_id, event_id)
    hub.publish(db, event_id)
    return sector


def sector_references(db: Session, event_id: str, sector_id: str) -> dict[str, int]:
    """Count everything in the event that still points at *sector_id*."""
    rows = db.query(Attendee.sector_ids).filter(Attendee.event_id == event_id).all()
    attendee_refs = sum(1 for (sector_ids,) in rows if sector_id in (sector_ids or []))

    supplier_refs = 0
    sub_company_refs = 0
    for supplier in db.query(Supplier).filter(Supplier.event_id == event_id).all():
        if sector_id in (supplier.sector_ids or []):
            supplier_refs += 1
        sub_company_refs += sum(1 for sc in supplier.sub_companies or [] if sc.get("sector_id") == sector_id)

    references = {"attendees": attendee_refs, "suppliers": supplier_refs, "sub_companies": sub_company_refs}
    return {kind: count for kind, count in references.items() if count}


def delete_sector(db: Session, event_id: str, sector_id: str) -> None:
    """Delete an unreferenced sector; both collections are scanned first."""
    sector = get_sector(db, event_id, sector_id)
    references = sector_references(db, event_id, sector_id)
    if references:
        raise ResourceInUse("Sector", sector_id, references)

    db.delete(sector)
    db.commit()
    logger.info("Deleted sector %s from event %s", sector_id, event_id)
    hub.publish(db, event_id)
