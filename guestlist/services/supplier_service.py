"""Supplier registry — delegated third parties with capacity limits.

Capacity is enforced when an attendee registers, never here: lowering a
limit below current usage is allowed and simply blocks further registrations.
"""
import logging
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from guestlist.errors import EventNotFound, ResourceInUse, SupplierNotFound, ValidationError
from guestlist.models.access_token import TokenPurpose
from guestlist.models.attendee import Attendee
from guestlist.models.event import Event
from guestlist.models.supplier import Supplier
from guestlist.services import token_service
from guestlist.services.sector_service import require_sectors
from guestlist.services.sync import hub

logger = logging.getLogger(__name__)


def get_supplier(db: Session, event_id: str, supplier_id: str) -> Supplier:
    supplier = db.get(Supplier, supplier_id)
    if supplier is None or supplier.event_id != event_id:
        raise SupplierNotFound(supplier_id)
    return supplier


def list_suppliers(db: Session, event_id: str) -> list[Supplier]:
    if db.get(Event, event_id) is None:
        raise EventNotFound(event_id)
    return db.query(Supplier).filter(Supplier.event_id == event_id).order_by(Supplier.name).all()


def count_registrations(db: Session, supplier_id: str) -> int:
    """Attendees referencing the supplier, whatever their status."""
    return db.query(func.count(Attendee.attendee_id)).filter(Attendee.supplier_id == supplier_id).scalar() or 0


def registration_counts(db: Session, event_id: str) -> dict[str, int]:
    rows = (
        db.query(Attendee.supplier_id, func.count(Attendee.attendee_id))
        .filter(Attendee.event_id == event_id, Attendee.supplier_id.isnot(None))
        .group_by(Attendee.supplier_id)
        .all()
    )
    return {supplier_id: count for supplier_id, count in rows}


def _clean_sub_companies(db: Session, event_id: str, sub_companies: list[dict[str, Any]]) -> list[dict[str, str]]:
    cleaned = []
    seen = set()
    for entry in sub_companies:
        name = (entry.get("name") or "").strip()
        if not name:
            raise ValidationError("sub_companies", "every sub-company needs a name")
        if name in seen:
            raise ValidationError("sub_companies", f"duplicate sub-company '{name}'")
        seen.add(name)
        sector_id = require_sectors(db, event_id, [entry.get("sector_id")], field="sub_companies")[0]
        cleaned.append({"name": name, "sector_id": sector_id})
    return cleaned


def _clean_sector_ids(db: Session, event_id: str, sector_ids: list[str]) -> list[str]:
    if not sector_ids:
        return []
    return require_sectors(db, event_id, sector_ids)


def add_supplier(
    db: Session,
    event_id: str,
    name: str,
    sector_ids: list[str],
    registration_limit: int,
    sub_companies: Optional[list[dict[str, Any]]] = None,
) -> Supplier:
    """Create a supplier with its admin and registration links in one commit."""
    if db.get(Event, event_id) is None:
        raise EventNotFound(event_id)
    name = (name or "").strip()
    if not name:
        raise ValidationError("name", "must not be empty")
    if registration_limit is None or registration_limit < 0:
        raise ValidationError("registration_limit", "must be zero or more")

    supplier = Supplier(
        event_id=event_id,
        name=name,
        sector_ids=_clean_sector_ids(db, event_id, sector_ids),
        registration_limit=registration_limit,
        sub_companies=_clean_sub_companies(db, event_id, sub_companies or []),
        active=True,
    )
    db.add(supplier)
    db.flush()

    token_service.issue_token(db, supplier, TokenPurpose.admin)
    token_service.issue_token(db, supplier, TokenPurpose.registration)
    db.commit()
    db.refresh(supplier)
    logger.info("Added supplier '%s' (%s) to event %s, limit %d", name, supplier.supplier_id, event_id, registration_limit)
    hub.publish(db, event_id)
    return supplier


def update_supplier(db: Session, event_id: str, supplier_id: str, updates: dict[str, Any]) -> Supplier:
    """Partial update; only the keys present in *updates* change."""
    supplier = get_supplier(db, event_id, supplier_id)

    if updates.get("name") is not None:
        name = updates["name"].strip()
        if not name:
            raise ValidationError("name", "must not be empty")
        supplier.name = name
    if updates.get("sector_ids") is not None:
        supplier.sector_ids = _clean_sector_ids(db, event_id, updates["sector_ids"])
    if updates.get("registration_limit") is not None:
        if updates["registration_limit"] < 0:
            raise ValidationError("registration_limit", "must be zero or more")
        supplier.registration_limit = updates["registration_limit"]
    if updates.get("sub_companies") is not None:
        supplier.sub_companies = _clean_sub_companies(db, event_id, updates["sub_companies"])
    if updates.get("active") is not None:
        supplier.active = bool(updates["active"])

    db.commit()
    db.refresh(supplier)
    logger.info("Updated supplier %s (%s)", supplier_id, ", ".join(sorted(updates)))
    hub.publish(db, event_id)
    return supplier


def set_supplier_active(db: Session, event_id: str, supplier_id: str, active: bool) -> Supplier:
    return update_supplier(db, event_id, supplier_id, {"active": active})


def delete_supplier(db: Session, event_id: str, supplier_id: str) -> None:
    """Delete an unused supplier; its tokens go in the same transaction."""
    supplier = get_supplier(db, event_id, supplier_id)
    in_use = count_registrations(db, supplier_id)
    if in_use:
        raise ResourceInUse("Supplier", supplier_id, {"attendees": in_use})

    db.delete(supplier)
    db.commit()
    logger.info("Deleted supplier %s from event %s", supplier_id, event_id)
    hub.publish(db, event_id)
