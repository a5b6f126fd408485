"""Public capability-link routes — no organizer login, the token is the credential.

* registration links let guests register themselves for one supplier;
* admin links let a supplier read its own roster and propose changes, which
  wait for organizer approval.
"""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from guestlist.database import get_db
from guestlist.errors import AttendeeNotFound
from guestlist.models.access_token import TokenPurpose
from guestlist.models.attendee import Attendee
from guestlist.models.sector import Sector
from guestlist.schemas.attendee import (
    AttendeeOut,
    GuestRegistration,
    RemovalRequest,
    SectorChangeRequest,
    SubstitutionRequest,
)
from guestlist.schemas.link import AdminLinkOut, RegistrationLinkOut
from guestlist.security import OperatorContext
from guestlist.services import attendee_service, photo_storage, token_service
from guestlist.services.supplier_service import count_registrations
from guestlist.services.token_service import ResolvedLink

logger = logging.getLogger(__name__)
router = APIRouter()


def _supplier_sectors(db: Session, link: ResolvedLink) -> list[Sector]:
    supplier = link.supplier
    sector_ids = set(supplier.sector_ids or [])
    sector_ids.update(sc["sector_id"] for sc in supplier.sub_companies or [])
    if not sector_ids:
        return []
    return (
        db.query(Sector)
        .filter(Sector.event_id == link.event.event_id, Sector.sector_id.in_(sector_ids))
        .order_by(Sector.label)
        .all()
    )


def _registration_view(db: Session, link: ResolvedLink) -> dict:
    used = count_registrations(db, link.supplier.supplier_id)
    return {
        "event": link.event,
        "supplier": link.supplier,
        "sectors": _supplier_sectors(db, link),
        "remaining": max(0, link.supplier.registration_limit - used),
    }


def _own_attendee(db: Session, link: ResolvedLink, attendee_id: str) -> Attendee:
    """A supplier may only touch attendees it registered."""
    attendee = attendee_service.get_attendee(db, link.event.event_id, attendee_id)
    if attendee.supplier_id != link.supplier.supplier_id:
        raise AttendeeNotFound(attendee_id)
    return attendee


def _guest_register(db: Session, link: ResolvedLink, payload: GuestRegistration) -> Attendee:
    ctx = OperatorContext(username="guest", role="guest", supplier_id=link.supplier.supplier_id)
    photo_storage.require_upload(payload.photo)
    return attendee_service.register(
        db, link.event.event_id, payload, ctx, supplier_id=link.supplier.supplier_id
    )


# ── Guest self-registration ────────────────────────────────────────
@router.get("/links/registration/{token}", response_model=RegistrationLinkOut)
def open_registration_link(token: str, db: Session = Depends(get_db)):
    """What the registration page needs: event, supplier, allowed sectors, places left."""
    link = token_service.resolve_token(db, token, TokenPurpose.registration)
    return _registration_view(db, link)


@router.post("/links/registration/{token}/attendees", response_model=AttendeeOut,
             status_code=status.HTTP_201_CREATED)
def register_with_token(token: str, payload: GuestRegistration, db: Session = Depends(get_db)):
    link = token_service.resolve_token(db, token, TokenPurpose.registration)
    return _guest_register(db, link, payload)


@router.get("/events/{event_id}/suppliers/{supplier_id}/registration", response_model=RegistrationLinkOut)
def open_supplier_registration(event_id: str, supplier_id: str, db: Session = Depends(get_db)):
    """The ``?eventId=&supplierId=`` form of a registration link."""
    link = token_service.resolve_supplier_link(db, event_id, supplier_id)
    return _registration_view(db, link)


@router.post("/events/{event_id}/suppliers/{supplier_id}/registration", response_model=AttendeeOut,
             status_code=status.HTTP_201_CREATED)
def register_with_supplier_link(
    event_id: str, supplier_id: str, payload: GuestRegistration, db: Session = Depends(get_db)
):
    link = token_service.resolve_supplier_link(db, event_id, supplier_id)
    return _guest_register(db, link, payload)


# ── Supplier roster administration ─────────────────────────────────
@router.get("/links/admin/{token}", response_model=AdminLinkOut)
def open_admin_link(token: str, db: Session = Depends(get_db)):
    """The supplier's own roster."""
    link = token_service.resolve_token(db, token, TokenPurpose.admin)
    attendees = attendee_service.list_attendees(db, link.event.event_id, supplier_id=link.supplier.supplier_id)
    return {
        "event": link.event,
        "supplier": link.supplier,
        "sectors": _supplier_sectors(db, link),
        "registration_limit": link.supplier.registration_limit,
        "registration_count": len(attendees),
        "attendees": attendees,
    }


@router.post("/links/admin/{token}/attendees", response_model=AttendeeOut, status_code=status.HTTP_201_CREATED)
def propose_registration(token: str, payload: GuestRegistration, db: Session = Depends(get_db)):
    """New registration by the supplier; waits in PENDING_APPROVAL."""
    link = token_service.resolve_token(db, token, TokenPurpose.admin)
    photo_storage.require_upload(payload.photo)
    return attendee_service.register(
        db,
        link.event.event_id,
        payload,
        OperatorContext.for_supplier(link.supplier),
        supplier_id=link.supplier.supplier_id,
        requires_approval=True,
    )


@router.post("/links/admin/{token}/attendees/{attendee_id}/substitution", response_model=AttendeeOut)
def propose_substitution(token: str, attendee_id: str, payload: SubstitutionRequest, db: Session = Depends(get_db)):
    link = token_service.resolve_token(db, token, TokenPurpose.admin)
    attendee = _own_attendee(db, link, attendee_id)
    photo_storage.require_upload(payload.photo)
    return attendee_service.request_substitution(
        db, link.event.event_id, attendee.attendee_id, payload, OperatorContext.for_supplier(link.supplier)
    )


@router.post("/links/admin/{token}/attendees/{attendee_id}/sector-change", response_model=AttendeeOut)
def propose_sector_change(token: str, attendee_id: str, payload: SectorChangeRequest, db: Session = Depends(get_db)):
    link = token_service.resolve_token(db, token, TokenPurpose.admin)
    attendee = _own_attendee(db, link, attendee_id)
    return attendee_service.request_sector_change(
        db, link.event.event_id, attendee.attendee_id, payload.sector_id, payload.justification,
        OperatorContext.for_supplier(link.supplier),
    )


@router.post("/links/admin/{token}/attendees/{attendee_id}/removal", response_model=AttendeeOut)
def propose_removal(token: str, attendee_id: str, payload: RemovalRequest, db: Session = Depends(get_db)):
    link = token_service.resolve_token(db, token, TokenPurpose.admin)
    attendee = _own_attendee(db, link, attendee_id)
    return attendee_service.request_removal(
        db, link.event.event_id, attendee.attendee_id, payload.reason, OperatorContext.for_supplier(link.supplier)
    )
