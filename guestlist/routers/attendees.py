"""Attendee API routes — every lifecycle operation goes through attendee_service."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from guestlist.database import get_db
from guestlist.models.attendee import AttendeeStatus
from guestlist.schemas.attendee import (
    AttendeeCreate,
    AttendeeDetailsUpdate,
    AttendeeOut,
    BlockRequest,
    BulkSectorRequest,
    ImportRequest,
    ImportResult,
    RemovalRequest,
    SectorChangeRequest,
    StatusSetRequest,
    SubstitutionRequest,
    WristbandsRequest,
)
from guestlist.schemas.report import VerifyRequest, VerifyResult
from guestlist.security import OperatorContext, get_operator
from guestlist.services import attendee_service, matching_service
from guestlist.services.matching_service import MatchingOracle, get_oracle

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=AttendeeOut, status_code=status.HTTP_201_CREATED)
def register_attendee(
    event_id: str,
    payload: AttendeeCreate,
    ctx: OperatorContext = Depends(get_operator),
    db: Session = Depends(get_db),
):
    """Register an attendee (photo required) directly or on behalf of a supplier."""
    return attendee_service.register(db, event_id, payload, ctx, supplier_id=payload.supplier_id)


@router.get("/", response_model=list[AttendeeOut])
def list_attendees(
    event_id: str,
    status_filter: Optional[AttendeeStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None),
    supplier_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """List attendees; ``search`` matches name (accent-insensitive), CPF or wristband."""
    return attendee_service.list_attendees(db, event_id, status=status_filter, search=search, supplier_id=supplier_id)


@router.post("/import", response_model=ImportResult)
def import_attendees(
    event_id: str,
    payload: ImportRequest,
    ctx: OperatorContext = Depends(get_operator),
    db: Session = Depends(get_db),
):
    """Register parsed spreadsheet rows; failed rows are reported, not fatal."""
    return attendee_service.import_rows(db, event_id, payload.rows, ctx, supplier_id=payload.supplier_id)


@router.post("/bulk-sectors", response_model=list[AttendeeOut])
def bulk_reassign_sectors(
    event_id: str,
    payload: BulkSectorRequest,
    ctx: OperatorContext = Depends(get_operator),
    db: Session = Depends(get_db),
):
    """Overwrite the sectors of several attendees at once (all or nothing)."""
    return attendee_service.bulk_reassign_sectors(db, event_id, payload.attendee_ids, payload.sector_ids, ctx)


@router.get("/{attendee_id}", response_model=AttendeeOut)
def get_attendee(event_id: str, attendee_id: str, db: Session = Depends(get_db)):
    return attendee_service.get_attendee(db, event_id, attendee_id)


@router.patch("/{attendee_id}", response_model=AttendeeOut)
def update_attendee(
    event_id: str,
    attendee_id: str,
    payload: AttendeeDetailsUpdate,
    ctx: OperatorContext = Depends(get_operator),
    db: Session = Depends(get_db),
):
    return attendee_service.update_details(db, event_id, attendee_id, payload.model_dump(exclude_unset=True), ctx)


@router.delete("/{attendee_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_attendee(
    event_id: str,
    attendee_id: str,
    ctx: OperatorContext = Depends(get_operator),
    db: Session = Depends(get_db),
):
    """Irreversible hard delete."""
    attendee_service.delete(db, event_id, attendee_id, ctx)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Check-in ───────────────────────────────────────────────────────
@router.post("/{attendee_id}/check-in", response_model=AttendeeOut)
def check_in(
    event_id: str,
    attendee_id: str,
    payload: WristbandsRequest,
    ctx: OperatorContext = Depends(get_operator),
    db: Session = Depends(get_db),
):
    """PENDING → CHECKED_IN; 409 duplicate_wristband names every clashing code."""
    return attendee_service.check_in(db, event_id, attendee_id, payload.wristbands, ctx)


@router.post("/{attendee_id}/revert-check-in", response_model=AttendeeOut)
def revert_check_in(
    event_id: str, attendee_id: str, ctx: OperatorContext = Depends(get_operator), db: Session = Depends(get_db)
):
    return attendee_service.revert_check_in(db, event_id, attendee_id, ctx)


@router.post("/{attendee_id}/check-out", response_model=AttendeeOut)
def check_out(
    event_id: str, attendee_id: str, ctx: OperatorContext = Depends(get_operator), db: Session = Depends(get_db)
):
    return attendee_service.check_out(db, event_id, attendee_id, ctx)


@router.put("/{attendee_id}/wristbands", response_model=AttendeeOut)
def update_wristbands(
    event_id: str,
    attendee_id: str,
    payload: WristbandsRequest,
    ctx: OperatorContext = Depends(get_operator),
    db: Session = Depends(get_db),
):
    """Reissue wristbands for the sectors sent; an empty code clears that sector."""
    return attendee_service.update_wristbands(db, event_id, attendee_id, payload.wristbands, ctx)


@router.post("/{attendee_id}/verify", response_model=VerifyResult)
def verify_identity(
    event_id: str,
    attendee_id: str,
    payload: VerifyRequest,
    oracle: MatchingOracle = Depends(get_oracle),
    db: Session = Depends(get_db),
):
    """Compare a live capture with the attendee's stored photo."""
    verified = matching_service.verify_identity(db, event_id, attendee_id, payload.live_photo, oracle)
    return VerifyResult(attendee_id=attendee_id, verified=verified)


# ── Substitution ───────────────────────────────────────────────────
@router.post("/{attendee_id}/substitution", response_model=AttendeeOut)
def request_substitution(
    event_id: str,
    attendee_id: str,
    payload: SubstitutionRequest,
    ctx: OperatorContext = Depends(get_operator),
    db: Session = Depends(get_db),
):
    return attendee_service.request_substitution(db, event_id, attendee_id, payload, ctx)


@router.post("/{attendee_id}/substitution/approve", response_model=AttendeeOut)
def approve_substitution(
    event_id: str, attendee_id: str, ctx: OperatorContext = Depends(get_operator), db: Session = Depends(get_db)
):
    """Replace name, CPF and photo with the pending proposal."""
    return attendee_service.approve_substitution(db, event_id, attendee_id, ctx)


@router.post("/{attendee_id}/substitution/reject", response_model=AttendeeOut)
def reject_substitution(
    event_id: str, attendee_id: str, ctx: OperatorContext = Depends(get_operator), db: Session = Depends(get_db)
):
    return attendee_service.reject_substitution(db, event_id, attendee_id, ctx)


# ── Sector change ──────────────────────────────────────────────────
@router.post("/{attendee_id}/sector-change", response_model=AttendeeOut)
def request_sector_change(
    event_id: str,
    attendee_id: str,
    payload: SectorChangeRequest,
    ctx: OperatorContext = Depends(get_operator),
    db: Session = Depends(get_db),
):
    return attendee_service.request_sector_change(
        db, event_id, attendee_id, payload.sector_id, payload.justification, ctx
    )


@router.post("/{attendee_id}/sector-change/approve", response_model=AttendeeOut)
def approve_sector_change(
    event_id: str, attendee_id: str, ctx: OperatorContext = Depends(get_operator), db: Session = Depends(get_db)
):
    return attendee_service.approve_sector_change(db, event_id, attendee_id, ctx)


@router.post("/{attendee_id}/sector-change/reject", response_model=AttendeeOut)
def reject_sector_change(
    event_id: str, attendee_id: str, ctx: OperatorContext = Depends(get_operator), db: Session = Depends(get_db)
):
    return attendee_service.reject_sector_change(db, event_id, attendee_id, ctx)


# ── Supplier proposals and overrides ───────────────────────────────
@router.post("/{attendee_id}/removal", response_model=AttendeeOut)
def request_removal(
    event_id: str,
    attendee_id: str,
    payload: RemovalRequest,
    ctx: OperatorContext = Depends(get_operator),
    db: Session = Depends(get_db),
):
    return attendee_service.request_removal(db, event_id, attendee_id, payload.reason, ctx)


@router.post("/{attendee_id}/approve", response_model=AttendeeOut)
def approve_pending(
    event_id: str, attendee_id: str, ctx: OperatorContext = Depends(get_operator), db: Session = Depends(get_db)
):
    """Resolve PENDING_APPROVAL: a registration goes live, a removal cancels."""
    return attendee_service.approve_pending(db, event_id, attendee_id, ctx)


@router.post("/{attendee_id}/reject", response_model=AttendeeOut)
def reject_pending(
    event_id: str, attendee_id: str, ctx: OperatorContext = Depends(get_operator), db: Session = Depends(get_db)
):
    return attendee_service.reject_pending(db, event_id, attendee_id, ctx)


@router.post("/{attendee_id}/block", response_model=AttendeeOut)
def block_attendee(
    event_id: str,
    attendee_id: str,
    payload: BlockRequest,
    ctx: OperatorContext = Depends(get_operator),
    db: Session = Depends(get_db),
):
    return attendee_service.block(db, event_id, attendee_id, ctx, reason=payload.reason)


@router.put("/{attendee_id}/status", response_model=AttendeeOut)
def set_status(
    event_id: str,
    attendee_id: str,
    payload: StatusSetRequest,
    ctx: OperatorContext = Depends(get_operator),
    db: Session = Depends(get_db),
):
    """Organizer escape hatch for terminal statuses."""
    return attendee_service.set_status(db, event_id, attendee_id, payload.status, ctx)
