"""Attendee lifecycle engine.

The only code that changes an attendee's status.  Every operation follows the
same shape:

1. load the attendee and check the transition table,
2. validate everything the operation needs (nothing is written yet),
3. apply the change, append one ``StatusChange`` ledger row,
4. commit once and publish a fresh snapshot.

A failure in steps 1–2 leaves the record exactly as it was.  Wristband
uniqueness per (event, sector) is checked up front for a useful error message
and backed by a unique key on ``wristband_assignments``, so two concurrent
check-ins with the same code cannot both succeed.
"""
import logging
import re
import unicodedata
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from guestlist.errors import (
    AttendeeNotFound,
    CapacityExceeded,
    DuplicateCpf,
    DuplicateWristband,
    EventNotFound,
    GuestListError,
    InvalidSectorChangeData,
    InvalidSubstitutionData,
    InvalidTransition,
    MissingSectorChangeData,
    MissingSubstitutionData,
    SectorNotFound,
    SupplierInactive,
    SupplierNotFound,
    ValidationError,
)
from guestlist.models.attendee import Attendee, AttendeeStatus, WristbandAssignment
from guestlist.models.event import Event
from guestlist.models.sector import Sector
from guestlist.models.status_change import LifecycleAction, StatusChange
from guestlist.models.supplier import Supplier
from guestlist.schemas.attendee import SectorChangeData, SubstitutionData
from guestlist.security import OperatorContext
from guestlist.services import photo_storage
from guestlist.services.sector_service import require_sectors
from guestlist.services.supplier_service import count_registrations
from guestlist.services.sync import hub

logger = logging.getLogger(__name__)

S = AttendeeStatus
A = LifecycleAction

STATUS_LABELS: dict[AttendeeStatus, str] = {
    S.pending: "Pending",
    S.checked_in: "Checked in",
    S.checked_out: "Checked out",
    S.cancelled: "Cancelled",
    S.missed: "Missed",
    S.substitution: "Open for substitution",
    S.substitution_request: "Substitution requested",
    S.sector_change_request: "Sector change requested",
    S.pending_approval: "Awaiting approval",
    S.blocked: "Blocked",
    S.rejected: "Rejected",
}

_REQUESTABLE = frozenset({S.pending, S.missed, S.substitution})

# Statuses each operation may start from; None means any status.
TRANSITIONS: dict[LifecycleAction, Optional[frozenset]] = {
    A.register: None,
    A.check_in: frozenset({S.pending}),
    A.revert_check_in: frozenset({S.checked_in}),
    A.check_out: frozenset({S.checked_in}),
    A.update_wristbands: None,
    A.update_details: None,
    A.request_substitution: _REQUESTABLE,
    A.approve_substitution: frozenset({S.substitution_request}),
    A.reject_substitution: frozenset({S.substitution_request}),
    A.request_sector_change: _REQUESTABLE,
    A.approve_sector_change: frozenset({S.sector_change_request}),
    A.reject_sector_change: frozenset({S.sector_change_request}),
    A.request_removal: _REQUESTABLE,
    A.approve_pending: frozenset({S.pending_approval}),
    A.reject_pending: frozenset({S.pending_approval}),
    A.block: None,
    A.set_status: None,
    A.mark_missed: frozenset({S.pending}),
    A.reassign_sectors: None,
    A.delete: None,
}

# Reachable only through their guarded operation
GUARDED_STATUSES = frozenset({S.checked_in, S.substitution_request, S.sector_change_request})

_CPF_STRIP_RE = re.compile(r"[.\-\s]")
_CPF_RE = re.compile(r"^\d{11}$")


# ── Helpers ────────────────────────────────────────────────────────
def normalize_cpf(raw: Optional[str]) -> str:
    """Strip dots, dashes and whitespace; the rest must be exactly 11 digits."""
    cpf = _CPF_STRIP_RE.sub("", raw or "")
    if not _CPF_RE.match(cpf):
        raise ValidationError("cpf", "must be exactly 11 digits")
    return cpf


def _clean_name(raw: Optional[str], field: str = "name") -> str:
    name = (raw or "").strip()
    if not name:
        raise ValidationError(field, "must not be empty")
    if len(name) > 255:
        raise ValidationError(field, "must be at most 255 characters")
    return name


def _fold(text: str) -> str:
    """Lower-case and drop accents for search."""
    decomposed = unicodedata.normalize("NFKD", text or "")
    return "".join(c for c in decomposed if not unicodedata.combining(c)).lower()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _get(data: Any, key: str, default=None):
    if isinstance(data, dict):
        return data.get(key, default)
    return getattr(data, key, default)


def _require_event(db: Session, event_id: str) -> Event:
    event = db.get(Event, event_id)
    if event is None:
        raise EventNotFound(event_id)
    return event


def _guard(attendee: Attendee, action: LifecycleAction) -> None:
    allowed = TRANSITIONS[action]
    if allowed is not None and attendee.status not in allowed:
        raise InvalidTransition(action.value.replace("_", " "), attendee.status.value)


def _guard_no_pending_request(attendee: Attendee, action: LifecycleAction) -> None:
    if attendee.has_pending_request():
        raise InvalidTransition(action.value.replace("_", " "), attendee.status.value)


def _cpf_taken(db: Session, event_id: str, cpf: str, exclude_id: Optional[str] = None) -> bool:
    query = db.query(Attendee.attendee_id).filter(Attendee.event_id == event_id, Attendee.cpf == cpf)
    if exclude_id:
        query = query.filter(Attendee.attendee_id != exclude_id)
    return query.first() is not None


def _clear_proposals(attendee: Attendee) -> None:
    attendee.substitution_data = None
    attendee.sector_change_data = None
    attendee.removal_reason = None


def _drop_wristbands_outside(attendee: Attendee, sector_ids: list[str]) -> None:
    for assignment in list(attendee.wristband_assignments):
        if assignment.sector_id not in sector_ids:
            attendee.wristband_assignments.remove(assignment)


def _record(
    db: Session,
    attendee: Attendee,
    action: LifecycleAction,
    ctx: OperatorContext,
    from_status: Optional[AttendeeStatus],
    details: Optional[dict[str, Any]] = None,
) -> None:
    db.add(StatusChange(
        event_id=attendee.event_id,
        attendee_id=attendee.attendee_id,
        action=action,
        actor=ctx.actor,
        from_status=from_status,
        to_status=attendee.status,
        details=details,
    ))


def _commit(db: Session, attendee: Attendee) -> Attendee:
    db.commit()
    db.refresh(attendee)
    hub.publish(db, attendee.event_id)
    return attendee


# ── Queries ────────────────────────────────────────────────────────
def get_attendee(db: Session, event_id: str, attendee_id: str) -> Attendee:
    attendee = db.get(Attendee, attendee_id)
    if attendee is None or attendee.event_id != event_id:
        raise AttendeeNotFound(attendee_id)
    return attendee


def list_attendees(
    db: Session,
    event_id: str,
    status: Optional[AttendeeStatus] = None,
    search: Optional[str] = None,
    supplier_id: Optional[str] = None,
) -> list[Attendee]:
    """Attendees of an event; *search* matches name, CPF or a wristband code."""
    _require_event(db, event_id)
    query = db.query(Attendee).filter(Attendee.event_id == event_id)
    if status:
        query = query.filter(Attendee.status == status)
    if supplier_id:
        query = query.filter(Attendee.supplier_id == supplier_id)
    attendees = query.order_by(Attendee.name).all()

    term = _fold((search or "").strip())
    if not term:
        return attendees
    digits = _CPF_STRIP_RE.sub("", term)
    return [
        a for a in attendees
        if term in _fold(a.name)
        or (digits and digits in a.cpf)
        or any(term in _fold(code) for code in a.wristbands.values())
    ]


def search_by_cpf(db: Session, cpf: str) -> list[Attendee]:
    """Find a person across every event."""
    cpf = normalize_cpf(cpf)
    return db.query(Attendee).filter(Attendee.cpf == cpf).order_by(Attendee.created_at).all()


# ── Registration ───────────────────────────────────────────────────
def _supplier_sectors(
    supplier: Supplier, requested: list[str], sub_company: Optional[str]
) -> tuple[list[str], Optional[str]]:
    """Sectors and sub-company an attendee registered through *supplier* gets."""
    if supplier.sub_companies:
        entry = supplier.sub_company((sub_company or "").strip())
        if entry is None:
            raise ValidationError("sub_company", f"choose one of the sub-companies of '{supplier.name}'")
        return [entry["sector_id"]], entry["name"]

    permitted = set(supplier.sector_ids or [])
    for sector_id in requested:
        if sector_id not in permitted:
            raise ValidationError("sector_ids", f"sector {sector_id} is not permitted for '{supplier.name}'")
    return list(requested), (sub_company or "").strip() or None


def register(
    db: Session,
    event_id: str,
    data: Any,
    ctx: OperatorContext,
    supplier_id: Optional[str] = None,
    requires_approval: bool = False,
    require_photo: bool = True,
) -> Attendee:
    """Register a new attendee as PENDING (or PENDING_APPROVAL).

    *data* is an ``AttendeeCreate`` or a dict with ``name``, ``cpf``,
    ``photo``, ``sector_ids`` and optionally ``sub_company``.  The photo is
    stored first and the attendee keeps only its URL.
    """
    cpf = normalize_cpf(_get(data, "cpf"))
    name = _clean_name(_get(data, "name"))
    photo = _get(data, "photo")
    if require_photo and not photo:
        raise ValidationError("photo", "a photo is required")

    _require_event(db, event_id)
    requested = list(_get(data, "sector_ids") or [])
    sub_company = _get(data, "sub_company")

    supplier = None
    if supplier_id:
        supplier = db.get(Supplier, supplier_id)
        if supplier is None or supplier.event_id != event_id:
            raise SupplierNotFound(supplier_id)
        if not supplier.active:
            raise SupplierInactive(supplier.name)
        requested, sub_company = _supplier_sectors(supplier, requested, sub_company)
    else:
        sub_company = (sub_company or "").strip() or None

    sector_ids = require_sectors(db, event_id, requested)

    if supplier is not None:
        if count_registrations(db, supplier.supplier_id) + 1 > supplier.registration_limit:
            raise CapacityExceeded(supplier.name, supplier.registration_limit)

    if _cpf_taken(db, event_id, cpf):
        raise DuplicateCpf(cpf)

    photo_url = photo_storage.store_photo(photo, cpf) if photo else None

    attendee = Attendee(
        event_id=event_id,
        name=name,
        cpf=cpf,
        photo=photo_url,
        sector_ids=sector_ids,
        sub_company=sub_company,
        supplier_id=supplier_id,
        status=S.pending_approval if requires_approval else S.pending,
    )
    db.add(attendee)
    try:
        db.flush()
        _record(db, attendee, A.register, ctx, None, {"supplier_id": supplier_id})
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateCpf(cpf)

    db.refresh(attendee)
    logger.info(
        "Registered attendee %s in event %s (supplier=%s, status=%s)",
        attendee.attendee_id, event_id, supplier_id, attendee.status.value,
    )
    hub.publish(db, event_id)
    return attendee


def import_rows(
    db: Session,
    event_id: str,
    rows: list[Any],
    ctx: OperatorContext,
    supplier_id: Optional[str] = None,
) -> dict[str, Any]:
    """Register parsed spreadsheet rows ``{name, cpf, sector}`` one by one.

    Rows are independent: a bad row is reported with its 1-based number and
    the others still go in.  ``sector`` may be a sector id or its label.
    """
    _require_event(db, event_id)
    sectors = db.query(Sector).filter(Sector.event_id == event_id).all()
    by_id = {s.sector_id: s.sector_id for s in sectors}
    by_label = {_fold(s.label.strip()): s.sector_id for s in sectors}

    success_count = 0
    errors = []
    for index, row in enumerate(rows, start=1):
        sector_ref = (_get(row, "sector") or "").strip()
        sector_id = by_id.get(sector_ref) or by_label.get(_fold(sector_ref))
        if not sector_id:
            errors.append({"row": index, "message": f"Unknown sector '{sector_ref}'"})
            continue
        try:
            register(
                db,
                event_id,
                {"name": _get(row, "name"), "cpf": _get(row, "cpf"), "sector_ids": [sector_id]},
                ctx,
                supplier_id=supplier_id,
                require_photo=False,
            )
        except GuestListError as e:
            errors.append({"row": index, "message": e.message})
            continue
        success_count += 1

    logger.info("Imported %d/%d rows into event %s", success_count, len(rows), event_id)
    return {"success_count": success_count, "errors": errors}


# ── Check-in and wristbands ────────────────────────────────────────
def _clean_wristbands(
    attendee: Attendee, wristbands: Optional[dict[str, Optional[str]]], keep_blank: bool
) -> dict[str, Optional[str]]:
    """Validate sector keys; blank codes are dropped, or kept as None to clear."""
    cleaned: dict[str, Optional[str]] = {}
    for sector_id, code in (wristbands or {}).items():
        if sector_id not in (attendee.sector_ids or []):
            raise ValidationError("wristbands", f"sector {sector_id} is not assigned to this attendee")
        code = (code or "").strip()
        if len(code) > 100:
            raise ValidationError("wristbands", "wristband codes are at most 100 characters")
        if code:
            cleaned[sector_id] = code
        elif keep_blank:
            cleaned[sector_id] = None
    return cleaned


def _find_wristband_collisions(db: Session, attendee: Attendee, codes: dict[str, str]) -> dict[str, str]:
    """sector_id -> code for every requested code another attendee already holds."""
    if not codes:
        return {}
    taken = (
        db.query(WristbandAssignment.sector_id, WristbandAssignment.code)
        .filter(
            WristbandAssignment.event_id == attendee.event_id,
            WristbandAssignment.sector_id.in_(list(codes)),
            WristbandAssignment.attendee_id != attendee.attendee_id,
        )
        .all()
    )
    return {sector_id: code for sector_id, code in taken if codes.get(sector_id) == code}


def _apply_wristbands(attendee: Attendee, wristbands: dict[str, Optional[str]]) -> None:
    """Write only the sectors present in *wristbands*."""
    current = {w.sector_id: w for w in attendee.wristband_assignments}
    for sector_id, code in wristbands.items():
        assignment = current.get(sector_id)
        if code is None:
            if assignment is not None:
                attendee.wristband_assignments.remove(assignment)
        elif assignment is not None:
            if assignment.code != code:
                assignment.code = code
                assignment.assigned_at = _now()
        else:
            attendee.wristband_assignments.append(WristbandAssignment(
                event_id=attendee.event_id, sector_id=sector_id, code=code, assigned_at=_now(),
            ))


def _write_wristbands(db: Session, attendee: Attendee, wristbands: dict[str, Optional[str]]) -> None:
    codes = {s: c for s, c in wristbands.items() if c}
    collisions = _find_wristband_collisions(db, attendee, codes)
    if collisions:
        raise DuplicateWristband(collisions)
    _apply_wristbands(attendee, wristbands)


def _commit_wristbands(db: Session, attendee: Attendee, wristbands: dict[str, Optional[str]]) -> Attendee:
    """Commit; a concurrent holder of the same code surfaces as DuplicateWristband."""
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("Wristband race lost for attendee %s", attendee.attendee_id)
        raise DuplicateWristband({s: c for s, c in wristbands.items() if c})
    db.refresh(attendee)
    hub.publish(db, attendee.event_id)
    return attendee


def check_in(
    db: Session,
    event_id: str,
    attendee_id: str,
    wristbands_by_sector: Optional[dict[str, Optional[str]]],
    ctx: OperatorContext,
) -> Attendee:
    """PENDING -> CHECKED_IN, issuing the wristbands sent; all-or-nothing."""
    attendee = get_attendee(db, event_id, attendee_id)
    _guard(attendee, A.check_in)
    wristbands = _clean_wristbands(attendee, wristbands_by_sector, keep_blank=False)

    _write_wristbands(db, attendee, wristbands)
    previous = attendee.status
    attendee.status = S.checked_in
    attendee.checkin_time = _now()
    attendee.checked_in_by = ctx.actor
    _record(db, attendee, A.check_in, ctx, previous, {"wristbands": wristbands})
    _commit_wristbands(db, attendee, wristbands)
    logger.info("Checked in attendee %s (%d wristbands)", attendee_id, len(wristbands))
    return attendee


def update_wristbands(
    db: Session,
    event_id: str,
    attendee_id: str,
    wristbands_by_sector: dict[str, Optional[str]],
    ctx: OperatorContext,
) -> Attendee:
    """Reissue or clear wristbands; a blank code removes that sector's band."""
    attendee = get_attendee(db, event_id, attendee_id)
    _guard(attendee, A.update_wristbands)
    wristbands = _clean_wristbands(attendee, wristbands_by_sector, keep_blank=True)

    _write_wristbands(db, attendee, wristbands)
    _record(db, attendee, A.update_wristbands, ctx, attendee.status, {"wristbands": wristbands})
    _commit_wristbands(db, attendee, wristbands)
    logger.info("Updated wristbands of attendee %s: %s", attendee_id, sorted(wristbands))
    return attendee


def revert_check_in(db: Session, event_id: str, attendee_id: str, ctx: OperatorContext) -> Attendee:
    """CHECKED_IN -> PENDING.  Issued wristbands are kept; clear them with update_wristbands."""
    attendee = get_attendee(db, event_id, attendee_id)
    _guard(attendee, A.revert_check_in)

    previous = attendee.status
    attendee.status = S.pending
    attendee.checkin_time = None
    attendee.checked_in_by = None
    _record(db, attendee, A.revert_check_in, ctx, previous)
    _commit(db, attendee)
    logger.info("Reverted check-in of attendee %s", attendee_id)
    return attendee


def check_out(db: Session, event_id: str, attendee_id: str, ctx: OperatorContext) -> Attendee:
    attendee = get_attendee(db, event_id, attendee_id)
    _guard(attendee, A.check_out)

    previous = attendee.status
    attendee.status = S.checked_out
    attendee.checkout_time = _now()
    attendee.checked_out_by = ctx.actor
    _record(db, attendee, A.check_out, ctx, previous)
    _commit(db, attendee)
    logger.info("Checked out attendee %s", attendee_id)
    return attendee


# ── Substitution ───────────────────────────────────────────────────
def _permitted_sectors(
    db: Session, attendee: Attendee, sector_ids: list[str], field: str = "sector_ids"
) -> list[str]:
    """Sectors an attendee registered through a supplier may be moved to.

    A supplier with sub-companies is limited to the sub-company sectors.
    """
    sector_ids = require_sectors(db, attendee.event_id, sector_ids, field=field)
    supplier = attendee.supplier
    if supplier is None:
        return sector_ids
    if supplier.sub_companies:
        permitted = {entry.get("sector_id") for entry in supplier.sub_companies}
    else:
        permitted = set(supplier.sector_ids or [])
    for sector_id in sector_ids:
        if sector_id not in permitted:
            raise ValidationError(field, f"sector {sector_id} is not permitted for '{supplier.name}'")
    return sector_ids


def request_substitution(
    db: Session, event_id: str, attendee_id: str, new_person: Any, ctx: OperatorContext
) -> Attendee:
    """Propose a replacement person; the attendee's own data is untouched."""
    attendee = get_attendee(db, event_id, attendee_id)
    _guard(attendee, A.request_substitution)
    _guard_no_pending_request(attendee, A.request_substitution)

    name = _clean_name(_get(new_person, "name"))
    cpf = normalize_cpf(_get(new_person, "cpf"))
    photo = _get(new_person, "photo")
    if not photo:
        raise ValidationError("photo", "a photo of the replacement is required")
    sector_ids = _get(new_person, "sector_ids")
    if sector_ids:
        sector_ids = _permitted_sectors(db, attendee, list(sector_ids))
    if _cpf_taken(db, event_id, cpf, exclude_id=attendee.attendee_id):
        raise DuplicateCpf(cpf)

    proposal = SubstitutionData(
        name=name,
        cpf=cpf,
        photo=photo_storage.store_photo(photo, cpf),
        sector_ids=sector_ids or None,
    )
    previous = attendee.status
    attendee.substitution_data = proposal.model_dump()
    attendee.status = S.substitution_request
    _record(db, attendee, A.request_substitution, ctx, previous, {"name": name, "cpf": cpf})
    _commit(db, attendee)
    logger.info("Substitution requested for attendee %s by %s", attendee_id, ctx.actor)
    return attendee


def _parse_substitution(db: Session, attendee: Attendee) -> SubstitutionData:
    """Typed, fully validated view of the stored proposal."""
    try:
        proposal = SubstitutionData.model_validate(attendee.substitution_data)
    except PydanticValidationError as e:
        raise InvalidSubstitutionData(f"{e.error_count()} malformed field(s)")

    name = proposal.name.strip()
    if not name:
        raise InvalidSubstitutionData("name is empty")
    try:
        cpf = normalize_cpf(proposal.cpf)
    except ValidationError as e:
        raise InvalidSubstitutionData(f"cpf {e.problem}")

    sector_ids = None
    if proposal.sector_ids:
        try:
            sector_ids = require_sectors(db, attendee.event_id, proposal.sector_ids)
        except SectorNotFound as e:
            raise InvalidSubstitutionData(f"sector {e.entity_id} no longer exists")
    return SubstitutionData(name=name, cpf=cpf, photo=proposal.photo, sector_ids=sector_ids)


def approve_substitution(db: Session, event_id: str, attendee_id: str, ctx: OperatorContext) -> Attendee:
    """Replace the attendee's identity with the approved proposal.

    The replacement starts clean: wristbands of the replaced person are
    dropped and the check-in fields reset.
    """
    attendee = get_attendee(db, event_id, attendee_id)
    if not attendee.substitution_data:
        raise MissingSubstitutionData(attendee_id)
    _guard(attendee, A.approve_substitution)

    proposal = _parse_substitution(db, attendee)
    if _cpf_taken(db, event_id, proposal.cpf, exclude_id=attendee.attendee_id):
        raise DuplicateCpf(proposal.cpf)
    photo = proposal.photo
    if photo_storage.is_raw_payload(photo):
        photo = photo_storage.store_photo(photo, proposal.cpf)

    previous = attendee.status
    replaced = {"name": attendee.name, "cpf": attendee.cpf}
    attendee.name = proposal.name
    attendee.cpf = proposal.cpf
    attendee.photo = photo
    if proposal.sector_ids:
        attendee.sector_ids = proposal.sector_ids
    attendee.wristband_assignments.clear()
    attendee.checkin_time = None
    attendee.checked_in_by = None
    attendee.substitution_data = None
    attendee.status = S.pending
    _record(db, attendee, A.approve_substitution, ctx, previous, {"replaced": replaced})

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateCpf(proposal.cpf)
    db.refresh(attendee)
    hub.publish(db, event_id)
    logger.info("Approved substitution for attendee %s", attendee_id)
    return attendee


def reject_substitution(db: Session, event_id: str, attendee_id: str, ctx: OperatorContext) -> Attendee:
    attendee = get_attendee(db, event_id, attendee_id)
    if not attendee.substitution_data and attendee.status != S.substitution_request:
        raise MissingSubstitutionData(attendee_id)

    previous = attendee.status
    attendee.substitution_data = None
    attendee.status = S.pending
    _record(db, attendee, A.reject_substitution, ctx, previous)
    _commit(db, attendee)
    logger.info("Rejected substitution for attendee %s", attendee_id)
    return attendee


# ── Sector change ──────────────────────────────────────────────────
def request_sector_change(
    db: Session,
    event_id: str,
    attendee_id: str,
    sector_id: str,
    justification: str,
    ctx: OperatorContext,
) -> Attendee:
    attendee = get_attendee(db, event_id, attendee_id)
    _guard(attendee, A.request_sector_change)
    _guard_no_pending_request(attendee, A.request_sector_change)
    sector_id = _permitted_sectors(db, attendee, [sector_id], field="sector_id")[0]

    previous = attendee.status
    attendee.sector_change_data = SectorChangeData(
        sector_id=sector_id, justification=(justification or "").strip()
    ).model_dump()
    attendee.status = S.sector_change_request
    _record(db, attendee, A.request_sector_change, ctx, previous, {"sector_id": sector_id})
    _commit(db, attendee)
    logger.info("Sector change to %s requested for attendee %s", sector_id, attendee_id)
    return attendee


def approve_sector_change(db: Session, event_id: str, attendee_id: str, ctx: OperatorContext) -> Attendee:
    """Move the attendee to the requested sector; bands for dropped sectors go."""
    attendee = get_attendee(db, event_id, attendee_id)
    if not attendee.sector_change_data:
        raise MissingSectorChangeData(attendee_id)
    _guard(attendee, A.approve_sector_change)

    try:
        proposal = SectorChangeData.model_validate(attendee.sector_change_data)
    except PydanticValidationError as e:
        raise InvalidSectorChangeData(f"{e.error_count()} malformed field(s)")
    try:
        sector_ids = require_sectors(db, event_id, [proposal.sector_id])
    except SectorNotFound:
        raise InvalidSectorChangeData(f"sector {proposal.sector_id} no longer exists")

    previous = attendee.status
    old_sectors = list(attendee.sector_ids or [])
    attendee.sector_ids = sector_ids
    _drop_wristbands_outside(attendee, sector_ids)
    attendee.sector_change_data = None
    attendee.status = S.pending
    _record(db, attendee, A.approve_sector_change, ctx, previous, {"from": old_sectors, "to": sector_ids})
    _commit(db, attendee)
    logger.info("Approved sector change for attendee %s", attendee_id)
    return attendee


def reject_sector_change(db: Session, event_id: str, attendee_id: str, ctx: OperatorContext) -> Attendee:
    attendee = get_attendee(db, event_id, attendee_id)
    if not attendee.sector_change_data and attendee.status != S.sector_change_request:
        raise MissingSectorChangeData(attendee_id)

    previous = attendee.status
    attendee.sector_change_data = None
    attendee.status = S.pending
    _record(db, attendee, A.reject_sector_change, ctx, previous)
    _commit(db, attendee)
    logger.info("Rejected sector change for attendee %s", attendee_id)
    return attendee


# ── Removal / approval of supplier proposals ───────────────────────
def request_removal(
    db: Session, event_id: str, attendee_id: str, reason: str, ctx: OperatorContext
) -> Attendee:
    attendee = get_attendee(db, event_id, attendee_id)
    _guard(attendee, A.request_removal)
    _guard_no_pending_request(attendee, A.request_removal)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason", "a reason is required")

    previous = attendee.status
    attendee.removal_reason = reason
    attendee.status = S.pending_approval
    _record(db, attendee, A.request_removal, ctx, previous, {"reason": reason})
    _commit(db, attendee)
    logger.info("Removal requested for attendee %s by %s", attendee_id, ctx.actor)
    return attendee


def approve_pending(db: Session, event_id: str, attendee_id: str, ctx: OperatorContext) -> Attendee:
    """Accept a supplier proposal: a removal cancels, a new registration goes live."""
    attendee = get_attendee(db, event_id, attendee_id)
    _guard(attendee, A.approve_pending)

    previous = attendee.status
    removal = attendee.removal_reason
    attendee.removal_reason = None
    attendee.status = S.cancelled if removal else S.pending
    _record(db, attendee, A.approve_pending, ctx, previous, {"removal_reason": removal} if removal else None)
    _commit(db, attendee)
    logger.info("Approved pending %s for attendee %s", "removal" if removal else "registration", attendee_id)
    return attendee


def reject_pending(db: Session, event_id: str, attendee_id: str, ctx: OperatorContext) -> Attendee:
    """Decline a supplier proposal: a removal is dropped, a new registration is rejected."""
    attendee = get_attendee(db, event_id, attendee_id)
    _guard(attendee, A.reject_pending)

    previous = attendee.status
    removal = attendee.removal_reason
    attendee.removal_reason = None
    attendee.status = S.pending if removal else S.rejected
    _record(db, attendee, A.reject_pending, ctx, previous)
    _commit(db, attendee)
    logger.info("Rejected pending %s for attendee %s", "removal" if removal else "registration", attendee_id)
    return attendee


# ── Organizer overrides ────────────────────────────────────────────
def block(
    db: Session, event_id: str, attendee_id: str, ctx: OperatorContext, reason: Optional[str] = None
) -> Attendee:
    attendee = get_attendee(db, event_id, attendee_id)
    _guard(attendee, A.block)

    previous = attendee.status
    _clear_proposals(attendee)
    attendee.block_reason = (reason or "").strip() or None
    attendee.status = S.blocked
    _record(db, attendee, A.block, ctx, previous, {"reason": attendee.block_reason})
    _commit(db, attendee)
    logger.info("Blocked attendee %s", attendee_id)
    return attendee


def set_status(
    db: Session, event_id: str, attendee_id: str, status: AttendeeStatus, ctx: OperatorContext
) -> Attendee:
    """Direct status set (reactivate, cancel, open a substitution slot, unblock).

    Statuses that carry data of their own are only reachable through the
    operation that produces that data.
    """
    attendee = get_attendee(db, event_id, attendee_id)
    status = AttendeeStatus(status)
    if status in GUARDED_STATUSES:
        raise InvalidTransition(f"set status to {status.value} for", attendee.status.value)

    previous = attendee.status
    _clear_proposals(attendee)
    if status != S.blocked:
        attendee.block_reason = None
    if status == S.pending:
        attendee.checkin_time = None
        attendee.checked_in_by = None
    attendee.status = status
    _record(db, attendee, A.set_status, ctx, previous)
    _commit(db, attendee)
    logger.info("Set status of attendee %s: %s -> %s", attendee_id, previous.value, status.value)
    return attendee


def mark_missed(db: Session, event_id: str, ctx: OperatorContext) -> int:
    """Close an event's door list: every PENDING attendee becomes MISSED."""
    _require_event(db, event_id)
    pending = db.query(Attendee).filter(Attendee.event_id == event_id, Attendee.status == S.pending).all()
    for attendee in pending:
        attendee.status = S.missed
        _record(db, attendee, A.mark_missed, ctx, S.pending)
    db.commit()
    logger.info("Marked %d attendees of event %s as missed", len(pending), event_id)
    hub.publish(db, event_id)
    return len(pending)


def bulk_reassign_sectors(
    db: Session,
    event_id: str,
    attendee_ids: list[str],
    sector_ids: list[str],
    ctx: OperatorContext,
) -> list[Attendee]:
    """Overwrite the sectors of a batch of attendees in one transaction."""
    _require_event(db, event_id)
    sector_ids = require_sectors(db, event_id, sector_ids)
    attendees = [get_attendee(db, event_id, attendee_id) for attendee_id in dict.fromkeys(attendee_ids)]
    if not attendees:
        raise ValidationError("attendee_ids", "at least one attendee is required")

    for attendee in attendees:
        old_sectors = list(attendee.sector_ids or [])
        attendee.sector_ids = list(sector_ids)
        _drop_wristbands_outside(attendee, sector_ids)
        _record(db, attendee, A.reassign_sectors, ctx, attendee.status, {"from": old_sectors, "to": sector_ids})
    db.commit()
    for attendee in attendees:
        db.refresh(attendee)
    logger.info("Reassigned %d attendees of event %s to %s", len(attendees), event_id, sector_ids)
    hub.publish(db, event_id)
    return attendees


def update_details(
    db: Session, event_id: str, attendee_id: str, updates: dict[str, Any], ctx: OperatorContext
) -> Attendee:
    """Edit name, CPF, sub-company or photo of an attendee."""
    attendee = get_attendee(db, event_id, attendee_id)
    _guard(attendee, A.update_details)
    event = attendee.event

    changes: dict[str, Any] = {}
    if updates.get("name") is not None:
        changes["name"] = _clean_name(updates["name"])
    if updates.get("cpf") is not None:
        cpf = normalize_cpf(updates["cpf"])
        if cpf != attendee.cpf and _cpf_taken(db, event_id, cpf, exclude_id=attendee.attendee_id):
            raise DuplicateCpf(cpf)
        changes["cpf"] = cpf
    if updates.get("sub_company") is not None:
        supplier = attendee.supplier
        if supplier is not None and supplier.sub_companies:
            entry = supplier.sub_company(updates["sub_company"].strip())
            if entry is None:
                raise ValidationError("sub_company", f"choose one of the sub-companies of '{supplier.name}'")
            changes["sub_company"] = entry["name"]
            changes["sector_ids"] = [entry["sector_id"]]
        else:
            changes["sub_company"] = updates["sub_company"].strip() or None
    if updates.get("photo"):
        if attendee.photo and not event.allow_photo_change:
            raise ValidationError("photo", "photo changes are disabled for this event")
        changes["photo"] = photo_storage.store_photo(updates["photo"], changes.get("cpf", attendee.cpf))

    for field, value in changes.items():
        setattr(attendee, field, value)
    if "sector_ids" in changes:
        _drop_wristbands_outside(attendee, changes["sector_ids"])
    _record(db, attendee, A.update_details, ctx, attendee.status, {"fields": sorted(changes)})

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateCpf(changes.get("cpf", attendee.cpf))
    db.refresh(attendee)
    hub.publish(db, event_id)
    logger.info("Updated attendee %s (%s)", attendee_id, ", ".join(sorted(changes)) or "no changes")
    return attendee


def delete(db: Session, event_id: str, attendee_id: str, ctx: OperatorContext) -> None:
    """Hard delete; wristband assignments go with the attendee."""
    attendee = get_attendee(db, event_id, attendee_id)
    _guard(attendee, A.delete)

    db.add(StatusChange(
        event_id=event_id,
        attendee_id=attendee_id,
        action=A.delete,
        actor=ctx.actor,
        from_status=attendee.status,
        to_status=None,
        details={"name": attendee.name, "cpf": attendee.cpf},
    ))
    db.delete(attendee)
    db.commit()
    logger.info("Deleted attendee %s from event %s", attendee_id, event_id)
    hub.publish(db, event_id)
