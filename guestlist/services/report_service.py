"""Reports over one event and the sector validation point."""
import logging
from datetime import datetime
from typing import Any, Optional

import pytz
from sqlalchemy import func
from sqlalchemy.orm import Session

from guestlist.config import settings
from guestlist.errors import EventNotFound
from guestlist.models.access_record import AccessRecord
from guestlist.models.attendee import Attendee, AttendeeStatus, WristbandAssignment
from guestlist.models.event import Event
from guestlist.models.sector import Sector
from guestlist.models.status_change import LifecycleAction, StatusChange
from guestlist.security import OperatorContext
from guestlist.services.attendee_service import STATUS_LABELS
from guestlist.services.sector_service import get_sector

logger = logging.getLogger(__name__)

CHECKIN_ACTIONS = (LifecycleAction.check_in, LifecycleAction.revert_check_in, LifecycleAction.check_out)

# Denial reasons of the validation point
UNKNOWN_WRISTBAND = "unknown_wristband"
NOT_CHECKED_IN = "not_checked_in"
SECTOR_NOT_PERMITTED = "sector_not_permitted"
GRANTED = "granted"


def _require_event(db: Session, event_id: str) -> Event:
    event = db.get(Event, event_id)
    if event is None:
        raise EventNotFound(event_id)
    return event


def to_local(ts: Optional[datetime]) -> Optional[str]:
    """Format a stored timestamp in the display timezone."""
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = pytz.utc.localize(ts)
    tz = pytz.timezone(settings.DISPLAY_TIMEZONE)
    return ts.astimezone(tz).strftime("%d/%m/%Y %H:%M:%S")


def event_stats(db: Session, event_id: str) -> dict[str, Any]:
    _require_event(db, event_id)
    rows = (
        db.query(Attendee.status, func.count(Attendee.attendee_id))
        .filter(Attendee.event_id == event_id)
        .group_by(Attendee.status)
        .all()
    )
    counts = {status: count for status, count in rows}
    return {
        "event_id": event_id,
        "total": sum(counts.values()),
        "by_status": [
            {"status": status, "label": STATUS_LABELS[status], "count": counts.get(status, 0)}
            for status in AttendeeStatus
        ],
    }


def wristband_report(db: Session, event_id: str) -> list[dict[str, Any]]:
    """Per sector: attendees assigned, wristbands delivered and who holds them."""
    _require_event(db, event_id)
    sectors = db.query(Sector).filter(Sector.event_id == event_id).order_by(Sector.label).all()
    attendees = db.query(Attendee).filter(Attendee.event_id == event_id).all()
    names = {a.attendee_id: a.name for a in attendees}
    assignments = (
        db.query(WristbandAssignment)
        .filter(WristbandAssignment.event_id == event_id)
        .order_by(WristbandAssignment.code)
        .all()
    )

    report = []
    for sector in sectors:
        holders = [
            {"attendee_id": w.attendee_id, "name": names.get(w.attendee_id, ""), "code": w.code}
            for w in assignments if w.sector_id == sector.sector_id
        ]
        report.append({
            "sector_id": sector.sector_id,
            "label": sector.label,
            "total": sum(1 for a in attendees if sector.sector_id in (a.sector_ids or [])),
            "delivered": len(holders),
            "holders": holders,
        })
    return report


def checkin_log(db: Session, event_id: str, limit: int = 500) -> list[dict[str, Any]]:
    """Check-in, revert and check-out history, newest first."""
    _require_event(db, event_id)
    changes = (
        db.query(StatusChange)
        .filter(StatusChange.event_id == event_id, StatusChange.action.in_(CHECKIN_ACTIONS))
        .order_by(StatusChange.created_at.desc())
        .limit(limit)
        .all()
    )
    names = dict(db.query(Attendee.attendee_id, Attendee.name).filter(Attendee.event_id == event_id).all())
    return [
        {
            "attendee_id": change.attendee_id,
            "name": names.get(change.attendee_id),
            "action": change.action.value,
            "actor": change.actor,
            "from_status": change.from_status,
            "to_status": change.to_status,
            "timestamp": change.created_at,
            "local_time": to_local(change.created_at),
        }
        for change in changes
    ]


def record_access(
    db: Session, event_id: str, sector_id: str, wristband_code: str, ctx: OperatorContext
) -> dict[str, Any]:
    """Validate a wristband at a sector entrance; successful scans are stored."""
    _require_event(db, event_id)
    get_sector(db, event_id, sector_id)
    code = (wristband_code or "").strip()

    assignments = (
        db.query(WristbandAssignment)
        .filter(WristbandAssignment.event_id == event_id, WristbandAssignment.code == code)
        .all()
    ) if code else []
    if not assignments:
        logger.info("Access denied at sector %s: unknown wristband %r", sector_id, code)
        return {"granted": False, "reason": UNKNOWN_WRISTBAND}

    # A code may repeat across sectors; prefer the holder in this sector
    assignment = next((w for w in assignments if w.sector_id == sector_id), assignments[0])
    attendee = assignment.attendee
    result = {"attendee_id": attendee.attendee_id, "name": attendee.name}

    if attendee.status != AttendeeStatus.checked_in:
        logger.info("Access denied at sector %s: attendee %s is %s", sector_id, attendee.attendee_id, attendee.status.value)
        return {**result, "granted": False, "reason": NOT_CHECKED_IN}
    if sector_id not in (attendee.sector_ids or []):
        logger.info("Access denied at sector %s: attendee %s not permitted", sector_id, attendee.attendee_id)
        return {**result, "granted": False, "reason": SECTOR_NOT_PERMITTED}

    db.add(AccessRecord(
        event_id=event_id,
        attendee_id=attendee.attendee_id,
        sector_id=sector_id,
        wristband_code=code,
        scanned_by=ctx.actor,
    ))
    db.commit()
    logger.info("Access granted at sector %s for attendee %s", sector_id, attendee.attendee_id)
    return {**result, "granted": True, "reason": GRANTED}


def list_access_records(db: Session, event_id: str, sector_id: Optional[str] = None) -> list[AccessRecord]:
    _require_event(db, event_id)
    query = db.query(AccessRecord).filter(AccessRecord.event_id == event_id)
    if sector_id:
        query = query.filter(AccessRecord.sector_id == sector_id)
    return query.order_by(AccessRecord.scanned_at.desc()).all()
