"""Reports, the sector validation point and the cross-event CPF search."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from guestlist.database import get_db
from guestlist.models.event import Event
from guestlist.schemas.attendee import AttendeeSearchOut
from guestlist.schemas.report import (
    AccessCheckRequest,
    AccessCheckResult,
    AccessRecordOut,
    CheckinLogEntry,
    EventStats,
    SectorWristbandReport,
)
from guestlist.security import OperatorContext, get_operator
from guestlist.services import attendee_service, report_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/events/{event_id}/reports/stats", response_model=EventStats)
def event_stats(event_id: str, db: Session = Depends(get_db)):
    return report_service.event_stats(db, event_id)


@router.get("/events/{event_id}/reports/wristbands", response_model=list[SectorWristbandReport])
def wristband_report(event_id: str, db: Session = Depends(get_db)):
    """Delivered wristbands per sector."""
    return report_service.wristband_report(db, event_id)


@router.get("/events/{event_id}/reports/checkin-log", response_model=list[CheckinLogEntry])
def checkin_log(event_id: str, limit: int = Query(500, ge=1, le=5000), db: Session = Depends(get_db)):
    return report_service.checkin_log(db, event_id, limit=limit)


@router.get("/events/{event_id}/reports/access-log", response_model=list[AccessRecordOut])
def access_log(event_id: str, sector_id: Optional[str] = Query(None), db: Session = Depends(get_db)):
    return report_service.list_access_records(db, event_id, sector_id=sector_id)


@router.post("/events/{event_id}/access", response_model=AccessCheckResult)
def check_access(
    event_id: str,
    payload: AccessCheckRequest,
    ctx: OperatorContext = Depends(get_operator),
    db: Session = Depends(get_db),
):
    """Validate a wristband at a sector entrance."""
    return report_service.record_access(db, event_id, payload.sector_id, payload.wristband_code, ctx)


@router.get("/attendees/search", response_model=list[AttendeeSearchOut])
def search_by_cpf(cpf: str = Query(...), db: Session = Depends(get_db)):
    """Find a person by CPF across all events."""
    attendees = attendee_service.search_by_cpf(db, cpf)
    names = dict(db.query(Event.event_id, Event.name).filter(
        Event.event_id.in_({a.event_id for a in attendees})
    ).all()) if attendees else {}
    return [
        AttendeeSearchOut.model_validate(a).model_copy(update={"event_name": names.get(a.event_id)})
        for a in attendees
    ]
