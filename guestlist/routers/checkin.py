"""Fast check-in by face matching."""
import logging
from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from guestlist.database import get_db
from guestlist.schemas.report import FastCheckinRequest, FastCheckinResult
from guestlist.security import OperatorContext, get_operator
from guestlist.services import matching_service
from guestlist.services.matching_service import MatchingOracle, get_oracle, scan_registry

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=FastCheckinResult)
def fast_checkin(
    event_id: str,
    payload: FastCheckinRequest,
    ctx: OperatorContext = Depends(get_operator),
    oracle: MatchingOracle = Depends(get_oracle),
    db: Session = Depends(get_db),
):
    """Match a live capture against PENDING attendees.

    With ``check_in`` set, a match is checked in with the wristbands sent.
    A 503 oracle_unavailable means the scan stopped and should be retried.
    """
    return matching_service.fast_checkin(
        db,
        event_id,
        payload.live_photo,
        ctx,
        oracle,
        check_in=payload.check_in,
        wristbands=payload.wristbands,
        scan_id=payload.scan_id,
    )


@router.delete("/{scan_id}")
def cancel_scan(event_id: str, scan_id: str, response: Response):
    """Stop a scan; no oracle call is made for it after this returns.

    A scan that has not reached the server yet answers 202 and starts cancelled.
    """
    running = scan_registry.cancel(scan_id)
    if not running:
        response.status_code = 202
    logger.info("Cancelled scan %s for event %s (running: %s)", scan_id, event_id, running)
    return {"scan_id": scan_id, "cancelled": True, "running": running}
