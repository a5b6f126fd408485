"""Event API routes, the per-event snapshot and its live stream."""
import asyncio
import logging
from fastapi import APIRouter, Depends, Query, Response, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session

from guestlist.database import get_db
from guestlist.errors import GuestListError
from guestlist.schemas.event import EventCreate, EventOut, EventUpdate, MarkMissedResult
from guestlist.schemas.report import EventSnapshot
from guestlist.security import OperatorContext, decode_access_token, get_operator
from guestlist.services import attendee_service, event_service
from guestlist.services.sync import build_snapshot, hub

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=EventOut, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(get_operator)])
def create_event(payload: EventCreate, db: Session = Depends(get_db)):
    """Create a new event; every module is enabled unless switched off."""
    return event_service.create_event(
        db=db,
        name=payload.name,
        modules=payload.modules.model_dump(),
        allow_photo_change=payload.allow_photo_change,
        allow_guest_uploads=payload.allow_guest_uploads,
    )


@router.get("/", response_model=list[EventOut], dependencies=[Depends(get_operator)])
def list_events(db: Session = Depends(get_db)):
    return event_service.list_events(db)


@router.get("/{event_id}", response_model=EventOut, dependencies=[Depends(get_operator)])
def get_event(event_id: str, db: Session = Depends(get_db)):
    return event_service.get_event(db, event_id)


@router.put("/{event_id}", response_model=EventOut, dependencies=[Depends(get_operator)])
def update_event(event_id: str, payload: EventUpdate, db: Session = Depends(get_db)):
    """Partial update of name, module switches and guest photo permissions."""
    updates = payload.model_dump(exclude_unset=True)
    return event_service.update_event(db, event_id, updates)


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(get_operator)])
def delete_event(event_id: str, db: Session = Depends(get_db)):
    """Delete an event and everything scoped to it."""
    event_service.delete_event(db, event_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{event_id}/mark-missed", response_model=MarkMissedResult)
def mark_missed(event_id: str, ctx: OperatorContext = Depends(get_operator), db: Session = Depends(get_db)):
    """Close the door list: every PENDING attendee becomes MISSED."""
    marked = attendee_service.mark_missed(db, event_id, ctx)
    return MarkMissedResult(event_id=event_id, marked=marked)


@router.get("/{event_id}/snapshot", response_model=EventSnapshot, dependencies=[Depends(get_operator)])
def get_snapshot(event_id: str, db: Session = Depends(get_db)):
    event_service.get_event(db, event_id)
    return build_snapshot(db, event_id)


@router.websocket("/{event_id}/stream")
async def stream_event(
    websocket: WebSocket,
    event_id: str,
    access_token: str = Query(""),
    db: Session = Depends(get_db),
):
    """Push the current snapshot, then a fresh one after every committed change."""
    try:
        decode_access_token(access_token)
        event_service.get_event(db, event_id)
    except GuestListError as e:
        logger.info("Rejected stream for event %s: %s", event_id, e)
        await websocket.close(code=1008)
        return

    await websocket.accept()
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    unsubscribe = hub.subscribe(event_id, lambda snapshot: loop.call_soon_threadsafe(queue.put_nowait, snapshot))

    async def pump():
        while True:
            await websocket.send_json(await queue.get())

    await websocket.send_json(build_snapshot(db, event_id))
    db.close()
    sender = asyncio.create_task(pump())
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Stream for event %s closed", event_id)
    finally:
        unsubscribe()
        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning("Stream for event %s stopped sending: %s", event_id, e)
