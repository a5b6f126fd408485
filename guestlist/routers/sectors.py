"""Sector API routes."""
import logging
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from guestlist.database import get_db
from guestlist.schemas.sector import SectorCreate, SectorOut, SectorUpdate
from guestlist.services import sector_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=SectorOut, status_code=status.HTTP_201_CREATED)
def add_sector(event_id: str, payload: SectorCreate, db: Session = Depends(get_db)):
    return sector_service.add_sector(db, event_id, payload.label, payload.color)


@router.get("/", response_model=list[SectorOut])
def list_sectors(event_id: str, db: Session = Depends(get_db)):
    return sector_service.list_sectors(db, event_id)


@router.put("/{sector_id}", response_model=SectorOut)
def update_sector(event_id: str, sector_id: str, payload: SectorUpdate, db: Session = Depends(get_db)):
    return sector_service.update_sector(db, event_id, sector_id, payload.model_dump(exclude_unset=True))


@router.delete("/{sector_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_sector(event_id: str, sector_id: str, db: Session = Depends(get_db)):
    """Delete a sector nobody references (409 resource_in_use otherwise)."""
    sector_service.delete_sector(db, event_id, sector_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
