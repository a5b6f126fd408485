"""Supplier API routes, including link regeneration."""
import logging
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from guestlist.database import get_db
from guestlist.models.supplier import Supplier
from guestlist.schemas.supplier import (
    SupplierActiveUpdate,
    SupplierCreate,
    SupplierOut,
    SupplierUpdate,
    TokenOut,
    TokenRegenerateRequest,
)
from guestlist.services import supplier_service, token_service

logger = logging.getLogger(__name__)
router = APIRouter()


def _supplier_out(supplier: Supplier, count: int) -> SupplierOut:
    return SupplierOut.model_validate(supplier).model_copy(update={"registration_count": count})


@router.post("/", response_model=SupplierOut, status_code=status.HTTP_201_CREATED)
def add_supplier(event_id: str, payload: SupplierCreate, db: Session = Depends(get_db)):
    """Create a supplier; its admin and registration links are issued with it."""
    supplier = supplier_service.add_supplier(
        db,
        event_id,
        name=payload.name,
        sector_ids=payload.sector_ids,
        registration_limit=payload.registration_limit,
        sub_companies=[sc.model_dump() for sc in payload.sub_companies],
    )
    return _supplier_out(supplier, 0)


@router.get("/", response_model=list[SupplierOut])
def list_suppliers(event_id: str, db: Session = Depends(get_db)):
    suppliers = supplier_service.list_suppliers(db, event_id)
    counts = supplier_service.registration_counts(db, event_id)
    return [_supplier_out(s, counts.get(s.supplier_id, 0)) for s in suppliers]


@router.get("/{supplier_id}", response_model=SupplierOut)
def get_supplier(event_id: str, supplier_id: str, db: Session = Depends(get_db)):
    supplier = supplier_service.get_supplier(db, event_id, supplier_id)
    return _supplier_out(supplier, supplier_service.count_registrations(db, supplier_id))


@router.patch("/{supplier_id}", response_model=SupplierOut)
def update_supplier(event_id: str, supplier_id: str, payload: SupplierUpdate, db: Session = Depends(get_db)):
    """Partial update; lowering the limit below current usage is allowed."""
    supplier = supplier_service.update_supplier(db, event_id, supplier_id, payload.model_dump(exclude_unset=True))
    return _supplier_out(supplier, supplier_service.count_registrations(db, supplier_id))


@router.put("/{supplier_id}/active", response_model=SupplierOut)
def set_supplier_active(
    event_id: str, supplier_id: str, payload: SupplierActiveUpdate, db: Session = Depends(get_db)
):
    supplier = supplier_service.set_supplier_active(db, event_id, supplier_id, payload.active)
    return _supplier_out(supplier, supplier_service.count_registrations(db, supplier_id))


@router.delete("/{supplier_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_supplier(event_id: str, supplier_id: str, db: Session = Depends(get_db)):
    supplier_service.delete_supplier(db, event_id, supplier_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{supplier_id}/tokens/regenerate", response_model=TokenOut)
def regenerate_token(
    event_id: str, supplier_id: str, payload: TokenRegenerateRequest, db: Session = Depends(get_db)
):
    """Issue a new link for the purpose; the old one stops working immediately."""
    return token_service.regenerate_token(db, event_id, supplier_id, payload.purpose)


@router.get("/{supplier_id}/tokens", response_model=list[TokenOut])
def list_tokens(event_id: str, supplier_id: str, db: Session = Depends(get_db)):
    supplier_service.get_supplier(db, event_id, supplier_id)
    return token_service.list_tokens(db, supplier_id)
