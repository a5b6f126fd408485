"""Capability-link registry.

Tokens stand in for authentication on supplier-facing links: whoever holds a
registration token may register guests for that supplier, whoever holds an
admin token may manage that supplier's roster.  Every token has a reverse
lookup row in ``access_tokens``; a link is valid exactly as long as its row
exists.
"""
import logging
import secrets
import string
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from guestlist.config import settings
from guestlist.errors import (
    EventNotFound,
    InvalidToken,
    SupplierInactive,
    SupplierNotFound,
    WrongPurpose,
)
from guestlist.models.access_token import AccessToken, TokenPurpose
from guestlist.models.event import Event
from guestlist.models.supplier import Supplier

logger = logging.getLogger(__name__)

TOKEN_ALPHABET = string.ascii_letters + string.digits
MIN_TOKEN_LENGTH = 20


@dataclass
class ResolvedLink:
    token: Optional[str]
    purpose: TokenPurpose
    event: Event
    supplier: Supplier


def generate_token(length: Optional[int] = None) -> str:
    """Random mixed-case alphanumeric token, never shorter than 20 characters."""
    length = max(MIN_TOKEN_LENGTH, length or settings.TOKEN_LENGTH)
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def _token_column(purpose: TokenPurpose) -> str:
    return "admin_token" if purpose == TokenPurpose.admin else "registration_token"


def issue_token(db: Session, supplier: Supplier, purpose: TokenPurpose) -> AccessToken:
    """Add a fresh token for *supplier* to the session (caller commits)."""
    token = generate_token()
    while db.get(AccessToken, token) is not None:
        token = generate_token()

    record = AccessToken(
        token=token,
        event_id=supplier.event_id,
        supplier_id=supplier.supplier_id,
        purpose=purpose,
    )
    db.add(record)
    setattr(supplier, _token_column(purpose), token)
    return record


def resolve_token(db: Session, token: str, expected_purpose: TokenPurpose) -> ResolvedLink:
    """Look a link up; each failure cause raises its own error."""
    record = db.get(AccessToken, token) if token else None
    if record is None:
        raise InvalidToken()
    if record.purpose != expected_purpose:
        raise WrongPurpose(expected_purpose.value, record.purpose.value)

    event = db.get(Event, record.event_id)
    if event is None:
        raise EventNotFound(record.event_id)
    supplier = db.get(Supplier, record.supplier_id)
    if supplier is None or supplier.event_id != event.event_id:
        raise SupplierNotFound(record.supplier_id)

    return ResolvedLink(token=token, purpose=record.purpose, event=event, supplier=supplier)


def resolve_supplier_link(db: Session, event_id: str, supplier_id: str) -> ResolvedLink:
    """The ``?eventId=&supplierId=`` registration form of a supplier link."""
    event = db.get(Event, event_id)
    if event is None:
        raise EventNotFound(event_id)
    supplier = db.get(Supplier, supplier_id)
    if supplier is None or supplier.event_id != event_id:
        raise SupplierNotFound(supplier_id)
    if not supplier.active:
        raise SupplierInactive(supplier.name)
    return ResolvedLink(token=None, purpose=TokenPurpose.registration, event=event, supplier=supplier)


def regenerate_token(db: Session, event_id: str, supplier_id: str, purpose: TokenPurpose) -> AccessToken:
    """Replace the supplier's token for *purpose*; the old link dies on commit."""
    supplier = db.get(Supplier, supplier_id)
    if supplier is None or supplier.event_id != event_id:
        raise SupplierNotFound(supplier_id)

    old_tokens = (
        db.query(AccessToken)
        .filter(AccessToken.supplier_id == supplier_id, AccessToken.purpose == purpose)
        .all()
    )
    for old in old_tokens:
        db.delete(old)

    record = issue_token(db, supplier, purpose)
    db.commit()
    db.refresh(record)
    logger.info(
        "Regenerated %s token for supplier %s (%d revoked)", purpose.value, supplier_id, len(old_tokens)
    )
    return record


def list_tokens(db: Session, supplier_id: str) -> list[AccessToken]:
    return db.query(AccessToken).filter(AccessToken.supplier_id == supplier_id).all()
