"""Organizer access gate and operator context.

The application only has a shared organizer password.  It sits behind
``CredentialChecker`` so a real identity provider can replace it by overriding
the ``get_credential_checker`` dependency.  A successful login yields a signed
bearer token; every admin operation receives the decoded ``OperatorContext``
explicitly instead of reading a global "current user".
"""
import hmac
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from guestlist.config import settings
from guestlist.errors import AuthenticationFailed

logger = logging.getLogger(__name__)

ORGANIZER = "organizer"
SUPPLIER = "supplier"


@dataclass(frozen=True)
class OperatorContext:
    """Who is performing an operation; recorded in the lifecycle ledger."""

    username: str
    role: str = ORGANIZER
    supplier_id: Optional[str] = None

    @property
    def actor(self) -> str:
        return f"{self.role}:{self.username}"

    @classmethod
    def for_supplier(cls, supplier) -> "OperatorContext":
        return cls(username=supplier.name, role=SUPPLIER, supplier_id=supplier.supplier_id)


class CredentialChecker(ABC):
    """Pluggable credential verification."""

    @abstractmethod
    def verify(self, username: str, password: str) -> Optional[OperatorContext]:
        """Return the operator for valid credentials, None otherwise."""


class StaticPasswordChecker(CredentialChecker):
    """The shared static organizer password.

    This is an access gate, not authentication: everyone who knows the
    password is the same organizer.
    """

    def __init__(self, username: str, password: str):
        self._username = username
        self._password = password

    def verify(self, username: str, password: str) -> Optional[OperatorContext]:
        if not password:
            return None
        if not hmac.compare_digest(password.encode(), self._password.encode()):
            return None
        return OperatorContext(username=username or self._username)


def get_credential_checker() -> CredentialChecker:
    return StaticPasswordChecker(settings.ADMIN_USERNAME, settings.ADMIN_PASSWORD)


def create_access_token(ctx: OperatorContext, expires_delta: Optional[timedelta] = None) -> str:
    """Sign a session token for an authenticated operator."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {"sub": ctx.username, "role": ctx.role, "exp": expire}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> OperatorContext:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError as e:
        logger.info("Rejected session token: %s", e)
        raise AuthenticationFailed("Session expired or invalid, please log in again")

    username = payload.get("sub")
    if not username or payload.get("role") != ORGANIZER:
        raise AuthenticationFailed("Session expired or invalid, please log in again")
    return OperatorContext(username=username, role=ORGANIZER)


bearer_scheme = HTTPBearer(auto_error=False)


def get_operator(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> OperatorContext:
    """FastAPI dependency — the organizer behind the bearer token."""
    if credentials is None:
        raise AuthenticationFailed("Organizer login required")
    return decode_access_token(credentials.credentials)
