"""Organizer login — exchanges the shared password for a session token."""
import logging
from fastapi import APIRouter, Depends

from guestlist.errors import AuthenticationFailed
from guestlist.schemas.auth import LoginRequest, TokenResponse
from guestlist.security import CredentialChecker, create_access_token, get_credential_checker

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, checker: CredentialChecker = Depends(get_credential_checker)):
    """Verify organizer credentials and return a bearer token."""
    ctx = checker.verify(payload.username, payload.password)
    if ctx is None:
        logger.warning("Failed organizer login for '%s'", payload.username)
        raise AuthenticationFailed()
    logger.info("Organizer '%s' logged in", ctx.username)
    return TokenResponse(access_token=create_access_token(ctx), username=ctx.username)
