"""Pydantic schemas for the organizer login."""
from pydantic import BaseModel


class LoginRequest(BaseModel):
    username: str = ""
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    username: str
