"""Pydantic schemas for Suppliers and their capability links."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from guestlist.models.access_token import TokenPurpose


class SubCompany(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    sector_id: str


class SupplierCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    sector_ids: list[str] = []
    registration_limit: int = Field(0, ge=0)
    sub_companies: list[SubCompany] = []


class SupplierUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    sector_ids: Optional[list[str]] = None
    registration_limit: Optional[int] = Field(None, ge=0)
    sub_companies: Optional[list[SubCompany]] = None
    active: Optional[bool] = None


class SupplierActiveUpdate(BaseModel):
    active: bool


class SupplierOut(BaseModel):
    supplier_id: str
    event_id: str
    name: str
    sector_ids: list[str]
    registration_limit: int
    sub_companies: list[SubCompany]
    active: bool
    admin_token: Optional[str] = None
    registration_token: Optional[str] = None
    registration_count: int = 0
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SupplierPublicOut(BaseModel):
    """What a guest opening a registration link may see — no tokens."""

    supplier_id: str
    name: str
    sector_ids: list[str]
    sub_companies: list[SubCompany]
    active: bool

    model_config = {"from_attributes": True}


class TokenRegenerateRequest(BaseModel):
    purpose: TokenPurpose


class TokenOut(BaseModel):
    token: str
    event_id: str
    supplier_id: str
    purpose: TokenPurpose
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
