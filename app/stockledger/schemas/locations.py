from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from app.stockledger.schemas.common import PageFields


class LocationCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    max_capacity: int | None = Field(default=None, ge=1)
    is_active: bool = True
    notes: str | None = None


class LocationUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    max_capacity: int | None = Field(default=None, ge=1)
    notes: str | None = None


class LocationResponse(BaseModel):
    id: UUID
    location_code: str
    name: str
    max_capacity: int
    is_active: bool
    notes: str | None
    is_occupied: bool
    occupied_by: UUID | None
    occupied_quantity: int
    free_capacity: int
    version: int
    created_at: datetime
    updated_at: datetime


class LocationListResponse(PageFields):
    items: list[LocationResponse]
