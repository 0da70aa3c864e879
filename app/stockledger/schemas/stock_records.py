from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field

from app.stockledger.schemas.common import PageFields


class StockRecordResponse(BaseModel):
    id: UUID
    batch_id: UUID
    batch_code: str
    product_id: str
    expiry_date: date | None
    is_expired: bool
    is_near_expiry: bool
    days_until_expiry: int | None
    quantity_on_hand: int
    quantity_on_shelf: int
    quantity_reserved: int
    quantity_available: int
    location_id: UUID | None
    version: int
    updated_at: datetime


class StockRecordListResponse(PageFields):
    items: list[StockRecordResponse]


class LocationAssignmentRequest(BaseModel):
    location_id: UUID | None
    reason: str | None = Field(default=None, max_length=255)


class MoveBatchRequest(BaseModel):
    from_location_id: UUID | None
    to_location_id: UUID
    reason: str | None = Field(default=None, max_length=255)


class ReservationRequest(BaseModel):
    quantity: int | float


class LocationChangeResponse(BaseModel):
    stock_record: StockRecordResponse
    movement_id: UUID
    movement_number: str
