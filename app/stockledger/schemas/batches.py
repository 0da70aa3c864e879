from __future__ import annotations

from datetime import date, datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from app.stockledger.schemas.common import PageFields
from app.stockledger.schemas.stock_records import StockRecordResponse


class BatchCreateRequest(BaseModel):
    batch_code: str = Field(min_length=1, max_length=100)
    product_id: str = Field(min_length=1, max_length=100)
    expiry_date: date | None = None
    manufacturing_date: date | None = None
    quantity: int = Field(default=0, ge=0)
    notes: str | None = None
    receive_quantity: bool = True
    location_id: UUID | None = None
    purchase_order_id: str | None = Field(default=None, max_length=100)


class BatchUpdateRequest(BaseModel):
    status: Literal["active", "expired", "disposed"] | None = None
    notes: str | None = None


class BatchResponse(BaseModel):
    id: UUID
    batch_code: str
    product_id: str
    manufacturing_date: date | None
    expiry_date: date | None
    quantity: int
    status: str
    notes: str | None
    is_expired: bool
    is_near_expiry: bool
    days_until_expiry: int | None
    stock_record: StockRecordResponse | None
    created_at: datetime
    updated_at: datetime


class BatchListResponse(PageFields):
    items: list[BatchResponse]
