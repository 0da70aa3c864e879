from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field

from app.stockledger.schemas.common import PageFields
from app.stockledger.schemas.stock_records import StockRecordResponse

MovementType = Literal["in", "out", "adjustment", "transfer", "location", "audit"]

_MOVEMENT_CREATE_EXAMPLE = {
    "stock_record_id": "7f6d2f0e-2a8e-4c1c-9a55-0f5d7b7f2c11",
    "movement_type": "transfer",
    "quantity": 30,
    "reason": "Restock front shelf",
}


class MovementCreateRequest(BaseModel):
    stock_record_id: UUID = Field(validation_alias=AliasChoices("stock_record_id", "inventory_detail_id"))
    batch_id: UUID | None = None
    movement_type: MovementType
    quantity: int | float = 0
    reason: str | None = Field(default=None, max_length=255)
    notes: str | None = None
    movement_date: datetime | None = Field(default=None, validation_alias=AliasChoices("movement_date", "date"))
    performed_by: str | None = Field(default=None, max_length=100)
    purchase_order_id: str | None = Field(default=None, max_length=100)
    stock_side: str | None = None
    location_id: UUID | None = None

    model_config = {"json_schema_extra": {"example": _MOVEMENT_CREATE_EXAMPLE}}


class MovementUpdateRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=255)
    notes: str | None = None
    movement_date: datetime | None = Field(default=None, validation_alias=AliasChoices("movement_date", "date"))


class MovementResponse(BaseModel):
    id: UUID
    movement_number: str
    movement_type: str
    quantity: int
    stock_side: str | None
    stock_record_id: UUID
    batch_id: UUID
    product_id: str
    from_location_id: UUID | None
    to_location_id: UUID | None
    reason: str | None
    notes: str | None
    movement_date: datetime
    performed_by: str | None
    purchase_order_id: str | None
    on_hand_after: int
    on_shelf_after: int
    reverses_movement_id: UUID | None
    reversed_by_movement_id: UUID | None
    reversed_at: datetime | None
    trace_id: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class MovementResultResponse(BaseModel):
    movement: MovementResponse
    stock_record: StockRecordResponse


class MovementListResponse(PageFields):
    items: list[MovementResponse]
