from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field


class BulkTransferMeta(BaseModel):
    reason: str | None = Field(default=None, max_length=255)
    notes: str | None = None
    movement_date: datetime | None = Field(default=None, validation_alias=AliasChoices("movement_date", "date"))
    performed_by: str | None = Field(default=None, max_length=100)


class BulkTransferItem(BaseModel):
    stock_record_id: UUID = Field(
        validation_alias=AliasChoices("stock_record_id", "detail_inventory_id", "inventory_detail_id")
    )
    quantity: int | float


class BulkTransferRequest(BaseModel):
    direction: str
    items: list[BulkTransferItem]
    meta: BulkTransferMeta | None = None


class BulkTransferSummary(BaseModel):
    total: int
    succeeded: int
    failed: int


class BulkTransferItemResult(BaseModel):
    stock_record_id: str
    batch_code: str | None
    quantity: int
    movement_id: str
    movement_number: str
    quantity_on_hand: int
    quantity_on_shelf: int
    expiring_soon: bool
    days_until_expiry: int | None


class BulkTransferFailure(BaseModel):
    stock_record_id: str
    batch_code: str | None
    code: str
    message: str
    details: dict | None = None


class BulkTransferResponse(BaseModel):
    direction: str
    succeeded: int
    failed: int
    summary: BulkTransferSummary
    results: list[BulkTransferItemResult]
    failures: list[BulkTransferFailure]


class TransferPlanRequest(BaseModel):
    direction: str
    stock_record_ids: list[UUID] | None = None
    product_id: str | None = None
    quantity: int | None = Field(default=None, ge=1)


class PlanCandidate(BaseModel):
    stock_record_id: UUID
    batch_id: UUID
    batch_code: str
    product_id: str
    expiry_date: date | None
    source_quantity: int
    expiring_soon: bool = False
    days_until_expiry: int | None = None
    excluded_reason: str | None = None


class PlanAllocation(BaseModel):
    stock_record_id: UUID
    batch_code: str
    expiry_date: date | None
    quantity: int


class TransferPlanResponse(BaseModel):
    direction: str
    eligible: list[PlanCandidate]
    excluded: list[PlanCandidate]
    allocations: list[PlanAllocation] | None = None
