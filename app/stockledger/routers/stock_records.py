from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from app.stockledger.core.context import get_request_context
from app.stockledger.core.error_catalog import not_found
from app.stockledger.db.models import StockRecord
from app.stockledger.db.session import get_db
from app.stockledger.repos.stock_records import StockRecordQueryFilters, StockRecordRepository
from app.stockledger.schemas.common import page_fields
from app.stockledger.schemas.stock_records import (
    LocationAssignmentRequest,
    LocationChangeResponse,
    MoveBatchRequest,
    ReservationRequest,
    StockRecordListResponse,
    StockRecordResponse,
)
from app.stockledger.services.batches import expiry_info
from app.stockledger.services.ledger import MovementLedger
from app.stockledger.services.locations import LocationService


router = APIRouter()


def stock_record_response(record: StockRecord, batch=None) -> StockRecordResponse:
    batch = batch or record.batch
    expiry = expiry_info(batch.expiry_date, datetime.utcnow().date())
    return StockRecordResponse(
        id=record.id,
        batch_id=record.batch_id,
        batch_code=batch.batch_code,
        product_id=batch.product_id,
        expiry_date=batch.expiry_date,
        is_expired=expiry.is_expired,
        is_near_expiry=expiry.is_near_expiry,
        days_until_expiry=expiry.days_until_expiry,
        quantity_on_hand=record.quantity_on_hand,
        quantity_on_shelf=record.quantity_on_shelf,
        quantity_reserved=record.quantity_reserved,
        quantity_available=record.quantity_available,
        location_id=record.location_id,
        version=record.version,
        updated_at=record.updated_at,
    )


def _location_change_response(result) -> LocationChangeResponse:
    return LocationChangeResponse(
        stock_record=stock_record_response(result.stock_record),
        movement_id=result.movement.id,
        movement_number=result.movement.movement_number,
    )


@router.get("/api/stock-records", response_model=StockRecordListResponse)
def list_stock_records(
    db=Depends(get_db),
    product_id: str | None = None,
    batch_id: UUID | None = None,
    location_id: UUID | None = None,
    has_location: bool | None = None,
    in_stock: bool | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
):
    filters = StockRecordQueryFilters(
        product_id=product_id,
        batch_id=batch_id,
        location_id=location_id,
        has_location=has_location,
        in_stock=in_stock,
    )
    rows, total = StockRecordRepository(db).list_records(filters, page=page, page_size=page_size)
    return StockRecordListResponse(
        items=[stock_record_response(record, batch) for record, batch in rows],
        **page_fields(page, page_size, total),
    )


@router.get("/api/stock-records/{stock_record_id}", response_model=StockRecordResponse)
def get_stock_record(stock_record_id: UUID, db=Depends(get_db)):
    record = StockRecordRepository(db).get(stock_record_id)
    if record is None:
        raise not_found("StockRecord", stock_record_id)
    return stock_record_response(record)


@router.put("/api/stock-records/{stock_record_id}/location", response_model=LocationChangeResponse)
def set_stock_record_location(
    stock_record_id: UUID,
    payload: LocationAssignmentRequest,
    request: Request,
    db=Depends(get_db),
):
    service = LocationService(db, get_request_context(request))
    if payload.location_id is None:
        result = service.release_location(stock_record_id, reason=payload.reason)
    else:
        result = service.assign_location(stock_record_id, payload.location_id, reason=payload.reason)
    return _location_change_response(result)


@router.post("/api/stock-records/{stock_record_id}/move", response_model=LocationChangeResponse)
def move_stock_record(
    stock_record_id: UUID,
    payload: MoveBatchRequest,
    request: Request,
    db=Depends(get_db),
):
    result = LocationService(db, get_request_context(request)).move_batch(
        stock_record_id, payload.from_location_id, payload.to_location_id, reason=payload.reason
    )
    return _location_change_response(result)


@router.post("/api/stock-records/{stock_record_id}/reservations", response_model=StockRecordResponse)
def reserve_stock(
    stock_record_id: UUID,
    payload: ReservationRequest,
    request: Request,
    db=Depends(get_db),
):
    record = MovementLedger(db, get_request_context(request)).reserve(stock_record_id, payload.quantity)
    return stock_record_response(record)


@router.post("/api/stock-records/{stock_record_id}/reservations/release", response_model=StockRecordResponse)
def release_reserved_stock(
    stock_record_id: UUID,
    payload: ReservationRequest,
    request: Request,
    db=Depends(get_db),
):
    record = MovementLedger(db, get_request_context(request)).release_reservation(stock_record_id, payload.quantity)
    return stock_record_response(record)
