from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response

from app.stockledger.core.context import get_request_context
from app.stockledger.db.session import get_db
from app.stockledger.repos.batches import BatchQueryFilters
from app.stockledger.routers.stock_records import stock_record_response
from app.stockledger.schemas.batches import BatchCreateRequest, BatchListResponse, BatchResponse, BatchUpdateRequest
from app.stockledger.schemas.common import page_fields
from app.stockledger.services.batches import BatchService, NewBatch, expiry_info


router = APIRouter()


def _batch_response(batch, record) -> BatchResponse:
    expiry = expiry_info(batch.expiry_date, datetime.utcnow().date())
    return BatchResponse(
        id=batch.id,
        batch_code=batch.batch_code,
        product_id=batch.product_id,
        manufacturing_date=batch.manufacturing_date,
        expiry_date=batch.expiry_date,
        quantity=batch.quantity,
        status=batch.status,
        notes=batch.notes,
        is_expired=expiry.is_expired,
        is_near_expiry=expiry.is_near_expiry,
        days_until_expiry=expiry.days_until_expiry,
        stock_record=stock_record_response(record, batch) if record is not None else None,
        created_at=batch.created_at,
        updated_at=batch.updated_at,
    )


@router.post("/api/batches", response_model=BatchResponse, status_code=201)
def create_batch(payload: BatchCreateRequest, request: Request, db=Depends(get_db)):
    batch, record = BatchService(db, get_request_context(request)).create_batch(NewBatch(**payload.model_dump()))
    return _batch_response(batch, record)


@router.get("/api/batches", response_model=BatchListResponse)
def list_batches(
    db=Depends(get_db),
    product_id: str | None = None,
    status: str | None = None,
    search: str | None = None,
    expires_before: date | None = None,
    expires_after: date | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
):
    filters = BatchQueryFilters(
        product_id=product_id,
        status=status,
        search=search,
        expires_before=expires_before,
        expires_after=expires_after,
    )
    rows, total = BatchService(db).list_batches(filters, page=page, page_size=page_size)
    return BatchListResponse(
        items=[_batch_response(batch, record) for batch, record in rows],
        **page_fields(page, page_size, total),
    )


@router.get("/api/batches/{batch_id}", response_model=BatchResponse)
def get_batch(batch_id: UUID, db=Depends(get_db)):
    batch, record = BatchService(db).get_batch(batch_id)
    return _batch_response(batch, record)


@router.patch("/api/batches/{batch_id}", response_model=BatchResponse)
def update_batch(batch_id: UUID, payload: BatchUpdateRequest, request: Request, db=Depends(get_db)):
    service = BatchService(db, get_request_context(request))
    service.update_batch(batch_id, payload.model_dump(exclude_unset=True))
    batch, record = service.get_batch(batch_id)
    return _batch_response(batch, record)


@router.delete("/api/batches/{batch_id}", status_code=204)
def delete_batch(batch_id: UUID, request: Request, db=Depends(get_db)):
    BatchService(db, get_request_context(request)).delete_batch(batch_id)
    return Response(status_code=204)
