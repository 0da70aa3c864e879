from datetime import date, datetime, timezone
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from app.stockledger.core.context import get_request_context
from app.stockledger.core.error_catalog import AppError, ErrorCatalog
from app.stockledger.db.session import get_db
from app.stockledger.repos.movements import MovementQueryFilters
from app.stockledger.routers.stock_records import stock_record_response
from app.stockledger.schemas.common import page_fields
from app.stockledger.schemas.movements import (
    MovementCreateRequest,
    MovementListResponse,
    MovementResponse,
    MovementResultResponse,
    MovementType,
    MovementUpdateRequest,
)
from app.stockledger.services.idempotency import (
    IDEMPOTENCY_RESULT_HEADER,
    IdempotencyService,
    extract_idempotency_key,
)
from app.stockledger.services.ledger import MovementLedger, MovementMeta


router = APIRouter()


def _movement_result_response(result) -> MovementResultResponse:
    return MovementResultResponse(
        movement=MovementResponse.model_validate(result.movement),
        stock_record=stock_record_response(result.stock_record),
    )


def _date_bound(value: str | None, field: str) -> date | None:
    """Parse a date filter; a bare ``YYYY-MM-DD`` stays a date so it covers the whole day."""
    if not value:
        return None
    try:
        if len(value) == 10:
            return date.fromisoformat(value)
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={"message": f"{field} must be an ISO date or datetime", field: value},
        ) from exc
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _meta_from_payload(payload: MovementCreateRequest) -> MovementMeta:
    return MovementMeta(
        reason=payload.reason,
        notes=payload.notes,
        movement_date=payload.movement_date,
        performed_by=payload.performed_by,
        purchase_order_id=payload.purchase_order_id,
        stock_side=payload.stock_side,
        location_id=payload.location_id,
        batch_id=payload.batch_id,
    )


@router.post("/api/movements", response_model=MovementResultResponse, status_code=201)
def create_movement(
    request: Request,
    payload: MovementCreateRequest,
    db=Depends(get_db),
):
    context = None
    idempotency_key = extract_idempotency_key(request.headers)
    if idempotency_key:
        request_hash = IdempotencyService.fingerprint(payload.model_dump(mode="json"))
        context, replay = IdempotencyService(db).start(
            endpoint=str(request.url.path),
            method=request.method,
            idempotency_key=idempotency_key,
            request_hash=request_hash,
        )
        if replay:
            return JSONResponse(
                status_code=replay.status_code,
                content=replay.response_body,
                headers={IDEMPOTENCY_RESULT_HEADER: ErrorCatalog.IDEMPOTENCY_REPLAY.code},
            )
        request.state.idempotency = context

    result = MovementLedger(db, get_request_context(request)).apply_movement(
        payload.stock_record_id,
        payload.movement_type,
        payload.quantity,
        _meta_from_payload(payload),
    )
    response = _movement_result_response(result)
    if context is not None:
        context.record_success(status_code=201, response_body=response.model_dump(mode="json"))
    return response


@router.get("/api/movements", response_model=MovementListResponse)
def list_movements(
    db=Depends(get_db),
    stock_record_id: UUID | None = None,
    batch_id: UUID | None = None,
    product_id: str | None = None,
    movement_type: MovementType | None = None,
    performed_by: str | None = None,
    purchase_order_id: str | None = None,
    search: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    inventory_detail: UUID | None = Query(None, alias="inventoryDetail"),
    batch_id_alias: UUID | None = Query(None, alias="batchId"),
    movement_type_alias: MovementType | None = Query(None, alias="movementType"),
    performed_by_alias: str | None = Query(None, alias="performedBy"),
    start_date_alias: str | None = Query(None, alias="startDate"),
    end_date_alias: str | None = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1),
    sort_dir: Literal["asc", "desc"] = "desc",
):
    filters = MovementQueryFilters(
        stock_record_id=stock_record_id or inventory_detail,
        batch_id=batch_id or batch_id_alias,
        product_id=product_id,
        movement_type=movement_type or movement_type_alias,
        performed_by=performed_by or performed_by_alias,
        purchase_order_id=purchase_order_id,
        start_date=_date_bound(start_date or start_date_alias, "start_date"),
        end_date=_date_bound(end_date or end_date_alias, "end_date"),
        search=search,
    )
    ledger = MovementLedger(db)
    rows, total = ledger.list_movements(filters, page=page, page_size=page_size, sort_dir=sort_dir)
    effective_page_size = ledger.page_size(page_size)
    return MovementListResponse(
        items=[MovementResponse.model_validate(row) for row in rows],
        **page_fields(page, effective_page_size, total),
    )


@router.get("/api/movements/{movement_id}", response_model=MovementResponse)
def get_movement(movement_id: UUID, db=Depends(get_db)):
    return MovementResponse.model_validate(MovementLedger(db).get_movement(movement_id))


@router.patch("/api/movements/{movement_id}", response_model=MovementResponse)
def update_movement(
    movement_id: UUID,
    payload: MovementUpdateRequest,
    request: Request,
    db=Depends(get_db),
):
    movement = MovementLedger(db, get_request_context(request)).update_movement_metadata(
        movement_id, payload.model_dump(exclude_unset=True)
    )
    return MovementResponse.model_validate(movement)


@router.delete("/api/movements/{movement_id}", response_model=MovementResultResponse)
def reverse_movement(
    movement_id: UUID,
    request: Request,
    db=Depends(get_db),
    reason: str | None = None,
):
    result = MovementLedger(db, get_request_context(request)).reverse_movement(
        movement_id, MovementMeta(reason=reason)
    )
    return _movement_result_response(result)
