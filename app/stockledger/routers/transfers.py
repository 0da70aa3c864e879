from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.stockledger.core.context import get_request_context
from app.stockledger.core.error_catalog import ErrorCatalog
from app.stockledger.db.session import get_db
from app.stockledger.schemas.transfers import (
    BulkTransferRequest,
    BulkTransferResponse,
    PlanAllocation,
    PlanCandidate,
    TransferPlanRequest,
    TransferPlanResponse,
)
from app.stockledger.services.idempotency import (
    IDEMPOTENCY_RESULT_HEADER,
    IdempotencyService,
    extract_idempotency_key,
)
from app.stockledger.services.ledger import MovementMeta
from app.stockledger.services.transfer_planner import TransferItem, TransferPlanner, allocate_fefo


router = APIRouter()


def _plan_response(plan, allocations=None) -> TransferPlanResponse:
    eligible = [
        PlanCandidate(
            stock_record_id=item.candidate.stock_record_id,
            batch_id=item.candidate.batch_id,
            batch_code=item.candidate.batch_code,
            product_id=item.candidate.product_id,
            expiry_date=item.candidate.expiry_date,
            source_quantity=item.source_quantity,
            expiring_soon=item.expiring_soon,
            days_until_expiry=item.days_until_expiry,
        )
        for item in plan.eligible
    ]
    excluded = [
        PlanCandidate(
            stock_record_id=item.candidate.stock_record_id,
            batch_id=item.candidate.batch_id,
            batch_code=item.candidate.batch_code,
            product_id=item.candidate.product_id,
            expiry_date=item.candidate.expiry_date,
            source_quantity=item.candidate.source_quantity(plan.direction),
            excluded_reason=item.reason,
        )
        for item in plan.excluded
    ]
    return TransferPlanResponse(
        direction=plan.direction,
        eligible=eligible,
        excluded=excluded,
        allocations=(
            [
                PlanAllocation(
                    stock_record_id=allocation.stock_record_id,
                    batch_code=allocation.batch_code,
                    expiry_date=allocation.expiry_date,
                    quantity=allocation.quantity,
                )
                for allocation in allocations
            ]
            if allocations is not None
            else None
        ),
    )


@router.post("/api/bulk-transfers/plan", response_model=TransferPlanResponse)
def plan_bulk_transfer(payload: TransferPlanRequest, request: Request, db=Depends(get_db)):
    plan = TransferPlanner(db, get_request_context(request)).plan(
        payload.direction,
        stock_record_ids=payload.stock_record_ids,
        product_id=payload.product_id,
    )
    allocations = allocate_fefo(plan, payload.quantity) if payload.quantity is not None else None
    return _plan_response(plan, allocations)


@router.post("/api/bulk-transfers", response_model=BulkTransferResponse)
def create_bulk_transfer(payload: BulkTransferRequest, request: Request, db=Depends(get_db)):
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

    meta = payload.meta
    movement_meta = MovementMeta(
        reason=meta.reason if meta else None,
        notes=meta.notes if meta else None,
        movement_date=meta.movement_date if meta else None,
        performed_by=meta.performed_by if meta else None,
    )
    result = TransferPlanner(db, get_request_context(request)).bulk_transfer(
        [TransferItem(stock_record_id=item.stock_record_id, quantity=item.quantity) for item in payload.items],
        payload.direction,
        movement_meta,
    )
    response = BulkTransferResponse(
        direction=result.direction,
        succeeded=result.succeeded,
        failed=result.failed,
        summary=result.summary,
        results=result.results,
        failures=result.failures,
    )
    if context is not None:
        context.record_success(status_code=200, response_body=response.model_dump(mode="json"))
    return response
