from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime

from app.stockledger.core.config import settings
from app.stockledger.core.context import RequestContext
from app.stockledger.core.error_catalog import AppError, ErrorCatalog, not_found
from app.stockledger.core.logging import log_json
from app.stockledger.core.metrics import metrics
from app.stockledger.db.models import Batch, StockRecord
from app.stockledger.db.transaction import run_in_transaction
from app.stockledger.repos.batches import BatchQueryFilters, BatchRepository
from app.stockledger.repos.stock_records import StockRecordRepository
from app.stockledger.services.audit import AuditService
from app.stockledger.services.ledger import MovementLedger, MovementMeta

logger = logging.getLogger("stockledger.batches")

BATCH_STATUSES = ("active", "expired", "disposed")


@dataclass(frozen=True)
class ExpiryInfo:
    is_expired: bool
    days_until_expiry: int | None
    is_near_expiry: bool


def expiry_info(expiry_date: date | None, today: date, expiring_soon_days: int | None = None) -> ExpiryInfo:
    """Expired on the expiry day itself; "near" is 1..N days out."""
    if expiry_date is None:
        return ExpiryInfo(is_expired=False, days_until_expiry=None, is_near_expiry=False)
    window = settings.EXPIRING_SOON_DAYS if expiring_soon_days is None else expiring_soon_days
    days = (expiry_date - today).days
    return ExpiryInfo(is_expired=days <= 0, days_until_expiry=days, is_near_expiry=0 < days <= window)


@dataclass(frozen=True)
class NewBatch:
    batch_code: str
    product_id: str
    expiry_date: date | None = None
    manufacturing_date: date | None = None
    quantity: int = 0
    notes: str | None = None
    receive_quantity: bool = True
    location_id: object | None = None
    purchase_order_id: str | None = None


class BatchService:
    def __init__(self, db, ctx: RequestContext | None = None):
        self.db = db
        self.ctx = ctx
        self.repo = BatchRepository(db)
        self.records = StockRecordRepository(db)
        self.audit = AuditService(db)
        self.ledger = MovementLedger(db, ctx)

    def create_batch(self, payload: NewBatch) -> tuple[Batch, StockRecord]:
        """Register a batch with its stock record in one transaction.

        The received quantity goes through the ledger as an ``in`` movement
        and the optional slot as a ``location`` movement, so a failing
        assignment leaves nothing behind.
        """
        code = (payload.batch_code or "").strip().upper()
        if not code:
            raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": "batch_code is required"})
        if payload.quantity < 0:
            raise AppError(ErrorCatalog.INVALID_QUANTITY, details={"quantity": payload.quantity})
        if payload.manufacturing_date and payload.expiry_date and payload.expiry_date < payload.manufacturing_date:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "expiry_date cannot be before manufacturing_date"},
            )

        def _create() -> tuple[Batch, StockRecord, list]:
            if self.repo.get_by_code(code) is not None:
                raise AppError(ErrorCatalog.DUPLICATE_BATCH_CODE, details={"batch_code": code})
            batch = self.repo.add(
                Batch(
                    batch_code=code,
                    product_id=payload.product_id,
                    manufacturing_date=payload.manufacturing_date,
                    expiry_date=payload.expiry_date,
                    quantity=payload.quantity,
                    notes=payload.notes,
                    status="active",
                )
            )
            record = self.records.add(
                StockRecord(batch_id=batch.id, quantity_on_hand=0, quantity_on_shelf=0, quantity_reserved=0)
            )
            meta = self.ledger.with_context(
                MovementMeta(reason="Initial receipt", purchase_order_id=payload.purchase_order_id)
            )
            movements = []
            if payload.receive_quantity and payload.quantity > 0:
                movements.append(self.ledger.apply_to_record(record, "in", payload.quantity, None, meta).movement)
            if payload.location_id is not None:
                movements.append(
                    self.ledger.relocate_record(record, payload.location_id, meta).movement
                )
            return batch, record, movements

        batch, record, movements = run_in_transaction(self.db, _create, operation="create_batch")
        for movement in movements:
            metrics.increment_movement(movement.movement_type)
        log_json(
            logger,
            {
                "event": "batch_created",
                "batch_code": batch.batch_code,
                "stock_record_id": str(record.id),
                "movement_numbers": [movement.movement_number for movement in movements],
                "trace_id": self.ctx.trace_id if self.ctx else None,
            },
        )
        return batch, record

    def get_batch(self, batch_id) -> tuple[Batch, StockRecord | None]:
        batch = self.repo.get(batch_id)
        if batch is None:
            raise not_found("Batch", batch_id)
        return batch, self.records.get_by_batch(batch.id)

    def list_batches(self, filters: BatchQueryFilters, *, page: int, page_size: int):
        rows, total = self.repo.list_batches(filters, page=page, page_size=page_size)
        return [(batch, self.records.get_by_batch(batch.id)) for batch in rows], total

    def update_batch(self, batch_id, changes: dict) -> Batch:
        if "status" in changes and changes["status"] not in BATCH_STATUSES:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "unknown batch status", "status": changes["status"]},
            )

        def _update() -> Batch:
            batch = self.repo.get(batch_id)
            if batch is None:
                raise not_found("Batch", batch_id)
            before = {"status": batch.status, "notes": batch.notes}
            for field in ("status", "notes"):
                if field in changes:
                    setattr(batch, field, changes[field])
            batch.updated_at = datetime.utcnow()
            self.db.flush()
            self.audit.record(
                self.ctx,
                action="batch.updated",
                entity_type="batch",
                entity_id=batch.id,
                before=before,
                after={"status": batch.status, "notes": batch.notes},
            )
            return batch

        return run_in_transaction(self.db, _update, operation="update_batch")

    def delete_batch(self, batch_id) -> None:
        def _delete() -> None:
            batch = self.repo.get(batch_id)
            if batch is None:
                raise not_found("Batch", batch_id)
            record = self.records.get_by_batch(batch.id)
            if record is not None:
                if record.quantity_on_hand or record.quantity_on_shelf or record.quantity_reserved:
                    raise AppError(
                        ErrorCatalog.STOCK_NOT_EMPTY,
                        details={
                            "batch_code": batch.batch_code,
                            "quantity_on_hand": record.quantity_on_hand,
                            "quantity_on_shelf": record.quantity_on_shelf,
                            "quantity_reserved": record.quantity_reserved,
                        },
                    )
                self.records.delete(record)
            self.audit.record(
                self.ctx,
                action="batch.deleted",
                entity_type="batch",
                entity_id=batch.id,
                before={"batch_code": batch.batch_code, "product_id": batch.product_id},
            )
            self.repo.delete(batch)

        run_in_transaction(self.db, _delete, operation="delete_batch")
