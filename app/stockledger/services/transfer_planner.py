"""Bulk warehouse/shelf transfers across many batches.

Selection is a pure function over candidate snapshots; execution submits
one ledger movement per item and keeps going when an item fails.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime

from sqlalchemy.exc import SQLAlchemyError

from app.stockledger.core.config import settings
from app.stockledger.core.context import RequestContext
from app.stockledger.core.error_catalog import AppError, ErrorCatalog
from app.stockledger.core.logging import log_json
from app.stockledger.repos.stock_records import StockRecordRepository
from app.stockledger.services.ledger import MovementLedger, MovementMeta

logger = logging.getLogger("stockledger.transfers")

TO_SHELF = "to_shelf"
TO_WAREHOUSE = "to_warehouse"
DIRECTIONS = (TO_SHELF, TO_WAREHOUSE)

_DIRECTION_ALIASES = {
    "to_shelf": TO_SHELF,
    "toshelf": TO_SHELF,
    "to_warehouse": TO_WAREHOUSE,
    "towarehouse": TO_WAREHOUSE,
}

EXCLUDED_EXPIRED = "EXPIRED"
EXCLUDED_NO_SOURCE_STOCK = "NO_SOURCE_STOCK"


@dataclass(frozen=True)
class TransferCandidate:
    stock_record_id: object
    batch_id: object
    batch_code: str
    product_id: str
    expiry_date: date | None
    quantity_on_hand: int
    quantity_on_shelf: int

    def source_quantity(self, direction: str) -> int:
        return self.quantity_on_hand if direction == TO_SHELF else self.quantity_on_shelf


@dataclass(frozen=True)
class EligibleBatch:
    candidate: TransferCandidate
    source_quantity: int
    expiring_soon: bool
    days_until_expiry: int | None


@dataclass(frozen=True)
class ExcludedBatch:
    candidate: TransferCandidate
    reason: str


@dataclass
class TransferPlan:
    direction: str
    eligible: list[EligibleBatch] = field(default_factory=list)
    excluded: list[ExcludedBatch] = field(default_factory=list)

    def find(self, stock_record_id) -> EligibleBatch | None:
        for item in self.eligible:
            if str(item.candidate.stock_record_id) == str(stock_record_id):
                return item
        return None


@dataclass(frozen=True)
class Allocation:
    stock_record_id: object
    batch_code: str
    expiry_date: date | None
    quantity: int


@dataclass(frozen=True)
class TransferItem:
    stock_record_id: object
    quantity: int


@dataclass
class BulkTransferResult:
    direction: str
    results: list[dict] = field(default_factory=list)
    failures: list[dict] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def summary(self) -> dict:
        return {"total": self.succeeded + self.failed, "succeeded": self.succeeded, "failed": self.failed}


def normalize_direction(direction: str) -> str:
    key = (direction or "").strip().lower().replace("-", "_")
    resolved = _DIRECTION_ALIASES.get(key) or _DIRECTION_ALIASES.get(key.replace("_", ""))
    if resolved is None:
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={"message": "direction must be to_shelf or to_warehouse", "direction": direction},
        )
    return resolved


def signed_quantity(direction: str, quantity: int) -> int:
    """Transfer movements are positive warehouse->shelf and negative the other way."""
    return quantity if direction == TO_SHELF else -quantity


def is_expired(expiry_date: date | None, today: date) -> bool:
    return expiry_date is not None and expiry_date <= today


def select_eligible_batches(
    candidates: list[TransferCandidate],
    direction: str,
    now: datetime,
    expiring_soon_days: int | None = None,
) -> TransferPlan:
    direction = normalize_direction(direction)
    window = settings.EXPIRING_SOON_DAYS if expiring_soon_days is None else expiring_soon_days
    today = now.date()
    plan = TransferPlan(direction=direction)
    for candidate in candidates:
        if is_expired(candidate.expiry_date, today):
            plan.excluded.append(ExcludedBatch(candidate=candidate, reason=EXCLUDED_EXPIRED))
            continue
        source = candidate.source_quantity(direction)
        if source <= 0:
            plan.excluded.append(ExcludedBatch(candidate=candidate, reason=EXCLUDED_NO_SOURCE_STOCK))
            continue
        days = (candidate.expiry_date - today).days if candidate.expiry_date is not None else None
        plan.eligible.append(
            EligibleBatch(
                candidate=candidate,
                source_quantity=source,
                expiring_soon=days is not None and 0 < days <= window,
                days_until_expiry=days,
            )
        )
    return plan


def allocate_fefo(plan: TransferPlan, requested: int) -> list[Allocation]:
    """Split ``requested`` over the plan, earliest expiry first.

    Batches without an expiry date are used last.
    """
    if isinstance(requested, bool) or not isinstance(requested, int) or requested <= 0:
        raise AppError(ErrorCatalog.INVALID_QUANTITY, details={"quantity": requested})
    ordered = sorted(
        plan.eligible,
        key=lambda item: (
            item.candidate.expiry_date is None,
            item.candidate.expiry_date or date.max,
            item.candidate.batch_code,
        ),
    )
    available = sum(item.source_quantity for item in ordered)
    if available < requested:
        raise AppError(
            ErrorCatalog.INSUFFICIENT_STOCK,
            details={"direction": plan.direction, "current": available, "requested": requested},
        )
    allocations = []
    remaining = requested
    for item in ordered:
        if remaining == 0:
            break
        take = min(item.source_quantity, remaining)
        allocations.append(
            Allocation(
                stock_record_id=item.candidate.stock_record_id,
                batch_code=item.candidate.batch_code,
                expiry_date=item.candidate.expiry_date,
                quantity=take,
            )
        )
        remaining -= take
    return allocations


class TransferPlanner:
    def __init__(self, db, ctx: RequestContext | None = None):
        self.db = db
        self.ctx = ctx
        self.records = StockRecordRepository(db)
        self.ledger = MovementLedger(db, ctx)

    def load_candidates(self, stock_record_ids=None, product_id: str | None = None) -> list[TransferCandidate]:
        candidates = []
        for record, batch in self.records.list_with_batches(stock_record_ids):
            if product_id and batch.product_id != product_id:
                continue
            candidates.append(
                TransferCandidate(
                    stock_record_id=record.id,
                    batch_id=batch.id,
                    batch_code=batch.batch_code,
                    product_id=batch.product_id,
                    expiry_date=batch.expiry_date,
                    quantity_on_hand=record.quantity_on_hand,
                    quantity_on_shelf=record.quantity_on_shelf,
                )
            )
        return candidates

    def plan(
        self,
        direction: str,
        *,
        stock_record_ids=None,
        product_id: str | None = None,
        now: datetime | None = None,
    ) -> TransferPlan:
        candidates = self.load_candidates(stock_record_ids, product_id)
        return select_eligible_batches(candidates, direction, now or datetime.utcnow())

    def bulk_transfer(
        self,
        items: list[TransferItem],
        direction: str,
        meta: MovementMeta | None = None,
        *,
        now: datetime | None = None,
    ) -> BulkTransferResult:
        """Submit one transfer movement per item.

        Items commit independently: a failure is recorded and the remaining
        items still run, and nothing already applied is rolled back.
        """
        direction = normalize_direction(direction)
        if not items:
            raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": "items must not be empty"})
        if len(items) > settings.BULK_TRANSFER_MAX_ITEMS:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "too many items", "max_items": settings.BULK_TRANSFER_MAX_ITEMS},
            )
        meta = meta or MovementMeta()
        meta = replace(meta, reason=meta.reason or settings.BULK_TRANSFER_DEFAULT_REASON)
        now = now or datetime.utcnow()

        plan = select_eligible_batches(
            self.load_candidates([item.stock_record_id for item in items]), direction, now
        )
        excluded = {str(item.candidate.stock_record_id): item for item in plan.excluded}
        self.db.rollback()

        result = BulkTransferResult(direction=direction)
        for item in items:
            key = str(item.stock_record_id)
            eligible = plan.find(key)
            skipped = excluded.get(key)
            batch_code = (eligible or skipped).candidate.batch_code if (eligible or skipped) else None
            try:
                if eligible is None and skipped is None:
                    raise AppError(
                        ErrorCatalog.NOT_FOUND,
                        details={"message": "StockRecord not found", "entity": "StockRecord", "id": key},
                    )
                if skipped is not None and skipped.reason == EXCLUDED_EXPIRED:
                    raise AppError(
                        ErrorCatalog.EXPIRED_BATCH,
                        details={"batch_code": batch_code, "expiry_date": skipped.candidate.expiry_date.isoformat()},
                    )
                if isinstance(item.quantity, bool) or not isinstance(item.quantity, int) or item.quantity <= 0:
                    raise AppError(
                        ErrorCatalog.INVALID_QUANTITY,
                        details={"quantity": item.quantity, "message": "transfer quantity must be positive"},
                    )
                applied = self.ledger.apply_movement(
                    item.stock_record_id, "transfer", signed_quantity(direction, item.quantity), meta
                )
            except AppError as exc:
                result.failures.append(_failure(key, batch_code, exc.error.code, exc.error.message, exc.details))
                continue
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.exception("bulk transfer item failed", extra={"stock_record_id": key})
                result.failures.append(
                    _failure(
                        key,
                        batch_code,
                        ErrorCatalog.INTERNAL_ERROR.code,
                        ErrorCatalog.INTERNAL_ERROR.message,
                        {"type": exc.__class__.__name__},
                    )
                )
                continue
            record = applied.stock_record
            result.results.append(
                {
                    "stock_record_id": key,
                    "batch_code": batch_code,
                    "quantity": item.quantity,
                    "movement_id": str(applied.movement.id),
                    "movement_number": applied.movement.movement_number,
                    "quantity_on_hand": record.quantity_on_hand,
                    "quantity_on_shelf": record.quantity_on_shelf,
                    "expiring_soon": bool(eligible and eligible.expiring_soon),
                    "days_until_expiry": eligible.days_until_expiry if eligible else None,
                }
            )

        log_json(
            logger,
            {
                "event": "bulk_transfer_completed",
                "direction": direction,
                **result.summary,
                "trace_id": self.ctx.trace_id if self.ctx else None,
            },
        )
        return result


def _failure(stock_record_id: str, batch_code: str | None, code: str, message: str, details) -> dict:
    return {
        "stock_record_id": stock_record_id,
        "batch_code": batch_code,
        "code": code,
        "message": message,
        "details": details,
    }
