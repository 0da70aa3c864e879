from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterator

from app.stockledger.core.context import RequestContext
from app.stockledger.core.config import settings
from app.stockledger.core.error_catalog import AppError, ErrorCatalog, not_found
from app.stockledger.core.logging import log_json
from app.stockledger.core.metrics import metrics
from app.stockledger.db.models import Batch, Location, Movement, StockRecord
from app.stockledger.db.transaction import run_in_transaction
from app.stockledger.repos.locations import LocationRepository
from app.stockledger.repos.movements import MovementQueryFilters, MovementRepository
from app.stockledger.repos.stock_records import StockRecordRepository
from app.stockledger.services import stock_rules
from app.stockledger.services.audit import AuditService
from app.stockledger.services.sequence import SequenceService

logger = logging.getLogger("stockledger.ledger")

_ANY_LOCATION = object()
EDITABLE_MOVEMENT_FIELDS = ("reason", "notes", "movement_date")


@dataclass(frozen=True)
class MovementMeta:
    reason: str | None = None
    notes: str | None = None
    movement_date: datetime | None = None
    performed_by: str | None = None
    purchase_order_id: str | None = None
    stock_side: str | None = None
    location_id: object | None = None
    batch_id: object | None = None
    trace_id: str | None = None


@dataclass
class MovementResult:
    movement: Movement
    stock_record: StockRecord


def levels_of(record: StockRecord) -> stock_rules.StockLevels:
    return stock_rules.StockLevels(
        on_hand=record.quantity_on_hand,
        on_shelf=record.quantity_on_shelf,
        reserved=record.quantity_reserved,
    )


class MovementLedger:
    """Single writer of stock record quantities and location bindings.

    Every public mutation runs as one transaction through
    ``run_in_transaction``: the stock record (and any location whose
    occupancy is checked) is re-read under lock, validated, written and
    paired with exactly one appended movement.
    """

    def __init__(self, db, ctx: RequestContext | None = None):
        self.db = db
        self.ctx = ctx
        self.records = StockRecordRepository(db)
        self.locations = LocationRepository(db)
        self.movements = MovementRepository(db)
        self.sequence = SequenceService(db)
        self.audit = AuditService(db)

    def apply_movement(
        self,
        stock_record_id,
        movement_type: str,
        quantity: int,
        meta: MovementMeta | None = None,
    ) -> MovementResult:
        meta = self.with_context(meta or MovementMeta())
        try:
            stock_rules.validate_movement_type(movement_type)
            if movement_type == "location":
                return self.change_location(stock_record_id, meta.location_id, meta)
            stock_rules.validate_quantity(movement_type, quantity)
            stock_rules.require_reason(movement_type, meta.reason)
            stock_rules.validate_purchase_order(movement_type, meta.purchase_order_id)
            side = stock_rules.resolve_side(movement_type, meta.stock_side, settings.OUT_MOVEMENT_DEFAULT_SIDE)
        except AppError as exc:
            self._rejected(exc, stock_record_id, movement_type)
            raise

        def _apply() -> MovementResult:
            record = self._lock_record(stock_record_id, meta.batch_id)
            return self.apply_to_record(record, movement_type, quantity, side, meta)

        return self._run("apply_movement", _apply, stock_record_id, movement_type)

    def change_location(
        self,
        stock_record_id,
        location_id,
        meta: MovementMeta | None = None,
        *,
        expected_location_id=_ANY_LOCATION,
    ) -> MovementResult:
        """Bind the record to ``location_id``, or release it when ``None``.

        Release of the old slot and assignment of the new one are a single
        ``location`` movement. With ``expected_location_id`` the record must
        currently sit there, otherwise nothing changes.
        """
        meta = self.with_context(meta or MovementMeta())

        def _relocate() -> MovementResult:
            record = self._lock_record(stock_record_id, meta.batch_id)
            if expected_location_id is not _ANY_LOCATION and record.location_id != _as_uuid(expected_location_id):
                raise AppError(
                    ErrorCatalog.INVALID_LOCATION_CHANGE,
                    details={
                        "message": "stock record is not at the expected location",
                        "current_location_id": _str_or_none(record.location_id),
                        "expected_location_id": _str_or_none(expected_location_id),
                    },
                )
            return self.relocate_record(record, _as_uuid(location_id), meta)

        return self._run("change_location", _relocate, stock_record_id, "location")

    def reverse_movement(self, movement_id, meta: MovementMeta | None = None) -> MovementResult:
        """Apply the exact inverse of a movement and mark the original reversed."""
        meta = self.with_context(meta or MovementMeta())

        def _reverse() -> MovementResult:
            original = self.movements.get(movement_id, for_update=True)
            if original is None:
                raise not_found("Movement", movement_id)
            if original.reverses_movement_id is not None:
                raise AppError(
                    ErrorCatalog.MOVEMENT_NOT_REVERSIBLE,
                    details={
                        "message": "compensating movements cannot be reversed",
                        "movement_number": original.movement_number,
                    },
                )
            if original.reversed_at is not None:
                raise AppError(
                    ErrorCatalog.MOVEMENT_ALREADY_REVERSED,
                    details={
                        "movement_number": original.movement_number,
                        "reversed_by_movement_id": _str_or_none(original.reversed_by_movement_id),
                    },
                )
            record = self._lock_record(original.stock_record_id, None)
            reversal_meta = replace(
                meta,
                reason=meta.reason or f"Reversal of {original.movement_number}",
                movement_date=meta.movement_date or datetime.utcnow(),
                purchase_order_id=original.purchase_order_id,
                stock_side=original.stock_side,
            )
            if original.movement_type == "location":
                if record.location_id != original.to_location_id:
                    raise AppError(
                        ErrorCatalog.MOVEMENT_NOT_REVERSIBLE,
                        details={
                            "message": "stock record has moved since this movement",
                            "movement_number": original.movement_number,
                            "current_location_id": _str_or_none(record.location_id),
                        },
                    )
                result = self.relocate_record(record, original.from_location_id, reversal_meta, reverses=original)
            else:
                result = self.apply_to_record(
                    record,
                    original.movement_type,
                    -original.quantity,
                    original.stock_side,
                    reversal_meta,
                    reverses=original,
                )
            original.reversed_at = datetime.utcnow()
            original.reversed_by_movement_id = result.movement.id
            self.db.flush()
            return result

        return self._run("reverse_movement", _reverse, None, "reversal")

    def update_movement_metadata(self, movement_id, changes: dict) -> Movement:
        unknown = sorted(set(changes) - set(EDITABLE_MOVEMENT_FIELDS))
        if unknown:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "only reason, notes and movement_date can be edited", "fields": unknown},
            )

        def _update() -> Movement:
            movement = self.movements.get(movement_id, for_update=True)
            if movement is None:
                raise not_found("Movement", movement_id)
            if "reason" in changes:
                stock_rules.require_reason(movement.movement_type, changes["reason"])
            if "movement_date" in changes and changes["movement_date"] is None:
                raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": "movement_date cannot be cleared"})
            before = {field: _jsonable(getattr(movement, field)) for field in changes}
            for field, value in changes.items():
                setattr(movement, field, value)
            self.db.flush()
            self.audit.record(
                self.ctx,
                action="movement.metadata_updated",
                entity_type="movement",
                entity_id=movement.id,
                before=before,
                after={field: _jsonable(getattr(movement, field)) for field in changes},
                metadata={"movement_number": movement.movement_number},
            )
            return movement

        return run_in_transaction(self.db, _update, operation="update_movement_metadata")

    def reserve(self, stock_record_id, quantity: int) -> StockRecord:
        return self._change_reservation(stock_record_id, quantity, stock_rules.reserve, "stock.reserved")

    def release_reservation(self, stock_record_id, quantity: int) -> StockRecord:
        return self._change_reservation(
            stock_record_id, quantity, stock_rules.release_reservation, "stock.reservation_released"
        )

    def get_movement(self, movement_id) -> Movement:
        movement = self.movements.get(movement_id)
        if movement is None:
            raise not_found("Movement", movement_id)
        return movement

    def list_movements(
        self,
        filters: MovementQueryFilters,
        *,
        page: int = 1,
        page_size: int | None = None,
        sort_dir: str = "desc",
    ) -> tuple[list[Movement], int]:
        page_size = self.page_size(page_size)
        return self.movements.list_movements(filters, page=max(page, 1), page_size=page_size, sort_dir=sort_dir)

    @staticmethod
    def page_size(requested: int | None) -> int:
        return min(requested or settings.MOVEMENTS_DEFAULT_PAGE_SIZE, settings.MOVEMENTS_MAX_PAGE_SIZE)

    def iter_movements(self, filters: MovementQueryFilters | None = None, *, after: str | None = None) -> Iterator[Movement]:
        return self.movements.iter_movements(filters or MovementQueryFilters(), after=after)

    def _change_reservation(self, stock_record_id, quantity: int, rule, action: str) -> StockRecord:
        def _change() -> StockRecord:
            record = self._lock_record(stock_record_id, None)
            before = levels_of(record)
            after = rule(before, quantity)
            record.quantity_reserved = after.reserved
            self.db.flush()
            self.audit.record(
                self.ctx,
                action=action,
                entity_type="stock_record",
                entity_id=record.id,
                before={"quantity_reserved": before.reserved},
                after={"quantity_reserved": after.reserved},
                metadata={"quantity": quantity},
            )
            return record

        try:
            record = run_in_transaction(self.db, _change, operation=action)
        except AppError as exc:
            self._rejected(exc, stock_record_id, "reservation")
            raise
        log_json(
            logger,
            {
                "event": action,
                "stock_record_id": str(record.id),
                "quantity": quantity,
                "quantity_reserved": record.quantity_reserved,
                "trace_id": self.ctx.trace_id if self.ctx else None,
            },
        )
        return record

    def _run(self, operation: str, fn, stock_record_id, movement_type: str) -> MovementResult:
        try:
            result = run_in_transaction(self.db, fn, operation=operation)
        except AppError as exc:
            self._rejected(exc, stock_record_id, movement_type)
            raise
        movement = result.movement
        metrics.increment_movement(movement.movement_type)
        log_json(
            logger,
            {
                "event": "movement_reversed" if movement.reverses_movement_id else "movement_applied",
                "movement_number": movement.movement_number,
                "movement_type": movement.movement_type,
                "quantity": movement.quantity,
                "stock_record_id": str(movement.stock_record_id),
                "from_location_id": _str_or_none(movement.from_location_id),
                "to_location_id": _str_or_none(movement.to_location_id),
                "trace_id": movement.trace_id,
            },
        )
        return result

    def _rejected(self, exc: AppError, stock_record_id, movement_type: str) -> None:
        metrics.increment_movement_rejection(exc.code)
        log_json(
            logger,
            {
                "event": "movement_rejected",
                "code": exc.code,
                "movement_type": movement_type,
                "stock_record_id": _str_or_none(stock_record_id),
                "details": exc.details,
                "trace_id": self.ctx.trace_id if self.ctx else None,
            },
            level=logging.WARNING,
        )

    def with_context(self, meta: MovementMeta) -> MovementMeta:
        if self.ctx is None:
            return meta
        return replace(
            meta,
            performed_by=meta.performed_by or self.ctx.user_id,
            trace_id=meta.trace_id or self.ctx.trace_id or None,
        )

    def _lock_record(self, stock_record_id, batch_id) -> StockRecord:
        record = self.records.get(_as_uuid(stock_record_id), for_update=True)
        if record is None:
            raise not_found("StockRecord", stock_record_id)
        if batch_id is not None and record.batch_id != _as_uuid(batch_id):
            raise AppError(
                ErrorCatalog.BATCH_MISMATCH,
                details={"stock_record_id": str(record.id), "batch_id": str(batch_id)},
            )
        return record

    def _lock_location(self, location_id) -> Location:
        location = self.locations.get(location_id, for_update=True)
        if location is None:
            raise not_found("Location", location_id)
        return location

    def apply_to_record(
        self,
        record: StockRecord,
        movement_type: str,
        quantity: int,
        side: str | None,
        meta: MovementMeta,
        *,
        reverses: Movement | None = None,
    ) -> MovementResult:
        """Apply a quantity movement to an already locked record. The caller owns the transaction."""
        delta = stock_rules.movement_delta(movement_type, quantity, side)
        after = stock_rules.apply_delta(levels_of(record), delta)
        if delta.on_hand > 0 and record.location_id is not None:
            self._check_capacity(self._lock_location(record.location_id), record, after.on_hand)
        record.quantity_on_hand = after.on_hand
        record.quantity_on_shelf = after.on_shelf
        movement = self._append(
            record,
            movement_type,
            quantity,
            side,
            meta,
            from_location_id=None,
            to_location_id=None,
            reverses=reverses,
        )
        return MovementResult(movement=movement, stock_record=record)

    def relocate_record(
        self,
        record: StockRecord,
        location_id,
        meta: MovementMeta,
        *,
        reverses: Movement | None = None,
    ) -> MovementResult:
        """Location counterpart of ``apply_to_record``."""
        current = record.location_id
        if location_id is None:
            if current is None:
                raise AppError(
                    ErrorCatalog.INVALID_LOCATION_CHANGE,
                    details={"message": "stock record has no location to release", "stock_record_id": str(record.id)},
                )
            _touch(self._lock_location(current))
            new_location_id = None
        else:
            target = self._lock_location(location_id)
            if not target.is_active:
                raise AppError(
                    ErrorCatalog.LOCATION_INACTIVE,
                    details={"location_id": str(target.id), "location_name": target.name},
                )
            if current == target.id:
                raise AppError(
                    ErrorCatalog.INVALID_LOCATION_CHANGE,
                    details={"message": "stock record is already at this location", "location_name": target.name},
                )
            occupant = self.records.get_by_location(target.id)
            if occupant is not None and occupant.id != record.id:
                raise AppError(
                    ErrorCatalog.LOCATION_OCCUPIED,
                    details={
                        "location_id": str(target.id),
                        "location_name": target.name,
                        "occupant_stock_record_id": str(occupant.id),
                        "occupant_quantity_on_hand": occupant.quantity_on_hand,
                    },
                )
            self._check_capacity(target, record, record.quantity_on_hand)
            new_location_id = target.id
        record.location_id = new_location_id
        movement = self._append(
            record,
            "location",
            0,
            None,
            meta,
            from_location_id=current,
            to_location_id=new_location_id,
            reverses=reverses,
        )
        return MovementResult(movement=movement, stock_record=record)

    def _check_capacity(self, location: Location, record: StockRecord, on_hand: int) -> None:
        occupied = self.records.occupied_on_hand(location.id, exclude_record_id=record.id)
        stock_rules.check_capacity(
            location_name=location.name,
            max_capacity=location.max_capacity,
            occupied=occupied,
            requested=on_hand,
        )
        _touch(location)

    def _append(
        self,
        record: StockRecord,
        movement_type: str,
        quantity: int,
        side: str | None,
        meta: MovementMeta,
        *,
        from_location_id,
        to_location_id,
        reverses: Movement | None,
    ) -> Movement:
        batch: Batch = record.batch
        now = datetime.utcnow()
        movement = Movement(
            movement_number=self.sequence.next_movement_number(now),
            stock_record_id=record.id,
            batch_id=record.batch_id,
            product_id=batch.product_id,
            movement_type=movement_type,
            quantity=quantity,
            stock_side=side,
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            reason=(meta.reason or "").strip() or None,
            notes=meta.notes,
            movement_date=meta.movement_date or now,
            performed_by=meta.performed_by,
            purchase_order_id=meta.purchase_order_id if movement_type == "in" else None,
            on_hand_after=record.quantity_on_hand,
            on_shelf_after=record.quantity_on_shelf,
            reverses_movement_id=reverses.id if reverses is not None else None,
            trace_id=meta.trace_id,
            created_at=now,
            updated_at=now,
        )
        return self.movements.add(movement)


def _touch(location: Location) -> None:
    location.updated_at = datetime.utcnow()


def _as_uuid(value):
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": "invalid identifier", "value": str(value)}) from exc


def _str_or_none(value) -> str | None:
    return str(value) if value is not None else None


def _jsonable(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return value
