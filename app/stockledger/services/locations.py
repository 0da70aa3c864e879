from __future__ import annotations

import logging
from dataclasses import dataclass

from app.stockledger.core.config import settings
from app.stockledger.core.context import RequestContext
from app.stockledger.core.error_catalog import AppError, ErrorCatalog, not_found
from app.stockledger.core.logging import log_json
from app.stockledger.db.models import Location
from app.stockledger.db.transaction import run_in_transaction
from app.stockledger.repos.locations import LocationQueryFilters, LocationRepository
from app.stockledger.repos.stock_records import StockRecordRepository
from app.stockledger.services.audit import AuditService
from app.stockledger.services.ledger import MovementLedger, MovementMeta, MovementResult
from app.stockledger.services.sequence import SequenceService

logger = logging.getLogger("stockledger.locations")


@dataclass(frozen=True)
class LocationOccupancy:
    location: Location
    occupied_by: object | None
    occupied_quantity: int

    @property
    def is_occupied(self) -> bool:
        return self.occupied_by is not None

    @property
    def free_capacity(self) -> int:
        return max(0, self.location.max_capacity - self.occupied_quantity)


def normalize_location_name(name: str) -> str:
    normalized = (name or "").strip().upper()
    if not normalized:
        raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": "name is required"})
    return normalized


def _snapshot(location: Location) -> dict:
    return {
        "name": location.name,
        "max_capacity": location.max_capacity,
        "is_active": location.is_active,
        "notes": location.notes,
    }


class LocationService:
    """Location registry plus the assignment contracts built on the ledger.

    Occupancy is always summed from stock records at read time.
    """

    def __init__(self, db, ctx: RequestContext | None = None):
        self.db = db
        self.ctx = ctx
        self.repo = LocationRepository(db)
        self.records = StockRecordRepository(db)
        self.audit = AuditService(db)
        self.ledger = MovementLedger(db, ctx)

    def assign_location(self, stock_record_id, location_id, *, reason: str | None = None) -> MovementResult:
        return self.ledger.change_location(stock_record_id, location_id, MovementMeta(reason=reason))

    def release_location(self, stock_record_id, *, reason: str | None = None) -> MovementResult:
        return self.ledger.change_location(stock_record_id, None, MovementMeta(reason=reason))

    def move_batch(self, stock_record_id, from_location_id, to_location_id, reason: str | None = None) -> MovementResult:
        if to_location_id is None:
            raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": "to_location_id is required"})
        return self.ledger.change_location(
            stock_record_id,
            to_location_id,
            MovementMeta(reason=reason),
            expected_location_id=from_location_id,
        )

    def create_location(
        self,
        *,
        name: str,
        max_capacity: int | None = None,
        is_active: bool = True,
        notes: str | None = None,
    ) -> Location:
        normalized = normalize_location_name(name)
        capacity = settings.DEFAULT_LOCATION_CAPACITY if max_capacity is None else max_capacity
        self._require_capacity(capacity)

        def _create() -> Location:
            if self.repo.get_by_name(normalized) is not None:
                raise AppError(ErrorCatalog.DUPLICATE_LOCATION, details={"name": normalized})
            location = self.repo.add(
                Location(
                    location_code=SequenceService(self.db).next_location_code(),
                    name=normalized,
                    max_capacity=capacity,
                    is_active=is_active,
                    notes=notes,
                )
            )
            self.audit.record(
                self.ctx,
                action="location.created",
                entity_type="location",
                entity_id=location.id,
                after=_snapshot(location),
            )
            return location

        location = run_in_transaction(self.db, _create, operation="create_location")
        log_json(logger, {"event": "location_created", "location_code": location.location_code, "name": location.name})
        return location

    def update_location(self, location_id, changes: dict) -> Location:
        def _update() -> Location:
            location = self._lock(location_id)
            before = _snapshot(location)
            if "name" in changes:
                name = normalize_location_name(changes["name"])
                existing = self.repo.get_by_name(name)
                if existing is not None and existing.id != location.id:
                    raise AppError(ErrorCatalog.DUPLICATE_LOCATION, details={"name": name})
                location.name = name
            if "max_capacity" in changes:
                capacity = changes["max_capacity"]
                self._require_capacity(capacity)
                occupied = self.records.occupied_on_hand(location.id)
                if capacity < occupied:
                    raise AppError(
                        ErrorCatalog.LOCATION_CAPACITY_EXCEEDED,
                        details={
                            "location_name": location.name,
                            "max_capacity": capacity,
                            "occupied": occupied,
                            "message": "capacity cannot drop below current occupancy",
                        },
                    )
                location.max_capacity = capacity
            if "notes" in changes:
                location.notes = changes["notes"]
            self.db.flush()
            self.audit.record(
                self.ctx,
                action="location.updated",
                entity_type="location",
                entity_id=location.id,
                before=before,
                after=_snapshot(location),
            )
            return location

        return run_in_transaction(self.db, _update, operation="update_location")

    def set_active(self, location_id, is_active: bool) -> Location:
        def _toggle() -> Location:
            location = self._lock(location_id)
            if not is_active and self.records.get_by_location(location.id) is not None:
                raise AppError(
                    ErrorCatalog.LOCATION_NOT_EMPTY,
                    details={"location_name": location.name, "message": "release the stock before deactivating"},
                )
            before = _snapshot(location)
            location.is_active = is_active
            self.db.flush()
            self.audit.record(
                self.ctx,
                action="location.activated" if is_active else "location.deactivated",
                entity_type="location",
                entity_id=location.id,
                before=before,
                after=_snapshot(location),
            )
            return location

        return run_in_transaction(self.db, _toggle, operation="set_location_active")

    def delete_location(self, location_id) -> None:
        def _delete() -> None:
            location = self._lock(location_id)
            if self.records.get_by_location(location.id) is not None:
                raise AppError(ErrorCatalog.LOCATION_NOT_EMPTY, details={"location_name": location.name})
            self.audit.record(
                self.ctx,
                action="location.deleted",
                entity_type="location",
                entity_id=location.id,
                before=_snapshot(location),
            )
            self.repo.delete(location)

        run_in_transaction(self.db, _delete, operation="delete_location")

    def get_location(self, location_id) -> LocationOccupancy:
        location = self.repo.get(location_id)
        if location is None:
            raise not_found("Location", location_id)
        return self._occupancy(location)

    def list_locations(
        self, filters: LocationQueryFilters, *, page: int, page_size: int
    ) -> tuple[list[LocationOccupancy], int]:
        rows, total = self.repo.list_locations(filters, page=page, page_size=page_size)
        return [self._occupancy(location) for location in rows], total

    def _occupancy(self, location: Location) -> LocationOccupancy:
        occupant = self.records.get_by_location(location.id)
        return LocationOccupancy(
            location=location,
            occupied_by=occupant.id if occupant is not None else None,
            occupied_quantity=self.records.occupied_on_hand(location.id),
        )

    def _lock(self, location_id) -> Location:
        location = self.repo.get(location_id, for_update=True)
        if location is None:
            raise not_found("Location", location_id)
        return location

    @staticmethod
    def _require_capacity(capacity) -> None:
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "max_capacity must be an integer of at least 1", "max_capacity": capacity},
            )
