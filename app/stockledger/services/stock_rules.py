"""Pure quantity rules for stock records.

Nothing here touches the database. The ledger feeds current levels in and
writes the returned levels back, so every rule can be unit tested in
isolation and replayed by the integrity scan.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.stockledger.core.error_catalog import AppError, ErrorCatalog

MOVEMENT_TYPES = ("in", "out", "adjustment", "transfer", "location", "audit")
QUANTITY_TYPES = ("in", "out", "adjustment", "transfer", "audit")
STOCK_SIDES = ("on_hand", "on_shelf")

_SIDE_ALIASES = {
    "on_hand": "on_hand",
    "onhand": "on_hand",
    "hand": "on_hand",
    "warehouse": "on_hand",
    "on_shelf": "on_shelf",
    "onshelf": "on_shelf",
    "shelf": "on_shelf",
}


@dataclass(frozen=True)
class StockLevels:
    on_hand: int
    on_shelf: int
    reserved: int = 0

    @property
    def total(self) -> int:
        return self.on_hand + self.on_shelf

    @property
    def available(self) -> int:
        return max(0, self.total - self.reserved)

    def side(self, stock_side: str) -> int:
        return self.on_hand if stock_side == "on_hand" else self.on_shelf


@dataclass(frozen=True)
class QuantityDelta:
    on_hand: int = 0
    on_shelf: int = 0

    @property
    def is_zero(self) -> bool:
        return self.on_hand == 0 and self.on_shelf == 0


def normalize_side(value: str | None) -> str | None:
    if value is None:
        return None
    key = value.strip().lower().replace("-", "_")
    if not key:
        return None
    side = _SIDE_ALIASES.get(key) or _SIDE_ALIASES.get(key.replace("_", ""))
    if side is None:
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={"message": "stock_side must be on_hand or on_shelf", "stock_side": value},
        )
    return side


def resolve_side(movement_type: str, stock_side: str | None, default_out_side: str | None) -> str | None:
    """Pick the side a movement acts on.

    ``out`` falls back to the configured default and, when that is empty,
    the caller must name the side. ``adjustment`` and ``audit`` default to
    the warehouse. ``transfer`` always spans both sides.
    """
    side = normalize_side(stock_side)
    if movement_type == "out":
        side = side or normalize_side(default_out_side)
        if side is None:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "stock_side is required for out movements"},
            )
        return side
    if movement_type in ("adjustment", "audit"):
        return side or "on_hand"
    return None


def validate_movement_type(movement_type: str) -> None:
    if movement_type not in MOVEMENT_TYPES:
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={"message": "unknown movement type", "movement_type": movement_type},
        )


def validate_quantity(movement_type: str, quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise AppError(
            ErrorCatalog.INVALID_QUANTITY,
            details={"movement_type": movement_type, "quantity": quantity, "message": "quantity must be an integer"},
        )
    if movement_type == "location":
        return
    if quantity == 0:
        raise AppError(
            ErrorCatalog.INVALID_QUANTITY,
            details={"movement_type": movement_type, "quantity": quantity, "message": "quantity must not be zero"},
        )
    if movement_type in ("in", "out") and quantity < 0:
        raise AppError(
            ErrorCatalog.INVALID_QUANTITY,
            details={"movement_type": movement_type, "quantity": quantity, "message": "quantity must be positive"},
        )


def require_reason(movement_type: str, reason: str | None) -> None:
    if movement_type == "adjustment" and not (reason or "").strip():
        raise AppError(ErrorCatalog.MISSING_REASON, details={"movement_type": movement_type})


def validate_purchase_order(movement_type: str, purchase_order_id: str | None) -> None:
    if purchase_order_id and movement_type != "in":
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={"message": "purchase_order_id is only allowed on in movements", "movement_type": movement_type},
        )


def movement_delta(movement_type: str, quantity: int, stock_side: str | None) -> QuantityDelta:
    """Signed effect of a movement on the two quantity sides.

    Linear in ``quantity``: the same type with the negated quantity is the
    exact inverse, which is how reversals and ledger replay work.
    """
    if movement_type == "in":
        return QuantityDelta(on_hand=quantity)
    if movement_type == "out":
        if stock_side == "on_hand":
            return QuantityDelta(on_hand=-quantity)
        return QuantityDelta(on_shelf=-quantity)
    if movement_type in ("adjustment", "audit"):
        if stock_side == "on_shelf":
            return QuantityDelta(on_shelf=quantity)
        return QuantityDelta(on_hand=quantity)
    if movement_type == "transfer":
        return QuantityDelta(on_hand=-quantity, on_shelf=quantity)
    return QuantityDelta()


def apply_delta(levels: StockLevels, delta: QuantityDelta) -> StockLevels:
    """Return the levels after ``delta`` or raise ``INSUFFICIENT_STOCK``.

    Never clamps. Decreases are also checked against open reservations.
    """
    for side, change in (("on_hand", delta.on_hand), ("on_shelf", delta.on_shelf)):
        current = levels.side(side)
        if current + change < 0:
            raise AppError(
                ErrorCatalog.INSUFFICIENT_STOCK,
                details={"stock_side": side, "current": current, "requested": -change},
            )
    updated = StockLevels(
        on_hand=levels.on_hand + delta.on_hand,
        on_shelf=levels.on_shelf + delta.on_shelf,
        reserved=levels.reserved,
    )
    if updated.reserved > updated.total:
        raise AppError(
            ErrorCatalog.INSUFFICIENT_STOCK,
            details={
                "stock_side": "reserved",
                "current": levels.available,
                "requested": levels.total - updated.total,
                "reserved": levels.reserved,
            },
        )
    return updated


def reserve(levels: StockLevels, quantity: int) -> StockLevels:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise AppError(
            ErrorCatalog.INVALID_QUANTITY,
            details={"quantity": quantity, "message": "reservation quantity must be positive"},
        )
    if quantity > levels.available:
        raise AppError(
            ErrorCatalog.INSUFFICIENT_STOCK,
            details={"stock_side": "available", "current": levels.available, "requested": quantity},
        )
    return StockLevels(on_hand=levels.on_hand, on_shelf=levels.on_shelf, reserved=levels.reserved + quantity)


def release_reservation(levels: StockLevels, quantity: int) -> StockLevels:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise AppError(
            ErrorCatalog.INVALID_QUANTITY,
            details={"quantity": quantity, "message": "release quantity must be positive"},
        )
    if quantity > levels.reserved:
        raise AppError(
            ErrorCatalog.INSUFFICIENT_STOCK,
            details={"stock_side": "reserved", "current": levels.reserved, "requested": quantity},
        )
    return StockLevels(on_hand=levels.on_hand, on_shelf=levels.on_shelf, reserved=levels.reserved - quantity)


def check_capacity(*, location_name: str, max_capacity: int, occupied: int, requested: int) -> None:
    """``occupied`` is the on-hand of other records bound to the location."""
    if occupied + requested > max_capacity:
        raise AppError(
            ErrorCatalog.LOCATION_CAPACITY_EXCEEDED,
            details={
                "location_name": location_name,
                "max_capacity": max_capacity,
                "occupied": occupied,
                "requested": requested,
            },
        )
