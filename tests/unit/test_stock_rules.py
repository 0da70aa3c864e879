import pytest

from app.stockledger.core.error_catalog import AppError
from app.stockledger.services import stock_rules
from app.stockledger.services.stock_rules import QuantityDelta, StockLevels


def _code(exc_info) -> str:
    return exc_info.value.error.code


def test_transfer_moves_between_sides():
    levels = StockLevels(on_hand=100, on_shelf=0)
    after = stock_rules.apply_delta(levels, stock_rules.movement_delta("transfer", 30, None))
    assert (after.on_hand, after.on_shelf) == (70, 30)

    back = stock_rules.apply_delta(after, stock_rules.movement_delta("transfer", -10, None))
    assert (back.on_hand, back.on_shelf) == (80, 20)


def test_out_uses_named_side():
    levels = StockLevels(on_hand=10, on_shelf=5)
    after = stock_rules.apply_delta(levels, stock_rules.movement_delta("out", 4, "on_shelf"))
    assert (after.on_hand, after.on_shelf) == (10, 1)


def test_decrease_below_zero_is_rejected_without_clamping():
    levels = StockLevels(on_hand=40, on_shelf=0)
    with pytest.raises(AppError) as exc_info:
        stock_rules.apply_delta(levels, stock_rules.movement_delta("transfer", 50, None))
    assert _code(exc_info) == "INSUFFICIENT_STOCK"
    assert exc_info.value.details == {"stock_side": "on_hand", "current": 40, "requested": 50}


def test_decrease_cannot_cut_into_reservations():
    levels = StockLevels(on_hand=10, on_shelf=0, reserved=8)
    with pytest.raises(AppError) as exc_info:
        stock_rules.apply_delta(levels, QuantityDelta(on_hand=-5))
    assert _code(exc_info) == "INSUFFICIENT_STOCK"
    assert exc_info.value.details["stock_side"] == "reserved"


@pytest.mark.parametrize(
    ("movement_type", "quantity"),
    [("in", 0), ("in", -5), ("out", -1), ("transfer", 0), ("adjustment", 0), ("in", 2.5), ("in", True)],
)
def test_invalid_quantities(movement_type, quantity):
    with pytest.raises(AppError) as exc_info:
        stock_rules.validate_quantity(movement_type, quantity)
    assert _code(exc_info) == "INVALID_QUANTITY"


def test_signed_quantities_allowed_for_adjustment_and_transfer():
    stock_rules.validate_quantity("adjustment", -3)
    stock_rules.validate_quantity("transfer", -3)
    stock_rules.validate_quantity("location", 0)


def test_adjustment_requires_reason():
    with pytest.raises(AppError) as exc_info:
        stock_rules.require_reason("adjustment", "  ")
    assert _code(exc_info) == "MISSING_REASON"
    stock_rules.require_reason("in", None)


def test_out_side_falls_back_to_default():
    assert stock_rules.resolve_side("out", None, "on_shelf") == "on_shelf"
    assert stock_rules.resolve_side("out", "warehouse", "on_shelf") == "on_hand"
    assert stock_rules.resolve_side("adjustment", None, "on_shelf") == "on_hand"
    assert stock_rules.resolve_side("transfer", "on_shelf", "on_shelf") is None


def test_out_side_required_without_default():
    with pytest.raises(AppError) as exc_info:
        stock_rules.resolve_side("out", None, "")
    assert _code(exc_info) == "VALIDATION_ERROR"


def test_unknown_side_is_rejected():
    with pytest.raises(AppError):
        stock_rules.normalize_side("basement")


def test_purchase_order_only_on_in():
    stock_rules.validate_purchase_order("in", "PO-1")
    with pytest.raises(AppError):
        stock_rules.validate_purchase_order("out", "PO-1")


def test_movement_delta_is_linear():
    for movement_type, side in (("in", None), ("out", "on_hand"), ("adjustment", "on_shelf"), ("transfer", None)):
        forward = stock_rules.movement_delta(movement_type, 7, side)
        backward = stock_rules.movement_delta(movement_type, -7, side)
        assert forward.on_hand + backward.on_hand == 0
        assert forward.on_shelf + backward.on_shelf == 0


def test_reserve_and_release():
    levels = StockLevels(on_hand=10, on_shelf=5)
    reserved = stock_rules.reserve(levels, 12)
    assert reserved.reserved == 12
    assert reserved.available == 3
    with pytest.raises(AppError) as exc_info:
        stock_rules.reserve(reserved, 4)
    assert _code(exc_info) == "INSUFFICIENT_STOCK"
    released = stock_rules.release_reservation(reserved, 12)
    assert released.reserved == 0
    with pytest.raises(AppError):
        stock_rules.release_reservation(released, 1)


def test_capacity_check():
    stock_rules.check_capacity(location_name="A-01", max_capacity=100, occupied=40, requested=60)
    with pytest.raises(AppError) as exc_info:
        stock_rules.check_capacity(location_name="A-01", max_capacity=100, occupied=40, requested=61)
    assert _code(exc_info) == "LOCATION_CAPACITY_EXCEEDED"
    assert exc_info.value.details["location_name"] == "A-01"
