import threading
import uuid

import pytest
from sqlalchemy import select

from app.stockledger.core.context import RequestContext
from app.stockledger.core.error_catalog import AppError
from app.stockledger.db.models import AuditEvent, Movement, StockRecord
from app.stockledger.repos.movements import MovementQueryFilters
from app.stockledger.services import ledger as ledger_module
from app.stockledger.services.ledger import MovementLedger, MovementMeta
from tests.ledger_helpers import create_batch, create_location


def _record(db, record_id) -> StockRecord:
    return db.execute(
        select(StockRecord).where(StockRecord.id == record_id).execution_options(populate_existing=True)
    ).scalar_one()


def test_in_movement_creates_numbered_entry(db_session):
    _batch, record = create_batch(db_session, "B-001", 0)
    ledger = MovementLedger(db_session, RequestContext(user_id="emp-1", trace_id="trace-abc"))

    result = ledger.apply_movement(record.id, "in", 25, MovementMeta(purchase_order_id="PO-9"))

    assert result.stock_record.quantity_on_hand == 25
    assert result.movement.movement_number.startswith("BATCHMOV")
    assert result.movement.movement_number.endswith("000001")
    assert result.movement.performed_by == "emp-1"
    assert result.movement.trace_id == "trace-abc"
    assert result.movement.purchase_order_id == "PO-9"
    assert result.movement.on_hand_after == 25


def test_transfer_to_shelf_and_back(db_session):
    _batch, record = create_batch(db_session, "B-002", 100)
    ledger = MovementLedger(db_session)

    ledger.apply_movement(record.id, "transfer", 30)
    result = ledger.apply_movement(record.id, "transfer", -10)

    assert (result.stock_record.quantity_on_hand, result.stock_record.quantity_on_shelf) == (80, 20)


def test_out_defaults_to_shelf(db_session):
    _batch, record = create_batch(db_session, "B-003", 100)
    ledger = MovementLedger(db_session)
    ledger.apply_movement(record.id, "transfer", 10)

    result = ledger.apply_movement(record.id, "out", 4)

    assert result.movement.stock_side == "on_shelf"
    assert (result.stock_record.quantity_on_hand, result.stock_record.quantity_on_shelf) == (90, 6)


def test_out_without_default_side_requires_side(db_session, monkeypatch):
    _batch, record = create_batch(db_session, "B-004", 100)
    monkeypatch.setattr(ledger_module.settings, "OUT_MOVEMENT_DEFAULT_SIDE", "")

    with pytest.raises(AppError) as exc_info:
        MovementLedger(db_session).apply_movement(record.id, "out", 4)
    assert exc_info.value.code == "VALIDATION_ERROR"

    result = MovementLedger(db_session).apply_movement(record.id, "out", 4, MovementMeta(stock_side="on_hand"))
    assert result.stock_record.quantity_on_hand == 96


def test_insufficient_stock_leaves_record_unchanged(db_session):
    _batch, record = create_batch(db_session, "B-005", 40)
    ledger = MovementLedger(db_session)

    with pytest.raises(AppError) as exc_info:
        ledger.apply_movement(record.id, "transfer", 50)

    assert exc_info.value.code == "INSUFFICIENT_STOCK"
    assert exc_info.value.details == {"stock_side": "on_hand", "current": 40, "requested": 50}
    assert _record(db_session, record.id).quantity_on_hand == 40
    assert db_session.execute(select(Movement).where(Movement.movement_type == "transfer")).first() is None


def test_adjustment_requires_reason(db_session):
    _batch, record = create_batch(db_session, "B-006", 10)
    ledger = MovementLedger(db_session)

    with pytest.raises(AppError) as exc_info:
        ledger.apply_movement(record.id, "adjustment", -2)
    assert exc_info.value.code == "MISSING_REASON"

    result = ledger.apply_movement(record.id, "adjustment", -2, MovementMeta(reason="Damaged"))
    assert result.stock_record.quantity_on_hand == 8


def test_batch_mismatch(db_session):
    _batch, record = create_batch(db_session, "B-007", 10)
    other_batch, _other = create_batch(db_session, "B-008", 10)

    with pytest.raises(AppError) as exc_info:
        MovementLedger(db_session).apply_movement(record.id, "in", 1, MovementMeta(batch_id=other_batch.id))
    assert exc_info.value.code == "BATCH_MISMATCH"


def test_unknown_record(db_session):
    with pytest.raises(AppError) as exc_info:
        MovementLedger(db_session).apply_movement(uuid.uuid4(), "in", 1)
    assert exc_info.value.code == "NOT_FOUND"


def test_capacity_checked_on_receipt_into_located_record(db_session):
    location = create_location(db_session, "A-01", 50)
    _batch, record = create_batch(db_session, "B-009", 40, location_id=location.id)
    ledger = MovementLedger(db_session)

    with pytest.raises(AppError) as exc_info:
        ledger.apply_movement(record.id, "in", 11)
    assert exc_info.value.code == "LOCATION_CAPACITY_EXCEEDED"

    result = ledger.apply_movement(record.id, "in", 10)
    assert result.stock_record.quantity_on_hand == 50


def test_reverse_restores_quantities(db_session):
    _batch, record = create_batch(db_session, "B-010", 100)
    ledger = MovementLedger(db_session)
    applied = ledger.apply_movement(record.id, "transfer", 30)

    reversal = ledger.reverse_movement(applied.movement.id)

    assert reversal.movement.movement_type == "transfer"
    assert reversal.movement.quantity == -30
    assert reversal.movement.reverses_movement_id == applied.movement.id
    assert (reversal.stock_record.quantity_on_hand, reversal.stock_record.quantity_on_shelf) == (100, 0)

    original = ledger.get_movement(applied.movement.id)
    assert original.reversed_by_movement_id == reversal.movement.id
    assert original.reversed_at is not None


def test_reverse_twice_is_rejected(db_session):
    _batch, record = create_batch(db_session, "B-011", 100)
    ledger = MovementLedger(db_session)
    applied = ledger.apply_movement(record.id, "transfer", 30)
    reversal = ledger.reverse_movement(applied.movement.id)

    with pytest.raises(AppError) as exc_info:
        ledger.reverse_movement(applied.movement.id)
    assert exc_info.value.code == "MOVEMENT_ALREADY_REVERSED"

    with pytest.raises(AppError) as exc_info:
        ledger.reverse_movement(reversal.movement.id)
    assert exc_info.value.code == "MOVEMENT_NOT_REVERSIBLE"


def test_reverse_fails_when_stock_already_consumed(db_session):
    _batch, record = create_batch(db_session, "B-012", 100)
    ledger = MovementLedger(db_session)
    applied = ledger.apply_movement(record.id, "transfer", 30)
    ledger.apply_movement(record.id, "out", 25)

    with pytest.raises(AppError) as exc_info:
        ledger.reverse_movement(applied.movement.id)
    assert exc_info.value.code == "INSUFFICIENT_STOCK"
    assert ledger.get_movement(applied.movement.id).reversed_at is None


def test_reserve_limits_decreases(db_session):
    _batch, record = create_batch(db_session, "B-013", 20)
    ledger = MovementLedger(db_session, RequestContext(user_id="emp-2", trace_id="t-1"))

    reserved = ledger.reserve(record.id, 15)
    assert reserved.quantity_reserved == 15

    with pytest.raises(AppError) as exc_info:
        ledger.apply_movement(record.id, "adjustment", -6, MovementMeta(reason="Shrinkage"))
    assert exc_info.value.code == "INSUFFICIENT_STOCK"

    released = ledger.release_reservation(record.id, 15)
    assert released.quantity_reserved == 0

    actions = db_session.execute(
        select(AuditEvent.action).where(AuditEvent.entity_id == str(record.id)).order_by(AuditEvent.created_at)
    ).scalars().all()
    assert actions == ["stock.reserved", "stock.reservation_released"]


def test_update_movement_metadata_only(db_session):
    _batch, record = create_batch(db_session, "B-014", 20)
    ledger = MovementLedger(db_session)
    applied = ledger.apply_movement(record.id, "adjustment", 3, MovementMeta(reason="Recount"))

    updated = ledger.update_movement_metadata(applied.movement.id, {"notes": "checked twice"})
    assert updated.notes == "checked twice"

    with pytest.raises(AppError) as exc_info:
        ledger.update_movement_metadata(applied.movement.id, {"quantity": 99})
    assert exc_info.value.code == "VALIDATION_ERROR"

    with pytest.raises(AppError) as exc_info:
        ledger.update_movement_metadata(applied.movement.id, {"reason": ""})
    assert exc_info.value.code == "MISSING_REASON"


def test_list_movements_filters_by_record(db_session):
    _batch, first = create_batch(db_session, "B-015", 20)
    _batch, second = create_batch(db_session, "B-016", 20)
    ledger = MovementLedger(db_session)
    ledger.apply_movement(first.id, "transfer", 5)

    rows, total = ledger.list_movements(MovementQueryFilters(stock_record_id=first.id))
    assert total == 2
    assert {row.movement_type for row in rows} == {"in", "transfer"}

    rows, total = ledger.list_movements(MovementQueryFilters(stock_record_id=second.id, movement_type="transfer"))
    assert (rows, total) == ([], 0)


def test_concurrent_decreases_never_oversell(db_session):
    from app.stockledger.db.session import SessionLocal

    _batch, record = create_batch(db_session, "B-017", 100)
    db_session.close()
    outcomes: list[str] = []
    barrier = threading.Barrier(2)

    def _worker():
        db = SessionLocal()
        try:
            barrier.wait()
            MovementLedger(db).apply_movement(record.id, "out", 60, MovementMeta(stock_side="on_hand"))
            outcomes.append("ok")
        except AppError as exc:
            outcomes.append(exc.code)
        finally:
            db.close()

    threads = [threading.Thread(target=_worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ["INSUFFICIENT_STOCK", "ok"]
    with SessionLocal() as db:
        assert _record(db, record.id).quantity_on_hand == 40
        numbers = db.execute(select(Movement.movement_number).order_by(Movement.movement_number)).scalars().all()
        assert len(numbers) == len(set(numbers)) == 2


def test_shelf_adjustment_below_zero_is_rejected(db_session):
    _batch, record = create_batch(db_session, "B-018", 20)
    ledger = MovementLedger(db_session)
    ledger.apply_movement(record.id, "transfer", 3)

    with pytest.raises(AppError) as exc_info:
        ledger.apply_movement(record.id, "adjustment", -5, MovementMeta(reason="Damaged", stock_side="on_shelf"))

    assert exc_info.value.code == "INSUFFICIENT_STOCK"
    assert exc_info.value.details == {"stock_side": "on_shelf", "current": 3, "requested": 5}
    current = _record(db_session, record.id)
    assert (current.quantity_on_hand, current.quantity_on_shelf) == (17, 3)


@pytest.mark.parametrize(
    ("stock_side", "expected"),
    [("on_hand", (15, 3)), ("on_shelf", (17, 1))],
)
def test_audit_movement_applies_to_one_side_and_reverses(db_session, stock_side, expected):
    _batch, record = create_batch(db_session, f"B-019-{stock_side}", 20)
    ledger = MovementLedger(db_session)
    ledger.apply_movement(record.id, "transfer", 3)

    counted = ledger.apply_movement(record.id, "audit", -2, MovementMeta(stock_side=stock_side))
    assert counted.movement.stock_side == stock_side
    assert (counted.stock_record.quantity_on_hand, counted.stock_record.quantity_on_shelf) == expected

    reversal = ledger.reverse_movement(counted.movement.id)
    assert reversal.movement.movement_type == "audit"
    assert reversal.movement.quantity == 2
    assert (reversal.stock_record.quantity_on_hand, reversal.stock_record.quantity_on_shelf) == (17, 3)


def test_concurrent_assignments_to_one_location_admit_one(db_session):
    from app.stockledger.db.session import SessionLocal

    location = create_location(db_session, "C-01", 100)
    _batch, first = create_batch(db_session, "B-020", 10)
    _batch, second = create_batch(db_session, "B-021", 10)
    location_id, record_ids = location.id, [first.id, second.id]
    db_session.close()
    outcomes: list[str] = []
    barrier = threading.Barrier(2)

    def _worker(record_id):
        db = SessionLocal()
        try:
            barrier.wait()
            MovementLedger(db).change_location(record_id, location_id)
            outcomes.append("ok")
        except AppError as exc:
            outcomes.append(exc.code)
        finally:
            db.close()

    threads = [threading.Thread(target=_worker, args=(record_id,)) for record_id in record_ids]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ["LOCATION_OCCUPIED", "ok"]
    with SessionLocal() as db:
        bound = db.execute(select(StockRecord).where(StockRecord.location_id == location_id)).scalars().all()
        assert len(bound) == 1
        moves = db.execute(select(Movement).where(Movement.movement_type == "location")).scalars().all()
        assert [move.to_location_id for move in moves] == [location_id]


def test_exhausted_movement_sequence_rejects_without_writing(db_session):
    from datetime import datetime

    from app.stockledger.db.models import SequenceCounter

    _batch, record = create_batch(db_session, "B-022", 10)
    counter = db_session.execute(
        select(SequenceCounter).where(SequenceCounter.name == f"movement:{datetime.utcnow().year}")
    ).scalar_one()
    counter.current_value = 999999
    db_session.commit()

    with pytest.raises(AppError) as exc_info:
        MovementLedger(db_session).apply_movement(record.id, "in", 5)

    assert exc_info.value.code == "SEQUENCE_EXHAUSTED"
    assert _record(db_session, record.id).quantity_on_hand == 10
    assert db_session.execute(
        select(SequenceCounter.current_value).where(SequenceCounter.name == counter.name)
    ).scalar_one() == 999999
