from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass

from sqlalchemy import func, select

from app.stockledger.core.config import settings
from app.stockledger.core.metrics import metrics
from app.stockledger.db.models import Location, StockRecord
from app.stockledger.repos.movements import MovementQueryFilters, MovementRepository
from app.stockledger.services.sequence import parse_number
from app.stockledger.services.stock_rules import movement_delta


SEVERITY_CRITICAL = "CRITICAL"
SEVERITY_WARN = "WARN"


@dataclass(frozen=True)
class IntegrityFinding:
    check_id: str
    severity: str
    message: str
    entity: str
    entity_id: str | None
    details: dict


def _record(check_id: str, findings: list[IntegrityFinding]) -> list[IntegrityFinding]:
    if findings:
        metrics.increment_invariant_violation(check_id, len(findings))
    return findings


def check_non_negative(db) -> list[IntegrityFinding]:
    rows = db.execute(
        select(StockRecord).where(
            (StockRecord.quantity_on_hand < 0)
            | (StockRecord.quantity_on_shelf < 0)
            | (StockRecord.quantity_reserved < 0)
        )
    ).scalars().all()
    findings = [
        IntegrityFinding(
            check_id="non_negative",
            severity=SEVERITY_CRITICAL,
            message="Stock record holds a negative quantity.",
            entity="stock_records",
            entity_id=str(row.id),
            details={
                "quantity_on_hand": row.quantity_on_hand,
                "quantity_on_shelf": row.quantity_on_shelf,
                "quantity_reserved": row.quantity_reserved,
            },
        )
        for row in rows
    ]
    return _record("non_negative", findings)


def check_reservation_bound(db) -> list[IntegrityFinding]:
    rows = db.execute(
        select(StockRecord).where(
            StockRecord.quantity_reserved > StockRecord.quantity_on_hand + StockRecord.quantity_on_shelf
        )
    ).scalars().all()
    findings = [
        IntegrityFinding(
            check_id="reservation_bound",
            severity=SEVERITY_CRITICAL,
            message="Reserved quantity exceeds on-hand plus on-shelf.",
            entity="stock_records",
            entity_id=str(row.id),
            details={"quantity_reserved": row.quantity_reserved, "quantity_total": row.quantity_total},
        )
        for row in rows
    ]
    return _record("reservation_bound", findings)


def check_location_exclusivity(db) -> list[IntegrityFinding]:
    rows = db.execute(
        select(StockRecord.location_id, func.count())
        .where(StockRecord.location_id.is_not(None))
        .group_by(StockRecord.location_id)
        .having(func.count() > 1)
    ).all()
    findings = [
        IntegrityFinding(
            check_id="location_exclusivity",
            severity=SEVERITY_CRITICAL,
            message="Location is bound to more than one stock record.",
            entity="locations",
            entity_id=str(location_id),
            details={"stock_records": int(count)},
        )
        for location_id, count in rows
    ]
    return _record("location_exclusivity", findings)


def check_location_capacity(db) -> list[IntegrityFinding]:
    rows = db.execute(
        select(Location.id, Location.name, Location.max_capacity, func.sum(StockRecord.quantity_on_hand))
        .join(StockRecord, StockRecord.location_id == Location.id)
        .group_by(Location.id, Location.name, Location.max_capacity)
        .having(func.sum(StockRecord.quantity_on_hand) > Location.max_capacity)
    ).all()
    findings = [
        IntegrityFinding(
            check_id="location_capacity",
            severity=SEVERITY_CRITICAL,
            message="Location holds more on-hand stock than its capacity.",
            entity="locations",
            entity_id=str(location_id),
            details={"location_name": name, "max_capacity": max_capacity, "occupied": int(occupied or 0)},
        )
        for location_id, name, max_capacity, occupied in rows
    ]
    return _record("location_capacity", findings)


def check_inactive_location_occupied(db) -> list[IntegrityFinding]:
    rows = db.execute(
        select(Location.id, Location.name, StockRecord.id)
        .join(StockRecord, StockRecord.location_id == Location.id)
        .where(Location.is_active.is_(False))
    ).all()
    findings = [
        IntegrityFinding(
            check_id="inactive_location_occupied",
            severity=SEVERITY_WARN,
            message="Inactive location still holds a stock record.",
            entity="locations",
            entity_id=str(location_id),
            details={"location_name": name, "stock_record_id": str(record_id)},
        )
        for location_id, name, record_id in rows
    ]
    return _record("inactive_location_occupied", findings)


def check_ledger_replay(db) -> list[IntegrityFinding]:
    """Summed movement deltas per record must equal the stored quantities."""
    totals: dict = defaultdict(lambda: [0, 0])
    for movement in MovementRepository(db).iter_movements(MovementQueryFilters()):
        delta = movement_delta(movement.movement_type, movement.quantity, movement.stock_side)
        totals[movement.stock_record_id][0] += delta.on_hand
        totals[movement.stock_record_id][1] += delta.on_shelf
    findings = []
    for record in db.execute(select(StockRecord)).scalars().all():
        on_hand, on_shelf = totals.get(record.id, (0, 0))
        if on_hand != record.quantity_on_hand or on_shelf != record.quantity_on_shelf:
            findings.append(
                IntegrityFinding(
                    check_id="ledger_replay",
                    severity=SEVERITY_CRITICAL,
                    message="Stored quantities differ from the movement ledger.",
                    entity="stock_records",
                    entity_id=str(record.id),
                    details={
                        "stored": {"on_hand": record.quantity_on_hand, "on_shelf": record.quantity_on_shelf},
                        "replayed": {"on_hand": on_hand, "on_shelf": on_shelf},
                    },
                )
            )
    return _record("ledger_replay", findings)


def check_movement_number_gaps(db) -> list[IntegrityFinding]:
    by_year: dict[int, list[int]] = defaultdict(list)
    findings = []
    for number in MovementRepository(db).movement_numbers():
        parsed = parse_number(settings.MOVEMENT_NUMBER_PREFIX, number)
        if parsed is None:
            findings.append(
                IntegrityFinding(
                    check_id="movement_number_gaps",
                    severity=SEVERITY_WARN,
                    message="Movement number does not match the configured format.",
                    entity="movements",
                    entity_id=None,
                    details={"movement_number": number},
                )
            )
            continue
        year, seq = parsed
        by_year[year].append(seq)
    for year, values in sorted(by_year.items()):
        missing = sorted(set(range(1, max(values) + 1)) - set(values))
        if missing:
            findings.append(
                IntegrityFinding(
                    check_id="movement_number_gaps",
                    severity=SEVERITY_WARN,
                    message="Movement numbers are not contiguous.",
                    entity="movements",
                    entity_id=None,
                    details={"year": year, "missing": missing[:50], "missing_count": len(missing)},
                )
            )
    return _record("movement_number_gaps", findings)


CHECKS = (
    check_non_negative,
    check_reservation_bound,
    check_location_exclusivity,
    check_location_capacity,
    check_inactive_location_occupied,
    check_ledger_replay,
    check_movement_number_gaps,
)


def run_integrity_checks(db) -> list[IntegrityFinding]:
    findings: list[IntegrityFinding] = []
    for check in CHECKS:
        findings.extend(check(db))
    return findings
