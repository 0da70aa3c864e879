from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.stockledger.core.config import settings
from app.stockledger.core.error_catalog import AppError, ErrorCatalog
from app.stockledger.db.models import SequenceCounter

logger = logging.getLogger(__name__)

SEQUENCE_DIGITS = 6
SEQUENCE_MAX = 10**SEQUENCE_DIGITS - 1


class SequenceService:
    """Gap-free counters backed by the ``sequence_counters`` table.

    The increment joins the caller's transaction and is only visible once it
    commits; a rollback hands the value back. Never commits on its own.
    """

    def __init__(self, db: Session):
        self.db = db

    def next_value(self, name: str) -> int:
        bumped = self.db.execute(
            update(SequenceCounter)
            .where(SequenceCounter.name == name)
            .values(current_value=SequenceCounter.current_value + 1, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount == 0:
            savepoint = self.db.begin_nested()
            try:
                self.db.add(SequenceCounter(name=name, current_value=1))
                self.db.flush()
                savepoint.commit()
                logger.debug("sequence %s started", name)
                return 1
            except IntegrityError:
                savepoint.rollback()
                return self.next_value(name)
        return self.db.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == name)
        ).scalar_one()

    def next_movement_number(self, when: datetime | None = None) -> str:
        year = (when or datetime.utcnow()).year
        seq = self.next_value(f"movement:{year}")
        return format_number(settings.MOVEMENT_NUMBER_PREFIX, year, seq)

    def next_location_code(self, when: datetime | None = None) -> str:
        year = (when or datetime.utcnow()).year
        seq = self.next_value(f"location:{year}")
        return format_number(settings.LOCATION_CODE_PREFIX, year, seq)


def format_number(prefix: str, year: int, seq: int) -> str:
    # Fixed width keeps string order equal to sequence order.
    if not 0 < seq <= SEQUENCE_MAX:
        raise AppError(
            ErrorCatalog.SEQUENCE_EXHAUSTED,
            details={"prefix": prefix, "year": year, "sequence": seq, "max_sequence": SEQUENCE_MAX},
        )
    return f"{prefix}{year}{seq:0{SEQUENCE_DIGITS}d}"


def parse_number(prefix: str, number: str) -> tuple[int, int] | None:
    if not number.startswith(prefix):
        return None
    tail = number[len(prefix):]
    if len(tail) != 4 + SEQUENCE_DIGITS or not tail.isdigit():
        return None
    return int(tail[:4]), int(tail[4:])
