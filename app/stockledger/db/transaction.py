from __future__ import annotations

import logging
from typing import Callable, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.stockledger.core.config import settings
from app.stockledger.core.error_catalog import AppError, ErrorCatalog
from app.stockledger.core.logging import log_json
from app.stockledger.core.metrics import metrics

logger = logging.getLogger("stockledger.transaction")

T = TypeVar("T")

_UNIQUE_VIOLATIONS = (
    (("uq_stock_records_location_id", "stock_records.location_id"), ErrorCatalog.LOCATION_OCCUPIED),
    (("uq_movements_reverses_movement_id", "movements.reverses_movement_id"), ErrorCatalog.MOVEMENT_ALREADY_REVERSED),
    (("batches_batch_code", "batches.batch_code"), ErrorCatalog.DUPLICATE_BATCH_CODE),
    (("locations_name", "locations.name"), ErrorCatalog.DUPLICATE_LOCATION),
)


def translate_integrity_error(exc: IntegrityError) -> AppError | None:
    message = str(exc.orig).lower() if exc.orig is not None else str(exc).lower()
    for tokens, error in _UNIQUE_VIOLATIONS:
        if any(token in message for token in tokens):
            return AppError(error, details={"message": error.message})
    return None


def begin_write(db: Session) -> None:
    """Open the write transaction with a bounded lock wait.

    PostgreSQL gets a local lock_timeout for its row locks. SQLite has no row
    locks, so the write lock is taken up front and writers queue on it.
    """
    conn = db.connection()
    dialect = conn.dialect.name
    if dialect == "postgresql":
        timeout_ms = int(settings.LEDGER_LOCK_TIMEOUT_MS)
        conn.execute(text(f"SET LOCAL lock_timeout = '{timeout_ms}ms'"))
    elif dialect == "sqlite" and not conn.connection.dbapi_connection.in_transaction:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def run_in_transaction(db: Session, fn: Callable[[], T], *, operation: str, max_retries: int | None = None) -> T:
    """Run ``fn`` as one unit of work and commit it.

    ``fn`` must re-read everything it validates: on a stale version write the
    session is rolled back and ``fn`` is called again against fresh rows.
    """
    retries = settings.LEDGER_MAX_RETRIES if max_retries is None else max_retries
    attempt = 0
    while True:
        attempt += 1
        try:
            begin_write(db)
            result = fn()
            db.commit()
            return result
        except StaleDataError:
            db.rollback()
            if attempt > retries:
                log_json(
                    logger,
                    {"event": "ledger_conflict", "operation": operation, "attempts": attempt},
                    level=logging.WARNING,
                )
                raise AppError(
                    ErrorCatalog.CONCURRENT_MODIFICATION,
                    details={"operation": operation, "attempts": attempt},
                )
            metrics.increment_ledger_retry()
        except IntegrityError as exc:
            db.rollback()
            translated = translate_integrity_error(exc)
            if translated is None:
                raise
            raise translated from exc
        except Exception:
            db.rollback()
            raise
