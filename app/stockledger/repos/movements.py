from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterator

from sqlalchemy import func, or_, select

from app.stockledger.db.models import Movement


@dataclass(frozen=True)
class MovementQueryFilters:
    stock_record_id: str | None = None
    batch_id: str | None = None
    product_id: str | None = None
    movement_type: str | None = None
    performed_by: str | None = None
    purchase_order_id: str | None = None
    start_date: date | None = None
    # A plain date as end_date includes that whole day.
    end_date: date | None = None
    search: str | None = None


class MovementRepository:
    def __init__(self, db):
        self.db = db

    def get(self, movement_id, *, for_update: bool = False) -> Movement | None:
        query = select(Movement).where(Movement.id == movement_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(query).scalars().first()

    def add(self, movement: Movement) -> Movement:
        self.db.add(movement)
        self.db.flush()
        return movement

    def list_movements(
        self,
        filters: MovementQueryFilters,
        *,
        page: int,
        page_size: int,
        sort_dir: str = "desc",
    ) -> tuple[list[Movement], int]:
        base_query = self._apply_filters(filters)
        total = self.db.execute(select(func.count()).select_from(base_query.subquery())).scalar_one()
        if sort_dir.lower() == "asc":
            ordering = (Movement.movement_date.asc(), Movement.created_at.asc(), Movement.movement_number.asc())
        else:
            ordering = (Movement.movement_date.desc(), Movement.created_at.desc(), Movement.movement_number.desc())
        query = base_query.order_by(*ordering).offset((page - 1) * page_size).limit(page_size)
        return self.db.execute(query).scalars().all(), int(total)

    def iter_movements(
        self,
        filters: MovementQueryFilters,
        *,
        after: str | None = None,
        chunk_size: int = 500,
    ) -> Iterator[Movement]:
        """Walk matching movements in movement-number order, one chunk at a time.

        Restartable: pass the last seen movement number as ``after``.
        """
        cursor = after
        while True:
            query = self._apply_filters(filters)
            if cursor is not None:
                query = query.where(Movement.movement_number > cursor)
            rows = self.db.execute(query.order_by(Movement.movement_number.asc()).limit(chunk_size)).scalars().all()
            if not rows:
                return
            yield from rows
            if len(rows) < chunk_size:
                return
            cursor = rows[-1].movement_number

    def movement_numbers(self) -> list[str]:
        return self.db.execute(select(Movement.movement_number).order_by(Movement.movement_number)).scalars().all()

    def _apply_filters(self, filters: MovementQueryFilters):
        query = select(Movement)
        if filters.stock_record_id:
            query = query.where(Movement.stock_record_id == filters.stock_record_id)
        if filters.batch_id:
            query = query.where(Movement.batch_id == filters.batch_id)
        if filters.product_id:
            query = query.where(Movement.product_id == filters.product_id)
        if filters.movement_type:
            query = query.where(Movement.movement_type == filters.movement_type)
        if filters.performed_by:
            query = query.where(Movement.performed_by == filters.performed_by)
        if filters.purchase_order_id:
            query = query.where(Movement.purchase_order_id == filters.purchase_order_id)
        if filters.start_date:
            start = filters.start_date
            if not isinstance(start, datetime):
                start = datetime.combine(start, time.min)
            query = query.where(Movement.movement_date >= start)
        if filters.end_date:
            end = filters.end_date
            if isinstance(end, datetime):
                query = query.where(Movement.movement_date <= end)
            else:
                query = query.where(Movement.movement_date < datetime.combine(end + timedelta(days=1), time.min))
        if filters.search:
            like = f"%{filters.search}%"
            query = query.where(
                or_(
                    Movement.movement_number.ilike(like),
                    Movement.reason.ilike(like),
                    Movement.notes.ilike(like),
                )
            )
        return query
