from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from sqlalchemy import func, or_, select

from app.stockledger.db.models import Batch


@dataclass(frozen=True)
class BatchQueryFilters:
    product_id: str | None = None
    status: str | None = None
    search: str | None = None
    expires_before: date | None = None
    expires_after: date | None = None


class BatchRepository:
    def __init__(self, db):
        self.db = db

    def get(self, batch_id) -> Batch | None:
        return self.db.execute(select(Batch).where(Batch.id == batch_id)).scalars().first()

    def get_by_code(self, batch_code: str) -> Batch | None:
        return self.db.execute(select(Batch).where(Batch.batch_code == batch_code)).scalars().first()

    def add(self, batch: Batch) -> Batch:
        self.db.add(batch)
        self.db.flush()
        return batch

    def delete(self, batch: Batch) -> None:
        self.db.delete(batch)
        self.db.flush()

    def list_batches(self, filters: BatchQueryFilters, *, page: int, page_size: int) -> tuple[list[Batch], int]:
        query = select(Batch)
        if filters.product_id:
            query = query.where(Batch.product_id == filters.product_id)
        if filters.status:
            query = query.where(Batch.status == filters.status)
        if filters.search:
            like = f"%{filters.search}%"
            query = query.where(or_(Batch.batch_code.ilike(like), Batch.notes.ilike(like)))
        if filters.expires_before:
            query = query.where(Batch.expiry_date <= filters.expires_before)
        if filters.expires_after:
            query = query.where(Batch.expiry_date >= filters.expires_after)
        total = self.db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
        query = query.order_by(Batch.created_at.desc(), Batch.batch_code.asc())
        rows = self.db.execute(query.offset((page - 1) * page_size).limit(page_size)).scalars().all()
        return rows, int(total)
