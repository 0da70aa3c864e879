from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, select

from app.stockledger.db.models import Batch, StockRecord


@dataclass(frozen=True)
class StockRecordQueryFilters:
    product_id: str | None = None
    batch_id: str | None = None
    location_id: str | None = None
    has_location: bool | None = None
    in_stock: bool | None = None


class StockRecordRepository:
    def __init__(self, db):
        self.db = db

    def get(self, record_id, *, for_update: bool = False) -> StockRecord | None:
        query = select(StockRecord).where(StockRecord.id == record_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(query).scalars().first()

    def get_by_batch(self, batch_id) -> StockRecord | None:
        return self.db.execute(select(StockRecord).where(StockRecord.batch_id == batch_id)).scalars().first()

    def get_by_location(self, location_id) -> StockRecord | None:
        return (
            self.db.execute(select(StockRecord).where(StockRecord.location_id == location_id))
            .scalars()
            .first()
        )

    def occupied_on_hand(self, location_id, *, exclude_record_id=None) -> int:
        query = select(func.coalesce(func.sum(StockRecord.quantity_on_hand), 0)).where(
            StockRecord.location_id == location_id
        )
        if exclude_record_id is not None:
            query = query.where(StockRecord.id != exclude_record_id)
        return int(self.db.execute(query).scalar_one() or 0)

    def list_with_batches(self, record_ids=None) -> list[tuple[StockRecord, Batch]]:
        query = select(StockRecord, Batch).join(Batch, Batch.id == StockRecord.batch_id)
        if record_ids is not None:
            query = query.where(StockRecord.id.in_(list(record_ids)))
        return self.db.execute(query).all()

    def list_records(
        self,
        filters: StockRecordQueryFilters,
        *,
        page: int,
        page_size: int,
    ) -> tuple[list[tuple[StockRecord, Batch]], int]:
        query = select(StockRecord, Batch).join(Batch, Batch.id == StockRecord.batch_id)
        if filters.product_id:
            query = query.where(Batch.product_id == filters.product_id)
        if filters.batch_id:
            query = query.where(StockRecord.batch_id == filters.batch_id)
        if filters.location_id:
            query = query.where(StockRecord.location_id == filters.location_id)
        if filters.has_location is True:
            query = query.where(StockRecord.location_id.is_not(None))
        elif filters.has_location is False:
            query = query.where(StockRecord.location_id.is_(None))
        if filters.in_stock is True:
            query = query.where((StockRecord.quantity_on_hand + StockRecord.quantity_on_shelf) > 0)
        elif filters.in_stock is False:
            query = query.where((StockRecord.quantity_on_hand + StockRecord.quantity_on_shelf) == 0)
        total = self.db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
        query = query.order_by(Batch.expiry_date.asc(), Batch.batch_code.asc())
        rows = self.db.execute(query.offset((page - 1) * page_size).limit(page_size)).all()
        return rows, int(total)

    def add(self, record: StockRecord) -> StockRecord:
        self.db.add(record)
        self.db.flush()
        return record

    def delete(self, record: StockRecord) -> None:
        self.db.delete(record)
        self.db.flush()
