from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, or_, select

from app.stockledger.db.models import Location, StockRecord


@dataclass(frozen=True)
class LocationQueryFilters:
    is_active: bool | None = None
    search: str | None = None
    occupancy: str | None = None


class LocationRepository:
    def __init__(self, db):
        self.db = db

    def get(self, location_id, *, for_update: bool = False) -> Location | None:
        query = select(Location).where(Location.id == location_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(query).scalars().first()

    def get_by_name(self, name: str) -> Location | None:
        return self.db.execute(select(Location).where(Location.name == name)).scalars().first()

    def add(self, location: Location) -> Location:
        self.db.add(location)
        self.db.flush()
        return location

    def delete(self, location: Location) -> None:
        self.db.delete(location)
        self.db.flush()

    def list_locations(
        self, filters: LocationQueryFilters, *, page: int, page_size: int
    ) -> tuple[list[Location], int]:
        query = select(Location)
        if filters.is_active is not None:
            query = query.where(Location.is_active.is_(filters.is_active))
        if filters.search:
            like = f"%{filters.search}%"
            query = query.where(or_(Location.name.ilike(like), Location.location_code.ilike(like)))
        occupied = select(StockRecord.location_id).where(StockRecord.location_id.is_not(None))
        if filters.occupancy == "occupied":
            query = query.where(Location.id.in_(occupied))
        elif filters.occupancy == "available":
            query = query.where(Location.is_active.is_(True), Location.id.not_in(occupied))
        total = self.db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
        query = query.order_by(Location.name.asc())
        rows = self.db.execute(query.offset((page - 1) * page_size).limit(page_size)).scalars().all()
        return rows, int(total)
