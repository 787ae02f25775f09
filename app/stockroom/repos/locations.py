from sqlalchemy import select

from app.stockroom.db.models import Location


class LocationRepository:
    def __init__(self, db):
        self.db = db

    def get_by_id(self, location_id) -> Location | None:
        return self.db.get(Location, location_id)

    def get_by_code(self, code: str) -> Location | None:
        return self.db.execute(select(Location).where(Location.code == code)).scalars().first()

    def list_locations(self, *, kind: str | None = None, is_active: bool | None = None) -> list[Location]:
        stmt = select(Location)
        if kind:
            stmt = stmt.where(Location.kind == kind)
        if is_active is not None:
            stmt = stmt.where(Location.is_active.is_(is_active))
        return self.db.execute(stmt.order_by(Location.code.asc())).scalars().all()

    def add(self, location: Location) -> Location:
        self.db.add(location)
        self.db.flush()
        return location
