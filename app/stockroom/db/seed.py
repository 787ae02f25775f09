from sqlalchemy import select

from app.stockroom.core.config import settings
from app.stockroom.core.states import LocationKind
from app.stockroom.db.models import Location


DEFAULT_LOCATIONS = (
    (settings.DEFAULT_WAREHOUSE_CODE, settings.DEFAULT_WAREHOUSE_NAME, LocationKind.WAREHOUSE),
    (settings.DEFAULT_OUTLET_CODE, settings.DEFAULT_OUTLET_NAME, LocationKind.OUTLET),
)


def _get_or_create_location(db, code: str, name: str, kind: LocationKind) -> Location:
    location = db.execute(select(Location).where(Location.code == code)).scalars().first()
    if location:
        return location
    location = Location(code=code, name=name, kind=kind.value, is_active=True)
    db.add(location)
    db.flush()
    return location


def run_seed(db) -> dict[str, Location]:
    seeded = {}
    for code, name, kind in DEFAULT_LOCATIONS:
        seeded[code] = _get_or_create_location(db, code, name, kind)
    db.commit()
    return seeded
