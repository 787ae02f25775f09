import logging
import uuid

from app.stockroom.core.error_catalog import AppError, ErrorCatalog
from app.stockroom.core.logging import log_event
from app.stockroom.core.states import LocationKind
from app.stockroom.db.models import Location
from app.stockroom.db.session import transaction
from app.stockroom.repos.locations import LocationRepository

logger = logging.getLogger(__name__)


def as_uuid(value, *, field_name: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise AppError(
            ErrorCatalog.NOT_FOUND,
            details={"message": f"{field_name} is not a known identifier", field_name: str(value)},
        ) from None


class LocationRegistry:
    """Resolves warehouse/outlet identity for the stock core."""

    def __init__(self, db):
        self.db = db
        self.repo = LocationRepository(db)

    def resolve(self, location_id, *, field_name: str = "location_id") -> Location:
        location = self.repo.get_by_id(as_uuid(location_id, field_name=field_name))
        if location is None:
            raise AppError(
                ErrorCatalog.NOT_FOUND,
                details={"message": "location not found", field_name: str(location_id)},
            )
        return location

    def require_active(self, location_id, *, field_name: str) -> Location:
        location = self.resolve(location_id, field_name=field_name)
        if not location.is_active:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": f"{field_name} refers to an inactive location", field_name: str(location.id)},
            )
        return location

    def list_locations(self, *, kind: LocationKind | None = None, is_active: bool | None = None) -> list[Location]:
        return self.repo.list_locations(kind=kind.value if kind else None, is_active=is_active)

    def register(self, *, code: str, name: str, kind: LocationKind) -> Location:
        code = (code or "").strip().upper()
        name = (name or "").strip()
        if not code or not name:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "code and name are required"},
            )
        with transaction(self.db):
            if self.repo.get_by_code(code):
                raise AppError(
                    ErrorCatalog.VALIDATION_ERROR,
                    details={"message": "location code already registered", "code": code},
                )
            location = self.repo.add(Location(code=code, name=name, kind=kind.value, is_active=True))
        log_event(logger, "location.registered", location_id=str(location.id), code=code, kind=kind.value)
        return location

    def set_active(self, location_id, is_active: bool) -> Location:
        with transaction(self.db):
            location = self.resolve(location_id)
            location.is_active = is_active
        log_event(logger, "location.status_changed", location_id=str(location.id), is_active=is_active)
        return location
