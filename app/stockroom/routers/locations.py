from uuid import UUID

from fastapi import APIRouter, Depends, Request

from app.stockroom.core.deps import require_actor
from app.stockroom.core.states import LocationKind
from app.stockroom.db.models import Location
from app.stockroom.db.session import get_db
from app.stockroom.schemas.locations import (
    LocationActionRequest,
    LocationCreateRequest,
    LocationListResponse,
    LocationResponse,
)
from app.stockroom.services.audit import AuditService
from app.stockroom.services.locations import LocationRegistry

router = APIRouter()


def _location_response(location: Location) -> LocationResponse:
    return LocationResponse(
        id=str(location.id),
        code=location.code,
        name=location.name,
        kind=location.kind,
        is_active=location.is_active,
        created_at=location.created_at,
    )


@router.get("/stockroom/locations", response_model=LocationListResponse)
def list_locations(
    kind: LocationKind | None = None,
    is_active: bool | None = None,
    db=Depends(get_db),
):
    rows = LocationRegistry(db).list_locations(kind=kind, is_active=is_active)
    return LocationListResponse(rows=[_location_response(row) for row in rows])


@router.post(
    "/stockroom/locations",
    response_model=LocationResponse,
    status_code=201,
    dependencies=[Depends(require_actor)],
)
def register_location(
    request: Request,
    payload: LocationCreateRequest,
    db=Depends(get_db),
):
    location = LocationRegistry(db).register(code=payload.code, name=payload.name, kind=LocationKind(payload.kind))
    response = _location_response(location)
    AuditService(db).record_success(
        request,
        action="location.register",
        entity_type="location",
        entity_id=response.id,
        after=response.model_dump(mode="json"),
    )
    return response


@router.get("/stockroom/locations/{location_id}", response_model=LocationResponse)
def get_location(location_id: UUID, db=Depends(get_db)):
    return _location_response(LocationRegistry(db).resolve(location_id))


@router.post(
    "/stockroom/locations/{location_id}/actions",
    response_model=LocationResponse,
    dependencies=[Depends(require_actor)],
)
def location_actions(
    location_id: UUID,
    request: Request,
    payload: LocationActionRequest,
    db=Depends(get_db),
):
    registry = LocationRegistry(db)
    before = _location_response(registry.resolve(location_id)).model_dump(mode="json")
    location = registry.set_active(location_id, payload.action == "activate")
    response = _location_response(location)
    AuditService(db).record_success(
        request,
        action=f"location.{payload.action}",
        entity_type="location",
        entity_id=response.id,
        before=before,
        after=response.model_dump(mode="json"),
    )
    return response
