from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response

from app.stockledger.core.context import get_request_context
from app.stockledger.db.session import get_db
from app.stockledger.repos.locations import LocationQueryFilters
from app.stockledger.schemas.common import page_fields
from app.stockledger.schemas.locations import (
    LocationCreateRequest,
    LocationListResponse,
    LocationResponse,
    LocationUpdateRequest,
)
from app.stockledger.services.locations import LocationOccupancy, LocationService


router = APIRouter()


def _location_response(occupancy: LocationOccupancy) -> LocationResponse:
    location = occupancy.location
    return LocationResponse(
        id=location.id,
        location_code=location.location_code,
        name=location.name,
        max_capacity=location.max_capacity,
        is_active=location.is_active,
        notes=location.notes,
        is_occupied=occupancy.is_occupied,
        occupied_by=occupancy.occupied_by,
        occupied_quantity=occupancy.occupied_quantity,
        free_capacity=occupancy.free_capacity,
        version=location.version,
        created_at=location.created_at,
        updated_at=location.updated_at,
    )


@router.post("/api/locations", response_model=LocationResponse, status_code=201)
def create_location(payload: LocationCreateRequest, request: Request, db=Depends(get_db)):
    service = LocationService(db, get_request_context(request))
    location = service.create_location(**payload.model_dump())
    return _location_response(service.get_location(location.id))


@router.get("/api/locations", response_model=LocationListResponse)
def list_locations(
    db=Depends(get_db),
    is_active: bool | None = None,
    search: str | None = None,
    occupancy: str | None = Query(None, pattern="^(available|occupied)$"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
):
    filters = LocationQueryFilters(is_active=is_active, search=search, occupancy=occupancy)
    rows, total = LocationService(db).list_locations(filters, page=page, page_size=page_size)
    return LocationListResponse(
        items=[_location_response(row) for row in rows],
        **page_fields(page, page_size, total),
    )


@router.get("/api/locations/{location_id}", response_model=LocationResponse)
def get_location(location_id: UUID, db=Depends(get_db)):
    return _location_response(LocationService(db).get_location(location_id))


@router.patch("/api/locations/{location_id}", response_model=LocationResponse)
def update_location(location_id: UUID, payload: LocationUpdateRequest, request: Request, db=Depends(get_db)):
    service = LocationService(db, get_request_context(request))
    service.update_location(location_id, payload.model_dump(exclude_unset=True))
    return _location_response(service.get_location(location_id))


@router.post("/api/locations/{location_id}/activate", response_model=LocationResponse)
def activate_location(location_id: UUID, request: Request, db=Depends(get_db)):
    service = LocationService(db, get_request_context(request))
    service.set_active(location_id, True)
    return _location_response(service.get_location(location_id))


@router.post("/api/locations/{location_id}/deactivate", response_model=LocationResponse)
def deactivate_location(location_id: UUID, request: Request, db=Depends(get_db)):
    service = LocationService(db, get_request_context(request))
    service.set_active(location_id, False)
    return _location_response(service.get_location(location_id))


@router.delete("/api/locations/{location_id}", status_code=204)
def delete_location(location_id: UUID, request: Request, db=Depends(get_db)):
    LocationService(db, get_request_context(request)).delete_location(location_id)
    return Response(status_code=204)
