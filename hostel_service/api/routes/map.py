"""
Map routes: configuration, geocoding and directions
"""
from typing import List

from fastapi import APIRouter, Depends, Query

from ...container import Container
from ...domain.models import GeoPoint
from ...errors import NotFoundError
from ...geo import CAMPUS_LOCATIONS, DEFAULT_MAP_CENTER, DEFAULT_MAP_ZOOM, MAX_ZOOM, MIN_ZOOM, location_name
from ...schemas import PlaceResponse, RouteResponse
from ..dependencies import get_container


router = APIRouter(prefix="/api/v1/map", tags=["Map"])


@router.get("/config")
async def map_config():
    """Default view and named campus points"""
    return {
        "center": {"latitude": DEFAULT_MAP_CENTER.latitude, "longitude": DEFAULT_MAP_CENTER.longitude},
        "zoom": DEFAULT_MAP_ZOOM,
        "min_zoom": MIN_ZOOM,
        "max_zoom": MAX_ZOOM,
        "locations": {
            name: {"latitude": p.latitude, "longitude": p.longitude}
            for name, p in CAMPUS_LOCATIONS.items()
        },
    }


@router.get("/area")
async def area_name(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
):
    """Campus area containing a point"""
    return {"name": location_name(lat, lng)}


@router.get("/geocode", response_model=List[PlaceResponse])
async def geocode(
    q: str = Query(..., min_length=1),
    container: Container = Depends(get_container),
):
    """Places near campus matching a query; empty when the geocoder is unavailable"""
    places = await container.geo.geocode(q)
    return [PlaceResponse.model_validate(p) for p in places]


@router.get("/route", response_model=RouteResponse)
async def route(
    from_lat: float = Query(..., ge=-90, le=90),
    from_lng: float = Query(..., ge=-180, le=180),
    to_lat: float = Query(..., ge=-90, le=90),
    to_lng: float = Query(..., ge=-180, le=180),
    container: Container = Depends(get_container),
):
    """Driving directions between two points"""
    result = await container.geo.route(GeoPoint(from_lat, from_lng), GeoPoint(to_lat, to_lng))
    if result is None:
        raise NotFoundError("Could not calculate route")
    return RouteResponse(
        distance_m=result.distance_m,
        duration_s=result.duration_s,
        distance=result.distance_text,
        duration=result.duration_text,
        geometry=result.geometry,
    )
