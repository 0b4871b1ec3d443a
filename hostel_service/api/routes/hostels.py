"""
Hostel routes
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ...application.preferences import PreferenceStore
from ...application.services import HostelService, SearchService
from ...config import settings
from ...container import Container
from ...domain.models import GeoPoint, UserProfile, UserRole
from ...geo import Bounds
from ...schemas import (
    BoundsSchema, HostelCreate, HostelListRequest, HostelPageRequest,
    HostelPageResponse, HostelResponse, HostelUpdate, MapHostelsResponse,
    QueryViewResponse,
)
from ..dependencies import (
    get_container, get_current_user_optional, get_hostel_service,
    get_preference_store, get_search_service, require_role,
)


router = APIRouter(prefix="/api/v1/hostels", tags=["Hostels"])


async def _remember(request: HostelListRequest, user: Optional[UserProfile], container: Container) -> None:
    if request.remember and user is not None:
        store = await container.preferences.get(user.id)
        store.set_filters(request.filters.to_model())
        store.set_sort_by(request.sort)


@router.post("/query", response_model=QueryViewResponse)
async def query_hostels(
    request: HostelListRequest,
    hostel_service: HostelService = Depends(get_hostel_service),
    user: Optional[UserProfile] = Depends(get_current_user_optional),
    container: Container = Depends(get_container),
):
    """
    Hostels matching filters, from the shared cache

    - **filters**: Constraints; omitted fields do not constrain
    - **sort**: rating-desc, price-asc, price-desc, newest or popularity
    - **remember**: Save filters and sort to the caller's preferences
    """
    filters = request.filters.to_model()
    await _remember(request, user, container)
    view = await hostel_service.list_hostels(filters, request.sort)
    return QueryViewResponse.from_view(view)


@router.post("/query/more", response_model=QueryViewResponse)
async def load_more_hostels(
    request: HostelListRequest,
    hostel_service: HostelService = Depends(get_hostel_service),
):
    """
    Append the next page to the cached list

    No-op when a page is already loading or the list is exhausted.
    """
    view = await hostel_service.load_more(request.filters.to_model(), request.sort)
    return QueryViewResponse.from_view(view)


@router.post("/query/refresh", response_model=QueryViewResponse)
async def refresh_hostels(
    request: HostelListRequest,
    hostel_service: HostelService = Depends(get_hostel_service),
):
    """Discard cached pages and refetch the first page"""
    view = await hostel_service.refresh(request.filters.to_model(), request.sort)
    return QueryViewResponse.from_view(view)


@router.post("/query/retry", response_model=QueryViewResponse)
async def retry_hostels(
    request: HostelListRequest,
    hostel_service: HostelService = Depends(get_hostel_service),
):
    """Retry a list that is in the error state"""
    view = await hostel_service.retry(request.filters.to_model(), request.sort)
    return QueryViewResponse.from_view(view)


@router.get("/preferred", response_model=QueryViewResponse)
async def preferred_hostels(
    store: PreferenceStore = Depends(get_preference_store),
    hostel_service: HostelService = Depends(get_hostel_service),
):
    """Hostels for the caller's saved filters and sort"""
    prefs = store.preferences
    view = await hostel_service.list_hostels(prefs.filters, prefs.sort_by)
    return QueryViewResponse.from_view(view)


@router.post("/page", response_model=HostelPageResponse)
async def hostel_page(
    request: HostelPageRequest,
    hostel_service: HostelService = Depends(get_hostel_service),
):
    """
    One page with an explicit cursor

    - **page_size**: 1-50
    - **cursor**: Cursor from the previous page; omit for the first page
    """
    page = await hostel_service.fetch_page(
        request.filters.to_model(), request.sort, request.page_size, request.cursor
    )
    return HostelPageResponse.from_page(page)


@router.get("/search", response_model=List[HostelResponse])
async def search_hostels(
    q: str = Query(..., description="Search term"),
    search_service: SearchService = Depends(get_search_service),
    user: Optional[UserProfile] = Depends(get_current_user_optional),
    container: Container = Depends(get_container),
):
    """
    Search by name, location, description or amenity

    Terms shorter than three characters return no results.
    """
    results = await search_service.search(q)
    if user is not None and len(q.strip()) >= settings.SEARCH_MIN_LENGTH:
        store = await container.preferences.get(user.id)
        store.add_recent_search(q)
    return [HostelResponse.from_hostel(h) for h in results]


@router.get("/nearby", response_model=List[HostelResponse])
async def nearby_hostels(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(settings.NEARBY_RADIUS_KM, gt=0, le=50),
    hostel_service: HostelService = Depends(get_hostel_service),
):
    """Hostels within a radius, nearest first"""
    hostels = await hostel_service.nearby(GeoPoint(lat, lng), radius_km)
    return [HostelResponse.from_hostel(h) for h in hostels]


@router.get("/in-bounds", response_model=MapHostelsResponse)
async def hostels_in_bounds(
    north: float = Query(..., ge=-90, le=90),
    south: float = Query(..., ge=-90, le=90),
    east: float = Query(..., ge=-180, le=180),
    west: float = Query(..., ge=-180, le=180),
    hostel_service: HostelService = Depends(get_hostel_service),
):
    """Hostels inside a map viewport, with bounds fitted to the results"""
    hostels = await hostel_service.in_bounds(Bounds(north=north, south=south, east=east, west=west))
    fitted = hostel_service.fit_bounds(hostels)
    return MapHostelsResponse(
        items=[HostelResponse.from_hostel(h) for h in hostels],
        bounds=BoundsSchema.model_validate(fitted) if fitted else None,
    )


@router.get("/{hostel_id}", response_model=HostelResponse)
async def get_hostel(
    hostel_id: str,
    hostel_service: HostelService = Depends(get_hostel_service),
):
    """Hostel details; counts a view"""
    hostel = await hostel_service.get_hostel(hostel_id)
    hostel_service.record_view(hostel_id)
    return HostelResponse.from_hostel(hostel)


@router.post("", response_model=HostelResponse, status_code=status.HTTP_201_CREATED)
async def create_hostel(
    data: HostelCreate,
    user: UserProfile = Depends(require_role(UserRole.MANAGER, UserRole.ADMIN)),
    hostel_service: HostelService = Depends(get_hostel_service),
):
    """
    Create a hostel listing

    - Requires manager or admin role
    - New listings start unverified
    """
    hostel = await hostel_service.create_hostel(data.to_data(), user)
    return HostelResponse.from_hostel(hostel)


@router.patch("/{hostel_id}", response_model=HostelResponse)
async def update_hostel(
    hostel_id: str,
    changes: HostelUpdate,
    user: UserProfile = Depends(require_role(UserRole.MANAGER, UserRole.ADMIN)),
    hostel_service: HostelService = Depends(get_hostel_service),
):
    """
    Update a hostel listing

    - Managers may edit only their own listings
    """
    hostel = await hostel_service.update_hostel(hostel_id, changes.to_changes(), user)
    return HostelResponse.from_hostel(hostel)
