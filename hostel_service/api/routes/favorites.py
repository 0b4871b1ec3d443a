"""
Favorite routes
"""
from fastapi import APIRouter, Depends

from ...application.favorites import FavoriteService
from ...domain.models import UserProfile
from ...schemas import FavoritesResponse, FavoriteStatusResponse, FavoriteToggleResponse, HostelResponse
from ..dependencies import get_current_user, get_favorite_service


router = APIRouter(prefix="/api/v1/favorites", tags=["Favorites"])


@router.get("", response_model=FavoritesResponse)
async def list_favorites(
    user: UserProfile = Depends(get_current_user),
    favorite_service: FavoriteService = Depends(get_favorite_service),
):
    """Saved hostels, most recent first"""
    ids = await favorite_service.favorite_ids(user.id)
    hostels = await favorite_service.favorite_hostels(user.id)
    return FavoritesResponse(hostel_ids=ids, hostels=[HostelResponse.from_hostel(h) for h in hostels])


@router.post("/{hostel_id}/toggle", response_model=FavoriteToggleResponse)
async def toggle_favorite(
    hostel_id: str,
    user: UserProfile = Depends(get_current_user),
    favorite_service: FavoriteService = Depends(get_favorite_service),
):
    """
    Add or remove a favorite

    The change is applied to cached lists immediately and rolled back if
    the write fails.
    """
    favorited = await favorite_service.toggle(user.id, hostel_id)
    return FavoriteToggleResponse(hostel_id=hostel_id, favorited=favorited)


@router.get("/{hostel_id}", response_model=FavoriteStatusResponse)
async def favorite_status(
    hostel_id: str,
    user: UserProfile = Depends(get_current_user),
    favorite_service: FavoriteService = Depends(get_favorite_service),
):
    """Whether the hostel is saved"""
    return FavoriteStatusResponse(
        hostel_id=hostel_id,
        favorited=await favorite_service.is_favorite(user.id, hostel_id),
    )
