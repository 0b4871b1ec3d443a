"""
Preference routes
"""
from fastapi import APIRouter, Depends

from ...application.preferences import PreferenceStore
from ...schemas import PreferencesResponse, PreferencesUpdate, RecentSearchRequest
from ..dependencies import get_preference_store


router = APIRouter(prefix="/api/v1/preferences", tags=["Preferences"])


@router.get("", response_model=PreferencesResponse)
async def get_preferences(store: PreferenceStore = Depends(get_preference_store)):
    """Theme, saved filters, sort, view mode and recent searches"""
    return PreferencesResponse.from_preferences(store.preferences)


@router.patch("", response_model=PreferencesResponse)
async def update_preferences(
    changes: PreferencesUpdate,
    store: PreferenceStore = Depends(get_preference_store),
):
    """Update any subset of preferences"""
    if changes.theme is not None:
        store.set_theme(changes.theme)
    if changes.filters is not None:
        store.set_filters(changes.filters.to_model())
    if changes.sort_by is not None:
        store.set_sort_by(changes.sort_by)
    if changes.view_mode is not None:
        store.set_view_mode(changes.view_mode)
    if changes.has_seen_onboarding is not None:
        store.set_has_seen_onboarding(changes.has_seen_onboarding)
    return PreferencesResponse.from_preferences(store.preferences)


@router.post("/recent-searches", response_model=PreferencesResponse)
async def add_recent_search(
    request: RecentSearchRequest,
    store: PreferenceStore = Depends(get_preference_store),
):
    """Move a term to the front of recent searches"""
    return PreferencesResponse.from_preferences(store.add_recent_search(request.term))


@router.delete("/recent-searches", response_model=PreferencesResponse)
async def clear_recent_searches(store: PreferenceStore = Depends(get_preference_store)):
    return PreferencesResponse.from_preferences(store.clear_recent_searches())


@router.post("/filters/reset", response_model=PreferencesResponse)
async def reset_filters(store: PreferenceStore = Depends(get_preference_store)):
    """Back to the default filters"""
    return PreferencesResponse.from_preferences(store.reset_filters())


@router.post("/reset", response_model=PreferencesResponse)
async def reset_preferences(store: PreferenceStore = Depends(get_preference_store)):
    return PreferencesResponse.from_preferences(store.reset())
