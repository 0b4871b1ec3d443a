"""
FastAPI dependencies
"""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..application.accounts import AuthService
from ..application.favorites import FavoriteService
from ..application.media import MediaService
from ..application.notifications import NotificationCenter
from ..application.preferences import PreferenceStore
from ..application.services import HostelService, ReviewService, SearchService
from ..container import Container
from ..domain.models import UserProfile, UserRole
from ..errors import AuthError, AuthErrorKind, PermissionDeniedError

# Security scheme
security = HTTPBearer(auto_error=False)


def get_container(request: Request) -> Container:
    """Container built during application startup"""
    return request.app.state.container


def get_hostel_service(container: Container = Depends(get_container)) -> HostelService:
    return container.hostels


def get_search_service(container: Container = Depends(get_container)) -> SearchService:
    return container.search


def get_review_service(container: Container = Depends(get_container)) -> ReviewService:
    return container.reviews


def get_favorite_service(container: Container = Depends(get_container)) -> FavoriteService:
    return container.favorites


def get_auth_service(container: Container = Depends(get_container)) -> AuthService:
    return container.auth


def get_media_service(container: Container = Depends(get_container)) -> MediaService:
    return container.media


def get_notifications(container: Container = Depends(get_container)) -> NotificationCenter:
    return container.notifications


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    auth_service: AuthService = Depends(get_auth_service),
) -> Optional[UserProfile]:
    if not credentials:
        return None
    return await auth_service.authenticate(credentials.credentials)


async def get_current_user(
    user: Optional[UserProfile] = Depends(get_current_user_optional),
) -> UserProfile:
    """
    Get current authenticated user from the bearer token

    Raises:
        AuthError: If no token was sent or the provider rejects it
    """
    if user is None:
        raise AuthError(AuthErrorKind.INVALID_TOKEN, "Not authenticated")
    return user


def require_role(*roles: UserRole):
    """Dependency factory restricting a route to the given roles"""
    async def dependency(user: UserProfile = Depends(get_current_user)) -> UserProfile:
        if not user.has_role(*roles):
            raise PermissionDeniedError("You do not have permission to perform this action")
        return user

    return dependency


async def get_preference_store(
    user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
) -> PreferenceStore:
    return await container.preferences.get(user.id)
