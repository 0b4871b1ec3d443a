"""
Admin routes
"""
from fastapi import APIRouter, Depends

from ...application.accounts import AuthService
from ...application.services import HostelService
from ...domain.models import UserProfile, UserRole
from ...schemas import HostelResponse, MessageResponse, RoleUpdate, UserResponse
from ..dependencies import get_auth_service, get_hostel_service, require_role


router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


@router.post("/hostels/{hostel_id}/verify", response_model=HostelResponse)
async def verify_hostel(
    hostel_id: str,
    admin: UserProfile = Depends(require_role(UserRole.ADMIN)),
    hostel_service: HostelService = Depends(get_hostel_service),
):
    """Mark a listing as verified"""
    return HostelResponse.from_hostel(await hostel_service.verify_hostel(hostel_id, admin))


@router.delete("/hostels/{hostel_id}", response_model=MessageResponse)
async def delete_hostel(
    hostel_id: str,
    admin: UserProfile = Depends(require_role(UserRole.ADMIN)),
    hostel_service: HostelService = Depends(get_hostel_service),
):
    """Delete a listing with its reviews and favorites"""
    await hostel_service.delete_hostel(hostel_id, admin)
    return MessageResponse(message="Hostel deleted")


@router.put("/users/{user_id}/role", response_model=UserResponse)
async def set_user_role(
    user_id: str,
    request: RoleUpdate,
    admin: UserProfile = Depends(require_role(UserRole.ADMIN)),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Grant a role"""
    return UserResponse.model_validate(await auth_service.set_role(admin, user_id, request.role))
