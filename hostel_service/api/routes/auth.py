"""
Authentication and profile routes
"""
from fastapi import APIRouter, Depends, status

from ...application.accounts import AuthService
from ...domain.models import AuthSession, UserProfile
from ...schemas import (
    AuthResponse, LoginRequest, MessageResponse, PasswordResetConfirm,
    PasswordResetRequest, ProfileUpdate, SignupRequest, TokenLoginRequest,
    UserResponse,
)
from ..dependencies import get_auth_service, get_current_user


router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])
users_router = APIRouter(prefix="/api/v1/users", tags=["Users"])


def _auth_response(session: AuthSession, profile: UserProfile) -> AuthResponse:
    return AuthResponse(
        id_token=session.id_token,
        refresh_token=session.refresh_token,
        expires_in=session.expires_in,
        user=UserResponse.model_validate(profile),
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    credentials: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Sign in with email and password

    - **email**: Account email
    - **password**: Account password
    """
    session, profile = await auth_service.login(credentials.email, credentials.password)
    return _auth_response(session, profile)


@router.post("/login/token", response_model=AuthResponse)
async def login_with_token(
    request: TokenLoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Sign in with an ID token from an external provider"""
    session, profile = await auth_service.login_with_id_token(request.id_token)
    return _auth_response(session, profile)


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    data: SignupRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Create an account

    - **name**: Display name (required)
    - **email**: Valid email address
    - **password**: At least 6 characters
    - **role**: user or manager
    """
    session, profile = await auth_service.signup(
        email=data.email,
        password=data.password,
        name=data.name,
        role=data.role,
        student_id=data.student_id,
    )
    return _auth_response(session, profile)


@router.post("/password-reset", response_model=MessageResponse)
async def request_password_reset(
    request: PasswordResetRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Email a password reset link"""
    await auth_service.request_password_reset(request.email)
    return MessageResponse(message="Password reset email sent")


@router.post("/password-reset/confirm", response_model=MessageResponse)
async def confirm_password_reset(
    request: PasswordResetConfirm,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Set a new password with the code from the reset email"""
    await auth_service.confirm_password_reset(request.code, request.new_password)
    return MessageResponse(message="Password reset successful! You can now sign in.")


@users_router.get("/me", response_model=UserResponse)
async def get_me(user: UserProfile = Depends(get_current_user)):
    """Current user's profile"""
    return UserResponse.model_validate(user)


@users_router.patch("/me", response_model=UserResponse)
async def update_me(
    changes: ProfileUpdate,
    user: UserProfile = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Update name, phone, student id or avatar"""
    profile = await auth_service.update_profile(user, changes.model_dump(exclude_unset=True))
    return UserResponse.model_validate(profile)
