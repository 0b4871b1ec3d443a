"""
Account service - sign in, sign up and profiles
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from ..domain.documents import user_from_document, user_to_document
from ..domain.models import AuthSession, UserProfile, UserRole
from ..domain.repositories import IUserRepository
from ..domain.validation import validate_new_password, validate_signup
from ..errors import AuthError, NotFoundError, PermissionDeniedError, ValidationError
from ..infrastructure.identity import IdentityClient, IdentityUser

logger = logging.getLogger(__name__)

EDITABLE_PROFILE_FIELDS = {"name", "phone", "student_id", "avatar"}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AuthService:
    """Authentication against the identity provider plus stored profiles"""

    def __init__(self, identity: IdentityClient, users: IUserRepository):
        self.identity = identity
        self.users = users

    async def _ensure_profile(self, user_id: str, email: str, name: Optional[str] = None,
                              avatar: Optional[str] = None) -> UserProfile:
        document = await self.users.find_by_id(user_id)
        if document is not None:
            return user_from_document(document)
        profile = UserProfile(
            id=user_id,
            email=email,
            name=name or email.split("@")[0],
            role=UserRole.USER,
            avatar=avatar,
            created_at=_now(),
            last_login=_now(),
        )
        await self.users.create(user_to_document(profile))
        logger.info(f"Created profile for {user_id}")
        return profile

    async def _touch_login(self, profile: UserProfile) -> UserProfile:
        document = await self.users.update(profile.id, {"last_login": _now()})
        return user_from_document(document) if document is not None else profile

    async def login(self, email: str, password: str) -> Tuple[AuthSession, UserProfile]:
        session = await self.identity.sign_in(email.strip(), password)
        profile = await self._ensure_profile(session.user_id, session.email)
        return session, await self._touch_login(profile)

    async def login_with_id_token(self, id_token: str) -> Tuple[AuthSession, UserProfile]:
        """Federated sign in; first sign in creates a regular user profile"""
        session = await self.identity.sign_in_with_id_token(id_token)
        profile = await self._ensure_profile(session.user_id, session.email)
        return session, await self._touch_login(profile)

    async def signup(
        self,
        email: str,
        password: str,
        name: str,
        role: UserRole = UserRole.USER,
        student_id: Optional[str] = None,
    ) -> Tuple[AuthSession, UserProfile]:
        """
        Create an account and its profile.

        Only ``user`` and ``manager`` can be chosen at signup; admin roles
        are granted by an existing admin.
        """
        validate_signup(email, password, name, role)
        session = await self.identity.sign_up(email.strip(), password)
        try:
            await self.identity.update_profile(session.id_token, name.strip())
        except AuthError as e:
            logger.warning(f"Could not set display name for {session.user_id}: {e.kind.value}")

        now = _now()
        profile = UserProfile(
            id=session.user_id,
            email=session.email or email.strip(),
            name=name.strip(),
            role=role,
            student_id=student_id,
            created_at=now,
            last_login=now,
        )
        await self.users.create(user_to_document(profile))
        return session, profile

    async def request_password_reset(self, email: str) -> None:
        await self.identity.send_password_reset(email.strip())

    async def confirm_password_reset(self, code: str, new_password: str) -> None:
        if not code:
            raise ValidationError({"code": "Invalid or missing reset code."})
        validate_new_password(new_password)
        await self.identity.confirm_password_reset(code, new_password)

    async def authenticate(self, id_token: str) -> UserProfile:
        """Resolve a bearer token to the caller's profile"""
        identity_user: IdentityUser = await self.identity.verify_token(id_token)
        return await self._ensure_profile(
            identity_user.user_id,
            identity_user.email,
            identity_user.display_name,
            identity_user.photo_url,
        )

    async def get_profile(self, user_id: str) -> UserProfile:
        document = await self.users.find_by_id(user_id)
        if document is None:
            raise NotFoundError(f"User {user_id} not found")
        return user_from_document(document)

    async def update_profile(self, user: UserProfile, changes: Dict[str, Any]) -> UserProfile:
        unknown = set(changes) - EDITABLE_PROFILE_FIELDS
        if unknown:
            raise ValidationError({field: "Field cannot be changed" for field in sorted(unknown)})
        if "name" in changes and not (changes["name"] or "").strip():
            raise ValidationError({"name": "Name is required"})
        document = await self.users.update(user.id, changes)
        if document is None:
            raise NotFoundError(f"User {user.id} not found")
        return user_from_document(document)

    async def set_role(self, admin: UserProfile, user_id: str, role: UserRole) -> UserProfile:
        if not admin.has_role(UserRole.ADMIN):
            raise PermissionDeniedError("Only admins can change roles")
        document = await self.users.update(user_id, {"role": UserRole(role).value})
        if document is None:
            raise NotFoundError(f"User {user_id} not found")
        return user_from_document(document)
