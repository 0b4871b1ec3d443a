"""
Identity provider client

Talks to an identity-toolkit style REST API. Provider error codes are
mapped onto the closed AuthErrorKind set; raw codes never leave this module.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from ..config import settings
from ..domain.models import AuthSession
from ..errors import AuthError, AuthErrorKind

logger = logging.getLogger(__name__)

PROVIDER_ERROR_KINDS: Dict[str, AuthErrorKind] = {
    "EMAIL_NOT_FOUND": AuthErrorKind.USER_NOT_FOUND,
    "USER_NOT_FOUND": AuthErrorKind.USER_NOT_FOUND,
    "auth/user-not-found": AuthErrorKind.USER_NOT_FOUND,
    "INVALID_PASSWORD": AuthErrorKind.WRONG_PASSWORD,
    "INVALID_LOGIN_CREDENTIALS": AuthErrorKind.WRONG_PASSWORD,
    "auth/wrong-password": AuthErrorKind.WRONG_PASSWORD,
    "EMAIL_EXISTS": AuthErrorKind.EMAIL_ALREADY_IN_USE,
    "auth/email-already-in-use": AuthErrorKind.EMAIL_ALREADY_IN_USE,
    "WEAK_PASSWORD": AuthErrorKind.WEAK_PASSWORD,
    "auth/weak-password": AuthErrorKind.WEAK_PASSWORD,
    "INVALID_EMAIL": AuthErrorKind.INVALID_EMAIL,
    "auth/invalid-email": AuthErrorKind.INVALID_EMAIL,
    "TOO_MANY_ATTEMPTS_TRY_LATER": AuthErrorKind.TOO_MANY_REQUESTS,
    "auth/too-many-requests": AuthErrorKind.TOO_MANY_REQUESTS,
    "INVALID_ID_TOKEN": AuthErrorKind.INVALID_TOKEN,
    "TOKEN_EXPIRED": AuthErrorKind.INVALID_TOKEN,
    "USER_DISABLED": AuthErrorKind.INVALID_TOKEN,
}


def map_provider_error(code: Optional[str]) -> AuthErrorKind:
    """Provider code such as ``WEAK_PASSWORD : details`` to an error kind"""
    if not code:
        return AuthErrorKind.UNKNOWN
    base = code.split(" : ", 1)[0].strip()
    return PROVIDER_ERROR_KINDS.get(base, AuthErrorKind.UNKNOWN)


@dataclass(frozen=True)
class IdentityUser:
    """Account as known to the identity provider"""
    user_id: str
    email: str
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    email_verified: bool = False


class IdentityClient:
    """HTTP client for the identity provider"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.IDENTITY_API_KEY
        self.base_url = (base_url or settings.IDENTITY_API_URL).rstrip("/")
        self.timeout = httpx.Timeout(10.0, connect=5.0)
        self.transport = transport
        self.client: Optional[httpx.AsyncClient] = None

    async def start(self):
        """Initialize HTTP client"""
        self.client = httpx.AsyncClient(timeout=self.timeout, transport=self.transport)
        logger.info("Identity client initialized")

    async def stop(self):
        """Close HTTP client"""
        if self.client:
            await self.client.aclose()
            self.client = None
            logger.info("Identity client closed")

    async def _call(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.client:
            raise AuthError(AuthErrorKind.UNKNOWN)
        url = f"{self.base_url}/accounts:{method}"
        try:
            response = await self.client.post(url, params={"key": self.api_key}, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Identity request {method} failed: {e}")
            raise AuthError(AuthErrorKind.UNKNOWN)

        if response.status_code >= 400:
            try:
                code = response.json().get("error", {}).get("message")
            except ValueError:
                code = None
            kind = map_provider_error(code)
            logger.info(f"Identity {method} rejected: {kind.value}")
            raise AuthError(kind)
        return response.json()

    @staticmethod
    def _session(data: Dict[str, Any]) -> AuthSession:
        return AuthSession(
            user_id=data["localId"],
            email=data.get("email", ""),
            id_token=data["idToken"],
            refresh_token=data.get("refreshToken", ""),
            expires_in=int(data.get("expiresIn", 3600)),
        )

    async def sign_in(self, email: str, password: str) -> AuthSession:
        data = await self._call("signInWithPassword", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        return self._session(data)

    async def sign_up(self, email: str, password: str) -> AuthSession:
        data = await self._call("signUp", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        return self._session(data)

    async def sign_in_with_id_token(self, id_token: str, provider_id: str = "google.com") -> AuthSession:
        """Federated sign in with a token issued by an external provider"""
        data = await self._call("signInWithIdp", {
            "postBody": f"id_token={id_token}&providerId={provider_id}",
            "requestUri": "http://localhost",
            "returnSecureToken": True,
            "returnIdpCredential": True,
        })
        return self._session(data)

    async def send_password_reset(self, email: str) -> None:
        await self._call("sendOobCode", {"requestType": "PASSWORD_RESET", "email": email})

    async def confirm_password_reset(self, code: str, new_password: str) -> str:
        """Complete a reset; returns the account email"""
        data = await self._call("resetPassword", {"oobCode": code, "newPassword": new_password})
        return data.get("email", "")

    async def update_profile(self, id_token: str, display_name: str) -> None:
        await self._call("update", {"idToken": id_token, "displayName": display_name})

    async def verify_token(self, id_token: str) -> IdentityUser:
        """Resolve an ID token to its account; AuthError(INVALID_TOKEN) when rejected"""
        data = await self._call("lookup", {"idToken": id_token})
        users = data.get("users") or []
        if not users:
            raise AuthError(AuthErrorKind.INVALID_TOKEN)
        user = users[0]
        return IdentityUser(
            user_id=user["localId"],
            email=user.get("email", ""),
            display_name=user.get("displayName"),
            photo_url=user.get("photoUrl"),
            email_verified=bool(user.get("emailVerified", False)),
        )
