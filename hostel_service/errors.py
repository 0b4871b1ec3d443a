"""
Domain exceptions for Hostel Finder Service

Every boundary (auth provider, document store, mutations, geolocation,
uploads) raises one exception class carrying a closed ``kind`` so callers
can branch on it without looking at provider codes.
"""
from enum import Enum
from typing import Dict, Optional


class HostelFinderError(Exception):
    """Base class for service errors"""

    kind: Optional[Enum] = None

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthErrorKind(str, Enum):
    """Closed set of auth failures"""
    INVALID_EMAIL = "invalid-email"
    WRONG_PASSWORD = "wrong-password"
    USER_NOT_FOUND = "user-not-found"
    EMAIL_ALREADY_IN_USE = "email-already-in-use"
    WEAK_PASSWORD = "weak-password"
    TOO_MANY_REQUESTS = "too-many-requests"
    INVALID_TOKEN = "invalid-token"
    UNKNOWN = "unknown"


AUTH_ERROR_MESSAGES: Dict[AuthErrorKind, str] = {
    AuthErrorKind.INVALID_EMAIL: "Please enter a valid email address",
    AuthErrorKind.WRONG_PASSWORD: "Incorrect password",
    AuthErrorKind.USER_NOT_FOUND: "No account found with this email",
    AuthErrorKind.EMAIL_ALREADY_IN_USE: "Email already registered",
    AuthErrorKind.WEAK_PASSWORD: "Password should be at least 6 characters",
    AuthErrorKind.TOO_MANY_REQUESTS: "Too many attempts. Please try again later",
    AuthErrorKind.INVALID_TOKEN: "Your session has expired. Please sign in again",
}

GENERIC_AUTH_MESSAGE = "An error occurred. Please try again"


class AuthError(HostelFinderError):
    """Authentication failure with a user-facing message"""

    def __init__(self, kind: AuthErrorKind, message: Optional[str] = None):
        super().__init__(message or AUTH_ERROR_MESSAGES.get(kind, GENERIC_AUTH_MESSAGE))
        self.kind = kind


class FetchErrorKind(str, Enum):
    """Read path failures"""
    NETWORK = "network"
    TIMEOUT = "timeout"
    REJECTED = "rejected"
    INVALID_CURSOR = "invalid_cursor"
    UNKNOWN = "unknown"


class FetchError(HostelFinderError):
    """A query against the document store failed"""

    def __init__(self, kind: FetchErrorKind, message: str = "Failed to load data"):
        super().__init__(message)
        self.kind = kind


class MutationErrorKind(str, Enum):
    """Write path failures"""
    NETWORK = "network"
    TIMEOUT = "timeout"
    REJECTED = "rejected"
    UNKNOWN = "unknown"


class MutationError(HostelFinderError):
    """A write was not acknowledged; optimistic state has been restored"""

    def __init__(self, kind: MutationErrorKind, message: str = "Failed to save changes"):
        super().__init__(message)
        self.kind = kind


class GeolocationErrorKind(str, Enum):
    """Geolocation failures, keyed by the positioning API's numeric codes"""
    UNSUPPORTED = "unsupported"
    PERMISSION_DENIED = "permission-denied"
    POSITION_UNAVAILABLE = "position-unavailable"
    TIMEOUT = "timeout"


GEOLOCATION_ERROR_CODES: Dict[int, GeolocationErrorKind] = {
    0: GeolocationErrorKind.UNSUPPORTED,
    1: GeolocationErrorKind.PERMISSION_DENIED,
    2: GeolocationErrorKind.POSITION_UNAVAILABLE,
    3: GeolocationErrorKind.TIMEOUT,
}

GEOLOCATION_ERROR_MESSAGES: Dict[GeolocationErrorKind, str] = {
    GeolocationErrorKind.UNSUPPORTED: "Geolocation is not supported by your browser",
    GeolocationErrorKind.PERMISSION_DENIED: "Location permission denied",
    GeolocationErrorKind.POSITION_UNAVAILABLE: "Location information unavailable",
    GeolocationErrorKind.TIMEOUT: "Location request timed out",
}


class GeolocationError(HostelFinderError):
    """Positioning failure"""

    def __init__(self, kind: GeolocationErrorKind, message: Optional[str] = None):
        super().__init__(message or GEOLOCATION_ERROR_MESSAGES[kind])
        self.kind = kind

    @classmethod
    def from_code(cls, code: int) -> "GeolocationError":
        return cls(GEOLOCATION_ERROR_CODES.get(code, GeolocationErrorKind.POSITION_UNAVAILABLE))

    @property
    def retryable(self) -> bool:
        """Only unavailable and timeout are transient"""
        return self.kind in (GeolocationErrorKind.POSITION_UNAVAILABLE, GeolocationErrorKind.TIMEOUT)


class ValidationError(HostelFinderError):
    """Input failed local validation; ``errors`` maps field name to message"""

    def __init__(self, errors: Dict[str, str]):
        super().__init__("; ".join(f"{field}: {msg}" for field, msg in errors.items()))
        self.errors = dict(errors)


class MalformedRecordError(HostelFinderError):
    """A stored document does not have the expected shape"""

    def __init__(self, document_id: Optional[str], message: str):
        super().__init__(f"Malformed document {document_id}: {message}")
        self.document_id = document_id


class NotFoundError(HostelFinderError):
    """Requested resource does not exist"""


class PermissionDeniedError(HostelFinderError):
    """Caller lacks the role required for the operation"""


class UploadError(HostelFinderError):
    """Image rejected or CDN upload failed"""


class ConfigurationError(HostelFinderError):
    """Required configuration is missing"""
