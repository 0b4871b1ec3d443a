"""
Configuration settings for Hostel Finder Service
"""
from pydantic_settings import BaseSettings
from typing import List, Literal

from .errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "UCC Hostel Finder Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8010

    # Document store
    STORE_BACKEND: Literal["mongodb", "memory"] = "mongodb"
    MONGODB_URL: str = "mongodb://localhost:27017"
    MONGODB_DATABASE: str = "ucc_hostel_finder"

    # Preference storage
    PREFERENCES_BACKEND: Literal["redis", "memory"] = "redis"
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 2
    REDIS_PASSWORD: str = ""
    PREFERENCES_KEY_PREFIX: str = "ucc-hostel-finder-storage"
    PREFERENCES_CACHE_SIZE: int = 1000

    # Identity provider (credentials, never logged)
    IDENTITY_API_URL: str = "https://identitytoolkit.googleapis.com/v1"
    IDENTITY_API_KEY: str = ""

    # Media CDN (credentials, never logged)
    CDN_UPLOAD_URL: str = "https://api.cloudinary.com/v1_1"
    CDN_DELIVERY_URL: str = "https://res.cloudinary.com"
    CDN_CLOUD_NAME: str = ""
    CDN_UPLOAD_PRESET: str = ""
    CDN_FOLDER: str = "hostels"
    CDN_TAGS: List[str] = ["ucc-hostel-finder"]

    # Geocoding / routing
    GEOCODER_URL: str = "https://nominatim.openstreetmap.org"
    ROUTER_URL: str = "https://router.project-osrm.org"
    GEO_USER_AGENT: str = "ucc-hostel-finder/1.0"

    # CORS
    CORS_ORIGINS: List[str] = ["*"]

    # Pagination
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 50
    REVIEWS_PAGE_SIZE: int = 20

    # Query cache (seconds)
    STALE_TIME_LIST: float = 300  # 5 minutes
    STALE_TIME_DETAIL: float = 120  # 2 minutes
    STALE_TIME_REVIEWS: float = 60
    STALE_TIME_NEARBY: float = 60
    STALE_TIME_SEARCH: float = 300
    GC_TIME: float = 600  # 10 minutes

    # Store calls
    FETCH_TIMEOUT: float = 10.0
    FETCH_RETRIES: int = 3
    RETRY_BASE_DELAY: float = 1.0
    RETRY_MAX_DELAY: float = 30.0
    MUTATION_TIMEOUT: float = 10.0

    # Search
    SEARCH_DEBOUNCE: float = 0.3
    SEARCH_MIN_LENGTH: int = 3
    RECENT_SEARCH_LIMIT: int = 10

    # Map
    NEARBY_RADIUS_KM: float = 2.0
    LOCATION_MOVE_THRESHOLD_KM: float = 0.1

    # Notifications
    NOTIFICATION_DURATION: float = 3.0

    # Uploads
    MAX_UPLOAD_FILES: int = 10
    MAX_IMAGE_SIZE_MB: int = 10
    MAX_IMAGE_DIMENSION: int = 2000
    ALLOWED_IMAGE_TYPES: List[str] = ["image/jpeg", "image/png", "image/webp", "image/heic"]

    class Config:
        env_file = ".env"
        case_sensitive = True

    def require_credentials(self) -> None:
        """Fail fast when provider credentials are absent"""
        missing = [
            name for name in ("IDENTITY_API_KEY", "CDN_CLOUD_NAME", "CDN_UPLOAD_PRESET")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")


settings = Settings()
