"""
Pydantic schemas for Hostel Finder Service
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .application.notifications import NotificationType
from .application.preferences import Theme, UserPreferences, ViewMode
from .application.query_cache import QueryStatus, QueryView
from .domain.filters import FilterModel, GenderFilter, SortOption, normalize_locations
from .domain.models import (
    Amenity, Availability, Gender, Hostel, Page, PaymentPeriod, RoomType,
    StayDuration, UserRole,
)
from .errors import HostelFinderError, ValidationError
from .geo import Bounds, format_distance


class MessageResponse(BaseModel):
    """Generic message response"""
    message: str
    success: bool = True


class ErrorResponse(BaseModel):
    """Error response"""
    error: str
    detail: Optional[str] = None
    errors: Optional[Dict[str, str]] = None
    success: bool = False

    @classmethod
    def from_exception(cls, exc: HostelFinderError) -> "ErrorResponse":
        kind = exc.kind.value if exc.kind is not None else type(exc).__name__
        errors = exc.errors if isinstance(exc, ValidationError) else None
        return cls(error=kind, detail=exc.message, errors=errors)


# Filters
class FiltersSchema(BaseModel):
    """Search constraints; omitted fields do not constrain"""
    location: List[str] = []
    gender: GenderFilter = GenderFilter.ALL
    price_min: Optional[int] = None
    price_max: Optional[int] = None
    amenities: List[Amenity] = []
    min_rating: Optional[float] = None
    verified_only: bool = False
    featured_only: bool = False

    def to_model(self) -> FilterModel:
        return FilterModel(
            location=frozenset(normalize_locations(self.location)),
            gender=self.gender,
            price_min=self.price_min,
            price_max=self.price_max,
            amenities=frozenset(self.amenities),
            min_rating=self.min_rating,
            verified_only=self.verified_only,
            featured_only=self.featured_only,
        )

    @classmethod
    def from_model(cls, model: FilterModel) -> "FiltersSchema":
        return cls(**model.to_dict())


class HostelListRequest(BaseModel):
    filters: FiltersSchema = FiltersSchema()
    sort: SortOption = SortOption.RATING_DESC
    remember: bool = False  # store as the user's saved filters and sort


class HostelPageRequest(HostelListRequest):
    page_size: int = Field(10, ge=1, le=50)
    cursor: Optional[str] = None


# Hostels
class CoordinatesSchema(BaseModel):
    latitude: float
    longitude: float

    class Config:
        from_attributes = True


class PriceRangeSchema(BaseModel):
    min: int
    max: int
    currency: str = "GHS"

    class Config:
        from_attributes = True


class ContactInfoSchema(BaseModel):
    phone: List[str] = []
    email: Optional[str] = None
    whatsapp: Optional[str] = None
    website: Optional[str] = None

    class Config:
        from_attributes = True


class HostelImageSchema(BaseModel):
    url: str
    public_id: str
    caption: Optional[str] = None
    is_primary: bool = False
    uploaded_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class HostelResponse(BaseModel):
    """Hostel listing"""
    id: str
    name: str
    description: str
    location: str
    coordinates: CoordinatesSchema
    address: str
    gender: Gender
    room_type: RoomType
    rooms: int
    occupants_per_room: int
    price_range: PriceRangeSchema
    payment_period: PaymentPeriod
    deposit: Optional[int] = None
    amenities: List[Amenity]
    contact_info: ContactInfoSchema
    images: List[HostelImageSchema]
    average_rating: float
    review_count: int
    favorite_count: int
    views: int
    availability: Availability
    featured: bool
    verified: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: Optional[str] = None
    distance: Optional[float] = None
    distance_text: Optional[str] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_hostel(cls, hostel: Hostel) -> "HostelResponse":
        response = cls.model_validate(hostel)
        if hostel.distance is not None:
            response.distance_text = format_distance(hostel.distance)
        return response


class HostelCreate(BaseModel):
    """New hostel listing"""
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    location: str
    latitude: float
    longitude: float
    address: str = ""
    gender: Gender
    room_type: RoomType = RoomType.SHARED
    rooms: int = Field(0, ge=0)
    occupants_per_room: int = Field(1, ge=1)
    price_min: int
    price_max: int
    payment_period: PaymentPeriod = PaymentPeriod.SEMESTER
    deposit: Optional[int] = None
    amenities: List[Amenity] = []
    phones: List[str] = []
    email: Optional[str] = None
    whatsapp: Optional[str] = None
    website: Optional[str] = None
    images: List[HostelImageSchema] = []
    availability: Availability = Availability.AVAILABLE
    featured: bool = False

    def to_data(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json")
        data["images"] = [image.model_dump() for image in self.images]
        return data


class HostelUpdate(BaseModel):
    """Partial listing update"""
    name: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    coordinates: Optional[CoordinatesSchema] = None
    address: Optional[str] = None
    gender: Optional[Gender] = None
    room_type: Optional[RoomType] = None
    rooms: Optional[int] = None
    occupants_per_room: Optional[int] = None
    price_range: Optional[PriceRangeSchema] = None
    payment_period: Optional[PaymentPeriod] = None
    deposit: Optional[int] = None
    amenities: Optional[List[Amenity]] = None
    contact_info: Optional[ContactInfoSchema] = None
    images: Optional[List[HostelImageSchema]] = None
    availability: Optional[Availability] = None
    featured: Optional[bool] = None

    def to_changes(self) -> Dict[str, Any]:
        changes = self.model_dump(mode="json", exclude_unset=True)
        if self.images is not None:
            changes["images"] = [image.model_dump() for image in self.images]
        return changes


class QueryViewResponse(BaseModel):
    """Cached list state for a key"""
    items: List[HostelResponse]
    status: QueryStatus
    has_more: bool
    loading: bool
    loading_more: bool
    error: Optional[ErrorResponse] = None
    quarantined: int = 0

    @classmethod
    def from_view(cls, view: QueryView) -> "QueryViewResponse":
        return cls(
            items=[HostelResponse.from_hostel(h) for h in view.items],
            status=view.status,
            has_more=view.has_more,
            loading=view.loading,
            loading_more=view.loading_more,
            error=ErrorResponse.from_exception(view.error) if view.error is not None else None,
            quarantined=view.quarantined,
        )


class HostelPageResponse(BaseModel):
    items: List[HostelResponse]
    cursor: Optional[str] = None
    has_more: bool
    quarantined: int = 0

    @classmethod
    def from_page(cls, page: Page) -> "HostelPageResponse":
        return cls(
            items=[HostelResponse.from_hostel(h) for h in page.items],
            cursor=page.cursor,
            has_more=page.has_more,
            quarantined=page.quarantined,
        )


class BoundsSchema(BaseModel):
    north: float
    south: float
    east: float
    west: float

    class Config:
        from_attributes = True

    def to_bounds(self) -> Bounds:
        return Bounds(north=self.north, south=self.south, east=self.east, west=self.west)


class MapHostelsResponse(BaseModel):
    items: List[HostelResponse]
    bounds: Optional[BoundsSchema] = None


# Reviews
class ReviewCreate(BaseModel):
    rating: int
    comment: str
    date_stayed: Optional[datetime] = None
    duration: StayDuration = StayDuration.SEMESTER
    room_type: Optional[str] = None


class ReviewResponse(BaseModel):
    id: str
    hostel_id: str
    user_id: str
    user_name: str
    user_avatar: Optional[str] = None
    rating: int
    comment: str
    date_stayed: Optional[datetime] = None
    duration: StayDuration
    room_type: Optional[str] = None
    verified: bool
    helpful: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReviewListResponse(BaseModel):
    items: List[ReviewResponse]
    status: QueryStatus
    has_more: bool
    error: Optional[ErrorResponse] = None

    @classmethod
    def from_view(cls, view: QueryView) -> "ReviewListResponse":
        return cls(
            items=[ReviewResponse.model_validate(r) for r in view.items],
            status=view.status,
            has_more=view.has_more,
            error=ErrorResponse.from_exception(view.error) if view.error is not None else None,
        )


# Favorites
class FavoriteToggleResponse(BaseModel):
    hostel_id: str
    favorited: bool


class FavoritesResponse(BaseModel):
    hostel_ids: List[str]
    hostels: List[HostelResponse] = []


class FavoriteStatusResponse(BaseModel):
    hostel_id: str
    favorited: bool


# Auth and users
class LoginRequest(BaseModel):
    email: str
    password: str


class SignupRequest(BaseModel):
    email: str
    password: str
    name: str
    role: UserRole = UserRole.USER
    student_id: Optional[str] = None


class TokenLoginRequest(BaseModel):
    id_token: str


class PasswordResetRequest(BaseModel):
    email: str


class PasswordResetConfirm(BaseModel):
    code: str
    new_password: str


class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    role: UserRole
    student_id: Optional[str] = None
    phone: Optional[str] = None
    avatar: Optional[str] = None
    favorite_count: int = 0
    review_count: int = 0
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    class Config:
        from_attributes = True


class AuthResponse(BaseModel):
    id_token: str
    refresh_token: str
    expires_in: int
    user: UserResponse


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    student_id: Optional[str] = None
    avatar: Optional[str] = None


class RoleUpdate(BaseModel):
    role: UserRole


# Preferences
class PreferencesResponse(BaseModel):
    theme: Theme
    filters: FiltersSchema
    sort_by: SortOption
    view_mode: ViewMode
    recent_searches: List[str]
    has_seen_onboarding: bool
    active_filter_count: int

    @classmethod
    def from_preferences(cls, prefs: UserPreferences) -> "PreferencesResponse":
        return cls(
            theme=prefs.theme,
            filters=FiltersSchema.from_model(prefs.filters),
            sort_by=prefs.sort_by,
            view_mode=prefs.view_mode,
            recent_searches=list(prefs.recent_searches),
            has_seen_onboarding=prefs.has_seen_onboarding,
            active_filter_count=prefs.filters.active_count(),
        )


class PreferencesUpdate(BaseModel):
    theme: Optional[Theme] = None
    filters: Optional[FiltersSchema] = None
    sort_by: Optional[SortOption] = None
    view_mode: Optional[ViewMode] = None
    has_seen_onboarding: Optional[bool] = None


class RecentSearchRequest(BaseModel):
    term: str


# Notifications
class NotificationResponse(BaseModel):
    id: str
    type: NotificationType
    message: str
    duration: float
    created_at: datetime

    class Config:
        from_attributes = True


# Media
class UploadResponse(BaseModel):
    images: List[HostelImageSchema]


class ImageUrlResponse(BaseModel):
    public_id: str
    preset: str
    url: str


# Map
class PlaceResponse(BaseModel):
    name: str
    latitude: float
    longitude: float
    type: Optional[str] = None

    class Config:
        from_attributes = True


class RouteResponse(BaseModel):
    distance_m: float
    duration_s: float
    distance: str
    duration: str
    geometry: Dict[str, Any]
