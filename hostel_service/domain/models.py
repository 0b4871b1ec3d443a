"""
Domain models - Core business entities
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Generic, List, Optional, Tuple, TypeVar


class Gender(str, Enum):
    """Hostel gender category"""
    MALE = "male"
    FEMALE = "female"
    MIXED = "mixed"


class RoomType(str, Enum):
    """Room arrangement offered"""
    SELF_CONTAINED = "self-contained"
    SHARED = "shared"
    BOTH = "both"


class PaymentPeriod(str, Enum):
    """Billing period"""
    SEMESTER = "semester"
    YEARLY = "yearly"
    MONTHLY = "monthly"


class Availability(str, Enum):
    """Vacancy status"""
    AVAILABLE = "available"
    LIMITED = "limited"
    FULL = "full"


class Amenity(str, Enum):
    """Closed set of amenity tags"""
    WIFI = "wifi"
    SECURITY = "security"
    WATER = "water"
    ELECTRICITY = "electricity"
    MEALS = "meals"
    PARKING = "parking"
    STUDY_AREA = "study-area"
    LAUNDRY = "laundry"
    KITCHEN = "kitchen"
    BEDDING = "bedding"
    FURNISHED = "furnished"
    AIR_CONDITIONING = "air-conditioning"
    FAN = "fan"
    TV = "tv"
    FRIDGE = "fridge"
    GENERATOR = "generator"


class UserRole(str, Enum):
    """Access role"""
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"


class StayDuration(str, Enum):
    """How long a reviewer stayed"""
    SEMESTER = "semester"
    YEAR = "year"
    SUMMER = "summer"
    OTHER = "other"


@dataclass(frozen=True)
class GeoPoint:
    """Latitude/longitude pair in degrees"""
    latitude: float
    longitude: float


@dataclass(frozen=True)
class PriceRange:
    """Price band in whole currency units"""
    min: int
    max: int
    currency: str = "GHS"

    def overlaps(self, low: Optional[int], high: Optional[int]) -> bool:
        """Overlap with a requested [low, high] band; None means unbounded"""
        if low is not None and self.max < low:
            return False
        if high is not None and self.min > high:
            return False
        return True


@dataclass(frozen=True)
class ContactInfo:
    """Hostel contact details"""
    phone: Tuple[str, ...] = ()
    email: Optional[str] = None
    whatsapp: Optional[str] = None
    website: Optional[str] = None


@dataclass(frozen=True)
class HostelImage:
    """Image descriptor stored alongside a hostel"""
    url: str
    public_id: str
    caption: Optional[str] = None
    is_primary: bool = False
    uploaded_at: Optional[datetime] = None


@dataclass(frozen=True)
class Hostel:
    """Read-only hostel record as held by the query cache"""
    id: str
    name: str
    location: str
    coordinates: GeoPoint
    gender: Gender
    price_range: PriceRange
    description: str = ""
    address: str = ""
    room_type: RoomType = RoomType.SHARED
    rooms: int = 0
    occupants_per_room: int = 1
    payment_period: PaymentPeriod = PaymentPeriod.SEMESTER
    deposit: Optional[int] = None
    amenities: Tuple[Amenity, ...] = ()
    contact_info: ContactInfo = field(default_factory=ContactInfo)
    images: Tuple[HostelImage, ...] = ()
    average_rating: float = 0.0
    review_count: int = 0
    favorite_count: int = 0
    views: int = 0
    availability: Availability = Availability.AVAILABLE
    featured: bool = False
    verified: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: Optional[str] = None
    distance: Optional[float] = None  # km from the user, computed

    @property
    def primary_image(self) -> Optional[HostelImage]:
        for image in self.images:
            if image.is_primary:
                return image
        return self.images[0] if self.images else None


@dataclass(frozen=True)
class Review:
    """Hostel review"""
    id: str
    hostel_id: str
    user_id: str
    user_name: str
    rating: int
    comment: str
    user_avatar: Optional[str] = None
    date_stayed: Optional[datetime] = None
    duration: StayDuration = StayDuration.SEMESTER
    room_type: Optional[str] = None
    verified: bool = False
    helpful: int = 0
    reported: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Favorite:
    """Saved hostel"""
    user_id: str
    hostel_id: str
    saved_at: Optional[datetime] = None


@dataclass
class UserProfile:
    """Application user profile"""
    id: str
    email: str
    name: str
    role: UserRole = UserRole.USER
    student_id: Optional[str] = None
    phone: Optional[str] = None
    avatar: Optional[str] = None
    favorite_count: int = 0
    review_count: int = 0
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    def has_role(self, *roles: UserRole) -> bool:
        """Check whether the user holds one of the given roles"""
        return self.role in roles


@dataclass(frozen=True)
class AuthSession:
    """Identity provider session"""
    user_id: str
    email: str
    id_token: str
    refresh_token: str
    expires_in: int


@dataclass(frozen=True)
class UploadedImage:
    """Result of a CDN upload"""
    public_id: str
    url: str
    width: Optional[int] = None
    height: Optional[int] = None
    bytes: Optional[int] = None
    format: Optional[str] = None


T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    """One fetched page and its continuation"""
    items: Tuple[T, ...]
    cursor: Optional[str]
    has_more: bool
    quarantined: int = 0

    def __len__(self) -> int:
        return len(self.items)


def flatten_pages(pages: List[Page]) -> List:
    """Concatenate the items of consecutive pages"""
    items: List = []
    for page in pages:
        items.extend(page.items)
    return items
