"""
Filter model, sort options and canonical cache keys for hostel search
"""
import json
from dataclasses import dataclass, field, replace as dataclass_replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from ..errors import ValidationError
from .models import Amenity


DEFAULT_PRICE_MIN = 0
DEFAULT_PRICE_MAX = 2000
MAX_RATING = 5.0

LIST_KEY_PREFIX = "hostels:list:"

# Areas offered by the filter sheet
FILTER_LOCATIONS = (
    "Science",
    "North Campus",
    "South Campus",
    "Atlantic Hall",
    "African Hall",
    "Casford",
    "Valco Trust",
    "Business School",
    "Medical School",
    "Main Gate",
    "Ayensu",
    "Kwaprow",
)


class GenderFilter(str, Enum):
    """Gender constraint; ALL means unconstrained"""
    MALE = "male"
    FEMALE = "female"
    MIXED = "mixed"
    ALL = "all"


class SortOption(str, Enum):
    """Result ordering"""
    RATING_DESC = "rating-desc"
    PRICE_ASC = "price-asc"
    PRICE_DESC = "price-desc"
    NEWEST = "newest"
    POPULARITY = "popularity"


DEFAULT_SORT = SortOption.RATING_DESC


@dataclass(frozen=True)
class FilterModel:
    """
    Immutable description of the user's search constraints.

    An absent field (None, empty set, False, ``GenderFilter.ALL``) means
    "no constraint". Build modified copies with :meth:`replace`.
    """
    location: FrozenSet[str] = frozenset()
    gender: GenderFilter = GenderFilter.ALL
    price_min: Optional[int] = None
    price_max: Optional[int] = None
    amenities: FrozenSet[Amenity] = frozenset()
    min_rating: Optional[float] = None
    verified_only: bool = False
    featured_only: bool = False

    def __post_init__(self):
        # normalise iterables so equal inputs compare equal
        object.__setattr__(self, "location", frozenset(self.location))
        object.__setattr__(self, "amenities", frozenset(Amenity(a) for a in self.amenities))
        object.__setattr__(self, "gender", GenderFilter(self.gender))

        errors: Dict[str, str] = {}
        if self.price_min is not None and self.price_min < 0:
            errors["price_min"] = "Minimum price cannot be negative"
        if self.price_max is not None and self.price_max < 0:
            errors["price_max"] = "Maximum price cannot be negative"
        if (
            self.price_min is not None
            and self.price_max is not None
            and self.price_min > self.price_max
        ):
            errors["price_max"] = "Maximum price must be greater than or equal to minimum price"
        if self.min_rating is not None and not 0 <= self.min_rating <= MAX_RATING:
            errors["min_rating"] = "Rating must be between 0 and 5"
        if errors:
            raise ValidationError(errors)

    def replace(self, **changes) -> "FilterModel":
        """Return a copy with the given fields changed"""
        return dataclass_replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Canonical, JSON-ready representation (set members sorted)"""
        return {
            "location": sorted(self.location),
            "gender": self.gender.value,
            "price_min": self.price_min,
            "price_max": self.price_max,
            "amenities": sorted(a.value for a in self.amenities),
            "min_rating": self.min_rating,
            "verified_only": self.verified_only,
            "featured_only": self.featured_only,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FilterModel":
        """
        Build a model from persisted or request data.

        Unknown amenity tags are dropped. Structural problems raise
        ValidationError.
        """
        if not isinstance(data, dict):
            raise ValidationError({"filters": "Filters must be an object"})
        amenities = []
        for tag in data.get("amenities") or ():
            try:
                amenities.append(Amenity(tag))
            except ValueError:
                continue
        try:
            gender = GenderFilter(data.get("gender") or GenderFilter.ALL)
        except ValueError:
            raise ValidationError({"gender": f"Unknown gender filter: {data.get('gender')}"})
        return cls(
            location=frozenset(normalize_locations(data.get("location") or ())),
            gender=gender,
            price_min=_optional_int(data, "price_min"),
            price_max=_optional_int(data, "price_max"),
            amenities=frozenset(amenities),
            min_rating=_optional_float(data, "min_rating"),
            verified_only=bool(data.get("verified_only", False)),
            featured_only=bool(data.get("featured_only", False)),
        )

    def active_count(self) -> int:
        """Number of active constraints as shown on the filter badge"""
        count = 0
        if self.location:
            count += 1
        if self.gender != GenderFilter.ALL:
            count += 1
        if (self.price_min or 0) > DEFAULT_PRICE_MIN or (
            self.price_max is not None and self.price_max < DEFAULT_PRICE_MAX
        ):
            count += 1
        count += len(self.amenities)
        if self.min_rating:
            count += 1
        if self.verified_only:
            count += 1
        return count


DEFAULT_FILTERS = FilterModel(price_min=DEFAULT_PRICE_MIN, price_max=DEFAULT_PRICE_MAX)


def _optional_int(data: Dict[str, Any], name: str) -> Optional[int]:
    value = data.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError({name: "Must be a whole number"})


def _optional_float(data: Dict[str, Any], name: str) -> Optional[float]:
    value = data.get(name)
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError({name: "Must be a number"})


def cache_key(filters: FilterModel, sort: SortOption) -> str:
    """Canonical key for a (filters, sort) pair; field-wise equal inputs give equal keys"""
    payload = {"filters": filters.to_dict(), "sort": SortOption(sort).value}
    return LIST_KEY_PREFIX + json.dumps(payload, sort_keys=True, separators=(",", ":"))


@dataclass
class FilterDraft:
    """
    Staged, uncommitted edits to a filter model.

    Edits accumulate here and become visible to queries only through
    :meth:`commit`, which yields a new FilterModel in one step.
    """
    location: set = field(default_factory=set)
    gender: GenderFilter = GenderFilter.ALL
    price_min: int = DEFAULT_PRICE_MIN
    price_max: int = DEFAULT_PRICE_MAX
    amenities: set = field(default_factory=set)
    min_rating: float = 0.0
    verified_only: bool = False
    featured_only: bool = False

    @classmethod
    def from_model(cls, model: FilterModel) -> "FilterDraft":
        return cls(
            location=set(model.location),
            gender=model.gender,
            price_min=model.price_min if model.price_min is not None else DEFAULT_PRICE_MIN,
            price_max=model.price_max if model.price_max is not None else DEFAULT_PRICE_MAX,
            amenities=set(model.amenities),
            min_rating=model.min_rating or 0.0,
            verified_only=model.verified_only,
            featured_only=model.featured_only,
        )

    def toggle_location(self, name: str) -> None:
        if name in self.location:
            self.location.discard(name)
        else:
            self.location.add(name)

    def toggle_amenity(self, amenity: Amenity) -> None:
        amenity = Amenity(amenity)
        if amenity in self.amenities:
            self.amenities.discard(amenity)
        else:
            self.amenities.add(amenity)

    def set_gender(self, gender: GenderFilter) -> None:
        self.gender = GenderFilter(gender)

    def set_price_range(self, low: int, high: int) -> None:
        self.price_min, self.price_max = low, high

    def set_min_rating(self, rating: float) -> None:
        # tapping the selected rating again clears it
        self.min_rating = 0.0 if rating == self.min_rating else rating

    def set_verified_only(self, value: bool) -> None:
        self.verified_only = value

    def reset(self) -> None:
        """Back to the hard-coded defaults"""
        defaults = FilterDraft()
        self.__dict__.update(defaults.__dict__)

    def active_count(self) -> int:
        return self._to_model(validate=False).active_count()

    def commit(self) -> FilterModel:
        """Validate and materialise the draft"""
        return self._to_model(validate=True)

    def _to_model(self, validate: bool) -> FilterModel:
        kwargs = dict(
            location=frozenset(self.location),
            gender=self.gender,
            price_min=self.price_min,
            price_max=self.price_max,
            amenities=frozenset(self.amenities),
            min_rating=self.min_rating or None,
            verified_only=self.verified_only,
            featured_only=self.featured_only,
        )
        if validate:
            return FilterModel(**kwargs)
        try:
            return FilterModel(**kwargs)
        except ValidationError:
            # count an invalid draft as if the price band were unconstrained
            kwargs.update(price_min=None, price_max=None, min_rating=None)
            return FilterModel(**kwargs)


def parse_sort(value: Optional[str]) -> SortOption:
    """Parse a sort option, raising ValidationError on unknown values"""
    if value is None:
        return DEFAULT_SORT
    try:
        return SortOption(value)
    except ValueError:
        raise ValidationError({"sort": f"Unknown sort option: {value}"})


def normalize_locations(names: Iterable[str]) -> List[str]:
    """Strip and de-duplicate area names, preserving order"""
    seen: List[str] = []
    for name in names:
        name = name.strip()
        if name and name not in seen:
            seen.append(name)
    return seen
