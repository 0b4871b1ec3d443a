"""
Application services - Business logic layer
"""
import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..config import settings
from ..domain.documents import hostel_from_document, hostel_to_document, review_from_document
from ..domain.filters import FilterModel, SortOption
from ..domain.models import GeoPoint, Hostel, Page, Review, UserProfile, UserRole
from ..domain.repositories import IHostelRepository, IReviewRepository, Subscription
from ..domain.validation import validate_hostel, validate_review
from ..errors import (
    HostelFinderError, MalformedRecordError, MutationError, MutationErrorKind,
    NotFoundError, PermissionDeniedError, ValidationError,
)
from ..geo import Bounds, hostel_bounds, is_within_bounds, nearby
from .fetcher import PaginatedFetcher, ReviewFetcher, reviews_from_documents, split_valid
from .notifications import NotificationCenter
from .query_builder import build_query
from .query_cache import QueryCache, QueryKeys, QueryView

logger = logging.getLogger(__name__)

# Fields a manager may not set on a listing
PROTECTED_FIELDS = {
    "average_rating", "review_count", "favorite_count", "views",
    "verified", "created_at", "created_by",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def require_role(user: UserProfile, *roles: UserRole) -> None:
    if not user.has_role(*roles):
        raise PermissionDeniedError("You do not have permission to perform this action")


class HostelService:
    """Hostel listings: cached search results, details, map queries and admin actions"""

    def __init__(
        self,
        hostels: IHostelRepository,
        cache: QueryCache,
        page_size: int = settings.DEFAULT_PAGE_SIZE,
    ):
        self.hostels = hostels
        self.cache = cache
        self.page_size = page_size
        self.fetcher = PaginatedFetcher(hostels)

    def _loader(self, filters: FilterModel, sort: SortOption):
        query = build_query(filters, sort)
        return lambda cursor: self.fetcher.fetch(query, self.page_size, cursor)

    async def list_hostels(self, filters: FilterModel, sort: SortOption) -> QueryView:
        """First page (or the cached pages) for a filter/sort combination"""
        return await self.cache.fetch(
            QueryKeys.hostel_list(filters, sort),
            self._loader(filters, sort),
            settings.STALE_TIME_LIST,
        )

    async def load_more(self, filters: FilterModel, sort: SortOption) -> QueryView:
        key = QueryKeys.hostel_list(filters, sort)
        if self.cache.view(key) is None:
            await self.list_hostels(filters, sort)
        return await self.cache.load_more(key)

    async def refresh(self, filters: FilterModel, sort: SortOption) -> QueryView:
        key = QueryKeys.hostel_list(filters, sort)
        if self.cache.view(key) is None:
            return await self.list_hostels(filters, sort)
        return await self.cache.refresh(key)

    async def retry(self, filters: FilterModel, sort: SortOption) -> QueryView:
        key = QueryKeys.hostel_list(filters, sort)
        if self.cache.view(key) is None:
            return await self.list_hostels(filters, sort)
        return await self.cache.retry(key)

    async def fetch_page(
        self,
        filters: FilterModel,
        sort: SortOption,
        page_size: int,
        cursor: Optional[str] = None,
    ) -> Page:
        """Uncached single page for clients that keep their own cursor"""
        query = build_query(filters, sort)
        return await self.cache.call(self.fetcher.fetch, query, page_size, cursor)

    async def get_hostel(self, hostel_id: str) -> Hostel:
        async def load() -> Hostel:
            document = await self.hostels.find_by_id(hostel_id)
            if document is None:
                raise NotFoundError(f"Hostel {hostel_id} not found")
            return hostel_from_document(document)

        return await self.cache.query(QueryKeys.hostel_detail(hostel_id), load, settings.STALE_TIME_DETAIL)

    def record_view(self, hostel_id: str) -> None:
        """Bump the view counter in the background"""
        self.cache.schedule(self.hostels.increment_views(hostel_id), name=f"views:{hostel_id}")

    async def _all_hostels(self, filters: Optional[FilterModel] = None) -> List[Hostel]:
        query = build_query(filters, SortOption.RATING_DESC) if filters is not None else None
        documents = await self.hostels.find_all(query)
        hostels, quarantined = split_valid(documents)
        if quarantined:
            logger.warning(f"Skipped {quarantined} malformed hostel documents")
        return hostels

    async def nearby(self, origin: GeoPoint, radius_km: float = settings.NEARBY_RADIUS_KM) -> List[Hostel]:
        """Hostels within ``radius_km`` of ``origin``, nearest first"""
        async def load() -> List[Hostel]:
            return nearby(await self._all_hostels(), origin, radius_km)

        key = QueryKeys.hostel_nearby(origin.latitude, origin.longitude, radius_km)
        return await self.cache.query(key, load, settings.STALE_TIME_NEARBY)

    async def in_bounds(self, bounds: Bounds, filters: Optional[FilterModel] = None) -> List[Hostel]:
        """Hostels whose coordinates fall inside the map viewport"""
        hostels = await self.cache.call(self._all_hostels, filters)
        return [
            h for h in hostels
            if is_within_bounds(h.coordinates.latitude, h.coordinates.longitude, bounds)
        ]

    @staticmethod
    def fit_bounds(hostels: List[Hostel]) -> Optional[Bounds]:
        return hostel_bounds(hostels)

    def _build_document(self, data: Dict[str, Any], user: UserProfile) -> Dict[str, Any]:
        validate_hostel(
            data.get("name"), data.get("location"), data.get("latitude"), data.get("longitude"),
            data.get("price_min"), data.get("price_max"), data.get("gender"), data.get("phones") or (),
        )
        now = _now()
        return {
            "_id": uuid.uuid4().hex,
            "name": data["name"].strip(),
            "description": data.get("description", ""),
            "location": data["location"].strip(),
            "coordinates": {"latitude": data["latitude"], "longitude": data["longitude"]},
            "address": data.get("address", ""),
            "gender": data["gender"],
            "room_type": data.get("room_type", "shared"),
            "rooms": data.get("rooms", 0),
            "occupants_per_room": data.get("occupants_per_room", 1),
            "price_range": {"min": data["price_min"], "max": data["price_max"], "currency": "GHS"},
            "payment_period": data.get("payment_period", "semester"),
            "deposit": data.get("deposit"),
            "amenities": list(data.get("amenities") or []),
            "contact_info": {
                "phone": list(data.get("phones") or []),
                "email": data.get("email"),
                "whatsapp": data.get("whatsapp"),
                "website": data.get("website"),
            },
            "images": list(data.get("images") or []),
            "average_rating": 0.0,
            "review_count": 0,
            "favorite_count": 0,
            "views": 0,
            "availability": data.get("availability", "available"),
            "featured": bool(data.get("featured", False)) and user.has_role(UserRole.ADMIN),
            "verified": False,
            "created_at": now,
            "updated_at": now,
            "created_by": user.id,
        }

    async def create_hostel(self, data: Dict[str, Any], user: UserProfile) -> Hostel:
        require_role(user, UserRole.MANAGER, UserRole.ADMIN)
        document = self._build_document(data, user)
        hostel = hostel_from_document(document)
        await self.hostels.create(document)
        self.cache.invalidate(QueryKeys.HOSTELS)
        self.cache.invalidate(QueryKeys.SEARCH)
        logger.info(f"Hostel {hostel.id} created by {user.id}")
        return hostel

    async def update_hostel(self, hostel_id: str, changes: Dict[str, Any], user: UserProfile) -> Hostel:
        require_role(user, UserRole.MANAGER, UserRole.ADMIN)
        current = await self.get_hostel(hostel_id)
        if not user.has_role(UserRole.ADMIN):
            if current.created_by != user.id:
                raise PermissionDeniedError("You can only edit hostels you manage")
            blocked = PROTECTED_FIELDS.intersection(changes) | ({"featured"} & set(changes))
            if blocked:
                raise PermissionDeniedError(f"Cannot change: {', '.join(sorted(blocked))}")

        merged = hostel_to_document(current)
        merged.update({k: v for k, v in changes.items() if k in merged})
        # coerce the merged document first so bad changes never reach the store
        try:
            hostel_from_document(merged)
        except MalformedRecordError as e:
            raise ValidationError({"hostel": e.message})
        updates = {k: v for k, v in changes.items() if k in merged and k != "_id"}
        updates["updated_at"] = _now()
        return await self._write_update(hostel_id, updates)

    async def verify_hostel(self, hostel_id: str, user: UserProfile) -> Hostel:
        require_role(user, UserRole.ADMIN)
        return await self._write_update(hostel_id, {"verified": True, "updated_at": _now()})

    async def _write_update(self, hostel_id: str, updates: Dict[str, Any]) -> Hostel:
        document = await self.hostels.update(hostel_id, updates)
        if document is None:
            raise NotFoundError(f"Hostel {hostel_id} not found")
        hostel = hostel_from_document(document)
        self.cache.replace_hostel(hostel)
        self.cache.set_data(QueryKeys.hostel_detail(hostel_id), hostel)
        self.cache.invalidate(QueryKeys.HOSTEL_LISTS)
        self.cache.invalidate(QueryKeys.SEARCH)
        return hostel

    async def delete_hostel(self, hostel_id: str, user: UserProfile) -> None:
        """Delete a hostel with its reviews and favorites"""
        require_role(user, UserRole.ADMIN)
        if not await self.hostels.delete(hostel_id):
            raise NotFoundError(f"Hostel {hostel_id} not found")
        self.cache.remove(QueryKeys.hostel_detail(hostel_id))
        self.cache.remove(QueryKeys.reviews(hostel_id))
        self.cache.invalidate(QueryKeys.HOSTELS)
        self.cache.invalidate(QueryKeys.SEARCH)
        self.cache.invalidate(QueryKeys.FAVORITES)
        logger.info(f"Hostel {hostel_id} deleted by {user.id}")

    def watch(self, hostel_id: str, callback: Callable[[Optional[Hostel]], None]) -> Subscription:
        """Live hostel record; None once deleted"""
        def deliver(document):
            if document is None:
                callback(None)
                return
            try:
                hostel = hostel_from_document(document)
            except MalformedRecordError as e:
                logger.warning(f"Ignoring malformed update: {e}")
                return
            self.cache.replace_hostel(hostel)
            callback(hostel)

        return self.hostels.watch(hostel_id, deliver)


def matches_term(hostel: Hostel, term: str) -> bool:
    """Case-insensitive match on name, location, description or amenity tag"""
    term = term.lower()
    return (
        term in hostel.name.lower()
        or term in hostel.location.lower()
        or term in hostel.description.lower()
        or any(term in amenity.value for amenity in hostel.amenities)
    )


class SearchService:
    """Free-text hostel search"""

    def __init__(self, hostels: IHostelRepository, cache: QueryCache, min_length: int = settings.SEARCH_MIN_LENGTH):
        self.hostels = hostels
        self.cache = cache
        self.min_length = min_length

    async def search(self, term: str) -> List[Hostel]:
        term = (term or "").strip()
        if len(term) < self.min_length:
            return []

        async def load() -> List[Hostel]:
            documents = await self.hostels.find_all()
            hostels, _ = split_valid(documents)
            results = [h for h in hostels if matches_term(h, term)]
            results.sort(key=lambda h: h.average_rating, reverse=True)
            return results

        return await self.cache.query(QueryKeys.search(term), load, settings.STALE_TIME_SEARCH)


class ReviewService:
    """Reviews: cached lists, atomic submission and helpful votes"""

    def __init__(
        self,
        reviews: IReviewRepository,
        cache: QueryCache,
        notifications: NotificationCenter,
        page_size: int = settings.REVIEWS_PAGE_SIZE,
        mutation_timeout: float = settings.MUTATION_TIMEOUT,
    ):
        self.reviews = reviews
        self.cache = cache
        self.notifications = notifications
        self.page_size = page_size
        self.mutation_timeout = mutation_timeout
        self.fetcher = ReviewFetcher(reviews)

    async def list_reviews(self, hostel_id: str) -> QueryView:
        return await self.cache.fetch(
            QueryKeys.reviews(hostel_id),
            lambda cursor: self.fetcher.fetch(hostel_id, self.page_size, cursor),
            settings.STALE_TIME_REVIEWS,
        )

    async def load_more(self, hostel_id: str) -> QueryView:
        key = QueryKeys.reviews(hostel_id)
        if self.cache.view(key) is None:
            await self.list_reviews(hostel_id)
        return await self.cache.load_more(key)

    async def add_review(
        self,
        hostel_id: str,
        user: UserProfile,
        rating: int,
        comment: str,
        date_stayed: Optional[datetime] = None,
        duration: str = "semester",
        room_type: Optional[str] = None,
    ) -> Review:
        """
        Submit a review.

        The review insert and the hostel/user counter updates are one
        atomic batch. The hostel's cached detail and review list are
        invalidated afterwards.
        """
        validate_review(rating, comment)
        now = _now()
        document = {
            "_id": uuid.uuid4().hex,
            "hostel_id": hostel_id,
            "user_id": user.id,
            "user_name": user.name or "Anonymous",
            "user_avatar": user.avatar,
            "rating": rating,
            "comment": comment.strip(),
            "date_stayed": date_stayed,
            "duration": duration,
            "room_type": room_type,
            "verified": False,
            "helpful": 0,
            "reported": False,
            "created_at": now,
            "updated_at": now,
        }
        review = review_from_document(document)
        try:
            await asyncio.wait_for(self.reviews.add(document), self.mutation_timeout)
        except asyncio.TimeoutError:
            self.notifications.error(user.id, "Failed to add review")
            raise MutationError(MutationErrorKind.TIMEOUT, "Failed to add review")
        except HostelFinderError:
            self.notifications.error(user.id, "Failed to add review")
            raise

        self.cache.invalidate(QueryKeys.reviews(hostel_id))
        self.cache.invalidate(QueryKeys.hostel_detail(hostel_id))
        self.cache.invalidate(QueryKeys.HOSTEL_LISTS)
        self.notifications.success(user.id, "Review added successfully!")
        return review

    async def mark_helpful(self, review_id: str) -> None:
        """Unguarded counter increment: repeat votes each count"""
        if not await self.reviews.increment_helpful(review_id):
            raise NotFoundError(f"Review {review_id} not found")
        self.cache.invalidate(QueryKeys.REVIEWS)

    def watch(self, hostel_id: str, callback: Callable[[List[Review]], None]) -> Subscription:
        return self.reviews.watch(
            hostel_id,
            lambda documents: callback(reviews_from_documents(documents)),
            limit=self.page_size,
        )
