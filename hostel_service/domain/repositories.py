"""
Repository interfaces - Define contracts for data access

Repositories deal in raw documents; coercion into domain records happens in
the application layer so that malformed documents can be quarantined there.
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from ..application.query_builder import Query

Document = Dict[str, Any]
RawPage = Tuple[List[Document], Optional[str]]


class Subscription(ABC):
    """Handle to a live listener; cancel() stops delivery"""

    @abstractmethod
    def cancel(self) -> None:
        """Stop the listener. Safe to call more than once"""
        pass

    @property
    @abstractmethod
    def active(self) -> bool:
        pass


class IHostelRepository(ABC):
    """Hostel repository interface"""

    @abstractmethod
    async def find_page(self, query: "Query", limit: int, cursor: Optional[str] = None) -> RawPage:
        """
        Return up to ``limit`` matching documents after ``cursor`` and the
        cursor positioned after the last returned document
        """
        pass

    @abstractmethod
    async def find_all(self, query: Optional["Query"] = None, limit: int = 500) -> List[Document]:
        """Matching documents without pagination"""
        pass

    @abstractmethod
    async def find_by_id(self, hostel_id: str) -> Optional[Document]:
        pass

    @abstractmethod
    async def create(self, document: Document) -> Document:
        pass

    @abstractmethod
    async def update(self, hostel_id: str, changes: Document) -> Optional[Document]:
        """Apply field changes; None when the hostel does not exist"""
        pass

    @abstractmethod
    async def delete(self, hostel_id: str) -> bool:
        """Delete a hostel together with its reviews and favorites"""
        pass

    @abstractmethod
    async def increment_views(self, hostel_id: str) -> None:
        pass

    @abstractmethod
    def watch(self, hostel_id: str, callback: Callable[[Optional[Document]], None]) -> Subscription:
        """Deliver the current document, then every change to it"""
        pass


class IReviewRepository(ABC):
    """Review repository interface"""

    @abstractmethod
    async def find_page(self, hostel_id: str, limit: int, cursor: Optional[str] = None) -> RawPage:
        pass

    @abstractmethod
    async def add(self, document: Document) -> Document:
        """
        Atomically insert the review, bump the hostel's review count and
        average rating, and bump the reviewer's review count
        """
        pass

    @abstractmethod
    async def increment_helpful(self, review_id: str) -> bool:
        pass

    @abstractmethod
    def watch(self, hostel_id: str, callback: Callable[[List[Document]], None], limit: int = 20) -> Subscription:
        """Deliver the newest reviews of a hostel whenever they change"""
        pass


class IFavoriteRepository(ABC):
    """Favorite repository interface"""

    @abstractmethod
    async def list_ids(self, user_id: str) -> List[str]:
        pass

    @abstractmethod
    async def is_favorite(self, user_id: str, hostel_id: str) -> bool:
        pass

    @abstractmethod
    async def set_favorite(self, user_id: str, hostel_id: str, favorited: bool) -> bool:
        """
        Atomically write the favorite document and adjust the hostel's and
        user's favorite counters. Returns False when already in that state
        """
        pass

    @abstractmethod
    def watch(self, user_id: str, hostel_id: str, callback: Callable[[bool], None]) -> Subscription:
        pass


class IUserRepository(ABC):
    """User profile repository interface"""

    @abstractmethod
    async def find_by_id(self, user_id: str) -> Optional[Document]:
        pass

    @abstractmethod
    async def create(self, document: Document) -> Document:
        pass

    @abstractmethod
    async def update(self, user_id: str, changes: Document) -> Optional[Document]:
        pass
