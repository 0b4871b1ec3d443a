"""
Paginated fetcher - executes compiled queries one page at a time
"""
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from ..domain.documents import hostel_from_document, review_from_document
from ..domain.models import Hostel, Page, Review
from ..domain.repositories import IHostelRepository, IReviewRepository, RawPage
from ..errors import FetchError, FetchErrorKind, MalformedRecordError
from .query_builder import Query, describe

logger = logging.getLogger(__name__)

T = TypeVar("T")


def coerce_page(
    documents: List[Dict[str, Any]],
    cursor: Optional[str],
    page_size: int,
    coerce: Callable[[Dict[str, Any]], T],
) -> Page:
    """
    Build a Page from raw documents.

    ``has_more`` is decided from the raw document count: a full page means
    more may follow even if some of its documents were quarantined.
    """
    items: List[T] = []
    quarantined = 0
    for document in documents:
        try:
            items.append(coerce(document))
        except MalformedRecordError as e:
            quarantined += 1
            logger.warning(f"Quarantined document: {e}")
    has_more = len(documents) >= page_size
    return Page(
        items=tuple(items),
        cursor=cursor if has_more else None,
        has_more=has_more,
        quarantined=quarantined,
    )


async def _run(load: Callable[[], Awaitable[RawPage]]) -> RawPage:
    try:
        return await load()
    except FetchError:
        raise
    except Exception as e:
        logger.error(f"Unexpected store failure: {e}")
        raise FetchError(FetchErrorKind.UNKNOWN, str(e))


class PaginatedFetcher:
    """Fetches fixed-size pages of hostels for a compiled query"""

    def __init__(self, repository: IHostelRepository):
        self.repository = repository

    async def fetch(self, query: Query, page_size: int, cursor: Optional[str] = None) -> Page:
        """
        Fetch one page.

        No cursor means the first page. A page shorter than ``page_size``
        ends the sequence. Store failures surface as FetchError and no
        partial page is returned.
        """
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        logger.debug(f"Fetching hostels: {describe(query)} limit={page_size} cursor={bool(cursor)}")
        documents, next_cursor = await _run(lambda: self.repository.find_page(query, page_size, cursor))
        return coerce_page(documents, next_cursor, page_size, hostel_from_document)


class ReviewFetcher:
    """Fetches pages of a hostel's reviews, newest first"""

    def __init__(self, repository: IReviewRepository):
        self.repository = repository

    async def fetch(self, hostel_id: str, page_size: int, cursor: Optional[str] = None) -> Page:
        documents, next_cursor = await _run(lambda: self.repository.find_page(hostel_id, page_size, cursor))
        return coerce_page(documents, next_cursor, page_size, review_from_document)


def split_valid(documents: List[Dict[str, Any]]) -> Tuple[List[Hostel], int]:
    """Coerce an unpaginated result set, counting quarantined documents"""
    page = coerce_page(documents, None, len(documents) + 1, hostel_from_document)
    return list(page.items), page.quarantined


def reviews_from_documents(documents: List[Dict[str, Any]]) -> List[Review]:
    page = coerce_page(documents, None, len(documents) + 1, review_from_document)
    return list(page.items)
