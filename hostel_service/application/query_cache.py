"""
Query cache - shared, keyed store of fetched pages and query results

Paginated ("infinite") entries follow the state machine

    idle -> loading -> ready -> loading_more -> ready -> ...

with ``error`` reachable from either loading state. Each entry carries a
generation counter: a refresh bumps it, and any result produced for an
older generation is discarded when it arrives.

All reads and writes of cached records go through this class; the
optimistic mutation layer uses the record helpers.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import (
    Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple,
)

from ..config import settings
from ..domain.filters import FilterModel, SortOption, cache_key
from ..domain.models import Hostel, Page, flatten_pages
from ..errors import FetchError, FetchErrorKind, HostelFinderError

logger = logging.getLogger(__name__)

PageLoader = Callable[[Optional[str]], Awaitable[Page]]


class QueryKeys:
    """Key namespaces for cached queries"""

    HOSTELS = "hostels:"
    HOSTEL_LISTS = "hostels:list:"
    REVIEWS = "reviews:list:"
    FAVORITES = "user:favorites:"
    SEARCH = "search:results:"

    @staticmethod
    def hostel_list(filters: FilterModel, sort: SortOption) -> str:
        return cache_key(filters, sort)

    @staticmethod
    def hostel_detail(hostel_id: str) -> str:
        return f"hostels:detail:{hostel_id}"

    @staticmethod
    def hostel_nearby(latitude: float, longitude: float, radius_km: float) -> str:
        return f"hostels:nearby:{latitude:.5f},{longitude:.5f}:{radius_km:g}"

    @staticmethod
    def reviews(hostel_id: str) -> str:
        return f"reviews:list:{hostel_id}"

    @staticmethod
    def favorites(user_id: str) -> str:
        return f"user:favorites:{user_id}"

    @staticmethod
    def profile(user_id: str) -> str:
        return f"user:profile:{user_id}"

    @staticmethod
    def search(term: str) -> str:
        return f"search:results:{term.strip().lower()}"


class QueryStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    LOADING_MORE = "loading_more"
    ERROR = "error"


@dataclass
class InfiniteEntry:
    key: str
    loader: PageLoader
    stale_time: float
    pages: List[Page] = field(default_factory=list)
    status: QueryStatus = QueryStatus.IDLE
    generation: int = 0
    version: int = 0
    error: Optional[HostelFinderError] = None
    failed_more: bool = False
    updated_at: Optional[float] = None
    last_used: float = 0.0
    task: Optional[asyncio.Task] = None

    @property
    def has_more(self) -> bool:
        return bool(self.pages) and self.pages[-1].has_more

    @property
    def busy(self) -> bool:
        return self.status in (QueryStatus.LOADING, QueryStatus.LOADING_MORE)


@dataclass
class DataEntry:
    key: str
    data: Any = None
    has_data: bool = False
    stale_time: float = 0.0
    version: int = 0
    error: Optional[HostelFinderError] = None
    updated_at: Optional[float] = None
    last_used: float = 0.0
    task: Optional[asyncio.Task] = None


@dataclass(frozen=True)
class QueryView:
    """What a consumer sees for one paginated key"""
    key: str
    items: Tuple[Any, ...]
    status: QueryStatus
    has_more: bool
    error: Optional[HostelFinderError] = None
    quarantined: int = 0

    @property
    def loading(self) -> bool:
        return self.status == QueryStatus.LOADING

    @property
    def loading_more(self) -> bool:
        return self.status == QueryStatus.LOADING_MORE


class QueryCache:
    """Process-wide cache shared by every request and connection"""

    def __init__(
        self,
        timeout: float = settings.FETCH_TIMEOUT,
        retries: int = settings.FETCH_RETRIES,
        retry_base_delay: float = settings.RETRY_BASE_DELAY,
        retry_max_delay: float = settings.RETRY_MAX_DELAY,
        gc_time: float = settings.GC_TIME,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.timeout = timeout
        self.retries = retries
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self.gc_time = gc_time
        self.clock = clock
        self._infinite: Dict[str, InfiniteEntry] = {}
        self._data: Dict[str, DataEntry] = {}
        self._background: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Loader calls

    def retry_delay(self, attempt: int) -> float:
        """Capped exponential backoff"""
        return min(self.retry_base_delay * (2 ** attempt), self.retry_max_delay)

    async def call(self, fn: Callable[..., Awaitable[Any]], *args) -> Any:
        """
        Run a loader bounded by the timeout, retrying FetchErrors.

        Invalid cursors are not retried. Exceptions other than FetchError
        propagate immediately.
        """
        error: Optional[FetchError] = None
        for attempt in range(self.retries + 1):
            try:
                return await asyncio.wait_for(fn(*args), self.timeout)
            except asyncio.TimeoutError:
                error = FetchError(FetchErrorKind.TIMEOUT, f"Request timed out after {self.timeout}s")
            except FetchError as e:
                if e.kind == FetchErrorKind.INVALID_CURSOR:
                    raise
                error = e
            if attempt < self.retries:
                delay = self.retry_delay(attempt)
                logger.warning(f"Fetch failed ({error.kind.value}), retrying in {delay:.1f}s")
                await asyncio.sleep(delay)
        raise error

    def _is_fresh(self, updated_at: Optional[float], stale_time: float) -> bool:
        return updated_at is not None and self.clock() - updated_at < stale_time

    # ------------------------------------------------------------------
    # Paginated entries

    def view(self, key: str) -> Optional[QueryView]:
        entry = self._infinite.get(key)
        if entry is None:
            return None
        return QueryView(
            key=key,
            items=tuple(flatten_pages(entry.pages)),
            status=entry.status,
            has_more=entry.has_more,
            error=entry.error,
            quarantined=sum(p.quarantined for p in entry.pages),
        )

    async def fetch(self, key: str, loader: PageLoader, stale_time: float) -> QueryView:
        """
        Return the entry for ``key``, loading the first page when the key is
        new, stale or in error. Concurrent callers share one request.
        """
        self.collect_garbage()
        entry = self._infinite.get(key)
        if entry is None:
            entry = InfiniteEntry(key=key, loader=loader, stale_time=stale_time)
            self._infinite[key] = entry
        entry.last_used = self.clock()

        if entry.status == QueryStatus.LOADING and entry.task is not None:
            await asyncio.shield(entry.task)
            return self.view(key)
        if entry.status == QueryStatus.LOADING_MORE:
            return self.view(key)
        if entry.status == QueryStatus.READY and self._is_fresh(entry.updated_at, entry.stale_time):
            return self.view(key)
        return await self._start_first(entry)

    async def load_more(self, key: str) -> QueryView:
        """Append the next page; a no-op while loading or when exhausted"""
        entry = self._infinite.get(key)
        if entry is None:
            raise KeyError(key)
        entry.last_used = self.clock()
        if entry.status != QueryStatus.READY or not entry.has_more:
            return self.view(key)

        generation = entry.generation
        cursor = entry.pages[-1].cursor
        entry.status = QueryStatus.LOADING_MORE
        entry.task = asyncio.get_running_loop().create_task(self._load_more(entry, generation, cursor))
        await asyncio.shield(entry.task)
        return self.view(key)

    async def refresh(self, key: str) -> QueryView:
        """Discard held pages and refetch page 1"""
        entry = self._infinite.get(key)
        if entry is None:
            raise KeyError(key)
        entry.last_used = self.clock()
        return await self._start_first(entry)

    async def retry(self, key: str) -> QueryView:
        """Re-enter loading after an error"""
        entry = self._infinite.get(key)
        if entry is None:
            raise KeyError(key)
        if entry.status != QueryStatus.ERROR:
            return self.view(key)
        if entry.failed_more and entry.pages:
            entry.status = QueryStatus.READY
            entry.error = None
            return await self.load_more(key)
        return await self._start_first(entry)

    async def _start_first(self, entry: InfiniteEntry) -> QueryView:
        entry.generation += 1
        entry.pages = []
        entry.error = None
        entry.status = QueryStatus.LOADING
        entry.task = asyncio.get_running_loop().create_task(self._load_first(entry, entry.generation))
        await asyncio.shield(entry.task)
        return self.view(entry.key)

    def _fail(self, entry: InfiniteEntry, generation: int, error: HostelFinderError, more: bool) -> None:
        if entry.generation != generation:
            return
        logger.error(f"Loading {'more for ' if more else ''}{entry.key} failed: {error}")
        entry.status = QueryStatus.ERROR
        entry.error = error
        entry.failed_more = more

    async def _load_first(self, entry: InfiniteEntry, generation: int) -> None:
        try:
            page = await self.call(entry.loader, None)
        except HostelFinderError as e:
            self._fail(entry, generation, e, more=False)
            return
        except Exception as e:
            logger.exception(f"Unexpected error loading {entry.key}")
            self._fail(entry, generation, FetchError(FetchErrorKind.UNKNOWN, str(e)), more=False)
            return
        if entry.generation != generation:
            logger.debug(f"Discarding superseded first page for {entry.key}")
            return
        entry.pages = [page]
        entry.version += 1
        entry.status = QueryStatus.READY
        entry.updated_at = self.clock()

    async def _load_more(self, entry: InfiniteEntry, generation: int, cursor: Optional[str]) -> None:
        try:
            page = await self.call(entry.loader, cursor)
        except HostelFinderError as e:
            self._fail(entry, generation, e, more=True)
            return
        except Exception as e:
            logger.exception(f"Unexpected error loading more for {entry.key}")
            self._fail(entry, generation, FetchError(FetchErrorKind.UNKNOWN, str(e)), more=True)
            return
        if entry.generation != generation:
            logger.debug(f"Discarding superseded page for {entry.key}")
            return
        entry.pages.append(page)
        entry.version += 1
        entry.status = QueryStatus.READY
        entry.updated_at = self.clock()

    # ------------------------------------------------------------------
    # Plain data entries

    async def query(self, key: str, fn: Callable[[], Awaitable[Any]], stale_time: float) -> Any:
        """Cached result of ``fn``; refetched once older than ``stale_time``"""
        self.collect_garbage()
        entry = self._data.setdefault(key, DataEntry(key=key))
        entry.last_used = self.clock()
        entry.stale_time = stale_time
        if entry.task is not None and not entry.task.done():
            return await asyncio.shield(entry.task)
        if entry.has_data and self._is_fresh(entry.updated_at, stale_time):
            return entry.data

        entry.task = asyncio.get_running_loop().create_task(self.call(fn))
        try:
            data = await asyncio.shield(entry.task)
        except HostelFinderError as e:
            entry.error = e
            raise
        self._store(entry, data)
        return data

    def _store(self, entry: DataEntry, data: Any) -> None:
        entry.data = data
        entry.has_data = True
        entry.error = None
        entry.version += 1
        entry.updated_at = self.clock()

    def get_data(self, key: str, default: Any = None) -> Any:
        entry = self._data.get(key)
        return entry.data if entry is not None and entry.has_data else default

    def set_data(self, key: str, data: Any) -> None:
        """Store authoritative data for a key"""
        entry = self._data.setdefault(key, DataEntry(key=key))
        entry.last_used = self.clock()
        self._store(entry, data)

    def patch_data(self, key: str, fn: Callable[[Any], Any]) -> None:
        """Speculatively rewrite held data without marking it authoritative"""
        entry = self._data.get(key)
        if entry is not None and entry.has_data:
            entry.data = fn(entry.data)

    # ------------------------------------------------------------------
    # Invalidation and housekeeping

    def invalidate(self, prefix: str) -> int:
        """Mark every entry under ``prefix`` stale; returns the count"""
        count = 0
        for entry in list(self._infinite.values()) + list(self._data.values()):
            if entry.key.startswith(prefix):
                entry.updated_at = None
                count += 1
        if count:
            logger.debug(f"Invalidated {count} entries under '{prefix}'")
        return count

    def remove(self, prefix: str) -> None:
        for store in (self._infinite, self._data):
            for key in [k for k in store if k.startswith(prefix)]:
                del store[key]

    def collect_garbage(self) -> int:
        """Drop entries unused for longer than gc_time"""
        now = self.clock()
        removed = 0
        for store in (self._infinite, self._data):
            for key, entry in list(store.items()):
                idle = entry.task is None or entry.task.done()
                if idle and now - entry.last_used > self.gc_time:
                    del store[key]
                    removed += 1
        return removed

    def keys(self) -> List[str]:
        return list(self._infinite) + list(self._data)

    # ------------------------------------------------------------------
    # Optimistic mutation support

    def map_hostels(self, hostel_id: str, fn: Callable[[Hostel], Hostel]) -> int:
        """Rewrite every cached copy of a hostel; returns the number touched"""
        touched = 0

        def apply(value: Any) -> Any:
            nonlocal touched
            if isinstance(value, Hostel) and value.id == hostel_id:
                touched += 1
                return fn(value)
            return value

        for entry in self._infinite.values():
            new_pages = []
            for page in entry.pages:
                items = tuple(apply(item) for item in page.items)
                new_pages.append(replace(page, items=items))
            entry.pages = new_pages
        for entry in self._data.values():
            if not entry.has_data:
                continue
            if isinstance(entry.data, list):
                entry.data = [apply(item) for item in entry.data]
            else:
                entry.data = apply(entry.data)
        return touched

    def adjust_favorite_count(self, hostel_id: str, delta: int) -> int:
        return self.map_hostels(
            hostel_id,
            lambda h: replace(h, favorite_count=max(0, h.favorite_count + delta)),
        )

    def replace_hostel(self, hostel: Hostel) -> int:
        """Swap in an authoritative record, keeping each copy's computed distance"""
        return self.map_hostels(hostel.id, lambda old: replace(hostel, distance=old.distance))

    # ------------------------------------------------------------------
    # Background work

    def schedule(self, coro: Awaitable[Any], name: str = "background") -> asyncio.Task:
        """Run a coroutine in the background, logging failures"""
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)

        def done(t: asyncio.Task) -> None:
            self._background.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.warning(f"Background task {name} failed: {t.exception()}")

        task.add_done_callback(done)
        return task

    async def settle(self) -> None:
        """Wait for all background work"""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._background):
            task.cancel()
        await self.settle()
