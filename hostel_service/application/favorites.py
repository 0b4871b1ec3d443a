"""
Favorites - optimistic toggle with snapshot / apply / rollback
"""
import asyncio
import logging
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Tuple

from ..config import settings
from ..domain.documents import hostel_from_document
from ..domain.models import Hostel
from ..domain.repositories import IFavoriteRepository, IHostelRepository, Subscription
from ..errors import (
    HostelFinderError, MalformedRecordError, MutationError, MutationErrorKind, NotFoundError,
)
from .notifications import NotificationCenter
from .query_cache import QueryCache, QueryKeys

logger = logging.getLogger(__name__)

ADDED_MESSAGE = "Added to favorites"
REMOVED_MESSAGE = "Removed from favorites"
FAILED_MESSAGE = "Failed to update favorite"


class FavoriteToggle:
    """
    One speculative favorite flip for a (user, hostel) pair.

    ``snapshot`` records the pair's membership and its position in the
    user's favorite list. ``apply`` flips membership and moves the hostel's
    favorite counter by one in every cached copy. ``rollback`` inverts only
    those two changes, so flips of other hostels still in flight survive.
    """

    def __init__(self, cache: QueryCache, user_id: str, hostel_id: str):
        self.cache = cache
        self.user_id = user_id
        self.hostel_id = hostel_id
        self.favorites_key = QueryKeys.favorites(user_id)
        self.was_favorite: Optional[bool] = None
        self.position = 0
        self.favorited: Optional[bool] = None

    def _current(self) -> List[str]:
        return list(self.cache.get_data(self.favorites_key) or [])

    def _write(self, updated: List[str]) -> None:
        if self.cache.get_data(self.favorites_key) is None:
            self.cache.set_data(self.favorites_key, updated)
        else:
            self.cache.patch_data(self.favorites_key, lambda _: updated)

    def snapshot(self) -> None:
        current = self._current()
        self.was_favorite = self.hostel_id in current
        self.position = current.index(self.hostel_id) if self.was_favorite else 0

    def apply(self) -> bool:
        """Flip membership; returns the new favorited state"""
        if self.was_favorite is None:
            self.snapshot()
        current = self._current()
        self.favorited = not self.was_favorite
        if self.favorited:
            updated = [self.hostel_id] + [h for h in current if h != self.hostel_id]
        else:
            updated = [h for h in current if h != self.hostel_id]
        self._write(updated)
        self.cache.adjust_favorite_count(self.hostel_id, 1 if self.favorited else -1)
        return self.favorited

    def rollback(self) -> None:
        if self.favorited is None:
            return
        current = [h for h in self._current() if h != self.hostel_id]
        if self.was_favorite:
            current.insert(min(self.position, len(current)), self.hostel_id)
        self._write(current)
        self.cache.adjust_favorite_count(self.hostel_id, -1 if self.favorited else 1)
        self.favorited = None


class FavoriteService:
    """Favorites for signed-in users"""

    def __init__(
        self,
        favorites: IFavoriteRepository,
        hostels: IHostelRepository,
        cache: QueryCache,
        notifications: NotificationCenter,
        mutation_timeout: float = settings.MUTATION_TIMEOUT,
    ):
        self.favorites = favorites
        self.hostels = hostels
        self.cache = cache
        self.notifications = notifications
        self.mutation_timeout = mutation_timeout
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = defaultdict(asyncio.Lock)
        self._inflight: Dict[str, int] = defaultdict(int)

    async def favorite_ids(self, user_id: str) -> List[str]:
        """The user's favorite hostel ids, most recent first"""
        return list(await self.cache.query(
            QueryKeys.favorites(user_id),
            lambda: self.favorites.list_ids(user_id),
            settings.STALE_TIME_LIST,
        ))

    async def favorite_hostels(self, user_id: str) -> List[Hostel]:
        ids = await self.favorite_ids(user_id)
        hostels = []
        for hostel_id in ids:
            document = await self.hostels.find_by_id(hostel_id)
            if document is None:
                continue
            try:
                hostels.append(hostel_from_document(document))
            except MalformedRecordError as e:
                logger.warning(f"Skipping favorite: {e}")
        return hostels

    async def is_favorite(self, user_id: str, hostel_id: str) -> bool:
        return hostel_id in await self.favorite_ids(user_id)

    async def toggle(self, user_id: str, hostel_id: str) -> bool:
        """
        Flip a favorite optimistically.

        Toggles on the same (user, hostel) run one at a time. On failure the
        cached state is restored before this coroutine yields again, an
        error notification is recorded, and MutationError is raised.
        """
        async with self._locks[(user_id, hostel_id)]:
            if await self.hostels.find_by_id(hostel_id) is None:
                raise NotFoundError(f"Hostel {hostel_id} not found")
            await self.favorite_ids(user_id)

            toggle = FavoriteToggle(self.cache, user_id, hostel_id)
            toggle.snapshot()
            favorited = toggle.apply()
            self._inflight[user_id] += 1
            try:
                await asyncio.wait_for(
                    self.favorites.set_favorite(user_id, hostel_id, favorited),
                    self.mutation_timeout,
                )
            except asyncio.TimeoutError:
                self._fail(toggle, MutationError(MutationErrorKind.TIMEOUT, FAILED_MESSAGE))
            except MutationError as e:
                self._fail(toggle, MutationError(e.kind, FAILED_MESSAGE))
            except HostelFinderError as e:
                logger.error(f"Favorite write failed: {e}")
                self._fail(toggle, MutationError(MutationErrorKind.UNKNOWN, FAILED_MESSAGE))
            finally:
                self._inflight[user_id] -= 1
                self.cache.schedule(self._reconcile(user_id, hostel_id), name=f"reconcile:{user_id}")

            self.notifications.success(user_id, ADDED_MESSAGE if favorited else REMOVED_MESSAGE)
            return favorited

    def _fail(self, toggle: FavoriteToggle, error: MutationError) -> None:
        toggle.rollback()
        logger.warning(f"Favorite toggle rolled back for {toggle.user_id}/{toggle.hostel_id}: {error.kind.value}")
        self.notifications.error(toggle.user_id, FAILED_MESSAGE)
        raise error

    async def _reconcile(self, user_id: str, hostel_id: str) -> None:
        """Refetch the authoritative favorite set and hostel record"""
        ids = await self.favorites.list_ids(user_id)
        document = await self.hostels.find_by_id(hostel_id)
        if self._inflight[user_id]:
            # a newer toggle is speculative; its own reconcile will follow
            return
        self.cache.set_data(QueryKeys.favorites(user_id), ids)
        if document is not None:
            self.cache.replace_hostel(hostel_from_document(document))
        self.cache.invalidate(QueryKeys.hostel_detail(hostel_id))

    def watch(self, user_id: str, hostel_id: str, callback: Callable[[bool], None]) -> Subscription:
        return self.favorites.watch(user_id, hostel_id, callback)
