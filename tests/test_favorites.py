import asyncio

import pytest

from hostel_service.application.favorites import (
    ADDED_MESSAGE, FAILED_MESSAGE, REMOVED_MESSAGE, FavoriteService, FavoriteToggle,
)
from hostel_service.application.notifications import NotificationType
from hostel_service.application.query_cache import QueryKeys
from hostel_service.application.services import HostelService
from hostel_service.domain.filters import FilterModel, SortOption
from hostel_service.errors import MutationError, MutationErrorKind, NotFoundError
from hostel_service.infrastructure.database.memory import MemoryFavoriteRepository


class FailingFavoriteRepository(MemoryFavoriteRepository):
    """Favorite writes are rejected"""

    async def set_favorite(self, user_id, hostel_id, favorited):
        raise MutationError(MutationErrorKind.REJECTED, "permission denied")


class GatedFavoriteRepository(MemoryFavoriteRepository):
    """Writes wait for their hostel's gate; rejected hostels fail once released"""

    def __init__(self, store):
        super().__init__(store)
        self.gates = {}
        self.rejected = set()

    async def set_favorite(self, user_id, hostel_id, favorited):
        gate = self.gates.get(hostel_id)
        if gate is not None:
            await gate.wait()
        if hostel_id in self.rejected:
            raise MutationError(MutationErrorKind.REJECTED, "permission denied")
        return await super().set_favorite(user_id, hostel_id, favorited)


class SlowFavoriteRepository(MemoryFavoriteRepository):
    async def set_favorite(self, user_id, hostel_id, favorited):
        await asyncio.sleep(1)
        return await super().set_favorite(user_id, hostel_id, favorited)


@pytest.fixture
def favorite_service(favorite_repo, hostel_repo, cache, notifications):
    return FavoriteService(favorite_repo, hostel_repo, cache, notifications, mutation_timeout=1)


@pytest.fixture
def hostel_service(hostel_repo, cache):
    return HostelService(hostel_repo, cache, page_size=10)


class TestToggle:
    async def test_add_then_remove(self, favorite_service, favorite_repo, cache):
        assert await favorite_service.toggle("user-1", "valco") is True
        assert await favorite_repo.is_favorite("user-1", "valco")
        assert await favorite_service.toggle("user-1", "valco") is False
        await cache.settle()
        assert not await favorite_repo.is_favorite("user-1", "valco")
        assert await favorite_service.favorite_ids("user-1") == []

    async def test_counter_follows_membership(self, favorite_service, hostel_repo, cache):
        await favorite_service.toggle("user-1", "amamoma")
        await cache.settle()
        assert (await hostel_repo.find_by_id("amamoma"))["favorite_count"] == 1

    async def test_newest_favorite_first(self, favorite_service, cache):
        await favorite_service.toggle("user-1", "valco")
        await favorite_service.toggle("user-1", "annex")
        assert cache.get_data(QueryKeys.favorites("user-1")) == ["annex", "valco"]

    async def test_success_notifications(self, favorite_service, notifications):
        await favorite_service.toggle("user-1", "valco")
        await favorite_service.toggle("user-1", "valco")
        messages = [n.message for n in notifications.list("user-1")]
        assert messages == [ADDED_MESSAGE, REMOVED_MESSAGE]

    async def test_cached_lists_are_updated(self, favorite_service, hostel_service, cache):
        filters = FilterModel()
        before = await hostel_service.list_hostels(filters, SortOption.RATING_DESC)
        count = next(h.favorite_count for h in before.items if h.id == "valco")

        await favorite_service.toggle("user-1", "valco")

        view = cache.view(QueryKeys.hostel_list(filters, SortOption.RATING_DESC))
        assert next(h.favorite_count for h in view.items if h.id == "valco") == count + 1

    async def test_unknown_hostel(self, favorite_service):
        with pytest.raises(NotFoundError):
            await favorite_service.toggle("user-1", "nowhere")

    async def test_concurrent_toggles_serialize(self, favorite_service, favorite_repo, cache):
        results = await asyncio.gather(
            favorite_service.toggle("user-1", "valco"),
            favorite_service.toggle("user-1", "valco"),
        )
        await cache.settle()
        assert results == [True, False]
        assert not await favorite_repo.is_favorite("user-1", "valco")


class TestRollback:
    @pytest.fixture
    def failing_service(self, store, hostel_repo, cache, notifications):
        return FavoriteService(FailingFavoriteRepository(store), hostel_repo, cache, notifications)

    async def test_failed_add_restores_state(self, store, failing_service, hostel_service, cache):
        # user already has {valco}
        store.insert("favorites", {
            "_id": "user-1_valco", "user_id": "user-1", "hostel_id": "valco", "saved_at": 1,
        })
        assert await failing_service.favorite_ids("user-1") == ["valco"]
        view = await hostel_service.list_hostels(FilterModel(), SortOption.RATING_DESC)
        counts = {h.id: h.favorite_count for h in view.items}

        with pytest.raises(MutationError) as exc:
            await failing_service.toggle("user-1", "annex")

        assert exc.value.message == FAILED_MESSAGE
        assert exc.value.kind == MutationErrorKind.REJECTED
        assert cache.get_data(QueryKeys.favorites("user-1")) == ["valco"]
        after = cache.view(QueryKeys.hostel_list(FilterModel(), SortOption.RATING_DESC))
        assert {h.id: h.favorite_count for h in after.items} == counts

    async def test_rollback_keeps_other_pairs_in_flight(
        self, store, hostel_repo, hostel_service, cache, notifications
    ):
        repo = GatedFavoriteRepository(store)
        service = FavoriteService(repo, hostel_repo, cache, notifications, mutation_timeout=5)
        key = QueryKeys.favorites("user-1")
        await service.toggle("user-1", "valco")
        await cache.settle()
        annex_count = (await hostel_service.get_hostel("annex")).favorite_count

        repo.gates["heights"] = asyncio.Event()
        repo.gates["annex"] = asyncio.Event()
        repo.rejected.add("heights")
        failing = asyncio.create_task(service.toggle("user-1", "heights"))
        pending = asyncio.create_task(service.toggle("user-1", "annex"))
        await asyncio.sleep(0.01)
        assert cache.get_data(key) == ["annex", "heights", "valco"]

        repo.gates["heights"].set()
        with pytest.raises(MutationError):
            await failing
        assert cache.get_data(key) == ["annex", "valco"]
        assert cache.get_data(QueryKeys.hostel_detail("annex")).favorite_count == annex_count + 1

        repo.gates["annex"].set()
        assert await pending is True
        await cache.settle()
        assert cache.get_data(key) == ["annex", "valco"]

    async def test_failed_remove_restores_position(self, store, hostel_repo, cache, notifications):
        repo = GatedFavoriteRepository(store)
        service = FavoriteService(repo, hostel_repo, cache, notifications)
        for hostel_id in ("valco", "annex", "heights"):
            await service.toggle("user-1", hostel_id)
        await cache.settle()
        repo.rejected.add("annex")

        with pytest.raises(MutationError):
            await service.toggle("user-1", "annex")

        assert cache.get_data(QueryKeys.favorites("user-1")) == ["heights", "annex", "valco"]

    async def test_error_notification(self, failing_service, notifications):
        with pytest.raises(MutationError):
            await failing_service.toggle("user-1", "valco")
        [notification] = notifications.list("user-1")
        assert notification.type == NotificationType.ERROR
        assert notification.message == FAILED_MESSAGE

    async def test_timeout_rolls_back(self, store, hostel_repo, cache, notifications):
        service = FavoriteService(
            SlowFavoriteRepository(store), hostel_repo, cache, notifications, mutation_timeout=0.01
        )
        with pytest.raises(MutationError) as exc:
            await service.toggle("user-1", "valco")
        assert exc.value.kind == MutationErrorKind.TIMEOUT
        assert cache.get_data(QueryKeys.favorites("user-1")) == []


class TestFavoriteToggle:
    async def test_apply_and_rollback(self, cache, hostel_service):
        await hostel_service.get_hostel("valco")
        cache.set_data(QueryKeys.favorites("user-1"), ["annex"])
        toggle = FavoriteToggle(cache, "user-1", "valco")
        toggle.snapshot()

        assert toggle.apply() is True
        assert cache.get_data(QueryKeys.favorites("user-1")) == ["valco", "annex"]
        assert cache.get_data(QueryKeys.hostel_detail("valco")).favorite_count == 3

        toggle.rollback()
        assert cache.get_data(QueryKeys.favorites("user-1")) == ["annex"]
        assert cache.get_data(QueryKeys.hostel_detail("valco")).favorite_count == 2


async def test_favorite_hostels_skips_deleted(favorite_service, hostel_repo, cache):
    await favorite_service.toggle("user-1", "valco")
    await favorite_service.toggle("user-1", "heights")
    await cache.settle()
    await hostel_repo.delete("heights")
    cache.invalidate(QueryKeys.FAVORITES)
    hostels = await favorite_service.favorite_hostels("user-1")
    assert [h.id for h in hostels] == ["valco"]


async def test_watch_reports_membership(favorite_service):
    seen = []
    subscription = favorite_service.watch("user-1", "valco", seen.append)
    await asyncio.sleep(0)
    await favorite_service.toggle("user-1", "valco")
    await asyncio.sleep(0)
    subscription.cancel()
    assert seen[0] is False
    assert seen[-1] is True
    assert not subscription.active
