"""
Service wiring
"""
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from .application.accounts import AuthService
from .application.favorites import FavoriteService
from .application.media import MediaService
from .application.notifications import NotificationCenter
from .application.preferences import PreferenceRegistry
from .application.query_cache import QueryCache
from .application.services import HostelService, ReviewService, SearchService
from .application.subscriptions import SubscriptionRegistry
from .config import Settings, settings as default_settings
from .domain.repositories import (
    IFavoriteRepository, IHostelRepository, IReviewRepository, IUserRepository,
)
from .infrastructure.cdn import CdnClient
from .infrastructure.database.connection import MongoDB
from .infrastructure.database.memory import (
    MemoryFavoriteRepository, MemoryHostelRepository, MemoryReviewRepository,
    MemoryStore, MemoryUserRepository,
)
from .infrastructure.database.repositories import (
    FavoriteRepository, HostelRepository, ReviewRepository, UserRepository,
)
from .infrastructure.geo_services import GeoServicesClient
from .infrastructure.identity import IdentityClient
from .infrastructure.preference_storage import MemoryPreferenceStorage, RedisPreferenceStorage

logger = logging.getLogger(__name__)


@dataclass
class Container:
    """Everything a request handler needs, shared for the process lifetime"""
    hostel_repo: IHostelRepository
    review_repo: IReviewRepository
    favorite_repo: IFavoriteRepository
    user_repo: IUserRepository
    cache: QueryCache
    notifications: NotificationCenter
    preferences: PreferenceRegistry
    subscriptions: SubscriptionRegistry
    identity: IdentityClient
    cdn: CdnClient
    geo: GeoServicesClient
    hostels: HostelService
    search: SearchService
    reviews: ReviewService
    favorites: FavoriteService
    auth: AuthService
    media: MediaService
    resources: List[Any] = field(default_factory=list)

    async def start(self):
        for resource in self.resources:
            await resource.connect()
        await self.identity.start()
        await self.cdn.start()
        await self.geo.start()

    async def stop(self):
        self.subscriptions.close()
        await self.preferences.flush()
        await self.cache.close()
        self.notifications.close()
        await self.geo.stop()
        await self.cdn.stop()
        await self.identity.stop()
        for resource in reversed(self.resources):
            await resource.disconnect()


def build_container(
    config: Optional[Settings] = None,
    cache: Optional[QueryCache] = None,
    identity: Optional[IdentityClient] = None,
    cdn: Optional[CdnClient] = None,
    geo: Optional[GeoServicesClient] = None,
) -> Container:
    """Assemble services for the configured backends"""
    config = config or default_settings
    resources: List[Any] = []

    if config.STORE_BACKEND == "memory":
        store = MemoryStore()
        repos = (
            MemoryHostelRepository(store), MemoryReviewRepository(store),
            MemoryFavoriteRepository(store), MemoryUserRepository(store),
        )
    else:
        store = MongoDB(config.MONGODB_URL, config.MONGODB_DATABASE)
        repos = (
            HostelRepository(store), ReviewRepository(store),
            FavoriteRepository(store), UserRepository(store),
        )
    resources.append(store)
    hostel_repo, review_repo, favorite_repo, user_repo = repos

    if config.PREFERENCES_BACKEND == "memory":
        storage = MemoryPreferenceStorage()
    else:
        storage = RedisPreferenceStorage()
    resources.append(storage)

    cache = cache or QueryCache(
        timeout=config.FETCH_TIMEOUT,
        retries=config.FETCH_RETRIES,
        retry_base_delay=config.RETRY_BASE_DELAY,
        retry_max_delay=config.RETRY_MAX_DELAY,
        gc_time=config.GC_TIME,
    )
    notifications = NotificationCenter(config.NOTIFICATION_DURATION)
    identity = identity or IdentityClient(config.IDENTITY_API_KEY, config.IDENTITY_API_URL)
    cdn = cdn or CdnClient(config.CDN_CLOUD_NAME, config.CDN_UPLOAD_PRESET)
    geo = geo or GeoServicesClient()

    logger.info(f"Store backend: {config.STORE_BACKEND}, preferences backend: {config.PREFERENCES_BACKEND}")
    return Container(
        hostel_repo=hostel_repo,
        review_repo=review_repo,
        favorite_repo=favorite_repo,
        user_repo=user_repo,
        cache=cache,
        notifications=notifications,
        preferences=PreferenceRegistry(storage, config.PREFERENCES_KEY_PREFIX, config.PREFERENCES_CACHE_SIZE),
        subscriptions=SubscriptionRegistry(),
        identity=identity,
        cdn=cdn,
        geo=geo,
        hostels=HostelService(hostel_repo, cache, config.DEFAULT_PAGE_SIZE),
        search=SearchService(hostel_repo, cache, config.SEARCH_MIN_LENGTH),
        reviews=ReviewService(review_repo, cache, notifications, config.REVIEWS_PAGE_SIZE, config.MUTATION_TIMEOUT),
        favorites=FavoriteService(favorite_repo, hostel_repo, cache, notifications, config.MUTATION_TIMEOUT),
        auth=AuthService(identity, user_repo),
        media=MediaService(cdn, config.MAX_UPLOAD_FILES),
        resources=resources,
    )
