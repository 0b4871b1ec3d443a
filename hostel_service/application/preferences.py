"""
UI preference store - persisted per-user view settings
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from ..config import settings
from ..domain.filters import DEFAULT_FILTERS, DEFAULT_SORT, FilterModel, SortOption
from ..errors import ValidationError

logger = logging.getLogger(__name__)


class Theme(str, Enum):
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


class ViewMode(str, Enum):
    LIST = "list"
    MAP = "map"


@dataclass(frozen=True)
class UserPreferences:
    theme: Theme = Theme.SYSTEM
    filters: FilterModel = DEFAULT_FILTERS
    sort_by: SortOption = DEFAULT_SORT
    view_mode: ViewMode = ViewMode.LIST
    recent_searches: tuple = ()
    has_seen_onboarding: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "theme": self.theme.value,
            "filters": self.filters.to_dict(),
            "sort_by": self.sort_by.value,
            "view_mode": self.view_mode.value,
            "recent_searches": list(self.recent_searches),
            "has_seen_onboarding": self.has_seen_onboarding,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "UserPreferences":
        """
        Lenient load: each field that is missing or invalid falls back to
        its default instead of failing the whole record
        """
        defaults = cls()
        if not isinstance(data, dict):
            return defaults

        def parse(name, parser, default):
            if name not in data:
                return default
            try:
                return parser(data[name])
            except (ValueError, TypeError, ValidationError) as e:
                logger.warning(f"Ignoring stored preference '{name}': {e}")
                return default

        def parse_searches(value):
            if not isinstance(value, list):
                raise TypeError("recent_searches must be a list")
            searches = []
            for term in value:
                if isinstance(term, str) and term.strip() and term not in searches:
                    searches.append(term)
            return tuple(searches[:settings.RECENT_SEARCH_LIMIT])

        def parse_flag(value):
            if not isinstance(value, bool):
                raise TypeError("expected a boolean")
            return value

        return cls(
            theme=parse("theme", Theme, defaults.theme),
            filters=parse("filters", FilterModel.from_dict, defaults.filters),
            sort_by=parse("sort_by", SortOption, defaults.sort_by),
            view_mode=parse("view_mode", ViewMode, defaults.view_mode),
            recent_searches=parse("recent_searches", parse_searches, defaults.recent_searches),
            has_seen_onboarding=parse("has_seen_onboarding", parse_flag, defaults.has_seen_onboarding),
        )


class PreferenceStorage(ABC):
    """Key-value persistence for serialized preferences"""

    @abstractmethod
    async def load(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def save(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass


class PreferenceStore:
    """
    Owned container for one user's preferences.

    Reads are served from memory. Every setter updates memory immediately
    and schedules a write-through to storage without blocking the caller.
    """

    def __init__(self, storage: PreferenceStorage, key: str, recent_limit: int = settings.RECENT_SEARCH_LIMIT):
        self.storage = storage
        self.key = key
        self.recent_limit = recent_limit
        self._prefs = UserPreferences()
        self._pending: Set[asyncio.Task] = set()

    @property
    def preferences(self) -> UserPreferences:
        return self._prefs

    async def load(self) -> UserPreferences:
        try:
            raw = await self.storage.load(self.key)
        except Exception as e:
            logger.warning(f"Could not read preferences {self.key}: {e}")
            raw = None
        if raw is None:
            self._prefs = UserPreferences()
        else:
            try:
                data = json.loads(raw)
            except ValueError:
                logger.warning(f"Stored preferences {self.key} are corrupt, using defaults")
                data = None
            self._prefs = UserPreferences.from_dict(data)
        return self._prefs

    def _update(self, **changes) -> UserPreferences:
        self._prefs = replace(self._prefs, **changes)
        self._persist()
        return self._prefs

    def _persist(self) -> None:
        payload = json.dumps(self._prefs.to_dict())
        task = asyncio.get_running_loop().create_task(self._write(payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, payload: str) -> None:
        try:
            await self.storage.save(self.key, payload)
        except Exception as e:
            logger.error(f"Failed to persist preferences {self.key}: {e}")

    @property
    def idle(self) -> bool:
        return not self._pending

    async def flush(self) -> None:
        """Wait for scheduled writes"""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def set_theme(self, theme: Theme) -> UserPreferences:
        return self._update(theme=Theme(theme))

    def set_filters(self, filters: FilterModel) -> UserPreferences:
        return self._update(filters=filters)

    def reset_filters(self) -> UserPreferences:
        return self._update(filters=DEFAULT_FILTERS)

    def set_sort_by(self, sort_by: SortOption) -> UserPreferences:
        return self._update(sort_by=SortOption(sort_by))

    def set_view_mode(self, view_mode: ViewMode) -> UserPreferences:
        return self._update(view_mode=ViewMode(view_mode))

    def set_has_seen_onboarding(self, value: bool = True) -> UserPreferences:
        return self._update(has_seen_onboarding=value)

    def add_recent_search(self, term: str) -> UserPreferences:
        """Move ``term`` to the front, keeping the most recent distinct entries"""
        term = (term or "").strip()
        if not term:
            return self._prefs
        searches = [term] + [s for s in self._prefs.recent_searches if s != term]
        return self._update(recent_searches=tuple(searches[:self.recent_limit]))

    def clear_recent_searches(self) -> UserPreferences:
        return self._update(recent_searches=())

    def reset(self) -> UserPreferences:
        return self._update(**UserPreferences().__dict__)

    @property
    def recent_searches(self) -> List[str]:
        return list(self._prefs.recent_searches)


class PreferenceRegistry:
    """
    Lazily loaded preference stores, one per user.

    At most ``max_stores`` stores stay loaded. The least recently used store
    with no pending writes is dropped first and reloaded from storage on its
    next use.
    """

    def __init__(
        self,
        storage: PreferenceStorage,
        prefix: str = settings.PREFERENCES_KEY_PREFIX,
        max_stores: int = settings.PREFERENCES_CACHE_SIZE,
    ):
        self.storage = storage
        self.prefix = prefix
        self.max_stores = max_stores
        self._stores: "OrderedDict[str, PreferenceStore]" = OrderedDict()
        self._lock = asyncio.Lock()

    async def get(self, user_id: str) -> PreferenceStore:
        async with self._lock:
            store = self._stores.get(user_id)
            if store is None:
                store = PreferenceStore(self.storage, f"{self.prefix}:{user_id}")
                await store.load()
                self._stores[user_id] = store
                self._evict()
            else:
                self._stores.move_to_end(user_id)
            return store

    def _evict(self) -> None:
        for user_id in list(self._stores):
            if len(self._stores) <= self.max_stores:
                return
            if self._stores[user_id].idle:
                del self._stores[user_id]

    def loaded_users(self) -> List[str]:
        return list(self._stores)

    async def flush(self) -> None:
        for store in list(self._stores.values()):
            await store.flush()
