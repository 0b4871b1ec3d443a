"""
In-memory document store

Implements the repository interfaces with the same query, ordering and
cursor semantics as the MongoDB adapter. Used for local development
(STORE_BACKEND=memory) and tests.
"""
import asyncio
import copy
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ...application.query_builder import Query, evaluate, get_field, review_query
from ...domain.repositories import (
    Document, IFavoriteRepository, IHostelRepository, IReviewRepository,
    IUserRepository, RawPage, Subscription,
)
from ...errors import ValidationError
from .cursors import cursor_after, decode_cursor
from .repositories import favorite_id

logger = logging.getLogger(__name__)


class ListenerSubscription(Subscription):
    """Subscription registered on a MemoryStore collection"""

    def __init__(self, store: "MemoryStore", collection: str, notify: Callable[[], None]):
        self._store = store
        self._collection = collection
        self._notify = notify
        self._active = True
        store.listeners[collection].append(self)
        asyncio.get_running_loop().call_soon(self.deliver)

    def deliver(self) -> None:
        if self._active:
            self._notify()

    def cancel(self) -> None:
        if self._active:
            self._active = False
            self._store.listeners[self._collection].remove(self)

    @property
    def active(self) -> bool:
        return self._active


class MemoryStore:
    """Collections of documents keyed by _id"""

    COLLECTIONS = ("hostels", "reviews", "favorites", "users")

    def __init__(self):
        self.collections: Dict[str, Dict[str, Document]] = {name: {} for name in self.COLLECTIONS}
        self.listeners: Dict[str, List[ListenerSubscription]] = {name: [] for name in self.COLLECTIONS}

    async def connect(self):
        logger.info("Using in-memory document store")

    async def disconnect(self):
        for subscriptions in self.listeners.values():
            for subscription in list(subscriptions):
                subscription.cancel()

    def changed(self, collection: str) -> None:
        """Schedule delivery to every listener of a collection"""
        loop = asyncio.get_running_loop()
        for subscription in list(self.listeners[collection]):
            loop.call_soon(subscription.deliver)

    def insert(self, collection: str, document: Document) -> Document:
        self.collections[collection][str(document["_id"])] = copy.deepcopy(document)
        self.changed(collection)
        return document

    def get(self, collection: str, key: str) -> Optional[Document]:
        document = self.collections[collection].get(key)
        return copy.deepcopy(document) if document is not None else None

    def increment(self, collection: str, key: str, field: str, amount: float) -> None:
        document = self.collections[collection].get(key)
        if document is not None:
            document[field] = document.get(field, 0) + amount
            self.changed(collection)

    def matching(self, collection: str, query: Query) -> List[Document]:
        """Matching documents in query order, _id ascending as tiebreak"""
        documents = [d for d in self.collections[collection].values() if evaluate(d, query)]
        documents.sort(key=lambda d: str(d["_id"]))
        field = query.order.field
        documents.sort(
            key=lambda d: _null_first(get_field(d, field, None)),
            reverse=query.order.descending,
        )
        return [copy.deepcopy(d) for d in documents]

    def page(self, collection: str, query: Query, limit: int, cursor: Optional[str]) -> RawPage:
        documents = self.matching(collection, query)
        field = query.order.field
        if cursor:
            last_value, last_id = decode_cursor(cursor)
            documents = [
                d for d in documents
                if _is_after(get_field(d, field, None), str(d["_id"]), last_value, last_id, query.order.descending)
            ]
        documents = documents[:limit]
        last = documents[-1] if documents else None
        return documents, cursor_after(last, get_field(last, field, None) if last else None)


def _null_first(value: Any):
    return (value is not None, value)


def _is_after(value: Any, doc_id: str, last_value: Any, last_id: str, descending: bool) -> bool:
    if value == last_value:
        return doc_id > last_id
    if last_value is None:
        return not descending
    if value is None:
        return descending
    return value < last_value if descending else value > last_value


class MemoryHostelRepository(IHostelRepository):
    """In-memory implementation of hostel repository"""

    def __init__(self, store: MemoryStore):
        self.store = store

    async def find_page(self, query: Query, limit: int, cursor: Optional[str] = None) -> RawPage:
        return self.store.page("hostels", query, limit, cursor)

    async def find_all(self, query: Optional[Query] = None, limit: int = 500) -> List[Document]:
        if query is None:
            return [copy.deepcopy(d) for d in self.store.collections["hostels"].values()][:limit]
        return self.store.matching("hostels", query)[:limit]

    async def find_by_id(self, hostel_id: str) -> Optional[Document]:
        return self.store.get("hostels", hostel_id)

    async def create(self, document: Document) -> Document:
        return self.store.insert("hostels", document)

    async def update(self, hostel_id: str, changes: Document) -> Optional[Document]:
        document = self.store.collections["hostels"].get(hostel_id)
        if document is None:
            return None
        for path, value in changes.items():
            target = document
            *parents, leaf = path.split(".")
            for part in parents:
                target = target.setdefault(part, {})
            target[leaf] = copy.deepcopy(value)
        self.store.changed("hostels")
        return copy.deepcopy(document)

    async def delete(self, hostel_id: str) -> bool:
        if self.store.collections["hostels"].pop(hostel_id, None) is None:
            return False
        for collection in ("reviews", "favorites"):
            documents = self.store.collections[collection]
            for key in [k for k, d in documents.items() if d.get("hostel_id") == hostel_id]:
                del documents[key]
            self.store.changed(collection)
        self.store.changed("hostels")
        return True

    async def increment_views(self, hostel_id: str) -> None:
        self.store.increment("hostels", hostel_id, "views", 1)

    def watch(self, hostel_id: str, callback: Callable[[Optional[Document]], None]) -> Subscription:
        return ListenerSubscription(self.store, "hostels", lambda: callback(self.store.get("hostels", hostel_id)))


class MemoryReviewRepository(IReviewRepository):
    """In-memory implementation of review repository"""

    def __init__(self, store: MemoryStore):
        self.store = store

    async def find_page(self, hostel_id: str, limit: int, cursor: Optional[str] = None) -> RawPage:
        return self.store.page("reviews", review_query(hostel_id), limit, cursor)

    async def add(self, document: Document) -> Document:
        hostel = self.store.collections["hostels"].get(document["hostel_id"])
        if hostel is None:
            raise ValidationError({"hostel_id": "Hostel does not exist"})
        count = hostel.get("review_count", 0)
        average = hostel.get("average_rating", 0.0)
        hostel["average_rating"] = (average * count + document["rating"]) / (count + 1)
        hostel["review_count"] = count + 1
        self.store.insert("reviews", document)
        self.store.increment("users", document["user_id"], "review_count", 1)
        self.store.changed("hostels")
        return document

    async def increment_helpful(self, review_id: str) -> bool:
        if review_id not in self.store.collections["reviews"]:
            return False
        self.store.increment("reviews", review_id, "helpful", 1)
        return True

    def watch(self, hostel_id: str, callback: Callable[[List[Document]], None], limit: int = 20) -> Subscription:
        def notify():
            documents, _ = self.store.page("reviews", review_query(hostel_id), limit, None)
            callback(documents)

        return ListenerSubscription(self.store, "reviews", notify)


class MemoryFavoriteRepository(IFavoriteRepository):
    """In-memory implementation of favorite repository"""

    def __init__(self, store: MemoryStore):
        self.store = store

    async def list_ids(self, user_id: str) -> List[str]:
        documents = [d for d in self.store.collections["favorites"].values() if d["user_id"] == user_id]
        documents.sort(key=lambda d: d["saved_at"], reverse=True)
        return [d["hostel_id"] for d in documents]

    async def is_favorite(self, user_id: str, hostel_id: str) -> bool:
        return favorite_id(user_id, hostel_id) in self.store.collections["favorites"]

    async def set_favorite(self, user_id: str, hostel_id: str, favorited: bool) -> bool:
        key = favorite_id(user_id, hostel_id)
        favorites = self.store.collections["favorites"]
        if favorited == (key in favorites):
            return False
        if favorited:
            self.store.insert("favorites", {
                "_id": key,
                "user_id": user_id,
                "hostel_id": hostel_id,
                "saved_at": datetime.now(timezone.utc),
            })
        else:
            del favorites[key]
            self.store.changed("favorites")
        delta = 1 if favorited else -1
        self.store.increment("hostels", hostel_id, "favorite_count", delta)
        self.store.increment("users", user_id, "favorite_count", delta)
        return True

    def watch(self, user_id: str, hostel_id: str, callback: Callable[[bool], None]) -> Subscription:
        key = favorite_id(user_id, hostel_id)
        return ListenerSubscription(
            self.store, "favorites", lambda: callback(key in self.store.collections["favorites"])
        )


class MemoryUserRepository(IUserRepository):
    """In-memory implementation of user repository"""

    def __init__(self, store: MemoryStore):
        self.store = store

    async def find_by_id(self, user_id: str) -> Optional[Document]:
        return self.store.get("users", user_id)

    async def create(self, document: Document) -> Document:
        return self.store.insert("users", document)

    async def update(self, user_id: str, changes: Document) -> Optional[Document]:
        document = self.store.collections["users"].get(user_id)
        if document is None:
            return None
        document.update(copy.deepcopy(changes))
        self.store.changed("users")
        return copy.deepcopy(document)
