"""
Repository implementations - MongoDB data access
"""
import asyncio
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional

from pymongo import ReturnDocument
from pymongo.errors import (
    AutoReconnect, ConnectionFailure, DuplicateKeyError, ExecutionTimeout,
    NetworkTimeout, OperationFailure, PyMongoError, ServerSelectionTimeoutError,
    WTimeoutError,
)

from ...application.query_builder import Query, get_field, review_query
from ...domain.repositories import (
    Document, IFavoriteRepository, IHostelRepository, IReviewRepository,
    IUserRepository, RawPage, Subscription,
)
from ...errors import (
    FetchError, FetchErrorKind, MutationError, MutationErrorKind, ValidationError,
)
from .connection import MongoDB
from .cursors import cursor_after
from .mongo_query import compile_query, compile_sort

logger = logging.getLogger(__name__)

TIMEOUT_ERRORS = (NetworkTimeout, ExecutionTimeout, ServerSelectionTimeoutError, WTimeoutError)
NETWORK_ERRORS = (AutoReconnect, ConnectionFailure)


@contextmanager
def read_errors():
    """Translate driver errors on the read path into FetchError"""
    try:
        yield
    except TIMEOUT_ERRORS as e:
        raise FetchError(FetchErrorKind.TIMEOUT, f"Store timed out: {e}")
    except NETWORK_ERRORS as e:
        raise FetchError(FetchErrorKind.NETWORK, f"Store unreachable: {e}")
    except OperationFailure as e:
        raise FetchError(FetchErrorKind.REJECTED, f"Query rejected: {e}")
    except PyMongoError as e:
        raise FetchError(FetchErrorKind.UNKNOWN, f"Store error: {e}")


@contextmanager
def write_errors():
    """Translate driver errors on the write path into MutationError"""
    try:
        yield
    except TIMEOUT_ERRORS as e:
        raise MutationError(MutationErrorKind.TIMEOUT, f"Write timed out: {e}")
    except NETWORK_ERRORS as e:
        raise MutationError(MutationErrorKind.NETWORK, f"Store unreachable: {e}")
    except (OperationFailure, DuplicateKeyError) as e:
        raise MutationError(MutationErrorKind.REJECTED, f"Write rejected: {e}")
    except PyMongoError as e:
        raise MutationError(MutationErrorKind.UNKNOWN, f"Store error: {e}")


class TaskSubscription(Subscription):
    """Subscription backed by a listener task"""

    def __init__(self, factory: Callable[[], Awaitable[None]], name: str):
        self._task = asyncio.get_running_loop().create_task(self._run(factory, name))

    @staticmethod
    async def _run(factory: Callable[[], Awaitable[None]], name: str):
        try:
            await factory()
        except asyncio.CancelledError:
            raise
        except PyMongoError as e:
            logger.error(f"Listener {name} stopped: {e}")

    def cancel(self) -> None:
        if not self._task.done():
            self._task.cancel()

    @property
    def active(self) -> bool:
        return not self._task.done()


async def _find_page(collection, query: Query, limit: int, cursor: Optional[str]) -> RawPage:
    with read_errors():
        documents = await collection.find(compile_query(query, cursor)) \
            .sort(compile_sort(query.order)) \
            .limit(limit) \
            .to_list(length=limit)
    last = documents[-1] if documents else None
    next_cursor = cursor_after(last, get_field(last, query.order.field, None) if last else None)
    return documents, next_cursor


class HostelRepository(IHostelRepository):
    """MongoDB implementation of hostel repository"""

    def __init__(self, db: MongoDB):
        self.db = db

    async def find_page(self, query: Query, limit: int, cursor: Optional[str] = None) -> RawPage:
        return await _find_page(self.db.hostels, query, limit, cursor)

    async def find_all(self, query: Optional[Query] = None, limit: int = 500) -> List[Document]:
        with read_errors():
            if query is None:
                return await self.db.hostels.find({}).limit(limit).to_list(length=limit)
            return await self.db.hostels.find(compile_query(query)) \
                .sort(compile_sort(query.order)) \
                .limit(limit) \
                .to_list(length=limit)

    async def find_by_id(self, hostel_id: str) -> Optional[Document]:
        with read_errors():
            return await self.db.hostels.find_one({"_id": hostel_id})

    async def create(self, document: Document) -> Document:
        with write_errors():
            await self.db.hostels.insert_one(document)
        return document

    async def update(self, hostel_id: str, changes: Document) -> Optional[Document]:
        with write_errors():
            return await self.db.hostels.find_one_and_update(
                {"_id": hostel_id},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )

    async def delete(self, hostel_id: str) -> bool:
        with write_errors():
            async with await self.db.client.start_session() as session:
                async with session.start_transaction():
                    result = await self.db.hostels.delete_one({"_id": hostel_id}, session=session)
                    if result.deleted_count == 0:
                        return False
                    await self.db.reviews.delete_many({"hostel_id": hostel_id}, session=session)
                    await self.db.favorites.delete_many({"hostel_id": hostel_id}, session=session)
        return True

    async def increment_views(self, hostel_id: str) -> None:
        with write_errors():
            await self.db.hostels.update_one({"_id": hostel_id}, {"$inc": {"views": 1}})

    def watch(self, hostel_id: str, callback: Callable[[Optional[Document]], None]) -> Subscription:
        async def listen():
            callback(await self.db.hostels.find_one({"_id": hostel_id}))
            pipeline = [{"$match": {"documentKey._id": hostel_id}}]
            async with self.db.hostels.watch(pipeline, full_document="updateLookup") as stream:
                async for change in stream:
                    callback(change.get("fullDocument"))

        return TaskSubscription(listen, f"hostel:{hostel_id}")


class ReviewRepository(IReviewRepository):
    """MongoDB implementation of review repository"""

    def __init__(self, db: MongoDB):
        self.db = db

    async def find_page(self, hostel_id: str, limit: int, cursor: Optional[str] = None) -> RawPage:
        return await _find_page(self.db.reviews, review_query(hostel_id), limit, cursor)

    async def add(self, document: Document) -> Document:
        with write_errors():
            async with await self.db.client.start_session() as session:
                async with session.start_transaction():
                    hostel = await self.db.hostels.find_one(
                        {"_id": document["hostel_id"]},
                        {"average_rating": 1, "review_count": 1},
                        session=session,
                    )
                    if hostel is None:
                        raise ValidationError({"hostel_id": "Hostel does not exist"})
                    count = hostel.get("review_count", 0)
                    average = hostel.get("average_rating", 0.0)
                    new_average = (average * count + document["rating"]) / (count + 1)

                    await self.db.reviews.insert_one(document, session=session)
                    await self.db.hostels.update_one(
                        {"_id": document["hostel_id"]},
                        {"$inc": {"review_count": 1}, "$set": {"average_rating": new_average}},
                        session=session,
                    )
                    await self.db.users.update_one(
                        {"_id": document["user_id"]},
                        {"$inc": {"review_count": 1}},
                        session=session,
                    )
        return document

    async def increment_helpful(self, review_id: str) -> bool:
        with write_errors():
            result = await self.db.reviews.update_one({"_id": review_id}, {"$inc": {"helpful": 1}})
        return result.matched_count > 0

    async def _latest(self, hostel_id: str, limit: int) -> List[Document]:
        documents, _ = await self.find_page(hostel_id, limit)
        return documents

    def watch(self, hostel_id: str, callback: Callable[[List[Document]], None], limit: int = 20) -> Subscription:
        async def listen():
            callback(await self._latest(hostel_id, limit))
            pipeline = [{"$match": {"$or": [
                {"fullDocument.hostel_id": hostel_id},
                {"operationType": "delete"},
            ]}}]
            async with self.db.reviews.watch(pipeline, full_document="updateLookup") as stream:
                async for _ in stream:
                    callback(await self._latest(hostel_id, limit))

        return TaskSubscription(listen, f"reviews:{hostel_id}")


def favorite_id(user_id: str, hostel_id: str) -> str:
    return f"{user_id}_{hostel_id}"


class FavoriteRepository(IFavoriteRepository):
    """MongoDB implementation of favorite repository"""

    def __init__(self, db: MongoDB):
        self.db = db

    async def list_ids(self, user_id: str) -> List[str]:
        with read_errors():
            documents = await self.db.favorites.find({"user_id": user_id}) \
                .sort([("saved_at", -1)]) \
                .to_list(length=None)
        return [d["hostel_id"] for d in documents]

    async def is_favorite(self, user_id: str, hostel_id: str) -> bool:
        with read_errors():
            document = await self.db.favorites.find_one({"_id": favorite_id(user_id, hostel_id)})
        return document is not None

    async def set_favorite(self, user_id: str, hostel_id: str, favorited: bool) -> bool:
        key = favorite_id(user_id, hostel_id)
        with write_errors():
            async with await self.db.client.start_session() as session:
                async with session.start_transaction():
                    if favorited:
                        if await self.db.favorites.find_one({"_id": key}, session=session):
                            return False
                        await self.db.favorites.insert_one({
                            "_id": key,
                            "user_id": user_id,
                            "hostel_id": hostel_id,
                            "saved_at": datetime.now(timezone.utc),
                        }, session=session)
                        delta = 1
                    else:
                        result = await self.db.favorites.delete_one({"_id": key}, session=session)
                        if result.deleted_count == 0:
                            return False
                        delta = -1
                    await self.db.hostels.update_one(
                        {"_id": hostel_id}, {"$inc": {"favorite_count": delta}}, session=session
                    )
                    await self.db.users.update_one(
                        {"_id": user_id}, {"$inc": {"favorite_count": delta}}, session=session
                    )
        return True

    def watch(self, user_id: str, hostel_id: str, callback: Callable[[bool], None]) -> Subscription:
        key = favorite_id(user_id, hostel_id)

        async def listen():
            callback(await self.db.favorites.find_one({"_id": key}) is not None)
            pipeline = [{"$match": {"documentKey._id": key}}]
            async with self.db.favorites.watch(pipeline) as stream:
                async for change in stream:
                    callback(change["operationType"] != "delete")

        return TaskSubscription(listen, f"favorite:{key}")


class UserRepository(IUserRepository):
    """MongoDB implementation of user repository"""

    def __init__(self, db: MongoDB):
        self.db = db

    async def find_by_id(self, user_id: str) -> Optional[Document]:
        with read_errors():
            return await self.db.users.find_one({"_id": user_id})

    async def create(self, document: Document) -> Document:
        with write_errors():
            await self.db.users.replace_one({"_id": document["_id"]}, document, upsert=True)
        return document

    async def update(self, user_id: str, changes: Document) -> Optional[Document]:
        with write_errors():
            return await self.db.users.find_one_and_update(
                {"_id": user_id},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
