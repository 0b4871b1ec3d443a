"""
MongoDB database connection and utilities
"""
import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorCollection

from ...config import settings

logger = logging.getLogger(__name__)


class MongoDB:
    """MongoDB connection manager"""

    def __init__(self, url: Optional[str] = None, database: Optional[str] = None):
        self.url = url or settings.MONGODB_URL
        self.database_name = database or settings.MONGODB_DATABASE
        self.client: Optional[AsyncIOMotorClient] = None
        self.db: Optional[AsyncIOMotorDatabase] = None

    async def connect(self):
        """Connect to MongoDB"""
        self.client = AsyncIOMotorClient(self.url, serverSelectionTimeoutMS=5000, tz_aware=True)
        self.db = self.client[self.database_name]

        await self.create_indexes()
        logger.info(f"Connected to MongoDB database '{self.database_name}'")

    async def disconnect(self):
        """Disconnect from MongoDB"""
        if self.client:
            self.client.close()
            self.client = None
            logger.info("MongoDB connection closed")

    @property
    def hostels(self) -> AsyncIOMotorCollection:
        return self.db["hostels"]

    @property
    def reviews(self) -> AsyncIOMotorCollection:
        return self.db["reviews"]

    @property
    def favorites(self) -> AsyncIOMotorCollection:
        return self.db["favorites"]

    @property
    def users(self) -> AsyncIOMotorCollection:
        return self.db["users"]

    async def create_indexes(self):
        """Create indexes backing the filter and sort combinations"""
        # One index per sort field so every ordering is served by an index
        await self.hostels.create_index([("average_rating", -1), ("_id", 1)])
        await self.hostels.create_index([("price_range.min", 1), ("_id", 1)])
        await self.hostels.create_index([("price_range.max", -1), ("_id", 1)])
        await self.hostels.create_index([("created_at", -1), ("_id", 1)])
        await self.hostels.create_index([("views", -1), ("_id", 1)])

        await self.hostels.create_index("location")
        await self.hostels.create_index("gender")
        await self.hostels.create_index("amenities")

        await self.reviews.create_index([("hostel_id", 1), ("created_at", -1), ("_id", 1)])
        await self.favorites.create_index([("user_id", 1), ("saved_at", -1)])
        await self.favorites.create_index("hostel_id")
        await self.users.create_index("email", unique=True)

        logger.info("MongoDB indexes created")
