"""
MongoDB database connection and utilities
"""
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from typing import Optional
import logging

from .config import settings

logger = logging.getLogger(__name__)


class MongoDB:
    """Holds the motor client shared by repositories and transactions"""

    def __init__(self):
        self.client: Optional[AsyncIOMotorClient] = None
        self.db: Optional[AsyncIOMotorDatabase] = None

    async def connect(self):
        try:
            self.client = AsyncIOMotorClient(settings.MONGODB_URL, tz_aware=True)
            self.db = self.client[settings.MONGODB_DATABASE]
            await self.create_indexes()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

        logger.info(f"Connected to MongoDB database '{settings.MONGODB_DATABASE}'")

    async def disconnect(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    async def create_indexes(self):
        """Indexes backing keyset pages and per-club slug uniqueness"""
        # Feed pages: visible items of one scope, newest first
        await self.db.posts.create_index([
            ("club_id", ASCENDING),
            ("hidden", ASCENDING),
            ("created_at", DESCENDING),
            ("_id", DESCENDING),
        ])
        await self.db.comments.create_index([
            ("club_id", ASCENDING),
            ("post_id", ASCENDING),
            ("hidden", ASCENDING),
            ("created_at", DESCENDING),
            ("_id", DESCENDING),
        ])

        # Journey slugs are unique per club; journeys awaiting a backfill have none
        await self.db.journeys.create_index(
            [("club_id", ASCENDING), ("slug", ASCENDING)],
            unique=True,
            partialFilterExpression={"slug": {"$type": "string", "$gt": ""}},
        )
        await self.db.journeys.create_index([("club_id", ASCENDING), ("order", ASCENDING)])

        await self.db.audit_logs.create_index([("club_id", ASCENDING), ("created_at", DESCENDING)])

        logger.info("MongoDB indexes created")


mongodb = MongoDB()


async def get_mongodb() -> MongoDB:
    """Dependency for getting the connection manager"""
    return mongodb
