"""
MongoDB async database connection using Motor.
Provides database instance and collection access.
"""

import logging
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from typing import Optional
from .config import get_settings

logger = logging.getLogger(__name__)


class Database:
    """MongoDB database connection manager."""

    client: Optional[AsyncIOMotorClient] = None
    db: Optional[AsyncIOMotorDatabase] = None

    @classmethod
    async def connect(cls):
        """Connect to MongoDB."""
        settings = get_settings()
        cls.client = AsyncIOMotorClient(settings.MONGODB_URL, tz_aware=True)
        cls.db = cls.client[settings.DATABASE_NAME]

        # Verify connection
        await cls.client.admin.command('ping')
        logger.info("Connected to MongoDB: %s", settings.DATABASE_NAME)

        await cls._create_indexes()

    @classmethod
    async def disconnect(cls):
        """Disconnect from MongoDB."""
        if cls.client:
            cls.client.close()
            cls.client = None
            cls.db = None
            logger.info("Disconnected from MongoDB")

    @classmethod
    async def _create_indexes(cls):
        """Create indexes; the unique ones back the queue invariants across processes."""
        if cls.db is None:
            return

        await cls.db.queue_tokens.create_index(
            [("provider_id", 1), ("queue_date", 1), ("token_number", 1)],
            unique=True
        )
        await cls.db.queue_tokens.create_index("appointment_id", unique=True)
        await cls.db.queue_tokens.create_index([("provider_id", 1), ("queue_date", 1), ("status", 1)])

        await cls.db.providers.create_index("provider_id", unique=True)

        logger.info("Database indexes created")

    @classmethod
    def get_collection(cls, name: str):
        """Get a collection by name."""
        if cls.db is None:
            raise RuntimeError("Database not connected")
        return cls.db[name]
