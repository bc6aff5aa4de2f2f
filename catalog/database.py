"""
MongoDB database utilities for async operations.
Handles connection, collections and unique indexes for users, books and reviews.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure
import structlog

from .errors import ValidationFailure

logger = structlog.get_logger(__name__)

USERS = "users"
BOOKS = "books"
REVIEWS = "reviews"


def to_object_id(value: Any) -> ObjectId:
    """
    Convert an identifier to an ObjectId.

    Raises:
        ValidationFailure: If the value is not a valid ObjectId
    """
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise ValidationFailure(f"Invalid ID: {value}")


def serialize_document(document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Make a stored document JSON friendly: `_id` becomes `id`, ObjectIds become
    strings and datetimes ISO strings.
    """
    if document is None:
        return None

    result = {}
    for key, value in document.items():
        if key == "_id":
            key = "id"
        if isinstance(value, ObjectId):
            value = str(value)
        elif isinstance(value, datetime):
            value = value.isoformat()
        result[key] = value
    return result


async def create_indexes(database: AsyncIOMotorDatabase) -> None:
    """
    Create unique and query indexes on all collections.
    Safe to run repeatedly.
    """
    try:
        await database[USERS].create_index("email", unique=True)

        # isbn is optional, so only documents carrying one take part
        await database[BOOKS].create_index("isbn", unique=True, sparse=True)
        await database[BOOKS].create_index([("created_at", DESCENDING)])
        await database[BOOKS].create_index("featured")
        await database[BOOKS].create_index("genre")
        await database[BOOKS].create_index("published_year")

        # One review per user and book
        await database[REVIEWS].create_index([("book", ASCENDING), ("user", ASCENDING)], unique=True)
        await database[REVIEWS].create_index([("created_at", DESCENDING)])

        logger.info("Successfully created MongoDB indexes")

    except Exception as e:
        logger.error("Failed to create indexes", error=str(e))
        raise


class MongoDBManager:
    """
    Async MongoDB manager owning the client connection.
    """

    def __init__(self, connection_url: str, database_name: str):
        """
        Initialize MongoDB manager.

        Args:
            connection_url: MongoDB connection URL
            database_name: Name of the database
        """
        self.connection_url = connection_url
        self.database_name = database_name
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None

    async def connect(self) -> AsyncIOMotorDatabase:
        """Establish connection to MongoDB and ensure indexes exist."""
        try:
            self.client = AsyncIOMotorClient(self.connection_url)
            self.database = self.client[self.database_name]

            await self.client.admin.command('ping')
            logger.info("Successfully connected to MongoDB", database=self.database_name)

            await create_indexes(self.database)
            return self.database

        except ConnectionFailure as e:
            logger.error("Failed to connect to MongoDB", error=str(e))
            raise

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    async def clear_collections(self) -> Dict[str, int]:
        """
        Delete every user, book and review.

        Returns:
            Number of deleted documents per collection
        """
        deleted = {}
        for name in (USERS, BOOKS, REVIEWS):
            result = await self.database[name].delete_many({})
            deleted[name] = result.deleted_count
        logger.info("Cleared collections", **deleted)
        return deleted
