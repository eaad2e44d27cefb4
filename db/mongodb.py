"""MongoDB connection management using Motor (async driver)."""

import logging
from typing import Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure, OperationFailure, ServerSelectionTimeoutError

logger = logging.getLogger(__name__)


async def connect(
    mongodb_uri: str,
    database_name: str,
    timeout_ms: int = 5000,
) -> Tuple[Optional[AsyncIOMotorClient], Optional[AsyncIOMotorDatabase]]:
    """Open a client and verify it with a ping. Returns ``(None, None)`` on failure."""
    client = None
    try:
        client = AsyncIOMotorClient(
            mongodb_uri,
            serverSelectionTimeoutMS=timeout_ms,
            connectTimeoutMS=timeout_ms,
            maxPoolSize=10,
            minPoolSize=2,
            maxIdleTimeMS=30000,
            retryWrites=True,
            tz_aware=True,
        )
        # Verify connection
        await client.admin.command("ping")
        logger.info(f"Connected to MongoDB database '{database_name}'")
        return client, client[database_name]
    except (ConnectionFailure, ServerSelectionTimeoutError) as e:
        logger.error(f"Failed to connect to MongoDB: {e}")
        if client is not None:
            client.close()
        return None, None


async def init_indexes(collection: AsyncIOMotorCollection, retention_days: int = 0):
    """Create indexes for range scans and distinct counts.

    With ``retention_days > 0`` the timestamp index is a TTL index, so MongoDB
    expires old events itself.
    """
    if retention_days > 0:
        try:
            await collection.create_index(
                [("timestamp", ASCENDING)],
                expireAfterSeconds=retention_days * 86400,
                name="timestamp_ttl",
            )
        except OperationFailure as e:
            # An existing non-TTL index on timestamp conflicts; keep it and warn
            logger.warning(f"Could not create TTL index, retention not enforced: {e}")
    else:
        await collection.create_index([("timestamp", DESCENDING)], name="timestamp_desc")

    await collection.create_index("id")
    await collection.create_index("session.sessionId")

    logger.info("MongoDB indexes created")


async def check_connection(client: Optional[AsyncIOMotorClient]) -> bool:
    """Check if MongoDB connection is healthy."""
    if client is None:
        return False
    try:
        await client.admin.command("ping")
        return True
    except Exception:
        return False
