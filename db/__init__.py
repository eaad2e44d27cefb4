"""Storage package: event store backends and backend selection."""

import logging

from db.base import EventStore
from db.memory_store import MemoryEventStore
from db.mongo_store import MongoEventStore
from db.null_store import NullEventStore
from settings import Settings

logger = logging.getLogger(__name__)


async def init_storage(settings: Settings) -> EventStore:
    """Create and connect the event store selected by ``settings``.

    MongoDB is used when ``MONGODB_URI`` is set (backend ``auto`` or
    ``mongodb``). If it is unreachable the service keeps running with the
    degraded null store instead of failing to start.
    """
    backend = settings.storage_backend

    if backend == "memory":
        store: EventStore = MemoryEventStore(retention_days=settings.event_retention_days)
        await store.connect()
        return store

    if backend in ("auto", "mongodb") and settings.mongodb_uri:
        mongo = MongoEventStore(
            settings.mongodb_uri,
            database_name=settings.mongodb_database,
            collection_name=settings.mongodb_collection,
            retention_days=settings.event_retention_days,
        )
        if await mongo.connect():
            return mongo
        logger.warning("MongoDB connection failed, running in degraded mode without storage")
    elif backend == "mongodb":
        logger.warning("STORAGE_BACKEND=mongodb but MONGODB_URI is not set, running without storage")
    else:
        logger.warning("No event store configured, visitor events will not be persisted")

    return NullEventStore()


__all__ = [
    "EventStore",
    "MemoryEventStore",
    "MongoEventStore",
    "NullEventStore",
    "init_storage",
]
