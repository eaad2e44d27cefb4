"""Visitor event repository for MongoDB."""

import logging
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from bson.errors import InvalidDocument
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo import DESCENDING
from pymongo.errors import AutoReconnect, ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from db import mongodb
from db.base import EventStore, check_field_path
from errors import StorageError, StorageUnavailable
from models.visitor import VisitorEvent
from utils.clock import ensure_utc

logger = logging.getLogger(__name__)

UNAVAILABLE_ERRORS = (AutoReconnect, ConnectionFailure, ServerSelectionTimeoutError)


def time_query(start: Optional[datetime], end: Optional[datetime]) -> Dict[str, Any]:
    if start is None and end is None:
        return {}
    bounds: Dict[str, Any] = {}
    if start is not None:
        bounds["$gte"] = ensure_utc(start)
    if end is not None:
        bounds["$lte"] = ensure_utc(end)
    return {"timestamp": bounds}


def _translate(e: PyMongoError, action: str) -> StorageError:
    if isinstance(e, UNAVAILABLE_ERRORS):
        return StorageUnavailable(f"MongoDB unreachable during {action}")
    return StorageError(f"MongoDB {action} failed")


class MongoEventStore(EventStore):
    """Stores one document per event in a single collection."""

    name = "mongodb"

    def __init__(
        self,
        mongodb_uri: Optional[str] = None,
        database_name: str = "visitor_analytics",
        collection_name: str = "visitors",
        retention_days: int = 0,
        collection: Optional[AsyncIOMotorCollection] = None,
    ):
        self.mongodb_uri = mongodb_uri
        self.database_name = database_name
        self.collection_name = collection_name
        self.retention_days = retention_days
        self._client: Optional[AsyncIOMotorClient] = None
        self.visitors: Optional[AsyncIOMotorCollection] = collection

    async def connect(self) -> bool:
        if self.visitors is not None:
            return True
        if not self.mongodb_uri:
            logger.warning("MONGODB_URI not set, MongoDB features disabled")
            return False

        client, database = await mongodb.connect(self.mongodb_uri, self.database_name)
        if database is None:
            return False

        self._client = client
        self.visitors = database[self.collection_name]
        await mongodb.init_indexes(self.visitors, self.retention_days)
        return True

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            logger.info("MongoDB connection closed")
        self._client = None
        self.visitors = None

    def is_connected(self) -> bool:
        return self.visitors is not None

    async def ping(self) -> bool:
        if self._client is None:
            return self.is_connected()
        return await mongodb.check_connection(self._client)

    def _collection(self) -> AsyncIOMotorCollection:
        if self.visitors is None:
            raise StorageUnavailable("MongoDB is not connected")
        return self.visitors

    async def insert(self, event: VisitorEvent) -> None:
        try:
            await self._collection().insert_one(event.to_document())
        except PyMongoError as e:
            logger.error(f"MongoDB insert failed: {e}")
            raise _translate(e, "insert")
        except (InvalidDocument, OverflowError) as e:
            # Document cannot be encoded as BSON
            logger.error(f"MongoDB insert rejected document: {e}")
            raise StorageError("MongoDB insert failed: document not encodable")

    async def scan_range(self, start: datetime, end: datetime) -> AsyncIterator[VisitorEvent]:
        cursor = self._collection().find(time_query(start, end), {"_id": 0})
        try:
            async for doc in cursor:
                yield VisitorEvent.from_document(doc)
        except PyMongoError as e:
            logger.error(f"MongoDB scan failed: {e}")
            raise _translate(e, "scan")

    async def count_distinct(self, field_path: str, start: datetime, end: datetime) -> int:
        check_field_path(field_path)
        try:
            values = await self._collection().distinct(field_path, time_query(start, end))
        except PyMongoError as e:
            logger.error(f"MongoDB distinct failed: {e}")
            raise _translate(e, "distinct")
        return len(values)

    async def count_by(self, field_path: str, start: datetime, end: datetime) -> Dict[Any, int]:
        check_field_path(field_path)
        pipeline = [
            {"$match": time_query(start, end)},
            {"$group": {"_id": f"${field_path}", "count": {"$sum": 1}}},
            {"$sort": {"count": DESCENDING}},
        ]
        try:
            cursor = self._collection().aggregate(pipeline)
            return {doc["_id"]: doc["count"] async for doc in cursor}
        except PyMongoError as e:
            logger.error(f"MongoDB aggregation failed: {e}")
            raise _translate(e, "aggregation")

    async def recent(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 1000,
    ) -> List[VisitorEvent]:
        try:
            cursor = (
                self._collection()
                .find(time_query(start, end), {"_id": 0})
                .sort("timestamp", DESCENDING)
                .limit(limit)
            )
            docs = await cursor.to_list(length=limit)
        except PyMongoError as e:
            logger.error(f"MongoDB query failed: {e}")
            raise _translate(e, "query")
        return [VisitorEvent.from_document(doc) for doc in docs]

    async def count(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> int:
        try:
            return await self._collection().count_documents(time_query(start, end))
        except PyMongoError as e:
            logger.error(f"MongoDB count failed: {e}")
            raise _translate(e, "count")
