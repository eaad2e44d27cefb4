"""Tests for event store backends and backend selection."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from bson.errors import InvalidDocument
from pymongo import DESCENDING
from pymongo.errors import AutoReconnect, OperationFailure, ServerSelectionTimeoutError

from db import init_storage
from db.memory_store import MemoryEventStore
from db.mongo_store import MongoEventStore, time_query
from db.mongodb import init_indexes
from db.null_store import NullEventStore
from errors import StorageError, StorageUnavailable, ValidationError
from models.visitor import Session, VisitorEvent
from settings import Settings

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def event_at(minutes_ago, visitor_id="v1", session_id="s1"):
    return VisitorEvent(
        id=visitor_id,
        timestamp=NOW - timedelta(minutes=minutes_ago),
        session=Session(session_id=session_id),
    )


class FakeCursor:
    """Stand-in for a Motor cursor: chainable sort/limit, async iteration."""

    def __init__(self, docs=None, error=None):
        self.docs = docs or []
        self.error = error
        self.sort_args = None
        self.limit_value = None

    def sort(self, *args):
        self.sort_args = args
        return self

    def limit(self, value):
        self.limit_value = value
        return self

    async def to_list(self, length=None):
        if self.error:
            raise self.error
        return self.docs[:length]

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for doc in self.docs:
            if self.error:
                raise self.error
            yield doc


class TestMemoryEventStore:

    async def test_insert_and_scan(self):
        store = MemoryEventStore()
        await store.connect()
        await store.insert(event_at(90))
        await store.insert(event_at(30, "v2"))

        scanned = [e.id async for e in store.scan_range(NOW - timedelta(hours=1), NOW)]

        assert scanned == ["v2"]
        assert len(store) == 2

    async def test_scan_bounds_are_inclusive(self):
        store = MemoryEventStore()
        await store.insert(event_at(60, "start"))
        await store.insert(event_at(0, "end"))

        scanned = [e.id async for e in store.scan_range(NOW - timedelta(hours=1), NOW)]

        assert scanned == ["start", "end"]

    async def test_recent_is_newest_first(self):
        store = MemoryEventStore()
        for i in range(5):
            await store.insert(event_at(50 - 10 * i, f"v{i}"))

        recent = await store.recent(limit=3)

        assert [e.id for e in recent] == ["v4", "v3", "v2"]

    async def test_recent_with_bounds(self):
        store = MemoryEventStore()
        for i in range(5):
            await store.insert(event_at(50 - 10 * i, f"v{i}"))

        recent = await store.recent(start=NOW - timedelta(minutes=35), end=NOW - timedelta(minutes=15))

        assert [e.id for e in recent] == ["v3", "v2"]

    async def test_count_distinct(self):
        store = MemoryEventStore()
        await store.insert(event_at(5, "a", "s1"))
        await store.insert(event_at(4, "a", "s2"))
        await store.insert(event_at(3, "b", "s2"))

        window = (NOW - timedelta(hours=1), NOW)
        assert await store.count_distinct("id", *window) == 2
        assert await store.count_distinct("session.sessionId", *window) == 2
        assert await store.count(*window) == 3

    async def test_count_by(self):
        store = MemoryEventStore()
        await store.insert(event_at(5, "a", "s1"))
        await store.insert(event_at(4, "b", "s2"))
        await store.insert(event_at(3, "c", "s1"))

        counts = await store.count_by("session.sessionId", NOW - timedelta(hours=1), NOW)

        assert counts == {"s1": 2, "s2": 1}
        assert list(counts) == ["s1", "s2"]

    async def test_count_distinct_rejects_unknown_field(self):
        store = MemoryEventStore()
        with pytest.raises(ValidationError):
            await store.count_distinct("engagement.clickCount", NOW - timedelta(hours=1), NOW)

    async def test_retention_prunes_old_events(self):
        store = MemoryEventStore(retention_days=1, clock=lambda: NOW)
        await store.insert(event_at(60 * 48, "old"))
        await store.insert(event_at(5, "new"))

        assert len(store) == 1
        assert (await store.recent())[0].id == "new"

    async def test_connection_state(self):
        store = MemoryEventStore()
        assert store.is_connected() is False
        assert await store.connect() is True
        assert await store.ping() is True
        await store.close()
        assert store.is_connected() is False


class TestNullEventStore:

    async def test_everything_is_empty(self):
        store = NullEventStore()
        await store.insert(event_at(1))

        assert store.is_connected() is False
        assert await store.ping() is False
        assert [e async for e in store.scan_range(NOW - timedelta(hours=1), NOW)] == []
        assert await store.recent() == []
        assert await store.count() == 0
        assert await store.count_distinct("id", NOW - timedelta(hours=1), NOW) == 0
        assert await store.count_by("device.type", NOW - timedelta(hours=1), NOW) == {}


class TestTimeQuery:

    def test_unbounded(self):
        assert time_query(None, None) == {}

    def test_bounds(self):
        start = NOW - timedelta(hours=1)
        assert time_query(start, NOW) == {"timestamp": {"$gte": start, "$lte": NOW}}
        assert time_query(None, NOW) == {"timestamp": {"$lte": NOW}}

    def test_naive_datetimes_treated_as_utc(self):
        query = time_query(datetime(2024, 5, 1), None)
        assert query["timestamp"]["$gte"].tzinfo == timezone.utc


class TestMongoEventStore:

    @pytest.fixture
    def collection(self):
        collection = MagicMock()
        collection.insert_one = AsyncMock()
        collection.distinct = AsyncMock(return_value=["a", "b", "c"])
        collection.count_documents = AsyncMock(return_value=7)
        return collection

    @pytest.fixture
    def store(self, collection):
        return MongoEventStore(collection=collection)

    async def test_insert_stores_document(self, store, collection):
        event = event_at(0)
        await store.insert(event)

        doc = collection.insert_one.await_args.args[0]
        assert doc["id"] == "v1"
        assert doc["timestamp"] == NOW
        assert doc["session"]["sessionId"] == "s1"

    async def test_insert_unreachable_is_unavailable(self, store, collection):
        collection.insert_one.side_effect = AutoReconnect("connection reset")
        with pytest.raises(StorageUnavailable):
            await store.insert(event_at(0))

    async def test_insert_other_failure_is_storage_error(self, store, collection):
        collection.insert_one.side_effect = OperationFailure("not authorized")
        with pytest.raises(StorageError) as exc:
            await store.insert(event_at(0))
        assert not isinstance(exc.value, StorageUnavailable)

    @pytest.mark.parametrize("error", [
        OverflowError("MongoDB can only handle up to 8-byte ints"),
        InvalidDocument("cannot encode object"),
    ])
    async def test_unencodable_document_is_storage_error(self, store, collection, error):
        collection.insert_one.side_effect = error
        with pytest.raises(StorageError) as exc:
            await store.insert(event_at(0))
        assert not isinstance(exc.value, StorageUnavailable)

    async def test_scan_range(self, store, collection):
        docs = [event_at(2, "a").to_document(), event_at(1, "b").to_document()]
        collection.find.return_value = FakeCursor(docs)
        start = NOW - timedelta(hours=1)

        events = [e async for e in store.scan_range(start, NOW)]

        assert [e.id for e in events] == ["a", "b"]
        collection.find.assert_called_once_with(
            {"timestamp": {"$gte": start, "$lte": NOW}}, {"_id": 0}
        )

    async def test_scan_failure_translated(self, store, collection):
        collection.find.return_value = FakeCursor([{}], error=ServerSelectionTimeoutError("down"))
        with pytest.raises(StorageUnavailable):
            [e async for e in store.scan_range(NOW - timedelta(hours=1), NOW)]

    async def test_recent_sorts_and_limits(self, store, collection):
        cursor = FakeCursor([event_at(1, "b").to_document(), event_at(2, "a").to_document()])
        collection.find.return_value = cursor

        events = await store.recent(limit=50)

        assert [e.id for e in events] == ["b", "a"]
        assert cursor.sort_args == ("timestamp", DESCENDING)
        assert cursor.limit_value == 50
        collection.find.assert_called_once_with({}, {"_id": 0})

    async def test_count_distinct_uses_server_distinct(self, store, collection):
        start = NOW - timedelta(days=1)
        assert await store.count_distinct("id", start, NOW) == 3
        collection.distinct.assert_awaited_once_with(
            "id", {"timestamp": {"$gte": start, "$lte": NOW}}
        )

    async def test_count_by_uses_group_pipeline(self, store, collection):
        collection.aggregate.return_value = FakeCursor([
            {"_id": "US", "count": 4},
            {"_id": "CA", "count": 2},
        ])
        start = NOW - timedelta(days=1)

        counts = await store.count_by("location.country", start, NOW)

        assert counts == {"US": 4, "CA": 2}
        pipeline = collection.aggregate.call_args.args[0]
        assert pipeline[0] == {"$match": {"timestamp": {"$gte": start, "$lte": NOW}}}
        assert pipeline[1]["$group"]["_id"] == "$location.country"

    async def test_count_by_failure_translated(self, store, collection):
        collection.aggregate.return_value = FakeCursor([{}], error=OperationFailure("bad pipeline"))
        with pytest.raises(StorageError):
            await store.count_by("device.os", NOW - timedelta(days=1), NOW)

    async def test_count(self, store, collection):
        assert await store.count() == 7
        collection.count_documents.assert_awaited_once_with({})

    async def test_not_connected_raises_unavailable(self):
        store = MongoEventStore()
        assert store.is_connected() is False
        with pytest.raises(StorageUnavailable):
            await store.insert(event_at(0))

    async def test_connect_without_uri(self):
        store = MongoEventStore(mongodb_uri=None)
        assert await store.connect() is False

    async def test_connect_failure(self):
        store = MongoEventStore("mongodb://unreachable:27017")
        with patch("db.mongodb.connect", new=AsyncMock(return_value=(None, None))):
            assert await store.connect() is False
        assert store.is_connected() is False

    async def test_connect_success_creates_indexes(self):
        client, database = MagicMock(), MagicMock()
        store = MongoEventStore("mongodb://db:27017", collection_name="events", retention_days=30)
        with patch("db.mongodb.connect", new=AsyncMock(return_value=(client, database))), \
                patch("db.mongodb.init_indexes", new=AsyncMock()) as init:
            assert await store.connect() is True

        database.__getitem__.assert_called_once_with("events")
        init.assert_awaited_once_with(database["events"], 30)
        await store.close()
        client.close.assert_called_once()
        assert store.is_connected() is False


class TestInitIndexes:

    async def test_unbounded_retention(self):
        collection = MagicMock()
        collection.create_index = AsyncMock()

        await init_indexes(collection, retention_days=0)

        names = [c.kwargs.get("name") for c in collection.create_index.await_args_list]
        assert "timestamp_desc" in names
        assert "timestamp_ttl" not in names

    async def test_ttl_index(self):
        collection = MagicMock()
        collection.create_index = AsyncMock()

        await init_indexes(collection, retention_days=7)

        first = collection.create_index.await_args_list[0]
        assert first.kwargs["expireAfterSeconds"] == 7 * 86400
        assert first.kwargs["name"] == "timestamp_ttl"

    async def test_ttl_conflict_is_not_fatal(self):
        collection = MagicMock()
        collection.create_index = AsyncMock(side_effect=[OperationFailure("index exists"), None, None])

        await init_indexes(collection, retention_days=7)

        assert collection.create_index.await_count == 3


class TestInitStorage:

    async def test_memory_backend(self):
        store = await init_storage(Settings(storage_backend="memory"))
        assert isinstance(store, MemoryEventStore)
        assert store.is_connected()

    async def test_no_uri_degrades(self):
        store = await init_storage(Settings(storage_backend="auto"))
        assert isinstance(store, NullEventStore)

    async def test_mongodb_without_uri_degrades(self):
        store = await init_storage(Settings(storage_backend="mongodb"))
        assert isinstance(store, NullEventStore)

    async def test_none_backend_ignores_uri(self):
        store = await init_storage(Settings(storage_backend="none", mongodb_uri="mongodb://db:27017"))
        assert isinstance(store, NullEventStore)

    async def test_unreachable_mongodb_degrades(self):
        settings = Settings(storage_backend="auto", mongodb_uri="mongodb://unreachable:27017")
        with patch("db.mongodb.connect", new=AsyncMock(return_value=(None, None))) as connect:
            store = await init_storage(settings)

        connect.assert_awaited_once()
        assert isinstance(store, NullEventStore)
