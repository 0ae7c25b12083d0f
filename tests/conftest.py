"""
Pytest configuration and shared fixtures.
"""

import asyncio
import copy
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from api.crud_stats import CrudStatsService
from api.database import APIDatabaseService
from api.main import app


class InMemoryStatsCollection:
    """
    Minimal async stand-in for the Motor collection holding the stats document.

    Supports equality filters, ``$inc`` on dotted paths, ``$setOnInsert`` and
    upserts. Each operation yields to the event loop before touching data and
    then applies its change in one step, like a single-document MongoDB write.
    """

    def __init__(self, fail: bool = False):
        self.documents = []
        self.indexes = []
        self.fail = fail
        self.write_count = 0

    def _check_available(self):
        if self.fail:
            raise ServerSelectionTimeoutError("stats store unavailable")

    def _matches(self, document, filter_query):
        return all(document.get(key) == value for key, value in filter_query.items())

    def _find(self, filter_query):
        for document in self.documents:
            if self._matches(document, filter_query):
                return document
        return None

    @staticmethod
    def _increment(document, path, amount):
        *parents, leaf = path.split(".")
        target = document
        for part in parents:
            target = target.setdefault(part, {})
        target[leaf] = target.get(leaf, 0) + amount

    async def create_index(self, keys, **kwargs):
        self._check_available()
        self.indexes.append((keys, kwargs))
        return keys

    async def find_one(self, filter_query):
        await asyncio.sleep(0)
        self._check_available()
        document = self._find(filter_query)
        return copy.deepcopy(document) if document else None

    async def find_one_and_update(self, filter_query, update, upsert=False, return_document=False):
        await asyncio.sleep(0)
        self._check_available()
        document = self._find(filter_query)
        inserted = False
        if document is None:
            if not upsert:
                return None
            document = {"_id": ObjectId(), **filter_query}
            for key, value in update.get("$setOnInsert", {}).items():
                document[key] = copy.deepcopy(value)
            if any(d.get("name") == document.get("name") for d in self.documents):
                raise DuplicateKeyError("duplicate name")
            self.documents.append(document)
            inserted = True

        before = copy.deepcopy(document)
        for path, amount in update.get("$inc", {}).items():
            self._increment(document, path, amount)
        if inserted or update.get("$inc"):
            self.write_count += 1
        return copy.deepcopy(document) if return_document else before


def stats_counters(collection: InMemoryStatsCollection) -> dict:
    """Counters stored in the stats document, or an empty dict if none exists."""
    document = collection._find({"name": "crud-stats"})
    return copy.deepcopy(document["data"]) if document else {}


@pytest.fixture
def stats_collection():
    """Empty in-memory stats collection."""
    return InMemoryStatsCollection()


@pytest.fixture
def failing_stats_collection():
    """Stats collection whose every operation fails."""
    return InMemoryStatsCollection(fail=True)


@pytest.fixture
def stats_service(stats_collection):
    return CrudStatsService(stats_collection)


@pytest.fixture
def mock_db_service():
    """Mock database service."""
    return AsyncMock(spec=APIDatabaseService)


@pytest.fixture
def client(mock_db_service, stats_service):
    """Test client wired to a mock database service and in-memory stats."""
    app.state.db_service = mock_db_service
    app.state.crud_stats = stats_service
    yield TestClient(app, raise_server_exceptions=False)
    app.state.db_service = None
    app.state.crud_stats = None


@pytest.fixture
def now():
    return datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


@pytest.fixture
def sample_book(now):
    """Sample book response."""
    from api.models import BookResponse

    return BookResponse(
        id=str(ObjectId()),
        isbn="9780306406157",
        title="The Left Hand of Darkness",
        description="A novel about the planet Gethen",
        category="Science Fiction",
        publisher="Ace Books",
        published_year=1969,
        author_ids=[],
        created_at=now,
        updated_at=now
    )


@pytest.fixture
def sample_user(now):
    from api.models import UserResponse

    return UserResponse(
        id=str(ObjectId()),
        first_name="Ada",
        last_name="Lovelace",
        email="ada@example.com",
        created_at=now,
        updated_at=now
    )
