"""
Shared fixtures: an in-memory stand-in for the motor database.

Only the calls the services make are covered: find (async cursor with
sort), find_one, create_index, and the $in / $gte / $lte operators.
"""

import pytest
from fastapi.testclient import TestClient

from database.mongodb import get_database
from models.user import UserContext

TEST_USER_ID = "tenant-001"


def _matches(doc, query):
    for field, expected in query.items():
        value = doc.get(field)
        if isinstance(expected, dict):
            if "$in" in expected and value not in expected["$in"]:
                return False
            if "$gte" in expected and (value is None or value < expected["$gte"]):
                return False
            if "$lte" in expected and (value is None or value > expected["$lte"]):
                return False
        elif value != expected:
            return False
    return True


class FakeCursor:
    def __init__(self, docs):
        self._docs = list(docs)

    def sort(self, field, direction=1):
        self._docs.sort(key=lambda d: d.get(field), reverse=direction < 0)
        return self

    def __aiter__(self):
        self._iter = iter(self._docs)
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


class FailingCursor(FakeCursor):
    async def __anext__(self):
        raise ConnectionError("connection reset by peer")


class FakeCollection:
    def __init__(self, docs=None):
        self.docs = list(docs or [])
        self.find_calls = 0
        self.indexes = {}

    def find(self, query=None):
        self.find_calls += 1
        return FakeCursor(d for d in self.docs if _matches(d, query or {}))

    async def find_one(self, query=None):
        for doc in self.docs:
            if _matches(doc, query or {}):
                return doc
        return None

    async def create_index(self, keys, name=None, **kwargs):
        self.indexes[name] = list(keys)
        return name


class FailingCollection(FakeCollection):
    def find(self, query=None):
        self.find_calls += 1
        return FailingCursor([])

    async def find_one(self, query=None):
        raise ConnectionError("connection reset by peer")

    async def create_index(self, keys, name=None, **kwargs):
        raise ConnectionError("connection reset by peer")


class FakeDatabase:
    def __init__(self, **collections):
        self._collections = dict(collections)

    def __getitem__(self, name):
        return self._collections.setdefault(name, FakeCollection())

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]


@pytest.fixture
def user():
    return UserContext(user_id=TEST_USER_ID)


@pytest.fixture
def make_client():
    """Build a TestClient whose database dependency returns ``fake_db``"""
    from server import app

    def _make(fake_db):
        async def _override():
            return fake_db
        app.dependency_overrides[get_database] = _override
        return TestClient(app, headers={"X-User-Id": TEST_USER_ID})

    yield _make
    app.dependency_overrides.clear()
