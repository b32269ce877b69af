"""
Shared fixtures for the uploads service tests.

Settings are read once at import time, so the environment is pointed at a
throwaway upload directory BEFORE anything imports app.main.
MongoDB is replaced with a small in-memory collection that understands the
two query shapes the service sends: exact values and {"$regex", "$options"}.
"""

import os
import re
import shutil
import tempfile

import pytest

UPLOAD_DIR = tempfile.mkdtemp(prefix="uploads-test-")
os.environ["UPLOAD_DIR"] = UPLOAD_DIR
os.environ["BASE_URL"] = "http://testserver"
os.environ["MONGODB_URI"] = "mongodb://localhost:27017/coursedocs_test"

from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import PyMongoError, ServerSelectionTimeoutError
from pymongo.results import InsertOneResult

from app.main import app, state
from app.records import RecordStore

PDF_BYTES = b"%PDF-1.4\n1 0 obj << /Type /Catalog >> endobj\ntrailer << /Root 1 0 R >>\n%%EOF\n"

# -----------------------------------------------------------------------------
# In-memory stand-ins for motor objects
# -----------------------------------------------------------------------------
def _matches(doc, query):
    for field, cond in query.items():
        value = doc.get(field)
        if isinstance(cond, dict) and "$regex" in cond:
            flags = re.IGNORECASE if "i" in cond.get("$options", "") else 0
            if not isinstance(value, str) or not re.search(cond["$regex"], value, flags):
                return False
        elif value != cond:
            return False
    return True


class FakeCursor:
    def __init__(self, docs):
        self.docs = docs

    async def to_list(self, length=None):
        return [dict(d) for d in self.docs]


class FakeCollection:
    def __init__(self, name):
        self.name = name
        self.docs = []

    async def insert_one(self, doc):
        doc["_id"] = ObjectId()
        self.docs.append(dict(doc))
        return InsertOneResult(doc["_id"], acknowledged=True)

    def find(self, query):
        return FakeCursor([d for d in self.docs if _matches(d, query)])


class BrokenCollection(FakeCollection):
    """Behaves like an unreachable database."""

    async def insert_one(self, doc):
        raise PyMongoError("write rejected")

    def find(self, query):
        raise PyMongoError("server unreachable")


class FakeDatabase:
    def __init__(self, name):
        self.name = name

    def __getitem__(self, collection):
        return FakeCollection(collection)


class FakeMotorClient:
    """Client whose ping always fails, to exercise startup without a server."""

    instances = []

    def __init__(self, uri, **options):
        self.uri = uri
        self.options = options
        self.closed = False
        self.admin = self
        FakeMotorClient.instances.append(self)

    def get_default_database(self, default=None):
        return FakeDatabase(default)

    async def command(self, name):
        raise ServerSelectionTimeoutError("no servers available")

    def close(self):
        self.closed = True

# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def clean_upload_dir():
    yield
    for name in os.listdir(UPLOAD_DIR):
        os.remove(os.path.join(UPLOAD_DIR, name))


@pytest.fixture
def collections():
    """
    Install fresh in-memory collections on the service state.
    Yields (questions, notes) so tests can inspect what was written.
    """
    questions, notes = FakeCollection("questions"), FakeCollection("notes")
    state.questions = RecordStore(questions)
    state.notes = RecordStore(notes)
    yield questions, notes
    state.questions = None
    state.notes = None


@pytest.fixture
def broken_collections():
    state.questions = RecordStore(BrokenCollection("questions"))
    state.notes = RecordStore(BrokenCollection("notes"))
    yield
    state.questions = None
    state.notes = None


@pytest.fixture
def client(collections):
    # No context manager: the lifespan (real Mongo connection) is not started.
    return TestClient(app)


@pytest.fixture
def fake_motor(monkeypatch):
    FakeMotorClient.instances.clear()
    monkeypatch.setattr("app.main.AsyncIOMotorClient", FakeMotorClient)
    yield FakeMotorClient
    state.questions = None
    state.notes = None


def pytest_sessionfinish(session, exitstatus):
    shutil.rmtree(UPLOAD_DIR, ignore_errors=True)
