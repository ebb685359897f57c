import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import InvalidToken, get_verifier
from database import get_db
from main import app

TOKENS = {
    "admin-token": "admin@example.com",
    "librarian-token": "librarian@example.com",
    "user-token": "reader@example.com",
    "ghost-token": "ghost@example.com",
}


class FakeVerifier:
    def verify(self, token):
        try:
            return TOKENS[token]
        except KeyError:
            raise InvalidToken("unknown token")


@pytest.fixture
def db():
    database = mongomock.MongoClient().bookcourier_test
    database["users"].insert_many([
        {"email": "admin@example.com", "role": "admin"},
        {"email": "librarian@example.com", "role": "librarian"},
        {"email": "reader@example.com", "role": "user"},
    ])
    return database


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_verifier] = FakeVerifier
    yield TestClient(app)
    app.dependency_overrides.clear()


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def as_admin():
    return bearer("admin-token")


@pytest.fixture
def as_librarian():
    return bearer("librarian-token")


@pytest.fixture
def as_user():
    return bearer("user-token")
