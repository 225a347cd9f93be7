import mongomock
import pytest
from fastapi.testclient import TestClient

import settings
from database import create_document, ensure_indexes, get_db
from main import app
from media import check_image_format, get_media_host


class FakeMediaHost:
    """Keeps uploads in memory and hands back predictable URLs."""

    def __init__(self):
        self.uploads = []
        self.error = None

    def upload_image(self, fileobj, filename):
        check_image_format(filename)
        if self.error is not None:
            raise self.error
        self.uploads.append((filename, fileobj.read()))
        return f"https://media.example.com/products/{filename}"


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    monkeypatch.setattr(settings, "BCRYPT_ROUNDS", 4)


@pytest.fixture()
def db():
    database = mongomock.MongoClient().shop
    ensure_indexes(database)
    return database


@pytest.fixture()
def media():
    return FakeMediaHost()


@pytest.fixture()
def client(db, media):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_media_host] = lambda: media
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def make_product(db):
    def _make(name="Sneaker", price=10.0, category="shoes"):
        return create_document(
            db,
            "product",
            {
                "name": name,
                "description": f"{name} description",
                "price": price,
                "category": category,
                "image": f"https://media.example.com/products/{name}.png",
            },
        )

    return _make


@pytest.fixture()
def make_user(client):
    def _make(phone="0700000001", password="s3cret"):
        response = client.post("/signup", json={"phoneNumber": phone, "password": password})
        assert response.status_code == 201
        return response.json()["userId"]

    return _make


@pytest.fixture()
def server_client(client):
    """Same app, but unhandled errors come back as responses instead of raising."""
    return TestClient(app, raise_server_exceptions=False)
