import os
from typing import Dict

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session, create_engine

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

from signburn.main import app  # noqa: E402
from signburn import db as db_module  # noqa: E402
from signburn.db import get_session  # noqa: E402
from signburn import storage as storage_module  # noqa: E402

from factories import make_pdf  # noqa: E402


@pytest.fixture(scope="session")
def test_engine(tmp_path_factory):
    db_path = tmp_path_factory.mktemp("data") / "test.db"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    return engine


@pytest.fixture
def setup_db(test_engine, monkeypatch):
    monkeypatch.setattr(db_module, "engine", test_engine)
    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def session(test_engine, setup_db):
    with Session(test_engine) as s:
        yield s


@pytest.fixture
def mock_storage(monkeypatch) -> Dict[str, bytes]:
    store: Dict[str, bytes] = {}

    def fake_put_bytes(key: str, data: bytes, content_type: str = "application/octet-stream"):
        store[key] = bytes(data)

    def fake_get_bytes(key: str) -> bytes:
        if key not in store:
            raise FileNotFoundError(key)
        return store[key]

    def fake_delete_object(key: str):
        store.pop(key, None)

    monkeypatch.setattr(storage_module, "put_bytes", fake_put_bytes)
    monkeypatch.setattr(storage_module, "get_bytes", fake_get_bytes)
    monkeypatch.setattr(storage_module, "delete_object", fake_delete_object)
    return store


@pytest.fixture
def client(test_engine, setup_db, mock_storage):
    def override_session():
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def two_page_pdf() -> bytes:
    return make_pdf()


@pytest.fixture
def upload(client):
    def _upload(content: bytes, filename: str = "contract.pdf", content_type: str = "application/pdf"):
        return client.post(
            "/api/documents/upload",
            files={"pdf": (filename, content, content_type)},
        )
    return _upload
