# tests/conftest.py
import os

# Must be set before qrcoded modules read their configuration at import.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("QR_AUTO_CREATE_TABLES", "false")
os.environ.setdefault("QR_TRACES_EXPORTER", "none")
os.environ.setdefault("AWS_S3_BUCKET", "test-bucket")

from datetime import datetime, timedelta, timezone
import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from qrcoded.main import app
from qrcoded.db.database import Base
from qrcoded.models.qr_code import QRCode
from qrcoded.services.generation_queue import GenerationQueue
from qrcoded.services.generation_worker import GenerationWorker


@pytest.fixture(scope="session")
def engine():
    """Create an in-memory SQLite database shared across tests."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(autouse=True)
def clean_db(engine):
    """Reset all tables before each test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    """Return a new SQLAlchemy session for each test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def file_session_factory(tmp_path):
    """
    File-backed SQLite for tests that write from several threads at once;
    every thread gets its own connection.
    """
    file_engine = create_engine(
        f"sqlite:///{tmp_path / 'qrcoded.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(file_engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
    file_engine.dispose()


class FakeUploader:
    """Stands in for S3: records keys, can fail a set number of times."""

    def __init__(self, fail_times: int = 0, error: Exception | None = None):
        self.fail_times = fail_times
        self.error = error
        self.calls = []
        self.deleted = []
        self._lock = threading.Lock()

    def upload(self, key: str, data: bytes) -> str:
        with self._lock:
            self.calls.append(key)
            if self.fail_times:
                self.fail_times -= 1
                raise self.error
        return f"https://cdn.example.com/{key}"

    def delete(self, key: str) -> None:
        with self._lock:
            self.deleted.append(key)


def fake_render(payload: str) -> bytes:
    return b"\x89PNG" + payload.encode()


@pytest.fixture()
def uploader_factory():
    return FakeUploader


@pytest.fixture()
def uploader(uploader_factory):
    return uploader_factory()


@pytest.fixture()
def make_worker(session_factory, uploader):
    def _make(**overrides):
        kwargs = dict(
            session_factory=session_factory,
            render=fake_render,
            upload=uploader.upload,
            delete_upload=uploader.delete,
            sleep=lambda seconds: None,
        )
        kwargs.update(overrides)
        return GenerationWorker(**kwargs)

    return _make


@pytest.fixture()
def make_qr_code(db):
    """Insert a QR code row directly; created_at spaced by `index` seconds."""
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _make(code_id: str, index: int = 0, **fields) -> QRCode:
        qr_code = QRCode(
            id=code_id,
            image_url=f"https://cdn.example.com/qr-codes/{code_id}.png",
            created_at=base + timedelta(seconds=index),
            **fields,
        )
        db.add(qr_code)
        db.commit()
        return qr_code

    return _make


@pytest.fixture
def generation_queue(make_worker):
    """A queue that is never started: jobs stay pending, which is what route tests count."""
    return GenerationQueue(worker=make_worker(), worker_count=1)


@pytest.fixture
def client(db, generation_queue):
    """FastAPI test client that routes all DB deps to the test session."""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    from qrcoded.db.database import get_db

    app.dependency_overrides[get_db] = override_get_db
    previous_queue = app.state.generation_queue
    app.state.generation_queue = generation_queue

    test_client = TestClient(app)
    try:
        yield test_client
    finally:
        app.dependency_overrides.clear()
        app.state.generation_queue = previous_queue
