# Pytest configuration for backend API tests.
# Forces a local SQLite DB, disables Redis and the background sweeper, and captures notifications.
import os
from typing import Iterator, List

import pytest
from fastapi.testclient import TestClient

# Test-time environment: local SQLite DB, Redis disabled, predictable JWT secret
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("CAMPUSCRATE_JWT_SECRET", "test-secret")
os.environ.setdefault("SWEEP_INTERVAL_SECONDS", "0")
os.environ.setdefault("SLACK_WEBHOOK", "")

from campuscrate.main import app  # noqa: E402
from campuscrate.db import Base, engine  # noqa: E402
from campuscrate.notifications import Notification, Notifier, set_notifier  # noqa: E402
from campuscrate.storage import LocalBlobStore, set_blob_store  # noqa: E402


class RecordingSink:
    """Keeps every notification it is handed; optionally fails like an unreachable webhook."""

    def __init__(self) -> None:
        self.sent: List[Notification] = []
        self.fail = False

    def send(self, notification: Notification) -> None:
        if self.fail:
            raise ConnectionError("webhook unreachable")
        self.sent.append(notification)


@pytest.fixture(scope="session", autouse=True)
def _bootstrap_db() -> Iterator[None]:
    """
    Session-level database bootstrap using a local SQLite file.

    Drops and recreates schema once per test session to ensure a clean slate.
    """
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_db() -> Iterator[None]:
    """
    Function-level isolation: drop and recreate schema before each test.

    Simple but effective for this small suite; avoids transactional complexity.
    """
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(autouse=True)
def notifications() -> Iterator[RecordingSink]:
    """Deliver notifications inline into a recording sink for the duration of a test."""
    sink = RecordingSink()
    set_notifier(Notifier(sink, inline=True))
    yield sink
    set_notifier(None)


@pytest.fixture()
def blob_store(tmp_path) -> Iterator[LocalBlobStore]:
    store = LocalBlobStore(root=str(tmp_path / "uploads"), base_url="http://testserver")
    set_blob_store(store)
    yield store
    set_blob_store(None)


@pytest.fixture()
def client() -> Iterator[TestClient]:
    """
    FastAPI TestClient bound to the application for HTTP-level tests.
    """
    with TestClient(app) as c:
        yield c
