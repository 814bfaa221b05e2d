from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from chatroom.application import create_app
from chatroom.config import Settings
from chatroom.database import Database


SECRET = "tests-secret-key"
PASSWORD = "secret12"


class ManualClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: float = 1_750_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TickingClock:
    """UTC clock that moves forward one second on every read."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current = self.current + timedelta(seconds=1)
        return self.current


@pytest.fixture()
def registration_clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "chatroom.sqlite3", clock=TickingClock())
    db.initialize()
    return db


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(database_path=tmp_path / "chatroom.sqlite3", session_secret=SECRET)


@pytest.fixture()
def app(database: Database, settings: Settings, registration_clock: ManualClock):
    return create_app(database=database, settings=settings, clock=registration_clock)


@pytest.fixture()
def client(app) -> TestClient:
    return TestClient(app)


def login(client: TestClient, email: str, password: str = PASSWORD) -> dict:
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["user"]


@pytest.fixture()
def alice(database: Database):
    return database.create_user("alice@example.com", "Alice", "Smith", PASSWORD)


@pytest.fixture()
def bob(database: Database):
    return database.create_user("bob@example.com", "Bob", "Jones", PASSWORD)


@pytest.fixture()
def alice_client(app, alice) -> TestClient:
    client = TestClient(app)
    login(client, alice.email)
    return client


@pytest.fixture()
def bob_client(app, bob) -> TestClient:
    client = TestClient(app)
    login(client, bob.email)
    return client
