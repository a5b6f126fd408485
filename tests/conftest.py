"""Pytest fixtures — file-backed SQLite database, fresh per test."""
import base64
import io
from typing import Optional

import pytest
from PIL import Image
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from guestlist.config import settings
from guestlist.database import Base, get_db
from guestlist.errors import OracleUnavailable
from guestlist.main import app
from guestlist.security import OperatorContext
from guestlist.services import attendee_service, event_service, sector_service, supplier_service
from guestlist.services.matching_service import MatchingOracle, get_oracle

# Import all models so they register with Base.metadata
from guestlist.models.event import Event                              # noqa: F401
from guestlist.models.sector import Sector                            # noqa: F401
from guestlist.models.supplier import Supplier                        # noqa: F401
from guestlist.models.attendee import Attendee, WristbandAssignment   # noqa: F401
from guestlist.models.access_token import AccessToken                 # noqa: F401
from guestlist.models.status_change import StatusChange               # noqa: F401
from guestlist.models.access_record import AccessRecord               # noqa: F401

SQLITE_URL = "sqlite:///./test.db"


def make_photo(color: str = "red", size: tuple[int, int] = (16, 16)) -> str:
    """A small PNG as a data URL, like a browser capture."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


PHOTO = make_photo()


class FakeOracle(MatchingOracle):
    """Matches whoever is in ``targets``; records every batch it was shown."""

    def __init__(self):
        self.targets: set[str] = set()
        self.calls: list[list[str]] = []
        self.fail = False
        self.on_call = None

    def match(self, live_photo, candidates):
        ids = [attendee_id for attendee_id, _ in candidates]
        self.calls.append(ids)
        if self.on_call is not None:
            self.on_call(len(self.calls))
        if self.fail:
            raise OracleUnavailable("model offline")
        return next((attendee_id for attendee_id in ids if attendee_id in self.targets), None)


@pytest.fixture(autouse=True)
def photo_dir(tmp_path, monkeypatch):
    """Stored photos land in a per-test directory."""
    path = tmp_path / "photos"
    monkeypatch.setattr(settings, "PHOTO_DIR", str(path))
    return path


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})

    # Enable WAL mode for better concurrency
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(db_engine):
    """Yield a database session bound to the test engine."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def ctx() -> OperatorContext:
    return OperatorContext(username="tester")


@pytest.fixture
def oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture(scope="function")
def client(db_engine, oracle):
    """Logged-in organizer TestClient on the test database and fake oracle."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def _override_get_db():
        session = TestingSession()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_oracle] = lambda: oracle
    with TestClient(app) as c:
        resp = c.post("/api/auth/login", json={"username": "organizer", "password": settings.ADMIN_PASSWORD})
        assert resp.status_code == 200, resp.text
        c.headers.update({"Authorization": f"Bearer {resp.json()['access_token']}"})
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def anon_client(client):
    """A client without the organizer session (capability links only)."""
    return TestClient(app)


# ---------------------------------------------------------------------------
# Helpers: service-level factories
# ---------------------------------------------------------------------------
def create_test_event(db, name: str = "Summer Festival") -> Event:
    return event_service.create_event(db, name=name)


def create_test_sector(db, event_id: str, label: str = "VIP", color: str = "#ff0000") -> Sector:
    return sector_service.add_sector(db, event_id, label, color)


def create_test_supplier(
    db, event_id: str, sector_ids: list[str], name: str = "Acme", limit: int = 10,
    sub_companies: Optional[list[dict]] = None,
) -> Supplier:
    return supplier_service.add_supplier(db, event_id, name, sector_ids, limit, sub_companies)


def register_test_attendee(
    db, event_id: str, ctx: OperatorContext, sector_ids: list[str], cpf: str = "11111111111",
    name: str = "Ana Souza", supplier_id: Optional[str] = None, photo: str = PHOTO, **kwargs,
) -> Attendee:
    data = {"name": name, "cpf": cpf, "photo": photo, "sector_ids": sector_ids}
    data.update(kwargs)
    return attendee_service.register(db, event_id, data, ctx, supplier_id=supplier_id)


# ---------------------------------------------------------------------------
# Helpers: create things via the API, return the response JSON
# ---------------------------------------------------------------------------
def api_create_event(client: TestClient, name: str = "Summer Festival") -> dict:
    """Helper — POST /api/events and return response JSON."""
    resp = client.post("/api/events/", json={"name": name})
    assert resp.status_code == 201, resp.text
    return resp.json()


def api_create_sector(client: TestClient, event_id: str, label: str = "VIP") -> dict:
    resp = client.post(f"/api/events/{event_id}/sectors/", json={"label": label, "color": "#123456"})
    assert resp.status_code == 201, resp.text
    return resp.json()


def api_create_supplier(client: TestClient, event_id: str, sector_ids: list[str],
                        name: str = "Acme", limit: int = 10) -> dict:
    resp = client.post(f"/api/events/{event_id}/suppliers/", json={
        "name": name,
        "sector_ids": sector_ids,
        "registration_limit": limit,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


def api_register(client: TestClient, event_id: str, sector_ids: list[str], cpf: str = "11111111111",
                 name: str = "Ana Souza", **extra) -> dict:
    payload = {"name": name, "cpf": cpf, "photo": PHOTO, "sector_ids": sector_ids}
    payload.update(extra)
    resp = client.post(f"/api/events/{event_id}/attendees/", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()
