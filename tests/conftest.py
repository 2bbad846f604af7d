import os
from datetime import date, datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Keep app startup (init_db) off the on-disk default database
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from slot_engine.database import get_session
from slot_engine.main import app
from slot_engine.services.availability_config import AvailabilityConfig
from slot_engine.services.reservation_store import ReservationStore

TEST_DATABASE_URL = "sqlite:///:memory:"

# Monday 2026-03-02, requests are made the day before
MONDAY = date(2026, 3, 2)
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. sqlite:///:memory: with StaticPool so ALL sessions share the same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. Tables are dropped/created per test so every test starts empty
# 4. App dependency overridden to use test_engine (see client_fixture)
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide an empty test database session"""
    import tests  # noqa: F401  (registers all models)

    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session

    Override MUST be set BEFORE TestClient() and stay in place for the
    entire duration so the app never touches its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture(name="store")
def store_fixture(session: Session) -> ReservationStore:
    return ReservationStore(session)


@pytest.fixture(name="config")
def config_fixture() -> AvailabilityConfig:
    """Monday 09:00-18:00, 60 minute slots, two locations"""
    return AvailabilityConfig(
        timezone="America/Santiago",
        slot_minutes=60,
        weekly_availability={"monday": [{"start": "09:00", "end": "18:00"}]},
        exceptions=[],
        locations=[
            {"label": "Providencia", "exact_address": "Av. Providencia 1234, of. 501", "instructions": "Ask at reception"},
            {"label": "Las Condes"},
        ],
    )


@pytest.fixture(name="file_engine")
def file_engine_fixture(tmp_path):
    """File-backed SQLite so every session gets its own connection and transaction"""
    import tests  # noqa: F401  (registers all models)

    engine = create_engine(
        f"sqlite:///{tmp_path / 'engine.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()
