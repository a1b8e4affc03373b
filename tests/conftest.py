# tests/conftest.py
import json
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from ekatalog.main import app
from ekatalog.api.dependencies.store import get_record_store
from ekatalog.repositories.membership_repository import MembershipRepository
from ekatalog.services.event_bus import EventBus
from ekatalog.storage.record_store import RecordStore

FIXED_NOW = datetime(2024, 10, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def store(data_dir):
    """A Record Store rooted in a fresh temporary directory."""
    return RecordStore(data_dir, write_retries=3)


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def repo(store, clock):
    return MembershipRepository(store, clock=clock)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def write_collection(data_dir):
    """Write raw records straight to disk, bypassing the store."""
    def _write(collection, records):
        (data_dir / f"{collection}.json").write_text(json.dumps(records), encoding="utf-8")
    return _write


@pytest.fixture
def pending_member():
    return {
        "user_id": 12,
        "user_name": "Budi Santoso",
        "is_phone_verified_otp": True,
        "companies": [
            {
                "company_name": "CV Sumber Makmur",
                "branch_id": 3,
                "branch_name": "Bandung",
                "member_status": "pending",
                "member_tier": "N/A",
                "application_date": "2024-09-01T00:00:00Z",
            }
        ],
    }


@pytest.fixture
def client(store):
    """FastAPI test client whose routes all use the temporary Record Store."""
    app.dependency_overrides[get_record_store] = lambda: store

    test_client = TestClient(app)
    try:
        yield test_client
    finally:
        app.dependency_overrides.clear()
