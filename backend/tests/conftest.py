import os
import tempfile
import uuid
from pathlib import Path

# settings are read at import time, so configure the app before anything imports it
_tmp = Path(tempfile.mkdtemp(prefix="nonprofit-tests-"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_tmp / 'test.db'}")
os.environ["RECURRING_SCHEDULER_ENABLED"] = "false"
os.environ["RATE_LIMIT_PER_MIN"] = "100000"
os.environ["IMPORT_RATE_LIMIT_PER_MIN"] = "1000"
os.environ["SEED_DEFAULTS"] = "true"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from nonprofit_manager import models  # noqa: F401
from nonprofit_manager.main import app
from nonprofit_manager.seed import seed_defaults


@pytest.fixture(scope="session")
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture(scope="session")
def auth_headers(client):
    username = f"tester-{uuid.uuid4().hex[:8]}"
    r = client.post('/auth/register', json={'username': username, 'password': 'pass123'})
    assert r.status_code == 200
    r = client.post('/auth/login', json={'username': username, 'password': 'pass123'})
    assert r.status_code == 200
    return {'Authorization': f"Bearer {r.json()['access_token']}"}


@pytest.fixture
def session():
    """A fresh in-memory database with the default categories and funds."""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    with Session(engine) as s:
        seed_defaults(s)
        yield s
    engine.dispose()


