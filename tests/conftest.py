"""
Pytest configuration and fixtures for register import tests.
"""

import os
import tempfile

# Point every module-level engine at SQLite before the application is imported
os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('LOG_FILE', os.path.join(tempfile.gettempdir(), 'register-tests.log'))

from datetime import datetime
from typing import Dict, List

import pytest
from dotenv import load_dotenv
from openpyxl import Workbook
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend.models import Base
from services.document_store import DocumentStore

# Load environment
load_dotenv()

# In-memory SQLite unless a separate test database is configured
TEST_DATABASE_URL = os.getenv('TEST_DATABASE_URL', 'sqlite://')


@pytest.fixture
def engine():
    """Fresh test database engine with all tables created."""
    if TEST_DATABASE_URL.startswith('sqlite'):
        eng = create_engine(
            TEST_DATABASE_URL,
            connect_args={'check_same_thread': False},
            poolclass=StaticPool
        )
    else:
        eng = create_engine(TEST_DATABASE_URL)
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session(engine):
    """Create a new database session for a test."""
    Session = sessionmaker(bind=engine)
    sess = Session()
    yield sess
    sess.close()


@pytest.fixture
def store(session):
    return DocumentStore(session)


class Clock:
    """Deterministic timestamp source; advance() moves time forward."""

    def __init__(self, start: datetime = datetime(2025, 1, 1, 9, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, new_time: datetime):
        self.now = new_time


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def make_workbook(tmp_path):
    """
    Write an .xlsx file from ``{sheet name: [header row, data rows...]}``.

    Returns the file path.
    """
    def _make(sheets: Dict[str, List[list]], filename: str = 'register.xlsx') -> str:
        workbook = Workbook()
        workbook.remove(workbook.active)
        for sheet_name, rows in sheets.items():
            worksheet = workbook.create_sheet(title=sheet_name)
            for row in rows:
                worksheet.append(row)
        path = str(tmp_path / filename)
        workbook.save(path)
        return path

    return _make


@pytest.fixture
def fuel_rows():
    """Fuels sheet with a missing key on spreadsheet row 3."""
    return [
        ['fuelId', 'fuelName', 'fuelBagging', 'sulphurContent', 'brandNames'],
        ['FUEL001', 'Eco Briquettes', 'Bagged', '2.5', 'Brand A, Brand B'],
        [None, 'Orphan Fuel', 'Loose', '1', None],
        ['FUEL002', 'Smokeless Ovals', 'Bulk', None, None],
    ]


class FakeRedis:
    """In-memory stand-in for the progress cache."""

    def __init__(self):
        self.values = {}

    def get(self, key):
        return self.values.get(key)

    def setex(self, key, ttl, value):
        self.values[key] = value


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / 'uploads'
    path.mkdir()
    return path


@pytest.fixture
def client(session, upload_dir, fake_redis, monkeypatch):
    """API test client bound to the test session and temp upload directory."""
    from fastapi.testclient import TestClient

    from api.dependencies import get_db, get_storage_service
    from api.main import app
    from api.routers import import_router
    from services.storage_service import StorageService

    def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage_service] = lambda: StorageService(temp_dir=str(upload_dir))
    monkeypatch.setattr(import_router, 'redis_client', fake_redis)

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def fake_redis():
    return FakeRedis()
