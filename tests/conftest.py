"""
Shared test fixtures: throw-away SQLite database, test client, document helpers.
"""

import os
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Point settings at the test database before importing app modules
os.environ["DATABASE_URL"] = "sqlite:///./test.db"

from invoicer.database import Base, get_db
from invoicer.main import app


TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# 1x1 PNG, the smallest valid signature
SIGNATURE_PNG = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_database():
    """Create all tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    """FastAPI test client."""
    return TestClient(app)


@pytest.fixture
def db():
    """Direct database session for test setup/assertions."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_document(client):
    """POST a document and return its JSON. kind: 'invoices' or 'estimates'."""
    def _make(kind="invoices", **overrides):
        payload = {
            "customer_name": "John Smith",
            "customer_email": "john.smith@email.com",
            "customer_phone": "(440) 555-0123",
            "customer_address": "123 Main St, Geneva, OH 44041",
            "issue_date": "2024-01-15",
            "line_items": [{
                "description": "Driveway Concrete Leveling",
                "quantity": 250,
                "unit": "sq ft",
                "unit_price": 15.00,
            }],
        }
        payload.update(overrides)
        response = client.post(f"/api/{kind}/", json=payload)
        assert response.status_code == 200, response.text
        return response.json()
    return _make
