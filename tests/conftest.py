"""
Shared pytest fixtures for the finance tracker API tests.

Routes get their database through ``get_db`` and their user through
``get_current_user``; both are replaced with ``app.dependency_overrides``.
Collections are MagicMocks whose ``find`` returns a chainable cursor mock.
"""

import os
import sys
from datetime import datetime
from unittest.mock import MagicMock

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

# Ensure the project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from database import get_db  # noqa: E402
from main import app  # noqa: E402
from security import get_current_user  # noqa: E402

USER_OID = ObjectId("64b000000000000000000001")
USER_ID = str(USER_OID)
USER = {"_id": USER_OID, "email": "test@example.com", "name": "Test User", "is_active": True}


def make_cursor(docs):
    """Cursor mock supporting sort/skip/limit chaining and repeated iteration."""
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.skip.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.__iter__.side_effect = lambda: iter(list(docs))
    return cursor


def make_mock_db():
    """Database mock handing out one MagicMock per collection name."""
    collections = {}

    def collection(name):
        if name not in collections:
            coll = MagicMock(name=name)
            coll.find.return_value = make_cursor([])
            coll.find_one.return_value = None
            coll.count_documents.return_value = 0
            coll.insert_one.side_effect = lambda doc: MagicMock(inserted_id=ObjectId())
            collections[name] = coll
        return collections[name]

    db = MagicMock()
    db.__getitem__.side_effect = collection
    return db


def make_category(name="Food & Dining", type="expense", color="#ef4444", is_active=True, oid=None):
    return {
        "_id": oid or ObjectId(),
        "user_id": USER_ID,
        "name": name,
        "type": type,
        "color": color,
        "icon": "tag",
        "description": "",
        "is_default": False,
        "is_active": is_active,
        "created_at": datetime(2024, 1, 1),
        "updated_at": datetime(2024, 1, 1),
    }


def make_transaction(type, amount, category_id, day, description="Test", oid=None):
    return {
        "_id": oid or ObjectId(),
        "user_id": USER_ID,
        "type": type,
        "amount": amount,
        "description": description,
        "category_id": str(category_id),
        "date": day if isinstance(day, datetime) else datetime.fromisoformat(day),
        "tags": [],
        "payment_method": "other",
        "is_recurring": False,
        "recurring_details": None,
        "notes": "",
        "created_at": datetime(2024, 1, 1),
        "updated_at": datetime(2024, 1, 1),
    }


def make_budget(category_id, amount, start, end, period="monthly", warning=80, critical=95,
                notifications=None, is_active=True, oid=None):
    return {
        "_id": oid or ObjectId(),
        "user_id": USER_ID,
        "category_id": str(category_id),
        "amount": amount,
        "period": period,
        "start_date": datetime.fromisoformat(start),
        "end_date": datetime.fromisoformat(end),
        "spent": 0,
        "alert_thresholds": {"warning": warning, "critical": critical},
        "notifications": notifications or {"enabled": True},
        "is_active": is_active,
        "notes": "",
        "created_at": datetime(2024, 1, 1),
        "updated_at": datetime(2024, 1, 1),
    }


@pytest.fixture
def mock_db():
    """Provide a mock database shared by every dependency in a request."""
    return make_mock_db()


@pytest.fixture
def client(mock_db):
    """Test client with a logged-in user and the mocked database."""
    app.dependency_overrides[get_db] = lambda: mock_db
    app.dependency_overrides[get_current_user] = lambda: USER
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def anonymous_client(mock_db):
    """Test client with the mocked database but real token authentication."""
    app.dependency_overrides[get_db] = lambda: mock_db
    yield TestClient(app)
    app.dependency_overrides.clear()
