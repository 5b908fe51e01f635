"""
Test suite for the application shell: root, health and error responses.
"""

from unittest.mock import MagicMock

from pymongo.errors import PyMongoError

import database


def test_root(client):
    response = client.get('/')
    assert response.status_code == 200
    assert response.json() == {"message": "Finance Tracker API Running"}


class TestHealth:

    def test_database_not_configured(self, client, monkeypatch):
        monkeypatch.setattr(database, "db", None)
        response = client.get('/health')
        assert response.json() == {"backend": "ok", "database": "not configured"}

    def test_database_ok(self, client, monkeypatch):
        monkeypatch.setattr(database, "db", MagicMock())
        response = client.get('/health')
        assert response.json()["database"] == "ok"

    def test_database_unreachable(self, client, monkeypatch):
        broken = MagicMock()
        broken.command.side_effect = PyMongoError("timed out")
        monkeypatch.setattr(database, "db", broken)

        response = client.get('/health')

        assert response.status_code == 200
        assert response.json()["database"] == "unreachable"


def test_missing_database_answers_500(monkeypatch):
    from fastapi.testclient import TestClient
    from main import app

    monkeypatch.setattr(database, "db", None)
    token_free = TestClient(app)

    response = token_free.post('/auth/register', json={'email': 'a@finance.io', 'password': 'secret123'})

    assert response.status_code == 500
    assert response.json()["detail"] == "Database not available"


def test_validation_error_shape(client):
    response = client.post('/categories', json={'type': 'expense'})

    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation failed"
    fields = {e["field"] for e in body["errors"]}
    assert {"name", "color"} <= fields
    assert all(e["message"] for e in body["errors"])
