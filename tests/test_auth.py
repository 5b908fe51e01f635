"""
Test suite for registration, login and token authentication.
"""

import inspect
from datetime import timedelta
from unittest.mock import MagicMock

import jwt
from bson import ObjectId

import config
from conftest import USER, USER_ID
from security import create_access_token, get_current_user, get_password_hash


class TestRegister:

    def test_register_returns_token_and_provisions_categories(self, anonymous_client, mock_db):
        inserted = ObjectId()
        mock_db["user"].insert_one.side_effect = None
        mock_db["user"].insert_one.return_value = MagicMock(inserted_id=inserted)

        response = anonymous_client.post('/auth/register', json={
            'email': 'Alex@Finance.io',
            'password': 'secret123',
            'name': 'Alex',
        })

        assert response.status_code == 201
        token = response.json()["access_token"]
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
        assert payload["sub"] == str(inserted)

        stored = mock_db["user"].insert_one.call_args[0][0]
        assert stored["email"] == "alex@finance.io"
        assert stored["password_hash"] != "secret123"
        assert mock_db["category"].insert_one.call_count == 9

    def test_duplicate_email(self, anonymous_client, mock_db):
        mock_db["user"].find_one.return_value = USER

        response = anonymous_client.post('/auth/register', json={
            'email': 'test@finance.io', 'password': 'secret123',
        })

        assert response.status_code == 400
        assert response.json()["detail"] == "Email already registered"
        mock_db["user"].insert_one.assert_not_called()

    def test_short_password(self, anonymous_client):
        response = anonymous_client.post('/auth/register', json={
            'email': 'alex@finance.io', 'password': '123',
        })
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "password"

    def test_invalid_email(self, anonymous_client):
        response = anonymous_client.post('/auth/register', json={
            'email': 'not-an-email', 'password': 'secret123',
        })
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "email"


class TestLogin:

    def test_login(self, anonymous_client, mock_db):
        mock_db["user"].find_one.return_value = dict(USER, password_hash=get_password_hash("secret123"))

        response = anonymous_client.post('/auth/login', data={
            'username': 'Test@Finance.io', 'password': 'secret123',
        })

        assert response.status_code == 200
        assert response.json()["token_type"] == "bearer"
        assert mock_db["user"].find_one.call_args[0][0] == {"email": "test@finance.io"}

    def test_wrong_password(self, anonymous_client, mock_db):
        mock_db["user"].find_one.return_value = dict(USER, password_hash=get_password_hash("secret123"))

        response = anonymous_client.post('/auth/login', data={
            'username': 'test@finance.io', 'password': 'wrong',
        })

        assert response.status_code == 400
        assert response.json()["detail"] == "Incorrect email or password"

    def test_unknown_user(self, anonymous_client):
        response = anonymous_client.post('/auth/login', data={
            'username': 'nobody@finance.io', 'password': 'secret123',
        })
        assert response.status_code == 400


class TestCurrentUser:

    def test_me_with_valid_token(self, anonymous_client, mock_db):
        mock_db["user"].find_one.return_value = USER
        token = create_access_token({"sub": USER_ID})

        response = anonymous_client.get('/me', headers={'Authorization': f'Bearer {token}'})

        assert response.status_code == 200
        assert response.json() == {"id": USER_ID, "email": USER["email"], "name": USER["name"], "isActive": True}

    def test_missing_token(self, anonymous_client):
        response = anonymous_client.get('/me')
        assert response.status_code == 401

    def test_garbage_token(self, anonymous_client):
        response = anonymous_client.get('/me', headers={'Authorization': 'Bearer not.a.token'})
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_expired_token(self, anonymous_client, mock_db):
        mock_db["user"].find_one.return_value = USER
        token = create_access_token({"sub": USER_ID}, expires_delta=timedelta(minutes=-5))

        response = anonymous_client.get('/me', headers={'Authorization': f'Bearer {token}'})

        assert response.status_code == 401

    def test_inactive_user(self, anonymous_client, mock_db):
        mock_db["user"].find_one.return_value = dict(USER, is_active=False)
        token = create_access_token({"sub": USER_ID})

        response = anonymous_client.get('/me', headers={'Authorization': f'Bearer {token}'})

        assert response.status_code == 401

    def test_user_lookup_runs_in_threadpool(self):
        # pymongo blocks; a plain def dependency keeps it off the event loop
        assert not inspect.iscoroutinefunction(get_current_user)
