from datetime import timedelta

import pytest
from fastapi import status
from jose import jwt

from app import crud
from app.auth import (
    create_access_token,
    decode_access_token,
    get_password_hash,
    login_user,
    register_user,
    verify_password,
)
from app.errors import AuthError, ConflictError
from app.models import User, UserRole


def test_password_hashing_roundtrip():
    password = "secret123"
    hashed = get_password_hash(password)
    assert hashed != password
    assert verify_password(password, hashed)
    assert not verify_password("wrong", hashed)


def create_user(db_session, email="user@example.com", password="secret123", role=UserRole.USER):
    return crud.create_user(db_session, email, get_password_hash(password), role)


def test_register_returns_token_and_public_fields(client):
    response = client.post(
        "/auth/register", json={"email": "new@example.com", "password": "secret123"}
    )
    assert response.status_code == status.HTTP_201_CREATED
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "User registered successfully"
    data = body["data"]
    assert data["access_token"]
    assert data["user"]["email"] == "new@example.com"
    assert data["user"]["role"] == "user"
    assert "hashed_password" not in data["user"]
    assert "password" not in data["user"]


def test_register_duplicate_email_conflicts_and_keeps_record(client, db_session):
    original = create_user(db_session, email="dup@example.com")
    original_hash = original.hashed_password

    response = client.post(
        "/auth/register", json={"email": "dup@example.com", "password": "another1"}
    )
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json() == {
        "success": False,
        "error": "User with this email already exists",
        "statusCode": 409,
    }
    db_session.refresh(original)
    assert original.hashed_password == original_hash
    assert original.role == UserRole.USER


def test_register_is_case_insensitive_on_email(db_session):
    register_user(db_session, "Mixed@Example.com", "secret123")
    with pytest.raises(ConflictError):
        register_user(db_session, "mixed@example.com", "secret123")


def test_register_rejects_short_password(client):
    response = client.post(
        "/auth/register", json={"email": "short@example.com", "password": "123"}
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["success"] is False


def test_login_success(client, db_session):
    user = create_user(db_session, email="login@example.com")
    response = client.post(
        "/auth/login", json={"email": "login@example.com", "password": "secret123"}
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data["user"] == {"id": user.id, "email": user.email, "role": "user"}

    claims = decode_access_token(data["access_token"])
    assert claims.sub == user.id
    assert claims.email == user.email
    assert claims.role == UserRole.USER


def test_login_failures_are_indistinguishable(client, db_session):
    create_user(db_session, email="known@example.com")
    wrong_password = client.post(
        "/auth/login", json={"email": "known@example.com", "password": "nope123"}
    )
    unknown_email = client.post(
        "/auth/login", json={"email": "ghost@example.com", "password": "secret123"}
    )
    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json() == unknown_email.json()
    assert wrong_password.json()["error"] == "Invalid credentials"


def test_login_service_raises_auth_error(db_session):
    create_user(db_session, email="svc@example.com")
    with pytest.raises(AuthError) as wrong:
        login_user(db_session, "svc@example.com", "bad-password")
    with pytest.raises(AuthError) as missing:
        login_user(db_session, "nobody@example.com", "secret123")
    assert wrong.value.message == missing.value.message


def test_me_requires_token(client):
    response = client.get("/auth/me")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["success"] is False


def test_me_returns_profile(client, db_session):
    user = create_user(db_session, email="me@example.com")
    response = client.get(
        "/auth/me", headers={"Authorization": f"Bearer {create_access_token(user)}"}
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data["id"] == user.id
    assert data["email"] == "me@example.com"
    assert "createdAt" in data and data["createdAt"].endswith("Z")


def test_expired_token_is_rejected(client, db_session):
    user = create_user(db_session, email="expired@example.com")
    token = create_access_token(user, expires_delta=timedelta(minutes=-1))
    response = client.get("/contacts", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_tampered_token_is_rejected(client, db_session):
    user = create_user(db_session, email="tamper@example.com")
    token = jwt.encode(
        {"sub": user.id, "email": user.email, "role": "admin"},
        "not-the-secret",
        algorithm="HS256",
    )
    response = client.get("/contacts", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_token_for_deleted_user_is_rejected(client, db_session):
    ghost = User(id="ghost-id", email="ghost@example.com", role=UserRole.USER)
    response = client.get(
        "/contacts", headers={"Authorization": f"Bearer {create_access_token(ghost)}"}
    )
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
