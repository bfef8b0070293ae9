from datetime import datetime, timedelta, timezone

import jwt
import pytest

from app.auth.service import AuthService
from app.core.config import get_settings

from tests.conftest import auth_headers

CREDENTIALS = {"email": "Owner@Example.com", "password": "s3cret-pass", "name": "Owner"}


@pytest.mark.anyio
async def test_register_login_and_profile(async_client):
    r = await async_client.post("/api/auth/register", json=CREDENTIALS)
    assert r.status_code == 201
    registered = r.json()
    assert registered["token_type"] == "bearer"
    assert registered["user"]["email"] == "owner@example.com"

    r = await async_client.post(
        "/api/auth/login",
        json={"email": "owner@example.com", "password": CREDENTIALS["password"]},
    )
    assert r.status_code == 200
    token = r.json()["access_token"]

    r = await async_client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json()["id"] == registered["user"]["id"]


@pytest.mark.anyio
async def test_duplicate_registration_is_rejected(async_client):
    assert (await async_client.post("/api/auth/register", json=CREDENTIALS)).status_code == 201
    r = await async_client.post("/api/auth/register", json=CREDENTIALS)
    assert r.status_code == 400
    assert r.json()["detail"] == "Email already registered"


@pytest.mark.anyio
async def test_wrong_password_is_unauthorized(async_client):
    await async_client.post("/api/auth/register", json=CREDENTIALS)
    r = await async_client.post(
        "/api/auth/login",
        json={"email": CREDENTIALS["email"], "password": "not-it"},
    )
    assert r.status_code == 401


@pytest.mark.anyio
async def test_protected_routes_require_a_valid_token(async_client):
    r = await async_client.get("/api/invoices")
    assert r.status_code in (401, 403)

    r = await async_client.get("/api/invoices", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401

    r = await async_client.get("/api/invoices", headers=auth_headers())
    assert r.status_code == 200


def test_expired_token_is_rejected():
    settings = get_settings()
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    token = jwt.encode(
        {"sub": "u1", "email": "a@b.c", "exp": past, "iat": past - timedelta(hours=1)},
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )
    assert AuthService.decode_token(token) is None


def test_token_round_trip_carries_identity():
    payload = AuthService.decode_token(AuthService.create_access_token("u1", "a@b.c"))
    assert payload["sub"] == "u1"
    assert payload["email"] == "a@b.c"
