"""Test auth utilities and the login flow."""

import pytest

from app.models import User
from app.services.auth import create_access_token, decode_token, hash_password, verify_password


def test_password_hashing():
    plain = "test-password-123"
    hashed = hash_password(plain)
    assert hashed != plain
    assert verify_password(plain, hashed)
    assert not verify_password("wrong", hashed)


def test_jwt_token_carries_user_id():
    user = User(id="u-1", email="user@example.com", hashed_password="x")
    payload = decode_token(create_access_token(user))
    assert payload is not None
    assert payload["sub"] == "u-1"
    assert payload["email"] == "user@example.com"


def test_invalid_token():
    assert decode_token("invalid.token.here") is None


def test_empty_token():
    assert decode_token("") is None


@pytest.mark.asyncio
async def test_login_and_me(client, db):
    db.add(User(email="ana@agency.com", hashed_password=hash_password("s3cret!"), agency_name="Ana Ads"))
    await db.commit()

    resp = await client.post("/api/v1/auth/login", json={"email": "ana@agency.com", "password": "s3cret!"})
    assert resp.status_code == 200
    token = resp.json()["access_token"]

    resp = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["email"] == "ana@agency.com"
    assert data["agency_name"] == "Ana Ads"


@pytest.mark.asyncio
async def test_login_wrong_password(client, db):
    db.add(User(email="ana@agency.com", hashed_password=hash_password("s3cret!")))
    await db.commit()

    resp = await client.post("/api/v1/auth/login", json={"email": "ana@agency.com", "password": "nope"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_me_with_bad_token(client):
    resp = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401
