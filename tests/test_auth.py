from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

import auth
import errors
from conftest import ADMIN_EMAIL, ADMIN_PASSWORD


def test_password_hash_roundtrip():
    hashed = auth.get_password_hash("hunter2")
    assert hashed != "hunter2"
    assert auth.verify_password("hunter2", hashed)
    assert not auth.verify_password("hunter3", hashed)


def test_login_and_authenticate(db, admin):
    token, out = auth.login(db, ADMIN_EMAIL.upper(), ADMIN_PASSWORD)
    assert out.email == ADMIN_EMAIL
    resolved = auth.authenticate(db, token)
    assert resolved.id == str(admin["_id"])
    assert resolved.role == "admin"


def test_login_wrong_password(db, admin):
    with pytest.raises(errors.Unauthenticated):
        auth.login(db, ADMIN_EMAIL, "nope")


def test_login_unknown_admin(db):
    with pytest.raises(errors.Unauthenticated):
        auth.login(db, "ghost@swathoops.com", "whatever")


def test_missing_token(db):
    with pytest.raises(errors.Unauthenticated):
        auth.authenticate(db, None)


def test_token_signed_with_other_key(db, admin):
    forged = jwt.encode(
        {"sub": str(admin["_id"]), "jti": "x", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
        "not-the-server-key",
        algorithm="HS256",
    )
    with pytest.raises(errors.Unauthenticated):
        auth.authenticate(db, forged)


def test_expired_token(db, admin):
    token = auth.create_access_token({"sub": str(admin["_id"])}, expires_delta=timedelta(seconds=-5))
    with pytest.raises(errors.Unauthenticated):
        auth.authenticate(db, token)


def test_token_for_removed_admin(db, admin):
    token, _ = auth.login(db, ADMIN_EMAIL, ADMIN_PASSWORD)
    db["admin"].delete_one({"_id": admin["_id"]})
    with pytest.raises(errors.Unauthenticated):
        auth.authenticate(db, token)


def test_revoked_token(db, admin):
    token, _ = auth.login(db, ADMIN_EMAIL, ADMIN_PASSWORD)
    auth.revoke(db, token)
    auth.revoke(db, token)
    with pytest.raises(errors.Unauthenticated):
        auth.authenticate(db, token)
    other, _ = auth.login(db, ADMIN_EMAIL, ADMIN_PASSWORD)
    assert auth.authenticate(db, other).email == ADMIN_EMAIL


def test_revoke_ignores_garbage(db):
    auth.revoke(db, "not-a-jwt")
    assert db["revoked_token"].count_documents({}) == 0


def test_create_admin_is_idempotent(db, admin):
    again = auth.create_admin(db, ADMIN_EMAIL, "different")
    assert again["_id"] == admin["_id"]
    assert db["admin"].count_documents({}) == 1
