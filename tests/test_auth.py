from datetime import timedelta

import pytest
from fastapi import HTTPException

import auth
from errors import DuplicateError, ValidationError


def register(db, **overrides):
    fields = {"name": "Kavya Iyer", "email": "Kavya@Craftmail.in", "password": "loom-and-thread", "role": "customer"}
    fields.update(overrides)
    return auth.register_user(db, fields)


def test_register_customer(db):
    user, artisan = register(db)
    assert artisan is None
    assert user["email"] == "kavya@craftmail.in"
    assert user["password_hash"] != "loom-and-thread"
    assert auth.verify_password("loom-and-thread", user["password_hash"])
    assert db["artisan"].count_documents({}) == 0
    assert "password_hash" not in auth.user_out(user)


def test_register_duplicate_email(db):
    register(db)
    with pytest.raises(DuplicateError):
        register(db, email="KAVYA@craftmail.in")
    assert db["user"].count_documents({}) == 1


def test_register_short_password(db):
    with pytest.raises(ValidationError, match="at least 6"):
        register(db, password="abc")


def test_register_invalid_email(db):
    with pytest.raises(ValidationError, match="email"):
        register(db, email="not-an-email")


def test_authenticate(db):
    user, _ = register(db)
    logged_in = auth.authenticate_user(db, "KAVYA@craftmail.in", "loom-and-thread")
    assert logged_in["_id"] == user["_id"]

    with pytest.raises(HTTPException) as exc:
        auth.authenticate_user(db, "kavya@craftmail.in", "wrong")
    assert exc.value.status_code == 401
    with pytest.raises(HTTPException):
        auth.authenticate_user(db, "nobody@craftmail.in", "loom-and-thread")


def test_deactivated_user_cannot_log_in(db):
    user, _ = register(db, role="artisan")
    auth.deactivate_user(db, user["_id"])
    assert db["artisan"].find_one({"user_id": user["_id"]})["is_active"] is False
    with pytest.raises(HTTPException) as exc:
        auth.authenticate_user(db, "kavya@craftmail.in", "loom-and-thread")
    assert exc.value.detail == "Account is deactivated"


def test_change_password(db):
    user, _ = register(db)
    with pytest.raises(HTTPException):
        auth.change_password(db, user["_id"], {"current_password": "wrong", "new_password": "new-secret"})
    with pytest.raises(ValidationError):
        auth.change_password(db, user["_id"], {"current_password": "loom-and-thread", "new_password": "x"})

    auth.change_password(db, user["_id"], {"current_password": "loom-and-thread", "new_password": "new-secret"})
    assert auth.authenticate_user(db, "kavya@craftmail.in", "new-secret")["_id"] == user["_id"]


def test_update_profile(db):
    user, _ = register(db)
    updated = auth.update_user_profile(db, user["_id"], {"phone": "+91 98450 00000", "name": None})
    assert updated["phone"] == "+91 98450 00000"
    assert updated["name"] == "Kavya Iyer"


def test_get_current_user(db):
    user, _ = register(db)
    token = auth.create_access_token({"sub": str(user["_id"])})
    assert auth.get_current_user(token, db)["_id"] == user["_id"]

    expired = auth.create_access_token({"sub": str(user["_id"])}, timedelta(minutes=-1))
    with pytest.raises(HTTPException) as exc:
        auth.get_current_user(expired, db)
    assert exc.value.status_code == 401

    with pytest.raises(HTTPException):
        auth.get_current_user("garbage", db)


def test_public_user_hides_private_fields(db):
    user, _ = register(db)
    assert auth.public_user(user) == {"id": str(user["_id"]), "name": "Kavya Iyer", "avatar_url": None}
    assert auth.public_user(None) is None
