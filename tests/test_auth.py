from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient

from backoffice.config import settings
from backoffice.database import get_db
from backoffice.exceptions import ValidationError
from backoffice.main import app
from backoffice.services import auth_service


@pytest.fixture
def anon_client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def user(db):
    return auth_service.create_user(db, "anna", "s3cret", display_name="Anna")


def test_login_sets_cookie_and_unlocks_routes(anon_client, user):
    r = anon_client.post("/api/v1/auth/login", json={"username": "anna", "password": "s3cret"})
    assert r.status_code == 200
    assert r.json()["user"]["username"] == "anna"
    assert "token" in r.cookies

    assert anon_client.get("/api/v1/auth/me").json()["display_name"] == "Anna"
    assert anon_client.get("/api/v1/products").status_code == 200


def test_bearer_header_is_accepted(anon_client, user):
    token = anon_client.post("/api/v1/auth/login", json={"username": "anna", "password": "s3cret"}).json()["token"]
    anon_client.cookies.clear()

    r = anon_client.get("/api/v1/customers", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    r = anon_client.get("/api/v1/customers", headers={"Authorization": f"Basic {token}"})
    assert r.status_code == 401


def test_wrong_password(anon_client, user):
    r = anon_client.post("/api/v1/auth/login", json={"username": "anna", "password": "nope"})
    assert r.status_code == 401


def test_expired_and_forged_tokens_are_rejected(db, user):
    expired = jwt.encode(
        {"sub": user.id, "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        settings.SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )
    forged = jwt.encode({"sub": user.id}, "not-the-key", algorithm=settings.JWT_ALGORITHM)
    assert auth_service.resolve_token(db, expired) is None
    assert auth_service.resolve_token(db, forged) is None
    assert auth_service.resolve_token(db, "garbage") is None
    assert auth_service.resolve_token(db, auth_service.issue_token(user)).id == user.id


def test_disabled_user_cannot_log_in(db, user):
    token = auth_service.issue_token(user)
    user.active = False
    db.commit()
    assert auth_service.authenticate(db, "anna", "s3cret") is None
    assert auth_service.resolve_token(db, token) is None


def test_duplicate_username(db, user):
    with pytest.raises(ValidationError):
        auth_service.create_user(db, "anna", "other")


def test_default_admin_is_created_once(db):
    auth_service.ensure_default_admin(db)
    auth_service.ensure_default_admin(db)
    admin = auth_service.authenticate(db, settings.DEFAULT_ADMIN_USERNAME, settings.DEFAULT_ADMIN_PASSWORD)
    assert admin is not None
    assert admin.role == "admin"
