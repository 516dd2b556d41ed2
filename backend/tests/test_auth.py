"""Test authentication endpoints and utilities."""

from datetime import timedelta

import pytest
from fastapi import HTTPException
from jose import jwt

from app.auth import (
    AuthContext,
    create_access_token,
    decode_token,
    hash_password,
    landing_path,
    verify_password,
)
from app.config import get_settings
from app.marketplace import UserRole

from conftest import TEST_PASSWORD


class TestAuthUtilities:
    """Test authentication utility functions."""

    def test_hash_and_verify_password(self):
        hashed = hash_password("s3cret-pass")

        assert hashed != "s3cret-pass"
        assert verify_password("s3cret-pass", hashed)
        assert not verify_password("wrong-pass", hashed)

    def test_verify_against_malformed_hash(self):
        assert not verify_password("anything", "not-a-bcrypt-hash")

    def test_create_and_decode_token(self):
        """Test JWT token creation and decoding."""
        settings = get_settings()

        token = create_access_token("usr_test123456", UserRole.freelancer, settings, email="f@example.com")
        payload = decode_token(token, settings)

        assert payload["sub"] == "usr_test123456"
        assert payload["role"] == "freelancer"
        assert payload["type"] == "access"
        assert payload["email"] == "f@example.com"
        assert "exp" in payload
        assert "iat" in payload

    def test_expired_token_rejected(self):
        settings = get_settings()
        token = create_access_token("usr_x", "job_poster", settings, expires_delta=timedelta(seconds=-5))

        with pytest.raises(HTTPException) as exc:
            decode_token(token, settings)
        assert exc.value.status_code == 401
        assert exc.value.headers["X-Login-Path"] == "/login"

    @pytest.mark.parametrize(
        "role,expected",
        [
            ("job_poster", "/dashboard/client"),
            ("freelancer", "/dashboard/freelancer"),
            ("admin", "/dashboard/admin"),
        ],
    )
    def test_landing_path(self, role, expected):
        assert landing_path(role) == expected

    def test_auth_context(self):
        ctx = AuthContext(user_id="usr_abc123", role=UserRole.job_poster)

        assert ctx.has_role(UserRole.job_poster, UserRole.admin)
        assert not ctx.has_role(UserRole.freelancer)
        assert "job_poster" in repr(ctx)


class TestAuthEndpoints:
    """Registration, sign-in and the profile accessor."""

    def test_register_freelancer(self, client, fake_db):
        response = client.post(
            "/auth/register",
            json={
                "email": "Fay@Example.com",
                "password": "long-enough",
                "name": "Fay",
                "role": "freelancer",
                "skills": ["SEO", "Web Development"],
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["role"] == "freelancer"
        assert data["landing_path"] == "/dashboard/freelancer"
        assert "gigmarket_auth" in response.headers["set-cookie"]

        stored = fake_db.rows("users")[0]
        assert stored["email"] == "fay@example.com"
        assert stored["skills"] == ["SEO", "Web Development"]
        assert stored["rating"] == 0
        assert stored["completed_gigs"] == 0
        assert stored["password_hash"] != "long-enough"

    def test_register_job_poster_drops_skills(self, client, fake_db):
        response = client.post(
            "/auth/register",
            json={
                "email": "carla@example.com",
                "password": "long-enough",
                "name": "Carla",
                "role": "job_poster",
                "skills": ["SEO"],
            },
        )

        assert response.status_code == 201
        assert response.json()["landing_path"] == "/dashboard/client"
        assert fake_db.rows("users")[0]["skills"] == []

    def test_register_rejects_admin_role_and_short_password(self, client, fake_db):
        admin = client.post(
            "/auth/register",
            json={"email": "a@example.com", "password": "long-enough", "name": "A", "role": "admin"},
        )
        short = client.post(
            "/auth/register",
            json={"email": "b@example.com", "password": "short", "name": "B", "role": "freelancer"},
        )

        assert admin.status_code == 422
        assert short.status_code == 422
        assert fake_db.rows("users") == []

    def test_register_duplicate_email(self, client, fake_db, make_user):
        make_user(fake_db, email="taken@example.com")

        response = client.post(
            "/auth/register",
            json={"email": "taken@example.com", "password": "long-enough", "name": "T", "role": "freelancer"},
        )

        assert response.status_code == 409

    def test_register_loses_race_for_email(self, client, fake_db, make_user):
        def concurrent_signup(query):
            if query.table == "users" and query.op == "insert":
                fake_db.hooks.remove(concurrent_signup)
                make_user(fake_db, email="race@example.com")

        fake_db.hooks.append(concurrent_signup)

        response = client.post(
            "/auth/register",
            json={"email": "race@example.com", "password": "long-enough", "name": "R", "role": "freelancer"},
        )

        assert response.status_code == 409
        assert len(fake_db.rows("users", email="race@example.com")) == 1

    def test_login(self, client, fake_db, make_user):
        user = make_user(fake_db, role="job_poster", email="carla@example.com")

        response = client.post("/auth/token", json={"email": "carla@example.com", "password": TEST_PASSWORD})

        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == user["id"]
        assert data["landing_path"] == "/dashboard/client"
        assert decode_token(data["access_token"], get_settings())["role"] == "job_poster"

    def test_login_wrong_password(self, client, fake_db, make_user):
        make_user(fake_db, email="carla@example.com")

        response = client.post("/auth/token", json={"email": "carla@example.com", "password": "nope-nope"})

        assert response.status_code == 401

    def test_me_without_auth(self, client):
        response = client.get("/auth/me")

        assert response.status_code == 401
        assert response.headers["X-Login-Path"] == "/login"

    def test_me_with_auth(self, client, fake_db, make_user, headers_for):
        user = make_user(fake_db, name="Frank")

        response = client.get("/auth/me", headers=headers_for(user))

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Frank"
        assert data["role"] == "freelancer"
        assert "password_hash" not in data

    def test_me_profile_missing(self, client, headers_for):
        ghost = {"id": "usr_missing", "role": "freelancer"}

        response = client.get("/auth/me", headers=headers_for(ghost))

        assert response.status_code == 404

    def test_update_name_only(self, client, fake_db, make_user, headers_for):
        user = make_user(fake_db, name="Old")

        response = client.patch("/auth/me", json={"name": "  New  ", "role": "admin"}, headers=headers_for(user))

        assert response.status_code == 200
        assert response.json()["name"] == "New"
        stored = fake_db.row("users", user["id"])
        assert stored["name"] == "New"
        assert stored["role"] == "freelancer"

    def test_cookie_auth(self, client, fake_db, make_user, settings):
        user = make_user(fake_db)
        token = create_access_token(user["id"], user["role"], settings)

        response = client.get("/auth/me", headers={"Cookie": f"gigmarket_auth={token}"})

        assert response.status_code == 200

    def test_token_with_unknown_role_rejected(self, client, settings):
        token = jwt.encode(
            {"sub": "usr_x", "role": "superuser", "type": "access"},
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )

        response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_garbage_token_rejected(self, client):
        response = client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    def test_logout_clears_cookie(self, client):
        response = client.post("/auth/logout")

        assert response.status_code == 200
        assert response.json() == {"status": "logged_out"}
        assert "gigmarket_auth" in response.headers["set-cookie"]
