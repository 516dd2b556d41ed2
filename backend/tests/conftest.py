"""Pytest configuration and fixtures."""

import os
import secrets
from datetime import date, datetime, timedelta, timezone

import pytest

# Generate a unique test secret for this test run to prevent token forgery
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("JWT_SECRET_KEY", _TEST_JWT_SECRET)

from app.auth import AuthContext, create_access_token, hash_password  # noqa: E402
from app.config import get_settings  # noqa: E402
from app.database import get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.marketplace import UserRole  # noqa: E402
from app.rate_limit import limiter  # noqa: E402
from fake_supabase import FakeSupabase, commit_gig_transition  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

TEST_PASSWORD = "correct-horse-battery"
_TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


@pytest.fixture(autouse=True)
def disable_rate_limit():
    """Keep per-route limits from tripping across tests."""
    limiter.enabled = False
    limiter.reset()
    yield
    limiter.enabled = True
    limiter.reset()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def fake_db():
    """Empty in-memory store without the commit_gig_transition procedure."""
    return FakeSupabase()


@pytest.fixture(params=["rpc", "optimistic"])
def commit_db(request):
    """Store for lifecycle tests, run once per commit strategy.

    ``rpc``: the stored procedure is installed.
    ``optimistic``: it is missing, so commits fall back to guarded writes.
    """
    db = FakeSupabase()
    if request.param == "rpc":
        db.rpc_handlers["commit_gig_transition"] = commit_gig_transition
    return db


@pytest.fixture
def client(fake_db):
    """Create a test client backed by the fake store."""
    app.dependency_overrides[get_db] = lambda: fake_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# =============================================================================
# Factories
# =============================================================================


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat()


@pytest.fixture
def make_user():
    def _make_user(db: FakeSupabase, role: str = "freelancer", name: str = "Test User", **fields) -> dict:
        data = {
            "email": f"{secrets.token_hex(4)}@example.com",
            "password_hash": _TEST_PASSWORD_HASH,
            "role": role,
            "name": name,
            "skills": ["Web Development"] if role == "freelancer" else [],
            "rating": 0,
            "completed_gigs": 0,
        }
        data.update(fields)
        return db.add_row("users", data)

    return _make_user


@pytest.fixture
def make_gig():
    def _make_gig(db: FakeSupabase, poster: dict, **fields) -> dict:
        data = {
            "title": "Build a landing page",
            "description": "Single page marketing site",
            "status": "open",
            "priority": "medium",
            "poster_id": poster["id"],
            "assigned_to": None,
            "budget": 500.0,
            "deadline": (date.today() + timedelta(days=7)).isoformat(),
            "skills": ["Web Development"],
            "progress": 0,
            "milestones": [],
            "created_at": _iso(datetime.now(timezone.utc)),
        }
        data.update(fields)
        data.setdefault("updated_at", data["created_at"])
        return db.add_row("gigs", data)

    return _make_gig


@pytest.fixture
def make_application():
    def _make_application(db: FakeSupabase, gig: dict, freelancer: dict, status: str = "pending", **fields) -> dict:
        data = {
            "gig_id": gig["id"],
            "freelancer_id": freelancer["id"],
            "cover_letter": "I have built many of these.",
            "status": status,
        }
        data.update(fields)
        return db.add_row("applications", data)

    return _make_application


@pytest.fixture
def auth_for():
    """AuthContext for a stored user row."""

    def _auth_for(user: dict) -> AuthContext:
        return AuthContext(user_id=user["id"], role=UserRole(user["role"]), email=user.get("email"))

    return _auth_for


@pytest.fixture
def headers_for(settings):
    """Bearer auth headers for a stored user row."""

    def _headers_for(user: dict) -> dict:
        token = create_access_token(user["id"], user["role"], settings, email=user.get("email"))
        return {"Authorization": f"Bearer {token}"}

    return _headers_for
