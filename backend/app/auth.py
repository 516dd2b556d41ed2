"""Authentication utilities and the role gate for page-level endpoints."""

from datetime import datetime, timedelta, timezone
from typing import Annotated

import bcrypt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import Settings, get_settings
from .marketplace.models import UserRole

# Cookie name for httpOnly auth
AUTH_COOKIE_NAME = "gigmarket_auth"

# Where an unauthenticated caller should be sent
LOGIN_PATH = "/login"

# Make bearer optional to allow cookie fallback
security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a password against its hash."""
    try:
        return bcrypt.checkpw(plain.encode(), hashed.encode())
    except ValueError:
        return False


def landing_path(role: UserRole | str) -> str:
    """Role-appropriate dashboard path. Job posters land on the client dashboard."""
    role = UserRole(role)
    if role == UserRole.job_poster:
        return "/dashboard/client"
    return f"/dashboard/{role.value}"


def create_access_token(
    user_id: str,
    role: UserRole | str,
    settings: Settings,
    expires_delta: timedelta | None = None,
    email: str | None = None,
) -> str:
    """Create a JWT access token carrying the user's id and role."""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))

    to_encode = {
        "sub": user_id,
        "role": UserRole(role).value,
        "exp": expire,
        "iat": now,
        "type": "access",
    }
    if email:
        to_encode["email"] = email
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> dict:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer", "X-Login-Path": LOGIN_PATH},
        )


class AuthContext:
    """Identity of the caller, passed explicitly into every operation that needs it."""

    def __init__(self, user_id: str, role: UserRole, email: str | None = None):
        self.user_id = user_id
        self.role = role
        self.email = email

    def has_role(self, *roles: UserRole) -> bool:
        return self.role in roles

    def __repr__(self) -> str:
        return f"AuthContext(user_id={self.user_id!r}, role={self.role.value!r})"


def _unauthenticated(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer", "X-Login-Path": LOGIN_PATH},
    )


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
    request: Request,
) -> AuthContext:
    """Resolve the caller from the Authorization header or the auth cookie."""
    token = credentials.credentials if credentials else request.cookies.get(AUTH_COOKIE_NAME)
    if not token:
        raise _unauthenticated("Not authenticated - provide Authorization header or auth cookie")

    payload = decode_token(token, settings)
    user_id = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise _unauthenticated("Invalid token payload")

    try:
        role = UserRole(payload.get("role"))
    except ValueError:
        raise _unauthenticated("Invalid token payload")

    return AuthContext(user_id=user_id, role=role, email=payload.get("email"))


# Type alias for dependency injection
CurrentUser = Annotated[AuthContext, Depends(get_current_user)]


def require_roles(*roles: UserRole):
    """Build a dependency that only lets the given roles through.

    Callers with another role get 403 plus an X-Redirect-To header naming
    their own landing page. With no roles given, any signed-in user passes.
    """
    allowed = frozenset(roles)

    async def role_gate(auth: CurrentUser) -> AuthContext:
        if allowed and auth.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"This page is not available to role: {auth.role.value}",
                headers={"X-Redirect-To": landing_path(auth.role)},
            )
        return auth

    return role_gate


ClientUser = Annotated[AuthContext, Depends(require_roles(UserRole.job_poster, UserRole.admin))]
FreelancerUser = Annotated[AuthContext, Depends(require_roles(UserRole.freelancer))]
