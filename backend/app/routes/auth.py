"""Authentication routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from postgrest.exceptions import APIError

from ..auth import (
    AUTH_COOKIE_NAME,
    CurrentUser,
    create_access_token,
    hash_password,
    landing_path,
    verify_password,
)
from ..config import Settings, get_settings
from ..database import (
    UNIQUE_VIOLATION,
    Database,
    create_user,
    email_exists,
    get_user,
    get_user_credentials,
    update_user_name,
)
from ..logging_config import get_logger, log_auth_event
from ..models import (
    ProfileResponse,
    ProfileUpdate,
    TokenResponse,
    UserLogin,
    UserRegister,
)
from ..rate_limit import limiter

logger = get_logger("gigmarket.auth")
router = APIRouter(prefix="/auth", tags=["auth"])


def set_auth_cookie(response: Response, token: str, settings: Settings):
    """Set httpOnly auth cookie."""
    response.set_cookie(
        key=AUTH_COOKIE_NAME,
        value=token,
        max_age=settings.jwt_expire_minutes * 60,
        httponly=True,
        secure=not settings.debug,
        samesite="strict",
        path="/",
    )


def clear_auth_cookie(response: Response, settings: Settings):
    """Clear the auth cookie (logout)."""
    response.delete_cookie(
        key=AUTH_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=not settings.debug,
        samesite="strict",
    )


def _token_response(user_id: str, role: str, email: str, settings: Settings) -> tuple[str, TokenResponse]:
    token = create_access_token(user_id, role, settings, email=email)
    return token, TokenResponse(
        access_token=token,
        expires_in=settings.jwt_expire_minutes * 60,
        user_id=user_id,
        role=role,
        landing_path=landing_path(role),
    )


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
async def register(
    request: Request,
    response: Response,
    register_request: UserRegister,
    db: Database,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """
    Create an account and its profile.

    Role is chosen here and cannot be changed later. Skills are kept for
    freelancers only. Also sets an httpOnly cookie for browser-based auth.
    """
    logger.info(f"Registration attempt | email={register_request.email} | role={register_request.role}")

    if await email_exists(db, register_request.email):
        log_auth_event("register", None, False, "email_taken")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists",
        )

    try:
        user = await create_user(
            db,
            email=register_request.email,
            password_hash=hash_password(register_request.password),
            name=register_request.name,
            role=register_request.role,
            skills=register_request.skills,
        )
    except APIError as e:
        # Lost a race with a concurrent registration for the same email
        if e.code == UNIQUE_VIOLATION:
            log_auth_event("register", None, False, "email_taken")
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="An account with this email already exists",
            )
        raise
    if not user:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create account",
        )

    token, token_response = _token_response(user["id"], user["role"], user["email"], settings)
    set_auth_cookie(response, token, settings)
    log_auth_event("register", user["id"], True)
    return token_response


@router.post("/token", response_model=TokenResponse)
@limiter.limit("5/minute")
async def get_token(
    request: Request,
    response: Response,
    login_request: UserLogin,
    db: Database,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Sign in with email and password."""
    user = await get_user_credentials(db, login_request.email)
    if not user or not verify_password(login_request.password, user["password_hash"]):
        log_auth_event("login", user["id"] if user else None, False, "bad_credentials")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    token, token_response = _token_response(user["id"], user["role"], user["email"], settings)
    set_auth_cookie(response, token, settings)
    log_auth_event("login", user["id"], True)
    return token_response


@router.post("/logout")
async def logout(
    response: Response,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Clear auth cookie and logout."""
    clear_auth_cookie(response, settings)
    return {"status": "logged_out"}


@router.get("/me", response_model=ProfileResponse)
async def get_me(auth: CurrentUser, db: Database):
    """Get the signed-in user's profile."""
    user = await get_user(db, auth.user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User profile not found",
        )
    return ProfileResponse(**user, landing_path=landing_path(user["role"]))


@router.patch("/me", response_model=ProfileResponse)
@limiter.limit("10/minute")
async def update_me(
    request: Request,
    update: ProfileUpdate,
    auth: CurrentUser,
    db: Database,
):
    """Edit the display name. Email and role are not editable."""
    logger.info(f"PATCH /auth/me | user={auth.user_id}")

    user = await update_user_name(db, auth.user_id, update.name)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User profile not found",
        )
    return ProfileResponse(**user, landing_path=landing_path(user["role"]))
