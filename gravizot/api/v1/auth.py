"""Authentication routes"""

from fastapi import APIRouter, Cookie, Depends, Request, Response, status
from sqlalchemy.orm import Session
from typing import Optional
import logging

from gravizot.core.database import get_db
from gravizot.config import settings
from gravizot.core.cookies import REFRESH_COOKIE, clear_session_cookies, set_session_cookies
from gravizot.core.security import sign_access_token
from gravizot.schemas.response import ErrorResponse, OkResponse
from gravizot.schemas.user import LoginRequest, SignupRequest, UserEnvelope, UserResponse
from gravizot.services.user_service import user_service
from gravizot.services.token_service import token_service
from gravizot.services.rate_limiter import rate_limiter
from gravizot.api.deps import get_client_ip, get_current_user, get_user_agent
from gravizot.models.user import User
from gravizot.core.exceptions import AuthenticationError, RateLimitExceededError, RefreshTokenError

logger = logging.getLogger(__name__)

router = APIRouter(
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse, "description": "Missing or mismatched CSRF token"},
        429: {"model": ErrorResponse},
    }
)


def _enforce_rate_limit(action: str, client_ip: str, per_minute: int, per_hour: int) -> None:
    if not rate_limiter.allow(f"{action}:min:{client_ip}", per_minute, 60):
        raise RateLimitExceededError(f"Too many {action} attempts. Please wait a minute.")
    if not rate_limiter.allow(f"{action}:hour:{client_ip}", per_hour, 3600):
        raise RateLimitExceededError(f"Too many {action} attempts. Please try again later.")


@router.get("/csrf", response_model=OkResponse)
def csrf():
    """
    Plant the CSRF cookie

    The cookie itself is set by the CSRF middleware on any safe request;
    this endpoint just gives clients something cheap to call.
    """
    return OkResponse()


@router.post("/signup", response_model=UserEnvelope, status_code=status.HTTP_201_CREATED)
def signup(
    body: SignupRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db)
):
    """
    Signup endpoint - create account and start a session

    Args:
        body: Email and password

    Returns:
        Created user; session cookies are set on the response
    """
    client_ip = get_client_ip(request)
    _enforce_rate_limit("signup", client_ip, settings.LOGIN_RATE_LIMIT_PER_MINUTE, settings.LOGIN_RATE_LIMIT_PER_HOUR)

    # The user row and its first refresh token are committed together.
    user = user_service.create_user(db, body.email, body.password)
    tokens = token_service.issue_session(db, user, user_agent=get_user_agent(request), ip=client_ip)
    set_session_cookies(response, tokens.access_token, tokens.refresh_token, tokens.refresh_expires_at)

    return UserEnvelope(user=UserResponse.model_validate(user))


@router.post("/login", response_model=UserEnvelope, status_code=status.HTTP_200_OK)
def login(
    credentials: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db)
):
    """
    Login endpoint - authenticate and start a fresh, independent session

    Args:
        credentials: Email and password

    Returns:
        Authenticated user; session cookies are set on the response
    """
    client_ip = get_client_ip(request)
    _enforce_rate_limit("login", client_ip, settings.LOGIN_RATE_LIMIT_PER_MINUTE, settings.LOGIN_RATE_LIMIT_PER_HOUR)

    user = user_service.authenticate_user(db, credentials.email, credentials.password)
    tokens = token_service.issue_session(db, user, user_agent=get_user_agent(request), ip=client_ip)
    set_session_cookies(response, tokens.access_token, tokens.refresh_token, tokens.refresh_expires_at)

    return UserEnvelope(user=UserResponse.model_validate(user))


@router.post("/logout", response_model=OkResponse, status_code=status.HTTP_200_OK)
def logout(
    response: Response,
    refresh_token: Optional[str] = Cookie(None, alias=REFRESH_COOKIE),
    db: Session = Depends(get_db)
):
    """
    Logout endpoint - revoke the refresh token and clear session cookies

    Always succeeds: a stale, unknown or unrevocable token still ends with
    both cookies cleared.
    """
    try:
        token_service.revoke(db, refresh_token)
    except Exception:
        db.rollback()
        logger.warning("Refresh token revocation failed during logout", exc_info=True)

    clear_session_cookies(response)
    return OkResponse()


@router.post("/refresh", response_model=OkResponse)
def refresh(
    request: Request,
    response: Response,
    refresh_token: Optional[str] = Cookie(None, alias=REFRESH_COOKIE),
    db: Session = Depends(get_db),
):
    """
    Refresh endpoint - rotate the refresh token and re-issue the access token

    Any failure is a plain 401; the client must treat the session as over.
    """
    client_ip = get_client_ip(request)
    _enforce_rate_limit("refresh", client_ip, settings.RATE_LIMIT_PER_MINUTE, settings.RATE_LIMIT_PER_HOUR)

    if not refresh_token:
        raise AuthenticationError("No refresh token")

    user_id = token_service.find_owner(db, refresh_token)
    user = user_service.get_user_by_id(db, user_id) if user_id is not None else None
    if not user:
        raise AuthenticationError("Invalid refresh")

    try:
        issued = token_service.rotate(
            db,
            refresh_token,
            user.id,
            user_agent=get_user_agent(request),
            ip=client_ip,
        )
    except RefreshTokenError as exc:
        logger.info("Refresh rejected for user_id=%s: %s", user.id, exc.reason)
        raise AuthenticationError("Refresh failed")

    access_token = sign_access_token(user.id, user.email)
    set_session_cookies(response, access_token, issued.raw_token, issued.expires_at)
    return OkResponse()


@router.get("/me", response_model=UserResponse)
def me(
    current_user: User = Depends(get_current_user)
):
    """
    Get current user information

    Returns:
        User projection loaded fresh from the database
    """
    return UserResponse.model_validate(current_user)
