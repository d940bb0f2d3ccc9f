"""Refresh token issuance, rotation and revocation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import hashlib
import logging
import secrets
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from gravizot.config import settings
from gravizot.core.exceptions import (
    TokenAlreadyRevokedError,
    TokenExpiredError,
    TokenNotFoundError,
    TokenUserMismatchError,
)
from gravizot.core.security import sign_access_token
from gravizot.models.security import RefreshToken
from gravizot.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedRefreshToken:
    """A freshly issued refresh token. The only place the raw value exists."""

    raw_token: str
    expires_at: datetime

    def __repr__(self) -> str:
        return f"IssuedRefreshToken(raw_token='***', expires_at={self.expires_at!r})"


@dataclass(frozen=True)
class SessionTokens:
    access_token: str
    refresh_token: str
    refresh_expires_at: datetime

    def __repr__(self) -> str:
        return f"SessionTokens(refresh_expires_at={self.refresh_expires_at!r})"


def hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


class TokenService:
    """Manage the single-use refresh token chain.

    Only SHA-256 hashes are persisted. Rotation revokes the presented token
    and issues its successor in one transaction; the revocation is a
    conditional update, so of several concurrent rotations of the same token
    exactly one can claim it.
    """

    TOKEN_BYTES = 48

    @staticmethod
    def _utcnow() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def _as_utc(dt: datetime) -> datetime:
        # SQLite drops tzinfo on the way back.
        return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt

    @staticmethod
    def _find(db: Session, raw_token: str) -> Optional[RefreshToken]:
        return (
            db.query(RefreshToken)
            .filter(RefreshToken.token_hash == hash_token(raw_token))
            .first()
        )

    @staticmethod
    def _add_record(
        db: Session,
        *,
        user_id: int,
        user_agent: Optional[str],
        ip: Optional[str],
    ) -> IssuedRefreshToken:
        raw_token = secrets.token_urlsafe(TokenService.TOKEN_BYTES)
        expires_at = TokenService._utcnow() + timedelta(seconds=settings.REFRESH_TOKEN_TTL_SECONDS)
        db.add(
            RefreshToken(
                user_id=user_id,
                token_hash=hash_token(raw_token),
                expires_at=expires_at,
                user_agent=user_agent[:512] if user_agent else None,
                ip=ip,
            )
        )
        db.flush()
        return IssuedRefreshToken(raw_token=raw_token, expires_at=expires_at)

    @staticmethod
    def _claim(db: Session, record_id: int, now: datetime) -> bool:
        """Revoke a record only if nobody revoked it first."""
        result = db.execute(
            update(RefreshToken)
            .where(RefreshToken.id == record_id, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def create(
        db: Session,
        user_id: int,
        user_agent: Optional[str] = None,
        ip: Optional[str] = None,
    ) -> IssuedRefreshToken:
        issued = TokenService._add_record(db, user_id=user_id, user_agent=user_agent, ip=ip)
        db.commit()
        return issued

    @staticmethod
    def find_owner(db: Session, raw_token: str) -> Optional[int]:
        """User id of the record matching ``raw_token``, whatever its state."""
        if not raw_token:
            return None
        record = TokenService._find(db, raw_token)
        return record.user_id if record else None

    @staticmethod
    def rotate(
        db: Session,
        old_raw_token: str,
        expected_user_id: int,
        user_agent: Optional[str] = None,
        ip: Optional[str] = None,
    ) -> IssuedRefreshToken:
        """
        Exchange a valid refresh token for a new one

        Raises:
            TokenNotFoundError: no record for the token
            TokenUserMismatchError: record belongs to another user
            TokenAlreadyRevokedError: token used before (or claimed concurrently)
            TokenExpiredError: token past its expiry
        """
        record = TokenService._find(db, old_raw_token) if old_raw_token else None
        if not record:
            raise TokenNotFoundError()
        if record.user_id != expected_user_id:
            raise TokenUserMismatchError()
        if record.is_revoked:
            logger.warning("Revoked refresh token presented: record_id=%s user_id=%s", record.id, record.user_id)
            raise TokenAlreadyRevokedError()

        now = TokenService._utcnow()
        if TokenService._as_utc(record.expires_at) <= now:
            raise TokenExpiredError()

        try:
            if not TokenService._claim(db, record.id, now):
                logger.warning("Concurrent refresh token reuse: record_id=%s", record.id)
                raise TokenAlreadyRevokedError()
            issued = TokenService._add_record(db, user_id=record.user_id, user_agent=user_agent, ip=ip)
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info("Refresh token rotated for user_id=%s", record.user_id)
        return issued

    @staticmethod
    def revoke(db: Session, raw_token: Optional[str]) -> bool:
        """Revoke the matching record. Missing or already revoked tokens are a no-op."""
        if not raw_token:
            return False
        record = TokenService._find(db, raw_token)
        if not record or record.is_revoked:
            return False
        revoked = TokenService._claim(db, record.id, TokenService._utcnow())
        db.commit()
        return revoked

    @staticmethod
    def issue_session(
        db: Session,
        user: User,
        user_agent: Optional[str] = None,
        ip: Optional[str] = None,
    ) -> SessionTokens:
        """Sign an access token and start an independent refresh chain."""
        access_token = sign_access_token(user.id, user.email)
        issued = TokenService.create(db, user.id, user_agent=user_agent, ip=ip)
        return SessionTokens(
            access_token=access_token,
            refresh_token=issued.raw_token,
            refresh_expires_at=issued.expires_at,
        )


token_service = TokenService()
