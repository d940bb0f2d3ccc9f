"""User service - handles account creation, authentication and profiles"""

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.sql import func
from typing import Optional
from gravizot.models.user import User
from gravizot.schemas.user import EMAIL_PATTERN, MAX_PASSWORD_BYTES, ProfileUpdate, normalize_email
from gravizot.core.security import burn_password_check, get_password_hash, verify_password
from gravizot.core.exceptions import (
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    ResourceNotFoundError
)
import logging

logger = logging.getLogger(__name__)


class UserService:
    """Service for user accounts"""

    @staticmethod
    def create_user(db: Session, email: str, password: str) -> User:
        """
        Create new user

        The row is flushed, not committed; the caller commits it together
        with the first session.

        Args:
            db: Database session
            email: Email (normalized before lookup and insert)
            password: Plain text password

        Returns:
            Created user

        Raises:
            EmailAlreadyRegisteredError: If the normalized email is taken
        """
        email = normalize_email(email)
        if UserService.get_user_by_email(db, email):
            raise EmailAlreadyRegisteredError()

        user = User(email=email, password_hash=get_password_hash(password))
        db.add(user)
        try:
            db.flush()
        except IntegrityError:
            # Lost a race with a concurrent signup for the same email
            db.rollback()
            raise EmailAlreadyRegisteredError()
        db.refresh(user)

        logger.info(f"Created user: id={user.id}")
        return user

    @staticmethod
    def authenticate_user(db: Session, email: str, password: str) -> User:
        """
        Authenticate user by email and password

        Unknown or malformed emails, malformed passwords and wrong passwords
        all raise the same error after the same amount of bcrypt work.

        Args:
            db: Database session
            email: Email
            password: Password

        Returns:
            Authenticated user
        """
        email = normalize_email(email)
        password = password or ""
        well_formed = (
            bool(EMAIL_PATTERN.match(email))
            and bool(password)
            and len(password.encode("utf-8")) <= MAX_PASSWORD_BYTES
        )
        user = UserService.get_user_by_email(db, email) if well_formed else None

        if not user:
            burn_password_check(password if well_formed else "")
            raise InvalidCredentialsError()

        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError()

        user.last_login_at = func.now()
        db.commit()
        db.refresh(user)

        logger.info(f"User authenticated: id={user.id}")
        return user

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        """Get user by ID"""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        """Get user by normalized email"""
        return db.query(User).filter(User.email == normalize_email(email)).first()

    @staticmethod
    def update_profile(db: Session, user_id: int, changes: ProfileUpdate) -> User:
        """
        Update mutable profile fields

        Fields that are omitted or null keep their stored values.

        Args:
            db: Database session
            user_id: User ID
            changes: Requested profile changes

        Returns:
            Updated user
        """
        user = UserService.get_user_by_id(db, user_id)
        if not user:
            raise ResourceNotFoundError("User")

        for field, value in changes.model_dump(exclude_unset=True, exclude_none=True).items():
            setattr(user, field, value)
        user.updated_at = func.now()
        db.commit()
        db.refresh(user)

        logger.info(f"Updated profile: id={user.id}")
        return user


# Singleton instance
user_service = UserService()
