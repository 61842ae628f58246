"""User service - credential verification and lookups for the login path"""

from sqlalchemy.orm import Session
from typing import Optional
from prodauth.models.user import User
from prodauth.core.security import get_password_hash, utcnow, verify_password
from prodauth.core.exceptions import InvalidCredentialsError, AuthenticationError
import logging

logger = logging.getLogger(__name__)


class UserService:
    """Service for user lookups and password verification"""

    @staticmethod
    def create_user(db: Session, *, email: str, password: str, name: str = "", role: str = "member") -> User:
        """
        Create new user

        Args:
            db: Database session
            email: Login email, stored lowercased
            password: Plain text password
            name: Display name
            role: Global role

        Returns:
            Created user
        """
        user = User(
            email=email.strip().lower(),
            name=name,
            password_hash=get_password_hash(password),
            role=role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        logger.info(f"Created user: {user.email} (role: {user.role})")
        return user

    @staticmethod
    def authenticate_user(db: Session, email: str, password: str) -> User:
        """
        Verify email and password

        Lockout is handled by the failed-login tracker, not here.

        Args:
            db: Database session
            email: Email
            password: Password

        Returns:
            Authenticated user

        Raises:
            InvalidCredentialsError: unknown email or wrong password
            AuthenticationError: account disabled
        """
        user = UserService.get_user_by_email(db, email)

        if not user or not verify_password(password, user.password_hash):
            raise InvalidCredentialsError()

        if not user.is_active:
            raise AuthenticationError("User account is disabled")

        user.last_login = utcnow()
        db.commit()

        logger.info(f"User authenticated: {user.email}")
        return user

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        """Get user by ID"""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        """Get user by email"""
        return db.query(User).filter(User.email == (email or "").strip().lower()).first()


# Singleton instance
user_service = UserService()
