"""Refresh token rotation, replay detection and revocation service."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from prodauth.config import settings
from prodauth.core.exceptions import (
    AuthenticationError,
    ReplayDetectedError,
    TokenExpiredError,
    TokenInvalidError,
    TokenNotFoundError,
    TokenRevokedError,
)
from prodauth.core.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    generate_jti,
    generate_token_family,
    hash_token_secret,
    utcnow,
    verify_token_secret,
)
from prodauth.models.security import RefreshToken
from prodauth.models.user import User
from prodauth.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)


class TokenService:
    """Manage refresh-token family lifecycle."""

    # Low-level credential operations

    @staticmethod
    def issue(
        db: Session,
        *,
        owner_id: int,
        secret: str,
        jti: str,
        family: str,
        ttl_seconds: int,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        commit: bool = True,
    ) -> RefreshToken:
        """
        Persist a new, unused refresh token.

        Args:
            db: Database session
            owner_id: User the token authenticates
            secret: Bearer secret; only its salted hash is stored
            jti: Globally unique token identifier
            family: Lineage identifier shared with every rotation
            ttl_seconds: Lifetime from now

        Returns:
            The stored record
        """
        record = CredentialStore(db).create(
            user_id=owner_id,
            jti=jti,
            family=family,
            token_hash=hash_token_secret(secret),
            expires_at=utcnow() + timedelta(seconds=ttl_seconds),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        if commit:
            db.commit()
        return record

    @staticmethod
    def validate(db: Session, jti: str, presented_secret: str) -> RefreshToken:
        """
        Check a presented refresh token without consuming it.

        Raises:
            TokenNotFoundError, TokenExpiredError, TokenRevokedError,
            TokenInvalidError, or ReplayDetectedError after the token's
            family has been revoked and committed.
        """
        store = CredentialStore(db)
        record = store.find_by_jti(jti)
        if not record:
            raise TokenNotFoundError()

        now = utcnow()
        if record.is_expired(now):
            raise TokenExpiredError()

        if record.is_used:
            revoked = TokenService.revoke_family(db, record.family, record.user_id)
            logger.warning(
                "Refresh token replay detected: user_id=%s family=%s... revoked=%s",
                record.user_id,
                record.family[:8],
                revoked,
            )
            raise ReplayDetectedError(record.family, revoked, owner_id=record.user_id)

        if record.is_revoked:
            raise TokenRevokedError()

        if not verify_token_secret(presented_secret, record.token_hash):
            raise TokenInvalidError()

        store.touch(record, now)
        db.commit()
        return record

    @staticmethod
    def rotate(
        db: Session,
        *,
        old_jti: str,
        presented_secret: str,
        new_secret: str,
        new_jti: str,
        ttl_seconds: int,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> RefreshToken:
        """
        Consume a valid token and issue its successor in the same family.

        The old row is marked used by a conditional UPDATE in the same
        transaction that inserts the successor. Losing a concurrent race is
        treated as replay.
        """
        current = TokenService.validate(db, old_jti, presented_secret)
        family = current.family
        owner_id = current.user_id

        store = CredentialStore(db)
        if not store.mark_used_if_unused(old_jti, new_jti):
            db.rollback()
            revoked = TokenService.revoke_family(db, family, owner_id)
            logger.warning(
                "Concurrent rotation of one refresh token: user_id=%s family=%s... revoked=%s",
                owner_id,
                family[:8],
                revoked,
            )
            raise ReplayDetectedError(family, revoked, owner_id=owner_id)

        try:
            successor = TokenService.issue(
                db,
                owner_id=owner_id,
                secret=new_secret,
                jti=new_jti,
                family=family,
                ttl_seconds=ttl_seconds,
                ip_address=ip_address,
                user_agent=user_agent,
                commit=False,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(successor)
        return successor

    @staticmethod
    def revoke_family(db: Session, family: str, owner_id: int) -> int:
        revoked = CredentialStore(db).revoke_family(family, owner_id)
        db.commit()
        return revoked

    @staticmethod
    def revoke_all(db: Session, owner_id: int) -> int:
        revoked = CredentialStore(db).revoke_user(owner_id)
        db.commit()
        if revoked:
            logger.info("Revoked %s refresh tokens for user_id=%s", revoked, owner_id)
        return revoked

    @staticmethod
    def revoke(db: Session, jti: str) -> bool:
        revoked = CredentialStore(db).revoke_jti(jti)
        db.commit()
        return revoked > 0

    @staticmethod
    def cleanup_expired(db: Session) -> int:
        removed = CredentialStore(db).delete_expired()
        db.commit()
        if removed:
            logger.info("Deleted %s expired refresh tokens", removed)
        return removed

    @staticmethod
    def get_active_tokens(db: Session, owner_id: int) -> List[RefreshToken]:
        return CredentialStore(db).list_active(owner_id)

    @staticmethod
    def count_active_tokens(db: Session, owner_id: int) -> int:
        return CredentialStore(db).count_active(owner_id)

    # Session orchestration used by the auth routes

    @staticmethod
    def _claims(user: User) -> dict:
        return {"sub": str(user.id), "email": user.email, "role": user.role}

    @staticmethod
    def _enforce_session_limit(db: Session, user: User) -> None:
        limit = settings.MAX_ACTIVE_SESSIONS
        if limit <= 0:
            return
        active = TokenService.get_active_tokens(db, user.id)
        # Newest first; make room for the session about to be issued.
        for stale in active[limit - 1:]:
            TokenService.revoke_family(db, stale.family, user.id)

    @staticmethod
    def issue_token_pair(
        db: Session,
        user: User,
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Tuple[str, str, RefreshToken]:
        """Start a new token family for a freshly authenticated user."""
        TokenService._enforce_session_limit(db, user)

        jti = generate_jti()
        family = generate_token_family()
        ttl = settings.REFRESH_TOKEN_EXPIRE_SECONDS
        access_token = create_access_token(TokenService._claims(user))
        refresh_token = create_refresh_token(
            TokenService._claims(user),
            jti=jti,
            family_id=family,
            expires_delta=timedelta(seconds=ttl),
        )
        record = TokenService.issue(
            db,
            owner_id=user.id,
            secret=refresh_token,
            jti=jti,
            family=family,
            ttl_seconds=ttl,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return access_token, refresh_token, record

    @staticmethod
    def refresh_session(
        db: Session,
        refresh_token: str,
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Tuple[User, str, str]:
        """Exchange a refresh JWT for a new access token and rotated refresh token."""
        payload = decode_refresh_token(refresh_token)
        if not payload:
            raise TokenInvalidError("Invalid refresh token")

        user_id_raw = payload.get("sub")
        token_jti = payload.get("jti")
        family = payload.get("fam")
        if not user_id_raw or not token_jti or not family:
            raise TokenInvalidError("Malformed refresh token")

        user = db.query(User).filter(User.id == int(user_id_raw)).first()
        if not user or not user.is_active:
            raise AuthenticationError("User not found or inactive")

        new_jti = generate_jti()
        ttl = settings.REFRESH_TOKEN_EXPIRE_SECONDS
        new_refresh = create_refresh_token(
            TokenService._claims(user),
            jti=new_jti,
            family_id=family,
            expires_delta=timedelta(seconds=ttl),
        )
        successor = TokenService.rotate(
            db,
            old_jti=token_jti,
            presented_secret=refresh_token,
            new_secret=new_refresh,
            new_jti=new_jti,
            ttl_seconds=ttl,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        if successor.user_id != user.id:
            # sub claim disagrees with the stored owner; treat as forged.
            TokenService.revoke_family(db, successor.family, successor.user_id)
            raise TokenInvalidError()

        new_access = create_access_token(TokenService._claims(user))
        return user, new_access, new_refresh

    @staticmethod
    def logout(db: Session, user_id: int, family: Optional[str] = None) -> int:
        """Revoke one login's family, or every session of the user."""
        if family:
            return TokenService.revoke_family(db, family, user_id)
        return TokenService.revoke_all(db, user_id)

    @staticmethod
    def family_of(refresh_token: str) -> Optional[str]:
        payload = decode_refresh_token(refresh_token)
        return payload.get("fam") if payload else None


token_service = TokenService()
