"""SQLAlchemy adapter over the refresh_tokens table."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from prodauth.core.security import utcnow
from prodauth.models.security import RefreshToken


class CredentialStore:
    """
    Persistence primitives for refresh tokens.

    Methods flush but never commit; the token service owns transaction
    boundaries so that a rotation's two writes land together.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def create(
        self,
        *,
        user_id: int,
        jti: str,
        family: str,
        token_hash: str,
        expires_at: datetime,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> RefreshToken:
        record = RefreshToken(
            user_id=user_id,
            jti=jti,
            family=family,
            token_hash=token_hash,
            expires_at=expires_at,
            ip_address=ip_address,
            user_agent=user_agent,
            is_used=False,
            is_revoked=False,
        )
        self.db.add(record)
        self.db.flush()
        return record

    def find_by_jti(self, jti: str) -> Optional[RefreshToken]:
        return self.db.query(RefreshToken).filter(RefreshToken.jti == jti).first()

    def mark_used_if_unused(self, jti: str, replaced_by: str, now: Optional[datetime] = None) -> bool:
        """
        Consume a token with a single conditional UPDATE.

        Returns False when the row was already used or revoked, which means a
        concurrent rotation got there first.
        """
        now = now or utcnow()
        matched = (
            self.db.query(RefreshToken)
            .filter(
                RefreshToken.jti == jti,
                RefreshToken.is_used == False,  # noqa: E712
                RefreshToken.is_revoked == False,  # noqa: E712
            )
            .update(
                {
                    RefreshToken.is_used: True,
                    RefreshToken.replaced_by_jti: replaced_by,
                    RefreshToken.last_used_at: now,
                },
                synchronize_session=False,
            )
        )
        return matched == 1

    def touch(self, record: RefreshToken, now: Optional[datetime] = None) -> None:
        record.last_used_at = now or utcnow()
        self.db.flush()

    def revoke_family(self, family: str, user_id: int) -> int:
        return self._revoke_where(RefreshToken.family == family, RefreshToken.user_id == user_id)

    def revoke_user(self, user_id: int) -> int:
        return self._revoke_where(RefreshToken.user_id == user_id)

    def revoke_jti(self, jti: str) -> int:
        return self._revoke_where(RefreshToken.jti == jti)

    def _revoke_where(self, *criteria) -> int:
        return (
            self.db.query(RefreshToken)
            .filter(*criteria, RefreshToken.is_revoked == False)  # noqa: E712
            .update(
                {RefreshToken.is_revoked: True, RefreshToken.revoked_at: utcnow()},
                synchronize_session=False,
            )
        )

    def delete_expired(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        return (
            self.db.query(RefreshToken)
            .filter(RefreshToken.expires_at < now)
            .delete(synchronize_session=False)
        )

    def _active_query(self, user_id: int):
        return self.db.query(RefreshToken).filter(
            RefreshToken.user_id == user_id,
            RefreshToken.is_revoked == False,  # noqa: E712
            RefreshToken.is_used == False,  # noqa: E712
        )

    def list_active(self, user_id: int) -> List[RefreshToken]:
        return self._active_query(user_id).order_by(RefreshToken.created_at.desc()).all()

    def count_active(self, user_id: int) -> int:
        return self._active_query(user_id).count()
