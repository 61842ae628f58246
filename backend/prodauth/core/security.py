"""Security utilities - JWT, password and refresh-secret hashing, identifiers"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
import bcrypt
import hashlib
import secrets

from prodauth.config import settings


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how the token tables store datetimes."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalize a database datetime (aware on PostgreSQL, naive on SQLite)."""
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash

    Args:
        plain_password: Plain text password
        hashed_password: Hashed password

    Returns:
        bool: True if password matches
    """
    return bcrypt.checkpw(
        plain_password.encode('utf-8'),
        hashed_password.encode('utf-8')
    )


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt

    Args:
        password: Plain text password

    Returns:
        str: Hashed password
    """
    return bcrypt.hashpw(
        password.encode('utf-8'),
        bcrypt.gensalt(rounds=max(4, settings.PASSWORD_HASH_ROUNDS))
    ).decode('utf-8')


def _secret_digest(secret: str) -> bytes:
    # bcrypt only reads 72 bytes; a signed JWT is far longer.
    return hashlib.sha256(secret.encode('utf-8')).hexdigest().encode('ascii')


def hash_token_secret(secret: str) -> str:
    """Salted one-way hash of a refresh token's bearer secret."""
    rounds = max(4, settings.REFRESH_TOKEN_HASH_ROUNDS)
    return bcrypt.hashpw(_secret_digest(secret), bcrypt.gensalt(rounds=rounds)).decode('utf-8')


def verify_token_secret(secret: str, secret_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_secret_digest(secret), secret_hash.encode('utf-8'))
    except ValueError:
        return False


def generate_jti() -> str:
    """Unique token identifier: 32 random bytes, 64 hex characters."""
    return secrets.token_hex(32)


def generate_token_family() -> str:
    """Token family identifier: 16 random bytes, 32 hex characters."""
    return secrets.token_hex(16)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create JWT access token

    Args:
        data: Data to encode in token
        expires_delta: Token expiration time

    Returns:
        str: Encoded JWT token
    """
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))

    to_encode.update({
        "exp": expire,
        "iat": now,
        "typ": "access",
        "jti": secrets.token_urlsafe(32),
    })

    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_refresh_token(
    data: Dict[str, Any],
    *,
    jti: str,
    family_id: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create JWT refresh token bound to a token family

    Args:
        data: Data to encode in token
        jti: Unique token identifier, also the lookup key of the stored record
        family_id: Family shared by every rotation of one login
        expires_delta: Token expiration time

    Returns:
        str: Encoded JWT token
    """
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(seconds=settings.REFRESH_TOKEN_EXPIRE_SECONDS))

    to_encode.update({
        "exp": expire,
        "iat": now,
        "typ": "refresh",
        "jti": jti,
        "fam": family_id,
    })

    return jwt.encode(to_encode, settings.REFRESH_SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and verify JWT access token

    Args:
        token: JWT token string

    Returns:
        Optional[Dict]: Decoded token data or None if invalid
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    if payload.get("typ") != "access":
        return None
    return payload


def decode_refresh_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and verify a refresh JWT signature

    Expiry is not checked here: the stored record's expires_at is
    authoritative, so an expired token still reaches the store and is
    reported as expired rather than as malformed.
    """
    try:
        payload = jwt.decode(
            token,
            settings.REFRESH_SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            options={"verify_exp": False},
        )
    except JWTError:
        return None
    if payload.get("typ") != "refresh":
        return None
    return payload
