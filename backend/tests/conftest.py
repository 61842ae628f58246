import os

# Settings are read once at import time; pin a throwaway environment first.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DB_INIT_MODE", "off")
os.environ.setdefault("REFRESH_TOKEN_HASH_ROUNDS", "4")
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "4")
os.environ.setdefault("RUN_TOKEN_CLEANUP", "false")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from prodauth.core.database import Base  # noqa: E402
from prodauth.core.security import get_password_hash  # noqa: E402
from prodauth.models.user import User  # noqa: E402


def _make_session():
    engine = create_engine("sqlite:///:memory:")
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    return SessionLocal()


@pytest.fixture
def db():
    session = _make_session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    def _make(email="artist@studio.test", role="member", password="s3cret-pass", is_active=True):
        user = User(
            email=email,
            name=email.split("@")[0],
            password_hash=get_password_hash(password),
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make
