"""Application configuration management"""

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List
from urllib.parse import quote_plus

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode

# Base directory: backend/
_BASE_DIR = Path(__file__).resolve().parent.parent

logger = logging.getLogger(__name__)

LOGIN_GUARD_MODES = {"production", "always", "off"}


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Application
    APP_NAME: str = "Production Tracker Auth"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # Database (PostgreSQL)
    DATABASE_URL: str = ""
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "prodtrack_db"
    POSTGRES_USER: str = "prodtrack"
    POSTGRES_PASSWORD: str = "prodtrack"
    DATABASE_POOL_SIZE: int = 30
    DATABASE_MAX_OVERFLOW: int = 20

    # Security
    SECRET_KEY: str = "dev-secret-key-change-in-production-use-openssl-rand-hex-32"
    REFRESH_SECRET_KEY: str = "dev-refresh-secret-change-in-production-use-openssl-rand-hex-32"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_SECONDS: int = 7 * 24 * 3600
    REFRESH_TOKEN_HASH_ROUNDS: int = 10
    PASSWORD_HASH_ROUNDS: int = 12

    # Token/session security
    MAX_ACTIVE_SESSIONS: int = 0  # 0 disables the per-user session cap
    TOKEN_CLEANUP_INTERVAL_MINUTES: int = 60
    RUN_TOKEN_CLEANUP: bool = True

    # Failed login tracking
    LOGIN_GUARD_MODE: str = "production"  # production | always | off
    FAILED_LOGIN_MAX_ATTEMPTS: int = 5
    FAILED_LOGIN_LOCKOUT_MINUTES: int = 15
    FAILED_LOGIN_RETENTION_MINUTES: int = 10
    FAILED_LOGIN_SWEEP_INTERVAL_MINUTES: int = 10
    FAILED_LOGIN_ORIGIN_MULTIPLIER: int = 3

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # CORS
    CORS_ORIGINS: Annotated[List[str], NoDecode] = ["http://localhost:3000"]

    # Admin
    ADMIN_EMAIL: str = "admin@example.com"
    ADMIN_PASSWORD: str = "admin123"

    # Database initialization discipline
    DB_INIT_MODE: str = "migrate"  # migrate | create_all | off
    DB_REQUIRE_HEAD: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, value: Any) -> Any:
        """
        Accept JSON array or comma-separated origins from env.

        Examples:
            CORS_ORIGINS=["http://localhost:3000","http://example.com"]
            CORS_ORIGINS=http://localhost:3000,http://example.com
        """
        if not isinstance(value, str):
            return value

        raw = value.strip()
        if not raw:
            return []

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None

        if isinstance(parsed, str):
            return [parsed]
        if isinstance(parsed, list):
            return [str(origin).strip() for origin in parsed if str(origin).strip()]

        return [origin.strip() for origin in raw.split(",") if origin.strip()]

    @field_validator("LOGIN_GUARD_MODE")
    @classmethod
    def _check_guard_mode(cls, value: str) -> str:
        mode = value.strip().lower()
        if mode not in LOGIN_GUARD_MODES:
            raise ValueError(f"LOGIN_GUARD_MODE must be one of {sorted(LOGIN_GUARD_MODES)}")
        return mode

    def get_log_file(self) -> str:
        p = self.LOG_FILE
        if not p or p.startswith(".."):
            return str(_BASE_DIR.parent / "logs" / "app.log")
        return p

    def get_database_url(self) -> str:
        """
        Resolve database URL.

        Priority:
          1) Explicit DATABASE_URL
          2) Construct from POSTGRES_* parts with safe URL encoding
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        user = quote_plus(self.POSTGRES_USER)
        password = quote_plus(self.POSTGRES_PASSWORD)
        return (
            f"postgresql://{user}:{password}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    def login_guard_enabled(self) -> bool:
        """Whether the failed-login gate is enforced in this deployment."""
        if self.LOGIN_GUARD_MODE == "always":
            return True
        if self.LOGIN_GUARD_MODE == "off":
            return False
        return self.ENVIRONMENT.lower() == "production"

    def check_login_guard_windows(self) -> bool:
        """Warn when the sweep can forget attempts of a still-locked bucket."""
        if self.FAILED_LOGIN_RETENTION_MINUTES >= self.FAILED_LOGIN_LOCKOUT_MINUTES:
            return True
        logger.warning(
            "FAILED_LOGIN_RETENTION_MINUTES=%s is shorter than FAILED_LOGIN_LOCKOUT_MINUTES=%s; "
            "a sweep may lift a lockout early",
            self.FAILED_LOGIN_RETENTION_MINUTES,
            self.FAILED_LOGIN_LOCKOUT_MINUTES,
        )
        return False

    def validate_security_settings(self) -> None:
        """
        Validate runtime security defaults in production.

        Raises:
            ValueError: If insecure defaults are detected.
        """
        self.check_login_guard_windows()

        if self.ENVIRONMENT.lower() != "production":
            return

        insecure_secret_markers = {
            "",
            "dev-secret-key-change-in-production-use-openssl-rand-hex-32",
            "dev-refresh-secret-change-in-production-use-openssl-rand-hex-32",
            "change-me",
        }
        insecure_admin_passwords = {
            "",
            "admin123",
            "change_this_password_immediately",
        }

        for name in ("SECRET_KEY", "REFRESH_SECRET_KEY"):
            value = getattr(self, name)
            if value in insecure_secret_markers or len(value) < 32:
                raise ValueError(
                    f"Insecure {name} for production. Use a strong key (e.g. `openssl rand -hex 32`)."
                )

        if self.SECRET_KEY == self.REFRESH_SECRET_KEY:
            raise ValueError("SECRET_KEY and REFRESH_SECRET_KEY must differ in production.")

        if self.ADMIN_PASSWORD in insecure_admin_passwords or len(self.ADMIN_PASSWORD) < 10:
            raise ValueError(
                "Insecure ADMIN_PASSWORD for production. Set a strong admin password before startup."
            )

        if self.LOGIN_GUARD_MODE == "off":
            raise ValueError("LOGIN_GUARD_MODE=off is not allowed in production.")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
