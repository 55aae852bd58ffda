"""
Application configuration using Pydantic Settings.

Configuration values can be set via environment variables or .env file.
Every request handler builds its collaborators from these values, so all
handlers that share a store must also share the secret material below.
"""

import hashlib
import json
from typing import Any, List, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    APP_NAME: str = "Campus Sessions"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    DEV_MODE: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8500

    # Session store
    DATABASE_URL: str = "sqlite:///./data/campus_sessions.db"
    STORE_TIMEOUT_SECONDS: float = 5.0

    # Secrets. An empty SECRET_KEY is resolved at load time (env, key file, generated).
    SECRET_KEY: str = ""
    ENCRYPTION_KEY: Optional[str] = None
    ENCRYPTION_SALT: Optional[str] = None
    ENCRYPTION_KDF_ITERATIONS: int = 300_000
    SEARCH_HASH_KEY: Optional[str] = None

    # Shared credential of the sign-in service that uploads sessions; unset disables uploads
    SERVICE_API_KEY: Optional[str] = None

    # Bearer tokens
    JWT_SECRET_KEY: Optional[str] = None
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 7 * 24 * 60

    # Session lifecycle windows
    SESSION_FRESHNESS_HOURS: float = 2.0
    SESSION_RENEWAL_HOURS: float = 7 * 24.0
    SESSION_COOKIE_NAME: str = "sessionId"
    SESSION_COOKIE_SECURE: Optional[bool] = None

    CORS_ORIGINS: List[str] = ["http://localhost:8500", "http://localhost:3000"]

    # Rate limiting configuration
    rate_limit_session_endpoints: str = "30/minute"
    rate_limit_admin_endpoints: str = "10/minute"

    # Optional Redis URL for distributed rate limiting
    # When set, rate limits will be shared across multiple instances
    redis_url: Optional[str] = None

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, value: Any) -> Any:
        """Accept a JSON list or a comma-separated string."""
        if isinstance(value, str):
            value = value.strip()
            if value.startswith("["):
                return json.loads(value)
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("SESSION_FRESHNESS_HOURS", "SESSION_RENEWAL_HOURS")
    @classmethod
    def positive_window(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("session windows must be positive")
        return value

    @model_validator(mode="after")
    def resolve_secrets(self) -> "Settings":
        from campus_sessions.core.security import get_or_create_secret_key, validate_secret_key

        if self.SECRET_KEY:
            validate_secret_key(self.SECRET_KEY)
        else:
            self.SECRET_KEY = get_or_create_secret_key()

        if self.SERVICE_API_KEY:
            validate_secret_key(self.SERVICE_API_KEY)

        if self.SESSION_FRESHNESS_HOURS > self.SESSION_RENEWAL_HOURS:
            raise ValueError("SESSION_FRESHNESS_HOURS cannot exceed SESSION_RENEWAL_HOURS")
        return self

    @property
    def encryption_key(self) -> str:
        return self.ENCRYPTION_KEY or self.SECRET_KEY

    @property
    def encryption_salt(self) -> bytes:
        """Salt shared by every handler; derived from the secret when not configured."""
        if self.ENCRYPTION_SALT:
            return self.ENCRYPTION_SALT.encode("utf-8")
        return hashlib.sha256(self.SECRET_KEY.encode("utf-8")).digest()[:16]

    @property
    def search_hash_key(self) -> bytes:
        if self.SEARCH_HASH_KEY:
            return self.SEARCH_HASH_KEY.encode("utf-8")
        return hashlib.sha256(b"search-hash:" + self.encryption_key.encode("utf-8")).digest()

    @property
    def jwt_secret_key(self) -> str:
        return self.JWT_SECRET_KEY or self.SECRET_KEY

    @property
    def session_cookie_secure(self) -> bool:
        if self.SESSION_COOKIE_SECURE is not None:
            return self.SESSION_COOKIE_SECURE
        return self.ENVIRONMENT == "production"


# Global settings instance
settings = Settings()
