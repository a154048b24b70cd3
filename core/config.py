"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the auth API happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. auth_api_enabled -> AUTH_API_ENABLED). Type coercion and validation
      are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Used for the DEBUG-conditional SECRET_KEY
      logic: dev mode generates a key with a warning, production mode refuses
      to start without one.

Security notes:
  SECRET_KEY keys the HMAC that protects stored recovery codes. A key shorter
  than 32 chars is rejected outright.

  access_token_length below 43 characters drops the token under 256 bits of
  entropy (62-symbol alphabet) and is rejected. Above 255 the token no longer
  fits the column or the verify/logout request body, so that is rejected too.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("gameauth.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'gameauth.db'}"

# 62 ** 43 > 2 ** 256
_MIN_TOKEN_LENGTH = 43
# users.access_token is String(255) and request bodies cap the token at 255.
_MAX_TOKEN_LENGTH = 255


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Auth API
    # ------------------------------------------------------------------

    # Off until an operator turns it on.
    auth_api_enabled: bool = False
    access_token_length: int = 128
    token_issue_attempts: int = Field(default=3, ge=1)
    # Accepted clock drift, in 30-second TOTP steps either side of now.
    totp_window: int = Field(default=1, ge=0)

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Recovery codes enrolled under it stop matching after a restart --
            acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Recovery codes will not survive restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_token_length(self) -> "Settings":
        if self.access_token_length < _MIN_TOKEN_LENGTH:
            raise ValueError(f"ACCESS_TOKEN_LENGTH must be at least {_MIN_TOKEN_LENGTH} characters.")
        if self.access_token_length > _MAX_TOKEN_LENGTH:
            raise ValueError(f"ACCESS_TOKEN_LENGTH must be at most {_MAX_TOKEN_LENGTH} characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings() directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
