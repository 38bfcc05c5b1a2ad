"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for AccessGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. The
      lifespan in api/main.py reads it once and builds the immutable service
      objects (TokenConfig, PasswordHasher, ...) from it; auth/ never reads
      Settings on its own.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="before"): resolves the DEBUG-conditional SECRET_KEY
      rule before the model is frozen: dev mode generates a key with a warning,
      production mode refuses to start without one.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. JWT signing
       relies on key entropy -- a short key weakens every issued token.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure. This prevents accidentally running with a random
       key in production, where tokens must survive a restart.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from typing import Any

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("accessgate.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The instance is frozen: configuration
    is loaded once at startup and is read-only afterwards.

    Environment variable name mapping: field names are uppercased automatically.
    E.g. `secret_key` reads from SECRET_KEY, `bcrypt_rounds` from BCRYPT_ROUNDS.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The validator below
    # either generates a dev key or raises, so callers never see "".
    secret_key: str = Field(default="", repr=False)
    database_url: str = "sqlite:///accessgate.db"

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    jwt_algorithm: str = "HS256"
    # Default 1 hour. There is no refresh flow: clients log in again.
    token_expire_seconds: int = Field(default=3600, gt=0)

    # ------------------------------------------------------------------
    # Password hashing
    # ------------------------------------------------------------------

    # bcrypt cost factor (2^rounds iterations). 12 keeps a login under ~300ms.
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    # Concurrent bcrypt operations allowed per process; extra callers wait.
    max_concurrent_hashes: int = Field(default=4, ge=1)

    # ------------------------------------------------------------------
    # Credential policy
    # ------------------------------------------------------------------

    min_login_length: int = Field(default=3, ge=1)
    min_password_length: int = Field(default=8, ge=1)
    require_mixed_password: bool = False

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    self_registration_enabled: bool = True

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="before")
    @classmethod
    def validate_secret_key(cls, data: Any) -> Any:
        """Enforce SECRET_KEY policy [M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Tokens will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters [M6].
        """
        if not isinstance(data, dict):
            return data
        debug = str(data.get("debug", "")).strip().lower() in ("1", "true", "yes", "on")
        secret_key = data.get("secret_key") or ""
        if not secret_key:
            if debug:
                data["secret_key"] = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Tokens will not persist across restarts.")
                return data
            raise ValueError(
                "SECRET_KEY is required in production mode. "
                "Set SECRET_KEY in your environment or .env file. "
                "To run in development mode, set DEBUG=true."
            )
        if len(secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return data


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings() directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
