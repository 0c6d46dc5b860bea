"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Agora happen here. No module should call
os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. The session
      signing key is therefore fixed for the lifetime of the process; rotating
      SECRET_KEY (restart with a new value) invalidates every outstanding session.

  @model_validator(mode="after"): cross-field validation after all fields are
      resolved. Dev mode generates a SECRET_KEY with a warning, production mode
      refuses to start without one.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. HS256 session
       signing relies on key entropy.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or forum/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("agora.config")

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.

    Environment variable name mapping: field names are uppercased automatically.
    E.g. `secret_key` reads from SECRET_KEY, `google_client_id` from GOOGLE_CLIENT_ID.
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
    # Empty string is the sentinel for "not configured".
    secret_key: str = ""
    database_url: str = f"sqlite:///{_PROJECT_ROOT / 'agora.db'}"

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    # Absolute session lifetime: 7 days from issuance.
    session_ttl_seconds: int = 7 * 24 * 60 * 60

    # ------------------------------------------------------------------
    # Google identity provider
    # ------------------------------------------------------------------

    # The OAuth client id registered with Google. ID tokens must carry it as aud.
    google_client_id: str = ""
    google_discovery_url: str = "https://accounts.google.com/.well-known/openid-configuration"

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    write_rate_limit: str = "30/minute"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Attachments
    # ------------------------------------------------------------------

    upload_dir: str = str(_PROJECT_ROOT / "uploads")
    max_upload_bytes: int = 5 * 1024 * 1024

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("session_ttl_seconds")
    @classmethod
    def validate_session_ttl(cls, v: int) -> int:
        if v < 60:
            raise ValueError("SESSION_TTL_SECONDS must be at least 60.")
        return v

    @field_validator("max_upload_bytes")
    @classmethod
    def validate_max_upload_bytes(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("MAX_UPLOAD_BYTES must be positive.")
        return v

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy [M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters [M6].
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
