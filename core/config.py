"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for OrgWarden happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY, superadmin_email -> SUPERADMIN_EMAIL).

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Dev mode generates a SECRET_KEY with a warning, production
      mode refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. Session tokens are
  HS256-signed with it, so a short key weakens every session.

  The bootstrap SuperAdmin password has a development default only. In
  production mode SUPERADMIN_PASSWORD must be set explicitly.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or orgs/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("orgwarden.config")

_ROOT = Path(__file__).resolve().parent.parent

_DEV_SUPERADMIN_PASSWORD = "Yourpassword1"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
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
    # Empty string is the "not configured" sentinel; see validate_secret_key.
    secret_key: str = ""
    platform_name: str = "OrgWarden"
    platform_url: str = "http://localhost:8000"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    auth_db_url: str = f"sqlite:///{_ROOT / 'auth' / 'orgwarden_auth.db'}"
    orgs_db_url: str = f"sqlite:///{_ROOT / 'orgs' / 'orgwarden_orgs.db'}"

    # ------------------------------------------------------------------
    # Sessions and credentials
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    token_expire_seconds: int = 3600
    bcrypt_rounds: int = 10
    # Upper bound on a single hash/verify call running on a worker thread.
    hash_timeout_seconds: float = 5.0

    # ------------------------------------------------------------------
    # Bootstrap identity
    # ------------------------------------------------------------------

    superadmin_email: str = "test@yopmail.com"
    superadmin_password: str = ""
    superadmin_name: str = "Super Admin"

    # ------------------------------------------------------------------
    # Localization
    # ------------------------------------------------------------------

    default_locale: str = "en"

    # ------------------------------------------------------------------
    # SMTP (optional -- empty host means verification mail is skipped)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 465
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
        Production mode: refuse to start without SECRET_KEY.
        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
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
    def validate_superadmin_password(self) -> "Settings":
        """Fall back to the development bootstrap password only in DEBUG mode."""
        if not self.superadmin_password:
            if self.debug:
                self.superadmin_password = _DEV_SUPERADMIN_PASSWORD
                logger.warning("Using the development SUPERADMIN_PASSWORD for %s.", self.superadmin_email)
            else:
                raise ValueError("SUPERADMIN_PASSWORD is required in production mode.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
