"""
core/config.py -- Portal settings (pydantic-settings).

The only place the environment is read. Every field maps to an upper-case
environment variable of the same name (database_url -> DATABASE_URL) and may
also come from a .env file in the working directory. Everything else calls
get_settings(), which builds Settings once per process.

Security notes:
  [S1] secure_cookies defaults to True. The access token cookie must only travel
       over HTTPS in production. Local development over plain HTTP sets
       SECURE_COOKIES=false explicitly.

  [S2] bcrypt_rounds below 4 is rejected by bcrypt itself; we reject it at
       startup instead so a typo in .env fails loudly rather than on first login.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
db/, or services/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("portal.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'portal.db'}"

_ONE_HOUR = 60 * 60
_ONE_WEEK = 7 * 24 * _ONE_HOUR
_ONE_YEAR = 365 * 24 * _ONE_HOUR


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

    # ------------------------------------------------------------------
    # Persistent store
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL
    db_echo: bool = False
    # Bounded pool: the only concurrency-limiting primitive in the process.
    db_pool_size: int = 20
    db_max_overflow: int = 0
    # Fail fast rather than queue indefinitely when the pool is exhausted.
    db_pool_timeout_seconds: float = 2.0
    # Connections idle longer than this are replaced on next checkout.
    db_pool_recycle_seconds: int = 10

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    secure_cookies: bool = True  # [S1]
    cookie_name: str = "access_token"
    bcrypt_rounds: int = 12
    min_password_length: int = 8
    # When False, every token failure reaches the caller as the same message.
    # The precise reason (expired / revoked manually / revoked automatically)
    # is always logged either way.
    expose_token_state_messages: bool = False

    # ------------------------------------------------------------------
    # Token policy
    # ------------------------------------------------------------------

    max_token_expiry_seconds: int = _ONE_YEAR
    max_tokens_at_a_time_limit: int = 10

    # ------------------------------------------------------------------
    # Account creation codes
    # ------------------------------------------------------------------

    # Default expiry granted to accounts created by a user-issued code when the
    # issuer does not pick one.
    account_default_token_expiry_seconds: int = _ONE_WEEK
    account_creation_code_length: int = 6
    account_creation_code_max_lifetime_seconds: int = _ONE_YEAR
    account_creation_code_max_title_length: int = 20
    bootstrap_code_expiry_minutes: int = 5
    bootstrap_token_expiry_seconds: int = _ONE_HOUR

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    trusted_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("bcrypt_rounds")
    @classmethod
    def validate_bcrypt_rounds(cls, value: int) -> int:
        """Reject work factors bcrypt would refuse at hash time [S2]."""
        if not 4 <= value <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        return value

    @field_validator("account_creation_code_length")
    @classmethod
    def validate_code_length(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("ACCOUNT_CREATION_CODE_LENGTH must be a positive number.")
        return value


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings, built on first call.

    Tests that need different values either set the environment before the
    first call (tests/conftest.py) or monkeypatch attributes on the instance.
    """
    settings = Settings()
    if settings.debug and settings.secure_cookies:
        logger.warning("DEBUG is on but SECURE_COOKIES is true; cookies will not be sent over plain HTTP.")
    return settings
