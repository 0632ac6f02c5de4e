"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Keybound happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. The
      instance is frozen, so concurrent request handlers can read it without
      any locking.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. database_url -> DATABASE_URL).

  @model_validator(mode="after"): builds operator_set, the read-only set of
      operator emails consulted by auth/roles.py on every role check.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger("keybound.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'keybound.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.

    OPERATORS accepts either a JSON list or a comma-separated string:
        OPERATORS='["root@example.com"]'
        OPERATORS=root@example.com,ops@example.com
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
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    operators: Annotated[list[str], NoDecode] = Field(default_factory=list)
    # Derived from operators in the validator below; never set directly.
    operator_set: frozenset[str] = frozenset()

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    cors_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost", "http://localhost:3000"]
    )
    login_rate_limit: str = "10/minute"
    register_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("operators", "cors_origins", mode="before")
    @classmethod
    def split_list(cls, value):
        """Accept a JSON list or a comma-separated string from the environment."""
        if isinstance(value, str):
            value = value.strip()
            if value.startswith("["):
                return json.loads(value)
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @model_validator(mode="after")
    def build_operator_set(self) -> "Settings":
        """Normalize operator emails once so role checks are a set lookup.

        Emails are compared lower-cased because the users table enforces
        email uniqueness case-insensitively.
        """
        operator_set = frozenset(op.strip().lower() for op in self.operators if op.strip())
        # frozen=True blocks normal assignment; this runs once during construction.
        object.__setattr__(self, "operator_set", operator_set)
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    settings = Settings()
    logger.info("Settings loaded (operators=%d, debug=%s)", len(settings.operator_set), settings.debug)
    return settings
