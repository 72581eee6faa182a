"""
config/settings.py — Runtime settings contract for the fleet health checker.

Uses pydantic-settings to load, validate, and type-check the environment
knobs that sit outside the check document: built-in retry/timeout defaults,
the ssh client binary, HTTP client behaviour, logging and reporting.

Two usage modes:
  Production / CLI:
      cfg = load_settings()                 # reads from .env + os.environ
      cfg = load_settings("env/prod.env")   # override env file path

  Tests (isolated — no env file, no os.environ bleed):
      cfg = Settings(SSH_BINARY="/tmp/fake-ssh", LOG_LEVEL="DEBUG")
      # All values come exclusively from kwargs → clean, reproducible.
"""
from __future__ import annotations

import logging
import os
import re
from typing import Literal, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseSettings):
    # env_file=None disables dotenv reading, but env_settings (os.environ) is
    # still active in the default source chain. customise_sources returns ONLY
    # init_settings so Settings() reads purely from kwargs.
    # load_settings() is the explicit production entry point that reads both.
    model_config = SettingsConfigDict(
        env_file=None,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Only kwargs. load_settings() supplies env vars explicitly as kwargs.
        return (init_settings,)

    # -------------------------------------------------------------------------
    # Built-in check defaults (lowest layer under the document's "defaults")
    # -------------------------------------------------------------------------
    HEALTHCHECK_DEFAULT_TIMEOUT_SECONDS: float = 10.0
    HEALTHCHECK_DEFAULT_MAX_RETRIES: int = 3
    HEALTHCHECK_DEFAULT_INITIAL_BACKOFF_SECONDS: float = 1.0
    HEALTHCHECK_DEFAULT_BACKOFF_MULTIPLIER: float = 1.1
    HEALTHCHECK_DEFAULT_SSH_USERNAME: Optional[str] = "root"

    # -------------------------------------------------------------------------
    # Probes
    # -------------------------------------------------------------------------
    SSH_BINARY: str = "ssh"
    SSH_BATCH_MODE: bool = True
    HTTP_VERIFY_TLS: bool = True
    HTTP_FOLLOW_REDIRECTS: bool = True

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------
    LOG_LEVEL: LogLevel = "WARNING"
    REPORT_PATH: Optional[str] = None

    # -------------------------------------------------------------------------
    # Convenience properties
    # -------------------------------------------------------------------------

    @property
    def default_retry_policy(self) -> dict[str, float | int]:
        """Built-in retry policy in document form (camelCase keys)."""
        return {
            "maxRetries": self.HEALTHCHECK_DEFAULT_MAX_RETRIES,
            "initial": self.HEALTHCHECK_DEFAULT_INITIAL_BACKOFF_SECONDS,
            "multiplier": self.HEALTHCHECK_DEFAULT_BACKOFF_MULTIPLIER,
        }

    @property
    def log_level_number(self) -> int:
        return logging.getLevelName(self.LOG_LEVEL)

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalise_log_level(cls, v: str) -> str:
        """Accept 'debug ' as well as 'DEBUG'."""
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("SSH_BINARY", mode="before")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        """Strip trailing whitespace that GNU make leaves after include .env."""
        v = v.strip() if isinstance(v, str) else v
        if not v:
            raise ValueError("SSH_BINARY must be a non-empty command name or path")
        return v

    @field_validator("HEALTHCHECK_DEFAULT_SSH_USERNAME", "REPORT_PATH", mode="before")
    @classmethod
    def blank_is_none(cls, v: Optional[str]) -> Optional[str]:
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v

    @model_validator(mode="after")
    def validate_check_defaults(self) -> Settings:
        """Reject defaults that would make every check invalid at load time."""
        if self.HEALTHCHECK_DEFAULT_TIMEOUT_SECONDS <= 0:
            raise ValueError("HEALTHCHECK_DEFAULT_TIMEOUT_SECONDS must be > 0")
        if self.HEALTHCHECK_DEFAULT_MAX_RETRIES < 0:
            raise ValueError("HEALTHCHECK_DEFAULT_MAX_RETRIES must be >= 0")
        if self.HEALTHCHECK_DEFAULT_INITIAL_BACKOFF_SECONDS <= 0:
            raise ValueError("HEALTHCHECK_DEFAULT_INITIAL_BACKOFF_SECONDS must be > 0")
        if self.HEALTHCHECK_DEFAULT_BACKOFF_MULTIPLIER < 1.0:
            raise ValueError("HEALTHCHECK_DEFAULT_BACKOFF_MULTIPLIER must be >= 1.0")
        return self


def load_settings(env_file: str = ".env") -> Settings:
    """Load and validate settings from an env file + os.environ.

    Manually parses the env file and merges with os.environ (os.environ wins),
    then passes only known Settings fields as explicit kwargs. This is required
    because settings_customise_sources returns only init_settings — the
    pydantic-settings dotenv and env source chain is disabled so that
    Settings() is a pure validation contract (no implicit env reads).

    Raises:
        ValidationError: if any value has the wrong type or fails a validator.
    """
    file_vals: dict[str, str] = {}
    try:
        with open(env_file, encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                k, _, v = line.partition("=")
                k = k.strip()
                # Strip inline comments: "DEBUG   # DEBUG | INFO" → "DEBUG"
                v = re.sub(r"\s+#.*$", "", v.strip())
                if k:
                    file_vals[k] = v
    except FileNotFoundError:
        pass
    merged = {**file_vals, **os.environ}  # os.environ wins
    known = {k: v for k, v in merged.items() if k in Settings.model_fields}
    return Settings(**known)
