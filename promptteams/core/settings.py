"""Centralized settings for the Prompt Teams core.

Reads an optional YAML file and environment variables with sensible defaults.
Precedence: defaults < YAML file (PROMPTTEAMS_CONFIG) < env vars < overrides.
Never exposes secrets in repr or serialization.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


class ConfigError(Exception):
    """Configuration error with helpful message."""
    pass


def _int_env(key: str, default: int) -> int:
    """Parse an int env var with fallback."""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        return default


def _float_env(key: str, default: float) -> float:
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """Immutable core configuration. Safe to log: secrets are masked."""

    # ── Core ───────────────────────────────────────────────────────
    env: str = "dev"

    # ── Logging ────────────────────────────────────────────────────
    log_format: str = "text"
    log_level: str = "INFO"

    # ── Persistence ────────────────────────────────────────────────
    store_path: str = ""

    # ── Concurrency ────────────────────────────────────────────────
    conflict_max_attempts: int = 5
    conflict_backoff_base: float = 0.01
    retry_attempts: int = 3
    retry_backoff_base: float = 0.2

    # ── Invitations / mail ─────────────────────────────────────────
    invite_link_base: str = "http://localhost:5173/accept-invite"
    mailer_endpoint: str = ""
    mailer_api_key: str = ""
    mailer_timeout_s: float = 5.0
    mailer_retries: int = 2

    def __repr__(self) -> str:
        return (
            f"Settings(env={self.env!r}, log_format={self.log_format!r}, "
            f"log_level={self.log_level!r}, store_path={self.store_path!r}, "
            f"conflict_max_attempts={self.conflict_max_attempts}, "
            f"retry_attempts={self.retry_attempts}, "
            f"mailer_endpoint={self.mailer_endpoint!r}, "
            f"mailer_api_key={'***' if self.mailer_api_key else ''!r})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe dict with secrets masked."""
        return {
            "env": self.env,
            "log_format": self.log_format,
            "log_level": self.log_level,
            "store_path": self.store_path or "not set",
            "conflict_max_attempts": self.conflict_max_attempts,
            "conflict_backoff_base": self.conflict_backoff_base,
            "retry_attempts": self.retry_attempts,
            "retry_backoff_base": self.retry_backoff_base,
            "invite_link_base": self.invite_link_base,
            "mailer_endpoint": self.mailer_endpoint or "not set",
            "mailer_api_key": "configured" if self.mailer_api_key else "not set",
            "mailer_timeout_s": self.mailer_timeout_s,
            "mailer_retries": self.mailer_retries,
        }

    def validate(self) -> List[str]:
        """Return list of validation errors."""
        errors = []
        if self.log_format not in ("text", "json"):
            errors.append(f"log_format must be 'text' or 'json', got {self.log_format}")
        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"log_level is not a logging level: {self.log_level}")
        if self.conflict_max_attempts < 1:
            errors.append(
                f"conflict_max_attempts must be >= 1, got {self.conflict_max_attempts}"
            )
        if self.retry_attempts < 1:
            errors.append(f"retry_attempts must be >= 1, got {self.retry_attempts}")
        if self.conflict_backoff_base < 0 or self.retry_backoff_base < 0:
            errors.append("backoff bases must be >= 0")
        if self.mailer_timeout_s <= 0:
            errors.append(f"mailer_timeout_s must be > 0, got {self.mailer_timeout_s}")
        if self.mailer_endpoint and not self.mailer_endpoint.startswith(("http://", "https://")):
            errors.append("mailer_endpoint must be an http(s) URL")
        return errors


def load_config_file(path: str) -> Dict[str, Any]:
    """Load a YAML settings file. Unknown keys are rejected."""
    p = Path(path)
    if not p.is_file():
        raise ConfigError(f"Config file not found: {path}")
    with open(p, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a mapping, got {type(data).__name__}")
    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys in {path}: {', '.join(unknown)}")
    return data


def load_settings(config_path: Optional[str] = None, **overrides: Any) -> Settings:
    """Load settings from file + environment with optional overrides.

    Args:
        config_path: YAML file; defaults to $PROMPTTEAMS_CONFIG when set
        **overrides: Field overrides applied last

    Returns:
        Settings instance
    """
    base = Settings()
    path = config_path or os.environ.get("PROMPTTEAMS_CONFIG")
    if path:
        base = Settings(**{**_raw_fields(base), **load_config_file(path)})

    settings = Settings(
        env=os.environ.get("PROMPTTEAMS_ENV", base.env),
        log_format=os.environ.get("PROMPTTEAMS_LOG_FORMAT", base.log_format),
        log_level=os.environ.get("PROMPTTEAMS_LOG_LEVEL", base.log_level),
        store_path=os.environ.get("PROMPTTEAMS_STORE_PATH", base.store_path),
        conflict_max_attempts=_int_env(
            "PROMPTTEAMS_CONFLICT_MAX_ATTEMPTS", base.conflict_max_attempts
        ),
        conflict_backoff_base=_float_env(
            "PROMPTTEAMS_CONFLICT_BACKOFF_BASE", base.conflict_backoff_base
        ),
        retry_attempts=_int_env("PROMPTTEAMS_RETRY_ATTEMPTS", base.retry_attempts),
        retry_backoff_base=_float_env("PROMPTTEAMS_RETRY_BACKOFF_BASE", base.retry_backoff_base),
        invite_link_base=os.environ.get("PROMPTTEAMS_INVITE_LINK_BASE", base.invite_link_base),
        mailer_endpoint=os.environ.get("PROMPTTEAMS_MAILER_ENDPOINT", base.mailer_endpoint),
        mailer_api_key=os.environ.get("PROMPTTEAMS_MAILER_API_KEY", base.mailer_api_key),
        mailer_timeout_s=_float_env("PROMPTTEAMS_MAILER_TIMEOUT_S", base.mailer_timeout_s),
        mailer_retries=_int_env("PROMPTTEAMS_MAILER_RETRIES", base.mailer_retries),
    )

    # Apply any additional overrides
    if overrides:
        current = _raw_fields(settings)
        current.update(overrides)
        settings = Settings(**current)

    return settings


def _raw_fields(settings: Settings) -> Dict[str, Any]:
    """Unmasked field values (to_dict masks secrets)."""
    return {f.name: getattr(settings, f.name) for f in fields(settings)}
