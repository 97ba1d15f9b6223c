"""
proofmix Centralized Configuration

Provides validated, type-safe access to all environment variables using Pydantic Settings.
Settings are validated on first access with helpful error messages.

Usage:
    from proofmix.core.config import get_settings

    settings = get_settings()
    if settings.log_level == "DEBUG":
        ...

Data Paths:
    All runtime data is stored below {instance_root}:
    - cache/proofmix.db: Event store (events, campaigns, playlists, widget configs)
    - userdata/profiles/: User-defined business profiles (YAML)

Environment Variables:
    PROOFMIX_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    PROOFMIX_DEBUG: Legacy debug flag (enables DEBUG level if set)
    PROOFMIX_LOG_JSON: Output logs as JSON
    PROOFMIX_INSTANCE_ROOT: Override the instance root directory
    PROOFMIX_DB_PATH: Override the event store location
    PROOFMIX_POOL_CACHE_TTL_SECONDS: Event pool cache lifetime
    PROOFMIX_SESSION_TTL_SECONDS: Visitor session lifetime
    PROOFMIX_RECENT_WINDOW: Anti-repetition window (events)
    PROOFMIX_GRADUATION_INTERVAL_SECONDS: Graduation scheduler period
    PROOFMIX_GRADUATION_CONCURRENCY: Widgets processed in parallel
    PROOFMIX_LEASE_TTL_SECONDS: Per-widget graduation lease lifetime
    PROOFMIX_ANALYTICS_URL: Analytics aggregator base URL (optional)
    PROOFMIX_ANALYTICS_TOKEN: Bearer token for the aggregator
    PROOFMIX_NO_RETRY: Disable HTTP retry logic
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_project_root() -> Path | None:
    """
    Find the project root by searching upward for pyproject.toml.

    Returns:
        Directory containing pyproject.toml, or None if not found
    """
    current = Path(__file__).resolve().parent

    for _ in range(10):  # Limit search depth
        if (current / "pyproject.toml").exists():
            return current
        parent = current.parent
        if parent == current:
            break  # Reached filesystem root
        current = parent

    return None


def _find_env_file() -> Path | None:
    """Return the project .env file if one exists next to pyproject.toml."""
    root = _find_project_root()
    if root is None:
        return None
    env_file = root / ".env"
    return env_file if env_file.exists() else None


def _find_instance_root() -> Path:
    """
    Find the instance root directory.

    Resolution order:
    1. PROOFMIX_INSTANCE_ROOT environment variable (explicit override)
    2. Project root (directory containing pyproject.toml)
    3. Current working directory (fallback)
    """
    override = os.environ.get("PROOFMIX_INSTANCE_ROOT")
    if override:
        return Path(override)

    return _find_project_root() or Path.cwd()


# Resolve paths at module load time
_ENV_FILE = _find_env_file()
_INSTANCE_ROOT = _find_instance_root()


class ProofmixSettings(BaseSettings):
    """
    proofmix configuration settings with validation.

    Environment variables are automatically loaded with the PROOFMIX_ prefix.
    All settings have bounded defaults so the engine never needs to refuse
    work because of missing configuration.
    """

    model_config = SettingsConfigDict(
        env_prefix="PROOFMIX_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    # =========================================================================
    # Logging Configuration
    # =========================================================================

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Log level for proofmix components",
    )

    debug: bool = Field(
        default=False,
        description="Legacy debug flag (enables DEBUG level if set)",
    )

    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format for machine parsing",
    )

    # =========================================================================
    # Data Paths
    # =========================================================================

    instance_root: Path = Field(
        default=_INSTANCE_ROOT,
        description="Instance root directory (project root containing pyproject.toml)",
    )

    db_path_override: Optional[Path] = Field(
        default=None,
        validation_alias="PROOFMIX_DB_PATH",
        description="Explicit event store path",
    )

    profile_dir_override: Optional[Path] = Field(
        default=None,
        validation_alias="PROOFMIX_PROFILE_DIR",
        description="Explicit directory for user business profiles",
    )

    # =========================================================================
    # Admission Path
    # =========================================================================

    pool_cache_ttl_seconds: float = Field(
        default=60.0,
        ge=0,
        description="How long a fetched event pool snapshot is served from memory",
    )

    session_ttl_seconds: float = Field(
        default=1800.0,
        gt=0,
        description="Visitor session lifetime used when a session is created",
    )

    recent_window: int = Field(
        default=5,
        ge=0,
        description="Number of recently shown events excluded from selection",
    )

    # =========================================================================
    # Graduation Control Loop
    # =========================================================================

    graduation_interval_seconds: int = Field(
        default=86400,
        gt=0,
        description="Period of the graduation scheduler",
    )

    graduation_concurrency: int = Field(
        default=4,
        ge=1,
        description="Maximum widgets evaluated in parallel",
    )

    lease_ttl_seconds: int = Field(
        default=300,
        gt=0,
        description="Lifetime of a per-widget graduation lease",
    )

    analytics_window_days: int = Field(
        default=7,
        gt=0,
        description="Trailing window for graduation counts",
    )

    health_window_days: int = Field(
        default=30,
        gt=0,
        description="Trailing window for lifecycle health",
    )

    default_business_type: str = Field(
        default="saas",
        description="Business profile used when a widget declares none",
    )

    # =========================================================================
    # Analytics Aggregator
    # =========================================================================

    analytics_url: Optional[str] = Field(
        default=None,
        description="Analytics aggregator base URL (store counters are used when unset)",
    )

    analytics_token: Optional[str] = Field(
        default=None,
        description="Bearer token for the analytics aggregator",
    )

    analytics_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Request timeout for the analytics aggregator",
    )

    no_retry: bool = Field(
        default=False,
        description="Disable HTTP retry logic (tenacity)",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str) -> str:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("default_business_type", mode="before")
    @classmethod
    def lowercase_business_type(cls, v: str) -> str:
        """Business types are matched case-insensitively."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def effective_log_level(self) -> str:
        """
        Get effective log level, respecting legacy PROOFMIX_DEBUG.

        Priority:
        1. Explicit PROOFMIX_LOG_LEVEL
        2. PROOFMIX_DEBUG=1 -> DEBUG
        3. Default: WARNING
        """
        if self.debug and self.log_level == "WARNING":
            return "DEBUG"
        return self.log_level

    @property
    def log_level_int(self) -> int:
        """Get effective log level as logging constant."""
        return getattr(logging, self.effective_log_level)

    @property
    def cache_dir(self) -> Path:
        """Path to cache directory."""
        return self.instance_root / "cache"

    @property
    def db_path(self) -> Path:
        """Path to the event store database."""
        if self.db_path_override is not None:
            return self.db_path_override
        return self.cache_dir / "proofmix.db"

    @property
    def profile_dir(self) -> Path:
        """Directory holding user-defined business profiles."""
        if self.profile_dir_override is not None:
            return self.profile_dir_override
        return self.instance_root / "userdata" / "profiles"


# =============================================================================
# Singleton Accessor
# =============================================================================


@lru_cache(maxsize=1)
def get_settings() -> ProofmixSettings:
    """
    Get the singleton settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    The settings are validated at first access.
    """
    return ProofmixSettings()


def reset_settings() -> None:
    """
    Reset the settings cache (for testing).

    After calling this, the next get_settings() call will
    reload settings from environment variables.
    """
    get_settings.cache_clear()


# =============================================================================
# Convenience Functions
# =============================================================================


def is_debug_enabled() -> bool:
    """Check if debug logging is enabled."""
    return get_settings().effective_log_level == "DEBUG"


def is_json_logging() -> bool:
    """Check if JSON logging is enabled."""
    return get_settings().log_json


def is_retry_disabled() -> bool:
    """Check if retry logic is disabled via environment."""
    return get_settings().no_retry
