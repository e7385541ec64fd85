"""Configuration schema for post-sync config files.

Defines Pydantic models for the YAML config structure: named account
profiles, sync settings, and logging.  ``profile_fallbacks()`` flattens
the selected profile and the sync section into the fallback dict that
``config.load_config()`` consumes.

Usage:
    from post_sync.config_schema import build_config, profile_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=profile_fallbacks(unified, "work"))
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from .errors import ConfigError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class ProfileConfig(BaseModel):
    """One Official Account's credentials.

    All fields are optional so env vars can supply them at runtime.
    """

    app_id: str | None = Field(default=None, description="WeChat AppID")
    app_secret: str | None = Field(
        default=None, description="WeChat AppSecret"
    )
    api_base_url: str | None = Field(
        default=None,
        description="API base URL (use to route through a proxy)",
    )
    default_author: str | None = Field(
        default=None, description="Author used when a document sets none"
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Sync engine settings."""

    db_path: str | None = Field(
        default=None, description="Path to the sync database"
    )
    default_author: str | None = Field(default=None)
    default_digest: str | None = Field(default=None)
    cover_size: int = Field(
        default=360,
        ge=16,
        le=4096,
        description="Bounding box (pixels) for cover thumbnails",
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="HTTP timeout in seconds for API calls",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


class UnifiedConfig(BaseModel):
    """Top-level configuration.

    ``UnifiedConfig()`` (zero-config) is always valid; credentials then
    have to come from the environment.
    """

    default_profile: str | None = None
    profiles: dict[str, ProfileConfig] = Field(default_factory=dict)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the merged raw config dict.

    Anything absent gets defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def profile_fallbacks(
    unified: UnifiedConfig, profile_name: str | None = None
) -> dict:
    """Flatten a profile plus the ``sync`` section into fallback values.

    The profile is chosen as: *profile_name* > ``default_profile`` > the
    only profile when exactly one is defined > none.

    Args:
        unified: Parsed configuration.
        profile_name: Profile requested on the command line.

    Returns:
        Dict with only the non-None values, ready for ``load_config()``.

    Raises:
        ConfigError: If *profile_name* (or ``default_profile``) names a
            profile that is not defined.
    """
    name = profile_name or unified.default_profile
    if name is None and len(unified.profiles) == 1:
        name = next(iter(unified.profiles))

    fallbacks: dict = {
        k: v for k, v in unified.sync.model_dump().items() if v is not None
    }

    if name is None:
        return fallbacks

    profile = unified.profiles.get(name)
    if profile is None:
        known = ", ".join(sorted(unified.profiles)) or "none"
        raise ConfigError(
            f"Profile '{name}' not found in config (available: {known})"
        )

    logger.debug("Using config profile '%s'", name)
    fallbacks.update(
        {k: v for k, v in profile.model_dump().items() if v is not None}
    )
    return fallbacks
