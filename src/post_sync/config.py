"""Runtime configuration for post-sync.

Reads WeChat credentials and sync settings from CLI args, environment
variables, .env files, and YAML config profile fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML profile > Built-in defaults

Environment variables:
    WECHAT_APP_ID: Official Account AppID (required)
    WECHAT_APP_SECRET: Official Account AppSecret (required)
    WECHAT_API_BASE_URL: API base URL (optional, default: https://api.weixin.qq.com)
    POST_SYNC_DB_PATH: Sync database path (optional, default: ~/.post-sync/db.sqlite)
    POST_SYNC_AUTHOR: Default article author (optional)
    POST_SYNC_DIGEST: Default article digest (optional)
    POST_SYNC_DEBUG: Enable debug logging (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.weixin.qq.com"


def default_work_dir() -> Path:
    """Return ``~/.post-sync``, the home of the database and global config."""
    return Path.home() / ".post-sync"


@dataclass
class Config:
    app_id: str
    app_secret: str
    api_base_url: str = DEFAULT_API_BASE_URL
    db_path: str = ""
    default_author: str | None = None
    default_digest: str | None = None
    cover_size: int = 360
    request_timeout: float = 30.0
    debug: bool = False

    def __post_init__(self) -> None:
        if not self.db_path:
            self.db_path = str(default_work_dir() / "db.sqlite")


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ConfigError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ConfigError: If the API URL is malformed or credentials are empty.
    """
    config.api_base_url = config.api_base_url.strip()

    if not config.api_base_url.startswith(("http://", "https://")):
        raise ConfigError(
            f"Invalid API base URL '{config.api_base_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.api_base_url)
    if not parsed.hostname:
        raise ConfigError(
            f"Invalid API base URL '{config.api_base_url}': URL must include a hostname"
        )

    config.api_base_url = config.api_base_url.removesuffix("/")

    if not config.app_id.strip():
        raise ConfigError(
            "WeChat AppID cannot be empty. Set WECHAT_APP_ID environment variable."
        )

    if not config.app_secret.strip():
        raise ConfigError(
            "WeChat AppSecret cannot be empty. Set WECHAT_APP_SECRET environment variable."
        )

    if not (16 <= config.cover_size <= 4096):
        raise ConfigError(
            f"Invalid cover size {config.cover_size}: must be between 16 and 4096 pixels"
        )


def load_config(
    app_id: str | None = None,
    app_secret: str | None = None,
    api_base_url: str | None = None,
    db_path: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        app_id: Override AppID.
        app_secret: Override AppSecret.
        api_base_url: Override API base URL.
        db_path: Override sync database path.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flat dict built from the selected YAML profile and
            the ``sync`` section.  Used when CLI arg and env var are unset.

    Returns:
        Validated Config instance.

    Raises:
        ConfigError: If AppID or AppSecret is missing after checking all
            sources, or a value is malformed.
    """
    fb = yaml_fallbacks or {}

    final_app_id = app_id or os.getenv("WECHAT_APP_ID") or fb.get("app_id")
    if not final_app_id:
        raise ConfigError(
            "WeChat AppID not found. Set WECHAT_APP_ID environment variable "
            "or add 'app_id' to a profile in config.yml."
        )

    final_secret = (
        app_secret or os.getenv("WECHAT_APP_SECRET") or fb.get("app_secret")
    )
    if not final_secret:
        raise ConfigError(
            "WeChat AppSecret not found. Set WECHAT_APP_SECRET environment variable "
            "or add 'app_secret' to a profile in config.yml."
        )

    final_url = (
        api_base_url
        or os.getenv("WECHAT_API_BASE_URL")
        or fb.get("api_base_url")
        or DEFAULT_API_BASE_URL
    )

    final_db_path = (
        db_path or os.getenv("POST_SYNC_DB_PATH") or fb.get("db_path") or ""
    )
    if final_db_path:
        final_db_path = str(Path(final_db_path).expanduser())

    final_author = os.getenv("POST_SYNC_AUTHOR") or fb.get("default_author")
    final_digest = os.getenv("POST_SYNC_DIGEST") or fb.get("default_digest")

    if debug:
        final_debug = True
    else:
        env_debug = os.getenv("POST_SYNC_DEBUG")
        if env_debug is not None:
            final_debug = env_debug.lower() in ("true", "1", "yes", "on")
        else:
            final_debug = bool(fb.get("debug", False))

    config = Config(
        app_id=final_app_id.strip(),
        app_secret=final_secret.strip(),
        api_base_url=final_url,
        db_path=final_db_path,
        default_author=final_author,
        default_digest=final_digest,
        cover_size=int(fb.get("cover_size", 360)),
        request_timeout=float(fb.get("request_timeout", 30.0)),
        debug=final_debug,
    )

    validate_config(config)

    return config
