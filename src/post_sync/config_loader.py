"""
Config file discovery and loading for post-sync.

Finds YAML config files by convention, merges them with "project wins"
semantics, and interpolates ``${VAR}`` references from the environment.

Usage:
    from post_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

from .config import default_work_dir

logger = logging.getLogger(__name__)

# Matches ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` patterns with env values.

    * ``${VAR}`` becomes the env value, or ``""`` when unset.
    * ``${VAR:-default}`` uses *default* when VAR is unset or empty.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


def discover_config_files() -> list[Path]:
    """Return existing config file paths in precedence order (highest first).

    Search order:
        1. ``POST_SYNC_CONFIG`` env var (explicit single path)
        2. ``.post-sync/config.yml`` in CWD (project-level)
        3. ``~/.post-sync/config.yml`` (global)

    Only paths that exist on disk are returned.
    """
    candidates: list[Path] = []

    env_path = os.environ.get("POST_SYNC_CONFIG")
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    candidates.append(Path.cwd() / ".post-sync" / "config.yml")
    candidates.append(default_work_dir() / "config.yml")

    seen: set[Path] = set()
    found: list[Path] = []
    for path in candidates:
        if path in seen or not path.exists():
            continue
        seen.add(path)
        found.append(path)
    return found


_STARTER_CONFIG = """\
# post-sync configuration
#
# Credentials can also be set via environment variables:
#   WECHAT_APP_ID, WECHAT_APP_SECRET, WECHAT_API_BASE_URL
#
# default_profile: main
#
# profiles:
#   main:
#     app_id: ${WECHAT_APP_ID}
#     app_secret: ${WECHAT_APP_SECRET}
#     api_base_url: https://api.weixin.qq.com
#     default_author: Editor
#
# sync:
#   db_path: ~/.post-sync/db.sqlite
#   default_digest: null
#   cover_size: 360
#   request_timeout: 30
#
# logging:
#   level: INFO
#   file: null
"""


def ensure_config(target: Path | None = None) -> Path:
    """Ensure a config file exists, writing a commented starter if needed.

    Args:
        target: Explicit path to create.  Defaults to
            ``~/.post-sync/config.yml``.

    Returns:
        Path to the config file (existing or newly created).
    """
    existing = discover_config_files()
    if existing and target is None:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = target or default_work_dir() / "config.yml"
    if config_path.exists():
        return config_path

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge all discovered config files.

    Files are loaded from lowest precedence to highest; each file's
    top-level keys replace those from earlier files.  Env var
    interpolation runs after the merge.

    Returns an empty dict when no config files exist (zero-config).
    """
    paths = discover_config_files()

    if not paths:
        logger.debug("No config files found, using zero-config defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            with open(path, encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)
