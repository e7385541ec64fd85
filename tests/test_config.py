"""Tests for post_sync.config: env-var config loading and validation.

NOT to be confused with test_config_loader.py (hierarchical YAML config)
or test_config_schema.py (Pydantic models).  This covers validate_config()
and load_config() precedence.
"""

from pathlib import Path

import pytest

from post_sync.config import (
    DEFAULT_API_BASE_URL,
    Config,
    load_config,
    validate_config,
)
from post_sync.errors import ConfigError

_ENV_VARS = (
    "WECHAT_APP_ID",
    "WECHAT_APP_SECRET",
    "WECHAT_API_BASE_URL",
    "POST_SYNC_DB_PATH",
    "POST_SYNC_AUTHOR",
    "POST_SYNC_DIGEST",
    "POST_SYNC_DEBUG",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


# -------------------------------------------------------------------------
# validate_config()
# -------------------------------------------------------------------------


class TestValidateConfig:
    """Tests for validate_config(): URL format and credential checks."""

    def test_valid_config(self):
        validate_config(Config(app_id="wx1", app_secret="s"))

    def test_http_url_valid(self):
        validate_config(
            Config(app_id="wx1", app_secret="s", api_base_url="http://localhost:8080")
        )

    def test_invalid_url_no_scheme(self):
        config = Config(app_id="wx1", app_secret="s", api_base_url="example.com")
        with pytest.raises(ValueError, match="must start with http:// or https://"):
            validate_config(config)

    def test_invalid_url_no_host(self):
        config = Config(app_id="wx1", app_secret="s", api_base_url="https://")
        with pytest.raises(ConfigError, match="hostname"):
            validate_config(config)

    def test_trailing_slash_stripped(self):
        config = Config(
            app_id="wx1", app_secret="s", api_base_url=" https://proxy.local/ "
        )
        validate_config(config)
        assert config.api_base_url == "https://proxy.local"

    def test_empty_app_id(self):
        with pytest.raises(ConfigError, match="AppID cannot be empty"):
            validate_config(Config(app_id="  ", app_secret="s"))

    def test_empty_secret(self):
        with pytest.raises(ConfigError, match="AppSecret cannot be empty"):
            validate_config(Config(app_id="wx1", app_secret=""))

    @pytest.mark.parametrize("size", [8, 5000])
    def test_cover_size_bounds(self, size):
        with pytest.raises(ConfigError, match="cover size"):
            validate_config(Config(app_id="wx1", app_secret="s", cover_size=size))

    def test_default_db_path_under_home(self, tmp_path):
        config = Config(app_id="wx1", app_secret="s")
        assert config.db_path == str(tmp_path / "home" / ".post-sync" / "db.sqlite")


# -------------------------------------------------------------------------
# load_config()
# -------------------------------------------------------------------------


class TestLoadConfig:
    """Precedence: CLI args > env vars > YAML fallbacks > defaults."""

    def test_missing_app_id(self):
        with pytest.raises(ConfigError, match="AppID not found"):
            load_config()

    def test_missing_secret(self, monkeypatch):
        monkeypatch.setenv("WECHAT_APP_ID", "wx_env")
        with pytest.raises(ConfigError, match="AppSecret not found"):
            load_config()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("WECHAT_APP_ID", "wx_env")
        monkeypatch.setenv("WECHAT_APP_SECRET", "secret_env")

        config = load_config()

        assert config.app_id == "wx_env"
        assert config.app_secret == "secret_env"
        assert config.api_base_url == DEFAULT_API_BASE_URL
        assert config.debug is False

    def test_args_beat_env(self, monkeypatch):
        monkeypatch.setenv("WECHAT_APP_ID", "wx_env")
        monkeypatch.setenv("WECHAT_APP_SECRET", "secret_env")

        config = load_config(app_id="wx_arg", app_secret="secret_arg")

        assert config.app_id == "wx_arg"
        assert config.app_secret == "secret_arg"

    def test_env_beats_yaml(self, monkeypatch):
        monkeypatch.setenv("WECHAT_APP_ID", "wx_env")
        monkeypatch.setenv("POST_SYNC_AUTHOR", "Env Author")

        config = load_config(
            yaml_fallbacks={
                "app_id": "wx_yaml",
                "app_secret": "secret_yaml",
                "default_author": "Yaml Author",
            }
        )

        assert config.app_id == "wx_env"
        assert config.app_secret == "secret_yaml"
        assert config.default_author == "Env Author"

    def test_yaml_fallbacks(self, tmp_path):
        config = load_config(
            yaml_fallbacks={
                "app_id": "wx_yaml",
                "app_secret": "secret_yaml",
                "api_base_url": "https://proxy.example.com/",
                "db_path": "~/sync/db.sqlite",
                "default_digest": "Digest",
                "cover_size": 480,
                "request_timeout": 10,
                "debug": True,
            }
        )

        assert config.api_base_url == "https://proxy.example.com"
        assert config.db_path == str(tmp_path / "home" / "sync" / "db.sqlite")
        assert config.default_digest == "Digest"
        assert config.cover_size == 480
        assert config.request_timeout == 10.0
        assert config.debug is True

    def test_credentials_are_stripped(self):
        config = load_config(app_id=" wx1 ", app_secret=" s \n")
        assert config.app_id == "wx1"
        assert config.app_secret == "s"

    @pytest.mark.parametrize(
        "value, expected",
        [("true", True), ("1", True), ("ON", True), ("false", False), ("0", False)],
    )
    def test_debug_env(self, monkeypatch, value, expected):
        monkeypatch.setenv("POST_SYNC_DEBUG", value)
        config = load_config(
            app_id="wx1", app_secret="s", yaml_fallbacks={"debug": not expected}
        )
        assert config.debug is expected

    def test_debug_flag_wins(self, monkeypatch):
        monkeypatch.setenv("POST_SYNC_DEBUG", "false")
        assert load_config(app_id="wx1", app_secret="s", debug=True).debug is True

    def test_db_path_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("POST_SYNC_DB_PATH", str(tmp_path / "x.sqlite"))
        config = load_config(app_id="wx1", app_secret="s")
        assert Path(config.db_path) == tmp_path / "x.sqlite"
