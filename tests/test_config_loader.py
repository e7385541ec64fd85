"""Tests for post_sync.config_loader: hierarchical config loading."""

import textwrap

import pytest

from post_sync.config_loader import (
    _interpolate_recursive,
    discover_config_files,
    ensure_config,
    interpolate_env_vars,
    load_hierarchical_config,
)


@pytest.fixture
def isolated(monkeypatch, tmp_path):
    """Point HOME and CWD at empty temp dirs and clear POST_SYNC_CONFIG."""
    home = tmp_path / "home"
    project = tmp_path / "project"
    home.mkdir()
    project.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(project)
    monkeypatch.delenv("POST_SYNC_CONFIG", raising=False)
    return home, project


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("MY_APP", "wx123")
        assert interpolate_env_vars("${MY_APP}") == "wx123"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ}") == ""

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ:-fallback}") == "fallback"

    def test_empty_env_var_uses_default(self, monkeypatch):
        monkeypatch.setenv("EMPTY_VAR", "")
        assert interpolate_env_vars("${EMPTY_VAR:-fallback}") == "fallback"

    def test_literal_dollar_brace_no_closing(self):
        assert interpolate_env_vars("${NO_CLOSE") == "${NO_CLOSE"

    def test_nested_structures(self, monkeypatch):
        monkeypatch.setenv("SECRET_A", "s3cret")
        data = {"profiles": {"main": {"app_secret": "${SECRET_A}", "n": 5}}, "l": ["${SECRET_A}", 1]}
        assert _interpolate_recursive(data) == {
            "profiles": {"main": {"app_secret": "s3cret", "n": 5}},
            "l": ["s3cret", 1],
        }


# -------------------------------------------------------------------------
# Discovery and merge
# -------------------------------------------------------------------------


class TestDiscovery:
    def test_nothing_found(self, isolated):
        assert discover_config_files() == []
        assert load_hierarchical_config() == {}

    def test_order_env_project_global(self, isolated, monkeypatch, tmp_path):
        home, project = isolated
        global_cfg = _write(home / ".post-sync" / "config.yml", "a: 1\n")
        project_cfg = _write(project / ".post-sync" / "config.yml", "a: 2\n")
        explicit = _write(tmp_path / "explicit.yml", "a: 3\n")
        monkeypatch.setenv("POST_SYNC_CONFIG", str(explicit))

        found = discover_config_files()

        assert [p.resolve() for p in found] == [
            explicit.resolve(),
            project_cfg.resolve(),
            global_cfg.resolve(),
        ]

    def test_project_wins_per_top_level_key(self, isolated):
        home, project = isolated
        _write(
            home / ".post-sync" / "config.yml",
            """\
            default_profile: main
            sync:
              cover_size: 500
            """,
        )
        _write(
            project / ".post-sync" / "config.yml",
            """\
            sync:
              db_path: ./db.sqlite
            """,
        )

        merged = load_hierarchical_config()

        assert merged["default_profile"] == "main"
        assert merged["sync"] == {"db_path": "./db.sqlite"}

    def test_interpolation_after_merge(self, isolated, monkeypatch):
        home, _ = isolated
        monkeypatch.setenv("WX_SECRET_TEST", "abc")
        _write(
            home / ".post-sync" / "config.yml",
            """\
            profiles:
              main:
                app_secret: ${WX_SECRET_TEST}
            """,
        )

        merged = load_hierarchical_config()

        assert merged["profiles"]["main"]["app_secret"] == "abc"

    def test_non_dict_root_skipped(self, isolated):
        home, _ = isolated
        _write(home / ".post-sync" / "config.yml", "- just\n- a list\n")
        assert load_hierarchical_config() == {}

    def test_invalid_yaml_raises(self, isolated):
        home, _ = isolated
        _write(home / ".post-sync" / "config.yml", "a: [unclosed\n")
        with pytest.raises(Exception):
            load_hierarchical_config()


class TestEnsureConfig:
    def test_creates_starter(self, isolated):
        home, _ = isolated

        path = ensure_config()

        assert path == home / ".post-sync" / "config.yml"
        assert "profiles:" in path.read_text(encoding="utf-8")
        # Starter is fully commented out, so it loads as zero-config
        assert load_hierarchical_config() == {}

    def test_existing_config_returned(self, isolated):
        home, _ = isolated
        existing = _write(home / ".post-sync" / "config.yml", "a: 1\n")

        assert ensure_config() == existing
        assert existing.read_text(encoding="utf-8") == "a: 1\n"

    def test_explicit_target(self, isolated, tmp_path):
        target = tmp_path / "custom" / "config.yml"

        assert ensure_config(target) == target
        assert target.exists()

    def test_explicit_target_not_overwritten(self, isolated, tmp_path):
        target = _write(tmp_path / "mine.yml", "keep: me\n")

        ensure_config(target)

        assert target.read_text(encoding="utf-8") == "keep: me\n"
