"""Unit tests for configuration resolution."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from buildcache.core.config import CacheConfig, ConfigResolver, RuntimeEnv, Workspace
from buildcache.core.errors import ConfigError


@pytest.fixture()
def no_files(tmp_path: Path) -> dict:
    return {
        "user_config_path": tmp_path / "user.yaml",
        "system_config_path": tmp_path / "system.yaml",
    }


def _write_yaml(path: Path, data: dict) -> Path:
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestConfigResolver:
    """Tests for ConfigResolver priority."""

    def test_default_value(self, no_files):
        resolver = ConfigResolver(environ={}, **no_files)
        assert resolver.resolve("logging.level") == ("normal", "default")

    def test_system_overrides_default(self, no_files):
        _write_yaml(no_files["system_config_path"], {"logging": {"level": "debug"}})
        resolver = ConfigResolver(environ={}, **no_files)
        assert resolver.resolve("logging.level") == ("debug", "system_config")

    def test_user_overrides_system(self, no_files):
        _write_yaml(no_files["system_config_path"], {"logging": {"level": "debug"}})
        _write_yaml(no_files["user_config_path"], {"logging": {"level": "quiet"}})
        resolver = ConfigResolver(environ={}, **no_files)
        assert resolver.resolve("logging.level") == ("quiet", "user_config")

    def test_env_overrides_config_files(self, no_files):
        _write_yaml(no_files["user_config_path"], {"cache": {"key": "from-file"}})
        resolver = ConfigResolver(environ={"BUILDCACHE_CACHE_KEY": "from-env"}, **no_files)
        assert resolver.resolve("cache.key") == ("from-env", "env")

    def test_cli_overrides_everything(self, no_files):
        resolver = ConfigResolver(
            cli_args={"cache": {"key": "from-cli"}},
            environ={"BUILDCACHE_CACHE_KEY": "from-env"},
            **no_files,
        )
        assert resolver.resolve("cache.key") == ("from-cli", "cli")

    def test_unknown_key(self, no_files):
        resolver = ConfigResolver(environ={}, **no_files)
        with pytest.raises(ConfigError):
            resolver.resolve("cache.nope")

    def test_broken_yaml_is_a_config_error(self, no_files):
        no_files["user_config_path"].write_text("cache: [unclosed", encoding="utf-8")
        resolver = ConfigResolver(environ={}, **no_files)
        with pytest.raises(ConfigError, match="Failed to load config"):
            resolver.resolve("cache.key")

    def test_bool_from_string(self, no_files):
        resolver = ConfigResolver(environ={"BUILDCACHE_CACHE_ON_FAILURE": "True"}, **no_files)
        assert resolver.resolve_bool("cache.on_failure") is True

    def test_bad_bool(self, no_files):
        resolver = ConfigResolver(environ={"BUILDCACHE_CACHE_ON_FAILURE": "yes"}, **no_files)
        with pytest.raises(ConfigError):
            resolver.resolve_bool("cache.on_failure")

    def test_list_from_multiline_string(self, no_files):
        resolver = ConfigResolver(environ={"BUILDCACHE_CACHE_PATHS": "target\n\n  ~/.cargo/registry \n"}, **no_files)
        assert resolver.resolve_list("cache.paths") == ["target", "~/.cargo/registry"]

    def test_logging_level_is_validated(self, no_files):
        resolver = ConfigResolver(cli_args={"logging": {"level": "loud"}}, environ={}, **no_files)
        with pytest.raises(ConfigError, match="Allowed values"):
            resolver.resolve_logging_level()

    @pytest.mark.parametrize("bits", ["9", "31"])
    def test_window_bits_range(self, no_files, bits):
        resolver = ConfigResolver(environ={"BUILDCACHE_COMPRESSION_WINDOW_BITS": bits}, **no_files)
        with pytest.raises(ConfigError):
            resolver.resolve_window_bits()

    def test_window_bits_default(self, no_files):
        resolver = ConfigResolver(environ={}, **no_files)
        assert resolver.resolve_window_bits() == 30


class TestRuntimeEnv:
    def test_from_environ(self, tmp_path):
        env = RuntimeEnv.from_environ(
            {"GITHUB_WORKSPACE": str(tmp_path), "GITHUB_SERVER_URL": "https://ghe.example.com"},
            platform="win32",
        )
        assert env.workspace == tmp_path
        assert env.is_windows
        assert not env.is_macos
        assert env.is_ghes

    def test_defaults(self, tmp_path):
        env = RuntimeEnv.from_environ({}, platform="darwin", cwd=tmp_path)
        assert env.workspace == tmp_path
        assert env.server_url == "https://github.com"
        assert env.is_macos
        assert not env.is_ghes
        assert env.get("MISSING", "x") == "x"


def test_workspace_parse(tmp_path):
    ws = Workspace.parse("crates/app -> out", tmp_path)
    assert ws.root == tmp_path / "crates/app"
    assert ws.target == tmp_path / "crates/app" / "out"

    default = Workspace.parse(".", tmp_path)
    assert default.target == tmp_path / "." / "target"


class TestCacheConfig:
    def test_missing_key(self, no_files, make_env):
        resolver = ConfigResolver(environ={}, **no_files)
        with pytest.raises(ConfigError, match="Missing cache key"):
            CacheConfig.new(resolver, make_env())

    def test_paths_default_to_workspace_targets(self, no_files, make_env, workspace):
        resolver = ConfigResolver(
            cli_args={"cache": {"key": "k", "workspaces": ["a -> target", "b"]}},
            environ={},
            **no_files,
        )
        config = CacheConfig.new(resolver, make_env())
        assert config.cache_paths == [str(workspace / "a" / "target"), str(workspace / "b" / "target")]
        assert config.restore_keys == []

    def test_explicit_paths_and_restore_key(self, no_files, make_env):
        resolver = ConfigResolver(
            cli_args={"cache": {"key": "v1-abc", "restore_key": "v1-", "paths": "target\nCargo.lock"}},
            environ={},
            **no_files,
        )
        config = CacheConfig.new(resolver, make_env())
        assert config.cache_paths == ["target", "Cargo.lock"]
        assert config.restore_keys == ["v1-"]

    def test_state_round_trip(self, tmp_path):
        config = CacheConfig(
            cache_key="k",
            restore_key="",
            cache_paths=["target"],
            workspaces=[Workspace(root=tmp_path, target=tmp_path / "target", packages=("app",))],
            cache_directory=tmp_path / "cache",
            require_full_match=True,
        )
        assert CacheConfig.from_json(config.to_json()) == config

    @pytest.mark.parametrize("text", ["not json", "{}", '{"cache_key": "k", "cache_paths": 5}'])
    def test_malformed_state(self, text):
        with pytest.raises(ConfigError, match="malformed"):
            CacheConfig.from_json(text)

    def test_summary_lines(self, tmp_path, make_env):
        config = CacheConfig(
            cache_key="k",
            restore_key="",
            cache_paths=["target"],
            workspaces=[],
            cache_directory=tmp_path,
        )
        lines = config.summary_lines(make_env())
        assert lines[0] == "Cache key: k"
        assert "Restore key: <none>" in lines
        assert lines[-1] == "GitHub Enterprise Server: false"
