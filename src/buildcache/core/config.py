"""Configuration resolver and runtime environment.

Priority (highest to lowest):
1. CLI arguments (and action inputs forwarded by the CLI)
2. Environment variables (BUILDCACHE_*)
3. Config files (user > system)
4. Defaults

Nothing below the CLI layer reads ``os.environ`` directly; callers build a
:class:`RuntimeEnv` once and hand it to every component.
"""

from __future__ import annotations

import json
import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml

from buildcache.core.errors import ConfigError

ALLOWED_LOGGING_LEVELS = frozenset({"quiet", "normal", "verbose", "debug"})

MIN_WINDOW_BITS = 10
# 2^31 is the zstd maximum on 64-bit hosts; 32-bit runners top out at 2^30.
MAX_WINDOW_BITS = 30

STATE_CONFIG_KEY = "BUILDCACHE_CONFIG"


@dataclass(frozen=True)
class RuntimeEnv:
    """Snapshot of the ambient process state the core depends on."""

    platform: str
    workspace: Path
    server_url: str
    environ: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_environ(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        platform: str | None = None,
        cwd: Path | None = None,
    ) -> RuntimeEnv:
        env = dict(os.environ if environ is None else environ)
        workspace = env.get("GITHUB_WORKSPACE") or str(cwd or Path.cwd())
        return cls(
            platform=platform or sys.platform,
            workspace=Path(workspace),
            server_url=env.get("GITHUB_SERVER_URL") or "https://github.com",
            environ=env,
        )

    @property
    def is_windows(self) -> bool:
        return self.platform == "win32"

    @property
    def is_macos(self) -> bool:
        return self.platform == "darwin"

    @property
    def is_ghes(self) -> bool:
        host = urlparse(self.server_url).hostname or ""
        return host.upper() != "GITHUB.COM"

    def get(self, name: str, default: str = "") -> str:
        return self.environ.get(name, default)


class ConfigResolver:
    """Resolve configuration with strict priority.

    Example:
        resolver = ConfigResolver(cli_args={"cache": {"key": "v1-linux-abc"}})
        key, source = resolver.resolve("cache.key")
        # key = 'v1-linux-abc', source = 'cli'
    """

    def __init__(
        self,
        cli_args: dict[str, Any] | None = None,
        user_config_path: Path | None = None,
        system_config_path: Path | None = None,
        defaults: dict[str, Any] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.cli_args = cli_args or {}
        self.user_config_path = user_config_path or Path.home() / ".config/buildcache/config.yaml"
        self.system_config_path = system_config_path or Path("/etc/buildcache/config.yaml")
        self.defaults = defaults or self._default_config()
        self.environ = os.environ if environ is None else environ

        self._user_config: dict[str, Any] | None = None
        self._system_config: dict[str, Any] | None = None

    def resolve(self, key: str) -> tuple[Any, str]:
        """Resolve config value with priority.

        Args:
            key: Config key (dot notation: 'cache.key')

        Returns:
            (value, source) tuple

        Raises:
            ConfigError: If key not found in any source
        """
        value = self._get_nested(self.cli_args, key)
        if value is not None:
            return value, "cli"

        value = self._from_env(key)
        if value is not None:
            return value, "env"

        value = self._get_nested(self._get_user_config(), key)
        if value is not None:
            return value, "user_config"

        value = self._get_nested(self._get_system_config(), key)
        if value is not None:
            return value, "system_config"

        value = self._get_nested(self.defaults, key)
        if value is not None:
            return value, "default"

        raise ConfigError(f"Config key '{key}' not found in any source")

    def resolve_str(self, key: str) -> str:
        value, _src = self.resolve(key)
        if not isinstance(value, str):
            raise ConfigError(f"Config key '{key}' must be a string, got {type(value).__name__}")
        return value.strip()

    def resolve_bool(self, key: str) -> bool:
        value, _src = self.resolve(key)
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
            return value.strip().lower() == "true"
        raise ConfigError(f"Config key '{key}' must be a bool")

    def resolve_int(self, key: str) -> int:
        value, _src = self.resolve(key)
        if isinstance(value, bool):
            raise ConfigError(f"Config key '{key}' must be an int")
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        raise ConfigError(f"Config key '{key}' must be an int")

    def resolve_list(self, key: str) -> list[str]:
        """Resolve a list; strings are split on newlines (action input style)."""
        value, _src = self.resolve(key)
        if isinstance(value, str):
            return [line.strip() for line in value.splitlines() if line.strip()]
        if isinstance(value, list):
            return [str(v) for v in value]
        raise ConfigError(f"Config key '{key}' must be a list")

    def resolve_logging_level(self) -> str:
        level = self.resolve_str("logging.level").lower()
        if level not in ALLOWED_LOGGING_LEVELS:
            allowed = ", ".join(sorted(ALLOWED_LOGGING_LEVELS))
            raise ConfigError(f"Invalid 'logging.level': {level!r}. Allowed values: {allowed}")
        return level

    def resolve_window_bits(self) -> int:
        bits = self.resolve_int("compression.window_bits")
        if not MIN_WINDOW_BITS <= bits <= MAX_WINDOW_BITS:
            raise ConfigError(
                f"Invalid 'compression.window_bits': {bits}",
                f"Use a value between {MIN_WINDOW_BITS} and {MAX_WINDOW_BITS}",
            )
        return bits

    def _from_env(self, key: str) -> Any | None:
        """Environment variable format: BUILDCACHE_CACHE_KEY for 'cache.key'."""
        env_key = f"BUILDCACHE_{key.upper().replace('.', '_')}"
        return self.environ.get(env_key)

    def _get_user_config(self) -> dict[str, Any]:
        if self._user_config is None:
            self._user_config = self._load_yaml(self.user_config_path)
        return self._user_config

    def _get_system_config(self) -> dict[str, Any]:
        if self._system_config is None:
            self._system_config = self._load_yaml(self.system_config_path)
        return self._system_config

    def _load_yaml(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
                return data if isinstance(data, dict) else {}
        except Exception as e:
            raise ConfigError(f"Failed to load config from {path}: {e}") from e

    def _get_nested(self, data: dict[str, Any], key: str) -> Any | None:
        current: Any = data
        for part in key.split("."):
            if not isinstance(current, dict):
                return None
            current = current.get(part)
            if current is None:
                return None
        return current

    @staticmethod
    def _default_config() -> dict[str, Any]:
        return {
            "cache": {
                "key": "",
                "restore_key": "",
                "paths": [],
                "workspaces": [". -> target"],
                "directory": str(Path.home() / ".cache" / "buildcache"),
                "require_full_match": False,
                "on_failure": False,
            },
            "compression": {
                "long_distance_matching": False,
                "window_bits": MAX_WINDOW_BITS,
            },
            "logging": {
                "level": "normal",
                "color": True,
            },
        }


@dataclass(frozen=True)
class Workspace:
    """A build root and the output subtree pre-cleaned on partial hits."""

    root: Path
    target: Path
    packages: tuple[str, ...] = ()

    @classmethod
    def parse(cls, value: str, base: Path) -> Workspace:
        """Parse ``root -> target`` (target relative to root, default 'target')."""
        root_part, sep, target_part = value.partition("->")
        root = base / root_part.strip() if root_part.strip() else base
        target = target_part.strip() if sep and target_part.strip() else "target"
        return cls(root=root, target=root / target)


@dataclass
class CacheConfig:
    """Everything the restore and save steps need for one job."""

    cache_key: str
    restore_key: str
    cache_paths: list[str]
    workspaces: list[Workspace]
    cache_directory: Path
    require_full_match: bool = False
    cache_on_failure: bool = False

    @classmethod
    def new(cls, resolver: ConfigResolver, env: RuntimeEnv) -> CacheConfig:
        key = resolver.resolve_str("cache.key")
        if not key:
            raise ConfigError("Missing cache key", "Pass --key or set BUILDCACHE_CACHE_KEY")
        restore_key = resolver.resolve_str("cache.restore_key")

        workspaces = [Workspace.parse(w, env.workspace) for w in resolver.resolve_list("cache.workspaces")]
        paths = resolver.resolve_list("cache.paths")
        if not paths:
            paths = [str(ws.target) for ws in workspaces]

        return cls(
            cache_key=key,
            restore_key=restore_key,
            cache_paths=paths,
            workspaces=workspaces,
            cache_directory=Path(resolver.resolve_str("cache.directory")).expanduser(),
            require_full_match=resolver.resolve_bool("cache.require_full_match"),
            cache_on_failure=resolver.resolve_bool("cache.on_failure"),
        )

    @property
    def restore_keys(self) -> list[str]:
        return [self.restore_key] if self.restore_key else []

    def to_json(self) -> str:
        return json.dumps(
            {
                "cache_key": self.cache_key,
                "restore_key": self.restore_key,
                "cache_paths": self.cache_paths,
                "workspaces": [
                    {"root": str(w.root), "target": str(w.target), "packages": list(w.packages)}
                    for w in self.workspaces
                ],
                "cache_directory": str(self.cache_directory),
                "require_full_match": self.require_full_match,
                "cache_on_failure": self.cache_on_failure,
            },
            sort_keys=True,
        )

    @classmethod
    def from_json(cls, text: str) -> CacheConfig:
        try:
            data = json.loads(text)
            return cls(
                cache_key=str(data["cache_key"]),
                restore_key=str(data.get("restore_key", "")),
                cache_paths=[str(p) for p in data["cache_paths"]],
                workspaces=[
                    Workspace(
                        root=Path(w["root"]),
                        target=Path(w["target"]),
                        packages=tuple(w.get("packages", ())),
                    )
                    for w in data.get("workspaces", [])
                ],
                cache_directory=Path(data["cache_directory"]),
                require_full_match=bool(data.get("require_full_match", False)),
                cache_on_failure=bool(data.get("cache_on_failure", False)),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise ConfigError(f"Saved cache state is malformed: {e}") from e

    def summary_lines(self, env: RuntimeEnv) -> list[str]:
        lines = [
            f"Cache key: {self.cache_key}",
            f"Restore key: {self.restore_key or '<none>'}",
            "Cache paths:",
        ]
        lines.extend(f"    {p}" for p in self.cache_paths)
        lines.append("Workspaces:")
        lines.extend(f"    {w.root} ({w.target})" for w in self.workspaces)
        lines.append(f"Cache directory: {self.cache_directory}")
        lines.append(f"GitHub Enterprise Server: {str(env.is_ghes).lower()}")
        return lines
