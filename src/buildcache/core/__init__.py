"""Ambient core: configuration, errors and logging."""

from buildcache.core.config import CacheConfig, ConfigResolver, RuntimeEnv, Workspace
from buildcache.core.errors import (
    BuildCacheError,
    CacheServiceError,
    ConfigError,
    ProcessError,
    ToolNotFoundError,
)
from buildcache.core.logging import VerbosityLevel, get_logger, set_colors, set_verbosity

__all__ = [
    "CacheConfig",
    "ConfigResolver",
    "RuntimeEnv",
    "Workspace",
    "BuildCacheError",
    "CacheServiceError",
    "ConfigError",
    "ProcessError",
    "ToolNotFoundError",
    "VerbosityLevel",
    "get_logger",
    "set_colors",
    "set_verbosity",
]
