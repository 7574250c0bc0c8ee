"""Error handling with friendly messages."""

from __future__ import annotations


class BuildCacheError(Exception):
    """Base exception for all buildcache errors."""

    def __init__(self, message: str, suggestion: str | None = None) -> None:
        self.message = message
        self.suggestion = suggestion
        super().__init__(message)

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.message}\nSuggestion: {self.suggestion}"
        return self.message


class ToolNotFoundError(BuildCacheError):
    """No usable archive tool on this runner."""

    def __init__(self, tool: str, suggestion: str | None = None) -> None:
        super().__init__(
            f"Unable to locate executable file: {tool}",
            suggestion or "Install it or add its directory to PATH",
        )
        self.tool = tool


class ProcessError(BuildCacheError):
    """A spawned program exited non-zero or failed to launch."""

    def __init__(self, program: str, message: str, returncode: int | None = None) -> None:
        super().__init__(f"{program} failed with error: {message}")
        self.program = program
        self.returncode = returncode


class ConfigError(BuildCacheError):
    """Configuration error."""

    pass


class CacheServiceError(BuildCacheError):
    """Cache store operation failed."""

    pass
