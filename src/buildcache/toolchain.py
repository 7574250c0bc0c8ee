"""Archive tool and compression method resolution.

A :class:`Toolchain` owns the per-process answers to "which tar, which
dialect" and "which compression method". Both are probed lazily, at most
once, and reused by every create/extract/list operation of the run.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import PureWindowsPath

from buildcache.core.config import RuntimeEnv
from buildcache.core.errors import ToolNotFoundError
from buildcache.core.logging import get_logger
from buildcache.deps import CommandRunner, ExecutableLocator, PathLocator, SubprocessRunner
from buildcache.lazy import Lazy

log = get_logger(__name__)

TAR_FILENAME = "cache.tar"

# Long distance matching was added in zstd v1.3.2.
ZSTD_LONG_MIN_VERSION = (1, 3, 2)

_VERSION_RE = re.compile(r"v?(\d+)\.(\d+)\.(\d+)")


class ToolDialect(str, Enum):
    GNU = "gnu"
    BSD = "bsd"


class CompressionMethod(str, Enum):
    GZIP = "gzip"
    # Long distance matching needs zstd >= 1.3.2.
    ZSTD = "zstd"
    ZSTD_WITHOUT_LONG = "zstd-without-long"

    @property
    def is_zstd(self) -> bool:
        return self is not CompressionMethod.GZIP


class CacheFilename(str, Enum):
    GZIP = "cache.tgz"
    ZSTD = "cache.tzst"


@dataclass(frozen=True)
class ArchiveTool:
    path: str
    dialect: ToolDialect


def gnu_tar_path_on_windows(env: RuntimeEnv) -> PureWindowsPath:
    program_files = env.get("ProgramFiles") or env.get("PROGRAMFILES") or "C:\\Program Files"
    return PureWindowsPath(program_files, "Git", "usr", "bin", "tar.exe")


def system_tar_path_on_windows(env: RuntimeEnv) -> PureWindowsPath:
    drive = env.get("SystemDrive") or env.get("SYSTEMDRIVE") or "C:"
    return PureWindowsPath(drive + "\\", "Windows", "System32", "tar.exe")


def parse_version(output: str) -> tuple[int, int, int] | None:
    m = _VERSION_RE.search(output)
    if m is None:
        return None
    return int(m.group(1)), int(m.group(2)), int(m.group(3))


def probe_version(runner: CommandRunner, app: str, extra_args: tuple[str, ...] = ()) -> str:
    """Return the trimmed combined output of ``app [extra_args] --version``.

    The exit code is ignored and a program that cannot be launched yields an
    empty string.
    """
    argv = [app, *extra_args, "--version"]
    log.debug(f"Checking {' '.join(argv)}")
    try:
        res = runner.run(argv)
    except OSError as e:
        log.debug(str(e))
        return ""
    output = ((res.stdout or "") + (res.stderr or "")).strip()
    log.debug(output)
    return output


class Toolchain:
    """Memoized tar tool and compression method for one run."""

    def __init__(
        self,
        env: RuntimeEnv,
        runner: CommandRunner | None = None,
        locator: ExecutableLocator | None = None,
        *,
        long_distance_matching: bool = False,
    ) -> None:
        self.env = env
        self.runner = runner or SubprocessRunner()
        self.locator = locator or PathLocator(env.get("PATH") or None)
        self.long_distance_matching = long_distance_matching

        self.tar_tool = Lazy(self._resolve_tar_tool)
        self.compression_method = Lazy(self._resolve_compression_method)
        self.cache_file_name = Lazy(self._resolve_cache_file_name)
        self.tar_file_name = Lazy(self._resolve_tar_file_name)
        self.gnu_tar_on_windows = Lazy(self._find_gnu_tar_on_windows)

    def _which(self, name: str, required: bool) -> str | None:
        found = self.locator.which(name)
        if found is None and required:
            raise ToolNotFoundError(name)
        return found

    def _find_gnu_tar_on_windows(self) -> str:
        known = gnu_tar_path_on_windows(self.env)
        if self.locator.is_file(known):
            return str(known)
        output = probe_version(self.runner, "tar")
        if "gnu tar" in output.lower():
            return self._which("tar", required=False) or ""
        return ""

    def _resolve_tar_tool(self) -> ArchiveTool:
        if self.env.is_windows:
            gnu_tar = self.gnu_tar_on_windows()
            if gnu_tar:
                tool = ArchiveTool(path=gnu_tar, dialect=ToolDialect.GNU)
            else:
                system_tar = system_tar_path_on_windows(self.env)
                if not self.locator.is_file(system_tar):
                    raise ToolNotFoundError(
                        "tar", f"Neither GNU tar nor {system_tar} is available on this runner"
                    )
                tool = ArchiveTool(path=str(system_tar), dialect=ToolDialect.BSD)
        elif self.env.is_macos:
            # BSD tar mis-extracts some permission bits written by GNU tar.
            gnu_tar = self._which("gtar", required=False)
            if gnu_tar:
                tool = ArchiveTool(path=gnu_tar, dialect=ToolDialect.GNU)
            else:
                tool = ArchiveTool(path=str(self._which("tar", required=True)), dialect=ToolDialect.BSD)
        else:
            tool = ArchiveTool(path=str(self._which("tar", required=True)), dialect=ToolDialect.GNU)

        log.debug("Resolved archive tool", path=tool.path, dialect=tool.dialect.value)
        return tool

    def _resolve_compression_method(self) -> CompressionMethod:
        output = probe_version(self.runner, "zstd", ("--quiet",))
        version = parse_version(output)
        log.debug(f"zstd version: {'.'.join(map(str, version)) if version else None}")

        if output == "":
            return CompressionMethod.GZIP
        if self.long_distance_matching and version is not None and version >= ZSTD_LONG_MIN_VERSION:
            return CompressionMethod.ZSTD
        return CompressionMethod.ZSTD_WITHOUT_LONG

    def _resolve_cache_file_name(self) -> str:
        if self.compression_method() is CompressionMethod.GZIP:
            return CacheFilename.GZIP.value
        return CacheFilename.ZSTD.value

    def is_bsd_tar_zstd(self) -> bool:
        """BSD tar on Windows cannot stream through zstd."""
        return (
            self.tar_tool().dialect is ToolDialect.BSD
            and self.compression_method().is_zstd
            and self.env.is_windows
        )

    def _resolve_tar_file_name(self) -> str:
        return TAR_FILENAME if self.is_bsd_tar_zstd() else self.cache_file_name()
