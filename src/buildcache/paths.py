"""Path helpers shared by archive creation and the cache store.

Archive members are always recorded as POSIX paths relative to the
workspace, whatever the host separator is.
"""

from __future__ import annotations

import base64
import glob
import os
import re
import secrets
import string
import time
from pathlib import Path
from typing import Iterable

from buildcache.core.logging import get_logger

log = get_logger(__name__)

_LONG_PATH_PREFIX = re.compile(r"^\\\\\?\\")
_REPEATED_SLASH = re.compile(r"//+")
_BASE36 = string.digits + string.ascii_lowercase


def posix_path(path: str | os.PathLike[str]) -> str:
    """Normalize a host path to forward slashes.

    Strips the Windows long-name prefix (``\\\\?\\``) and collapses repeated
    separators; both ``\\`` and ``/`` are invalid inside Windows file names.
    """
    text = _LONG_PATH_PREFIX.sub("", os.fspath(path))
    text = text.replace("\\", "/")
    return _REPEATED_SLASH.sub("/", text)


def posix_join(*parts: str) -> str:
    return posix_path("/".join(p for p in parts if p))


def _base36(n: int) -> str:
    if n == 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(_BASE36[r])
    return "".join(reversed(out))


def random_name() -> str:
    """Epoch seconds in base 36 followed by 12 random bytes (base64url)."""
    token = base64.urlsafe_b64encode(secrets.token_bytes(12)).decode("ascii").rstrip("=")
    return _base36(int(time.time())) + token


def archive_size(path: Path) -> int:
    return path.stat().st_size


def _expand(pattern: str, workspace: Path) -> list[str]:
    pattern = os.path.expanduser(pattern)
    if not os.path.isabs(pattern):
        pattern = os.path.join(workspace, pattern)
    if glob.has_magic(pattern):
        # `*` also matches dot entries such as .fingerprint
        return sorted(glob.glob(pattern, recursive=True, include_hidden=True))
    return [pattern] if os.path.lexists(pattern) else []


def resolve_paths(patterns: Iterable[str], workspace: Path) -> list[str]:
    """Expand cache path patterns into workspace-relative POSIX paths.

    Lines starting with ``#`` are ignored and ``!pattern`` removes earlier
    matches. Matches are not expanded to their descendants: tar archives a
    matched directory recursively on its own.
    """
    matched: list[str] = []
    for raw in patterns:
        pattern = raw.strip()
        if not pattern or pattern.startswith("#"):
            continue

        exclude = pattern.startswith("!")
        if exclude:
            pattern = pattern[1:].strip()

        for found in _expand(pattern, workspace):
            rel = posix_path(os.path.relpath(found, workspace))
            # relpath of the workspace itself is "."
            rel = rel or "."
            if exclude:
                if rel in matched:
                    matched.remove(rel)
            elif rel not in matched:
                log.debug(f"Matched: {rel}")
                matched.append(rel)
    return matched
