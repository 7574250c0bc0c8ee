"""Pre-clean of a build-output tree after a partial cache hit.

A fallback key restores artifacts from an older build. Incremental state and
the workspace's own package artifacts from that build are removed so they
cannot be mistaken for up-to-date outputs; third-party dependency artifacts
are kept since they are what makes the partial hit worth having.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Iterable

from buildcache.core.logging import get_logger

log = get_logger(__name__)

_PROFILE_MARKERS = ("deps", "build", ".fingerprint")
_PACKAGE_DIRS = ("deps", "build", ".fingerprint")


def is_profile_dir(path: Path) -> bool:
    return path.is_dir() and any((path / m).is_dir() for m in _PROFILE_MARKERS)


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def _package_prefixes(packages: Iterable[str]) -> tuple[str, ...]:
    out: list[str] = []
    for name in packages:
        for variant in (name, name.replace("-", "_")):
            for prefix in (f"{variant}-", f"lib{variant}-", f"{variant}."):
                if prefix not in out:
                    out.append(prefix)
    return tuple(out)


def clean_profile_dir(profile: Path, packages: Iterable[str]) -> None:
    incremental = profile / "incremental"
    if incremental.exists():
        log.debug(f"Removing {incremental}")
        shutil.rmtree(incremental)

    prefixes = _package_prefixes(packages)
    if not prefixes:
        return
    for sub in _PACKAGE_DIRS:
        d = profile / sub
        if not d.is_dir():
            continue
        for entry in d.iterdir():
            if entry.name.startswith(prefixes):
                _remove(entry)


def clean_target_dir(target: Path, packages: Iterable[str] = ()) -> None:
    """Clean every profile directory under ``target``.

    Cross-compilation layouts (``target/<triple>/<profile>``) are handled by
    descending one level into non-profile directories.
    """
    if not target.is_dir():
        return
    packages = tuple(packages)
    for child in sorted(target.iterdir()):
        if is_profile_dir(child):
            clean_profile_dir(child, packages)
        elif child.is_dir():
            for nested in sorted(child.iterdir()):
                if is_profile_dir(nested):
                    clean_profile_dir(nested, packages)
