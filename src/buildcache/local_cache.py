"""Directory-backed cache store implementing the cache-service contract.

Layout::

    <root>/<sha256(version + key)>/meta.json
    <root>/<sha256(version + key)>/cache.tzst   (or cache.tgz)

The version mixes the cache paths and the compression method, so an entry
is only restored by a run that would have produced the same archive kind
from the same paths.
"""

from __future__ import annotations

import contextlib
import hashlib
import json
import os
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence

from buildcache.core.errors import CacheServiceError
from buildcache.core.logging import get_logger
from buildcache.paths import archive_size, resolve_paths
from buildcache.tar import TarArchiver

log = get_logger(__name__)

META_FILE = "meta.json"
TMP_DIR = ".tmp"


class CacheClient(Protocol):
    def is_feature_available(self) -> bool: ...

    def restore_cache(
        self,
        paths: list[str],
        primary_key: str,
        restore_keys: Sequence[str] = (),
        *,
        lookup_only: bool = False,
    ) -> str | None: ...

    def save_cache(self, paths: list[str], key: str) -> None: ...


@dataclass(frozen=True)
class CacheEntry:
    key: str
    version: str
    archive: str
    created: float
    path: Path

    @property
    def archive_path(self) -> Path:
        return self.path / self.archive


def cache_version(paths: Sequence[str], compression: str) -> str:
    components = [*paths, compression]
    return hashlib.sha256("|".join(components).encode("utf-8")).hexdigest()


def entry_dir_name(version: str, key: str) -> str:
    return hashlib.sha256(f"{version}\n{key}".encode("utf-8")).hexdigest()


class LocalCacheClient:
    """Cache entries kept in a local (or mounted) directory."""

    def __init__(self, root: Path, archiver: TarArchiver) -> None:
        self.root = root
        self.archiver = archiver

    def is_feature_available(self) -> bool:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            log.warning(f"Cache directory is not usable: {e}", root=self.root)
            return False
        return os.access(self.root, os.W_OK)

    def _version(self, paths: Sequence[str]) -> str:
        return cache_version(paths, self.archiver.toolchain.compression_method().value)

    def _read_entry(self, path: Path) -> CacheEntry | None:
        try:
            meta = json.loads((path / META_FILE).read_text(encoding="utf-8"))
            return CacheEntry(
                key=str(meta["key"]),
                version=str(meta["version"]),
                archive=str(meta["archive"]),
                created=float(meta["created"]),
                path=path,
            )
        except (OSError, ValueError, KeyError, TypeError):
            return None

    def _entries(self, version: str) -> list[CacheEntry]:
        if not self.root.is_dir():
            return []
        out: list[CacheEntry] = []
        for child in self.root.iterdir():
            if child.name == TMP_DIR or not child.is_dir():
                continue
            entry = self._read_entry(child)
            if entry is not None and entry.version == version:
                out.append(entry)
        return out

    def find_entry(self, paths: Sequence[str], primary_key: str, restore_keys: Sequence[str]) -> CacheEntry | None:
        """Exact primary key first, then the newest prefix match per restore key."""
        version = self._version(paths)
        exact = self._read_entry(self.root / entry_dir_name(version, primary_key))
        if exact is not None and exact.version == version and exact.key == primary_key:
            return exact

        entries = self._entries(version)
        for restore_key in restore_keys:
            if not restore_key:
                continue
            candidates = [e for e in entries if e.key.startswith(restore_key)]
            if candidates:
                return max(candidates, key=lambda e: e.created)
        return None

    def restore_cache(
        self,
        paths: list[str],
        primary_key: str,
        restore_keys: Sequence[str] = (),
        *,
        lookup_only: bool = False,
    ) -> str | None:
        entry = self.find_entry(paths, primary_key, restore_keys)
        if entry is None:
            return None

        if lookup_only:
            log.info(f"Cache hit for: {entry.key}")
            return entry.key

        size_mb = archive_size(entry.archive_path) / (1024 * 1024)
        log.info(f"Cache Size: ~{round(size_mb)} MB ({archive_size(entry.archive_path)} B)")
        self.archiver.extract_tar(entry.archive_path)
        log.info(f"Cache restored from key: {entry.key}")
        return entry.key

    def save_cache(self, paths: list[str], key: str) -> None:
        version = self._version(paths)
        final_dir = self.root / entry_dir_name(version, key)
        if final_dir.exists():
            log.info(f"Cache already exists for key: {key}; not saving.")
            return

        members = resolve_paths(paths, self.archiver.env.workspace)
        if not members:
            raise CacheServiceError(
                "Path Validation Error: Path(s) specified for caching do(es) not exist, "
                "hence no cache is being saved."
            )

        tmp_root = self.root / TMP_DIR
        tmp_root.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(dir=tmp_root))
        try:
            created = self.archiver.create_tar(staging, members)
            created.manifest_path.unlink()

            entry_dir = staging / "entry"
            entry_dir.mkdir()
            os.replace(created.archive_path, entry_dir / created.archive_path.name)
            meta = {
                "key": key,
                "version": version,
                "archive": created.archive_path.name,
                "created": time.time(),
            }
            (entry_dir / META_FILE).write_text(json.dumps(meta, sort_keys=True), encoding="utf-8")

            try:
                os.rename(entry_dir, final_dir)
            except OSError as e:
                if final_dir.exists():
                    log.info(f"Cache already exists for key: {key}; not saving.")
                    return
                raise CacheServiceError(f"Failed to store cache entry for key {key}: {e}") from e
            log.info(f"Cache saved with key: {key}")
        finally:
            with contextlib.suppress(OSError):
                shutil.rmtree(staging)
