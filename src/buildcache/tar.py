"""Create, extract and list cache archives with the resolved toolchain."""

from __future__ import annotations

import contextlib
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from buildcache.core.config import MAX_WINDOW_BITS
from buildcache.core.logging import get_logger
from buildcache.deps import CommandResult, CommandRunner
from buildcache.executor import execute_plan
from buildcache.paths import posix_join, posix_path, random_name
from buildcache.plan import CommandPlan, Operation, PlanRequest, build_plan
from buildcache.toolchain import Toolchain

log = get_logger(__name__)


@dataclass(frozen=True)
class CreatedArchive:
    archive_path: Path
    manifest_path: Path


def publish(temp_path: str, final_path: str) -> None:
    """Make ``temp_path`` visible as ``final_path`` and drop the temp name.

    A hard link publishes a fresh name; an existing archive is swapped out
    with an atomic replace. The temp name is gone afterwards either way.
    """
    try:
        os.link(temp_path, final_path)
    except FileExistsError:
        log.debug(f"Replacing existing archive {final_path}")
        os.replace(temp_path, final_path)
    finally:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(temp_path)


class TarArchiver:
    """Runs create/extract/list plans against one toolchain."""

    def __init__(
        self,
        toolchain: Toolchain,
        runner: CommandRunner | None = None,
        *,
        window_bits: int = MAX_WINDOW_BITS,
    ) -> None:
        self.toolchain = toolchain
        self.runner = runner or toolchain.runner
        self.env = toolchain.env
        self.window_bits = window_bits

    def _plan(self, operation: Operation, archive_path: str, manifest_path: str | None = None) -> CommandPlan:
        request = PlanRequest(
            operation=operation,
            archive_path=archive_path,
            platform=self.env.platform,
            working_directory=posix_path(self.env.workspace),
            manifest_path=manifest_path,
            window_bits=self.window_bits,
        )
        return build_plan(request, self.toolchain.tar_tool(), self.toolchain.compression_method())

    def _intermediate(self, folder: Path) -> Path | None:
        """Uncompressed tar written next to the archive, if this toolchain needs one."""
        tar_file = self.toolchain.tar_file_name()
        if tar_file == self.toolchain.cache_file_name():
            return None
        return folder / tar_file

    def create_tar(self, archive_folder: Path, source_paths: Sequence[str]) -> CreatedArchive:
        """Archive ``source_paths`` (workspace relative) into ``archive_folder``.

        The archive is written under a randomized temp name and published
        under the canonical name, so readers never see a partial file under
        that name. The manifest is left for the caller to delete.
        """
        name = random_name()
        manifest_path = archive_folder / f"manifest.{name}.txt"
        temp_path = posix_join(posix_path(archive_folder), name + self.toolchain.cache_file_name())
        final_path = posix_join(posix_path(archive_folder), self.toolchain.cache_file_name())
        intermediate = self._intermediate(archive_folder)

        # Member list goes through a file to avoid command line length limits.
        manifest_path.write_text("\n".join(source_paths), encoding="utf-8")

        plan = self._plan(Operation.CREATE, temp_path, posix_path(manifest_path))
        try:
            execute_plan(plan, self.runner, environ=self.env.environ, cwd=archive_folder)
            publish(temp_path, final_path)
        finally:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(temp_path)
            if intermediate is not None:
                intermediate.unlink(missing_ok=True)

        log.verbose("Archive created", path=final_path, entries=len(source_paths))
        return CreatedArchive(archive_path=Path(final_path), manifest_path=manifest_path)

    def _run_in_scratch(self, operation: Operation, archive_path: Path) -> list[CommandResult]:
        # Any intermediate tar lands in a private directory, never beside the archive.
        plan = self._plan(operation, posix_path(os.path.abspath(archive_path)))
        with tempfile.TemporaryDirectory(prefix="buildcache-") as scratch:
            return execute_plan(plan, self.runner, environ=self.env.environ, cwd=Path(scratch))

    def extract_tar(self, archive_path: Path) -> None:
        self.env.workspace.mkdir(parents=True, exist_ok=True)
        self._run_in_scratch(Operation.EXTRACT, archive_path)

    def list_tar(self, archive_path: Path) -> list[str]:
        results = self._run_in_scratch(Operation.LIST, archive_path)
        return [line for line in results[-1].stdout.splitlines() if line.strip()]
