from __future__ import annotations

import os
import shutil
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Protocol, Sequence


class CommandResult(Protocol):
    returncode: int
    stdout: str
    stderr: str


class CommandRunner(Protocol):
    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult: ...


class ExecutableLocator(Protocol):
    def which(self, name: str) -> str | None: ...
    def is_file(self, path: PurePath) -> bool: ...


@dataclass
class SubprocessResult:
    returncode: int
    stdout: str
    stderr: str


class SubprocessRunner:
    """Run a program to completion and capture its output.

    Launch failures (missing binary, permission) surface as ``OSError``.
    """

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> SubprocessResult:
        p = subprocess.run(
            list(argv),
            cwd=str(cwd) if cwd is not None else None,
            env=dict(env) if env is not None else None,
            check=False,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
        )
        return SubprocessResult(returncode=p.returncode, stdout=p.stdout, stderr=p.stderr)


class PathLocator:
    def __init__(self, search_path: str | None = None) -> None:
        self.search_path = search_path

    def which(self, name: str) -> str | None:
        return shutil.which(name, path=self.search_path)

    def is_file(self, path: PurePath) -> bool:
        return os.path.isfile(path)
