"""GitHub Actions file-command protocol: inputs, outputs, env and state.

Values go to the files named by ``GITHUB_OUTPUT``, ``GITHUB_ENV`` and
``GITHUB_STATE``. Outside of a runner (no such variable) they are only
recorded in memory and logged, which is what local runs and tests use.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from pathlib import Path

from buildcache.core.logging import get_logger

log = get_logger(__name__)


def _file_command(name: str, value: str) -> str:
    delimiter = f"ghadelimiter_{uuid.uuid4()}"
    if delimiter in name or delimiter in value:
        raise ValueError("unexpected delimiter collision in file command")
    return f"{name}<<{delimiter}\n{value}\n{delimiter}\n"


class ActionsIO:
    def __init__(self, environ: Mapping[str, str]) -> None:
        self.environ = environ
        self.outputs: dict[str, str] = {}
        self.exported: dict[str, str] = {}
        self.state: dict[str, str] = {}

    def get_input(self, name: str) -> str:
        """Action input ``name`` (``INPUT_<NAME>``, spaces as underscores)."""
        key = f"INPUT_{name.replace(' ', '_').upper()}"
        return self.environ.get(key, "").strip()

    def get_state(self, name: str) -> str:
        return self.state.get(name) or self.environ.get(f"STATE_{name}", "")

    def _append(self, var: str, name: str, value: str) -> bool:
        path = self.environ.get(var, "")
        if not path:
            return False
        with Path(path).open("a", encoding="utf-8") as f:
            f.write(_file_command(name, value))
        return True

    def set_output(self, name: str, value: str) -> None:
        self.outputs[name] = value
        if not self._append("GITHUB_OUTPUT", name, value):
            log.info(f"output {name}={value}")

    def export_variable(self, name: str, value: str) -> None:
        self.exported[name] = value
        if not self._append("GITHUB_ENV", name, value):
            log.debug(f"export {name}={value}")

    def save_state(self, name: str, value: str) -> None:
        self.state[name] = value
        if not self._append("GITHUB_STATE", name, value):
            log.debug(f"state {name} saved ({len(value)} bytes)")
