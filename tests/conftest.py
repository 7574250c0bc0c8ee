"""Pytest configuration and fixtures."""

from __future__ import annotations

import importlib.util
import sys
from pathlib import Path
from types import ModuleType

import pytest

repo_root = Path(__file__).parent.parent
sys.path.insert(0, str(repo_root / "src"))

from buildcache.core import logging as bc_logging  # noqa: E402
from buildcache.core.config import RuntimeEnv  # noqa: E402


def _load_fake(name: str) -> ModuleType:
    """Load a fakes module without making tests/ an importable package."""

    p = Path(__file__).resolve().parent / "fakes" / f"{name}.py"
    spec = importlib.util.spec_from_file_location(f"_buildcache_test_{name}", p)
    assert spec and spec.loader
    mod = importlib.util.module_from_spec(spec)
    sys.modules[spec.name] = mod
    spec.loader.exec_module(mod)
    return mod


_runner_fakes = _load_fake("fake_command_runner")
_client_fakes = _load_fake("fake_cache_client")

FakeCommandRunner = _runner_fakes.FakeCommandRunner
FakeLocator = _runner_fakes.FakeLocator
FakeCacheClient = _client_fakes.FakeCacheClient


@pytest.fixture(autouse=True)
def _reset_logging():
    bc_logging.set_verbosity(bc_logging.VerbosityLevel.NORMAL)
    bc_logging.set_actions_commands(False)
    bc_logging.clear_log_sinks()
    yield
    bc_logging.clear_log_sinks()
    bc_logging.set_actions_commands(None)


@pytest.fixture()
def workspace(tmp_path: Path) -> Path:
    ws = tmp_path / "workspace"
    ws.mkdir()
    return ws


@pytest.fixture()
def make_env(workspace: Path):
    def _make(platform: str = "linux", **environ: str) -> RuntimeEnv:
        return RuntimeEnv(
            platform=platform,
            workspace=workspace,
            server_url=environ.pop("GITHUB_SERVER_URL", "https://github.com"),
            environ=environ,
        )

    return _make


@pytest.fixture()
def fake_runner():
    return FakeCommandRunner()


@pytest.fixture()
def fake_locator():
    return FakeLocator(executables={"tar": "/usr/bin/tar"})


@pytest.fixture()
def fake_client():
    return FakeCacheClient()
