from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from buildcache.core.errors import ProcessError
from buildcache.core.logging import get_logger
from buildcache.deps import CommandResult, CommandRunner
from buildcache.plan import CommandPlan

log = get_logger(__name__)

# Git-for-Windows tar only archives symlinks as links with native strict mode.
SYMLINK_ENV = {"MSYS": "winsymlinks:nativestrict"}


def execute_plan(
    plan: CommandPlan,
    runner: CommandRunner,
    *,
    environ: Mapping[str, str],
    cwd: Path | None = None,
) -> list[CommandResult]:
    """Run every invocation of ``plan`` in order.

    The first invocation that fails to launch or exits non-zero raises
    :class:`ProcessError`; the rest of the plan is not attempted.
    """
    env = {**environ, **SYMLINK_ENV}
    results: list[CommandResult] = []
    for inv in plan:
        log.verbose(f"[command]{' '.join(inv.argv)}")
        try:
            res = runner.run(inv.argv, cwd=cwd, env=env)
        except OSError as e:
            raise ProcessError(inv.program, str(e)) from e

        if res.returncode != 0:
            msg = res.stderr.strip() or res.stdout.strip() or f"exit code {res.returncode}"
            raise ProcessError(inv.program, msg, returncode=res.returncode)

        log.debug("Command finished", program=inv.program, returncode=res.returncode)
        results.append(res)
    return results
