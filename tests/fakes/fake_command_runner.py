from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path, PurePath

from buildcache.deps import SubprocessResult


@dataclass(frozen=True)
class RecordedCall:
    argv: list[str]
    cwd: Path | None
    env: dict[str, str] | None


@dataclass
class FakeCommandRunner:
    """A CommandRunner that answers from scripted responses.

    Responses are matched by the longest argv prefix. Programs marked missing
    raise FileNotFoundError like subprocess does. Side effects let a test
    simulate what tar/zstd would write to disk.
    """

    default_returncode: int = 0
    responses: dict[tuple[str, ...], SubprocessResult] = field(default_factory=dict)
    missing: set[str] = field(default_factory=set)
    side_effects: dict[str, Callable[[list[str], Path | None], None]] = field(default_factory=dict)
    calls: list[RecordedCall] = field(default_factory=list)

    def respond(
        self, argv_prefix: Sequence[str], *, stdout: str = "", stderr: str = "", returncode: int = 0
    ) -> None:
        self.responses[tuple(argv_prefix)] = SubprocessResult(
            returncode=returncode, stdout=stdout, stderr=stderr
        )

    def make_missing(self, program: str) -> None:
        self.missing.add(program)

    def on_run(self, program: str, effect: Callable[[list[str], Path | None], None]) -> None:
        self.side_effects[program] = effect

    def programs(self) -> list[str]:
        return [c.argv[0] for c in self.calls]

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> SubprocessResult:
        argv = list(argv)
        self.calls.append(RecordedCall(argv=argv, cwd=cwd, env=dict(env) if env is not None else None))

        if argv[0] in self.missing:
            raise FileNotFoundError(2, "No such file or directory", argv[0])

        effect = self.side_effects.get(argv[0])
        if effect is not None:
            effect(argv, cwd)

        best: tuple[str, ...] | None = None
        for prefix in self.responses:
            if tuple(argv[: len(prefix)]) == prefix and (best is None or len(prefix) > len(best)):
                best = prefix
        if best is not None:
            return self.responses[best]

        return SubprocessResult(returncode=self.default_returncode, stdout="", stderr="")


@dataclass
class FakeLocator:
    """ExecutableLocator over an in-memory PATH and file set."""

    executables: dict[str, str] = field(default_factory=dict)
    files: set[str] = field(default_factory=set)

    def which(self, name: str) -> str | None:
        return self.executables.get(name)

    def is_file(self, path: PurePath) -> bool:
        return str(path) in self.files
