"""Pure construction of tar/zstd command plans.

Nothing here spawns a process or touches the filesystem: a plan is data,
executed later by :mod:`buildcache.executor`. Platform and dialect quirks
live in one capability table keyed by ``(platform family, dialect, method)``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Sequence

from buildcache.core.config import MAX_WINDOW_BITS, MIN_WINDOW_BITS
from buildcache.core.errors import ConfigError
from buildcache.toolchain import TAR_FILENAME, ArchiveTool, CompressionMethod, ToolDialect


class Operation(str, Enum):
    CREATE = "create"
    EXTRACT = "extract"
    LIST = "list"


class PlanShape(str, Enum):
    # tar drives the compressor itself: one invocation
    STREAMING = "streaming"
    # tar and zstd run one after the other over an uncompressed temp tar
    TWO_PHASE = "two_phase"


class PlatformFamily(str, Enum):
    WINDOWS = "win32"
    MACOS = "darwin"
    OTHER = "other"

    @classmethod
    def of(cls, platform: str) -> PlatformFamily:
        if platform == "win32":
            return cls.WINDOWS
        if platform == "darwin":
            return cls.MACOS
        return cls.OTHER


@dataclass(frozen=True)
class ProcessInvocation:
    program: str
    args: tuple[str, ...] = ()

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]


@dataclass(frozen=True)
class CommandPlan:
    operation: Operation
    invocations: tuple[ProcessInvocation, ...]

    def __post_init__(self) -> None:
        if not self.invocations:
            raise ValueError("a command plan needs at least one invocation")

    def __len__(self) -> int:
        return len(self.invocations)

    def __iter__(self) -> Iterator[ProcessInvocation]:
        return iter(self.invocations)


@dataclass(frozen=True)
class Capability:
    """How one (platform, dialect, method) combination drives compression.

    For the streaming shape ``create_args``/``decompress_args`` are appended
    to the tar invocation; for the two-phase shape they are the leading zstd
    arguments, completed with ``--force -o <out> <in>`` by the builder.
    """

    shape: PlanShape
    tar_flags: tuple[str, ...] = ()
    create_args: tuple[str, ...] = ()
    decompress_args: tuple[str, ...] = ()
    long_window: bool = False


_GNU_FLAGS = {
    # A drive letter would otherwise be read as a remote host ("C:").
    PlatformFamily.WINDOWS: ("--force-local",),
    # Directory metadata is applied after all entries.
    PlatformFamily.MACOS: ("--delay-directory-restore",),
    PlatformFamily.OTHER: (),
}


def _streaming_zstd(family: PlatformFamily, long_window: bool) -> tuple[tuple[str, ...], tuple[str, ...]]:
    if family is PlatformFamily.WINDOWS:
        suffix = " {long}" if long_window else ""
        return (
            ("--use-compress-program", f'"zstd -T0{suffix}"'),
            ("--use-compress-program", f'"zstd -d{suffix}"'),
        )
    extra = ("{long}",) if long_window else ()
    return (
        ("--use-compress-program", "zstdmt", *extra),
        ("--use-compress-program", "unzstd", *extra),
    )


def _build_capabilities() -> dict[tuple[PlatformFamily, ToolDialect, CompressionMethod], Capability]:
    table: dict[tuple[PlatformFamily, ToolDialect, CompressionMethod], Capability] = {}
    for family in PlatformFamily:
        for dialect in ToolDialect:
            tar_flags = _GNU_FLAGS[family] if dialect is ToolDialect.GNU else ()
            table[(family, dialect, CompressionMethod.GZIP)] = Capability(
                shape=PlanShape.STREAMING,
                tar_flags=tar_flags,
                create_args=("-z",),
                decompress_args=("-z",),
            )
            for method in (CompressionMethod.ZSTD, CompressionMethod.ZSTD_WITHOUT_LONG):
                long_window = method is CompressionMethod.ZSTD
                create_args, decompress_args = _streaming_zstd(family, long_window)
                table[(family, dialect, method)] = Capability(
                    shape=PlanShape.STREAMING,
                    tar_flags=tar_flags,
                    create_args=create_args,
                    decompress_args=decompress_args,
                    long_window=long_window,
                )

    # BSD tar on Windows cannot pipe through an external zstd.
    for method in (CompressionMethod.ZSTD, CompressionMethod.ZSTD_WITHOUT_LONG):
        long_window = method is CompressionMethod.ZSTD
        extra = ("{long}",) if long_window else ()
        table[(PlatformFamily.WINDOWS, ToolDialect.BSD, method)] = Capability(
            shape=PlanShape.TWO_PHASE,
            create_args=("-T0", *extra),
            decompress_args=("-d", *extra),
            long_window=long_window,
        )
    return table


CAPABILITIES = _build_capabilities()


def capability_for(platform: str, dialect: ToolDialect, method: CompressionMethod) -> Capability:
    return CAPABILITIES[(PlatformFamily.of(platform), dialect, method)]


def _check_window_bits(bits: int) -> None:
    if not MIN_WINDOW_BITS <= bits <= MAX_WINDOW_BITS:
        raise ConfigError(f"zstd window must be between {MIN_WINDOW_BITS} and {MAX_WINDOW_BITS} bits, got {bits}")


def _fill(args: Sequence[str], window_bits: int) -> tuple[str, ...]:
    return tuple(a.replace("{long}", f"--long={window_bits}") for a in args)


def _tar_args(
    operation: Operation,
    tar_file: str,
    working_directory: str,
    manifest_path: str | None,
) -> list[str]:
    if operation is Operation.CREATE:
        if manifest_path is None:
            raise ValueError("creating an archive requires a manifest path")
        return [
            "--posix",
            "-cf",
            tar_file,
            "-P",
            "-C",
            working_directory,
            "--files-from",
            manifest_path,
        ]
    if operation is Operation.EXTRACT:
        return ["-xf", tar_file, "-P", "-C", working_directory]
    return ["-tf", tar_file, "-P"]


@dataclass(frozen=True)
class PlanRequest:
    """Inputs of :func:`build_plan` besides the resolved tool and method."""

    operation: Operation
    archive_path: str
    platform: str
    working_directory: str = "."
    manifest_path: str | None = None
    window_bits: int = MAX_WINDOW_BITS


def build_plan(request: PlanRequest, tool: ArchiveTool, method: CompressionMethod) -> CommandPlan:
    """Return the invocations that perform ``request.operation``.

    ``archive_path`` is the compressed archive (written on create, read on
    extract/list). On the two-phase path the producer always runs first:
    tar then zstd on create, zstd then tar on extract/list, both sharing the
    fixed intermediate ``cache.tar``.
    """
    cap = capability_for(request.platform, tool.dialect, method)
    if cap.long_window:
        _check_window_bits(request.window_bits)

    op = request.operation
    if cap.shape is PlanShape.TWO_PHASE:
        tar_file = TAR_FILENAME
    else:
        tar_file = request.archive_path

    tar_args = _tar_args(op, tar_file, request.working_directory, request.manifest_path)
    tar_args.extend(cap.tar_flags)

    if cap.shape is PlanShape.STREAMING:
        compress = cap.create_args if op is Operation.CREATE else cap.decompress_args
        tar_args.extend(_fill(compress, request.window_bits))
        return CommandPlan(op, (ProcessInvocation(tool.path, tuple(tar_args)),))

    tar = ProcessInvocation(tool.path, tuple(tar_args))
    if op is Operation.CREATE:
        zstd = ProcessInvocation(
            "zstd",
            (*_fill(cap.create_args, request.window_bits), "--force", "-o", request.archive_path, TAR_FILENAME),
        )
        return CommandPlan(op, (tar, zstd))

    zstd = ProcessInvocation(
        "zstd",
        (*_fill(cap.decompress_args, request.window_bits), "--force", "-o", TAR_FILENAME, request.archive_path),
    )
    return CommandPlan(op, (zstd, tar))


def render_plan(plan: CommandPlan) -> str:
    lines = [f"{plan.operation.value} ({len(plan)} step{'s' if len(plan) != 1 else ''})"]
    for idx, inv in enumerate(plan, start=1):
        lines.append(f"  {idx}. {' '.join(inv.argv)}")
    return "\n".join(lines)
