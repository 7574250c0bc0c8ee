from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any

from buildcache.actions import ActionsIO
from buildcache.core.config import CacheConfig, ConfigResolver, RuntimeEnv
from buildcache.core.errors import BuildCacheError
from buildcache.core.logging import get_logger, set_colors, set_verbosity
from buildcache.local_cache import LocalCacheClient
from buildcache.paths import resolve_paths
from buildcache.plan import Operation, PlanRequest, build_plan, render_plan
from buildcache.restore import run_restore, run_save
from buildcache.tar import TarArchiver
from buildcache.toolchain import Toolchain

log = get_logger(__name__)

# action input name -> config key
_INPUTS = {
    "key": "cache.key",
    "restore-key": "cache.restore_key",
    "paths": "cache.paths",
    "workspaces": "cache.workspaces",
    "cache-directory": "cache.directory",
    "require-full-match": "cache.require_full_match",
    "cache-on-failure": "cache.on_failure",
}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="python -m buildcache", add_help=True)
    p.add_argument("--config", dest="config_path", metavar="PATH", default=None)

    v = p.add_mutually_exclusive_group()
    v.add_argument("-q", "--quiet", dest="verbosity", action="store_const", const="quiet")
    v.add_argument("-v", "--verbose", dest="verbosity", action="store_const", const="verbose")
    v.add_argument("-d", "--debug", dest="verbosity", action="store_const", const="debug")
    v.add_argument(
        "--verbosity",
        dest="verbosity",
        choices=["debug", "verbose", "normal", "quiet"],
        default=None,
    )

    sub = p.add_subparsers(dest="command", required=True)

    r = sub.add_parser("restore", help="Restore the cache and classify the hit")
    r.add_argument("--key", default=None)
    r.add_argument("--restore-key", dest="restore_key", default=None)
    r.add_argument("--path", dest="paths", action="append", default=None, metavar="PATTERN")
    r.add_argument("--workspace", dest="workspaces", action="append", default=None, metavar="ROOT->TARGET")
    r.add_argument("--cache-dir", dest="cache_directory", default=None)
    r.add_argument("--require-full-match", dest="require_full_match", action="store_true", default=None)

    sub.add_parser("save", help="Save the cache recorded by the restore step")

    c = sub.add_parser("create", help="Archive workspace paths into a directory")
    c.add_argument("archive_folder")
    c.add_argument("patterns", nargs="+")

    e = sub.add_parser("extract", help="Extract an archive into the workspace")
    e.add_argument("archive")

    ls = sub.add_parser("list", help="List archive members")
    ls.add_argument("archive")

    sub.add_parser("probe", help="Show the resolved tar, compression and plans")
    return p


def _set_nested(data: dict[str, Any], key: str, value: Any) -> None:
    parts = key.split(".")
    cur = data
    for part in parts[:-1]:
        cur = cur.setdefault(part, {})
    cur[parts[-1]] = value


def cli_overrides(ns: argparse.Namespace, actions: ActionsIO) -> dict[str, Any]:
    """Action inputs, then explicit flags on top."""
    out: dict[str, Any] = {}
    for name, key in _INPUTS.items():
        value = actions.get_input(name)
        if value:
            _set_nested(out, key, value)

    flags = {
        "key": "cache.key",
        "restore_key": "cache.restore_key",
        "paths": "cache.paths",
        "workspaces": "cache.workspaces",
        "cache_directory": "cache.directory",
        "require_full_match": "cache.require_full_match",
    }
    for attr, key in flags.items():
        value = getattr(ns, attr, None)
        if value is not None:
            _set_nested(out, key, value)

    if ns.verbosity is not None:
        _set_nested(out, "logging.level", ns.verbosity)
    return out


def _configure(env: RuntimeEnv, resolver: ConfigResolver) -> TarArchiver:
    set_verbosity(resolver.resolve_logging_level())
    set_colors(resolver.resolve_bool("logging.color"))

    toolchain = Toolchain(env, long_distance_matching=resolver.resolve_bool("compression.long_distance_matching"))
    return TarArchiver(toolchain, window_bits=resolver.resolve_window_bits())


def main(argv: list[str] | None = None) -> int:
    ns = build_parser().parse_args(sys.argv[1:] if argv is None else argv)

    env = RuntimeEnv.from_environ()
    actions = ActionsIO(env.environ)
    resolver = ConfigResolver(
        cli_args=cli_overrides(ns, actions),
        user_config_path=Path(ns.config_path) if ns.config_path else None,
        environ=env.environ,
    )

    if ns.command == "restore":
        # Never fails the job: any error is reported as a miss.
        def load() -> tuple[CacheConfig, LocalCacheClient]:
            archiver = _configure(env, resolver)
            config = CacheConfig.new(resolver, env)
            return config, LocalCacheClient(config.cache_directory, archiver)

        run_restore(load, actions, env)
        return 0

    try:
        archiver = _configure(env, resolver)
        toolchain = archiver.toolchain

        if ns.command == "save":
            run_save(actions, lambda cfg: LocalCacheClient(cfg.cache_directory, archiver))
            return 0

        if ns.command == "create":
            folder = Path(ns.archive_folder).resolve()
            folder.mkdir(parents=True, exist_ok=True)
            members = resolve_paths(ns.patterns, env.workspace)
            if not members:
                raise BuildCacheError("No paths matched", "Check the patterns against the workspace")
            created = archiver.create_tar(folder, members)
            created.manifest_path.unlink()
            print(created.archive_path)
            return 0

        if ns.command == "extract":
            archiver.extract_tar(Path(ns.archive).resolve())
            return 0

        if ns.command == "list":
            for name in archiver.list_tar(Path(ns.archive).resolve()):
                print(name)
            return 0

        tool = toolchain.tar_tool()
        method = toolchain.compression_method()
        print(f"tar={tool.path} dialect={tool.dialect.value}")
        print(f"compression={method.value} archive={toolchain.cache_file_name()}")
        archive = toolchain.cache_file_name()
        for op in Operation:
            request = PlanRequest(
                operation=op,
                archive_path=archive,
                platform=env.platform,
                working_directory=str(env.workspace),
                manifest_path="manifest.txt" if op is Operation.CREATE else None,
                window_bits=archiver.window_bits,
            )
            print(render_plan(build_plan(request, tool, method)))
        return 0

    except BuildCacheError as e:
        log.error(str(e))
        return 2
