"""Cache restore: classify a lookup as miss, partial or full hit."""

from __future__ import annotations

import traceback
from collections.abc import Callable
from enum import IntEnum
from typing import Sequence

from buildcache.actions import ActionsIO
from buildcache.cleanup import clean_target_dir
from buildcache.core.config import STATE_CONFIG_KEY, CacheConfig, RuntimeEnv, Workspace
from buildcache.core.errors import BuildCacheError
from buildcache.core.logging import get_logger
from buildcache.local_cache import CacheClient

log = get_logger(__name__)


class CacheHit(IntEnum):
    MISS = 0
    PARTIAL = 1
    FULL = 2


def report_error(e: BaseException) -> None:
    """Report a contained failure; the job carries on without cache."""
    if isinstance(e, BuildCacheError):
        log.error(str(e))
    else:
        log.error(f"{type(e).__name__}: {e}")
    log.debug("".join(traceback.format_exception(type(e), e, e.__traceback__)).rstrip())


def clean_workspace(workspace: Workspace) -> None:
    clean_target_dir(workspace.target, workspace.packages)


class RestoreResolver:
    """Drive one restore against a cache client.

    ``persist_state`` is called whenever the save step has work to do
    (miss or partial hit).
    """

    def __init__(
        self,
        client: CacheClient,
        *,
        workspaces: Sequence[Workspace] = (),
        persist_state: Callable[[], None] = lambda: None,
        cleaner: Callable[[Workspace], None] = clean_workspace,
        reporter: Callable[[BaseException], None] = report_error,
    ) -> None:
        self.client = client
        self.workspaces = tuple(workspaces)
        self.persist_state = persist_state
        self.cleaner = cleaner
        self.reporter = reporter

    def restore(
        self,
        paths: Sequence[str],
        primary_key: str,
        fallback_keys: Sequence[str] = (),
        require_exact_match: bool = False,
    ) -> CacheHit:
        try:
            return self._restore(paths, primary_key, list(fallback_keys), require_exact_match)
        except Exception as e:  # noqa: BLE001
            self.reporter(e)
            return CacheHit.MISS

    def _restore(
        self,
        paths: Sequence[str],
        primary_key: str,
        fallback_keys: list[str],
        require_exact_match: bool,
    ) -> CacheHit:
        if not self.client.is_feature_available():
            log.info("Cache service is not available; skipping restore.")
            return CacheHit.MISS

        if require_exact_match:
            probed = self.client.restore_cache(list(paths), primary_key, fallback_keys, lookup_only=True)
            if probed != primary_key:
                log.info("No exact cache match; full match required.", probed=probed or "<none>")
                return CacheHit.MISS

        # The client may mutate the list it is given.
        restored_key = self.client.restore_cache(list(paths), primary_key, fallback_keys)
        if not restored_key:
            log.info("No cache found.")
            self.persist_state()
            return CacheHit.MISS

        match = restored_key == primary_key
        log.info(f'Restored from cache key "{restored_key}" full match: {str(match).lower()}.')
        if match:
            return CacheHit.FULL

        # Artifacts from an older build must not pass for up to date.
        for workspace in self.workspaces:
            try:
                self.cleaner(workspace)
            except Exception as e:  # noqa: BLE001
                log.debug(f"Pre-clean of {workspace.target} failed: {e}")

        self.persist_state()
        return CacheHit.PARTIAL


def set_cache_hit_output(actions: ActionsIO, hit: CacheHit) -> None:
    actions.set_output("partial-hit", str(hit is CacheHit.PARTIAL).lower())
    actions.set_output("cache-hit", str(hit is CacheHit.FULL).lower())


def run_restore(
    load: Callable[[], tuple[CacheConfig, CacheClient]],
    actions: ActionsIO,
    env: RuntimeEnv,
) -> CacheHit:
    """Restore step entry point: env exports, restore, outputs.

    ``load`` builds the configuration and the client. It runs inside the
    step's containment, so a bad input is reported and becomes a MISS with
    the outputs still set.
    """
    try:
        config, client = load()
    except Exception as e:  # noqa: BLE001
        report_error(e)
        set_cache_hit_output(actions, CacheHit.MISS)
        return CacheHit.MISS

    actions.export_variable("CACHE_ON_FAILURE", str(config.cache_on_failure).lower())
    actions.export_variable("CARGO_INCREMENTAL", "0")

    for line in config.summary_lines(env):
        log.info(line)
    log.info("")
    log.info("... Restoring cache ...")

    resolver = RestoreResolver(
        client,
        workspaces=config.workspaces,
        persist_state=lambda: actions.save_state(STATE_CONFIG_KEY, config.to_json()),
    )
    hit = resolver.restore(
        config.cache_paths,
        config.cache_key,
        config.restore_keys,
        require_exact_match=config.require_full_match,
    )
    set_cache_hit_output(actions, hit)
    return hit


def run_save(actions: ActionsIO, client_for: Callable[[CacheConfig], CacheClient]) -> bool:
    """Save step: store the cache only when the restore step asked for it.

    Returns True when a save was attempted and succeeded.
    """
    saved = actions.get_state(STATE_CONFIG_KEY)
    if not saved:
        log.info("Cache up-to-date.")
        return False

    try:
        config = CacheConfig.from_json(saved)
        client = client_for(config)
        if not client.is_feature_available():
            log.info("Cache service is not available; not saving.")
            return False

        log.info("... Saving cache ...")
        client.save_cache(list(config.cache_paths), config.cache_key)
    except Exception as e:  # noqa: BLE001
        report_error(e)
        return False
    return True
