"""buildcache - archive pipeline and hit resolution for CI build caches.

Picks a tar binary and compressor per runner platform, builds and runs the
tar/zstd command plans, and classifies cache restores as miss, partial or
full hits.
"""

__version__ = "0.1.0"

from buildcache.local_cache import CacheClient, LocalCacheClient
from buildcache.plan import CommandPlan, Operation, PlanRequest, ProcessInvocation, build_plan
from buildcache.restore import CacheHit, RestoreResolver, run_restore, run_save
from buildcache.tar import TarArchiver
from buildcache.toolchain import ArchiveTool, CompressionMethod, Toolchain, ToolDialect

__all__ = [
    "ArchiveTool",
    "CacheClient",
    "CacheHit",
    "CommandPlan",
    "CompressionMethod",
    "LocalCacheClient",
    "Operation",
    "PlanRequest",
    "ProcessInvocation",
    "RestoreResolver",
    "TarArchiver",
    "ToolDialect",
    "Toolchain",
    "build_plan",
    "run_restore",
    "run_save",
]
