"""Package entry point: ``python -m buildcache ...``."""

from __future__ import annotations

import sys

from buildcache.cli import main

if __name__ == "__main__":
    sys.exit(main())
