# SPDX-License-Identifier: MIT
"""
vcons: a Python library for automating build steps.

Build scripts create an Environment, set construction variables, declare
targets through named builders, and process them. Targets are rebuilt only
when their command, sources or dependencies change, as recorded in a
persistent build cache.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

__version__ = "0.2.0"

from vcons.core.builder import BaseBuilder, Builder, SimpleBuilder  # noqa: E402
from vcons.core.cache import CACHE_FILE, Cache  # noqa: E402
from vcons.core.environment import BuildOperation, Environment  # noqa: E402
from vcons.core.errors import (  # noqa: E402
    ArrayExpectedError,
    BuildError,
    BuilderError,
    CircularReferenceError,
    DependencyCycleError,
    SubstitutionError,
    VconsError,
)
from vcons.core.varset import Deferred, VarSet  # noqa: E402

logger = logging.getLogger(__name__)

# KEY=value arguments handed to the build script by the vcons command
_cli_vars: dict[str, str] | None = None


def _load_cli_vars() -> dict[str, str]:
    global _cli_vars
    if _cli_vars is None:
        _cli_vars = {}
        raw = os.environ.get("VCONS_VARS")
        if raw:
            try:
                _cli_vars = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Ignoring malformed VCONS_VARS")
    return _cli_vars


def get_var(name: str, default: str | None = None) -> str | None:
    """Look up a user build setting.

    A KEY=value argument to the vcons command wins over an environment
    variable of the same name; default is returned when neither is set.
    Build scripts use this for switches such as the build mode:

        mode = vcons.get_var("MODE", "release")
        env = Environment(build_root=f"build/{mode}")

    Environment itself reads VCONS_ECHO and VCONS_CACHE through here.
    """
    cli_vars = _load_cli_vars()
    if name in cli_vars:
        return cli_vars[name]
    return os.environ.get(name, default)


def clean(cache_file: Path | str | None = None) -> list[str]:
    """Remove all generated files and directories recorded in the cache.

    Directories are removed only if empty, deepest first. The cache file
    itself is removed last.

    Args:
        cache_file: Cache location (default: $VCONS_CACHE or .vconscache).

    Returns:
        The files that were removed.
    """
    cache = Cache(cache_file or get_var("VCONS_CACHE") or CACHE_FILE)
    removed = []
    for target in cache.targets():
        if os.path.isfile(target):
            os.remove(target)
            removed.append(target)
    for directory in sorted(cache.directories(), key=len, reverse=True):
        if os.path.isdir(directory) and not os.listdir(directory):
            os.rmdir(directory)
    cache.clear()
    logger.debug("Removed %d files", len(removed))
    return removed


__all__ = [
    "__version__",
    "get_var",
    "clean",
    "Environment",
    "BuildOperation",
    "VarSet",
    "Deferred",
    "Cache",
    "Builder",
    "BaseBuilder",
    "SimpleBuilder",
    "VconsError",
    "SubstitutionError",
    "ArrayExpectedError",
    "CircularReferenceError",
    "DependencyCycleError",
    "BuilderError",
    "BuildError",
]
