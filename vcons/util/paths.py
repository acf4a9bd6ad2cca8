# SPDX-License-Identifier: MIT
"""Path string helpers shared by the environment and the builders.

vcons keeps paths as plain forward-slash strings, since they are used
verbatim as cache keys and command arguments.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

_SUFFIX_PATTERN = re.compile(r"\.[^./\\]*$")
_ABSOLUTE_PATTERN = re.compile(r"^(/|\w:[\\/])")


def set_suffix(path: str, suffix: str) -> str:
    """Return path with its suffix (dot and extension) replaced by suffix.

    ``set_suffix("src/foo.c", ".o")`` gives ``"src/foo.o"``; a path
    without a suffix is returned unchanged.
    """
    return _SUFFIX_PATTERN.sub(lambda _: suffix, path, count=1)


def has_suffix(path: str, suffixes: str | Iterable[str] | None) -> bool:
    """Check if path ends with any of the given suffixes."""
    if not suffixes:
        return False
    if isinstance(suffixes, str):
        suffixes = [suffixes]
    return any(s and path.endswith(s) for s in suffixes)


def is_absolute(path: str) -> bool:
    """Return whether path is an absolute POSIX or Windows path."""
    return _ABSOLUTE_PATTERN.match(path) is not None


def normalize(path: str) -> str:
    """Use forward slashes as separators."""
    return path.replace("\\", "/")
