# SPDX-License-Identifier: MIT
"""Parsing of make-style dependency files written by compilers (-MMD -MF)."""

from __future__ import annotations

import re
from pathlib import Path

_CONTINUATION = re.compile(r"^(.*)\\\s*$")
_RULE = re.compile(r"^(.*): (.*)$", re.DOTALL)


def parse_makefile_deps(mf_fname: str | Path, target: str) -> list[str]:
    """Parse dependencies for target from a make-style dependency file.

    Args:
        mf_fname: Dependency file to read.
        target: Target whose prerequisites are wanted.

    Returns:
        The prerequisites listed for target, in file order.

    Example:
        module.o: module.c \\
          module.h
        -> ["module.c", "module.h"]
    """
    deps: list[str] = []
    buildup = ""
    with open(mf_fname, encoding="utf-8", errors="replace") as f:
        for line in f:
            continuation = _CONTINUATION.match(line)
            if continuation:
                buildup += " " + continuation.group(1)
                continue
            buildup += " " + line
            rule = _RULE.match(buildup)
            if rule:
                mf_target, mf_deps = rule.group(1).strip(), rule.group(2)
                if mf_target == target:
                    deps.extend(mf_deps.split())
            buildup = ""
    return deps
