# SPDX-License-Identifier: MIT
"""Preprocess builder: run the C preprocessor over sources."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from vcons.core.builder import BaseBuilder
from vcons.util.paths import has_suffix

if TYPE_CHECKING:
    from vcons.core.cache import Cache
    from vcons.core.environment import Environment
    from vcons.core.varset import VarSet


class Preprocess(BaseBuilder):
    """Preprocess C or C++ sources into the target file."""

    def default_variables(self, env: Environment) -> dict[str, Any]:
        return {
            "CPP_CMD": [
                "${_PREPROCESS_CC}", "-E", "-o", "${_TARGET}", "-I${CPPPATH}",
                "${CPPFLAGS}", "${CFLAGS}", "${_SOURCES}",
            ],
        }

    def run(
        self,
        target: str,
        sources: list[str],
        cache: Cache,
        env: Environment,
        vars: VarSet,
    ) -> str | bool:
        cxx_suffixes = vars.get("CXXSUFFIX", kind="list") or []
        if any(has_suffix(source, cxx_suffixes) for source in sources):
            pp_cc = "${CXX}"
        else:
            pp_cc = "${CC}"
        vars = vars.merge({"_PREPROCESS_CC": pp_cc, "_TARGET": target, "_SOURCES": sources})
        env.expand_array("CPPPATH", vars)
        command = env.build_command("${CPP_CMD}", vars)
        return self.standard_build(
            f"Preprocess {target}", target, command, sources, env, cache
        )
