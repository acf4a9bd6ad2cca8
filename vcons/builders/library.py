# SPDX-License-Identifier: MIT
"""Library builder: archive object files into a static library."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from vcons.core.builder import BaseBuilder

if TYPE_CHECKING:
    from vcons.core.cache import Cache
    from vcons.core.environment import Environment
    from vcons.core.varset import VarSet


class Library(BaseBuilder):
    """Build a static library from source and object files."""

    def default_variables(self, env: Environment) -> dict[str, Any]:
        return {
            "AR": "ar",
            "LIBSUFFIX": ".a",
            "ARFLAGS": ["rcs"],
            "ARCMD": ["${AR}", "${ARFLAGS}", "${_TARGET}", "${_SOURCES}"],
        }

    def run(
        self,
        target: str,
        sources: list[str],
        cache: Cache,
        env: Environment,
        vars: VarSet,
    ) -> str | bool:
        objects = env.build_sources(
            sources, env.expand_varref("${OBJSUFFIX}", vars), cache, vars
        )
        if objects is None:
            return False
        vars = vars.merge({"_TARGET": target, "_SOURCES": objects})
        command = env.build_command("${ARCMD}", vars)
        return self.standard_build(f"AR {target}", target, command, objects, env, cache)
