# SPDX-License-Identifier: MIT
"""Program builder: compile sources and link them into an executable."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from vcons.configure.platform import get_platform
from vcons.core.builder import BaseBuilder
from vcons.core.target import BuildTarget
from vcons.util.paths import has_suffix

if TYPE_CHECKING:
    from vcons.core.cache import Cache
    from vcons.core.environment import Environment
    from vcons.core.varset import VarSet


class Program(BaseBuilder):
    """Build an executable from source and object files.

    Sources that are not objects or static libraries are first compiled
    with whichever builder produces ${OBJSUFFIX} files from them.
    """

    def default_variables(self, env: Environment) -> dict[str, Any]:
        return {
            "PROGSUFFIX": get_platform().exe_suffix,
            "LD": None,
            "LIBSUFFIX": ".a",
            "LDFLAGS": [],
            "LIBPATH": [],
            "LIBDIRPREFIX": "-L",
            "LIBLINKPREFIX": "-l",
            "LIBS": [],
            "LDCMD": [
                "${LD}", "-o", "${_TARGET}", "${LDFLAGS}", "${_SOURCES}",
                "${LIBDIRPREFIX}${LIBPATH}", "${LIBLINKPREFIX}${LIBS}",
            ],
        }

    def create_build_target(
        self,
        env: Environment,
        target: str,
        sources: list[str],
        vars: dict[str, Any],
    ) -> BuildTarget:
        progsuffix = env.expand_varref("${PROGSUFFIX}", vars or None)
        if progsuffix and "." not in target.rsplit("/", 1)[-1]:
            target += progsuffix
        return BuildTarget(env, target)

    def run(
        self,
        target: str,
        sources: list[str],
        cache: Cache,
        env: Environment,
        vars: VarSet,
    ) -> str | bool:
        # Build sources to objects first
        objects = env.build_sources(
            sources,
            [env.expand_varref("${OBJSUFFIX}", vars), env.expand_varref("${LIBSUFFIX}", vars)],
            cache,
            vars,
        )
        if objects is None:
            return False

        if vars["LD"]:
            ld = vars["LD"]
        elif any(has_suffix(s, vars.get("DSUFFIX", kind="list") or []) for s in sources):
            ld = "${DC}"
        elif any(has_suffix(s, vars.get("CXXSUFFIX", kind="list") or []) for s in sources):
            ld = "${CXX}"
        else:
            ld = "${CC}"

        vars = vars.merge({"_TARGET": target, "_SOURCES": objects, "LD": ld})
        env.expand_array("LIBPATH", vars)
        env.expand_array("LIBS", vars)
        command = env.build_command("${LDCMD}", vars)
        return self.standard_build(f"LD {target}", target, command, objects, env, cache)
