# SPDX-License-Identifier: MIT
"""Object builder: compile a single C, C++, assembly or D source file.

The command is chosen from the source suffix. Compilers are asked to
write a make-style dependency file (-MMD -MF); after a successful build
it is parsed, its prerequisites are recorded in the cache as extra
dependencies, and the file is removed.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any

from vcons.core.builder import BaseBuilder, remove_file
from vcons.core.errors import BuilderError
from vcons.util.depfile import parse_makefile_deps
from vcons.util.paths import has_suffix, set_suffix

if TYPE_CHECKING:
    from vcons.core.cache import Cache
    from vcons.core.environment import Environment
    from vcons.core.varset import VarSet

logger = logging.getLogger(__name__)

# Compiler variable -> variable holding the suffixes it handles
KNOWN_SUFFIXES = {
    "AS": "ASSUFFIX",
    "CC": "CSUFFIX",
    "CXX": "CXXSUFFIX",
    "DC": "DSUFFIX",
}


class Object(BaseBuilder):
    """Compile a source file to an object file."""

    def default_variables(self, env: Environment) -> dict[str, Any]:
        return {
            "OBJSUFFIX": ".o",
            "DEPFILESUFFIX": ".mf",
            "CPPDEFPREFIX": "-D",
            "INCPREFIX": "-I",
            "AS": "${CC}",
            "ASFLAGS": [],
            "ASSUFFIX": [".S"],
            "ASPPPATH": "${CPPPATH}",
            "ASPPFLAGS": "${CPPFLAGS}",
            "ASDEPGEN": ["-MMD", "-MF", "${_DEPFILE}"],
            "ASCMD": [
                "${AS}", "-c", "-o", "${_TARGET}", "${ASDEPGEN}",
                "${INCPREFIX}${ASPPPATH}", "${ASPPFLAGS}", "${ASFLAGS}", "${_SOURCES}",
            ],
            "CPPFLAGS": ["${CPPDEFPREFIX}${CPPDEFINES}"],
            "CPPDEFINES": [],
            "CPPPATH": [],
            "CC": "gcc",
            "CFLAGS": [],
            "CSUFFIX": [".c"],
            "CCDEPGEN": ["-MMD", "-MF", "${_DEPFILE}"],
            "CCCMD": [
                "${CC}", "-c", "-o", "${_TARGET}", "${CCDEPGEN}",
                "${INCPREFIX}${CPPPATH}", "${CPPFLAGS}", "${CFLAGS}", "${_SOURCES}",
            ],
            "CXX": "g++",
            "CXXFLAGS": [],
            "CXXSUFFIX": [".cc", ".cpp", ".cxx", ".C"],
            "CXXDEPGEN": ["-MMD", "-MF", "${_DEPFILE}"],
            "CXXCMD": [
                "${CXX}", "-c", "-o", "${_TARGET}", "${CXXDEPGEN}",
                "${INCPREFIX}${CPPPATH}", "${CPPFLAGS}", "${CXXFLAGS}", "${_SOURCES}",
            ],
            "DC": "gdc",
            "DFLAGS": [],
            "DSUFFIX": [".d"],
            "D_IMPORT_PATH": [],
            "DCCMD": [
                "${DC}", "-c", "-o", "${_TARGET}",
                "${INCPREFIX}${D_IMPORT_PATH}", "${DFLAGS}", "${_SOURCES}",
            ],
        }

    def produces(self, target: str, source: str, env: Environment) -> bool:
        objsuffix = env.expand_varref("${OBJSUFFIX}")
        if not has_suffix(target, objsuffix):
            return False
        return any(
            has_suffix(source, env.get_var(suffix_var, kind="list") or [])
            for suffix_var in KNOWN_SUFFIXES.values()
        )

    def run(
        self,
        target: str,
        sources: list[str],
        cache: Cache,
        env: Environment,
        vars: VarSet,
    ) -> str | bool:
        if not sources:
            raise BuilderError("no source file given", target)
        vars = vars.merge(
            {
                "_TARGET": target,
                "_SOURCES": sources,
                "_DEPFILE": set_suffix(target, env.expand_varref("${DEPFILESUFFIX}", vars)),
            }
        )
        # Include paths are joined with a prefix, so they must be lists
        env.expand_array("CPPPATH", vars)

        com_prefix = next(
            (
                compiler
                for compiler, suffix_var in KNOWN_SUFFIXES.items()
                if has_suffix(sources[0], vars.get(suffix_var, kind="list") or [])
            ),
            None,
        )
        if com_prefix is None:
            raise BuilderError(f"unknown input file type: {sources[0]!r}", target)

        command = env.build_command(f"${{{com_prefix}CMD}}", vars)

        if cache.up_to_date(target, command, sources, env):
            logger.debug("%s is up to date", target)
            return target

        cache.mkdir_p(os.path.dirname(target))
        remove_file(target)
        if not env.execute(f"{com_prefix} {target}", command):
            return False

        depfile = vars["_DEPFILE"]
        deps = list(sources)
        if os.path.exists(depfile):
            for dep in parse_makefile_deps(depfile, target):
                if dep not in deps:
                    deps.append(dep)
            os.remove(depfile)
        cache.register_build(target, command, deps, env)
        return target
