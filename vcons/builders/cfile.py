# SPDX-License-Identifier: MIT
"""CFile builder: generate C or C++ sources with lex or yacc."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from vcons.core.builder import BaseBuilder
from vcons.core.errors import BuilderError
from vcons.util.paths import has_suffix

if TYPE_CHECKING:
    from vcons.core.cache import Cache
    from vcons.core.environment import Environment
    from vcons.core.varset import VarSet


class CFile(BaseBuilder):
    """Build a C or C++ source file from a lex or yacc input file.

    Examples:
        env.declare_target("CFile", "parser.tab.cc", ["parser.yy"])
        env.declare_target("CFile", "lex.yy.cc", ["parser.ll"])
    """

    def default_variables(self, env: Environment) -> dict[str, Any]:
        return {
            "YACC": "bison",
            "YACC_FLAGS": ["-d"],
            "YACC_CMD": ["${YACC}", "${YACC_FLAGS}", "-o", "${_TARGET}", "${_SOURCES}"],
            "LEX": "flex",
            "LEX_FLAGS": [],
            "LEX_CMD": ["${LEX}", "${LEX_FLAGS}", "-o", "${_TARGET}", "${_SOURCES}"],
        }

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
        vars = vars.merge({"_TARGET": target, "_SOURCES": sources})
        if has_suffix(sources[0], [".l", ".ll"]):
            cmd = "LEX"
        elif has_suffix(sources[0], [".y", ".yy"]):
            cmd = "YACC"
        else:
            raise BuilderError(f"unknown input file type: {sources[0]!r}", target)
        command = env.build_command(f"${{{cmd}_CMD}}", vars)
        return self.standard_build(f"{cmd} {target}", target, command, sources, env, cache)
