# SPDX-License-Identifier: MIT
"""Command builder: run an arbitrary user command."""

from __future__ import annotations

from typing import TYPE_CHECKING

from vcons.core.builder import BaseBuilder

if TYPE_CHECKING:
    from vcons.core.cache import Cache
    from vcons.core.environment import Environment
    from vcons.core.varset import VarSet


class Command(BaseBuilder):
    """Run the command in ${CMD} to produce the target.

    ${_TARGET} and ${_SOURCES} are available to the command. The short
    echo text is ${CMD_DESC} (default "CMD") followed by the target.

    Example:
        env.declare_target("Command", "version.h", ["VERSION"], {
            "CMD": ["python", "gen_version.py", "${_SOURCES}", "${_TARGET}"],
            "CMD_DESC": "GEN",
        })
    """

    def run(
        self,
        target: str,
        sources: list[str],
        cache: Cache,
        env: Environment,
        vars: VarSet,
    ) -> str | bool:
        vars = vars.merge({"_TARGET": target, "_SOURCES": sources})
        command = env.build_command("${CMD}", vars)
        cmd_desc = vars["CMD_DESC"] or "CMD"
        return self.standard_build(f"{cmd_desc} {target}", target, command, sources, env, cache)
