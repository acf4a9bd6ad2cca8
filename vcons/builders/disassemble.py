# SPDX-License-Identifier: MIT
"""Disassemble builder: write an object file's disassembly to the target."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any

from vcons.core.builder import BaseBuilder

if TYPE_CHECKING:
    from vcons.core.cache import Cache
    from vcons.core.environment import Environment
    from vcons.core.varset import VarSet

logger = logging.getLogger(__name__)


class Disassemble(BaseBuilder):
    """Produce a disassembly listing with objdump.

    The command's standard output becomes the target file.
    """

    def default_variables(self, env: Environment) -> dict[str, Any]:
        return {
            "OBJDUMP": "objdump",
            "DISASM_CMD": ["${OBJDUMP}", "${DISASM_FLAGS}", "${_SOURCES}"],
            "DISASM_FLAGS": ["--disassemble", "--source"],
        }

    def run(
        self,
        target: str,
        sources: list[str],
        cache: Cache,
        env: Environment,
        vars: VarSet,
    ) -> str | bool:
        vars = vars.merge({"_SOURCES": sources})
        command = env.build_command("${DISASM_CMD}", vars)
        if cache.up_to_date(target, command, sources, env):
            logger.debug("%s is up to date", target)
            return target
        cache.mkdir_p(os.path.dirname(target))
        if not env.execute(f"Disassemble {target}", command, stdout=target):
            return False
        cache.register_build(target, command, sources, env)
        return target
