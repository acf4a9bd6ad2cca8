# SPDX-License-Identifier: MIT
"""Declared build targets.

A Target binds a builder to a target path, its sources and per-target
construction variable overrides. Declaring a target returns a
BuildTarget handle that can record extra (user) dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from vcons.core.builder import Builder
    from vcons.core.environment import Environment


@dataclass
class Target:
    """A target waiting to be built by Environment.process().

    Attributes:
        name: Target file name (may contain ${VAR} references until the
              environment resolves paths).
        builder: Builder that produces the target.
        sources: Source file names, in order.
        vars: Construction variable overrides for this target only.
        args: Extra builder-specific arguments.
        resolved: Whether name and sources have been expanded.
    """

    name: str
    builder: Builder
    sources: list[str] = field(default_factory=list)
    vars: dict[str, Any] = field(default_factory=dict)
    args: tuple[Any, ...] = ()
    resolved: bool = False


class BuildTarget:
    """Handle returned when a target is declared.

    Example:
        program = env.declare_target("Program", "app", ["main.c"])
        program.depends("linker.ld")
    """

    __slots__ = ("_env", "_target")

    def __init__(self, env: Environment, target: str) -> None:
        self._env = env
        self._target = target

    @property
    def name(self) -> str:
        return self._target

    def depends(self, *user_deps: str) -> BuildTarget:
        """Manually record this target as depending on the given files."""
        self._env.depends(self._target, *user_deps)
        return self

    def __str__(self) -> str:
        return self._target

    def __fspath__(self) -> str:
        return self._target

    def __eq__(self, other: object) -> bool:
        if isinstance(other, BuildTarget):
            return self._target == other._target
        if isinstance(other, str):
            return self._target == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._target)

    def __repr__(self) -> str:
        return f"BuildTarget({self._target!r})"
