# SPDX-License-Identifier: MIT
"""Builder protocol and base implementation.

A Builder knows how to produce a target file from source files. The
Environment registers builders by name, seeds their default construction
variables, and calls run() for each declared target. Builders decide for
themselves whether work is needed by consulting the Cache.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol, Union, runtime_checkable

from vcons.core.target import BuildTarget

if TYPE_CHECKING:
    from vcons.core.cache import Cache
    from vcons.core.environment import Environment
    from vcons.core.varset import VarSet

# What run() returns: the produced target(s), or False on failure
BuildResult = Union[str, list[str], bool, None]


@runtime_checkable
class Builder(Protocol):
    """Protocol for builders.

    A Builder can produce certain targets from certain sources. Any object
    implementing these methods can be registered with an Environment.
    """

    @property
    def name(self) -> str:
        """Builder name used to declare targets (e.g., 'Program')."""
        ...

    def default_variables(self, env: Environment) -> dict[str, Any]:
        """Construction variables to seed unless the user already set them."""
        ...

    def produces(self, target: str, source: str, env: Environment) -> bool:
        """Return whether this builder can produce target from source."""
        ...

    def create_build_target(
        self,
        env: Environment,
        target: str,
        sources: list[str],
        vars: dict[str, Any],
    ) -> BuildTarget:
        """Create the handle for a newly declared target."""
        ...

    def run(
        self,
        target: str,
        sources: list[str],
        cache: Cache,
        env: Environment,
        vars: VarSet,
        *args: Any,
    ) -> BuildResult:
        """Build target from sources.

        Args:
            target: Target file name.
            sources: Source file names.
            cache: The Cache used to decide whether work is needed.
            env: The Environment executing the builder.
            vars: Construction variables for this build.
            *args: Extra arguments given to declare_target, if any.

        Returns:
            The target file name(s) on success, False on failure.
        """
        ...


class BaseBuilder(ABC):
    """Abstract base class for builders.

    Provides defaults for everything but run(). Subclasses that simply
    expand a command and run it delegate to standard_build().
    """

    def __init__(self, name: str | None = None) -> None:
        """Initialize a builder.

        Args:
            name: Registry name. Defaults to the class name.
        """
        self._name = name or type(self).__name__

    @property
    def name(self) -> str:
        return self._name

    def default_variables(self, env: Environment) -> dict[str, Any]:
        return {}

    def produces(self, target: str, source: str, env: Environment) -> bool:
        return False

    def create_build_target(
        self,
        env: Environment,
        target: str,
        sources: list[str],
        vars: dict[str, Any],
    ) -> BuildTarget:
        return BuildTarget(env, target)

    @abstractmethod
    def run(
        self,
        target: str,
        sources: list[str],
        cache: Cache,
        env: Environment,
        vars: VarSet,
        *args: Any,
    ) -> BuildResult: ...

    def standard_build(
        self,
        short_cmd_string: str,
        target: str,
        command: list[str],
        sources: list[str],
        env: Environment,
        cache: Cache,
    ) -> str | bool:
        """Check if the target needs to be built and build it if so.

        Args:
            short_cmd_string: Short description printed in "short" echo mode.
            target: Target file name.
            command: The command to execute.
            sources: Dependencies recorded for the target.
            env: The Environment executing the builder.
            cache: The Cache.

        Returns:
            The target name on success or False on failure.
        """
        if not cache.up_to_date(target, command, sources, env):
            cache.mkdir_p(os.path.dirname(target))
            remove_file(target)
            if not env.execute(short_cmd_string, command):
                return False
            cache.register_build(target, command, sources, env)
        return target

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r})"


# Signature of the callable wrapped by SimpleBuilder
BuildAction = Callable[[str, list[str], "Cache", "Environment", "VarSet"], BuildResult]


class SimpleBuilder(BaseBuilder):
    """A builder whose name and action are given at instantiation.

    Example:
        def json_to_yaml(target, sources, cache, env, vars):
            ...
            return target

        env.add_builder(SimpleBuilder("JsonToYaml", json_to_yaml))
    """

    def __init__(self, name: str, action: BuildAction) -> None:
        """Create a new builder with the given name and action.

        Args:
            name: The name of this builder when registered.
            action: Callable with the same signature as run(); it must
                return the target on success or False on failure.
        """
        super().__init__(name)
        self._action = action

    def run(
        self,
        target: str,
        sources: list[str],
        cache: Cache,
        env: Environment,
        vars: VarSet,
        *args: Any,
    ) -> BuildResult:
        return self._action(target, sources, cache, env, vars, *args)


def remove_file(path: str) -> None:
    """Remove a file, ignoring a file that is already gone."""
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


__all__ = [
    "BaseBuilder",
    "BuildResult",
    "Builder",
    "SimpleBuilder",
    "remove_file",
]
