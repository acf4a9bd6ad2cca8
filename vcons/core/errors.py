# SPDX-License-Identifier: MIT
"""Custom exceptions for vcons.

All vcons exceptions inherit from VconsError, which includes
an optional target name for better error messages.
"""

from __future__ import annotations


class VconsError(Exception):
    """Base class for all vcons exceptions.

    Attributes:
        message: The error message.
        target: Optional name of the build target the error concerns.
    """

    def __init__(
        self,
        message: str,
        target: str | None = None,
    ) -> None:
        self.message = message
        self.target = target
        super().__init__(self._format_message())

    def set_target(self, target: str) -> None:
        """Attach the target this error concerns and refresh the message."""
        self.target = target
        self.args = (self._format_message(),)

    def _format_message(self) -> str:
        if self.target and self.target not in self.message:
            return f"{self.target}: {self.message}"
        return self.message


class SubstitutionError(VconsError):
    """Error during construction variable expansion."""


class ArrayExpectedError(SubstitutionError):
    """A variable that must hold a list is absent or holds a scalar.

    Attributes:
        variable: The name of the offending variable.
    """

    def __init__(
        self,
        variable: str,
        target: str | None = None,
    ) -> None:
        self.variable = variable
        super().__init__(f"expected a list for variable {variable}", target)


class CircularReferenceError(SubstitutionError):
    """Circular variable reference detected.

    Attributes:
        chain: The chain of variables forming the cycle.
    """

    def __init__(
        self,
        chain: list[str],
        target: str | None = None,
    ) -> None:
        self.chain = chain
        cycle_str = " -> ".join(chain)
        super().__init__(f"circular variable reference: {cycle_str}", target)


class DependencyCycleError(VconsError):
    """Circular dependency detected while walking the declared targets.

    Attributes:
        cycle: The targets forming the cycle.
    """

    def __init__(
        self,
        cycle: list[str],
        target: str | None = None,
    ) -> None:
        self.cycle = cycle
        cycle_str = " -> ".join(cycle)
        super().__init__(f"dependency cycle: {cycle_str}", target)


class BuilderError(VconsError):
    """Error in a builder definition or invocation.

    Raised for unknown builder names, sources that no registered builder
    can handle, and source files of a type a builder does not understand.
    """


class BuildError(VconsError):
    """A target failed to build.

    Raised by Environment.process() after the cache has been written.
    """

    def __init__(self, target: str) -> None:
        super().__init__(f"Failed to build {target}", target)
