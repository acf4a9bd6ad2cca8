# SPDX-License-Identifier: MIT
"""Construction variable storage and expansion for vcons.

Key design principles:
1. Variables live in a layered map: a stack of immutable layers plus one
   mutable top layer. Clones share the immutable layers.
2. Reading a variable that lives in an immutable layer copies it into the
   mutable layer first (copy-on-access), so mutating the returned value
   never leaks into another VarSet.
3. Lists stay as lists: a list variable referenced inside a string expands
   to one string per element.

Supported syntax:
- Variable references: ${VAR}
- Prefix/suffix around a list: -I${CPPPATH} -> ["-Idir1", "-Idir2"]
- Several references in one string expand to every combination; the
  leftmost reference varies fastest.
- Deferred values: callables stored as variables are invoked with an
  EvalContext at expansion time and their result is expanded again.

Example:
    vs = VarSet({"CC": "gcc", "CPPPATH": ["inc", "src"]})
    vs.expand_varref(["${CC}", "-I${CPPPATH}"])
    # -> ["gcc", "-Iinc", "-Isrc"]
"""

from __future__ import annotations

import copy
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

from vcons.core.errors import (
    ArrayExpectedError,
    CircularReferenceError,
    SubstitutionError,
)

if TYPE_CHECKING:
    from vcons.core.environment import Environment


# =============================================================================
# Deferred values
# =============================================================================


@dataclass
class EvalContext:
    """Arguments handed to a deferred variable when it is expanded.

    Attributes:
        env: The Environment performing the expansion (None when a bare
             VarSet is expanded).
        vars: The VarSet the expansion is resolving against, including any
              per-target overrides.
    """

    env: Environment | None
    vars: VarSet

    def __getitem__(self, key: str) -> Any:
        return self.vars[key]


@dataclass(frozen=True)
class Deferred:
    """A variable value computed lazily at expansion time.

    Args:
        func: Callable receiving an EvalContext and returning a string,
              a list, or another template to expand.

    Example:
        env["computed"] = Deferred(lambda ctx: ctx.env["prefix"] + "44")
    """

    func: Callable[[EvalContext], Any]

    def __call__(self, context: Any) -> Any:
        return self.func(context)

    def __deepcopy__(self, memo: dict[int, Any]) -> Deferred:
        return self


# Type alias for anything a construction variable may hold
VarValue = Union[str, list, dict, Deferred, None]

_MISSING = object()

# Greedy prefix: the rightmost ${...} reference is resolved first.
_VARREF_PATTERN = re.compile(r"^(.*)\$\{([^}]+)\}(.*)$", re.DOTALL)


# =============================================================================
# VarSet
# =============================================================================


class VarSet:
    """A layered, copy-on-access collection of construction variables.

    Example:
        base = VarSet({"CFLAGS": ["-Wall"]})
        debug = base.clone()
        debug["CFLAGS"].append("-g")
        base["CFLAGS"]   # ["-Wall"]
        debug["CFLAGS"]  # ["-Wall", "-g"]
    """

    __slots__ = ("_my_vars", "_coa_vars")

    def __init__(self, vars: VarSet | Mapping[str, Any] | None = None) -> None:
        """Create a VarSet.

        Args:
            vars: Optional initial variables. A VarSet is shared
                  copy-on-access, a mapping is deep-copied.
        """
        self._my_vars: dict[str, Any] = {}
        self._coa_vars: list[dict[str, Any]] = []
        if vars is not None:
            self.append(vars)

    def _lookup(self, key: str) -> Any:
        if key in self._my_vars:
            return self._my_vars[key]
        for layer in self._coa_vars:
            if key in layer:
                value = copy.deepcopy(layer[key])
                self._my_vars[key] = value
                return value
        return _MISSING

    def get(self, key: str, default: Any = None, *, kind: str | None = None) -> Any:
        """Get the value of a variable.

        Args:
            key: Variable name.
            default: Value returned when the variable is not set.
            kind: Optional coercion. "list" wraps a string in a one-element
                  list; "str" returns the first element of a list.

        Returns:
            The variable value (copied into this VarSet's mutable layer).
        """
        value = self._lookup(key)
        if value is _MISSING:
            return default
        if kind == "list" and isinstance(value, str):
            return [value]
        if kind == "str" and isinstance(value, list):
            return value[0] if value else None
        return value

    def __getitem__(self, key: str) -> Any:
        return self.get(key)

    def __setitem__(self, key: str, value: Any) -> None:
        self._my_vars[key] = _wrap_deferred(value)

    def __contains__(self, key: object) -> bool:
        if key in self._my_vars:
            return True
        return any(key in layer for layer in self._coa_vars)

    def _freeze(self) -> None:
        """Push the mutable layer onto the immutable stack."""
        if self._my_vars:
            self._coa_vars.insert(0, self._my_vars)
            self._my_vars = {}

    def append(self, values: VarSet | Mapping[str, Any]) -> VarSet:
        """Add or overwrite a set of variables.

        The current mutable layer is frozen first, so anyone holding the
        old values is unaffected.

        Args:
            values: Another VarSet or a mapping of variables.

        Returns:
            This VarSet.
        """
        self._freeze()
        if isinstance(values, VarSet):
            values._freeze()
            self._coa_vars = list(values._coa_vars) + self._coa_vars
        elif isinstance(values, Mapping):
            self._my_vars = {
                key: _wrap_deferred(copy.deepcopy(value))
                for key, value in values.items()
            }
        else:
            raise TypeError(
                f"Cannot append {type(values).__name__} to a VarSet; "
                "expected a VarSet or a mapping"
            )
        return self

    def merge(self, other: VarSet | Mapping[str, Any] | None = None) -> VarSet:
        """Create a new VarSet based on this one merged with other.

        Args:
            other: Variables to add or overwrite in the new VarSet.

        Returns:
            A new VarSet whose later modifications are independent.
        """
        self._freeze()
        varset = VarSet()
        varset._coa_vars = list(self._coa_vars)
        if other is not None:
            varset.append(other)
        return varset

    clone = merge

    def to_dict(self) -> dict[str, Any]:
        """Return a flat snapshot of all visible variables."""
        result: dict[str, Any] = {}
        for layer in reversed(self._coa_vars):
            result.update(layer)
        result.update(self._my_vars)
        return copy.deepcopy(result)

    def keys(self) -> list[str]:
        return list(self.to_dict().keys())

    def expand_varref(self, varref: Any, lambda_args: Any = None) -> Any:
        """Replace ${VAR} references in varref with variable values, recursively.

        Args:
            varref: A string, a list of templates, or a deferred value.
            lambda_args: Context passed to deferred values.

        Returns:
            A string, or a flat list of strings when any list variable
            was involved.

        Raises:
            SubstitutionError: If a reference resolves to a mapping or the
                varref has an unsupported type.
            CircularReferenceError: If a variable refers back to itself.
        """
        return self._expand(varref, lambda_args, ())

    def expand_array(self, name: str, lambda_args: Any = None) -> list[Any]:
        """Expand a variable that must hold a list.

        Raises:
            ArrayExpectedError: If the variable is absent or expands to a
                scalar.
        """
        value = self._expand(self.get(name), lambda_args, (name,))
        if not isinstance(value, list):
            raise ArrayExpectedError(name)
        return value

    def _expand(self, varref: Any, lambda_args: Any, chain: tuple[str, ...]) -> Any:
        if varref is None or isinstance(varref, (bool, int, float)):
            return varref

        if isinstance(varref, str):
            match = _VARREF_PATTERN.match(varref)
            if match is None:
                return varref
            prefix, varname, suffix = match.groups()
            if varname in chain:
                raise CircularReferenceError([*chain, varname])
            raw = self.get(varname)
            if isinstance(raw, Mapping):
                varval = raw
            else:
                varval = self._expand(raw, lambda_args, (*chain, varname))
            if isinstance(varval, list):
                result: list[Any] = []
                for element in varval:
                    _extend(
                        result,
                        self._expand(f"{prefix}{element}{suffix}", lambda_args, chain),
                    )
                return result
            if varval is None or isinstance(varval, (str, bool, int, float)):
                text = "" if varval is None else str(varval)
                return self._expand(f"{prefix}{text}{suffix}", lambda_args, chain)
            raise SubstitutionError(
                f"cannot expand a variable reference to a {type(varval).__name__} "
                f"(from {varname!r} => {raw!r})"
            )

        if isinstance(varref, (list, tuple)):
            expanded: list[Any] = []
            for element in varref:
                _extend(expanded, self._expand(element, lambda_args, chain))
            return expanded

        if isinstance(varref, Deferred) or callable(varref):
            return self._expand(varref(lambda_args), lambda_args, chain)

        raise SubstitutionError(
            f"Unknown varref type: {type(varref).__name__} ({varref!r})"
        )

    def __repr__(self) -> str:
        return f"VarSet({self.to_dict()!r})"


def _wrap_deferred(value: Any) -> Any:
    if callable(value) and not isinstance(value, (Deferred, type)):
        return Deferred(value)
    return value


def _extend(result: list[Any], value: Any) -> None:
    if isinstance(value, list):
        result.extend(value)
    else:
        result.append(value)
