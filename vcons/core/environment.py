# SPDX-License-Identifier: MIT
"""Environment: construction variables, builders and the build graph executor.

An Environment holds the construction variables for a build, a registry
of builders, the declared targets and the build hooks. process() builds
every declared target in dependency order, consulting the Cache so that
unchanged targets are skipped.

Example:
    with Environment(echo="command") as env:
        env["CFLAGS"] = ["-O2"]
        env.declare_target("Program", "hello", ["hello.c"])
    # process() runs when the with block exits cleanly
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from vcons.core.builder import Builder, BuildResult, SimpleBuilder
from vcons.core.cache import CACHE_FILE, Cache
from vcons.core.errors import (
    BuildError,
    BuilderError,
    DependencyCycleError,
    SubstitutionError,
    VconsError,
)
from vcons.core.target import BuildTarget, Target
from vcons.core.varset import EvalContext, VarSet
from vcons.util.commands import format_command, run_command, run_shell
from vcons.util.paths import has_suffix, is_absolute, normalize, set_suffix

logger = logging.getLogger(__name__)

ECHO_MODES = ("short", "command", "off")

# Attributes copied by clone(clone="all")
CLONE_ALL = frozenset({"variables", "builders", "build_root", "build_dirs", "build_hooks"})


@dataclass
class BuildOperation:
    """Everything a build hook can see (and change) about one target build.

    Attributes:
        builder: The builder about to run.
        target: Target file name.
        sources: Source file names.
        vars: Construction variables for this build; hooks may modify them.
        env: The Environment performing the build.
        args: Extra arguments given to declare_target, passed on to run().
    """

    builder: Builder
    target: str
    sources: list[str]
    vars: VarSet
    env: Environment
    args: tuple[Any, ...] = ()


BuildHook = Callable[[BuildOperation], Any]


class Environment:
    """A build environment and the executor for its declared targets.

    Construction variables are accessed with item syntax:
        env["CC"] = "clang"
        env["CPPPATH"].append("include")

    Targets are declared through the builder registry:
        obj = env.declare_target("Object", "build/main.o", ["main.c"])
        env.declare_target("Program", "app", [obj])

    Attributes:
        echo: How commands are echoed: "short", "command" or "off".
        build_root: Directory for intermediate files when no build_dir
            mapping applies (also what a leading "^/" expands to).
        cache_file: Location of the build cache.
    """

    def __init__(
        self,
        variables: VarSet | Mapping[str, Any] | None = None,
        *,
        echo: str | None = None,
        build_root: str | None = None,
        exclude_builders: Iterable[str] | str | None = None,
        builders: Iterable[Builder | type] | None = None,
        cache_file: Path | str | None = None,
        shell: list[str] | None = None,
    ) -> None:
        """Create an environment.

        Args:
            variables: Initial construction variables.
            echo: Echo mode (default: $VCONS_ECHO or "short").
            build_root: Root directory for intermediate build files.
            exclude_builders: Names of default builders not to register,
                or "all" to register none of them.
            builders: Additional builders (instances or classes) to register.
            cache_file: Cache location (default: $VCONS_CACHE or .vconscache).
            shell: Shell invocation prefix for shell(); probed on first use
                when not given.
        """
        from vcons import get_var
        from vcons.builders import DEFAULT_BUILDERS

        self._varset = VarSet()
        self._targets: dict[str, Target] = {}
        self._user_deps: dict[str, list[str]] = {}
        self._builders: dict[str, Builder] = {}
        self._build_dirs: list[tuple[str | re.Pattern[str], str]] = []
        self._build_hooks: dict[str, list[BuildHook]] = {"pre": [], "post": []}
        self._shell = list(shell) if shell is not None else None
        self._command_executer: list[str] | None = None

        self.echo = echo or get_var("VCONS_ECHO") or "short"
        if self.echo not in ECHO_MODES:
            raise ValueError(
                f"Unknown echo mode {self.echo!r}; expected one of {', '.join(ECHO_MODES)}"
            )
        self.build_root = build_root
        self.cache_file = Path(cache_file or get_var("VCONS_CACHE") or CACHE_FILE)

        if exclude_builders != "all":
            excluded = set(exclude_builders or [])
            for builder_class in DEFAULT_BUILDERS:
                builder = builder_class()
                if builder.name not in excluded:
                    self.add_builder(builder)
        for extra in builders or []:
            self.add_builder(extra)

        if variables is not None:
            self.append(variables)

    # -------------------------------------------------------------------------
    # Context manager: process() on a clean exit
    # -------------------------------------------------------------------------

    def __enter__(self) -> Environment:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if exc_type is None:
            self.process()

    # -------------------------------------------------------------------------
    # Construction variables
    # -------------------------------------------------------------------------

    def __getitem__(self, key: str) -> Any:
        return self._varset[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._varset[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self._varset

    def get_var(self, key: str, default: Any = None, *, kind: str | None = None) -> Any:
        """Get a construction variable, optionally coerced ("list" or "str")."""
        return self._varset.get(key, default, kind=kind)

    @property
    def varset(self) -> VarSet:
        return self._varset

    def append(self, values: VarSet | Mapping[str, Any]) -> Environment:
        """Add or overwrite a set of construction variables."""
        self._varset.append(values)
        return self

    def expand_varref(
        self,
        varref: Any,
        extra_vars: VarSet | Mapping[str, Any] | None = None,
    ) -> Any:
        """Expand ${VAR} references in varref.

        Args:
            varref: Template string, list of templates, or deferred value.
            extra_vars: Variables layered over this environment's for this
                expansion only.

        Returns:
            A string or a flat list of strings.
        """
        varset = self._varset.merge(extra_vars) if extra_vars else self._varset
        return varset.expand_varref(varref, EvalContext(env=self, vars=varset))

    def expand_array(
        self,
        name: str,
        extra_vars: VarSet | Mapping[str, Any] | None = None,
    ) -> list[Any]:
        """Expand a variable that must hold a list.

        Raises:
            ArrayExpectedError: If the variable is absent or a scalar.
        """
        varset = self._varset.merge(extra_vars) if extra_vars else self._varset
        return varset.expand_array(name, EvalContext(env=self, vars=varset))

    def build_command(
        self,
        command_template: Any,
        extra_vars: VarSet | Mapping[str, Any] | None = None,
    ) -> list[str]:
        """Expand a command template into a flat argument vector."""
        expanded = self.expand_varref(command_template, extra_vars)
        if not isinstance(expanded, list):
            expanded = [expanded]
        return [str(arg) for arg in expanded if arg is not None]

    # -------------------------------------------------------------------------
    # Builders and hooks
    # -------------------------------------------------------------------------

    def add_builder(
        self,
        builder: Builder | type | str,
        action: Callable[..., BuildResult] | None = None,
    ) -> Builder:
        """Register a builder.

        Its default construction variables are seeded without overwriting
        values already set.

        Args:
            builder: A builder instance, a builder class, or a name when
                action is given.
            action: Callable with the signature of Builder.run(); wrapped
                in a SimpleBuilder named builder.

        Returns:
            The registered builder.
        """
        if action is not None:
            builder = SimpleBuilder(str(builder), action)
        elif isinstance(builder, str):
            raise BuilderError(f"No action given for builder {builder!r}")
        elif isinstance(builder, type):
            builder = builder()
        if not isinstance(builder, Builder):
            raise BuilderError(f"{builder!r} does not implement the builder protocol")

        self._builders[builder.name] = builder
        for key, value in builder.default_variables(self).items():
            if key not in self._varset:
                self._varset[key] = value
        return builder

    @property
    def builders(self) -> dict[str, Builder]:
        """Registered builders, keyed by name."""
        return dict(self._builders)

    def add_build_hook(self, hook: BuildHook) -> BuildHook:
        """Add a hook invoked before each target is built.

        The hook receives the BuildOperation and may modify its vars or
        declare new targets. Usable as a decorator.
        """
        self._build_hooks["pre"].append(hook)
        return hook

    def add_post_build_hook(self, hook: BuildHook) -> BuildHook:
        """Add a hook invoked after each target is built successfully."""
        self._build_hooks["post"].append(hook)
        return hook

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------

    def build_dir(self, src_dir: str | re.Pattern[str], obj_dir: str) -> None:
        """Place intermediate files for sources under src_dir into obj_dir.

        Args:
            src_dir: Source directory, or a compiled regex matched against
                the start of the intermediate file name.
            obj_dir: Output directory; may use regex backreferences when
                src_dir is a regex.

        Later mappings take priority over earlier ones.
        """
        if isinstance(src_dir, str):
            src_dir = normalize(src_dir).rstrip("/")
            obj_dir = normalize(obj_dir).rstrip("/")
        self._build_dirs.insert(0, (src_dir, obj_dir))

    def get_build_fname(self, source_fname: str, suffix: str) -> str:
        """Return the intermediate file name for source_fname with suffix.

        Build directory mappings are tried first; otherwise the file is
        placed under the build root (when set), unless the source is
        absolute or already under the build root.
        """
        build_fname = normalize(set_suffix(source_fname, suffix))
        found_match = False
        for src_dir, obj_dir in self._build_dirs:
            if isinstance(src_dir, re.Pattern):
                build_fname, count = src_dir.subn(obj_dir, build_fname, count=1)
            else:
                build_fname, count = re.subn(
                    "^" + re.escape(src_dir) + "/",
                    lambda _, obj_dir=obj_dir: obj_dir + "/",
                    build_fname,
                    count=1,
                )
            if count:
                found_match = True
                break
        if self.build_root and not found_match:
            root = normalize(self.build_root).rstrip("/")
            if not (is_absolute(source_fname) or build_fname.startswith(f"{root}/")):
                build_fname = f"{root}/{build_fname}"
        return normalize(build_fname)

    def expand_path(self, path: str) -> str:
        """Expand a leading "^/" to the build root."""
        if self.build_root is None:
            return path
        root = self.build_root
        return re.sub(r"^\^(?=[\\/])", lambda _: root, path, count=1)

    def _expand_paths(self, path: Any) -> list[str]:
        expanded = self.expand_varref(str(path))
        if not isinstance(expanded, list):
            expanded = [expanded]
        return [
            normalize(self.expand_path(str(entry)))
            for entry in expanded
            if entry is not None
        ]

    def _expand_target_name(self, name: str) -> str:
        expanded = self._expand_paths(name)
        if len(expanded) != 1:
            raise SubstitutionError(
                f"target name {name!r} expands to {len(expanded)} values", name
            )
        return expanded[0]

    # -------------------------------------------------------------------------
    # Targets and dependencies
    # -------------------------------------------------------------------------

    def declare_target(
        self,
        builder_name: str,
        target: str | os.PathLike[str],
        sources: Iterable[str | os.PathLike[str]] | str | os.PathLike[str] | None = None,
        vars: VarSet | Mapping[str, Any] | None = None,
        *args: Any,
    ) -> BuildTarget:
        """Declare a target to be built by the named builder.

        Args:
            builder_name: Name of a registered builder.
            target: Target file name; may contain ${VAR} references and a
                leading "^/" for the build root.
            sources: Source file name(s).
            vars: Construction variable overrides for this target.
            *args: Extra builder-specific arguments.

        Returns:
            A BuildTarget handle.

        Raises:
            BuilderError: If no builder has that name or vars is not a
                mapping.
        """
        target = os.fspath(target) if not isinstance(target, BuildTarget) else str(target)
        builder = self._builders.get(builder_name)
        if builder is None:
            raise BuilderError(f"Unknown builder {builder_name!r}", target)
        if vars is not None and not isinstance(vars, (Mapping, VarSet)):
            raise BuilderError(
                f"Unexpected construction variable set type: {type(vars).__name__}",
                target,
            )

        if sources is None:
            source_list: list[str] = []
        elif isinstance(sources, (str, os.PathLike)):
            source_list = [os.fspath(sources)]
        else:
            source_list = [str(source) for source in sources]

        overrides: Any = vars if isinstance(vars, VarSet) else dict(vars or {})
        build_target = builder.create_build_target(self, target, source_list, overrides)
        name = str(build_target)
        self._targets[name] = Target(
            name=name,
            builder=builder,
            sources=source_list,
            vars=overrides,
            args=args,
        )
        return build_target

    def clear_targets(self) -> None:
        """Forget all declared targets."""
        self._targets = {}

    @property
    def targets(self) -> dict[str, Target]:
        """Declared targets that have not been processed yet."""
        return dict(self._targets)

    def depends(self, target: str | BuildTarget, *user_deps: str) -> None:
        """Manually record target as depending on the given files.

        A change to any of these files (or to the list itself) makes the
        target out of date.
        """
        target_name = self._expand_target_name(str(target))
        existing = self._user_deps.setdefault(target_name, [])
        for dep in user_deps:
            for expanded in self._expand_paths(dep):
                if expanded not in existing:
                    existing.append(expanded)

    def get_user_deps(self, target: str) -> list[str] | None:
        """Return the user dependencies recorded for target, if any."""
        return self._user_deps.get(target)

    # -------------------------------------------------------------------------
    # Building
    # -------------------------------------------------------------------------

    def process(self) -> None:
        """Build all declared targets.

        Target names and sources are expanded first. Sources that are
        themselves declared targets are built before the targets that use
        them. The cache is written even if a build fails.

        Raises:
            BuildError: If a builder fails.
            DependencyCycleError: If declared targets depend on each other
                in a cycle.
        """
        if not self._targets:
            return

        cache = Cache(self.cache_file)
        cache.clear_checksum_cache()
        built: dict[str, BuildResult] = {}
        building: list[str] = []
        try:
            while True:
                self._resolve_targets()
                pending = [name for name in self._targets if name not in built]
                if not pending:
                    break
                self._process_target(pending[0], cache, built, building)
        finally:
            cache.write()
        logger.debug("Processed %d targets", len(built))
        self.clear_targets()

    def _resolve_targets(self) -> None:
        """Expand names and sources of targets declared since the last call."""
        if all(target.resolved for target in self._targets.values()):
            return
        resolved: dict[str, Target] = {}
        for target in self._targets.values():
            if not target.resolved:
                target.name = self._expand_target_name(target.name)
                target.sources = [
                    path for source in target.sources for path in self._expand_paths(source)
                ]
                target.resolved = True
            resolved[target.name] = target
        self._targets = resolved

    def _process_target(
        self,
        name: str,
        cache: Cache,
        built: dict[str, BuildResult],
        building: list[str],
    ) -> BuildResult:
        if name in built:
            return built[name]
        if name in building:
            cycle = building[building.index(name):] + [name]
            raise DependencyCycleError(cycle, name)

        building.append(name)
        try:
            target = self._targets[name]
            for source in target.sources:
                if source in self._targets and source not in built:
                    self._process_target(source, cache, built, building)
            logger.debug("Processing %s (%s)", name, target.builder.name)
            result = self.run_builder(
                target.builder,
                target.name,
                target.sources,
                cache,
                target.vars,
                *target.args,
            )
            if not result:
                raise BuildError(name)
            built[name] = result
        finally:
            building.pop()
        return result

    def run_builder(
        self,
        builder: Builder,
        target: str,
        sources: list[str],
        cache: Cache,
        vars: VarSet | Mapping[str, Any] | None,
        *args: Any,
    ) -> BuildResult:
        """Invoke a builder, surrounded by the build hooks.

        Args:
            builder: The builder to run.
            target: Target file name.
            sources: Source file names.
            cache: The Cache.
            vars: Construction variable overrides for this build.
            *args: Extra builder-specific arguments.

        Returns:
            The builder's result; post-build hooks run only if it is truthy.
        """
        operation = BuildOperation(
            builder=builder,
            target=target,
            sources=list(sources),
            vars=self._varset.merge(vars or None),
            env=self,
            args=args,
        )
        for hook in self._build_hooks["pre"]:
            hook(operation)

        try:
            result = operation.builder.run(
                operation.target,
                operation.sources,
                cache,
                self,
                operation.vars,
                *operation.args,
            )
        except VconsError as e:
            if e.target is None:
                e.set_target(operation.target)
            raise
        except Exception as e:
            raise BuildError(operation.target) from e

        if result:
            for hook in self._build_hooks["post"]:
                hook(operation)
        return result

    def build_sources(
        self,
        sources: list[str],
        suffixes: str | Iterable[str],
        cache: Cache,
        vars: VarSet | Mapping[str, Any] | None,
    ) -> list[str] | None:
        """Build sources into files with one of the given suffixes.

        Sources already ending with an acceptable suffix are passed
        through. For any other source, each suffix is tried in order and
        the first builder whose produces() accepts the conversion is run.

        Returns:
            The converted file names, or None if a conversion failed.

        Raises:
            BuilderError: If no builder can handle a source.
        """
        suffix_list = [suffixes] if isinstance(suffixes, str) else list(suffixes)
        results: list[str] = []
        for source in sources:
            if has_suffix(source, suffix_list):
                results.append(source)
                continue
            converted: BuildResult = None
            for suffix in suffix_list:
                converted_fname = self.get_build_fname(source, suffix)
                builder = next(
                    (
                        candidate
                        for candidate in self._builders.values()
                        if candidate.produces(converted_fname, source, self)
                    ),
                    None,
                )
                if builder is not None:
                    converted = self.run_builder(
                        builder, converted_fname, [source], cache, vars
                    )
                    if not converted:
                        return None
                    break
            if converted is None:
                raise BuilderError(f"Could not find a builder to handle {source!r}.")
            if isinstance(converted, list):
                results.extend(converted)
            else:
                results.append(str(converted))
        return results

    # -------------------------------------------------------------------------
    # External commands
    # -------------------------------------------------------------------------

    @property
    def command_executer(self) -> list[str]:
        """Prefix for launching external commands, probed once."""
        if self._command_executer is None:
            from vcons.configure.platform import get_command_executer

            self._command_executer = get_command_executer()
        return self._command_executer

    @command_executer.setter
    def command_executer(self, value: list[str]) -> None:
        self._command_executer = list(value)

    @property
    def shell_command(self) -> list[str]:
        """Shell invocation prefix used by shell(), probed once."""
        if self._shell is None:
            from vcons.configure.platform import get_system_shell

            self._shell = get_system_shell()
        return self._shell

    def execute(
        self,
        short_desc: str,
        command: list[str],
        *,
        env: Mapping[str, str] | None = None,
        stdout: str | Path | None = None,
    ) -> bool:
        """Print a build step and run its command.

        Args:
            short_desc: Text printed in "short" echo mode.
            command: Argument vector to run.
            env: Extra environment variables for the command.
            stdout: File to write the command's standard output to.

        Returns:
            True if the command succeeded.
        """
        command = [str(arg) for arg in command]
        if self.echo == "command":
            print(format_command(command), flush=True)
        elif self.echo == "short":
            print(short_desc, flush=True)
        ok = run_command(command, prefix=self.command_executer, env=env, stdout_path=stdout)
        if not ok and self.echo != "command":
            print(f"Failed command was: {format_command(command)}", flush=True)
        return ok

    def shell(self, command: str) -> str:
        """Run a shell command line and return its standard output."""
        return run_shell(self.shell_command, command)

    # -------------------------------------------------------------------------
    # Cloning
    # -------------------------------------------------------------------------

    def clone(
        self,
        variables: VarSet | Mapping[str, Any] | None = None,
        *,
        clone: str | Iterable[str] = "all",
        echo: str | None = None,
        build_root: str | None = None,
    ) -> Environment:
        """Create a new Environment based on this one.

        Construction variables are shared copy-on-access, so changes in
        the clone never affect this environment and vice versa.

        Args:
            variables: Construction variables to set in the clone.
            clone: "all", "none", or a collection of the attributes to copy:
                "variables", "builders", "build_root", "build_dirs",
                "build_hooks".
            echo: Echo mode for the clone (default: this one's).
            build_root: Build root for the clone (overrides a cloned one).

        Returns:
            The new Environment. Targets are not copied.
        """
        if clone == "all":
            parts = set(CLONE_ALL)
        elif clone == "none":
            parts = set()
        elif isinstance(clone, str):
            parts = {clone}
        else:
            parts = set(clone)
        unknown = parts - CLONE_ALL
        if unknown:
            raise ValueError(f"Unknown clone attributes: {', '.join(sorted(unknown))}")

        env = Environment(
            echo=echo or self.echo,
            build_root=build_root,
            exclude_builders="all",
            cache_file=self.cache_file,
            shell=self._shell,
        )
        env._command_executer = self._command_executer
        if "builders" in parts:
            for builder in self._builders.values():
                env.add_builder(builder)
        if "variables" in parts:
            env.append(self._varset)
        if "build_root" in parts and build_root is None:
            env.build_root = self.build_root
        if "build_dirs" in parts:
            env._build_dirs = list(self._build_dirs)
        if "build_hooks" in parts:
            env._build_hooks = {
                "pre": list(self._build_hooks["pre"]),
                "post": list(self._build_hooks["post"]),
            }
        if variables is not None:
            env.append(variables)
        return env

    def __repr__(self) -> str:
        return (
            f"Environment(builders=[{', '.join(self._builders)}], "
            f"targets={len(self._targets)}, echo={self.echo!r})"
        )
