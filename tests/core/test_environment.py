# SPDX-License-Identifier: MIT
"""Tests for vcons.core.environment."""

from __future__ import annotations

import re
import sys
from pathlib import Path

import pytest

from vcons.builders import DEFAULT_BUILDERS
from vcons.core.builder import BaseBuilder, SimpleBuilder
from vcons.core.cache import CACHE_FILE, Cache
from vcons.core.environment import BuildOperation, Environment
from vcons.core.errors import (
    ArrayExpectedError,
    BuildError,
    BuilderError,
    DependencyCycleError,
)
from vcons.core.target import BuildTarget

# Concatenate the files named after the first argument into the first argument
PY_CAT = [
    sys.executable,
    "-c",
    "import sys; open(sys.argv[1], 'w').write(''.join(open(f).read() for f in sys.argv[2:]))",
]

PY_FAIL = [sys.executable, "-c", "import sys; sys.exit(1)"]


def cat_vars(**extra):
    """Per-target variables for a Command that concatenates its sources."""
    return {"CMD": [*PY_CAT, "${_TARGET}", "${_SOURCES}"], **extra}


class TestEnvironmentBasic:
    def test_default_builders(self):
        env = Environment()
        assert sorted(env.builders) == sorted(b().name for b in DEFAULT_BUILDERS)

    def test_exclude_some_builders(self):
        env = Environment(exclude_builders=["Program", "Library"])
        assert "Program" not in env.builders
        assert "Object" in env.builders

    def test_exclude_all_builders(self):
        env = Environment(exclude_builders="all")
        assert env.builders == {}
        assert "CC" not in env

    def test_builder_defaults_seeded(self):
        env = Environment()
        assert env["CC"] == "gcc"
        assert env["OBJSUFFIX"] == ".o"

    def test_initial_variables_override_defaults(self):
        env = Environment({"CC": "clang"})
        assert env["CC"] == "clang"

    def test_variable_access(self):
        env = Environment()
        env["MY_FLAGS"] = ["-x"]
        env["MY_FLAGS"].append("-y")
        assert env["MY_FLAGS"] == ["-x", "-y"]
        assert "MY_FLAGS" in env
        assert env.get_var("MY_FLAGS", kind="str") == "-x"
        assert env.get_var("missing", "dflt") == "dflt"

    def test_append(self):
        env = Environment()
        env.append({"CC": "clang", "CXX": "clang++"})
        assert env["CC"] == "clang"
        assert env["CXX"] == "clang++"

    def test_unknown_echo_mode(self):
        with pytest.raises(ValueError, match="echo"):
            Environment(echo="loud")

    def test_echo_from_environment(self, monkeypatch):
        monkeypatch.setenv("VCONS_ECHO", "command")
        assert Environment().echo == "command"

    def test_cache_file_from_environment(self, monkeypatch):
        monkeypatch.setenv("VCONS_CACHE", "my.cache")
        assert Environment().cache_file == Path("my.cache")

    def test_repr(self):
        assert "Program" in repr(Environment())


class TestBuilderRegistration:
    def test_add_builder_does_not_overwrite(self):
        class Tool(BaseBuilder):
            def default_variables(self, env):
                return {"CC": "tcc", "TOOL": "tool"}

            def run(self, target, sources, cache, env, vars):
                return target

        env = Environment()
        env["CC"] = "clang"
        env.add_builder(Tool())
        assert env["CC"] == "clang"
        assert env["TOOL"] == "tool"
        assert "Tool" in env.builders

    def test_add_builder_class(self):
        class Stamp(BaseBuilder):
            def run(self, target, sources, cache, env, vars):
                return target

        env = Environment()
        builder = env.add_builder(Stamp)
        assert env.builders["Stamp"] is builder

    def test_add_builder_from_function(self):
        env = Environment()
        builder = env.add_builder("Noop", lambda target, sources, cache, env, vars: target)
        assert isinstance(builder, SimpleBuilder)
        assert builder.name == "Noop"

    def test_add_builder_name_without_action(self):
        with pytest.raises(BuilderError):
            Environment().add_builder("Noop")

    def test_unknown_builder(self):
        env = Environment()
        with pytest.raises(BuilderError, match="Unknown builder"):
            env.declare_target("Frobnicate", "out", ["in"])

    def test_bad_vars_type(self):
        env = Environment()
        with pytest.raises(BuilderError, match="construction variable"):
            env.declare_target("Command", "out", ["in"], ["CMD", "true"])


class TestBuildPaths:
    def test_build_root(self):
        env = Environment(build_root="build")
        assert env.get_build_fname("src/one.c", ".o") == "build/src/one.o"

    def test_no_build_root(self):
        env = Environment()
        assert env.get_build_fname("src/one.c", ".o") == "src/one.o"

    def test_absolute_source_not_moved(self):
        env = Environment(build_root="build")
        assert env.get_build_fname("/tmp/one.c", ".o") == "/tmp/one.o"

    def test_already_under_build_root(self):
        env = Environment(build_root="build")
        assert env.get_build_fname("build/gen/parser.c", ".o") == "build/gen/parser.o"

    def test_build_dir_mapping(self):
        env = Environment(build_root="build_root")
        env.build_dir("src", "build/src")
        assert env.get_build_fname("src/one.c", ".o") == "build/src/one.o"
        assert env.get_build_fname("lib/two.c", ".o") == "build_root/lib/two.o"

    def test_build_dir_trailing_slashes(self):
        env = Environment()
        env.build_dir("src/", "build_one/")
        assert env.get_build_fname("src/one.c", ".o") == "build_one/one.o"

    def test_build_dir_regex(self):
        env = Environment()
        env.build_dir(re.compile(r"^src/([^/]+)/"), r"build_\1/")
        assert env.get_build_fname("src/one/one.c", ".o") == "build_one/one.o"
        assert env.get_build_fname("src/two/two.c", ".o") == "build_two/two.o"

    def test_later_build_dir_takes_priority(self):
        env = Environment()
        env.build_dir("src", "first")
        env.build_dir("src", "second")
        assert env.get_build_fname("src/one.c", ".o") == "second/one.o"

    def test_backslashes_normalized(self):
        env = Environment()
        assert env.get_build_fname("src\\one.c", ".o") == "src/one.o"

    def test_expand_path(self):
        env = Environment(build_root="build")
        assert env.expand_path("^/gen/parser.c") == "build/gen/parser.c"
        assert env.expand_path("src/^/x") == "src/^/x"

    def test_expand_path_without_build_root(self):
        assert Environment().expand_path("^/gen.c") == "^/gen.c"


class TestClone:
    def test_variables_are_independent(self):
        env = Environment()
        env["CFLAGS"] = ["-Wall"]
        debug = env.clone()
        debug["CFLAGS"].append("-g")
        env["CFLAGS"].append("-O2")
        assert debug["CFLAGS"] == ["-Wall", "-g"]
        assert env["CFLAGS"] == ["-Wall", "-O2"]

    def test_clone_with_variables(self):
        env = Environment()
        other = env.clone({"CC": "clang"})
        assert other["CC"] == "clang"
        assert env["CC"] == "gcc"

    def test_clone_none(self):
        env = Environment(build_root="build")
        env["X"] = "x"
        bare = env.clone(clone="none")
        assert bare.builders == {}
        assert "X" not in bare
        assert bare.build_root is None

    def test_clone_selected_parts(self):
        env = Environment(build_root="build")
        env.build_dir("src", "obj")
        env["X"] = "x"
        partial = env.clone(clone={"builders", "build_dirs"})
        assert "Program" in partial.builders
        assert partial.get_build_fname("src/a.c", ".o") == "obj/a.o"
        assert partial["X"] is None
        assert partial.build_root is None

    def test_clone_hooks(self):
        env = Environment()
        hook = env.add_build_hook(lambda op: None)
        assert hook in env.clone()._build_hooks["pre"]
        assert hook not in env.clone(clone="variables")._build_hooks["pre"]

    def test_clone_build_root_override(self):
        env = Environment(build_root="build")
        assert env.clone(build_root="other").build_root == "other"

    def test_unknown_clone_part(self):
        with pytest.raises(ValueError):
            Environment().clone(clone={"variables", "targets"})

    def test_targets_not_cloned(self):
        env = Environment()
        env.declare_target("Command", "out", ["in"], cat_vars())
        assert env.clone().targets == {}


class TestExpansion:
    def test_expand_varref_with_extra_vars(self):
        env = Environment()
        assert env.expand_varref("${CC} ${X}", {"X": "y"}) == "gcc y"
        assert "X" not in env

    def test_deferred_sees_environment(self):
        env = Environment()
        env["prefix"] = "-DVAL="
        env["computed"] = lambda ctx: ctx.env["prefix"] + "44"
        assert env.expand_varref("${computed}") == "-DVAL=44"

    def test_build_command_flattens(self):
        env = Environment()
        env["CFLAGS"] = ["-O2", "-g"]
        assert env.build_command(["${CC}", "${CFLAGS}"]) == ["gcc", "-O2", "-g"]
        assert env.build_command("${CC}") == ["gcc"]


class TestProcess:
    def test_builds_and_skips_when_up_to_date(self, workdir, capsys):
        Path("a.txt").write_text("A\n")
        env = Environment()
        env.declare_target("Command", "out.txt", ["a.txt"], cat_vars())
        env.process()
        assert Path("out.txt").read_text() == "A\n"
        assert "CMD out.txt" in capsys.readouterr().out
        assert env.targets == {}

        env.declare_target("Command", "out.txt", ["a.txt"], cat_vars())
        env.process()
        assert capsys.readouterr().out == ""

    def test_rebuilds_when_source_changes(self, workdir, capsys):
        Path("a.txt").write_text("A\n")
        with Environment() as env:
            env.declare_target("Command", "out.txt", ["a.txt"], cat_vars())
        capsys.readouterr()

        Path("a.txt").write_text("B\n")
        with Environment() as env:
            env.declare_target("Command", "out.txt", ["a.txt"], cat_vars())
        assert "CMD out.txt" in capsys.readouterr().out
        assert Path("out.txt").read_text() == "B\n"

    def test_rebuilds_when_command_changes(self, workdir, capsys):
        Path("a.txt").write_text("A\n")
        with Environment() as env:
            env.declare_target("Command", "out.txt", ["a.txt"], cat_vars())
        capsys.readouterr()

        with Environment() as env:
            env.declare_target("Command", "out.txt", ["a.txt", "a.txt"], cat_vars())
        assert "CMD out.txt" in capsys.readouterr().out
        assert Path("out.txt").read_text() == "A\nA\n"

    def test_targets_built_in_dependency_order(self, workdir):
        Path("a.txt").write_text("A\n")
        env = Environment()
        # declared before the target it consumes
        env.declare_target("Command", "final.txt", ["mid.txt"], cat_vars())
        env.declare_target("Command", "mid.txt", ["a.txt"], cat_vars())
        env.process()
        assert Path("final.txt").read_text() == "A\n"

    def test_target_variables(self, workdir):
        Path("a.txt").write_text("A\n")
        env = Environment()
        env["CMD"] = [*PY_CAT, "${_TARGET}", "${_SOURCES}"]
        env.declare_target("Command", "${OUT}/out.txt", ["a.txt"])
        env["OUT"] = "gen"
        env.process()
        assert Path("gen/out.txt").read_text() == "A\n"
        assert "gen" in Cache().directories()

    def test_build_root_prefix(self, workdir):
        Path("a.txt").write_text("A\n")
        env = Environment(build_root="build")
        env.declare_target("Command", "^/out.txt", ["a.txt"], cat_vars())
        env.process()
        assert Path("build/out.txt").read_text() == "A\n"

    def test_failure_raises_after_writing_cache(self, workdir, capsys):
        Path("a.txt").write_text("A\n")
        env = Environment()
        env.declare_target("Command", "good.txt", ["a.txt"], cat_vars())
        env.declare_target("Command", "bad.txt", ["good.txt"], {"CMD": PY_FAIL})
        with pytest.raises(BuildError, match="Failed to build bad.txt"):
            env.process()
        assert "Failed command was:" in capsys.readouterr().out
        assert Cache().targets() == ["good.txt"]

    def test_failed_target_not_cached(self, workdir):
        env = Environment()
        env.declare_target("Command", "bad.txt", [], {"CMD": PY_FAIL})
        with pytest.raises(BuildError):
            env.process()
        assert Path(CACHE_FILE).exists()
        assert Cache().targets() == []

    def test_dependency_cycle(self, workdir):
        env = Environment()
        env.declare_target("Command", "a.txt", ["b.txt"], cat_vars())
        env.declare_target("Command", "b.txt", ["a.txt"], cat_vars())
        with pytest.raises(DependencyCycleError) as exc_info:
            env.process()
        assert exc_info.value.cycle[0] == exc_info.value.cycle[-1]

    def test_builder_exception_is_wrapped(self, workdir):
        def explode(target, sources, cache, env, vars):
            raise RuntimeError("boom")

        env = Environment()
        env.add_builder("Explode", explode)
        env.declare_target("Explode", "out", [])
        with pytest.raises(BuildError) as exc_info:
            env.process()
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_configuration_error_names_target(self, workdir):
        def needs_list(target, sources, cache, env, vars):
            return vars.expand_array("ITEMS")

        env = Environment()
        env.add_builder("NeedsList", needs_list)
        env["ITEMS"] = "one"
        env.declare_target("NeedsList", "out.txt", [])
        with pytest.raises(ArrayExpectedError) as exc_info:
            env.process()
        assert exc_info.value.target == "out.txt"
        assert "out.txt" in str(exc_info.value)

    def test_error_keeps_its_own_target(self, workdir):
        def complain(target, sources, cache, env, vars):
            raise BuilderError("bad input", "in.txt")

        env = Environment()
        env.add_builder("Complain", complain)
        env.declare_target("Complain", "out.txt", [])
        with pytest.raises(BuilderError) as exc_info:
            env.process()
        assert exc_info.value.target == "in.txt"
        assert str(exc_info.value) == "in.txt: bad input"

    def test_extra_arguments_reach_builder(self, workdir):
        seen = []

        def record(target, sources, cache, env, vars, *args):
            seen.append(args)
            return target

        env = Environment()
        env.add_builder("Record", record)
        env.declare_target("Record", "out.txt", [], None, "fast", 3)
        env.declare_target("Record", "plain.txt", [])
        env.process()
        assert sorted(seen) == [(), ("fast", 3)]

    def test_python_builder(self, workdir):
        def upper(target, sources, cache, env, vars):
            Path(target).write_text(Path(sources[0]).read_text().upper())
            return target

        Path("a.txt").write_text("hello")
        with Environment() as env:
            env.add_builder("Upper", upper)
            env.declare_target("Upper", "A.TXT", ["a.txt"])
        assert Path("A.TXT").read_text() == "HELLO"

    def test_context_manager_skips_process_on_error(self, workdir):
        Path("a.txt").write_text("A\n")
        with pytest.raises(KeyError):
            with Environment() as env:
                env.declare_target("Command", "out.txt", ["a.txt"], cat_vars())
                raise KeyError("stop")
        assert not Path("out.txt").exists()

    def test_process_with_nothing_declared(self, workdir):
        Environment().process()
        assert not Path(CACHE_FILE).exists()


class TestUserDeps:
    def test_user_dep_change_rebuilds(self, workdir, capsys):
        Path("a.txt").write_text("A\n")
        Path("extra.cfg").write_text("1\n")

        def declare(env):
            target = env.declare_target("Command", "out.txt", ["a.txt"], cat_vars())
            target.depends("extra.cfg")

        with Environment() as env:
            declare(env)
        with Environment() as env:
            declare(env)
        capsys.readouterr()

        Path("extra.cfg").write_text("2\n")
        with Environment() as env:
            declare(env)
        assert "CMD out.txt" in capsys.readouterr().out

    def test_depends_expands_names(self):
        env = Environment(build_root="build")
        env["NAME"] = "app"
        env.depends("^/${NAME}", "${NAME}.ld", "${NAME}.ld")
        assert env.get_user_deps("build/app") == ["app.ld"]
        assert env.get_user_deps("other") is None


class TestBuildHooks:
    def test_pre_hook_changes_vars(self, workdir):
        Path("a.txt").write_text("A\n")
        env = Environment()
        env["CMD"] = PY_FAIL

        @env.add_build_hook
        def fix_command(op: BuildOperation) -> None:
            op.vars["CMD"] = [*PY_CAT, "${_TARGET}", "${_SOURCES}"]

        env.declare_target("Command", "out.txt", ["a.txt"])
        env.process()
        assert Path("out.txt").read_text() == "A\n"

    def test_post_hook_only_after_success(self, workdir):
        Path("a.txt").write_text("A\n")
        seen = []
        env = Environment()
        env.add_post_build_hook(lambda op: seen.append(op.target))
        env.declare_target("Command", "good.txt", ["a.txt"], cat_vars())
        env.declare_target("Command", "bad.txt", ["good.txt"], {"CMD": PY_FAIL})
        with pytest.raises(BuildError):
            env.process()
        assert seen == ["good.txt"]

    def test_hook_declares_new_target(self, workdir):
        Path("a.txt").write_text("A\n")
        env = Environment()

        def add_copy(op: BuildOperation) -> None:
            if op.target == "out.txt":
                op.env.declare_target("Command", "copy.txt", ["out.txt"], cat_vars())

        env.add_post_build_hook(add_copy)
        env.declare_target("Command", "out.txt", ["a.txt"], cat_vars())
        env.process()
        assert Path("copy.txt").read_text() == "A\n"

    def test_hook_sees_operation(self, workdir):
        Path("a.txt").write_text("A\n")
        ops = []
        env = Environment()
        env.add_build_hook(ops.append)
        env.declare_target("Command", "out.txt", ["a.txt"], cat_vars())
        env.process()
        (op,) = ops
        assert op.builder is env.builders["Command"]
        assert op.target == "out.txt"
        assert op.sources == ["a.txt"]
        assert op.env is env


class TestEcho:
    def test_command_echo(self, workdir, capsys):
        Path("a.txt").write_text("A\n")
        with Environment(echo="command") as env:
            env.declare_target("Command", "out.txt", ["a.txt"], cat_vars())
        out = capsys.readouterr().out
        assert sys.executable in out
        assert "'import sys;" in out

    def test_echo_off(self, workdir, capsys):
        Path("a.txt").write_text("A\n")
        with Environment(echo="off") as env:
            env.declare_target("Command", "out.txt", ["a.txt"], cat_vars())
        assert capsys.readouterr().out == ""

    def test_command_description(self, workdir, capsys):
        Path("a.txt").write_text("A\n")
        with Environment() as env:
            env.declare_target("Command", "out.txt", ["a.txt"], cat_vars(CMD_DESC="CAT"))
        assert capsys.readouterr().out.strip() == "CAT out.txt"


class TestDeclareTarget:
    def test_returns_build_target(self):
        env = Environment()
        target = env.declare_target("Command", "out.txt", "in.txt", cat_vars())
        assert isinstance(target, BuildTarget)
        assert target == "out.txt"
        assert str(target) == "out.txt"
        assert env.targets["out.txt"].sources == ["in.txt"]

    def test_build_target_as_source(self):
        env = Environment()
        mid = env.declare_target("Command", "mid.txt", ["a.txt"], cat_vars())
        env.declare_target("Command", "out.txt", [mid], cat_vars())
        assert env.targets["out.txt"].sources == ["mid.txt"]

    def test_redeclaring_replaces(self):
        env = Environment()
        env.declare_target("Command", "out.txt", ["a.txt"], cat_vars())
        env.declare_target("Command", "out.txt", ["b.txt"], cat_vars())
        assert env.targets["out.txt"].sources == ["b.txt"]

    def test_clear_targets(self):
        env = Environment()
        env.declare_target("Command", "out.txt", ["a.txt"], cat_vars())
        env.clear_targets()
        assert env.targets == {}


@pytest.mark.skipif(sys.platform == "win32", reason="uses sh")
class TestShell:
    def test_shell_output(self):
        env = Environment(shell=["sh", "-c"])
        assert env.shell("echo hello").strip() == "hello"

    def test_shell_detected_once(self):
        env = Environment()
        first = env.shell_command
        assert env.shell_command is first
        assert env.clone().shell_command == first
