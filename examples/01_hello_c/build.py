#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
"""Build script for a simple C program.

Run with ``vcons`` from this directory (``vcons MODE=debug`` for a debug
build), or directly with ``python build.py``. Object files go under
build/<mode>/; ``vcons clean`` removes everything that was built.
"""

from vcons import Environment, get_var

mode = get_var("MODE", "release")

with Environment(build_root=f"build/{mode}") as env:
    env["CFLAGS"] = ["-Wall", "-O0", "-g"] if mode == "debug" else ["-Wall", "-O2"]
    env["CPPPATH"] = ["src"]
    env["CPPDEFINES"] = [f"BUILD_MODE=\"{mode}\""]
    env.declare_target("Program", "^/hello", ["src/hello.c", "src/greet.c"])
