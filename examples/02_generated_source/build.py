#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
"""Generate a header with a Python build step, then compile against it.

Shows a custom builder written as a plain function, a Command target,
user dependencies and build hooks.
"""

import sys
from pathlib import Path

from vcons import Environment


def write_version_header(target, sources, cache, env, vars):
    """Turn the one-line VERSION file into a C header."""
    command = ["version-header", *sources]
    if cache.up_to_date(target, command, sources, env):
        return target
    print(f"GEN {target}")
    cache.mkdir_p(str(Path(target).parent))
    version = Path(sources[0]).read_text().strip()
    Path(target).write_text(f'#define VERSION "{version}"\n')
    cache.register_build(target, command, sources, env)
    return target


with Environment(build_root="build") as env:
    env.add_builder("VersionHeader", write_version_header)
    env["CPPPATH"] = ["build/gen"]

    @env.add_build_hook
    def debug_objects(op):
        if op.target.endswith(".o"):
            op.vars["CFLAGS"].append("-g")

    env.declare_target("VersionHeader", "^/gen/version.h", ["VERSION"])
    env.declare_target(
        "Command",
        "^/gen/banner.txt",
        ["VERSION"],
        {
            "CMD": [sys.executable, "-c", "import sys; open(sys.argv[1], 'w').write('v' + open(sys.argv[2]).read())", "${_TARGET}", "${_SOURCES}"],
            "CMD_DESC": "BANNER",
        },
    )
    app = env.declare_target("Program", "^/app", ["app.c"])
    app.depends("^/gen/version.h")
