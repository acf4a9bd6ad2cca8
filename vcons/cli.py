# SPDX-License-Identifier: MIT
"""Command-line interface for vcons."""

from __future__ import annotations

import argparse
import json
import logging
import os
import subprocess
import sys
from pathlib import Path

logger = logging.getLogger("vcons")

DEFAULT_SCRIPT = "build.py"


def setup_logging(verbose: bool = False, debug: bool = False) -> None:
    """Route vcons diagnostics to stderr.

    Build step echo goes to stdout through print() and is not affected.
    --debug also shows which vcons module logged each message.
    """
    fmt = "%(levelname)s: %(message)s"
    level = logging.WARNING
    if debug:
        fmt = "%(levelname)s: %(name)s: %(message)s"
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    logging.basicConfig(level=level, format=fmt)


def find_script(name: str, search_dir: Path | None = None) -> Path | None:
    """Locate the build script that `vcons build` should run.

    Only search_dir (the working directory by default) is checked; vcons
    does not walk up to parent directories.

    Returns:
        The script path, or None when no regular file of that name exists.
    """
    script_path = (search_dir or Path.cwd()) / name
    return script_path if script_path.is_file() else None


def parse_variables(args: list[str]) -> tuple[dict[str, str], list[str]]:
    """Split KEY=value arguments from the rest.

    Returns:
        Tuple of (variables dict, remaining args).
    """
    variables: dict[str, str] = {}
    remaining: list[str] = []

    for arg in args:
        key, sep, value = arg.partition("=")
        if sep and key and not arg.startswith("-"):
            variables[key] = value
        else:
            remaining.append(arg)

    return variables, remaining


def run_script(
    script_path: Path,
    variables: dict[str, str] | None = None,
    echo: str | None = None,
) -> int:
    """Execute a Python build script in a subprocess.

    Args:
        script_path: Path to the script to run.
        variables: Build variables to pass via VCONS_VARS.
        echo: Echo mode to pass via VCONS_ECHO.

    Returns:
        Exit code from script execution.
    """
    env = os.environ.copy()
    if variables:
        env["VCONS_VARS"] = json.dumps(variables)
    if echo:
        env["VCONS_ECHO"] = echo

    logger.info("Running %s", script_path)
    if variables:
        logger.debug("  VCONS_VARS=%s", env["VCONS_VARS"])

    try:
        result = subprocess.run(
            [sys.executable, str(script_path)],
            env=env,
            cwd=script_path.parent,
        )
    except OSError as e:
        logger.error("Failed to run script: %s", e)
        return 1
    return result.returncode


def cmd_build(args: argparse.Namespace) -> int:
    """Run the build script."""
    setup_logging(args.verbose, args.debug)

    variables, remaining = parse_variables(getattr(args, "extra", []) or [])
    if remaining:
        logger.error("Unexpected arguments: %s", " ".join(remaining))
        return 2

    script_path = Path(args.file)
    if not script_path.is_absolute():
        found = find_script(args.file)
        if found is None:
            logger.error("No build script found: %s", args.file)
            return 1
        script_path = found
    elif not script_path.is_file():
        logger.error("No build script found: %s", script_path)
        return 1

    return run_script(script_path, variables, getattr(args, "echo", None))


def cmd_clean(args: argparse.Namespace) -> int:
    """Remove all generated files recorded in the build cache."""
    setup_logging(args.verbose, args.debug)

    from vcons import clean

    removed = clean(args.cache)
    logger.info("Removed %d files", len(removed))
    return 0


def add_common_args(parser: argparse.ArgumentParser) -> None:
    """Add common arguments to a parser."""
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--debug", action="store_true", help="Debug output")


def add_build_args(parser: argparse.ArgumentParser) -> None:
    """Add arguments for running a build script."""
    parser.add_argument(
        "-f",
        "--file",
        default=DEFAULT_SCRIPT,
        help=f"Build script to run (default: {DEFAULT_SCRIPT})",
    )
    parser.add_argument(
        "--echo",
        choices=["short", "command", "off"],
        help="How build steps are printed (default: short)",
    )
    parser.add_argument("extra", nargs="*", help="Build variables (KEY=value)")


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the vcons CLI."""
    from vcons import __version__

    parser = argparse.ArgumentParser(
        prog="vcons",
        description="Run a vcons build script.",
        epilog="Run 'vcons <command> --help' for command-specific help.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # vcons build
    build_parser = subparsers.add_parser("build", help="Run the build script")
    add_common_args(build_parser)
    add_build_args(build_parser)
    build_parser.set_defaults(func=cmd_build)

    # vcons clean
    clean_parser = subparsers.add_parser("clean", help="Remove generated files")
    add_common_args(clean_parser)
    clean_parser.add_argument("--cache", help="Build cache file (default: .vconscache)")
    clean_parser.set_defaults(func=cmd_clean)

    argv = list(sys.argv[1:] if argv is None else argv)

    # 'vcons' with no subcommand builds
    first = next((arg for arg in argv if not arg.startswith("-")), None)
    if first not in subparsers.choices and not {"-h", "--help", "--version"} & set(argv):
        argv.insert(0, "build")

    args = parser.parse_args(argv)
    result: int = args.func(args)
    return result


if __name__ == "__main__":
    sys.exit(main())
