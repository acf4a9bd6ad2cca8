# SPDX-License-Identifier: MIT
"""Helpers for running and displaying external build commands.

Builders hand argument vectors to Environment.execute(), which uses
these helpers to echo the command and run it as a subprocess.
"""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path

logger = logging.getLogger(__name__)


def format_command(command: Sequence[str]) -> str:
    """Format an argument vector for display.

    Arguments containing whitespace are wrapped in single quotes:
        ["gcc", "-DSTRING=\"A B\""] -> "gcc '-DSTRING=\"A B\"'"
    """
    parts = []
    for arg in command:
        arg = str(arg)
        if any(c.isspace() for c in arg):
            parts.append(f"'{arg}'")
        else:
            parts.append(arg)
    return " ".join(parts)


def run_command(
    command: Sequence[str],
    *,
    prefix: Sequence[str] = (),
    env: Mapping[str, str] | None = None,
    stdout_path: str | Path | None = None,
) -> bool:
    """Run a command and wait for it to finish.

    Args:
        command: Argument vector to execute.
        prefix: Arguments placed before the command (e.g., a command
                executer such as ["env"]).
        env: Extra environment variables for the child process.
        stdout_path: If given, the command's standard output is written
                     to this file.

    Returns:
        True if the command ran and exited with status 0.
    """
    argv = [*prefix, *(str(arg) for arg in command)]
    merged_env: dict[str, str] | None = None
    if env:
        merged_env = os.environ.copy()
        merged_env.update(env)

    try:
        if stdout_path is not None:
            with open(stdout_path, "wb") as out:
                result = subprocess.run(argv, env=merged_env, stdout=out)
        else:
            result = subprocess.run(argv, env=merged_env)
    except OSError as e:
        logger.error("Failed to run %s: %s", argv[0] if argv else "<empty command>", e)
        return False

    if result.returncode != 0:
        logger.debug("Command exited with status %d: %s", result.returncode, argv)
    return result.returncode == 0


def run_shell(shell: Sequence[str], command: str) -> str:
    """Run command through a shell and return its standard output.

    Args:
        shell: Shell invocation prefix, e.g. ["sh", "-c"].
        command: Shell command line.
    """
    result = subprocess.run(
        [*shell, command],
        capture_output=True,
        text=True,
    )
    return result.stdout
