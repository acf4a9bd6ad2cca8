# SPDX-License-Identifier: MIT
"""Platform probing for vcons.

Detects the host platform, the shell used by Environment.shell(), and any
command executer prefix needed to launch tools (MSYS environments need
commands run through ``env``). Results are not cached here; an Environment
resolves them once and keeps them.
"""

from __future__ import annotations

import logging
import os
import platform as _platform
import subprocess
import sys
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Platform:
    """Description of the host platform.

    Attributes:
        os: Operating system name ("linux", "darwin", "windows", ...).
        arch: Machine architecture.
    """

    os: str
    arch: str

    @property
    def is_windows(self) -> bool:
        return self.os == "windows"

    @property
    def is_macos(self) -> bool:
        return self.os == "darwin"

    @property
    def is_mingw(self) -> bool:
        """Windows with a MinGW/MSYS/Cygwin style toolchain."""
        return self.is_windows or sys.platform.startswith(("cygwin", "msys"))

    @property
    def exe_suffix(self) -> str:
        return ".exe" if self.is_mingw else ""


def get_platform() -> Platform:
    """Detect the host platform."""
    return Platform(os=_platform.system().lower(), arch=_platform.machine().lower())


def _shell_works(shell: list[str]) -> bool:
    try:
        result = subprocess.run(
            [*shell, "echo success"],
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (OSError, subprocess.TimeoutExpired):
        return False
    return result.stdout.strip() == "success"


def get_system_shell(host: Platform | None = None) -> list[str]:
    """Find a shell to run shell command lines with.

    The SHELL environment variable is used if it works; otherwise
    ``sh -c``, falling back to ``cmd /c`` on Windows.

    Returns:
        The shell invocation prefix, e.g. ["sh", "-c"].
    """
    host = host or get_platform()
    shell_env = os.environ.get("SHELL")
    if shell_env:
        candidate = [shell_env, "-c"]
        if _shell_works(candidate):
            return candidate
        logger.debug("SHELL=%s did not work, falling back", shell_env)
    if host.is_mingw:
        if _shell_works(["sh", "-c"]):
            return ["sh", "-c"]
        return ["cmd", "/c"]
    return ["sh", "-c"]


def get_command_executer(host: Platform | None = None) -> list[str]:
    """Return the prefix used to launch external commands.

    Under MSYS, commands are run through ``env`` when it is available so
    that MSYS path conversion applies; elsewhere no prefix is needed.
    """
    host = host or get_platform()
    if host.is_mingw and "MSYSCON" in os.environ:
        try:
            result = subprocess.run(
                ["env", "echo", "success"], capture_output=True, text=True, timeout=10
            )
        except (OSError, subprocess.TimeoutExpired):
            return []
        if result.stdout.strip() == "success":
            return ["env"]
    return []
