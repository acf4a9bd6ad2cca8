# SPDX-License-Identifier: MIT
"""Shared fixtures for vcons tests."""

from __future__ import annotations

from pathlib import Path

import pytest

import vcons
from vcons.core.environment import Environment


@pytest.fixture(autouse=True)
def clean_vcons_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolate tests from VCONS_* settings of the calling shell."""
    for name in ("VCONS_VARS", "VCONS_ECHO", "VCONS_CACHE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(vcons, "_cli_vars", None)


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run the test inside an empty temporary directory."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


class CommandRecorder:
    """Stands in for Environment.execute so builders can run without a toolchain.

    Records (short description, command) pairs and creates the file named
    after "-o" instead of running anything.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, list[str]]] = []
        self.stdout: list[str | Path | None] = []
        self.succeed = True

    def __call__(self, short_desc, command, *, env=None, stdout=None) -> bool:
        self.calls.append((short_desc, list(command)))
        self.stdout.append(stdout)
        if self.succeed and "-o" in command:
            Path(command[command.index("-o") + 1]).write_text("built\n")
        return self.succeed

    @property
    def commands(self) -> list[list[str]]:
        return [command for _, command in self.calls]

    @property
    def descriptions(self) -> list[str]:
        return [desc for desc, _ in self.calls]


@pytest.fixture
def recorder() -> CommandRecorder:
    return CommandRecorder()


@pytest.fixture
def env(workdir: Path, recorder: CommandRecorder, monkeypatch: pytest.MonkeyPatch) -> Environment:
    """An Environment whose external commands are recorded, not run."""
    environment = Environment()
    monkeypatch.setattr(environment, "execute", recorder)
    return environment
