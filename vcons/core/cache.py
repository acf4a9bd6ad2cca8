# SPDX-License-Identifier: MIT
"""Persistent build cache for vcons.

The Cache keeps track of file checksums, build target commands and
dependencies in a JSON file which persists from one run to the next.

Example cache file:
    {
      "version": "0.2.0",
      "targets": {
        "program": {
          "checksum": "a1b2c3d4...",
          "command": ["gcc", "-o", "program", "program.o"],
          "deps": [{"fname": "program.o", "checksum": "87654321..."}],
          "user_deps": [{"fname": "lscript.ld", "checksum": "77551133..."}]
        }
      },
      "directories": {"build": true, "build/one": true}
    }
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import tempfile
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

# Name of the file to store cache information in
CACHE_FILE = ".vconscache"


class UserDepsProvider(Protocol):
    """Anything that can report the user dependencies of a target."""

    def get_user_deps(self, target: str) -> list[str] | None: ...


def _as_list(targets: str | Sequence[str]) -> list[str]:
    if isinstance(targets, str):
        return [targets]
    return list(targets)


def _valid_deps(deps: Any) -> bool:
    return isinstance(deps, list) and all(
        isinstance(dep, dict) and isinstance(dep.get("fname"), str) for dep in deps
    )


def _valid_entry(entry: Any) -> bool:
    """Check the shape of one cached target record."""
    if not isinstance(entry, dict):
        return False
    if not isinstance(entry.get("checksum", ""), str):
        return False
    return _valid_deps(entry.get("deps", [])) and _valid_deps(entry.get("user_deps", []))


def _normalize_command(command: Any) -> Any:
    """Return the command as it will look after a JSON round trip."""
    return json.loads(json.dumps(command, default=str))


class Cache:
    """Build state persisted between vcons runs.

    Example:
        cache = Cache()
        if not cache.up_to_date("hello.o", command, ["hello.c"], env):
            ...  # build hello.o
            cache.register_build("hello.o", command, ["hello.c"], env)
        cache.write()

    Attributes:
        path: Location of the cache file.
    """

    def __init__(self, path: Path | str = CACHE_FILE) -> None:
        """Create a Cache and load the previous contents of the cache file.

        Args:
            path: Cache file location.
        """
        self.path = Path(path)
        self._cache: dict[str, Any] = {}
        self._lookup_checksums: dict[str, str] = {}
        self._lock = threading.Lock()
        self.load()

    def load(self) -> None:
        """(Re)load the cache file, starting empty if it is missing or corrupt."""
        data: Any = {}
        if self.path.exists():
            try:
                with open(self.path, encoding="utf-8") as f:
                    data = json.load(f)
            except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
                logger.warning("%s was corrupt (%s); starting with an empty cache", self.path, e)
                data = {}
        if not isinstance(data, dict):
            logger.warning(
                "%s was corrupt; starting with an empty cache. Contents: %r",
                self.path,
                data,
            )
            data = {}
        if not isinstance(data.get("targets"), dict):
            data["targets"] = {}
        if not isinstance(data.get("directories"), dict):
            data["directories"] = {}
        for target, entry in list(data["targets"].items()):
            if not _valid_entry(entry):
                logger.warning(
                    "%s: dropping malformed cache entry for %s: %r", self.path, target, entry
                )
                del data["targets"][target]
        self._cache = data
        self._lookup_checksums = {}
        logger.debug("Loaded %d cached targets from %s", len(data["targets"]), self.path)

    def clear(self) -> None:
        """Remove the cache file and forget everything."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        self._cache = {"targets": {}, "directories": {}}
        self.clear_checksum_cache()

    def clear_checksum_cache(self) -> None:
        """Forget memoized file checksums.

        Called at the start of each build pass since files may have
        changed between passes.
        """
        with self._lock:
            self._lookup_checksums = {}

    def write(self) -> None:
        """Write the cache to disk to be loaded next time.

        The document is written to a temporary file that replaces the
        old cache file, so a crash mid-write leaves the old file intact.
        """
        from vcons import __version__

        self._cache["version"] = __version__
        directory = self.path.parent
        if str(directory) and not directory.exists():
            directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=self.path.name + ".", suffix=".tmp", dir=directory
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._cache, f, indent=2)
                f.write("\n")
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Wrote %d cached targets to %s", len(self._cache["targets"]), self.path)

    def up_to_date(
        self,
        targets: str | Sequence[str],
        command: Any,
        deps: Sequence[str],
        env: UserDepsProvider,
        *,
        strict_deps: bool = False,
    ) -> bool:
        """Check if target(s) are up to date.

        Args:
            targets: The name(s) of the target file(s).
            command: The command used to build the target(s).
            deps: The target's dependency files.
            env: Provider of user dependencies (usually the Environment).
            strict_deps: Only consider a target up to date if its list of
                dependencies is exactly equal (including order) to the
                cached list of dependencies.

        Returns:
            True if, for each target:
            - the target exists on disk
            - the cache has information for the target
            - the target's checksum matches its checksum when last built
            - the command used to build the target is the same as last time
            - all dependencies given are also listed in the cache, or with
              strict_deps the two lists are exactly equal
            - the user dependencies equal those cached
            - each cached dependency file's current checksum matches the
              checksum stored in the cache
        """
        command = _normalize_command(command)
        cached_targets = self._cache["targets"]
        for target in _as_list(targets):
            if not os.path.exists(target):
                return False

            cached = cached_targets.get(target)
            if not isinstance(cached, dict):
                return False

            if cached.get("checksum") != self.lookup_checksum(target):
                return False

            if cached.get("command") != command:
                return False

            cached_deps = cached.get("deps") or []
            cached_deps_fnames = [dep.get("fname") for dep in cached_deps]
            if strict_deps:
                if list(deps) != cached_deps_fnames:
                    return False
            elif not set(deps) <= set(cached_deps_fnames):
                return False

            user_deps = env.get_user_deps(target) or []
            cached_user_deps = cached.get("user_deps") or []
            if list(user_deps) != [dep.get("fname") for dep in cached_user_deps]:
                return False

            for dep in [*cached_deps, *cached_user_deps]:
                if dep.get("checksum") != self.lookup_checksum(dep.get("fname")):
                    return False

        return True

    def register_build(
        self,
        targets: str | Sequence[str],
        command: Any,
        deps: Sequence[str],
        env: UserDepsProvider,
    ) -> None:
        """Store cache information about target(s) built by a builder.

        Args:
            targets: The name(s) of the target(s) built.
            command: The command used to build the target(s).
            deps: Dependencies of the target(s).
            env: Provider of user dependencies (usually the Environment).
        """
        command = _normalize_command(command)
        for target in _as_list(targets):
            self._cache["targets"][target] = {
                "command": command,
                "checksum": self.calculate_checksum(target),
                "deps": [
                    {"fname": dep, "checksum": self.lookup_checksum(dep)}
                    for dep in deps
                ],
                "user_deps": [
                    {"fname": dep, "checksum": self.lookup_checksum(dep)}
                    for dep in (env.get_user_deps(target) or [])
                ],
            }

    def targets(self) -> list[str]:
        """Return a list of targets that have been built."""
        return list(self._cache["targets"].keys())

    def mkdir_p(self, path: str) -> None:
        """Make any needed directories, recording the ones created.

        Created directories are removed again by a clean operation if
        they are empty.
        """
        parts = re.split(r"[\\/]", str(path))
        for i in range(len(parts)):
            subpath = "/".join(parts[: i + 1])
            if subpath in ("", "."):
                continue
            if not os.path.exists(subpath):
                try:
                    os.mkdir(subpath)
                except FileExistsError:
                    continue
                self._cache["directories"][subpath] = True

    def directories(self) -> list[str]:
        """Return a list of directories which were created by the build."""
        return list(self._cache["directories"].keys())

    def lookup_checksum(self, fname: str) -> str:
        """Return a file's checksum, computing it at most once per pass."""
        with self._lock:
            checksum = self._lookup_checksums.get(fname)
        if checksum is None:
            checksum = self.calculate_checksum(fname)
        return checksum

    def calculate_checksum(self, fname: str) -> str:
        """Calculate, memoize and return a file's checksum.

        A file that cannot be read has the checksum "", which never
        matches a real digest.
        """
        try:
            with open(fname, "rb") as f:
                checksum = hashlib.md5(f.read(), usedforsecurity=False).hexdigest()
        except OSError:
            checksum = ""
        with self._lock:
            self._lookup_checksums[fname] = checksum
        return checksum

    def __repr__(self) -> str:
        return f"Cache(path={str(self.path)!r}, targets={len(self._cache['targets'])})"
