# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Probe processes for storage the orchestrator cannot read directly.

Every check runs in a short-lived, self-removing container that mounts
the target read-only and executes a single shell snippet. A *source* is
either a named volume or an absolute runtime-visible path; both are
mounted the same way.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import shlex
from dataclasses import dataclass

from dillinger.runtime.client import ContainerRuntime
from dillinger.runtime.errors import ContainerRuntimeError
from dillinger.runtime.types import BindMode, ResourceBinding
from dillinger.sandbox.volumes import VolumeRegistry


logger = logging.getLogger(__name__)

PROBE_MOUNT = "/mnt/vol"

# Characters find(1) treats as glob syntax in -name patterns
_GLOB_SPECIAL_RE = re.compile(r"([\\\[\]*?])")


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a path check.

    Attributes:
        exists: Whether the path was found.
        resolved_relative_path: Path as it exists on disk (case
            corrected), relative to the probed source. Only meaningful
            at the instant of the probe.
    """

    exists: bool
    resolved_relative_path: str | None = None


@dataclass(frozen=True)
class CommandResult:
    """Exit code and combined output of a probe command."""

    exit_code: int
    output: str

    @property
    def lines(self) -> list[str]:
        """Non-empty output lines, stripped."""
        return [ln.strip() for ln in self.output.splitlines() if ln.strip()]


def _clean_relative(path: str) -> str:
    return path.strip().strip("/")


def _glob_literal(name: str) -> str:
    """Escape ``name`` so ``find -iname`` matches it literally."""
    return _GLOB_SPECIAL_RE.sub(r"\\\1", name)


class ProbeClient:
    """Runs probe containers against volumes and runtime paths.

    Thread Safety: Thread-safe. Each probe is an independent process.
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        volumes: VolumeRegistry,
        image: str = "alpine:3.20",
    ) -> None:
        """Initialize the probe client.

        Args:
            runtime: Container runtime client.
            volumes: Configured volume catalog, used to address host
                paths through their containing volume.
            image: Minimal image with a POSIX shell and ``find``.
        """
        self._runtime = runtime
        self._volumes = volumes
        self._image = image

    def run_command(
        self, source: str, mount_point: str, command: str
    ) -> CommandResult:
        """Run a shell command with ``source`` mounted read-only.

        Args:
            source: Named volume or absolute runtime-visible path.
            mount_point: Where to mount the source in the probe.
            command: Shell snippet run with ``sh -lc``.

        Returns:
            The command's exit code and combined output.

        Raises:
            ContainerRuntimeError: If the probe could not be scheduled.
        """
        logger.debug("Probe on %s: %s", source, command)
        exit_code, output = self._runtime.run_ephemeral(
            self._image,
            ["sh", "-lc", command],
            [ResourceBinding(source, mount_point, BindMode.READ_ONLY)],
        )
        return CommandResult(exit_code=exit_code, output=output)

    def exists_in_volume(self, source: str, relative_path: str) -> bool:
        """Check whether a path exists inside a source.

        A probe that cannot be scheduled counts as absent.
        """
        target = self._join(_clean_relative(relative_path))
        try:
            result = self.run_command(
                source, PROBE_MOUNT, f"[ -e {shlex.quote(target)} ]"
            )
        except ContainerRuntimeError as e:
            logger.warning(
                "Existence probe failed for %s in %s, treating as absent: %s",
                relative_path,
                source,
                e,
            )
            return False
        return result.exit_code == 0

    def resolve_case_insensitive(
        self, source: str, relative_path: str
    ) -> str | None:
        """Resolve a path segment by segment, ignoring case.

        Each segment is looked up with a depth-1 case-insensitive
        ``find`` under the prefix resolved so far. The first match wins
        when several siblings differ only in case. Resolution stops at
        the first segment without a match.

        Args:
            source: Named volume or absolute runtime-visible path.
            relative_path: Path relative to the source root.

        Returns:
            The on-disk path relative to the source, or None if any
            segment is missing or a probe fails.
        """
        current = PROBE_MOUNT
        for part in _clean_relative(relative_path).split("/"):
            if not part:
                continue
            command = (
                f"find {shlex.quote(current)} -mindepth 1 -maxdepth 1 "
                f"-iname {shlex.quote(_glob_literal(part))} -print -quit "
                "2>/dev/null"
            )
            try:
                result = self.run_command(source, PROBE_MOUNT, command)
            except ContainerRuntimeError as e:
                logger.warning(
                    "Case-insensitive probe failed for %s in %s: %s",
                    relative_path,
                    source,
                    e,
                )
                return None
            found = result.lines[0] if result.lines else ""
            if result.exit_code != 0 or not found:
                logger.debug("No match for %r under %s", part, current)
                return None
            current = found

        if current == PROBE_MOUNT:
            return ""
        return current[len(PROBE_MOUNT) :].lstrip("/")

    def check_path(self, source: str, relative_path: str) -> ProbeResult:
        """Check a path exactly, then case-insensitively."""
        relative_path = _clean_relative(relative_path)
        if self.exists_in_volume(source, relative_path):
            return ProbeResult(True, relative_path)

        logger.debug(
            "Exact path not found, trying case-insensitive match: %s",
            relative_path,
        )
        resolved = self.resolve_case_insensitive(source, relative_path)
        if resolved is None:
            return ProbeResult(False)
        logger.info(
            "Found case-insensitive match: %r -> %r", relative_path, resolved
        )
        return ProbeResult(True, resolved)

    def path_exists(self, host_path: str) -> bool:
        """Check a configured (host) path through its volume or a bind."""
        match = self._volumes.find_containing_volume(host_path)
        if match is not None:
            return self.exists_in_volume(
                match.volume.runtime_ref, match.relative_path
            )
        return self.exists_in_volume(host_path, "")

    def read_file_bytes(self, source: str, relative_path: str) -> bytes | None:
        """Read a file's content through base64-encoded probe output.

        Returns:
            File bytes, or None if the file is missing or unreadable.
        """
        target = self._join(_clean_relative(relative_path))
        try:
            result = self.run_command(
                source,
                PROBE_MOUNT,
                f"base64 {shlex.quote(target)} 2>/dev/null",
            )
        except ContainerRuntimeError as e:
            logger.warning("Read probe failed for %s: %s", relative_path, e)
            return None
        if result.exit_code != 0:
            return None
        try:
            return base64.b64decode("".join(result.lines), validate=True)
        except (binascii.Error, ValueError):
            logger.warning("Undecodable probe output for %s", relative_path)
            return None

    @staticmethod
    def _join(relative_path: str) -> str:
        if not relative_path:
            return PROBE_MOUNT
        return f"{PROBE_MOUNT}/{relative_path}"
