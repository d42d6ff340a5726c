# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Discovery of launchable files inside installed games.

Scans run in probe processes, since install directories usually live
in runtime volumes the orchestrator cannot read directly. All
operations are best-effort and return empty results on failure.
"""

from __future__ import annotations

import logging
import posixpath
import shlex
from dataclasses import dataclass
from pathlib import Path

from dillinger.parsers.shortcut import ShortcutRecord, parse_shortcut
from dillinger.runtime.errors import ContainerRuntimeError
from dillinger.sandbox.paths import PathResolver, is_path_within, strip_prefix
from dillinger.sandbox.probe import PROBE_MOUNT, ProbeClient
from dillinger.sandbox.volumes import VolumeRegistry


logger = logging.getLogger(__name__)

EXECUTABLE_SCAN_DEPTH = 12
SHORTCUT_SCAN_DEPTH = 15
SCAN_OUTPUT_LIMIT = 500

EXCLUDED_DIRECTORIES = (
    "_redist",
    "redist",
    "__pycache__",
    "tmp",
    "temp",
    "cache",
    "logs",
)
EXCLUDED_PATH_PARTS = (
    "unins",
    "uninstall",
    "setup",
    "installer",
    "config",
    "settings",
)

# (substring of the lowercased relative path, score); drive_c scores
# separately since it must lead the path
_PATH_SCORES = (
    ("/gog games/", 8),
    ("/program files/", 6),
    ("/program files (x86)/", 6),
    ("/bin/", 2),
    ("/support/", -10),
    ("/tools/", -8),
)
_NAME_SCORES = (
    ("game", 10),
    ("main", 8),
    ("start", 7),
    ("launcher", 7),
    ("run", 5),
)


@dataclass(frozen=True)
class _Location:
    """Where a configured path can be probed.

    Attributes:
        source: Volume name or runtime path to mount.
        relative_path: Path of the target below the mounted source.
        host_root: Configured path corresponding to the mount root.
    """

    source: str
    relative_path: str
    host_root: str


def score_executable(relative_path: str) -> int:
    """Rank a candidate executable; higher is more likely the game.

    Directory hints score on the whole path. Launcher and helper hints
    score on the file name only, so a directory such as ``Installed``
    is not penalized.

    Args:
        relative_path: Path relative to the install directory.
    """
    path = relative_path.strip("/").lower()
    parts = path.split("/")
    name = parts[-1]
    score = 10 if path.startswith("drive_c/") else 0
    for part, value in _PATH_SCORES:
        if part in path:
            score += value
    for part, value in _NAME_SCORES:
        if part in name:
            score += value
    if "unins" in name:
        score -= 50
    if "setup" in name or "install" in name:
        score -= 25
    score -= 2 * len(parts)
    return score


def _is_helper(relative_path: str) -> bool:
    """Whether any part of the path names an installer or config tool."""
    lowered = relative_path.lower()
    return any(part in lowered for part in EXCLUDED_PATH_PARTS)


class InstallDiscovery:
    """Scans install directories through probes.

    Thread Safety: Thread-safe. Each scan is an independent probe.
    """

    def __init__(
        self,
        probe: ProbeClient,
        volumes: VolumeRegistry,
        resolver: PathResolver,
    ) -> None:
        self._probe = probe
        self._volumes = volumes
        self._resolver = resolver

    def scan_for_executables(self, install_path: str) -> list[str]:
        """Find candidate launch executables, best first.

        Returns:
            Absolute configured paths of ``.exe``, ``.bat`` and ``.cmd``
            files, without uninstallers and setup helpers, ranked by
            :func:`score_executable`.
        """
        name_filter = (
            r"\( -iname '*.exe' -o -iname '*.bat' -o -iname '*.cmd' \)"
        )
        found = self._find(install_path, EXECUTABLE_SCAN_DEPTH, name_filter)
        root = install_path.rstrip("/")
        candidates = [
            path for path in found if not _is_helper(strip_prefix(path, root))
        ]
        candidates.sort(
            key=lambda p: score_executable(strip_prefix(p, root)),
            reverse=True,
        )
        logger.info(
            "Found %d executable candidates under %s",
            len(candidates),
            install_path,
        )
        return candidates

    def scan_for_shortcuts(self, install_path: str) -> list[str]:
        """Find ``.lnk`` shortcut files under an install directory."""
        shortcuts = self._find(
            install_path, SHORTCUT_SCAN_DEPTH, "-iname '*.lnk'"
        )
        logger.info(
            "Found %d shortcuts under %s", len(shortcuts), install_path
        )
        return sorted(shortcuts)

    def find_registry_scripts(self, directory: str) -> list[str]:
        """Find registry setup scripts (``.cmd``/``.bat``) in a directory.

        Only files whose name contains ``reg`` or ``setup`` qualify.
        """
        found = self._find(
            directory, 1, r"\( -iname '*.cmd' -o -iname '*.bat' \)"
        )
        scripts = []
        for path in found:
            name = posixpath.basename(path).lower()
            if "reg" in name or "setup" in name:
                scripts.append(path)
        return sorted(scripts)

    def read_bytes(self, host_path: str) -> bytes | None:
        """Read a file through its volume, or directly when unmanaged."""
        match = self._volumes.find_containing_volume(host_path)
        if match is not None:
            return self._probe.read_file_bytes(
                match.volume.runtime_ref, match.relative_path
            )
        try:
            return Path(host_path).read_bytes()
        except OSError as e:
            logger.warning("Could not read %s: %s", host_path, e)
            return None

    def read_shortcut(self, host_path: str) -> ShortcutRecord | None:
        """Read and decode a shortcut file.

        Returns:
            The decoded shortcut, or None if unreadable or malformed.
        """
        data = self.read_bytes(host_path)
        if data is None:
            return None
        record = parse_shortcut(data)
        if record is None:
            logger.info("Could not decode shortcut %s", host_path)
        return record

    def _locate(self, host_path: str) -> _Location:
        host_path = host_path.rstrip("/") or "/"
        match = self._volumes.find_containing_volume(host_path)
        if match is not None:
            return _Location(
                source=match.volume.runtime_ref,
                relative_path=match.relative_path,
                host_root=match.volume.host_path,
            )
        return _Location(
            source=self._resolver.translate(host_path),
            relative_path="",
            host_root=host_path,
        )

    def _find(
        self, host_path: str, max_depth: int, name_filter: str
    ) -> list[str]:
        """Run a bounded ``find`` and map results to configured paths."""
        location = self._locate(host_path)
        start = PROBE_MOUNT
        if location.relative_path:
            start = f"{PROBE_MOUNT}/{location.relative_path}"
        prune = " -o ".join(
            f"-ipath '*/{d}/*'" for d in EXCLUDED_DIRECTORIES
        )
        command = (
            f"find {shlex.quote(start)} -maxdepth {max_depth} "
            f"\\( {prune} \\) -prune -o -type f {name_filter} -print "
            f"2>/dev/null | head -n {SCAN_OUTPUT_LIMIT}"
        )
        try:
            result = self._probe.run_command(
                location.source, PROBE_MOUNT, command
            )
        except ContainerRuntimeError as e:
            logger.warning("Scan of %s failed: %s", host_path, e)
            return []

        paths = []
        for line in result.lines:
            if not is_path_within(line, PROBE_MOUNT):
                continue
            relative = strip_prefix(line, PROBE_MOUNT)
            paths.append(posixpath.join(location.host_root, relative))
        return paths
