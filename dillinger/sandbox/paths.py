# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Translation of orchestrator-visible paths to runtime-visible paths.

When the orchestrator itself runs inside a container, a path such as
``/data/games/foo`` only exists in its own mount namespace. Bind mounts
handed to the container runtime must use the host-side path instead.
:class:`PathResolver` inspects the orchestrator's own container once,
builds a destination-to-source mount table and rewrites paths through
it.
"""

from __future__ import annotations

import logging
import socket
import threading

from dillinger.runtime.client import ContainerRuntime
from dillinger.runtime.errors import ContainerRuntimeError
from dillinger.runtime.types import MountKind, MountRecord


logger = logging.getLogger(__name__)


def is_path_within(path: str, prefix: str) -> bool:
    """Check whether ``path`` equals ``prefix`` or lies below it.

    Matching is by path-segment boundary: ``/data`` contains
    ``/data/x`` but not ``/database``.
    """
    prefix = prefix.rstrip("/") or "/"
    if prefix == "/":
        return path.startswith("/")
    return path == prefix or path.startswith(prefix + "/")


def strip_prefix(path: str, prefix: str) -> str:
    """Return ``path`` relative to ``prefix`` (no leading slash).

    The caller must have checked :func:`is_path_within` first.
    """
    prefix = prefix.rstrip("/")
    return path[len(prefix) :].lstrip("/")


class PathResolver:
    """Maps paths inside the orchestrator's sandbox to runtime paths.

    The mount table is discovered on first use and never re-polled.
    When the orchestrator is not containerized, or inspection fails,
    the table is empty and every path translates to itself.

    Thread Safety: Thread-safe. Discovery is guarded by a lock and the
    resulting table is immutable.
    """

    def __init__(
        self, runtime: ContainerRuntime, self_container: str | None = None
    ) -> None:
        """Initialize the resolver.

        Args:
            runtime: Container runtime client.
            self_container: Identifier of the orchestrator's own
                container. Defaults to the hostname, which container
                engines set to the short container id.
        """
        self._runtime = runtime
        self._self_container = self_container
        self._mounts: tuple[MountRecord, ...] | None = None
        self._lock = threading.Lock()

    def detect_mounts(self) -> tuple[MountRecord, ...]:
        """Return the host-visible mount table, discovering it once.

        Only mounts with an absolute host-side source participate.
        Entries are ordered by destination length, longest first.

        Returns:
            The memoized mount table (empty means identity mapping).
        """
        with self._lock:
            if self._mounts is None:
                self._mounts = self._discover()
            return self._mounts

    def translate(self, path: str) -> str:
        """Translate an orchestrator-visible path to a runtime path.

        The longest mount destination that equals ``path`` or is a
        segment-boundary prefix of it wins; its source replaces the
        prefix and the remainder is preserved.

        Args:
            path: Absolute path as seen by the orchestrator.

        Returns:
            The runtime-visible path, or ``path`` unchanged if no mount
            matches.
        """
        for mount in self.detect_mounts():
            if not is_path_within(path, mount.destination):
                continue
            remainder = strip_prefix(path, mount.destination)
            source = mount.source.rstrip("/") or "/"
            if not remainder:
                return source
            if source == "/":
                return "/" + remainder
            return f"{source}/{remainder}"
        return path

    def _discover(self) -> tuple[MountRecord, ...]:
        """Inspect the orchestrator's own container."""
        target = self._self_container or socket.gethostname()
        try:
            state = self._runtime.inspect(target)
        except ContainerRuntimeError as e:
            logger.warning(
                "Could not inspect own container %s, using identity path "
                "mapping: %s",
                target,
                e,
            )
            return ()

        mounts = [
            m
            for m in state.mounts
            if m.destination.startswith("/")
            and m.source.startswith("/")
            and (m.kind is MountKind.BIND or m.source)
        ]
        mounts.sort(key=lambda m: len(m.destination.rstrip("/")), reverse=True)
        for mount in mounts:
            logger.debug(
                "Mount %s -> %s (%s)",
                mount.destination,
                mount.source,
                mount.kind.value,
            )
        logger.info(
            "Detected %d host mounts for container %s", len(mounts), target
        )
        return tuple(mounts)
