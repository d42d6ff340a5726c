# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Reclamation of orphaned session processes and volumes.

Orphans are left behind by unclean shutdowns and by sessions whose
process was kept after exit. Reclamation is best-effort: individual
removal failures are logged and skipped so one stuck resource does not
block the rest.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from dillinger.runtime.client import ContainerRuntime
from dillinger.runtime.errors import ContainerRuntimeError, NotFoundError
from dillinger.runtime.types import MountKind
from dillinger.sandbox.session import SESSION_PREFIX


logger = logging.getLogger(__name__)

TERMINAL_PROCESS_STATES = ("exited", "dead")


@dataclass
class ReclaimReport:
    """Resources removed by a reclamation pass.

    Attributes:
        processes: Names of removed processes.
        volumes: Names of removed volumes.
        failures: Resources whose removal failed.
    """

    processes: list[str] = field(default_factory=list)
    volumes: list[str] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)


class ResourceReclaimer:
    """Finds and removes orphaned sandbox resources.

    Thread Safety: Thread-safe. Holds no mutable state.
    """

    def __init__(self, runtime: ContainerRuntime) -> None:
        self._runtime = runtime

    def reclaim_orphaned_containers(
        self,
        name_prefix: str = SESSION_PREFIX,
        terminal_states: Iterable[str] = TERMINAL_PROCESS_STATES,
    ) -> ReclaimReport:
        """Remove terminated processes whose name has ``name_prefix``.

        Args:
            name_prefix: Name prefix of processes owned by sessions.
            terminal_states: Process states considered reclaimable.

        Returns:
            Report of removed and failed processes.

        Raises:
            ContainerRuntimeError: If processes cannot be listed.
        """
        report = ReclaimReport()
        states = list(terminal_states)
        candidates = self._runtime.list_processes(
            name=name_prefix, statuses=states
        )
        for process in candidates:
            # The runtime's name filter matches substrings.
            if not process.name.startswith(name_prefix):
                continue
            if process.state and process.state not in states:
                continue
            logger.info("Removing orphaned process: %s", process.name)
            try:
                self._runtime.remove(process.id, force=True)
            except NotFoundError:
                logger.debug("Process %s already removed", process.name)
            except ContainerRuntimeError as e:
                logger.warning(
                    "Failed to remove orphaned process %s: %s",
                    process.name,
                    e,
                )
                report.failures.append(process.name)
                continue
            report.processes.append(process.name)
        return report

    def reclaim_orphaned_volumes(
        self,
        protected: Iterable[str],
        prefix: str = "dillinger",
    ) -> ReclaimReport:
        """Remove volumes with ``prefix`` that no process references.

        In-use volumes are discovered by inspecting every process,
        running or not, since a stopped process still pins its volumes.

        Args:
            protected: Volume names that are never removed.
            prefix: Name prefix of volumes the orchestrator owns.

        Returns:
            Report of removed and failed volumes.

        Raises:
            ContainerRuntimeError: If processes or volumes cannot be
                listed.
        """
        report = ReclaimReport()
        protected_names = frozenset(protected)
        in_use = self.volumes_in_use()
        for name in self._runtime.list_volumes():
            if not name.startswith(prefix):
                continue
            if name in protected_names or name in in_use:
                continue
            logger.info("Removing orphaned volume: %s", name)
            try:
                self._runtime.remove_named_volume(name)
            except NotFoundError:
                logger.debug("Volume %s already removed", name)
            except ContainerRuntimeError as e:
                logger.warning(
                    "Failed to remove orphaned volume %s: %s", name, e
                )
                report.failures.append(name)
                continue
            report.volumes.append(name)
        return report

    def volumes_in_use(self) -> frozenset[str]:
        """Names of volumes referenced by any existing process."""
        names: set[str] = set()
        for process in self._runtime.list_processes(include_stopped=True):
            try:
                state = self._runtime.inspect(process.id)
            except NotFoundError:
                continue
            except ContainerRuntimeError as e:
                logger.warning(
                    "Could not inspect %s, treating its volumes as in use: "
                    "%s",
                    process.name,
                    e,
                )
                continue
            names.update(
                m.name
                for m in state.mounts
                if m.kind is MountKind.VOLUME and m.name
            )
        return frozenset(names)

    def reclaim_volume_users(
        self, volume: str, stop_timeout: int = 2
    ) -> list[str]:
        """Stop and remove every process referencing ``volume``.

        Args:
            volume: Volume name.
            stop_timeout: Seconds to wait for a graceful stop.

        Returns:
            Names of the removed processes.
        """
        removed: list[str] = []
        try:
            users = self._runtime.list_processes(volume=volume)
        except ContainerRuntimeError as e:
            logger.warning("Could not list users of volume %s: %s", volume, e)
            return removed

        for process in users:
            logger.info(
                "Reclaiming process %s holding volume %s",
                process.name,
                volume,
            )
            try:
                if process.state == "running":
                    self._runtime.stop(process.id, timeout=stop_timeout)
                self._runtime.remove(process.id, force=True)
            except NotFoundError:
                pass
            except ContainerRuntimeError as e:
                logger.warning(
                    "Failed to reclaim process %s: %s", process.name, e
                )
                continue
            removed.append(process.name)
        return removed

    def force_remove(self, handle: str) -> bool:
        """Forcibly remove one process.

        Returns:
            True if the process is gone afterwards.
        """
        try:
            self._runtime.remove(handle, force=True)
        except NotFoundError:
            return True
        except ContainerRuntimeError as e:
            logger.warning("Forced removal of %s failed: %s", handle[:12], e)
            return False
        logger.info("Forcibly removed process %s", handle[:12])
        return True
