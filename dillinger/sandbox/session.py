# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Session records and their lifecycle states."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from dillinger.runtime.types import ResourceBinding


logger = logging.getLogger(__name__)

SESSION_PREFIX = "dillinger-session-"
DEBUG_PREFIX = "dillinger-debug-"
INSTALL_PREFIX = "dillinger-install-"


class SessionStatus(Enum):
    """Lifecycle state of a session.

    ``IDLE -> RESOLVING_RESOURCES -> PROVISIONING -> RUNNING ->
    MONITORING``, then ``EXITED`` when the process ends on its own,
    ``STOPPING -> STOPPED`` on request, or ``FAILED`` from any
    pre-terminal state. Terminal sessions become ``CLEANED`` once
    reclaimed.
    """

    IDLE = "idle"
    RESOLVING_RESOURCES = "resolving_resources"
    PROVISIONING = "provisioning"
    RUNNING = "running"
    MONITORING = "monitoring"
    STOPPING = "stopping"
    STOPPED = "stopped"
    EXITED = "exited"
    FAILED = "failed"
    CLEANED = "cleaned"

    @property
    def is_terminal(self) -> bool:
        """True once the session's process is no longer expected to run."""
        return self in _TERMINAL

    @property
    def is_active(self) -> bool:
        """True while the session owns (or is about to own) a process."""
        return not self.is_terminal and self is not SessionStatus.CLEANED


_TERMINAL = frozenset(
    {SessionStatus.STOPPED, SessionStatus.EXITED, SessionStatus.FAILED}
)

_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.IDLE: frozenset(
        {SessionStatus.RESOLVING_RESOURCES, SessionStatus.FAILED}
    ),
    SessionStatus.RESOLVING_RESOURCES: frozenset(
        {SessionStatus.PROVISIONING, SessionStatus.FAILED}
    ),
    SessionStatus.PROVISIONING: frozenset(
        {SessionStatus.RUNNING, SessionStatus.FAILED}
    ),
    SessionStatus.RUNNING: frozenset(
        {
            SessionStatus.MONITORING,
            SessionStatus.STOPPING,
            SessionStatus.EXITED,
            SessionStatus.FAILED,
        }
    ),
    SessionStatus.MONITORING: frozenset(
        {SessionStatus.STOPPING, SessionStatus.EXITED, SessionStatus.FAILED}
    ),
    SessionStatus.STOPPING: frozenset(
        {SessionStatus.STOPPED, SessionStatus.EXITED, SessionStatus.FAILED}
    ),
    SessionStatus.STOPPED: frozenset({SessionStatus.CLEANED}),
    SessionStatus.EXITED: frozenset({SessionStatus.CLEANED}),
    SessionStatus.FAILED: frozenset({SessionStatus.CLEANED}),
    SessionStatus.CLEANED: frozenset(),
}


def _now() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class SessionRecord:
    """Orchestrator-side state of one session.

    Mutated only by the orchestrator and its monitor callback, always
    under the orchestrator's session lock.

    Attributes:
        session_id: Caller-chosen session identifier.
        game_id: Game the session runs or installs.
        kind: ``launch``, ``debug`` or ``install``.
        status: Current lifecycle state.
        process_id: Runtime identifier of the sandboxed process.
        process_name: Runtime name of the sandboxed process.
        bindings: Resource bindings the process was created with.
        uses_scratch_volume: Whether the process mounts the scratch
            volume.
        created_at: ISO timestamp of session creation.
        exit_code: Exit code once the process has ended, if known.
        error: Failure message for ``FAILED`` sessions.
        attach_command: Interactive attach command (debug sessions).
    """

    session_id: str
    game_id: str
    kind: str = "launch"
    status: SessionStatus = SessionStatus.IDLE
    process_id: str | None = None
    process_name: str | None = None
    bindings: tuple[ResourceBinding, ...] = ()
    uses_scratch_volume: bool = False
    created_at: str = field(default_factory=_now)
    exit_code: int | None = None
    error: str | None = None
    attach_command: str | None = None

    def transition(self, status: SessionStatus) -> bool:
        """Move to ``status`` if the lifecycle allows it.

        Returns:
            True if applied, False if the transition is not allowed
            from the current state (the record is left unchanged).
        """
        if status is self.status:
            return True
        if status not in _TRANSITIONS[self.status]:
            logger.debug(
                "Session %s: ignoring transition %s -> %s",
                self.session_id,
                self.status.value,
                status.value,
            )
            return False
        logger.debug(
            "Session %s: %s -> %s",
            self.session_id,
            self.status.value,
            status.value,
        )
        self.status = status
        return True
