# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Type definitions for the container runtime client.

Provides the value types exchanged with the runtime: ResourceBinding,
DeviceMapping, ProcessSpec, ProcessState, ProcessSummary, MountRecord
and VolumeInfo.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class BindMode(Enum):
    """Access mode of a resource binding."""

    READ_ONLY = "ro"
    READ_WRITE = "rw"


class MountKind(Enum):
    """How a mount is backed."""

    BIND = "bind"
    VOLUME = "volume"


@dataclass(frozen=True)
class ResourceBinding:
    """A storage resource exposed inside a sandboxed process.

    Order in a binding list is significant: a later entry overlays an
    earlier one at the same (or a nested) mount point.

    Attributes:
        source: Named volume or absolute path addressable by the runtime.
        mount_point: Path inside the sandboxed process.
        mode: Read-only or read-write access.
    """

    source: str
    mount_point: str
    mode: BindMode = BindMode.READ_WRITE

    @property
    def is_named_volume(self) -> bool:
        """True when the source is a named volume rather than a path."""
        return not self.source.startswith("/")

    def to_arg(self) -> str:
        """Serialize to the runtime's ``-v`` argument syntax."""
        return f"{self.source}:{self.mount_point}:{self.mode.value}"


@dataclass(frozen=True)
class DeviceMapping:
    """A host device passed through to a sandboxed process."""

    path_on_host: str
    path_in_container: str
    permissions: str = "rwm"

    def to_arg(self) -> str:
        """Serialize to the runtime's ``--device`` argument syntax."""
        return (
            f"{self.path_on_host}:{self.path_in_container}:{self.permissions}"
        )


@dataclass(frozen=True)
class ProcessSpec:
    """Everything needed to create one sandboxed process.

    The environment is kept as a mapping and only flattened into
    ``-e NAME=value`` arguments by the runtime client.

    Attributes:
        image: Image reference to run.
        command: Command (argv) passed after the image.
        env: Environment variables.
        bindings: Ordered resource bindings.
        working_dir: Working directory inside the process.
        name: Process name, or None for a runtime-generated one.
        tty: Allocate a pseudo-terminal.
        open_stdin: Keep stdin open.
        auto_remove: Remove the process when it exits.
        devices: Host devices to pass through.
        ipc_mode: IPC namespace mode (e.g. ``host``).
        security_opt: Security options (e.g. ``seccomp=unconfined``).
        entrypoint: Entrypoint override, or None for the image default.
        expose: Ports to expose, e.g. ``47984/tcp``.
    """

    image: str
    command: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    bindings: list[ResourceBinding] = field(default_factory=list)
    working_dir: str | None = None
    name: str | None = None
    tty: bool = False
    open_stdin: bool = False
    auto_remove: bool = False
    devices: list[DeviceMapping] = field(default_factory=list)
    ipc_mode: str | None = None
    security_opt: list[str] = field(default_factory=list)
    entrypoint: str | None = None
    expose: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class MountRecord:
    """A mount of an inspected sandboxed process.

    Attributes:
        destination: Path inside the process.
        source: Backing path on the host (may be empty for volumes on
            remote or rootless engines).
        kind: Bind mount or named volume.
        name: Volume name for named-volume mounts.
    """

    destination: str
    source: str
    kind: MountKind
    name: str = ""


@dataclass(frozen=True)
class ProcessState:
    """Inspection result for one sandboxed process."""

    id: str
    name: str
    status: str
    running: bool
    exit_code: int
    created_at: str
    tty: bool = False
    mounts: tuple[MountRecord, ...] = ()


@dataclass(frozen=True)
class ProcessSummary:
    """One row of a process listing."""

    id: str
    name: str
    state: str


@dataclass(frozen=True)
class VolumeInfo:
    """Inspection result for one named volume."""

    name: str
    mountpoint: str
    driver: str = "local"
