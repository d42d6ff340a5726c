# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shared pytest fixtures and test doubles used across test packages."""

from __future__ import annotations

import copy
import threading
import uuid
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from dillinger.config import OrchestratorConfig, VolumeNames
from dillinger.models import JoystickMapping
from dillinger.runtime.errors import (
    ContainerRuntimeError,
    NotFoundError,
    ResourceContentionError,
)
from dillinger.runtime.types import (
    MountKind,
    MountRecord,
    ProcessSpec,
    ProcessState,
    ProcessSummary,
    ResourceBinding,
    VolumeInfo,
)


ProbeHandler = Callable[
    [str, list[str], list[ResourceBinding], dict[str, str], str | None],
    tuple[int, str],
]


def _default_probe(
    image: str,
    command: list[str],
    bindings: list[ResourceBinding],
    env: dict[str, str],
    entrypoint: str | None,
) -> tuple[int, str]:
    return 0, ""


@dataclass
class FakeProcess:
    """A process tracked by :class:`FakeRuntime`."""

    id: str
    spec: ProcessSpec
    state: str = "created"
    exit_code: int = 0
    output: list[str] = field(default_factory=list)
    finished: threading.Event = field(default_factory=threading.Event)


class FakeRuntime:
    """In-memory stand-in for ContainerRuntime.

    Records every mutating call in ``calls`` (in order) so tests can
    assert on sequencing. ``wait()`` blocks until :meth:`finish` or
    ``stop()`` is called for the process.
    """

    def __init__(self) -> None:
        self.command = "docker"
        self.processes: dict[str, FakeProcess] = {}
        self.volumes: dict[str, str] = {}
        self.images: list[str] = []
        self.calls: list[tuple[str, ...]] = []
        self.probe_calls: list[tuple[list[str], list[ResourceBinding]]] = []
        self.probe_handler: ProbeHandler = _default_probe
        self.self_state: ProcessState | None = None
        self.start_error: ContainerRuntimeError | None = None
        self.create_error: ContainerRuntimeError | None = None
        self.stop_errors: list[ContainerRuntimeError] = []
        self.wait_timeout = 5.0
        self._lock = threading.Lock()

    # -- helpers for tests --------------------------------------------

    def add_process(
        self,
        name: str,
        *,
        state: str = "running",
        bindings: list[ResourceBinding] | None = None,
        image: str = "runner:1.0.0",
    ) -> FakeProcess:
        """Register an existing process (e.g. a previous session)."""
        spec = ProcessSpec(image=image, name=name, bindings=bindings or [])
        process = FakeProcess(id=uuid.uuid4().hex, spec=spec, state=state)
        if state != "running":
            process.finished.set()
        with self._lock:
            self.processes[process.id] = process
        return process

    def finish(self, handle: str, exit_code: int = 0) -> None:
        """Make a running process exit."""
        process = self._find(handle)
        process.exit_code = exit_code
        process.state = "exited"
        process.finished.set()

    def find_by_name(self, name: str) -> FakeProcess | None:
        with self._lock:
            for process in self.processes.values():
                if process.spec.name == name:
                    return process
        return None

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]

    def _find(self, handle: str) -> FakeProcess:
        with self._lock:
            if handle in self.processes:
                return self.processes[handle]
            for process in self.processes.values():
                if process.spec.name == handle:
                    return process
        raise NotFoundError(f"no such container: {handle}")

    # -- ContainerRuntime interface -----------------------------------

    def create_process(self, spec: ProcessSpec) -> str:
        self.calls.append(("create_process", spec.name or ""))
        if self.create_error is not None:
            raise self.create_error
        process = FakeProcess(id=uuid.uuid4().hex, spec=spec)
        with self._lock:
            self.processes[process.id] = process
        return process.id

    def start(self, handle: str) -> None:
        self.calls.append(("start", handle))
        if self.start_error is not None:
            raise self.start_error
        self._find(handle).state = "running"

    def stop(self, handle: str, timeout: int = 10) -> None:
        self.calls.append(("stop", handle))
        if self.stop_errors:
            raise self.stop_errors.pop(0)
        process = self._find(handle)
        if process.state == "running":
            process.exit_code = 137
        process.state = "exited"
        process.finished.set()

    def remove(self, handle: str, *, force: bool = True) -> None:
        self.calls.append(("remove", handle))
        process = self._find(handle)
        if process.state == "running" and not force:
            raise ResourceContentionError("container is running")
        process.state = "removed"
        process.finished.set()
        with self._lock:
            del self.processes[process.id]

    def wait(self, handle: str) -> int:
        process = self._find(handle)
        process.finished.wait(self.wait_timeout)
        if process.spec.auto_remove:
            with self._lock:
                self.processes.pop(process.id, None)
        return process.exit_code

    def inspect(self, handle: str) -> ProcessState:
        if self.self_state is not None and handle in (
            self.self_state.id,
            self.self_state.name,
        ):
            return self.self_state
        process = self._find(handle)
        mounts = tuple(
            MountRecord(
                destination=b.mount_point,
                source="" if b.is_named_volume else b.source,
                kind=(
                    MountKind.VOLUME if b.is_named_volume else MountKind.BIND
                ),
                name=b.source if b.is_named_volume else "",
            )
            for b in process.spec.bindings
        )
        return ProcessState(
            id=process.id,
            name=process.spec.name or "",
            status=process.state,
            running=process.state == "running",
            exit_code=process.exit_code,
            created_at="2026-01-01T00:00:00Z",
            tty=process.spec.tty,
            mounts=mounts,
        )

    def list_processes(
        self,
        *,
        name: str | None = None,
        statuses: list[str] | None = None,
        volume: str | None = None,
        include_stopped: bool = True,
    ) -> list[ProcessSummary]:
        with self._lock:
            processes = list(self.processes.values())
        result = []
        for process in processes:
            process_name = process.spec.name or ""
            if name and name not in process_name:
                continue
            if statuses and process.state not in statuses:
                continue
            if not include_stopped and process.state != "running":
                continue
            if volume and not any(
                b.source == volume for b in process.spec.bindings
            ):
                continue
            result.append(
                ProcessSummary(process.id, process_name, process.state)
            )
        return result

    def logs(self, handle: str, tail: int = 100) -> str:
        return "".join(self._find(handle).output[-tail:])

    def follow_logs(self, handle: str, tail: int = 100) -> Iterator[str]:
        try:
            process = self._find(handle)
        except NotFoundError:
            return
        yield from list(process.output)

    def run_ephemeral(
        self,
        image: str,
        command: list[str],
        bindings: list[ResourceBinding],
        *,
        env: dict[str, str] | None = None,
        entrypoint: str | None = None,
    ) -> tuple[int, str]:
        self.probe_calls.append((command, bindings))
        return self.probe_handler(
            image, command, bindings, env or {}, entrypoint
        )

    def create_named_volume(self, name: str, source: str) -> None:
        self.calls.append(("create_named_volume", name, source))
        self.volumes[name] = source

    def remove_named_volume(self, name: str) -> None:
        self.calls.append(("remove_named_volume", name))
        if name not in self.volumes:
            raise NotFoundError(f"no such volume: {name}")
        with self._lock:
            users = [
                p
                for p in self.processes.values()
                if any(b.source == name for b in p.spec.bindings)
            ]
        if users:
            raise ResourceContentionError(
                f"remove {name}: volume is in use"
            )
        del self.volumes[name]

    def list_volumes(self) -> list[str]:
        return list(self.volumes)

    def inspect_volume(self, name: str) -> VolumeInfo:
        if name not in self.volumes:
            raise NotFoundError(f"no such volume: {name}")
        return VolumeInfo(name=name, mountpoint=self.volumes[name])

    def list_images(self) -> list[str]:
        return list(self.images)


class MemoryStore:
    """Dict-backed DocumentStore."""

    def __init__(self) -> None:
        self.documents: dict[str, dict[str, dict[str, Any]]] = {}

    def put(self, kind: str, document: dict[str, Any]) -> None:
        self.documents.setdefault(kind, {})[document["id"]] = document

    def list_entities(self, kind: str) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(d) for d in self.documents.get(kind, {}).values()
        ]

    def read_entity(self, kind: str, entity_id: str) -> dict[str, Any] | None:
        document = self.documents.get(kind, {}).get(entity_id)
        return copy.deepcopy(document) if document is not None else None

    def write_entity(
        self, kind: str, entity_id: str, document: dict[str, Any]
    ) -> None:
        self.documents.setdefault(kind, {})[entity_id] = copy.deepcopy(
            document
        )


@dataclass
class StaticSettings:
    """SettingsProvider with fixed values."""

    auto_remove: bool = False
    vendor: str | None = None
    joysticks: dict[str, JoystickMapping] = field(default_factory=dict)
    sink: str | None = None

    def auto_remove_containers(self) -> bool:
        return self.auto_remove

    def gpu_vendor(self) -> str | None:
        return self.vendor

    def joystick_mappings(self) -> dict[str, JoystickMapping]:
        return dict(self.joysticks)

    def audio_sink(self) -> str | None:
        return self.sink


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def static_settings() -> StaticSettings:
    return StaticSettings()


@pytest.fixture
def orchestrator_config(tmp_path: Path) -> OrchestratorConfig:
    """Config rooted in a temporary data directory."""
    root = tmp_path / "data"
    root.mkdir()
    return OrchestratorConfig(
        dillinger_root=root,
        self_container="dillinger-core",
        volumes=VolumeNames(),
        puid="1000",
        pgid="1000",
    )
