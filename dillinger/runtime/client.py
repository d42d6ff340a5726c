# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Container runtime client driving the docker/podman CLI.

Every capability the orchestrator needs from the container engine goes
through :class:`ContainerRuntime`: creating, starting, stopping and
removing sandboxed processes, waiting for exit, inspecting state and
mounts, listing processes, and managing named volumes. Each call is a
blocking ``subprocess`` invocation of the configured CLI; failures are
classified into the exception types of :mod:`dillinger.runtime.errors`.
"""

from __future__ import annotations

import json
import logging
import subprocess
from collections.abc import Iterator
from typing import Any

from dillinger.logging import register_env_secrets
from dillinger.runtime.errors import (
    ContainerRuntimeError,
    RuntimeUnavailableError,
    classify_error,
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


logger = logging.getLogger(__name__)

# Exit code the CLI uses when ``run`` itself fails (image pull, daemon,
# invalid arguments) as opposed to the command inside the process.
_RUN_FAILURE_EXIT_CODE = 125


def redact_command(cmd: list[str]) -> list[str]:
    """Return a copy of a CLI command with environment values masked."""
    redacted: list[str] = []
    skip_next = False
    for i, arg in enumerate(cmd):
        if skip_next:
            skip_next = False
            continue
        if arg == "-e" and i + 1 < len(cmd):
            next_arg = cmd[i + 1]
            if "=" in next_arg:
                var_name = next_arg.split("=")[0]
                redacted.extend(["-e", f"{var_name}=***"])
                skip_next = True
                continue
        redacted.append(arg)
    return redacted


class ContainerRuntime:
    """Blocking client for the container engine CLI.

    Thread Safety: Thread-safe. The client holds no mutable state; each
    method spawns its own CLI process.
    """

    def __init__(self, container_command: str = "docker") -> None:
        """Initialize the client.

        Args:
            container_command: Runtime CLI to invoke (docker or podman).
        """
        self._cmd = container_command

    @property
    def command(self) -> str:
        """Name of the runtime CLI."""
        return self._cmd

    # ------------------------------------------------------------------
    # Sandboxed processes
    # ------------------------------------------------------------------

    def create_process(self, spec: ProcessSpec) -> str:
        """Create (but do not start) a sandboxed process.

        Args:
            spec: Process configuration.

        Returns:
            The runtime's identifier for the new process.

        Raises:
            ContainerRuntimeError: If creation fails.
        """
        register_env_secrets(spec.env)
        cmd = [self._cmd, "create", *self._process_args(spec), spec.image]
        cmd.extend(spec.command)
        logger.debug("Full command: %s", " ".join(redact_command(cmd)))
        result = self._run(cmd, f"Failed to create process from {spec.image}")
        process_id = result.stdout.strip().splitlines()[-1].strip()
        logger.info(
            "Created process %s (%s)",
            process_id[:12],
            spec.name or spec.image,
        )
        return process_id

    def start(self, handle: str) -> None:
        """Start a created process."""
        self._run([self._cmd, "start", handle], f"Failed to start {handle}")

    def stop(self, handle: str, timeout: int = 10) -> None:
        """Stop a running process.

        Stopping an already-stopped process succeeds silently.

        Raises:
            NotFoundError: If the process does not exist.
        """
        self._run(
            [self._cmd, "stop", "-t", str(timeout), handle],
            f"Failed to stop {handle}",
        )

    def remove(self, handle: str, *, force: bool = True) -> None:
        """Remove a process (and its anonymous volumes).

        Raises:
            NotFoundError: If the process does not exist.
        """
        cmd = [self._cmd, "rm", "-v"]
        if force:
            cmd.append("-f")
        cmd.append(handle)
        self._run(cmd, f"Failed to remove {handle}")

    def wait(self, handle: str) -> int:
        """Block until the process exits and return its exit code."""
        result = self._run(
            [self._cmd, "wait", handle], f"Failed to wait for {handle}"
        )
        lines = result.stdout.strip().splitlines()
        try:
            return int(lines[-1].strip())
        except (IndexError, ValueError) as e:
            raise ContainerRuntimeError(
                f"Unexpected wait output for {handle}: {result.stdout!r}"
            ) from e

    def inspect(self, handle: str) -> ProcessState:
        """Inspect a process's state and mounts.

        Raises:
            NotFoundError: If the process does not exist.
        """
        result = self._run(
            [self._cmd, "inspect", "--type", "container", handle],
            f"Failed to inspect {handle}",
        )
        data = self._parse_inspect(result.stdout, handle)
        state = data.get("State") or {}
        mounts = tuple(
            _parse_mount(m) for m in (data.get("Mounts") or []) if m
        )
        return ProcessState(
            id=data.get("Id", handle),
            name=str(data.get("Name", "")).lstrip("/"),
            status=str(state.get("Status", "unknown")).lower(),
            running=bool(state.get("Running", False)),
            exit_code=int(state.get("ExitCode") or 0),
            created_at=str(data.get("Created", "")),
            tty=bool((data.get("Config") or {}).get("Tty", False)),
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
        """List processes matching the given filters.

        Args:
            name: Name substring filter.
            statuses: Status filters (e.g. ``exited``, ``dead``).
            volume: Only processes mounting this volume.
            include_stopped: Include non-running processes.

        Returns:
            Matching processes.
        """
        cmd = [self._cmd, "ps", "--no-trunc"]
        if include_stopped:
            cmd.append("-a")
        if name:
            cmd.extend(["--filter", f"name={name}"])
        for status in statuses or []:
            cmd.extend(["--filter", f"status={status}"])
        if volume:
            cmd.extend(["--filter", f"volume={volume}"])
        cmd.extend(["--format", "{{.ID}}\t{{.Names}}\t{{.State}}"])

        result = self._run(cmd, "Failed to list processes")
        processes: list[ProcessSummary] = []
        for line in result.stdout.splitlines():
            parts = line.strip().split("\t")
            if len(parts) < 2 or not parts[0]:
                continue
            processes.append(
                ProcessSummary(
                    id=parts[0],
                    name=parts[1].lstrip("/"),
                    state=parts[2].lower() if len(parts) > 2 else "",
                )
            )
        return processes

    def logs(self, handle: str, tail: int = 100) -> str:
        """Return recent combined output of a process."""
        result = self._run(
            [self._cmd, "logs", "--tail", str(tail), handle],
            f"Failed to read logs of {handle}",
        )
        return result.stdout + result.stderr

    def follow_logs(self, handle: str, tail: int = 100) -> Iterator[str]:
        """Stream output lines of a process until it exits.

        The generator terminates the underlying CLI process when closed.
        """
        cmd = [self._cmd, "logs", "-f", "--tail", str(tail), handle]
        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
            )
        except FileNotFoundError as e:
            raise RuntimeUnavailableError(
                f"Container runtime not found: {self._cmd}"
            ) from e

        try:
            if process.stdout:
                yield from process.stdout
        finally:
            if process.poll() is None:
                process.terminate()
                try:
                    process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    process.kill()
                    process.wait()

    def run_ephemeral(
        self,
        image: str,
        command: list[str],
        bindings: list[ResourceBinding],
        *,
        env: dict[str, str] | None = None,
        entrypoint: str | None = None,
    ) -> tuple[int, str]:
        """Run a self-removing process to completion.

        The process is removed by the runtime regardless of outcome.

        Args:
            image: Image reference.
            command: Command to run.
            bindings: Resource bindings.
            env: Environment variables.
            entrypoint: Entrypoint override.

        Returns:
            Tuple of (exit code, combined output).

        Raises:
            ContainerRuntimeError: If the process could not be scheduled.
        """
        spec = ProcessSpec(
            image=image,
            command=command,
            env=env or {},
            bindings=bindings,
            entrypoint=entrypoint,
        )
        cmd = [self._cmd, "run", "--rm", *self._process_args(spec), image]
        cmd.extend(command)
        logger.debug("Ephemeral run: %s", " ".join(redact_command(cmd)))

        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, errors="replace"
            )
        except FileNotFoundError as e:
            raise RuntimeUnavailableError(
                f"Container runtime not found: {self._cmd}"
            ) from e

        if result.returncode == _RUN_FAILURE_EXIT_CODE:
            raise classify_error(
                f"Failed to run ephemeral process from {image}", result.stderr
            )
        return result.returncode, result.stdout + result.stderr

    # ------------------------------------------------------------------
    # Named volumes
    # ------------------------------------------------------------------

    def create_named_volume(self, name: str, source: str) -> None:
        """Create a named volume bind-backed by a host path.

        Args:
            name: Volume name.
            source: Host path the volume exposes.
        """
        self._run(
            [
                self._cmd,
                "volume",
                "create",
                "--driver",
                "local",
                "--opt",
                "type=none",
                "--opt",
                f"device={source}",
                "--opt",
                "o=bind",
                name,
            ],
            f"Failed to create volume {name}",
        )
        logger.debug("Created volume %s -> %s", name, source)

    def remove_named_volume(self, name: str) -> None:
        """Remove a named volume.

        Raises:
            NotFoundError: If the volume does not exist.
            ResourceContentionError: If a process still references it.
        """
        self._run(
            [self._cmd, "volume", "rm", name],
            f"Failed to remove volume {name}",
        )
        logger.debug("Removed volume: %s", name)

    def list_volumes(self) -> list[str]:
        """Return the names of all named volumes."""
        result = self._run(
            [self._cmd, "volume", "ls", "--format", "{{.Name}}"],
            "Failed to list volumes",
        )
        return [
            line.strip() for line in result.stdout.splitlines() if line.strip()
        ]

    def inspect_volume(self, name: str) -> VolumeInfo:
        """Inspect a named volume.

        Raises:
            NotFoundError: If the volume does not exist.
        """
        result = self._run(
            [self._cmd, "volume", "inspect", name],
            f"Failed to inspect volume {name}",
        )
        data = self._parse_inspect(result.stdout, name)
        return VolumeInfo(
            name=str(data.get("Name", name)),
            mountpoint=str(data.get("Mountpoint", "")),
            driver=str(data.get("Driver", "local")),
        )

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def list_images(self) -> list[str]:
        """Return ``repository:tag`` references of local images."""
        result = self._run(
            [self._cmd, "images", "--format", "{{.Repository}}:{{.Tag}}"],
            "Failed to list images",
        )
        return [
            line.strip()
            for line in result.stdout.splitlines()
            if line.strip() and not line.strip().endswith(":<none>")
        ]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _process_args(spec: ProcessSpec) -> list[str]:
        """Build the shared ``create``/``run`` option list for a spec."""
        args: list[str] = []
        if spec.name:
            args.extend(["--name", spec.name])
        if spec.auto_remove:
            args.append("--rm")
        if spec.tty:
            args.append("-t")
        if spec.open_stdin:
            args.append("-i")
        if spec.working_dir:
            args.extend(["--workdir", spec.working_dir])
        if spec.entrypoint is not None:
            args.extend(["--entrypoint", spec.entrypoint])
        for env_var, value in spec.env.items():
            args.extend(["-e", f"{env_var}={value}"])
        for binding in spec.bindings:
            args.extend(["-v", binding.to_arg()])
        for device in spec.devices:
            args.extend(["--device", device.to_arg()])
        if spec.ipc_mode:
            args.extend(["--ipc", spec.ipc_mode])
        for opt in spec.security_opt:
            args.extend(["--security-opt", opt])
        for port in spec.expose:
            args.extend(["--expose", port])
        return args

    def _run(
        self, cmd: list[str], message: str
    ) -> subprocess.CompletedProcess[str]:
        """Run a CLI command, raising a classified error on failure."""
        try:
            return subprocess.run(
                cmd,
                check=True,
                capture_output=True,
                text=True,
                errors="replace",
            )
        except FileNotFoundError as e:
            raise RuntimeUnavailableError(
                f"Container runtime not found: {self._cmd}"
            ) from e
        except subprocess.CalledProcessError as e:
            raise classify_error(message, e.stderr or "") from e

    @staticmethod
    def _parse_inspect(stdout: str, ref: str) -> dict[str, Any]:
        """Parse ``inspect`` JSON output into its first object."""
        try:
            data = json.loads(stdout)
        except json.JSONDecodeError as e:
            raise ContainerRuntimeError(
                f"Malformed inspect output for {ref}"
            ) from e
        if isinstance(data, list):
            if not data:
                raise classify_error(f"Failed to inspect {ref}", "not found")
            data = data[0]
        if not isinstance(data, dict):
            raise ContainerRuntimeError(f"Malformed inspect output for {ref}")
        return data


def _parse_mount(raw: dict[str, Any]) -> MountRecord:
    """Convert one ``Mounts`` entry of inspect output."""
    kind = (
        MountKind.VOLUME
        if str(raw.get("Type", "")).lower() == "volume"
        else MountKind.BIND
    )
    return MountRecord(
        destination=str(raw.get("Destination", "")),
        source=str(raw.get("Source", "")),
        kind=kind,
        name=str(raw.get("Name", "") or ""),
    )
