# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for dillinger/runtime/client.py."""

from __future__ import annotations

import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from dillinger.logging import clear_secrets, registered_secrets
from dillinger.runtime.client import ContainerRuntime, redact_command
from dillinger.runtime.errors import (
    ContainerRuntimeError,
    NotFoundError,
    ResourceContentionError,
    RuntimeUnavailableError,
)
from dillinger.runtime.types import (
    BindMode,
    DeviceMapping,
    MountKind,
    ProcessSpec,
    ResourceBinding,
)


def _completed(stdout: str = "", stderr: str = "", returncode: int = 0):
    return subprocess.CompletedProcess(
        args=[], returncode=returncode, stdout=stdout, stderr=stderr
    )


def _failed(stderr: str) -> subprocess.CalledProcessError:
    return subprocess.CalledProcessError(
        returncode=1, cmd=["docker"], output="", stderr=stderr
    )


@pytest.fixture(autouse=True)
def _clear_secrets():
    yield
    clear_secrets()


class TestRedactCommand:
    """Tests for redact_command."""

    def test_masks_env_values(self) -> None:
        """Every -e value is replaced with ***."""
        cmd = ["docker", "create", "-e", "TOKEN=abc", "-e", "A=1", "img"]
        assert redact_command(cmd) == [
            "docker",
            "create",
            "-e",
            "TOKEN=***",
            "-e",
            "A=***",
            "img",
        ]

    def test_leaves_other_args(self) -> None:
        """Arguments other than -e pairs are untouched."""
        cmd = ["docker", "run", "-v", "a:/b:ro", "img"]
        assert redact_command(cmd) == cmd


class TestCreateProcess:
    """Tests for ContainerRuntime.create_process."""

    @patch("dillinger.runtime.client.subprocess.run")
    def test_builds_create_command(self, mock_run: MagicMock) -> None:
        """create_process passes all ProcessSpec options in order."""
        mock_run.return_value = _completed(stdout="abc123\n")
        runtime = ContainerRuntime("podman")
        spec = ProcessSpec(
            image="runner:1.0.0",
            command=["bash", "-lc", "wine x"],
            env={"GAME_ID": "g1"},
            bindings=[
                ResourceBinding("vol", "/data"),
                ResourceBinding("/host/a", "/a", BindMode.READ_ONLY),
            ],
            working_dir="/game",
            name="dillinger-session-s1",
            tty=True,
            open_stdin=True,
            auto_remove=True,
            devices=[DeviceMapping("/dev/dri", "/dev/dri")],
            ipc_mode="host",
            security_opt=["seccomp=unconfined"],
            expose=["47984/tcp", "48100/udp"],
        )

        handle = runtime.create_process(spec)

        assert handle == "abc123"
        cmd = mock_run.call_args[0][0]
        assert cmd == [
            "podman",
            "create",
            "--name",
            "dillinger-session-s1",
            "--rm",
            "-t",
            "-i",
            "--workdir",
            "/game",
            "-e",
            "GAME_ID=g1",
            "-v",
            "vol:/data:rw",
            "-v",
            "/host/a:/a:ro",
            "--device",
            "/dev/dri:/dev/dri:rwm",
            "--ipc",
            "host",
            "--security-opt",
            "seccomp=unconfined",
            "--expose",
            "47984/tcp",
            "--expose",
            "48100/udp",
            "runner:1.0.0",
            "bash",
            "-lc",
            "wine x",
        ]

    @patch("dillinger.runtime.client.subprocess.run")
    def test_entrypoint_override(self, mock_run: MagicMock) -> None:
        """An entrypoint override is passed before the image."""
        mock_run.return_value = _completed(stdout="id\n")
        runtime = ContainerRuntime()
        runtime.create_process(
            ProcessSpec(image="img", command=["-f"], entrypoint="tail")
        )
        cmd = mock_run.call_args[0][0]
        assert cmd[cmd.index("--entrypoint") + 1] == "tail"
        assert cmd.index("--entrypoint") < cmd.index("img")

    @patch("dillinger.runtime.client.subprocess.run")
    def test_uses_last_output_line(self, mock_run: MagicMock) -> None:
        """Pull progress before the id is ignored."""
        mock_run.return_value = _completed(stdout="pulling...\nfinal-id\n")
        assert ContainerRuntime().create_process(ProcessSpec("img")) == (
            "final-id"
        )

    @patch("dillinger.runtime.client.subprocess.run")
    def test_registers_secret_env(self, mock_run: MagicMock) -> None:
        """Secret-looking env values are registered for redaction."""
        mock_run.return_value = _completed(stdout="id\n")
        ContainerRuntime().create_process(
            ProcessSpec("img", env={"API_TOKEN": "s3cr3t-value"})
        )
        assert "s3cr3t-value" in registered_secrets()

    @patch("dillinger.runtime.client.subprocess.run")
    def test_conflict_is_contention(self, mock_run: MagicMock) -> None:
        """A name conflict is classified as contention."""
        mock_run.side_effect = _failed(
            'Conflict. The container name "/x" is already in use'
        )
        with pytest.raises(ResourceContentionError):
            ContainerRuntime().create_process(ProcessSpec("img", name="x"))

    @patch(
        "dillinger.runtime.client.subprocess.run",
        side_effect=FileNotFoundError,
    )
    def test_missing_binary(self, _run: MagicMock) -> None:
        """A missing CLI binary means the runtime is unavailable."""
        with pytest.raises(RuntimeUnavailableError):
            ContainerRuntime("nope").create_process(ProcessSpec("img"))


class TestLifecycle:
    """Tests for stop, remove and wait."""

    @patch("dillinger.runtime.client.subprocess.run")
    def test_stop_passes_timeout(self, mock_run: MagicMock) -> None:
        """stop() uses the given grace period."""
        mock_run.return_value = _completed()
        ContainerRuntime().stop("abc", timeout=3)
        assert mock_run.call_args[0][0] == ["docker", "stop", "-t", "3", "abc"]

    @patch("dillinger.runtime.client.subprocess.run")
    def test_stop_missing(self, mock_run: MagicMock) -> None:
        """Stopping a missing process raises NotFoundError."""
        mock_run.side_effect = _failed("Error: No such container: abc")
        with pytest.raises(NotFoundError):
            ContainerRuntime().stop("abc")

    @patch("dillinger.runtime.client.subprocess.run")
    def test_remove_force(self, mock_run: MagicMock) -> None:
        """remove() removes anonymous volumes and forces by default."""
        mock_run.return_value = _completed()
        ContainerRuntime().remove("abc")
        assert mock_run.call_args[0][0] == ["docker", "rm", "-v", "-f", "abc"]

    @patch("dillinger.runtime.client.subprocess.run")
    def test_wait_returns_exit_code(self, mock_run: MagicMock) -> None:
        """wait() parses the exit code."""
        mock_run.return_value = _completed(stdout="3\n")
        assert ContainerRuntime().wait("abc") == 3

    @patch("dillinger.runtime.client.subprocess.run")
    def test_wait_bad_output(self, mock_run: MagicMock) -> None:
        """Unparseable wait output raises the base error."""
        mock_run.return_value = _completed(stdout="")
        with pytest.raises(ContainerRuntimeError):
            ContainerRuntime().wait("abc")


class TestInspect:
    """Tests for ContainerRuntime.inspect."""

    @patch("dillinger.runtime.client.subprocess.run")
    def test_parses_state_and_mounts(self, mock_run: MagicMock) -> None:
        """inspect() returns state and mount records."""
        mock_run.return_value = _completed(
            stdout=json.dumps(
                [
                    {
                        "Id": "abc",
                        "Name": "/dillinger-core",
                        "Created": "2026-01-01T00:00:00Z",
                        "State": {
                            "Status": "running",
                            "Running": True,
                            "ExitCode": 0,
                        },
                        "Config": {"Tty": True},
                        "Mounts": [
                            {
                                "Type": "bind",
                                "Source": "/srv/data",
                                "Destination": "/data",
                            },
                            {
                                "Type": "volume",
                                "Name": "dillinger_root",
                                "Source": "/var/lib/docker/volumes/x",
                                "Destination": "/root",
                            },
                        ],
                    }
                ]
            )
        )
        state = ContainerRuntime().inspect("abc")
        assert state.name == "dillinger-core"
        assert state.running is True
        assert state.tty is True
        assert state.mounts[0].kind is MountKind.BIND
        assert state.mounts[0].source == "/srv/data"
        assert state.mounts[1].kind is MountKind.VOLUME
        assert state.mounts[1].name == "dillinger_root"

    @patch("dillinger.runtime.client.subprocess.run")
    def test_empty_result_is_not_found(self, mock_run: MagicMock) -> None:
        """An empty inspect list means the process is absent."""
        mock_run.return_value = _completed(stdout="[]")
        with pytest.raises(NotFoundError):
            ContainerRuntime().inspect("abc")


class TestListProcesses:
    """Tests for ContainerRuntime.list_processes."""

    @patch("dillinger.runtime.client.subprocess.run")
    def test_filters_and_parsing(self, mock_run: MagicMock) -> None:
        """Filters are passed through and rows are parsed."""
        mock_run.return_value = _completed(
            stdout="id1\tdillinger-session-a\tExited\nid2\t/other\trunning\n"
        )
        processes = ContainerRuntime().list_processes(
            name="dillinger-session-", statuses=["exited"], volume="v"
        )
        cmd = mock_run.call_args[0][0]
        assert "name=dillinger-session-" in cmd
        assert "status=exited" in cmd
        assert "volume=v" in cmd
        assert "-a" in cmd
        assert processes[0].name == "dillinger-session-a"
        assert processes[0].state == "exited"
        assert processes[1].name == "other"


class TestRunEphemeral:
    """Tests for ContainerRuntime.run_ephemeral."""

    @patch("dillinger.runtime.client.subprocess.run")
    def test_returns_exit_code_and_output(self, mock_run: MagicMock) -> None:
        """Non-zero exit of the command is returned, not raised."""
        mock_run.return_value = _completed(
            stdout="out\n", stderr="err\n", returncode=1
        )
        code, output = ContainerRuntime().run_ephemeral(
            "alpine:3.20",
            ["sh", "-lc", "true"],
            [ResourceBinding("vol", "/mnt/vol", BindMode.READ_ONLY)],
        )
        assert code == 1
        assert output == "out\nerr\n"
        cmd = mock_run.call_args[0][0]
        assert cmd[:3] == ["docker", "run", "--rm"]
        assert "vol:/mnt/vol:ro" in cmd

    @patch("dillinger.runtime.client.subprocess.run")
    def test_scheduling_failure_raises(self, mock_run: MagicMock) -> None:
        """Exit code 125 is a runtime failure."""
        mock_run.return_value = _completed(
            stderr="Cannot connect to the Docker daemon", returncode=125
        )
        with pytest.raises(RuntimeUnavailableError):
            ContainerRuntime().run_ephemeral("alpine", ["true"], [])


class TestVolumesAndImages:
    """Tests for named volume and image operations."""

    @patch("dillinger.runtime.client.subprocess.run")
    def test_create_bind_volume(self, mock_run: MagicMock) -> None:
        """Named volumes are created as local bind volumes."""
        mock_run.return_value = _completed()
        ContainerRuntime().create_named_volume("scratch", "/srv/games/x")
        cmd = mock_run.call_args[0][0]
        assert cmd[:3] == ["docker", "volume", "create"]
        assert "device=/srv/games/x" in cmd
        assert "o=bind" in cmd
        assert cmd[-1] == "scratch"

    @patch("dillinger.runtime.client.subprocess.run")
    def test_remove_in_use_volume(self, mock_run: MagicMock) -> None:
        """Removing a volume in use raises contention."""
        mock_run.side_effect = _failed(
            "Error response from daemon: remove scratch: volume is in use"
        )
        with pytest.raises(ResourceContentionError):
            ContainerRuntime().remove_named_volume("scratch")

    @patch("dillinger.runtime.client.subprocess.run")
    def test_list_images_skips_untagged(self, mock_run: MagicMock) -> None:
        """Dangling images are not listed."""
        mock_run.return_value = _completed(
            stdout="runner-wine:1.2.0\n<none>:<none>\nalpine:3.20\n"
        )
        assert ContainerRuntime().list_images() == [
            "runner-wine:1.2.0",
            "alpine:3.20",
        ]

    @patch("dillinger.runtime.client.subprocess.run")
    def test_inspect_volume(self, mock_run: MagicMock) -> None:
        """Volume inspection returns the mountpoint."""
        mock_run.return_value = _completed(
            stdout=json.dumps(
                [{"Name": "v", "Mountpoint": "/var/lib/v", "Driver": "local"}]
            )
        )
        info = ContainerRuntime().inspect_volume("v")
        assert info.mountpoint == "/var/lib/v"
