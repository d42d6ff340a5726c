# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for dillinger/sandbox/reclaimer.py."""

from __future__ import annotations

from unittest.mock import MagicMock

from dillinger.runtime.errors import ContainerRuntimeError
from dillinger.runtime.types import ProcessSummary, ResourceBinding
from dillinger.sandbox.reclaimer import ResourceReclaimer
from tests.conftest import FakeRuntime


PROTECTED = frozenset({"dillinger_root", "dillinger_installers"})


class TestReclaimOrphanedContainers:
    """Tests for ResourceReclaimer.reclaim_orphaned_containers."""

    def test_removes_terminated_session_processes(
        self, fake_runtime: FakeRuntime
    ) -> None:
        """Only exited processes with the session prefix are removed."""
        done = fake_runtime.add_process("dillinger-session-a", state="exited")
        fake_runtime.add_process("dillinger-session-b", state="running")
        fake_runtime.add_process("x-dillinger-session-c", state="exited")
        fake_runtime.add_process("postgres", state="exited")

        report = ResourceReclaimer(fake_runtime).reclaim_orphaned_containers()

        assert report.processes == ["dillinger-session-a"]
        assert done.id not in fake_runtime.processes
        assert fake_runtime.find_by_name("dillinger-session-b") is not None
        assert fake_runtime.find_by_name("x-dillinger-session-c") is not None

    def test_custom_prefix(self, fake_runtime: FakeRuntime) -> None:
        """Other session kinds are reclaimed by their own prefix."""
        fake_runtime.add_process("dillinger-debug-a", state="dead")
        report = ResourceReclaimer(fake_runtime).reclaim_orphaned_containers(
            "dillinger-debug-"
        )
        assert report.processes == ["dillinger-debug-a"]

    def test_failures_are_reported(self) -> None:
        """A failed removal is reported and does not stop the pass."""
        runtime = MagicMock()
        runtime.list_processes.return_value = [
            ProcessSummary("1", "dillinger-session-a", "exited"),
            ProcessSummary("2", "dillinger-session-b", "exited"),
        ]
        runtime.remove.side_effect = [ContainerRuntimeError("busy"), None]

        report = ResourceReclaimer(runtime).reclaim_orphaned_containers()

        assert report.failures == ["dillinger-session-a"]
        assert report.processes == ["dillinger-session-b"]


class TestReclaimOrphanedVolumes:
    """Tests for ResourceReclaimer.reclaim_orphaned_volumes."""

    def test_skips_protected_and_in_use(
        self, fake_runtime: FakeRuntime
    ) -> None:
        """Protected, in-use and foreign volumes survive."""
        for name in (
            "dillinger_root",
            "dillinger_installers",
            "dillinger_current_session",
            "dillinger_old",
            "postgres_data",
        ):
            fake_runtime.volumes[name] = f"/srv/{name}"
        fake_runtime.add_process(
            "dillinger-session-kept",
            state="exited",
            bindings=[
                ResourceBinding("dillinger_current_session", "/game")
            ],
        )

        report = ResourceReclaimer(fake_runtime).reclaim_orphaned_volumes(
            PROTECTED
        )

        assert report.volumes == ["dillinger_old"]
        assert set(fake_runtime.volumes) == {
            "dillinger_root",
            "dillinger_installers",
            "dillinger_current_session",
            "postgres_data",
        }

    def test_volumes_in_use(self, fake_runtime: FakeRuntime) -> None:
        """Host path binds are not volumes."""
        fake_runtime.add_process(
            "a",
            bindings=[
                ResourceBinding("vol_a", "/a"),
                ResourceBinding("/srv/x", "/x"),
            ],
        )
        assert ResourceReclaimer(fake_runtime).volumes_in_use() == {"vol_a"}


class TestReclaimVolumeUsers:
    """Tests for ResourceReclaimer.reclaim_volume_users."""

    def test_stops_then_removes(self, fake_runtime: FakeRuntime) -> None:
        """Running users are stopped before removal."""
        scratch = [ResourceBinding("dillinger_current_session", "/game")]
        running = fake_runtime.add_process("s1", bindings=scratch)
        exited = fake_runtime.add_process(
            "s0", state="exited", bindings=scratch
        )
        fake_runtime.add_process("unrelated")

        removed = ResourceReclaimer(fake_runtime).reclaim_volume_users(
            "dillinger_current_session"
        )

        assert sorted(removed) == ["s0", "s1"]
        assert ("stop", running.id) in fake_runtime.calls
        assert ("stop", exited.id) not in fake_runtime.calls
        assert fake_runtime.find_by_name("unrelated") is not None


class TestForceRemove:
    """Tests for ResourceReclaimer.force_remove."""

    def test_missing_counts_as_removed(
        self, fake_runtime: FakeRuntime
    ) -> None:
        """A process that is already gone is success."""
        assert ResourceReclaimer(fake_runtime).force_remove("gone") is True

    def test_failure(self) -> None:
        """Runtime errors report False."""
        runtime = MagicMock()
        runtime.remove.side_effect = ContainerRuntimeError("stuck")
        assert ResourceReclaimer(runtime).force_remove("abc") is False
