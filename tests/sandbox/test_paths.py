# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for dillinger/sandbox/paths.py."""

from __future__ import annotations

import pytest

from dillinger.runtime.types import MountKind, MountRecord, ProcessState
from dillinger.sandbox.paths import PathResolver, is_path_within, strip_prefix
from tests.conftest import FakeRuntime
from tests.sandbox.conftest import self_state


class TestIsPathWithin:
    """Tests for segment-boundary prefix matching."""

    @pytest.mark.parametrize(
        ("path", "prefix", "expected"),
        [
            ("/data", "/data", True),
            ("/data/games/x", "/data", True),
            ("/data/games/x", "/data/", True),
            ("/database", "/data", False),
            ("/datax/games", "/data", False),
            ("/anything", "/", True),
        ],
    )
    def test_matching(self, path: str, prefix: str, expected: bool) -> None:
        """Only whole path segments match."""
        assert is_path_within(path, prefix) is expected

    def test_strip_prefix(self) -> None:
        """The remainder has no leading slash."""
        assert strip_prefix("/data/games/x", "/data/") == "games/x"
        assert strip_prefix("/data", "/data") == ""


class TestPathResolver:
    """Tests for PathResolver."""

    def test_translate_through_mount(self, fake_runtime: FakeRuntime) -> None:
        """A path under a mount destination maps to its source."""
        fake_runtime.self_state = self_state([("/data", "/srv/dillinger")])
        resolver = PathResolver(fake_runtime, "dillinger-core")
        assert resolver.translate("/data/games/x") == "/srv/dillinger/games/x"
        assert resolver.translate("/data") == "/srv/dillinger"

    def test_segment_boundary(self, fake_runtime: FakeRuntime) -> None:
        """/database is not under a /data mount."""
        fake_runtime.self_state = self_state([("/data", "/srv/dillinger")])
        resolver = PathResolver(fake_runtime, "dillinger-core")
        assert resolver.translate("/database/x") == "/database/x"

    def test_longest_mount_wins(self, fake_runtime: FakeRuntime) -> None:
        """The most specific mount destination is used."""
        fake_runtime.self_state = self_state(
            [("/mnt", "/host/mnt"), ("/mnt/sub", "/other/disk")]
        )
        resolver = PathResolver(fake_runtime, "dillinger-core")
        assert resolver.translate("/mnt/sub/game") == "/other/disk/game"
        assert resolver.translate("/mnt/other") == "/host/mnt/other"

    def test_identity_without_self_container(
        self, fake_runtime: FakeRuntime
    ) -> None:
        """When inspection fails every path maps to itself."""
        resolver = PathResolver(fake_runtime, "not-a-container")
        assert resolver.detect_mounts() == ()
        assert resolver.translate("/data/games/x") == "/data/games/x"

    def test_discovery_is_memoized(self, fake_runtime: FakeRuntime) -> None:
        """The mount table is read once."""
        fake_runtime.self_state = self_state([("/data", "/srv/a")])
        resolver = PathResolver(fake_runtime, "dillinger-core")
        first = resolver.detect_mounts()
        fake_runtime.self_state = self_state([("/data", "/srv/b")])
        assert resolver.detect_mounts() is first
        assert resolver.translate("/data/x") == "/srv/a/x"

    def test_ignores_sourceless_mounts(self) -> None:
        """Mounts without an absolute host source are skipped."""
        runtime = FakeRuntime()
        runtime.self_state = ProcessState(
            id="selfid",
            name="dillinger-core",
            status="running",
            running=True,
            exit_code=0,
            created_at="",
            mounts=(
                MountRecord("/cache", "", MountKind.VOLUME, "cache"),
                MountRecord("relative", "/srv/x", MountKind.BIND),
            ),
        )
        resolver = PathResolver(runtime, "dillinger-core")
        assert resolver.detect_mounts() == ()

    def test_inspect_error_logged(
        self, fake_runtime: FakeRuntime, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A failed self-inspection logs a warning."""
        resolver = PathResolver(fake_runtime, "gone")
        with caplog.at_level("WARNING"):
            resolver.detect_mounts()
        assert "identity path mapping" in caplog.text
