# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for dillinger/cli.py: multi-command CLI."""

import struct
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from dillinger.cli import (
    EXIT_FAILURE,
    EXIT_OK,
    EXIT_RUNTIME_UNAVAILABLE,
    _load_game,
    _run_guarded,
    cli,
    cmd_cleanup,
    cmd_convert_reg,
    cmd_launch,
    cmd_parse_lnk,
    cmd_stop,
)
from dillinger.config import ConfigError, OrchestratorConfig
from dillinger.parsers.shortcut import HAS_RELATIVE_PATH, HEADER_SIZE
from dillinger.runtime.errors import (
    ContainerRuntimeError,
    RuntimeUnavailableError,
)
from dillinger.sandbox.errors import ConfigurationError
from dillinger.sandbox.orchestrator import CleanupReport
from dillinger.sandbox.session import SessionRecord, SessionStatus
from dillinger.storage import JsonDocumentStore


REG_SCRIPT = (
    'REG ADD "HKCU\\Software\\Doom" /v "Path" /t REG_SZ /d "C:\\Doom" /f\n'
)


def _shortcut(relative_path: str) -> bytes:
    """Minimal shell link with only a relative path string."""
    header = bytearray(HEADER_SIZE)
    struct.pack_into("<I", header, 0, 0x4C)
    struct.pack_into("<I", header, 0x14, HAS_RELATIVE_PATH)
    text = relative_path.encode("utf-16-le")
    return bytes(header) + struct.pack("<H", len(relative_path)) + text


# ── cli dispatch ────────────────────────────────────────────────────


class TestCli:
    """Tests for the cli entry point."""

    def test_no_args_prints_usage(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Bare ``dillinger`` prints usage and exits 0."""
        with (
            patch("dillinger.cli.sys.argv", ["dillinger"]),
            pytest.raises(SystemExit) as exc_info,
        ):
            cli()
        assert exc_info.value.code == 0
        assert "usage: dillinger" in capsys.readouterr().out

    def test_unknown_command(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Unknown command prints error to stderr and exits 2."""
        with (
            patch("dillinger.cli.sys.argv", ["dillinger", "frobnicate"]),
            pytest.raises(SystemExit) as exc_info,
        ):
            cli()
        assert exc_info.value.code == 2
        err = capsys.readouterr().err
        assert "unknown command 'frobnicate'" in err
        assert "convert-reg" in err

    @patch("dillinger.cli.sys.exit")
    @patch("dillinger.cli.cmd_launch", return_value=0)
    def test_launch_subcommand(
        self, mock_launch: MagicMock, mock_exit: MagicMock
    ) -> None:
        """Arguments after the command go to its handler."""
        with patch(
            "dillinger.cli.sys.argv", ["dillinger", "launch", "doom", "--wait"]
        ):
            cli()
        mock_launch.assert_called_once_with(["doom", "--wait"])
        mock_exit.assert_called_once_with(0)

    @patch("dillinger.cli.sys.exit")
    @patch("dillinger.cli.cmd_registry_setup", return_value=1)
    def test_registry_setup_subcommand(
        self, mock_setup: MagicMock, mock_exit: MagicMock
    ) -> None:
        """Hyphenated commands dispatch by name."""
        with patch(
            "dillinger.cli.sys.argv", ["dillinger", "registry-setup", "q"]
        ):
            cli()
        mock_setup.assert_called_once_with(["q"])
        mock_exit.assert_called_once_with(1)


# ── helpers ─────────────────────────────────────────────────────────


class TestRunGuarded:
    """Tests for _run_guarded."""

    def test_ok(self) -> None:
        """The action's exit code is returned."""
        assert _run_guarded(lambda: 7) == 7

    def test_runtime_unavailable(self) -> None:
        """An unreachable runtime has its own exit code."""

        def action() -> int:
            raise RuntimeUnavailableError("docker not found")

        assert _run_guarded(action) == EXIT_RUNTIME_UNAVAILABLE

    @pytest.mark.parametrize(
        "error",
        [
            ConfigurationError("bad"),
            LookupError("missing"),
            ContainerRuntimeError("boom"),
        ],
    )
    def test_failures(self, error: Exception) -> None:
        """Session, lookup and runtime errors exit 1."""

        def action() -> int:
            raise error

        assert _run_guarded(action) == EXIT_FAILURE


class TestLoadGame:
    """Tests for _load_game."""

    def test_loads_game_and_platform(self, tmp_path: Path) -> None:
        """The game's own platform is used by default."""
        store = JsonDocumentStore(tmp_path)
        store.write_entity(
            "games", "doom", {"id": "doom", "title": "Doom", "platformId": "l"}
        )
        store.write_entity(
            "platforms", "l", {"id": "l", "name": "Linux", "type": "native"}
        )
        game, platform = _load_game(store, "doom", None)
        assert game.title == "Doom"
        assert platform.type == "native"

    def test_missing_game(self, tmp_path: Path) -> None:
        """Unknown games are a lookup error."""
        with pytest.raises(LookupError, match="Game not found"):
            _load_game(JsonDocumentStore(tmp_path), "x", None)

    def test_missing_platform(self, tmp_path: Path) -> None:
        """Games without a platform need --platform."""
        store = JsonDocumentStore(tmp_path)
        store.write_entity("games", "g", {"id": "g", "title": "G"})
        with pytest.raises(LookupError, match="--platform"):
            _load_game(store, "g", None)
        with pytest.raises(LookupError, match="Platform not found"):
            _load_game(store, "g", "nes")


# ── orchestrator-backed commands ────────────────────────────────────


@pytest.fixture
def config(tmp_path: Path) -> OrchestratorConfig:
    return OrchestratorConfig(dillinger_root=tmp_path)


class TestCmdLaunch:
    """Tests for cmd_launch."""

    @patch("dillinger.cli.configure_logging")
    def test_launch_and_wait(
        self,
        mock_logging: MagicMock,
        config: OrchestratorConfig,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """--wait returns the session's exit code."""
        store = JsonDocumentStore(config.dillinger_root)
        store.write_entity(
            "games", "doom", {"id": "doom", "title": "Doom", "platformId": "l"}
        )
        store.write_entity(
            "platforms", "l", {"id": "l", "name": "Linux", "type": "native"}
        )
        orchestrator = MagicMock()
        orchestrator.launch.return_value = SessionRecord(
            "s1",
            "doom",
            status=SessionStatus.MONITORING,
            process_name="dillinger-session-s1",
        )
        orchestrator.session.return_value = SessionRecord(
            "s1", "doom", status=SessionStatus.EXITED, exit_code=3
        )
        with (
            patch(
                "dillinger.cli.OrchestratorConfig.from_yaml",
                return_value=config,
            ),
            patch(
                "dillinger.cli._build_orchestrator", return_value=orchestrator
            ),
        ):
            code = cmd_launch(["doom", "--session", "s1", "--wait"])

        assert code == 3
        game, platform, session_id, options = (
            orchestrator.launch.call_args.args
        )
        assert (game.id, platform.id, session_id) == ("doom", "l", "s1")
        assert options.debug is False
        orchestrator.join_monitor.assert_called_once_with("s1")
        assert "dillinger-session-s1" in capsys.readouterr().out

    @patch("dillinger.cli.configure_logging")
    def test_bad_config(self, mock_logging: MagicMock) -> None:
        """Configuration errors exit 1 without touching the runtime."""
        with (
            patch(
                "dillinger.cli.OrchestratorConfig.from_yaml",
                side_effect=ConfigError("bad"),
            ),
            patch("dillinger.cli._build_orchestrator") as mock_build,
        ):
            assert cmd_launch(["doom"]) == EXIT_FAILURE
        mock_build.assert_not_called()


class TestCmdStopAndCleanup:
    """Tests for cmd_stop and cmd_cleanup."""

    @patch("dillinger.cli.configure_logging")
    def test_stop(
        self, mock_logging: MagicMock, config: OrchestratorConfig
    ) -> None:
        """--remove is passed through."""
        orchestrator = MagicMock()
        with (
            patch(
                "dillinger.cli.OrchestratorConfig.from_yaml",
                return_value=config,
            ),
            patch(
                "dillinger.cli._build_orchestrator", return_value=orchestrator
            ),
        ):
            assert cmd_stop(["s1", "--remove"]) == EXIT_OK
        orchestrator.stop.assert_called_once_with("s1", remove=True)

    @patch("dillinger.cli.configure_logging")
    def test_cleanup_report(
        self,
        mock_logging: MagicMock,
        config: OrchestratorConfig,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Removed processes and volumes are listed."""
        orchestrator = MagicMock()
        orchestrator.cleanup.return_value = CleanupReport(
            processes=["dillinger-session-old"], volumes=["dillinger_x"]
        )
        with (
            patch(
                "dillinger.cli.OrchestratorConfig.from_yaml",
                return_value=config,
            ),
            patch(
                "dillinger.cli._build_orchestrator", return_value=orchestrator
            ),
        ):
            assert cmd_cleanup([]) == EXIT_OK
        out = capsys.readouterr().out
        assert "removed process dillinger-session-old" in out
        assert "removed volume dillinger_x" in out


# ── local parsing commands ──────────────────────────────────────────


class TestCmdParseLnk:
    """Tests for cmd_parse_lnk."""

    def test_decodes_shortcut(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """A valid shortcut prints its target."""
        path = tmp_path / "Game.lnk"
        path.write_bytes(_shortcut("..\\Game\\game.exe"))
        assert cmd_parse_lnk([str(path)]) == EXIT_OK
        assert "..\\Game\\game.exe" in capsys.readouterr().out

    def test_invalid_shortcut(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Garbage input is reported on stderr."""
        path = tmp_path / "bad.lnk"
        path.write_bytes(b"not a shortcut")
        assert cmd_parse_lnk([str(path)]) == EXIT_FAILURE
        assert "Not a valid shortcut" in capsys.readouterr().err

    def test_missing_file(self, tmp_path: Path) -> None:
        """Unreadable files fail."""
        assert cmd_parse_lnk([str(tmp_path / "none.lnk")]) == EXIT_FAILURE


class TestCmdConvertReg:
    """Tests for cmd_convert_reg."""

    def test_stdout(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """The .reg document is printed."""
        path = tmp_path / "setup_reg.cmd"
        path.write_text(REG_SCRIPT)
        assert cmd_convert_reg([str(path)]) == EXIT_OK
        out = capsys.readouterr().out
        assert out.startswith("Windows Registry Editor Version 5.00")
        assert '"Path"="C:\\Doom"' in out

    def test_output_file(self, tmp_path: Path) -> None:
        """-o writes the document to a file."""
        path = tmp_path / "setup_reg.cmd"
        path.write_text(REG_SCRIPT)
        target = tmp_path / "out.reg"
        assert cmd_convert_reg([str(path), "-o", str(target)]) == EXIT_OK
        assert "[HKCU\\Software\\Doom]" in target.read_text()

    def test_no_entries(self, tmp_path: Path) -> None:
        """Scripts without REG ADD lines fail."""
        path = tmp_path / "run.bat"
        path.write_text("start game.exe\n")
        assert cmd_convert_reg([str(path)]) == EXIT_FAILURE
