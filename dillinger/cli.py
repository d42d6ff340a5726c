# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Dillinger CLI: multi-command entry point.

Provides ``dillinger <command>`` for driving game sessions from a shell.
Running ``dillinger`` with no arguments prints usage information.

Subcommands:

* ``launch``          launch a stored game in a new session
* ``install``         run a game's installer
* ``stop``            stop a session
* ``status``          show a session's process state
* ``logs``            print a session's recent output
* ``cleanup``         reclaim orphaned processes and volumes
* ``scan``            list candidate executables or shortcuts
* ``registry-setup``  import a game's registry setup script
* ``parse-lnk``       decode a Windows shortcut file
* ``convert-reg``     convert a REG ADD script to a .reg file
"""

from __future__ import annotations

import argparse
import logging
import sys
import uuid
from pathlib import Path

from dillinger.config import ConfigError, OrchestratorConfig
from dillinger.logging import configure_logging
from dillinger.models import Game, Platform
from dillinger.parsers.registry import convert_cmd_to_reg
from dillinger.parsers.shortcut import parse_shortcut
from dillinger.runtime.client import ContainerRuntime
from dillinger.runtime.errors import (
    ContainerRuntimeError,
    NotFoundError,
    RuntimeUnavailableError,
)
from dillinger.sandbox.errors import SessionError
from dillinger.sandbox.orchestrator import (
    GAMES_KIND,
    InstallOptions,
    SessionOrchestrator,
)
from dillinger.sandbox.plans import LaunchOptions
from dillinger.storage import JsonDocumentStore, JsonSettings


logger = logging.getLogger(__name__)

PLATFORMS_KIND = "platforms"

# Exit codes.
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_RUNTIME_UNAVAILABLE = 3

# Known subcommand names.
_SUBCOMMANDS = frozenset(
    {
        "launch",
        "install",
        "stop",
        "status",
        "logs",
        "cleanup",
        "scan",
        "registry-setup",
        "parse-lnk",
        "convert-reg",
    }
)

_USAGE = """\
usage: dillinger <command> [args]

commands:
  launch          Launch a stored game in a new session
  install         Run a game's installer
  stop            Stop a session
  status          Show a session's process state
  logs            Print a session's recent output
  cleanup         Reclaim orphaned processes and volumes
  scan            List candidate executables or shortcuts
  registry-setup  Import a game's registry setup script
  parse-lnk       Decode a Windows shortcut file
  convert-reg     Convert a REG ADD script to a .reg file

Run 'dillinger <command> --help' for command-specific help.\
"""


# ── Shared helpers ──────────────────────────────────────────────────


def _parser(command: str, description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=f"dillinger {command}", description=description
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config file (default: $DILLINGER_CONFIG or "
        "$XDG_CONFIG_HOME/dillinger/dillinger.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    return parser


def _setup_logging(args: argparse.Namespace) -> None:
    configure_logging(
        level=logging.DEBUG if args.verbose else logging.INFO
    )


def _load_config(args: argparse.Namespace) -> OrchestratorConfig | None:
    try:
        return OrchestratorConfig.from_yaml(args.config)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return None


def _build_orchestrator(config: OrchestratorConfig) -> SessionOrchestrator:
    runtime = ContainerRuntime(config.container_command)
    store = JsonDocumentStore(config.dillinger_root)
    settings = JsonSettings.for_root(config.dillinger_root)
    return SessionOrchestrator(config, runtime, store, settings)


def _load_game(
    store: JsonDocumentStore, game_id: str, platform_id: str | None
) -> tuple[Game, Platform]:
    """Read a game and its platform from the store.

    Raises:
        LookupError: If either document is missing.
    """
    doc = store.read_entity(GAMES_KIND, game_id)
    if doc is None:
        raise LookupError(f"Game not found: {game_id}")
    game = Game.from_dict(doc)
    platform_id = platform_id or game.platform_id
    if not platform_id:
        raise LookupError(f"Game {game_id} has no platform; use --platform")
    platform_doc = store.read_entity(PLATFORMS_KIND, platform_id)
    if platform_doc is None:
        raise LookupError(f"Platform not found: {platform_id}")
    return game, Platform.from_dict(platform_doc)


def _run_guarded(action) -> int:
    """Run an orchestrator action, mapping failures to exit codes."""
    try:
        return action()
    except RuntimeUnavailableError as e:
        logger.error("Container runtime unavailable: %s", e)
        return EXIT_RUNTIME_UNAVAILABLE
    except (SessionError, LookupError) as e:
        logger.error("%s", e)
        return EXIT_FAILURE
    except ContainerRuntimeError as e:
        logger.error("Runtime error: %s", e)
        return EXIT_FAILURE


# ── launch subcommand ───────────────────────────────────────────────


def cmd_launch(argv: list[str]) -> int:
    """Launch a stored game.

    Args:
        argv: Command arguments.

    Returns:
        Exit code (the game's exit code with ``--wait``).
    """
    parser = _parser("launch", "Launch a stored game in a new session")
    parser.add_argument("game_id", help="Game id")
    parser.add_argument("--platform", help="Platform id override")
    parser.add_argument("--session", help="Session id (default: random)")
    parser.add_argument(
        "--mode", choices=("local", "streaming"), default="local"
    )
    parser.add_argument(
        "--keep-alive",
        action="store_true",
        help="Keep Wine sessions alive after exit (troubleshooting)",
    )
    parser.add_argument(
        "--keep-container",
        action="store_true",
        help="Do not auto-remove the session process",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Start an idle debug process to attach to",
    )
    parser.add_argument(
        "--wait", action="store_true", help="Wait for the session to exit"
    )
    args = parser.parse_args(argv)
    _setup_logging(args)
    config = _load_config(args)
    if config is None:
        return EXIT_FAILURE
    orchestrator = _build_orchestrator(config)
    store = JsonDocumentStore(config.dillinger_root)
    session_id = args.session or uuid.uuid4().hex[:12]

    def action() -> int:
        game, platform = _load_game(store, args.game_id, args.platform)
        record = orchestrator.launch(
            game,
            platform,
            session_id,
            LaunchOptions(
                mode=args.mode,
                keep_alive=args.keep_alive,
                keep_container=args.keep_container,
                debug=args.debug,
            ),
        )
        print(f"Session {record.session_id}: {record.process_name}")
        if record.attach_command:
            print(f"Attach with: {record.attach_command}")
        if not args.wait:
            return EXIT_OK
        orchestrator.join_monitor(session_id)
        final = orchestrator.session(session_id)
        exit_code = final.exit_code if final else None
        print(f"Session {session_id} exited with code {exit_code}")
        return exit_code if exit_code is not None else EXIT_FAILURE

    return _run_guarded(action)


# ── install subcommand ──────────────────────────────────────────────


def cmd_install(argv: list[str]) -> int:
    """Run a game's installer and wait for it to finish."""
    parser = _parser("install", "Run a game's installer")
    parser.add_argument("game_id", help="Game id")
    parser.add_argument("installer", help="Installer path")
    parser.add_argument("install_path", help="Install target directory")
    parser.add_argument("--platform", help="Platform id override")
    parser.add_argument("--session", help="Session id (default: random)")
    parser.add_argument("--arch", default="win64", help="Wine prefix arch")
    parser.add_argument("--wine-version", help="Wine build id")
    parser.add_argument(
        "--installer-args", default="", help="Extra installer arguments"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Keep the installer process and log verbosely",
    )
    args = parser.parse_args(argv)
    _setup_logging(args)
    config = _load_config(args)
    if config is None:
        return EXIT_FAILURE
    orchestrator = _build_orchestrator(config)
    store = JsonDocumentStore(config.dillinger_root)
    session_id = args.session or uuid.uuid4().hex[:12]

    def action() -> int:
        game, platform = _load_game(store, args.game_id, args.platform)
        orchestrator.install(
            game,
            platform,
            session_id,
            args.installer,
            args.install_path,
            InstallOptions(
                debug=args.debug,
                wine_arch=args.arch,
                wine_version_id=args.wine_version,
                installer_args=args.installer_args,
            ),
        )
        orchestrator.join_monitor(session_id)
        final = orchestrator.session(session_id)
        if final is not None and final.exit_code == 0:
            print(f"Installed {game.title} into {args.install_path}")
            return EXIT_OK
        code = final.exit_code if final else None
        print(f"Installer failed (exit code {code})", file=sys.stderr)
        return EXIT_FAILURE

    return _run_guarded(action)


# ── stop / status / logs subcommands ────────────────────────────────


def cmd_stop(argv: list[str]) -> int:
    """Stop a session (succeeds if it is already gone)."""
    parser = _parser("stop", "Stop a session")
    parser.add_argument("session_id")
    parser.add_argument(
        "--remove", action="store_true", help="Also remove the process"
    )
    args = parser.parse_args(argv)
    _setup_logging(args)
    config = _load_config(args)
    if config is None:
        return EXIT_FAILURE
    orchestrator = _build_orchestrator(config)

    def action() -> int:
        orchestrator.stop(args.session_id, remove=args.remove)
        print(f"Session {args.session_id} stopped")
        return EXIT_OK

    return _run_guarded(action)


def cmd_status(argv: list[str]) -> int:
    """Print a session's process state."""
    parser = _parser("status", "Show a session's process state")
    parser.add_argument("session_id")
    args = parser.parse_args(argv)
    _setup_logging(args)
    config = _load_config(args)
    if config is None:
        return EXIT_FAILURE
    orchestrator = _build_orchestrator(config)

    def action() -> int:
        try:
            state = orchestrator.status(args.session_id)
        except NotFoundError:
            print(f"Session {args.session_id}: not found")
            return EXIT_FAILURE
        print(f"Session {args.session_id}: {state.status}")
        print(f"  process:  {state.name} ({state.id[:12]})")
        print(f"  created:  {state.created_at}")
        if not state.running:
            print(f"  exit code: {state.exit_code}")
        return EXIT_OK

    return _run_guarded(action)


def cmd_logs(argv: list[str]) -> int:
    """Print a session's recent output."""
    parser = _parser("logs", "Print a session's recent output")
    parser.add_argument("session_id")
    parser.add_argument("--tail", type=int, default=100)
    args = parser.parse_args(argv)
    _setup_logging(args)
    config = _load_config(args)
    if config is None:
        return EXIT_FAILURE
    orchestrator = _build_orchestrator(config)

    def action() -> int:
        print(orchestrator.logs(args.session_id, args.tail), end="")
        return EXIT_OK

    return _run_guarded(action)


# ── cleanup subcommand ──────────────────────────────────────────────


def cmd_cleanup(argv: list[str]) -> int:
    """Reclaim orphaned session processes and volumes."""
    parser = _parser("cleanup", "Reclaim orphaned processes and volumes")
    args = parser.parse_args(argv)
    _setup_logging(args)
    config = _load_config(args)
    if config is None:
        return EXIT_FAILURE
    orchestrator = _build_orchestrator(config)

    def action() -> int:
        report = orchestrator.cleanup()
        for name in report.processes:
            print(f"removed process {name}")
        for name in report.volumes:
            print(f"removed volume {name}")
        if not report.processes and not report.volumes:
            print("nothing to clean up")
        return EXIT_OK

    return _run_guarded(action)


# ── discovery subcommands ───────────────────────────────────────────


def cmd_scan(argv: list[str]) -> int:
    """List candidate executables (or shortcuts) under an install path."""
    parser = _parser("scan", "List candidate executables or shortcuts")
    parser.add_argument("install_path")
    parser.add_argument(
        "--shortcuts", action="store_true", help="List .lnk shortcuts"
    )
    args = parser.parse_args(argv)
    _setup_logging(args)
    config = _load_config(args)
    if config is None:
        return EXIT_FAILURE
    discovery = _build_orchestrator(config).discovery

    def action() -> int:
        if args.shortcuts:
            for path in discovery.scan_for_shortcuts(args.install_path):
                record = discovery.read_shortcut(path)
                if record is None:
                    print(path)
                else:
                    print(f"{path} -> {record.target} {record.arguments}")
        else:
            for path in discovery.scan_for_executables(args.install_path):
                print(path)
        return EXIT_OK

    return _run_guarded(action)


def cmd_registry_setup(argv: list[str]) -> int:
    """Import a Wine game's registry setup script into its prefix."""
    parser = _parser("registry-setup", "Import a registry setup script")
    parser.add_argument("game_id")
    parser.add_argument("--platform", help="Platform id override")
    args = parser.parse_args(argv)
    _setup_logging(args)
    config = _load_config(args)
    if config is None:
        return EXIT_FAILURE
    orchestrator = _build_orchestrator(config)
    store = JsonDocumentStore(config.dillinger_root)

    def action() -> int:
        game, platform = _load_game(store, args.game_id, args.platform)
        result = orchestrator.run_registry_setup(game, platform)
        print(result.message)
        return EXIT_OK if result.success else EXIT_FAILURE

    return _run_guarded(action)


# ── local parsing subcommands ───────────────────────────────────────


def cmd_parse_lnk(argv: list[str]) -> int:
    """Decode a local ``.lnk`` file and print its launch information."""
    parser = argparse.ArgumentParser(
        prog="dillinger parse-lnk", description="Decode a Windows shortcut"
    )
    parser.add_argument("path", type=Path)
    args = parser.parse_args(argv)

    try:
        data = args.path.read_bytes()
    except OSError as e:
        print(f"Cannot read {args.path}: {e}", file=sys.stderr)
        return EXIT_FAILURE
    record = parse_shortcut(data)
    if record is None:
        print(f"Not a valid shortcut: {args.path}", file=sys.stderr)
        return EXIT_FAILURE
    print(f"target:            {record.target}")
    print(f"arguments:         {record.arguments}")
    print(f"working directory: {record.working_directory}")
    print(f"description:       {record.description}")
    return EXIT_OK


def cmd_convert_reg(argv: list[str]) -> int:
    """Convert a local REG ADD script and print or write the .reg text."""
    parser = argparse.ArgumentParser(
        prog="dillinger convert-reg",
        description="Convert a REG ADD script to a .reg file",
    )
    parser.add_argument("path", type=Path)
    parser.add_argument(
        "-o", "--output", type=Path, help="Write to file instead of stdout"
    )
    args = parser.parse_args(argv)

    try:
        script = args.path.read_text(errors="replace")
    except OSError as e:
        print(f"Cannot read {args.path}: {e}", file=sys.stderr)
        return EXIT_FAILURE
    reg = convert_cmd_to_reg(script)
    if reg is None:
        print(f"No REG ADD entries found in {args.path}", file=sys.stderr)
        return EXIT_FAILURE
    if args.output:
        args.output.write_text(reg)
        print(f"Wrote {args.output}")
    else:
        print(reg, end="")
    return EXIT_OK


# ── CLI plumbing ────────────────────────────────────────────────────


_DISPATCH: dict[str, str] = {
    "launch": "cmd_launch",
    "install": "cmd_install",
    "stop": "cmd_stop",
    "status": "cmd_status",
    "logs": "cmd_logs",
    "cleanup": "cmd_cleanup",
    "scan": "cmd_scan",
    "registry-setup": "cmd_registry_setup",
    "parse-lnk": "cmd_parse_lnk",
    "convert-reg": "cmd_convert_reg",
}


def cli() -> None:
    """Entry point for ``dillinger``.

    When no arguments are given, prints usage information. Requires an
    explicit subcommand for all operations.
    """
    argv = sys.argv[1:]

    if not argv or argv[0] == "--help":
        print(_USAGE)
        sys.exit(EXIT_OK)

    if argv[0] not in _SUBCOMMANDS:
        print(f"dillinger: unknown command '{argv[0]}'", file=sys.stderr)
        print(_USAGE, file=sys.stderr)
        sys.exit(EXIT_USAGE)

    command = argv[0]
    rest = argv[1:]

    # Look up handler by name so tests can mock individual commands.
    import dillinger.cli as _self

    handler = getattr(_self, _DISPATCH[command])
    sys.exit(handler(rest))
