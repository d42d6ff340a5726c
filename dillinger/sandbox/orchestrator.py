# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Session orchestration.

:class:`SessionOrchestrator` turns a game and its platform into a
running sandboxed process: it resolves paths, volumes and the Wine
prefix, builds a :class:`~dillinger.sandbox.plans.LaunchPlan`,
provisions what the plan needs, creates and starts the process, and
monitors it until exit. It also runs installers, stops sessions and
reclaims resources left behind.
"""

from __future__ import annotations

import dataclasses
import functools
import logging
import posixpath
import re
import shlex
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime

from dillinger.config import OrchestratorConfig
from dillinger.models import Game, JoystickMapping, Platform
from dillinger.parsers.registry import convert_cmd_to_reg, parse_reg_add_lines
from dillinger.runtime.client import ContainerRuntime
from dillinger.runtime.errors import (
    ContainerRuntimeError,
    NotFoundError,
    ResourceContentionError,
    RuntimeUnavailableError,
)
from dillinger.runtime.types import (
    BindMode,
    ProcessSpec,
    ProcessState,
    ProcessSummary,
    ResourceBinding,
)
from dillinger.sandbox.discovery import InstallDiscovery
from dillinger.sandbox.display import DisplayConfig, detect_display
from dillinger.sandbox.errors import (
    ConfigurationError,
    LaunchError,
    SessionError,
)
from dillinger.sandbox.homes import ensure_directory, prepare_emulator_home
from dillinger.sandbox.monitor import ExitCallback, SessionMonitor
from dillinger.sandbox.paths import PathResolver
from dillinger.sandbox.plans import (
    LaunchOptions,
    LaunchPlan,
    PlanContext,
    Wine,
    WinePrefix,
    build_launch_plan,
    build_wine_debug,
    classify_platform,
    joystick_category,
    normalize_wine_executable,
    runner_repository,
    wine_version_env,
)
from dillinger.sandbox.probe import ProbeClient
from dillinger.sandbox.reclaimer import ResourceReclaimer
from dillinger.sandbox.session import (
    DEBUG_PREFIX,
    INSTALL_PREFIX,
    SESSION_PREFIX,
    SessionRecord,
    SessionStatus,
)
from dillinger.sandbox.volumes import VolumeRegistry
from dillinger.storage import DocumentStore, SettingsProvider


logger = logging.getLogger(__name__)

GAMES_KIND = "games"
INSTALL_MOUNT = "/install"
INSTALLERS_MOUNT = "/installers"
INSTALLER_MOUNT_DIR = "/installer"

_SEMVER_RE = re.compile(r"^\d+\.\d+\.\d+$")

_REGISTRY_IMPORT_SCRIPT = (
    'printf "%s" "$DILLINGER_REG" > /tmp/dillinger_setup.reg && '
    "wine regedit /S /tmp/dillinger_setup.reg"
)


@dataclass(frozen=True)
class InstallOptions:
    """Per-install options.

    Attributes:
        debug: Keep the installer process after exit and use verbose
            Wine debug channels.
        wine_arch: Prefix architecture (``win64`` or ``win32``).
        wine_version_id: Wine build to install with; defaults to the
            game's configured version.
        installer_args: Extra installer command-line arguments.
    """

    debug: bool = False
    wine_arch: str = "win64"
    wine_version_id: str | None = None
    installer_args: str = ""


@dataclass(frozen=True)
class InstallOutcome:
    """Result of waiting for an installer process."""

    success: bool
    exit_code: int


@dataclass(frozen=True)
class RegistrySetupResult:
    """Result of a registry setup import."""

    success: bool
    message: str


@dataclass
class CleanupReport:
    """Resources reclaimed by :meth:`SessionOrchestrator.cleanup`.

    Attributes:
        processes: Names of removed session processes.
        volumes: Names of removed volumes.
        sessions: Ids of session records marked cleaned and dropped.
    """

    processes: list[str] = field(default_factory=list)
    volumes: list[str] = field(default_factory=list)
    sessions: list[str] = field(default_factory=list)


def _now() -> str:
    return datetime.now(UTC).isoformat()


class SessionOrchestrator:
    """Launches, monitors, stops and reclaims game sessions.

    Collaborators not passed explicitly are built from ``config`` and
    ``runtime``.

    Thread Safety: Thread-safe. The session table is guarded by a lock;
    sessions are launched and stopped concurrently. Launches that use
    the shared scratch volume are mutually exclusive by protocol: each
    recreates the volume, reclaiming any process still holding it.
    """

    def __init__(
        self,
        config: OrchestratorConfig,
        runtime: ContainerRuntime,
        store: DocumentStore,
        settings: SettingsProvider,
        *,
        resolver: PathResolver | None = None,
        volumes: VolumeRegistry | None = None,
        probe: ProbeClient | None = None,
        reclaimer: ResourceReclaimer | None = None,
        discovery: InstallDiscovery | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Orchestrator configuration.
            runtime: Container runtime client.
            store: Document store holding games and volumes.
            settings: Read-only settings collaborator.
            resolver: Path translation; built from config if omitted.
            volumes: Volume catalog; built from config if omitted.
            probe: Probe client; built from config if omitted.
            reclaimer: Resource reclaimer; built if omitted.
            discovery: Install discovery; built if omitted.
            environ: Environment used for display detection. Defaults
                to the process environment.
        """
        self._config = config
        self._runtime = runtime
        self._store = store
        self._settings = settings
        self._environ = environ

        self._resolver = resolver or PathResolver(
            runtime, config.self_container
        )
        self._volumes = volumes or VolumeRegistry(
            store, ttl=config.volume_cache_ttl
        )
        self._probe = probe or ProbeClient(
            runtime, self._volumes, config.probe_image
        )
        self._reclaimer = reclaimer or ResourceReclaimer(runtime)
        self._discovery = discovery or InstallDiscovery(
            self._probe, self._volumes, self._resolver
        )

        self._lock = threading.Lock()
        self._sessions: dict[str, SessionRecord] = {}
        self._monitors: dict[str, SessionMonitor] = {}

    @property
    def resolver(self) -> PathResolver:
        return self._resolver

    @property
    def volumes(self) -> VolumeRegistry:
        return self._volumes

    @property
    def probe(self) -> ProbeClient:
        return self._probe

    @property
    def discovery(self) -> InstallDiscovery:
        return self._discovery

    @property
    def reclaimer(self) -> ResourceReclaimer:
        return self._reclaimer

    # ------------------------------------------------------------------
    # Launch
    # ------------------------------------------------------------------

    def launch(
        self,
        game: Game,
        platform: Platform,
        session_id: str,
        options: LaunchOptions | None = None,
    ) -> SessionRecord:
        """Launch a game in a new sandboxed process.

        Resources are resolved and the plan is built before anything is
        created, so a failure leaves no partially launched process.

        Args:
            game: Game to launch.
            platform: Platform of the game.
            session_id: Caller-chosen session identifier.
            options: Launch options.

        Returns:
            Snapshot of the session record after the process started.

        Raises:
            ConfigurationError: If the game cannot be launched as
                configured (missing install, executable or runner).
            LaunchError: If the runtime failed to create or start the
                process.
            RuntimeUnavailableError: If the runtime is unreachable.
        """
        options = options or LaunchOptions()
        kind_label = "debug" if options.debug else "launch"
        record = self._register(session_id, game.id, kind_label)
        logger.info(
            "Launching %s (%s) as session %s",
            game.title,
            platform.id,
            session_id,
        )

        with self._guard(record):
            self._transition(record, SessionStatus.RESOLVING_RESOURCES)
            self._resolver.detect_mounts()
            kind = classify_platform(game, platform)
            wine_prefix = None
            if isinstance(kind, Wine):
                wine_prefix = self._resolve_wine_prefix(game)
            image = self.resolve_runner_image(
                runner_repository(kind, platform, self._config)
            )
            ctx = PlanContext(
                game=game,
                platform=platform,
                session_id=session_id,
                options=options,
                config=self._config,
                translate=self._resolver.translate,
                display=self._detect_display(),
                joystick=self._joystick_for(game, platform),
                gpu_vendor=self._settings.gpu_vendor(),
                wine_prefix=wine_prefix,
            )

            self._transition(record, SessionStatus.PROVISIONING)
            plan = build_launch_plan(kind, ctx)
            self._provision(plan)

            if options.debug:
                name = f"{DEBUG_PREFIX}{session_id}"
                spec = plan.to_process_spec(
                    image=image,
                    name=name,
                    auto_remove=False,
                    command=["-f", "/dev/null"],
                    entrypoint="tail",
                )
            else:
                name = f"{SESSION_PREFIX}{session_id}"
                auto_remove = (
                    False
                    if options.keep_container
                    else self._settings.auto_remove_containers()
                )
                spec = plan.to_process_spec(
                    image=image, name=name, auto_remove=auto_remove
                )
            logger.info(
                "Session %s: starting %s with %s (workdir %s)",
                session_id,
                plan.executable_path,
                image,
                plan.working_dir,
            )
            handle = self._create_and_start(spec)

        with self._lock:
            record.process_id = handle
            record.process_name = name
            record.bindings = tuple(plan.bindings)
            record.uses_scratch_volume = plan.scratch_source is not None
            if options.debug:
                record.attach_command = (
                    f"{self._runtime.command} exec -it {handle[:12]} "
                    "/bin/bash"
                )
        self._transition(record, SessionStatus.RUNNING)
        if record.attach_command:
            logger.info("Debug session ready: %s", record.attach_command)

        self._monitor(
            session_id,
            handle,
            functools.partial(self._on_session_exit, session_id),
        )
        self._transition(record, SessionStatus.MONITORING)
        return self._snapshot(record)

    def resolve_runner_image(self, repository: str) -> str:
        """Pick a locally available tag of a runner repository.

        Semantic-version tags are preferred (highest first), then
        ``latest``, then any other tag.

        Raises:
            ConfigurationError: If no tag of the repository is present.
        """
        tags = [
            ref[len(repository) + 1 :]
            for ref in self._runtime.list_images()
            if ref.startswith(f"{repository}:")
        ]
        versions = [t for t in tags if _SEMVER_RE.match(t)]
        if versions:
            best = max(versions, key=lambda t: tuple(map(int, t.split("."))))
            return f"{repository}:{best}"
        if "latest" in tags:
            return f"{repository}:latest"
        if tags:
            return f"{repository}:{tags[0]}"
        name = repository.rsplit("/", 1)[-1]
        raise ConfigurationError(
            f"Runner not installed: {name}. "
            f"Download the {name} runner first."
        )

    def _resolve_wine_prefix(self, game: Game) -> WinePrefix:
        """Locate the prefix and verify the launch executable exists.

        Raises:
            ConfigurationError: If the game is not installed or the
                executable is not found, even case-insensitively.
        """
        install_path = game.installation.install_path
        if not install_path:
            raise ConfigurationError(
                f"Wine game '{game.title}' has no installation path "
                "configured; install the game first."
            )
        install_path = install_path.rstrip("/") or "/"
        executable = normalize_wine_executable(
            game.settings.launch.command or ""
        )

        match = self._volumes.find_containing_volume(install_path)
        if match is not None:
            source = match.volume.runtime_ref
            mount_point = match.volume.host_path
            relative = posixpath.join(match.relative_path, executable)
        else:
            source = self._resolver.translate(install_path)
            mount_point = install_path
            relative = executable

        result = self._probe.check_path(source, relative)
        if not result.exists or result.resolved_relative_path is None:
            raise ConfigurationError(
                f"Executable not found in Wine prefix: "
                f"{posixpath.join(install_path, executable)}. Check the "
                "game's launch command or reinstall the game."
            )
        resolved = posixpath.join(mount_point, result.resolved_relative_path)
        logger.info("Resolved Wine executable: %s", resolved)
        return WinePrefix(
            install_path=install_path,
            binding=ResourceBinding(source, mount_point),
            executable=resolved,
        )

    def _provision(self, plan: LaunchPlan) -> None:
        """Perform the filesystem and volume side effects of a plan."""
        root = self._config.dillinger_root
        if plan.emulator_home is not None:
            try:
                prepare_emulator_home(
                    root,
                    plan.emulator_home,
                    seed_retroarch_config=plan.seed_retroarch_config,
                )
            except OSError as e:
                raise ConfigurationError(
                    f"Could not prepare emulator home "
                    f"{plan.emulator_home}: {e}"
                ) from e
        if plan.bios_dir is not None:
            ensure_directory(plan.bios_dir)
        if plan.scratch_source is not None:
            self._recreate_scratch_volume(plan.scratch_source)

    def _recreate_scratch_volume(self, source: str) -> None:
        """Point the scratch volume at ``source``.

        A volume still held by a previous session is reclaimed once
        (its processes stopped and removed) before retrying.
        """
        name = self._config.volumes.scratch
        try:
            self._remove_volume(name)
        except ResourceContentionError:
            logger.warning(
                "Scratch volume %s is in use, reclaiming its processes",
                name,
            )
            self._reclaimer.reclaim_volume_users(name)
            self._remove_volume(name)
        logger.info("Creating scratch volume %s -> %s", name, source)
        self._runtime.create_named_volume(name, source)

    def _remove_volume(self, name: str) -> None:
        try:
            self._runtime.remove_named_volume(name)
        except NotFoundError:
            logger.debug("Volume %s does not exist", name)

    def _create_and_start(self, spec: ProcessSpec) -> str:
        """Create and start a process, removing it if start fails."""
        handle = self._runtime.create_process(spec)
        try:
            self._runtime.start(handle)
        except ContainerRuntimeError:
            try:
                self._runtime.remove(handle, force=True)
            except ContainerRuntimeError as e:
                logger.warning(
                    "Could not remove unstarted process %s: %s",
                    handle[:12],
                    e,
                )
            raise
        return handle

    def _detect_display(self) -> DisplayConfig:
        return detect_display(
            self._environ, audio_sink=self._settings.audio_sink()
        )

    def _joystick_for(
        self, game: Game, platform: Platform
    ) -> JoystickMapping | None:
        mappings = self._settings.joystick_mappings()
        mapping = mappings.get(game.platform_id or "")
        if mapping is None:
            mapping = mappings.get(joystick_category(game, platform))
        return mapping

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    def _monitor(
        self, session_id: str, handle: str, on_exit: ExitCallback
    ) -> None:
        monitor = SessionMonitor(
            self._runtime,
            handle,
            on_exit,
            buffer_size=self._config.log_buffer_size,
        )
        with self._lock:
            self._monitors[session_id] = monitor
        monitor.start()

    def _on_session_exit(
        self, session_id: str, exit_code: int | None
    ) -> None:
        with self._lock:
            record = self._sessions.get(session_id)
            if record is None:
                return
            record.exit_code = exit_code
            if record.status in (
                SessionStatus.RUNNING,
                SessionStatus.MONITORING,
            ):
                record.transition(SessionStatus.EXITED)
        logger.info("Session %s exited (code %s)", session_id, exit_code)

    def join_monitor(
        self, session_id: str, timeout: float | None = None
    ) -> bool:
        """Wait for a session's exit handling to complete.

        Returns:
            True if the monitor finished (or none exists).
        """
        with self._lock:
            monitor = self._monitors.get(session_id)
        if monitor is None:
            return True
        return monitor.join(timeout)

    # ------------------------------------------------------------------
    # Stop and cleanup
    # ------------------------------------------------------------------

    def stop(self, session_id: str, *, remove: bool = False) -> bool:
        """Stop a session's process.

        Idempotent: stopping an already stopped or unknown session
        succeeds. A busy resource triggers one forced reclaim followed
        by a retry.

        Args:
            session_id: Session to stop.
            remove: Also remove the stopped process.

        Returns:
            True once the process is stopped or absent.

        Raises:
            ContainerRuntimeError: If the runtime fails for another
                reason than absence or contention.
        """
        handle, record = self._handle_for(session_id)
        if record is not None:
            self._transition(record, SessionStatus.STOPPING)
        logger.info("Stopping session %s (%s)", session_id, handle[:30])

        try:
            try:
                self._stop_handle(handle, remove)
            except ResourceContentionError:
                logger.warning(
                    "Session %s is holding a busy resource, "
                    "forcing reclaim",
                    session_id,
                )
                self._force_reclaim(record, handle)
                self._stop_handle(handle, remove)
        except ContainerRuntimeError as e:
            if record is not None:
                self._fail(record, f"Stop failed: {e}")
            raise

        if record is not None:
            self._transition(record, SessionStatus.STOPPED)
        return True

    def _stop_handle(self, handle: str, remove: bool) -> None:
        try:
            self._runtime.stop(handle, timeout=self._config.stop_timeout)
        except NotFoundError:
            logger.info("Process %s already gone", handle[:30])
            return
        if remove:
            try:
                self._runtime.remove(handle, force=True)
            except NotFoundError:
                pass

    def _force_reclaim(
        self, record: SessionRecord | None, handle: str
    ) -> None:
        if record is not None and record.uses_scratch_volume:
            self._reclaimer.reclaim_volume_users(self._config.volumes.scratch)
        else:
            self._reclaimer.force_remove(handle)

    def cleanup(self) -> CleanupReport:
        """Reclaim orphaned processes and volumes, drop finished records.

        The root and installers volumes are never touched.

        Raises:
            ContainerRuntimeError: If the runtime cannot be queried.
        """
        report = CleanupReport()
        for prefix in (SESSION_PREFIX, DEBUG_PREFIX, INSTALL_PREFIX):
            reclaimed = self._reclaimer.reclaim_orphaned_containers(prefix)
            report.processes.extend(reclaimed.processes)
        reclaimed = self._reclaimer.reclaim_orphaned_volumes(
            self._config.volumes.protected
        )
        report.volumes.extend(reclaimed.volumes)

        with self._lock:
            for session_id, record in list(self._sessions.items()):
                if not record.status.is_terminal:
                    continue
                record.transition(SessionStatus.CLEANED)
                del self._sessions[session_id]
                self._monitors.pop(session_id, None)
                report.sessions.append(session_id)
        logger.info(
            "Cleanup: %d processes, %d volumes, %d sessions",
            len(report.processes),
            len(report.volumes),
            len(report.sessions),
        )
        return report

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def status(self, session_id: str) -> ProcessState:
        """Runtime state of a session's process.

        Raises:
            NotFoundError: If the process does not exist.
        """
        handle, _ = self._handle_for(session_id)
        return self._runtime.inspect(handle)

    def logs(self, session_id: str, tail: int = 100) -> str:
        """Recent output of a session.

        Falls back to the monitor's captured output once the process
        has been removed.

        Raises:
            NotFoundError: If neither the process nor captured output
                exists.
        """
        handle, _ = self._handle_for(session_id)
        try:
            return self._runtime.logs(handle, tail)
        except NotFoundError:
            with self._lock:
                monitor = self._monitors.get(session_id)
            if monitor is None:
                raise
            return "".join(monitor.buffer.snapshot()[-tail:])

    def session(self, session_id: str) -> SessionRecord | None:
        """Snapshot of one session record, if known."""
        with self._lock:
            record = self._sessions.get(session_id)
            return dataclasses.replace(record) if record else None

    def sessions(self) -> list[SessionRecord]:
        """Snapshots of all known session records."""
        with self._lock:
            return [dataclasses.replace(r) for r in self._sessions.values()]

    def list_session_processes(self) -> list[ProcessSummary]:
        """Runtime processes owned by game sessions."""
        return [
            p
            for p in self._runtime.list_processes(name=SESSION_PREFIX)
            if p.name.startswith(SESSION_PREFIX)
        ]

    # ------------------------------------------------------------------
    # Install
    # ------------------------------------------------------------------

    def install(
        self,
        game: Game,
        platform: Platform,
        session_id: str,
        installer_path: str,
        install_path: str,
        options: InstallOptions | None = None,
    ) -> SessionRecord:
        """Run a game's installer in a GUI sandbox.

        The game's install state becomes ``installing`` and is updated
        to ``installed`` or ``failed`` when the installer exits.

        Args:
            game: Game being installed.
            platform: Platform of the game.
            session_id: Session identifier for the installer.
            installer_path: Installer executable (configured path).
            install_path: Install target; for Wine, the prefix.
            options: Install options.

        Returns:
            Snapshot of the installer session record.

        Raises:
            ConfigurationError: If the platform or runner is unusable.
            LaunchError: If the runtime failed to start the installer.
        """
        options = options or InstallOptions()
        record = self._register(session_id, game.id, "install")
        logger.info(
            "Installing %s from %s into %s",
            game.title,
            installer_path,
            install_path,
        )

        with self._guard(record):
            self._transition(record, SessionStatus.RESOLVING_RESOURCES)
            self._resolver.detect_mounts()
            kind = classify_platform(game, platform)
            image = self.resolve_runner_image(
                runner_repository(kind, platform, self._config)
            )
            display = self._detect_display()

            self._transition(record, SessionStatus.PROVISIONING)
            spec = self._install_spec(
                game,
                session_id,
                image,
                installer_path,
                install_path.rstrip("/") or "/",
                options,
                display,
                is_wine=isinstance(kind, Wine),
            )
            self.record_install_state(
                game.id,
                status="installing",
                install_path=install_path,
                installer_path=installer_path,
            )
            handle = self._create_and_start(spec)

        with self._lock:
            record.process_id = handle
            record.process_name = spec.name
            record.bindings = tuple(spec.bindings)
        self._transition(record, SessionStatus.RUNNING)
        self._monitor(
            session_id,
            handle,
            functools.partial(
                self._on_install_exit,
                session_id,
                game.id,
                install_path,
                installer_path,
            ),
        )
        self._transition(record, SessionStatus.MONITORING)
        return self._snapshot(record)

    def _install_spec(
        self,
        game: Game,
        session_id: str,
        image: str,
        installer_path: str,
        install_path: str,
        options: InstallOptions,
        display: DisplayConfig,
        *,
        is_wine: bool,
    ) -> ProcessSpec:
        bindings: list[ResourceBinding] = []
        if installer_path.startswith(f"{INSTALLERS_MOUNT}/"):
            installer = installer_path
        else:
            installer = (
                f"{INSTALLER_MOUNT_DIR}/{posixpath.basename(installer_path)}"
            )
            bindings.append(
                ResourceBinding(
                    self._resolver.translate(installer_path),
                    installer,
                    BindMode.READ_ONLY,
                )
            )
        target = self._resolver.translate(install_path)
        bindings.append(ResourceBinding(target, INSTALL_MOUNT))
        if install_path != INSTALL_MOUNT:
            bindings.append(ResourceBinding(target, install_path))
        bindings.append(
            ResourceBinding(self._config.volumes.installers, INSTALLERS_MOUNT)
        )
        bindings.extend(display.bindings)

        env = {
            "INSTALLER_PATH": installer,
            "INSTALL_TARGET": INSTALL_MOUNT,
            "INSTALLER_ARGS": options.installer_args,
        }
        if self._config.puid:
            env["PUID"] = self._config.puid
        if self._config.pgid:
            env["PGID"] = self._config.pgid

        if is_wine:
            env.update(
                {
                    "WINEDEBUG": build_wine_debug(
                        game.settings.wine, options.debug
                    ),
                    "WINEPREFIX": install_path,
                    "WINEARCH": options.wine_arch,
                    "DISPLAY_WINEPREFIX": "1",
                }
            )
            env.update(
                wine_version_env(
                    options.wine_version_id or game.settings.wine.version,
                    game,
                )
            )
            command = ["wine", installer]
        else:
            script = shlex.quote(installer)
            if options.installer_args:
                script += f" {options.installer_args}"
            command = ["/bin/bash", "-lc", script]
        env.update(display.env)

        debug_part = "debug-" if options.debug else ""
        return ProcessSpec(
            image=image,
            command=command,
            env=env,
            bindings=bindings,
            working_dir=INSTALL_MOUNT,
            name=f"{INSTALL_PREFIX}{debug_part}{session_id}",
            tty=True,
            open_stdin=True,
            auto_remove=not options.debug,
            devices=list(display.devices),
            ipc_mode=display.ipc_mode,
            security_opt=list(display.security_opt),
        )

    def _on_install_exit(
        self,
        session_id: str,
        game_id: str,
        install_path: str,
        installer_path: str,
        exit_code: int | None,
    ) -> None:
        if exit_code == 0:
            status, error = "installed", None
        elif exit_code is None:
            status = "failed"
            error = "Installer exited before its exit code could be read"
        else:
            status = "failed"
            error = f"Installer exited with code {exit_code}"
        try:
            self.record_install_state(
                game_id,
                status=status,
                install_path=install_path,
                installer_path=installer_path,
                error=error,
            )
        except (OSError, SessionError) as e:
            logger.error(
                "Could not record install state of %s: %s", game_id, e
            )
        logger.info("Install of %s finished: %s", game_id, status)
        self._on_session_exit(session_id, exit_code)

    def wait_for_install(self, handle: str) -> InstallOutcome:
        """Block until an installer process exits.

        A process that disappeared before its exit code could be read
        (auto-removed) counts as failed.
        """
        try:
            exit_code = self._runtime.wait(handle)
        except NotFoundError:
            logger.warning(
                "Installer %s was removed before reporting its exit code",
                handle[:12],
            )
            return InstallOutcome(success=False, exit_code=1)
        except ContainerRuntimeError as e:
            logger.error("Error waiting for installer %s: %s", handle[:12], e)
            return InstallOutcome(success=False, exit_code=-1)
        return InstallOutcome(success=exit_code == 0, exit_code=exit_code)

    def record_install_state(
        self,
        game_id: str,
        *,
        status: str,
        install_path: str | None = None,
        installer_path: str | None = None,
        error: str | None = None,
    ) -> None:
        """Update the install state of a stored game.

        The game's ``installation`` block and that of its default
        platform entry are updated together.

        Raises:
            ConfigurationError: If the game does not exist.
            OSError: If the store cannot be written.
        """
        doc = self._store.read_entity(GAMES_KIND, game_id)
        if doc is None:
            raise ConfigurationError(f"Game not found: {game_id}")

        changes: dict[str, str] = {"status": status}
        if install_path is not None:
            changes["installPath"] = install_path
        if installer_path is not None:
            changes["installerPath"] = installer_path
        if error is not None:
            changes["error"] = error
        if status == "installed":
            changes["installedAt"] = _now()

        def apply(block: object) -> dict:
            merged = dict(block) if isinstance(block, dict) else {}
            merged.update(changes)
            if error is None:
                merged.pop("error", None)
            return merged

        doc["installation"] = apply(doc.get("installation"))
        platforms = [
            p for p in doc.get("platforms") or [] if isinstance(p, dict)
        ]
        if platforms:
            default_id = doc.get("defaultPlatformId")
            entry = next(
                (p for p in platforms if p.get("platformId") == default_id),
                platforms[0],
            )
            entry["installation"] = apply(entry.get("installation"))
        doc["updated"] = _now()
        self._store.write_entity(GAMES_KIND, game_id, doc)
        logger.info("Game %s install state: %s", game_id, status)

    # ------------------------------------------------------------------
    # Registry setup
    # ------------------------------------------------------------------

    def run_registry_setup(
        self, game: Game, platform: Platform
    ) -> RegistrySetupResult:
        """Import a game's bundled registry setup script into its prefix.

        Looks for a ``.cmd``/``.bat`` script mentioning ``reg`` or
        ``setup`` next to the game executable, converts its ``REG ADD``
        lines and imports the result with ``wine regedit``.
        """
        if platform.type != "wine":
            return RegistrySetupResult(
                False, "Registry setup is only for Wine games"
            )
        if not game.installation.install_path:
            return RegistrySetupResult(
                False, "No install path configured for this game"
            )
        try:
            prefix = self._resolve_wine_prefix(game)
            image = self.resolve_runner_image(
                runner_repository(Wine(), platform, self._config)
            )
        except ConfigurationError as e:
            return RegistrySetupResult(False, str(e))
        except ContainerRuntimeError as e:
            return RegistrySetupResult(False, f"Runtime error: {e}")

        directory = posixpath.dirname(prefix.executable)
        scripts = self._discovery.find_registry_scripts(directory)
        if not scripts:
            return RegistrySetupResult(
                False, f"No registry setup script found in {directory}"
            )
        script_path = scripts[0]
        data = self._discovery.read_bytes(script_path)
        if data is None:
            return RegistrySetupResult(
                False, f"Could not read {posixpath.basename(script_path)}"
            )
        text = data.decode("utf-8", errors="replace")
        reg = convert_cmd_to_reg(text)
        if reg is None:
            return RegistrySetupResult(
                False,
                "No registry entries found in "
                f"{posixpath.basename(script_path)}",
            )

        display = self._detect_display()
        env = {
            "WINEPREFIX": prefix.install_path,
            "WINEDEBUG": "-all",
            "DILLINGER_REG": reg,
            **display.env,
        }
        logger.info("Importing registry setup from %s", script_path)
        try:
            exit_code, output = self._runtime.run_ephemeral(
                image,
                ["-c", _REGISTRY_IMPORT_SCRIPT],
                [prefix.binding, *display.bindings],
                env=env,
                entrypoint="/bin/bash",
            )
        except ContainerRuntimeError as e:
            return RegistrySetupResult(False, f"Registry import failed: {e}")
        if exit_code != 0:
            logger.error("Registry import output:\n%s", output.strip())
            return RegistrySetupResult(
                False, f"Registry import failed with exit code {exit_code}"
            )
        count = len(parse_reg_add_lines(text))
        return RegistrySetupResult(
            True,
            f"Imported {count} registry entries from "
            f"{posixpath.basename(script_path)}",
        )

    # ------------------------------------------------------------------
    # Session table
    # ------------------------------------------------------------------

    def _register(
        self, session_id: str, game_id: str, kind: str
    ) -> SessionRecord:
        with self._lock:
            existing = self._sessions.get(session_id)
            if existing is not None and existing.status.is_active:
                raise ConfigurationError(
                    f"Session {session_id} is already "
                    f"{existing.status.value}; stop it first"
                )
            record = SessionRecord(session_id, game_id, kind=kind)
            self._sessions[session_id] = record
            self._monitors.pop(session_id, None)
        return record

    def _handle_for(
        self, session_id: str
    ) -> tuple[str, SessionRecord | None]:
        with self._lock:
            record = self._sessions.get(session_id)
        if record is not None and record.process_id:
            return record.process_id, record
        return f"{SESSION_PREFIX}{session_id}", record

    def _transition(
        self, record: SessionRecord, status: SessionStatus
    ) -> None:
        with self._lock:
            applied = record.transition(status)
        if applied:
            logger.info("Session %s: %s", record.session_id, status.value)

    def _fail(self, record: SessionRecord, message: str) -> None:
        with self._lock:
            record.error = message
            record.transition(SessionStatus.FAILED)
        logger.error("Session %s failed: %s", record.session_id, message)

    def _snapshot(self, record: SessionRecord) -> SessionRecord:
        with self._lock:
            return dataclasses.replace(record)

    @contextmanager
    def _guard(self, record: SessionRecord) -> Iterator[None]:
        """Fail the session on errors, wrapping runtime failures."""
        try:
            yield
        except (SessionError, RuntimeUnavailableError, OSError) as e:
            self._fail(record, str(e))
            raise
        except ContainerRuntimeError as e:
            self._fail(record, str(e))
            raise LaunchError(
                f"Session {record.session_id} failed to start: {e}"
            ) from e
