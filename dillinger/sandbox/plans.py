# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Launch plan construction.

A :class:`LaunchPlan` holds everything needed to create a session's
process: command, working directory, environment and ordered bindings,
plus the provisioning the orchestrator must perform before creating it
(scratch volume source, emulator home, BIOS directory).

Building a plan is pure. All probing happens beforehand while resolving
resources, and all filesystem and runtime side effects happen
afterwards when the orchestrator commits the plan. One builder exists
per :data:`PlatformKind` variant.
"""

from __future__ import annotations

import json
import logging
import posixpath
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dillinger.config import OrchestratorConfig
from dillinger.models import (
    Game,
    JoystickMapping,
    MoonlightSettings,
    Platform,
    WineSettings,
)
from dillinger.runtime.types import (
    BindMode,
    DeviceMapping,
    ProcessSpec,
    ResourceBinding,
)
from dillinger.sandbox.display import GAME_HOME, DisplayConfig
from dillinger.sandbox.errors import ConfigurationError
from dillinger.sandbox.homes import amiga_bios_path, emulator_home_path


logger = logging.getLogger(__name__)

GAME_MOUNT = "/game"
ROM_MOUNT = "/roms"
BIOS_MOUNT = "/bios"
RETROARCH_MENU = "MENU"
DEFAULT_NATIVE_COMMAND = "./start.sh"
DEFAULT_MOONLIGHT_QUALITY = "high"

# HTTPS, HTTP, control, RTSP, video and audio
MOONLIGHT_PORTS = (
    "47984/tcp",
    "47989/tcp",
    "47999/udp",
    "48010/tcp",
    "48100/udp",
    "48200/udp",
)

VICE_EMULATORS = {
    "c64": "x64sc",
    "c128": "x128",
    "vic20": "xvic",
    "plus4": "xplus4",
    "pet": "xpet",
}

AMIGA_MODELS = {
    "amiga": "A500",
    "amiga500": "A500",
    "amiga500plus": "A500+",
    "amiga600": "A600",
    "amiga1200": "A1200",
    "amiga3000": "A3000",
    "amiga4000": "A4000",
    "cd32": "CD32",
}

RETROARCH_CORES = {
    "nes": "nestopia",
    "snes": "snes9x",
    "mame": "mame",
}

MAME_PLATFORMS = frozenset({"mame"})

KNOWN_PLATFORM_TYPES = frozenset(
    {"native", "wine", "emulator", "arcade", "console", "computer"}
)

_CONSOLE_PLATFORMS = frozenset({"nes", "snes", "genesis", "psx", "n64"})
_COMPUTER_PLATFORMS = frozenset({"c64", "amiga", "dos", "pc"})

WINE_DEBUG_CHANNELS = (
    "relay",
    "seh",
    "tid",
    "timestamp",
    "heap",
    "file",
    "module",
    "win",
    "d3d",
    "opengl",
)
WINE_TROUBLESHOOTING_DEBUG = "+warn,+err,+fixme,+loaddll,+module,+seh,-other"

KEEP_ALIVE_SUFFIX = (
    " ; EXIT_CODE=$? ; "
    'echo "[dillinger] wine exited with code: ${EXIT_CODE}" ; '
    "tail -f /dev/null"
)

_DRIVE_LETTER_RE = re.compile(r"^[A-Za-z]:")


# ---------------------------------------------------------------------------
# Platform kinds
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Native:
    """Linux-native game run from the scratch volume."""


@dataclass(frozen=True)
class Wine:
    """Windows game run inside its own Wine prefix."""


@dataclass(frozen=True)
class ViceEmulator:
    """Commodore title run with VICE.

    Attributes:
        model: Platform id (``c64``, ``c128``, ``vic20``, ``plus4``,
            ``pet``).
    """

    model: str

    @property
    def emulator(self) -> str:
        """VICE binary emulating the model."""
        return VICE_EMULATORS[self.model]


@dataclass(frozen=True)
class AmigaEmulator:
    """Amiga title run with FS-UAE.

    Attributes:
        model: FS-UAE model name (``A500``, ``A1200``, ``CD32``, ...).
    """

    model: str


@dataclass(frozen=True)
class MameEmulator:
    """Arcade title run with standalone MAME."""


@dataclass(frozen=True)
class RetroArchCore:
    """Title run with RetroArch.

    Attributes:
        core: Libretro core, or None to open the RetroArch menu.
    """

    core: str | None


PlatformKind = (
    Native | Wine | ViceEmulator | AmigaEmulator | MameEmulator | RetroArchCore
)


def classify_platform(game: Game, platform: Platform) -> PlatformKind:
    """Select the platform kind for a game.

    Raises:
        ConfigurationError: If the platform type is unknown.
    """
    if platform.type not in KNOWN_PLATFORM_TYPES:
        raise ConfigurationError(
            f"Unknown platform type '{platform.type}' for platform "
            f"'{platform.id}'. Supported types: "
            f"{', '.join(sorted(KNOWN_PLATFORM_TYPES))}"
        )
    if platform.type == "wine":
        return Wine()

    platform_id = game.platform_id or ""
    if platform.container_image and (
        "runner-retroarch" in platform.container_image
    ):
        if game.file_path == RETROARCH_MENU:
            return RetroArchCore(None)
        core = (
            game.settings.emulator_core
            or platform.default_core
            or RETROARCH_CORES.get(platform_id, "mame")
        )
        return RetroArchCore(core)
    if platform_id in VICE_EMULATORS:
        return ViceEmulator(platform_id)
    if platform_id in AMIGA_MODELS:
        return AmigaEmulator(AMIGA_MODELS[platform_id])
    if platform_id in MAME_PLATFORMS:
        return MameEmulator()
    return Native()


def is_emulator(kind: PlatformKind) -> bool:
    """True for kinds that run an emulator with a per-title home."""
    return isinstance(
        kind, (ViceEmulator, AmigaEmulator, MameEmulator, RetroArchCore)
    )


# ---------------------------------------------------------------------------
# Plan inputs and outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LaunchOptions:
    """Per-launch options.

    Attributes:
        mode: ``local`` or ``streaming``.
        keep_alive: Keep a Wine session's process alive after Wine exits
            and enable troubleshooting debug channels.
        keep_container: Never auto-remove the process for this launch.
        debug: Start an idle debug process instead of the game.
    """

    mode: str = "local"
    keep_alive: bool = False
    keep_container: bool = False
    debug: bool = False


@dataclass(frozen=True)
class WinePrefix:
    """A verified Wine prefix for launch.

    The prefix is mounted at its configured path, so in-process paths
    equal configured paths.

    Attributes:
        install_path: Configured prefix directory (contains drive_c).
        binding: Binding exposing the prefix at ``install_path``.
        executable: Absolute in-process path of the verified executable.
    """

    install_path: str
    binding: ResourceBinding
    executable: str


@dataclass(frozen=True)
class PlanContext:
    """Resolved inputs of plan construction.

    Attributes:
        game: Game to launch.
        platform: Platform of the game.
        session_id: Session identifier.
        options: Launch options.
        config: Orchestrator configuration.
        translate: Orchestrator-to-runtime path translation.
        display: Display forwarding configuration.
        joystick: Joystick mapping for the game's platform, if any.
        gpu_vendor: Preferred GPU vendor, if any.
        wine_prefix: Verified prefix (Wine only).
    """

    game: Game
    platform: Platform
    session_id: str
    options: LaunchOptions
    config: OrchestratorConfig
    translate: Callable[[str], str]
    display: DisplayConfig
    joystick: JoystickMapping | None = None
    gpu_vendor: str | None = None
    wine_prefix: WinePrefix | None = None


@dataclass(frozen=True)
class LaunchPlan:
    """Fully computed description of a session process.

    Attributes:
        platform_kind: Platform kind the plan was built for.
        executable_path: Program being launched (for logging).
        argv: Command passed to the runner image.
        working_dir: Working directory inside the process.
        env: Environment variables.
        bindings: Ordered bindings; later entries overlay earlier ones.
        devices: Devices to pass through.
        ipc_mode: IPC namespace mode.
        security_opt: Security options.
        scratch_source: Runtime path the scratch volume must expose, or
            None if the plan does not use it.
        emulator_home: Local home directory to scaffold, if any.
        seed_retroarch_config: Seed the master RetroArch config.
        bios_dir: Local BIOS directory to create, if any.
        exposed_ports: Ports to expose for streaming.
    """

    platform_kind: PlatformKind
    executable_path: str
    argv: list[str]
    working_dir: str
    env: dict[str, str]
    bindings: list[ResourceBinding]
    devices: list[DeviceMapping] = field(default_factory=list)
    ipc_mode: str | None = None
    security_opt: list[str] = field(default_factory=list)
    scratch_source: str | None = None
    emulator_home: Path | None = None
    seed_retroarch_config: bool = False
    bios_dir: Path | None = None
    exposed_ports: list[str] = field(default_factory=list)

    def to_process_spec(
        self,
        *,
        image: str,
        name: str,
        auto_remove: bool,
        command: list[str] | None = None,
        entrypoint: str | None = None,
    ) -> ProcessSpec:
        """Serialize the plan for the runtime client."""
        return ProcessSpec(
            image=image,
            command=list(self.argv if command is None else command),
            env=dict(self.env),
            bindings=list(self.bindings),
            working_dir=self.working_dir,
            name=name,
            tty=True,
            open_stdin=True,
            auto_remove=auto_remove,
            devices=list(self.devices),
            ipc_mode=self.ipc_mode,
            security_opt=list(self.security_opt),
            entrypoint=entrypoint,
            expose=list(self.exposed_ports),
        )


# ---------------------------------------------------------------------------
# Helpers shared with install and registry setup
# ---------------------------------------------------------------------------


def clean_arguments(arguments: tuple[str, ...] | list[str]) -> list[str]:
    """Drop embedded NULs and empty arguments."""
    cleaned = (a.replace("\x00", "") for a in arguments if a)
    return [a for a in cleaned if a]


def normalize_wine_executable(command: str) -> str:
    """Convert a launch command to a prefix-relative ``drive_c`` path.

    Accepts Windows paths (``C:\\Games\\run.exe``) and absolute paths
    into a prefix (``/mnt/x/game/drive_c/Games/run.exe``).

    Returns:
        Path relative to the prefix, e.g. ``drive_c/Games/run.exe``.

    Raises:
        ConfigurationError: If the command is empty.
    """
    command = command.strip()
    if command.startswith("/") and "/drive_c/" in command:
        rest = command[command.index("/drive_c/") + len("/drive_c/") :]
    else:
        rest = _DRIVE_LETTER_RE.sub("", command).replace("\\", "/")
    rest = posixpath.normpath("/" + rest).lstrip("/")
    if not rest or rest == ".":
        raise ConfigurationError(
            "No launch executable configured for this Wine game. "
            "Set the launch command (e.g. C:\\Games\\game.exe)."
        )
    return f"drive_c/{rest}"


def build_wine_debug(wine: WineSettings, debug_mode: bool = False) -> str:
    """Build the WINEDEBUG value from per-game debug channels.

    Args:
        wine: Wine settings of the game.
        debug_mode: Use a troubleshooting channel set when the game has
            no explicit debug configuration.
    """
    debug = wine.debug
    if not debug:
        return WINE_TROUBLESHOOTING_DEBUG if debug_mode else "-all"
    if debug.get("all"):
        return "+all"
    enabled = [f"+{ch}" for ch in WINE_DEBUG_CHANNELS if debug.get(ch)]
    return ",".join(enabled) if enabled else "-all"


def wine_version_env(version: str | None, game: Game) -> dict[str, str]:
    """WINE_VERSION_ID and, for GE-Proton, the UMU launcher ids."""
    if not version or version == "system":
        return {}
    env = {"WINE_VERSION_ID": version}
    if version.startswith("ge-proton"):
        env["UMU_GAME_ID"] = (
            game.settings.wine.umu_game_id or f"umu-{game.identifier}"
        )
        env["GAME_SLUG"] = game.identifier
    return env


def wine_settings_env(game: Game) -> dict[str, str]:
    """Environment derived from a game's Wine settings."""
    wine = game.settings.wine
    env: dict[str, str] = {}
    if wine.use_dxvk:
        env["INSTALL_DXVK"] = "true"
        env["DXVK_HUD"] = "devinfo,fps"
    env.update(wine_version_env(wine.version, game))
    if wine.dlls:
        env["WINE_DLL_OVERRIDES"] = ";".join(
            f"{dll}={mode}" for dll, mode in wine.dlls.items()
        )
    if wine.dll_overrides:
        env["WINEDLLOVERRIDES"] = wine.dll_overrides
    if wine.winetricks:
        env["WINE_WINETRICKS"] = ";".join(wine.winetricks)
    if wine.registry_settings:
        env["WINE_REGISTRY_SETTINGS"] = json.dumps(
            list(wine.registry_settings)
        )
    if wine.compatibility_mode and wine.compatibility_mode != "none":
        env["WINE_COMPAT_MODE"] = wine.compatibility_mode
    return env


def strip_image_tag(image: str) -> str:
    """Return the repository part of an image reference."""
    name_start = image.rfind("/") + 1
    colon = image.find(":", name_start)
    return image if colon == -1 else image[:colon]


def runner_repository(
    kind: PlatformKind, platform: Platform, config: OrchestratorConfig
) -> str:
    """Runner repository for a launch (tag stripped)."""
    if platform.container_image:
        return strip_image_tag(platform.container_image)
    if isinstance(kind, Wine):
        return config.wine_image
    return config.native_image


def game_directory(game: Game, root: Path) -> str:
    """Absolute game directory, resolving relative paths under the root.

    Raises:
        ConfigurationError: If the game has neither an install path nor
            a file path.
    """
    directory = game.installation.install_path or game.file_path
    if not directory:
        raise ConfigurationError(
            f"Game '{game.title}' has no file path or installation path "
            "configured. Add the game files or install the game first."
        )
    if posixpath.isabs(directory):
        return directory
    return posixpath.join(str(root), directory)


def is_arcade(game: Game, platform: Platform) -> bool:
    """True for arcade titles (MAME or any RetroArch runner)."""
    return (
        platform.type == "arcade"
        or game.platform_id in ("mame", "arcade")
        or "retroarch" in (platform.container_image or "")
    )


def joystick_category(game: Game, platform: Platform) -> str:
    """Joystick mapping category of a game's platform."""
    platform_id = game.platform_id or ""
    if is_arcade(game, platform):
        return "arcade"
    if platform.type == "console" or platform_id in _CONSOLE_PLATFORMS:
        return "console"
    if platform.type == "computer" or platform_id in _COMPUTER_PLATFORMS:
        return "computer"
    return "default"


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


def _common_env(ctx: PlanContext) -> dict[str, str]:
    game = ctx.game
    env = {
        "GAME_ID": game.id,
        "SESSION_ID": ctx.session_id,
        "SAVES_PATH": f"/data/saves/{game.id}",
        "ENABLE_MOONLIGHT": (
            "true" if ctx.options.mode == "streaming" else "false"
        ),
    }
    env.update(game.settings.launch.environment)
    return env


def _moonlight_env(moonlight: MoonlightSettings) -> dict[str, str]:
    """Per-game streaming variables; empty unless streaming is enabled."""
    if not moonlight.enabled:
        return {}
    env = {"ENABLE_MOONLIGHT": "true"}
    if moonlight.bitrate:
        # Mbps to Kbps
        env["MOONLIGHT_BITRATE"] = str(round(moonlight.bitrate * 1000))
    else:
        env["MOONLIGHT_QUALITY"] = (
            moonlight.quality or DEFAULT_MOONLIGHT_QUALITY
        )
    if moonlight.framerate:
        env["MOONLIGHT_FPS"] = str(moonlight.framerate)
    if moonlight.resolution:
        env["MOONLIGHT_RESOLUTION"] = moonlight.resolution
    if moonlight.codec:
        env["MOONLIGHT_CODEC"] = moonlight.codec
    if moonlight.audio_codec:
        env["MOONLIGHT_AUDIO_CODEC"] = moonlight.audio_codec
    return env


def _host_env(ctx: PlanContext) -> dict[str, str]:
    """Joystick, user ids, GPU, gamescope, MangoHUD and Moonlight."""
    env: dict[str, str] = {}
    if ctx.joystick is not None:
        env["JOYSTICK_DEVICE_ID"] = ctx.joystick.device_id
        env["JOYSTICK_DEVICE_NAME"] = ctx.joystick.device_name
    if ctx.config.puid:
        env["PUID"] = ctx.config.puid
    if ctx.config.pgid:
        env["PGID"] = ctx.config.pgid
    if ctx.gpu_vendor:
        env["GPU_VENDOR"] = ctx.gpu_vendor

    gamescope = ctx.game.settings.gamescope
    if gamescope.enabled:
        env.update(
            {
                "USE_GAMESCOPE": "true",
                "GAMESCOPE_WIDTH": str(gamescope.width),
                "GAMESCOPE_HEIGHT": str(gamescope.height),
                "GAMESCOPE_REFRESH": str(gamescope.refresh_rate),
                "GAMESCOPE_FULLSCREEN": (
                    "true" if gamescope.fullscreen else "false"
                ),
                "GAMESCOPE_UPSCALER": gamescope.upscaler,
            }
        )
        if gamescope.input_width and gamescope.input_height:
            env["GAMESCOPE_INPUT_WIDTH"] = str(gamescope.input_width)
            env["GAMESCOPE_INPUT_HEIGHT"] = str(gamescope.input_height)
        if gamescope.limit_fps:
            env["GAMESCOPE_FPS_LIMIT"] = str(gamescope.limit_fps)
    if ctx.game.settings.mangohud:
        env["ENABLE_MANGOHUD"] = "true"
    env.update(_moonlight_env(ctx.game.settings.moonlight))
    return env


def _assemble(
    kind: PlatformKind,
    ctx: PlanContext,
    *,
    executable: str,
    argv: list[str],
    working_dir: str,
    platform_env: dict[str, str],
    platform_bindings: list[ResourceBinding],
    **provisioning: Any,
) -> LaunchPlan:
    """Combine platform parts with the shared environment and bindings.

    Binding order: data root, installers, platform bindings, display
    bindings. Display bindings come last so single files overlay the
    directories mounted before them.
    """
    env = _common_env(ctx)
    env.update(platform_env)
    env.update(_host_env(ctx))
    env.update(ctx.display.env)

    volumes = ctx.config.volumes
    bindings = [
        ResourceBinding(volumes.root, "/data"),
        ResourceBinding(volumes.installers, "/installers"),
        *platform_bindings,
        *ctx.display.bindings,
    ]
    streaming = ctx.game.settings.moonlight
    if streaming.enabled:
        logger.info(
            "Moonlight streaming for %s (bitrate %s kbps, quality %s)",
            ctx.game.title,
            env.get("MOONLIGHT_BITRATE", "-"),
            env.get("MOONLIGHT_QUALITY", "custom"),
        )
    return LaunchPlan(
        platform_kind=kind,
        executable_path=executable,
        argv=argv,
        working_dir=working_dir,
        env=env,
        bindings=bindings,
        devices=list(ctx.display.devices),
        ipc_mode=ctx.display.ipc_mode,
        security_opt=list(ctx.display.security_opt),
        exposed_ports=list(MOONLIGHT_PORTS) if streaming.enabled else [],
        **provisioning,
    )


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def _native_plan(kind: Native, ctx: PlanContext) -> LaunchPlan:
    launch = ctx.game.settings.launch
    directory = game_directory(ctx.game, ctx.config.dillinger_root)
    command = launch.command or DEFAULT_NATIVE_COMMAND
    executable = posixpath.normpath(posixpath.join(GAME_MOUNT, command))
    working_dir = GAME_MOUNT
    if launch.working_directory:
        working_dir = posixpath.normpath(
            posixpath.join(GAME_MOUNT, launch.working_directory)
        )
    logger.info(
        "Native launch of %s: %s (workdir %s)",
        ctx.game.title,
        executable,
        working_dir,
    )
    return _assemble(
        kind,
        ctx,
        executable=executable,
        argv=[executable, *clean_arguments(launch.arguments)],
        working_dir=working_dir,
        platform_env={},
        platform_bindings=[
            ResourceBinding(
                ctx.config.volumes.scratch, GAME_MOUNT, BindMode.READ_ONLY
            )
        ],
        scratch_source=ctx.translate(directory),
    )


def _wine_plan(kind: Wine, ctx: PlanContext) -> LaunchPlan:
    game = ctx.game
    prefix = ctx.wine_prefix
    if prefix is None:
        raise ConfigurationError(
            f"Wine game '{game.title}' has no installation path configured; "
            "install the game first."
        )
    launch = game.settings.launch
    wine = game.settings.wine
    args = clean_arguments(launch.arguments)
    quoted = " ".join('"' + a.replace('"', '\\"') + '"' for a in args)
    script = 'wine "${GAME_EXECUTABLE}"'
    if quoted:
        script += f" {quoted}"
    if ctx.options.keep_alive:
        script += KEEP_ALIVE_SUFFIX

    debug_mode = ctx.options.keep_alive or ctx.options.debug
    env = wine_settings_env(game)
    env.update(
        {
            "WINEDEBUG": build_wine_debug(wine, debug_mode),
            "WINEPREFIX": prefix.install_path,
            "GAME_EXECUTABLE": prefix.executable,
            "GAME_ARGS": " ".join(args),
        }
    )
    if launch.fullscreen:
        env["WINE_VIRTUAL_DESKTOP"] = launch.resolution
    if wine.renderer in ("vulkan", "opengl"):
        env["WINE_D3D_RENDERER"] = wine.renderer
    if ctx.options.keep_alive:
        env["KEEP_ALIVE"] = "true"
    if launch.use_xrandr:
        env["XRANDR_MODE"] = launch.xrandr_mode or launch.resolution

    current = wine.version or "system"
    installed = game.installation.wine_version_id
    if installed and installed != current:
        logger.warning(
            "Wine version mismatch for %s: installed with '%s', "
            "launching with '%s'",
            game.title,
            installed,
            current,
        )

    working_dir = posixpath.dirname(prefix.executable)
    logger.info(
        "Wine launch of %s: %s (prefix %s)",
        game.title,
        prefix.executable,
        prefix.install_path,
    )
    return _assemble(
        kind,
        ctx,
        executable=prefix.executable,
        argv=["bash", "-lc", script],
        working_dir=working_dir,
        platform_env=env,
        platform_bindings=[prefix.binding],
    )


def _require_rom(ctx: PlanContext, label: str) -> str:
    rom = ctx.game.file_path
    if not rom or rom == RETROARCH_MENU:
        raise ConfigurationError(
            f"No ROM file specified for {label} game '{ctx.game.title}'. "
            "Set the game's file path to the ROM."
        )
    return rom


def _emulator_plan(
    kind: PlatformKind,
    ctx: PlanContext,
    *,
    executable: str,
    argv: list[str],
    rom: str | None,
    platform_env: dict[str, str] | None = None,
    with_bios: bool = False,
) -> LaunchPlan:
    root = ctx.config.dillinger_root
    home = emulator_home_path(root, ctx.game.identifier)
    bindings: list[ResourceBinding] = []
    if rom:
        bindings.append(
            ResourceBinding(
                ctx.translate(posixpath.dirname(rom)),
                ROM_MOUNT,
                BindMode.READ_ONLY,
            )
        )
    bindings.append(ResourceBinding(ctx.translate(str(home)), GAME_HOME))
    bios_dir = None
    if with_bios:
        bios_dir = amiga_bios_path(root)
        bindings.append(
            ResourceBinding(
                ctx.translate(str(bios_dir)), BIOS_MOUNT, BindMode.READ_ONLY
            )
        )
    logger.info(
        "Emulator launch of %s: %s",
        ctx.game.title,
        " ".join(argv) or executable,
    )
    return _assemble(
        kind,
        ctx,
        executable=executable,
        argv=argv,
        working_dir=GAME_HOME,
        platform_env=platform_env or {},
        platform_bindings=bindings,
        emulator_home=home,
        seed_retroarch_config=is_arcade(ctx.game, ctx.platform),
        bios_dir=bios_dir,
    )


def _vice_plan(kind: ViceEmulator, ctx: PlanContext) -> LaunchPlan:
    rom = _require_rom(ctx, "Commodore")
    rom_path = f"{ROM_MOUNT}/{posixpath.basename(rom)}"
    return _emulator_plan(
        kind,
        ctx,
        executable=kind.emulator,
        argv=[kind.emulator, rom_path],
        rom=rom,
    )


def _amiga_plan(kind: AmigaEmulator, ctx: PlanContext) -> LaunchPlan:
    rom = _require_rom(ctx, "Amiga")
    rom_path = f"{ROM_MOUNT}/{posixpath.basename(rom)}"
    return _emulator_plan(
        kind,
        ctx,
        executable="fs-uae",
        argv=["fs-uae", rom_path],
        rom=rom,
        platform_env={"FSUAE_AMIGA_MODEL": kind.model},
        with_bios=True,
    )


def _mame_plan(kind: MameEmulator, ctx: PlanContext) -> LaunchPlan:
    rom = _require_rom(ctx, "MAME")
    driver = posixpath.splitext(posixpath.basename(rom))[0]
    return _emulator_plan(
        kind,
        ctx,
        executable="mame",
        argv=["mame", driver],
        rom=rom,
    )


def _retroarch_plan(kind: RetroArchCore, ctx: PlanContext) -> LaunchPlan:
    if kind.core is None:
        return _emulator_plan(
            kind, ctx, executable="retroarch", argv=[], rom=None
        )
    rom = _require_rom(ctx, "RetroArch")
    return _emulator_plan(
        kind,
        ctx,
        executable="retroarch",
        argv=[f"{ROM_MOUNT}/{posixpath.basename(rom)}"],
        rom=rom,
        platform_env={"RETROARCH_CORE": kind.core},
    )


_BUILDERS: dict[type, Callable[[Any, PlanContext], LaunchPlan]] = {
    Native: _native_plan,
    Wine: _wine_plan,
    ViceEmulator: _vice_plan,
    AmigaEmulator: _amiga_plan,
    MameEmulator: _mame_plan,
    RetroArchCore: _retroarch_plan,
}


def build_launch_plan(kind: PlatformKind, ctx: PlanContext) -> LaunchPlan:
    """Build the launch plan for a platform kind.

    Raises:
        ConfigurationError: If the game lacks what the kind requires.
    """
    builder = _BUILDERS.get(type(kind))
    if builder is None:
        raise TypeError(f"No launch plan builder for {kind!r}")
    return builder(kind, ctx)
