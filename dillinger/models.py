# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Game and platform entities as read from the document store.

Stored documents use camelCase keys. Each entity has a ``from_dict``
constructor that picks the fields the orchestrator needs and ignores
everything else.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


def _str_or_none(value: object) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _int_or_none(value: object) -> int | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def _float_or_none(value: object) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def _mapping(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


# ---------------------------------------------------------------------------
# Per-game settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LaunchSettings:
    """How to start the game.

    Attributes:
        command: Executable relative to the game directory (native) or a
            Windows/prefix path (Wine).
        arguments: Command-line arguments.
        environment: Extra environment variables.
        working_directory: Working directory relative to the game dir.
        fullscreen: Run inside a Wine virtual desktop.
        resolution: Virtual desktop resolution.
        use_xrandr: Set the display mode with xrandr before launch.
        xrandr_mode: xrandr mode, defaulting to ``resolution``.
    """

    command: str | None = None
    arguments: tuple[str, ...] = ()
    environment: dict[str, str] = field(default_factory=dict)
    working_directory: str | None = None
    fullscreen: bool = False
    resolution: str = "1920x1080"
    use_xrandr: bool = False
    xrandr_mode: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LaunchSettings:
        args = data.get("arguments") or []
        env = _mapping(data, "environment")
        return cls(
            command=_str_or_none(data.get("command")),
            arguments=tuple(a for a in args if isinstance(a, str)),
            environment={str(k): str(v) for k, v in env.items()},
            working_directory=_str_or_none(data.get("workingDirectory")),
            fullscreen=bool(data.get("fullscreen", False)),
            resolution=str(data.get("resolution") or "1920x1080"),
            use_xrandr=bool(data.get("useXrandr", False)),
            xrandr_mode=_str_or_none(data.get("xrandrMode")),
        )


@dataclass(frozen=True)
class WineSettings:
    """Wine configuration of a Windows game.

    Attributes:
        version: Wine build id (``system`` means the runner default).
        umu_game_id: UMU launcher game id for GE-Proton builds.
        dlls: DLL overrides applied through the registry.
        dll_overrides: Raw ``WINEDLLOVERRIDES`` value.
        arch: Prefix architecture (``win32``/``win64``).
        use_dxvk: Install DXVK into the prefix.
        compatibility_mode: Windows version preset.
        renderer: Direct3D renderer (``vulkan``/``opengl``).
        winetricks: Winetricks verbs run before launch.
        registry_settings: Registry values applied before launch.
        debug: Enabled WINEDEBUG channels.
    """

    version: str | None = None
    umu_game_id: str | None = None
    dlls: dict[str, str] = field(default_factory=dict)
    dll_overrides: str | None = None
    arch: str | None = None
    use_dxvk: bool = False
    compatibility_mode: str | None = None
    renderer: str | None = None
    winetricks: tuple[str, ...] = ()
    registry_settings: tuple[dict[str, Any], ...] = ()
    debug: dict[str, bool] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WineSettings:
        return cls(
            version=_str_or_none(data.get("version")),
            umu_game_id=_str_or_none(data.get("umuGameId")),
            dlls={str(k): str(v) for k, v in _mapping(data, "dlls").items()},
            dll_overrides=_str_or_none(data.get("dllOverrides")),
            arch=_str_or_none(data.get("arch")),
            use_dxvk=bool(data.get("useDxvk", False)),
            compatibility_mode=_str_or_none(data.get("compatibilityMode")),
            renderer=_str_or_none(data.get("renderer")),
            winetricks=tuple(str(v) for v in data.get("winetricks") or []),
            registry_settings=tuple(
                s for s in data.get("registrySettings") or []
                if isinstance(s, dict)
            ),
            debug={
                str(k): bool(v) for k, v in _mapping(data, "debug").items()
            },
        )


@dataclass(frozen=True)
class GamescopeSettings:
    """Gamescope compositor options."""

    enabled: bool = False
    width: int = 1920
    height: int = 1080
    refresh_rate: int = 60
    fullscreen: bool = False
    upscaler: str = "auto"
    input_width: int | None = None
    input_height: int | None = None
    limit_fps: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GamescopeSettings:
        return cls(
            enabled=bool(data.get("enabled", False)),
            width=_int_or_none(data.get("width")) or 1920,
            height=_int_or_none(data.get("height")) or 1080,
            refresh_rate=_int_or_none(data.get("refreshRate")) or 60,
            fullscreen=bool(data.get("fullscreen", False)),
            upscaler=str(data.get("upscaler") or "auto"),
            input_width=_int_or_none(data.get("inputWidth")),
            input_height=_int_or_none(data.get("inputHeight")),
            limit_fps=_int_or_none(data.get("limitFps")),
        )


@dataclass(frozen=True)
class MoonlightSettings:
    """Moonlight streaming options for one game.

    Attributes:
        enabled: Stream this game even outside streaming mode.
        bitrate: Target bitrate in Mbps. Takes precedence over
            ``quality``.
        quality: Quality preset used when no bitrate is set.
        framerate: Stream frame rate.
        resolution: Stream resolution, e.g. ``1920x1080``.
        codec: Video codec.
        audio_codec: Audio codec.
    """

    enabled: bool = False
    bitrate: float | None = None
    quality: str | None = None
    framerate: int | None = None
    resolution: str | None = None
    codec: str | None = None
    audio_codec: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MoonlightSettings:
        return cls(
            enabled=bool(data.get("enabled", False)),
            bitrate=_float_or_none(data.get("bitrate")),
            quality=_str_or_none(data.get("quality")),
            framerate=_int_or_none(data.get("framerate")),
            resolution=_str_or_none(data.get("resolution")),
            codec=_str_or_none(data.get("codec")),
            audio_codec=_str_or_none(data.get("audioCodec")),
        )


@dataclass(frozen=True)
class GameSettings:
    """All per-game settings blocks."""

    launch: LaunchSettings = field(default_factory=LaunchSettings)
    wine: WineSettings = field(default_factory=WineSettings)
    emulator_core: str | None = None
    gamescope: GamescopeSettings = field(default_factory=GamescopeSettings)
    mangohud: bool = False
    moonlight: MoonlightSettings = field(default_factory=MoonlightSettings)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GameSettings:
        return cls(
            launch=LaunchSettings.from_dict(_mapping(data, "launch")),
            wine=WineSettings.from_dict(_mapping(data, "wine")),
            emulator_core=_str_or_none(
                _mapping(data, "emulator").get("core")
            ),
            gamescope=GamescopeSettings.from_dict(
                _mapping(data, "gamescope")
            ),
            mangohud=bool(_mapping(data, "mangohud").get("enabled", False)),
            moonlight=MoonlightSettings.from_dict(
                _mapping(data, "moonlight")
            ),
        )


@dataclass(frozen=True)
class Installation:
    """Install state of a game.

    Attributes:
        status: ``not_installed``, ``installing``, ``installed`` or
            ``failed``.
        install_path: Directory the game was installed into (for Wine,
            the prefix containing ``drive_c``).
        installer_path: Installer the game was installed from.
        wine_version_id: Wine build used for the install.
        error: Failure message of the last install.
    """

    status: str = "not_installed"
    install_path: str | None = None
    installer_path: str | None = None
    wine_version_id: str | None = None
    error: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Installation:
        return cls(
            status=str(data.get("status") or "not_installed"),
            install_path=_str_or_none(data.get("installPath")),
            installer_path=_str_or_none(data.get("installerPath")),
            wine_version_id=_str_or_none(data.get("wineVersionId")),
            error=_str_or_none(data.get("error")),
        )


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Game:
    """A game in the library.

    Attributes:
        id: Entity id.
        title: Display name.
        slug: URL-friendly identifier, if any.
        platform_id: Platform the game runs on (e.g. ``c64``, ``windows``).
        file_path: Game directory, executable or ROM file.
        installation: Install state.
        settings: Per-game settings.
    """

    id: str
    title: str
    slug: str | None = None
    platform_id: str | None = None
    file_path: str | None = None
    installation: Installation = field(default_factory=Installation)
    settings: GameSettings = field(default_factory=GameSettings)

    @property
    def identifier(self) -> str:
        """Stable directory-safe name: the slug if set, else the id."""
        return self.slug or self.id

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Game:
        """Build from a stored game document.

        Documents with a ``platforms`` list use the entry matching
        ``defaultPlatformId`` (or the first one) for platform-specific
        fields; legacy top-level fields are used otherwise.
        """
        source = data
        platforms = [
            p for p in data.get("platforms") or [] if isinstance(p, dict)
        ]
        if platforms:
            default_id = data.get("defaultPlatformId")
            source = next(
                (p for p in platforms if p.get("platformId") == default_id),
                platforms[0],
            )
        return cls(
            id=str(data.get("id", "")),
            title=str(data.get("title", "")),
            slug=_str_or_none(data.get("slug")),
            platform_id=_str_or_none(
                source.get("platformId") or data.get("platformId")
            ),
            file_path=_str_or_none(
                source.get("filePath") or data.get("filePath")
            ),
            installation=Installation.from_dict(
                _mapping(source, "installation")
                or _mapping(data, "installation")
            ),
            settings=GameSettings.from_dict(
                _mapping(source, "settings") or _mapping(data, "settings")
            ),
        )


@dataclass(frozen=True)
class Platform:
    """A platform games run on.

    Attributes:
        id: Platform id (e.g. ``windows-wine``, ``c64``, ``arcade``).
        name: Display name.
        type: ``native``, ``wine``, ``emulator``, ``arcade``, ``console``
            or ``computer``.
        container_image: Runner image (tag optional).
        default_core: Default RetroArch core.
    """

    id: str
    name: str
    type: str
    container_image: str | None = None
    default_core: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Platform:
        configuration = _mapping(data, "configuration")
        defaults = _mapping(configuration, "defaultSettings")
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            type=str(data.get("type", "")),
            container_image=_str_or_none(configuration.get("containerImage")),
            default_core=_str_or_none(
                _mapping(defaults, "emulator").get("core")
            ),
        )


@dataclass(frozen=True)
class JoystickMapping:
    """Joystick selected for a platform or platform category."""

    device_id: str
    device_name: str
