# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Display, audio and input forwarding into session processes.

X11 is preferred when ``DISPLAY`` is set (best compatibility with older
games), Wayland is used when only ``WAYLAND_DISPLAY`` is set, and
sessions run headless otherwise. The returned bindings must be appended
after platform-specific bindings so single-file overlays (Xauthority,
PulseAudio cookie) land on top of per-game home directories.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from dillinger.runtime.types import BindMode, DeviceMapping, ResourceBinding


logger = logging.getLogger(__name__)

GAME_HOME = "/home/gameuser"
CONTAINER_RUNTIME_DIR = "/run/user/1000"


@dataclass(frozen=True)
class DisplayConfig:
    """Forwarding settings for one session process.

    Attributes:
        mode: ``x11``, ``wayland`` or ``none``.
        env: Environment variables.
        bindings: Sockets and files to bind in.
        devices: Host devices to pass through.
        ipc_mode: IPC namespace mode, if any.
        security_opt: Security options.
    """

    mode: str
    env: dict[str, str] = field(default_factory=dict)
    bindings: list[ResourceBinding] = field(default_factory=list)
    devices: list[DeviceMapping] = field(default_factory=list)
    ipc_mode: str | None = None
    security_opt: list[str] = field(default_factory=list)


HEADLESS = DisplayConfig(mode="none")


def _device(path: str) -> DeviceMapping:
    return DeviceMapping(path, path)


def _input_forwarding(
    exists: Callable[[str], bool],
) -> tuple[list[DeviceMapping], list[ResourceBinding]]:
    """GPU, sound and input devices plus input metadata binds."""
    devices: list[DeviceMapping] = []
    bindings: list[ResourceBinding] = []

    if exists("/dev/dri"):
        devices.append(_device("/dev/dri"))
    else:
        logger.warning("No GPU device (/dev/dri), software rendering only")
    if exists("/dev/snd"):
        devices.append(_device("/dev/snd"))

    if exists("/dev/input"):
        devices.append(_device("/dev/input"))
        if exists("/proc/bus/input/devices"):
            bindings.append(
                ResourceBinding(
                    "/proc/bus/input/devices",
                    "/tmp/host-input-devices",
                    BindMode.READ_ONLY,
                )
            )
        if exists("/run/udev"):
            bindings.append(
                ResourceBinding("/run/udev", "/run/udev", BindMode.READ_ONLY)
            )

    for i in range(10):
        js = f"/dev/input/js{i}"
        if exists(js):
            devices.append(_device(js))
    if exists("/dev/uinput"):
        devices.append(_device("/dev/uinput"))
    return devices, bindings


def _is_nonempty_file(path: str) -> bool:
    try:
        return os.path.isfile(path) and os.path.getsize(path) > 0
    except OSError:
        return False


def detect_display(
    environ: Mapping[str, str] | None = None,
    *,
    audio_sink: str | None = None,
    exists: Callable[[str], bool] = os.path.exists,
    is_nonempty_file: Callable[[str], bool] = _is_nonempty_file,
) -> DisplayConfig:
    """Build the forwarding configuration for the current host.

    Args:
        environ: Environment to inspect. Defaults to ``os.environ``.
        audio_sink: PulseAudio sink preference from settings.
        exists: Path existence check.
        is_nonempty_file: Regular non-empty file check (Xauthority).

    Returns:
        The display configuration (``HEADLESS`` if no display is set).
    """
    if environ is None:
        environ = os.environ
    display = environ.get("DISPLAY")
    wayland_display = environ.get("WAYLAND_DISPLAY")
    runtime_dir = environ.get("XDG_RUNTIME_DIR") or CONTAINER_RUNTIME_DIR

    if display:
        return _x11(
            display,
            environ,
            runtime_dir,
            audio_sink,
            exists,
            is_nonempty_file,
        )

    if wayland_display:
        logger.info("Using Wayland display: %s", wayland_display)
        devices, extra = _input_forwarding(exists)
        bindings = [
            ResourceBinding(
                f"{runtime_dir}/{wayland_display}",
                f"{CONTAINER_RUNTIME_DIR}/{wayland_display}",
            ),
            *extra,
        ]
        return DisplayConfig(
            mode="wayland",
            env={
                "WAYLAND_DISPLAY": wayland_display,
                "XDG_RUNTIME_DIR": CONTAINER_RUNTIME_DIR,
                "QT_QPA_PLATFORM": "wayland",
                "GDK_BACKEND": "wayland",
                "SDL_VIDEODRIVER": "wayland",
            },
            bindings=bindings,
            devices=devices,
        )

    logger.warning(
        "No display environment detected (DISPLAY or WAYLAND_DISPLAY), "
        "running headless"
    )
    return HEADLESS


def _x11(
    display: str,
    environ: Mapping[str, str],
    runtime_dir: str,
    audio_sink: str | None,
    exists: Callable[[str], bool],
    is_nonempty_file: Callable[[str], bool],
) -> DisplayConfig:
    logger.info("Using X11 display: %s", display)
    home = environ.get("HOME", "")
    xauthority = environ.get("XAUTHORITY") or f"{home}/.Xauthority"

    bindings = [ResourceBinding("/tmp/.X11-unix", "/tmp/.X11-unix")]
    # A bind of a missing file would be created as a directory.
    if is_nonempty_file(xauthority):
        bindings.append(
            ResourceBinding(
                xauthority, f"{GAME_HOME}/.Xauthority", BindMode.READ_ONLY
            )
        )
    else:
        logger.warning(
            "No valid Xauthority file at %s, X11 may need xhost access",
            xauthority,
        )

    pulse_candidates = [
        f"{runtime_dir}/pulse",
        f"{CONTAINER_RUNTIME_DIR}/pulse",
        "/tmp/pulse-socket",
    ]
    pulse_socket = next((p for p in pulse_candidates if exists(p)), None)
    if pulse_socket:
        bindings.append(
            ResourceBinding(pulse_socket, f"{CONTAINER_RUNTIME_DIR}/pulse")
        )
        for cookie in (
            f"{home}/.config/pulse/cookie",
            "/home/dillinger/.config/pulse/cookie",
        ):
            if exists(cookie):
                bindings.append(
                    ResourceBinding(
                        cookie,
                        f"{GAME_HOME}/.config/pulse/cookie",
                        BindMode.READ_ONLY,
                    )
                )
                break
    else:
        logger.warning(
            "No PulseAudio socket found (checked: %s), audio may not work",
            ", ".join(pulse_candidates),
        )

    devices, extra = _input_forwarding(exists)
    bindings.extend(extra)

    env = {
        "DISPLAY": display,
        "XAUTHORITY": "",
        "PULSE_SERVER": f"unix:{CONTAINER_RUNTIME_DIR}/pulse/native",
        "PULSE_COOKIE": f"{GAME_HOME}/.config/pulse/cookie",
    }
    sink = audio_sink or environ.get("PULSE_SINK")
    if sink:
        env["PULSE_SINK"] = sink

    return DisplayConfig(
        mode="x11",
        env=env,
        bindings=bindings,
        devices=devices,
        ipc_mode="host",
        security_opt=["seccomp=unconfined"],
    )
