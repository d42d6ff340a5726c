# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Per-title emulator home directories under the data root.

Each emulator title gets ``<root>/emulator-homes/<identifier>`` mounted
as the runner user's home, so configs, saves and screenshots stay
separate per game. Directories the runtime would otherwise create as
root when binding files into them are pre-created world-writable.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path


logger = logging.getLogger(__name__)

_OPEN_DIR_MODE = 0o777
_OPEN_FILE_MODE = 0o666


def emulator_home_path(root: Path, identifier: str) -> Path:
    """Return the home directory of a title (not created)."""
    return root / "emulator-homes" / identifier


def master_retroarch_config(root: Path) -> Path:
    """Return the shared arcade RetroArch config location."""
    return root / "storage" / "platform-configs" / "arcade" / "retroarch.cfg"


def amiga_bios_path(root: Path) -> Path:
    """Return the Amiga Kickstart ROM directory."""
    return root / "bios" / "amiga"


def prepare_emulator_home(
    root: Path, home: Path, *, seed_retroarch_config: bool = False
) -> Path:
    """Create a title's home directory with its standard layout.

    Args:
        root: Data root (location of the master RetroArch config).
        home: Home directory to prepare.
        seed_retroarch_config: Copy the master arcade config into
            ``.config/retroarch/retroarch.cfg`` if the title has none.

    Returns:
        The prepared home directory.

    Raises:
        OSError: If the directories cannot be created.
    """
    pulse_dir = home / ".config" / "pulse"
    cache_dir = home / ".cache"
    pulse_dir.mkdir(parents=True, exist_ok=True)
    cache_dir.mkdir(parents=True, exist_ok=True)
    for directory in (home, home / ".config", pulse_dir, cache_dir):
        directory.chmod(_OPEN_DIR_MODE)
    logger.info("Emulator home directory: %s", home)

    if seed_retroarch_config:
        _seed_retroarch_config(root, home)
    return home


def _seed_retroarch_config(root: Path, home: Path) -> None:
    config = home / ".config" / "retroarch" / "retroarch.cfg"
    if config.exists():
        logger.info("Using existing title config: %s", config)
        return
    master = master_retroarch_config(root)
    if not master.exists():
        logger.warning("Master arcade config not found at %s", master)
        return
    config.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(master, config)
    config.chmod(_OPEN_FILE_MODE)
    logger.info("Seeded %s from master config %s", config, master)


def ensure_directory(path: Path) -> bool:
    """Create a directory, logging instead of raising on failure.

    Returns:
        True if the directory exists afterwards.
    """
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning("Could not create directory %s: %s", path, e)
        return False
    return True
