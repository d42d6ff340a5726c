# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Idempotent .env loading for the orchestrator configuration.

The default file is ``$XDG_CONFIG_HOME/dillinger/.env``, next to
``dillinger.yaml``. When it is absent, python-dotenv searches from the
current working directory instead.
"""

import logging
from pathlib import Path

from dotenv import load_dotenv


logger = logging.getLogger(__name__)

_dotenv_loaded = False


def load_dotenv_once(env_path: Path | None = None) -> None:
    """Load a .env file once, if not already loaded.

    Calling this multiple times has no effect after the first load.

    Args:
        env_path: Explicit path to .env file. If None, the file in the
            XDG config directory is tried, then the current directory.
    """
    global _dotenv_loaded
    if _dotenv_loaded:
        return

    if env_path is None:
        from dillinger.config import get_dotenv_path

        env_path = get_dotenv_path()

    if env_path.exists():
        load_dotenv(env_path)
        logger.debug("Loaded .env from %s", env_path)
    else:
        load_dotenv()
        logger.debug("Loaded .env from current directory")
    _dotenv_loaded = True


def reset_dotenv_state() -> None:
    """Reset the dotenv loaded state. For testing only."""
    global _dotenv_loaded
    _dotenv_loaded = False
