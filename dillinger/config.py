# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Configuration for the session orchestrator.

Configuration is loaded from a YAML file (default
``$XDG_CONFIG_HOME/dillinger/dillinger.yaml``, overridable with
``$DILLINGER_CONFIG``) with support for ``!env`` tags that resolve values
from environment variables. Every key is optional; a missing file yields
the defaults.

Example::

    container_command: docker
    dillinger_root: /data
    self_container: !env HOSTNAME
    probe_image: alpine:3.20
    volumes:
      root: dillinger_root
      installers: dillinger_installers
      scratch: dillinger_current_session
    volume_cache_ttl: 30
    log_buffer_size: 200
    default_images:
      native: ghcr.io/thrane20/dillinger/runner-linux-native
      wine: ghcr.io/thrane20/dillinger/runner-wine
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar, overload

import yaml
from platformdirs import user_config_path

from dillinger.dotenv_loader import load_dotenv_once


logger = logging.getLogger(__name__)

#: Application name for XDG path resolution.
_APP_NAME = "dillinger"

CONFIG_ENV_VAR = "DILLINGER_CONFIG"

_BOOL_TRUTHY = frozenset({"true", "1", "yes", "on"})
_BOOL_FALSY = frozenset({"false", "0", "no", "off"})

DEFAULT_NATIVE_IMAGE = "ghcr.io/thrane20/dillinger/runner-linux-native"
DEFAULT_WINE_IMAGE = "ghcr.io/thrane20/dillinger/runner-wine"


class ConfigError(Exception):
    """Raised when the configuration file is malformed."""


# ---------------------------------------------------------------------------
# YAML tag placeholders
# ---------------------------------------------------------------------------


class _EnvVar:
    """Placeholder for an unresolved ``!env VAR_NAME`` tag."""

    def __init__(self, var_name: str) -> None:
        self.var_name = var_name


def _env_constructor(loader: yaml.SafeLoader, node: yaml.Node) -> _EnvVar:
    """Handle ``!env VAR_NAME`` in YAML."""
    value = loader.construct_scalar(node)
    return _EnvVar(str(value))


def _make_loader() -> type[yaml.SafeLoader]:
    """Create a YAML loader that understands ``!env``."""

    class EnvLoader(yaml.SafeLoader):
        pass

    EnvLoader.add_constructor("!env", _env_constructor)
    return EnvLoader


# ---------------------------------------------------------------------------
# Value resolution
# ---------------------------------------------------------------------------


def _coerce_bool(value: object) -> bool:
    """Coerce a value to bool, handling string representations."""
    if isinstance(value, bool):
        return value
    s = str(value).lower().strip()
    if s in _BOOL_TRUTHY:
        return True
    if s in _BOOL_FALSY:
        return False
    raise ConfigError(f"Cannot convert {value!r} to bool")


def _raw_resolve(value: object) -> str | None:
    """Resolve an ``_EnvVar`` to its string value, or stringify literals.

    Returns None if the value is None or the env var is unset/empty.
    """
    if isinstance(value, _EnvVar):
        return os.environ.get(value.var_name) or None
    if value is None:
        return None
    return str(value)


_MISSING = object()

_T = TypeVar("_T")


@overload
def _resolve(
    value: object, coerce: type[_T], *, default: _T, key: str = ""
) -> _T: ...


@overload
def _resolve(value: object, coerce: type[_T]) -> _T | None: ...


def _resolve(
    value: object,
    coerce: type[Any],
    *,
    default: object = _MISSING,
    key: str = "",
) -> Any:
    """Resolve a YAML value, handling ``!env`` tags and type coercion.

    Args:
        value: Raw value from YAML (may be ``_EnvVar``, None, or a
            literal already parsed by PyYAML).
        coerce: Target type (``str``, ``int``, ``bool``, ``Path``).
        default: Default when value is absent.
        key: Config key, used in error messages.

    Returns:
        The resolved, coerced value, or None when absent without default.

    Raises:
        ConfigError: If the value cannot be coerced.
    """
    if not isinstance(value, _EnvVar) and value is not None:
        if coerce is bool:
            return _coerce_bool(value)
        if isinstance(value, coerce) and not (
            coerce is int and isinstance(value, bool)
        ):
            return value

    resolved = _raw_resolve(value)

    if resolved is None:
        if default is not _MISSING:
            return default
        return None

    try:
        if coerce is bool:
            return _coerce_bool(resolved)
        if coerce is Path:
            return Path(resolved).expanduser()
        return coerce(resolved)
    except (TypeError, ValueError) as e:
        raise ConfigError(
            f"Invalid value for '{key or '?'}': {resolved!r}"
        ) from e


def _section(raw: dict, name: str) -> dict:
    """Return a nested mapping, rejecting non-mapping values."""
    section = raw.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' must be a YAML mapping")
    return section


def get_config_path() -> Path:
    """Return the configuration file path.

    ``$DILLINGER_CONFIG`` wins over the XDG default
    ``$XDG_CONFIG_HOME/dillinger/dillinger.yaml`` (typically
    ``~/.config/dillinger/dillinger.yaml``).
    """
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return user_config_path(_APP_NAME) / "dillinger.yaml"


def get_dotenv_path() -> Path:
    """Return the ``.env`` path inside the XDG config directory."""
    return user_config_path(_APP_NAME) / ".env"


@dataclass(frozen=True)
class VolumeNames:
    """Names of the runtime volumes the orchestrator manages.

    Attributes:
        root: Persistent data volume mounted at ``/data`` in sessions.
        installers: Helper volume holding downloaded installers.
        scratch: Shared scratch volume exposing the selected game dir.
    """

    root: str = "dillinger_root"
    installers: str = "dillinger_installers"
    scratch: str = "dillinger_current_session"

    @property
    def protected(self) -> frozenset[str]:
        """Volumes the reclaimer must never remove."""
        return frozenset({self.root, self.installers})


@dataclass(frozen=True)
class OrchestratorConfig:
    """Construction-time configuration for the orchestrator.

    Attributes:
        container_command: Container runtime CLI (docker or podman).
        dillinger_root: Data root as seen by the orchestrator process.
        self_container: Identifier of the orchestrator's own sandbox,
            used for mount detection. None means use the hostname.
        probe_image: Minimal image used for probe processes.
        volumes: Managed runtime volume names.
        volume_cache_ttl: Seconds the configured-volume list is cached.
        log_buffer_size: Maximum number of captured output chunks kept
            per monitored session.
        stop_timeout: Seconds the runtime waits before killing on stop.
        native_image: Default runner repository for native games.
        wine_image: Default runner repository for Wine games/installers.
        puid: User id passed to runners (PUID), if any.
        pgid: Group id passed to runners (PGID), if any.
    """

    container_command: str = "docker"
    dillinger_root: Path = field(default_factory=lambda: Path("/data"))
    self_container: str | None = None
    probe_image: str = "alpine:3.20"
    volumes: VolumeNames = field(default_factory=VolumeNames)
    volume_cache_ttl: float = 30.0
    log_buffer_size: int = 200
    stop_timeout: int = 10
    native_image: str = DEFAULT_NATIVE_IMAGE
    wine_image: str = DEFAULT_WINE_IMAGE
    puid: str | None = None
    pgid: str | None = None

    @classmethod
    def from_yaml(
        cls, config_path: Path | None = None
    ) -> "OrchestratorConfig":
        """Load configuration from a YAML file.

        Values tagged with ``!env VAR_NAME`` are resolved from the
        environment at load time. A ``.env`` file is loaded first if
        present.

        Args:
            config_path: Path to YAML config file. Defaults to
                :func:`get_config_path`.

        Returns:
            OrchestratorConfig instance (defaults if the file is absent).

        Raises:
            ConfigError: If the file is not a mapping or values are invalid.
        """
        load_dotenv_once()

        if config_path is None:
            config_path = get_config_path()

        if not config_path.exists():
            logger.info("No config file at %s, using defaults", config_path)
            return cls._from_raw({})

        with open(config_path) as f:
            raw = yaml.load(f, Loader=_make_loader())

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigError(
                f"Config file must be a YAML mapping: {config_path}"
            )

        return cls._from_raw(raw)

    @classmethod
    def _from_raw(cls, raw: dict) -> "OrchestratorConfig":
        """Build config from parsed (but unresolved) YAML dict."""
        volumes_raw = _section(raw, "volumes")
        images_raw = _section(raw, "default_images")
        defaults = VolumeNames()

        volumes = VolumeNames(
            root=_resolve(
                volumes_raw.get("root"),
                str,
                default=defaults.root,
                key="volumes.root",
            ),
            installers=_resolve(
                volumes_raw.get("installers"),
                str,
                default=defaults.installers,
                key="volumes.installers",
            ),
            scratch=_resolve(
                volumes_raw.get("scratch"),
                str,
                default=defaults.scratch,
                key="volumes.scratch",
            ),
        )

        config = cls(
            container_command=_resolve(
                raw.get("container_command"),
                str,
                default="docker",
                key="container_command",
            ),
            dillinger_root=_resolve(
                raw.get("dillinger_root"),
                Path,
                default=Path("/data"),
                key="dillinger_root",
            ),
            self_container=_resolve(raw.get("self_container"), str),
            probe_image=_resolve(
                raw.get("probe_image"),
                str,
                default="alpine:3.20",
                key="probe_image",
            ),
            volumes=volumes,
            volume_cache_ttl=_resolve(
                raw.get("volume_cache_ttl"),
                float,
                default=30.0,
                key="volume_cache_ttl",
            ),
            log_buffer_size=_resolve(
                raw.get("log_buffer_size"),
                int,
                default=200,
                key="log_buffer_size",
            ),
            stop_timeout=_resolve(
                raw.get("stop_timeout"), int, default=10, key="stop_timeout"
            ),
            native_image=_resolve(
                images_raw.get("native"),
                str,
                default=DEFAULT_NATIVE_IMAGE,
                key="default_images.native",
            ),
            wine_image=_resolve(
                images_raw.get("wine"),
                str,
                default=DEFAULT_WINE_IMAGE,
                key="default_images.wine",
            ),
            puid=_resolve(raw.get("puid"), str) or os.environ.get("PUID"),
            pgid=_resolve(raw.get("pgid"), str) or os.environ.get("PGID"),
        )

        if config.volume_cache_ttl < 0:
            raise ConfigError("'volume_cache_ttl' must not be negative")
        if config.log_buffer_size < 1:
            raise ConfigError("'log_buffer_size' must be at least 1")

        logger.debug(
            "Orchestrator config loaded: command=%s, root=%s",
            config.container_command,
            config.dillinger_root,
        )
        return config
