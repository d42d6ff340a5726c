# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Document store and settings collaborators.

The orchestrator reads configured volumes and writes game install state
through :class:`DocumentStore`, and reads launch-time preferences
through :class:`SettingsProvider`. The JSON-file implementations keep
one document per file under ``<root>/storage``.
"""

from __future__ import annotations

import json
import logging
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol

from dillinger.models import JoystickMapping


logger = logging.getLogger(__name__)


class DocumentStore(Protocol):
    """Keyed JSON document storage."""

    def list_entities(self, kind: str) -> list[dict[str, Any]]:
        """Return all documents of a kind."""
        ...

    def read_entity(self, kind: str, entity_id: str) -> dict[str, Any] | None:
        """Return one document, or None if it does not exist."""
        ...

    def write_entity(
        self, kind: str, entity_id: str, document: dict[str, Any]
    ) -> None:
        """Create or replace one document."""
        ...


class SettingsProvider(Protocol):
    """Read-only access to user preferences used at launch time."""

    def auto_remove_containers(self) -> bool:
        """Whether session processes are removed when they exit."""
        ...

    def gpu_vendor(self) -> str | None:
        """Preferred GPU vendor (``amd``, ``nvidia``), if set."""
        ...

    def joystick_mappings(self) -> dict[str, JoystickMapping]:
        """Joystick per platform id or category."""
        ...

    def audio_sink(self) -> str | None:
        """PulseAudio sink to route game audio to, if set."""
        ...


def _write_json_atomic(path: Path, data: dict[str, Any]) -> None:
    """Write JSON through a temp file in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with open(fd, "w") as f:
            json.dump(data, f, indent=2)
        Path(tmp).replace(path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class JsonDocumentStore:
    """One JSON file per entity at ``<root>/storage/<kind>/<id>.json``.

    Thread-safe via an internal lock.

    Args:
        root: Dillinger data root.
    """

    def __init__(self, root: Path) -> None:
        self._base = root / "storage"
        self._lock = threading.Lock()

    def _path(self, kind: str, entity_id: str) -> Path:
        return self._base / kind / f"{entity_id}.json"

    def list_entities(self, kind: str) -> list[dict[str, Any]]:
        directory = self._base / kind
        if not directory.is_dir():
            return []
        entities: list[dict[str, Any]] = []
        with self._lock:
            for path in sorted(directory.glob("*.json")):
                if path.name == "index.json":
                    continue
                try:
                    with open(path) as f:
                        data = json.load(f)
                except (json.JSONDecodeError, OSError) as e:
                    logger.warning("Skipping unreadable %s: %s", path, e)
                    continue
                if isinstance(data, dict):
                    entities.append(data)
        return entities

    def read_entity(self, kind: str, entity_id: str) -> dict[str, Any] | None:
        path = self._path(kind, entity_id)
        with self._lock:
            try:
                with open(path) as f:
                    data = json.load(f)
            except FileNotFoundError:
                return None
        return data if isinstance(data, dict) else None

    def write_entity(
        self, kind: str, entity_id: str, document: dict[str, Any]
    ) -> None:
        with self._lock:
            _write_json_atomic(self._path(kind, entity_id), document)


class JsonSettings:
    """Settings read from ``<root>/storage/settings.json``.

    The file is read on every call so edits take effect on the next
    launch. A missing or malformed file yields defaults.

    Args:
        path: Settings file path.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @classmethod
    def for_root(cls, root: Path) -> JsonSettings:
        """Settings of the given data root."""
        return cls(root / "storage" / "settings.json")

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path) as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Failed to read settings %s: %s", self._path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _section(self, name: str) -> dict[str, Any]:
        section = self._load().get(name)
        return section if isinstance(section, dict) else {}

    def auto_remove_containers(self) -> bool:
        return bool(self._section("docker").get("autoRemoveContainers", False))

    def gpu_vendor(self) -> str | None:
        vendor = self._section("gpu").get("vendor")
        return str(vendor) if vendor else None

    def joystick_mappings(self) -> dict[str, JoystickMapping]:
        mappings: dict[str, JoystickMapping] = {}
        for key, value in self._section("joysticks").items():
            if not isinstance(value, dict) or not value.get("deviceId"):
                continue
            mappings[str(key)] = JoystickMapping(
                device_id=str(value["deviceId"]),
                device_name=str(value.get("deviceName", "")),
            )
        return mappings

    def audio_sink(self) -> str | None:
        sink = self._section("audio").get("defaultSink")
        return str(sink) if sink else None
