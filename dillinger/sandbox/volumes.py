# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Cached catalog of user-configured storage volumes."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from dillinger.sandbox.paths import is_path_within, strip_prefix
from dillinger.storage import DocumentStore


logger = logging.getLogger(__name__)

VOLUMES_KIND = "volumes"


@dataclass(frozen=True)
class ConfiguredVolume:
    """A named runtime volume registered by the user.

    Attributes:
        id: Storage identifier.
        name: Human-readable name.
        runtime_ref: Name of the runtime volume.
        host_path: Path the volume exposes.
    """

    id: str
    name: str
    runtime_ref: str
    host_path: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConfiguredVolume:
        """Build from a stored volume document."""
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            runtime_ref=str(data.get("dockerVolumeName", "")),
            host_path=str(data.get("hostPath", "")).rstrip("/") or "/",
        )


@dataclass(frozen=True)
class VolumeMatch:
    """A configured volume containing a path.

    Attributes:
        volume: The most specific containing volume.
        relative_path: Remainder below the volume root, without a
            leading slash (empty for the root itself).
    """

    volume: ConfiguredVolume
    relative_path: str


class VolumeRegistry:
    """TTL cache over the configured volumes in the document store.

    Thread Safety: Thread-safe.
    """

    def __init__(
        self,
        store: DocumentStore,
        ttl: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._cache: list[ConfiguredVolume] | None = None
        self._loaded_at = 0.0

    def load(self) -> list[ConfiguredVolume]:
        """Return the configured volumes, reading storage if stale.

        A storage failure is logged and yields an empty catalog, so
        callers fall back to direct binds.
        """
        with self._lock:
            now = self._clock()
            if (
                self._cache is not None
                and now - self._loaded_at < self._ttl
            ):
                return list(self._cache)

            try:
                documents = self._store.list_entities(VOLUMES_KIND)
            except (OSError, ValueError) as e:
                logger.warning("Failed to load configured volumes: %s", e)
                return []

            volumes = [
                ConfiguredVolume.from_dict(doc)
                for doc in documents
                if doc.get("dockerVolumeName") and doc.get("hostPath")
            ]
            self._cache = volumes
            self._loaded_at = now
            logger.debug("Loaded %d configured volumes", len(volumes))
            return list(volumes)

    def invalidate(self) -> None:
        """Drop the cached catalog so the next load re-reads storage."""
        with self._lock:
            self._cache = None

    def find_containing_volume(self, path: str) -> VolumeMatch | None:
        """Find the most specific configured volume containing ``path``.

        Args:
            path: Absolute path in configured (host) terms.

        Returns:
            The longest-``host_path`` match with the remainder, or None
            when no volume contains the path.
        """
        volumes = sorted(
            self.load(), key=lambda v: len(v.host_path), reverse=True
        )
        for volume in volumes:
            if is_path_within(path, volume.host_path):
                return VolumeMatch(
                    volume=volume,
                    relative_path=strip_prefix(path, volume.host_path),
                )
        return None
